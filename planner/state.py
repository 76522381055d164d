"""Allocation state: the mutable model of validators and reserve liquidity.

The state owns every operator mutation.  Records live in one
insertion-ordered mapping keyed by vote account: validators from the snapshot
come first, proposed validators are appended as they are added.  That storage
order defines the flat 0-based index used by commands and never changes.  The
display order (lowest target first) is derived on demand by
``display_order`` and kept separate.

Every mutation validates its input before touching a record, so a raised
``PlannerError`` leaves the state unchanged.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping

from pydantic import BaseModel

from models.snapshot import PoolSnapshot
from models.validator import LifecycleAction, ReserveAccount, ValidatorRecord
from planner.errors import DuplicateValidator, InvalidIndex, InvalidOperation
from planner.precision import round_to_precision

logger = logging.getLogger(__name__)

ValidatorRef = int | str


class StateTotals(BaseModel):
    """Aggregate balances shown in the operator header."""

    total_current: float  # Existing validators only
    total_target: float  # Non-removed existing + proposed
    removed_stake: float
    reserve_balance: float
    projected_reserve: float  # Reserve after removed stake returns to it
    pool_total: float
    active_count: int
    removed_count: int


class AllocationState:
    """Existing validators, proposed validators and the reserve for one session."""

    def __init__(
        self,
        reserve: ReserveAccount,
        validators: Iterable[ValidatorRecord] = (),
    ) -> None:
        self._reserve = reserve
        self._records: dict[str, ValidatorRecord] = {}
        for record in validators:
            if record.is_new:
                raise InvalidOperation(
                    f"Validator {record.identity} is a proposed validator; use add_validator."
                )
            if record.identity in self._records:
                raise DuplicateValidator(f"Validator {record.identity} already exists.")
            self._records[record.identity] = record

    @classmethod
    def from_snapshot(cls, snapshot: PoolSnapshot) -> AllocationState:
        """Seed a state from a pool snapshot; every validator starts as ``keep``."""
        state = cls(
            reserve=ReserveAccount(
                identity=snapshot.reserve_account,
                balance=snapshot.reserve_balance,
            ),
            validators=[ValidatorRecord.from_snapshot(v) for v in snapshot.validators],
        )
        logger.info(
            "Loaded allocation state: %d validator(s), reserve %.9f SOL.",
            len(state),
            snapshot.reserve_balance,
        )
        return state

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    @property
    def reserve(self) -> ReserveAccount:
        return self._reserve

    @property
    def records(self) -> list[ValidatorRecord]:
        """All records in storage (command index) order."""
        return list(self._records.values())

    @property
    def existing(self) -> list[ValidatorRecord]:
        """Validators loaded from the snapshot, removed ones included."""
        return [r for r in self._records.values() if not r.is_new]

    @property
    def proposed(self) -> list[ValidatorRecord]:
        return [r for r in self._records.values() if r.is_new]

    @property
    def removed(self) -> list[ValidatorRecord]:
        return [r for r in self._records.values() if r.is_removed]

    @property
    def active(self) -> list[ValidatorRecord]:
        """Existing validators that are not being removed, plus proposed ones."""
        return [r for r in self._records.values() if not r.is_removed]

    def get(self, ref: ValidatorRef) -> ValidatorRecord:
        """Return the record at a 0-based index or with the given identity."""
        return self._records[self._resolve(ref)]

    def index_of(self, identity: str) -> int:
        """Return the 0-based command index of *identity*."""
        for idx, key in enumerate(self._records):
            if key == identity:
                return idx
        raise InvalidIndex(f"Unknown validator {identity}.")

    def display_order(self) -> list[tuple[int, ValidatorRecord]]:
        """(index, record) pairs sorted by target balance, lowest first.

        The sort is stable, so equal targets keep their storage order.
        """
        indexed = list(enumerate(self._records.values()))
        return sorted(indexed, key=lambda pair: pair[1].target_balance)

    def totals(self) -> StateTotals:
        existing = self.existing
        total_current = sum(r.current_balance for r in existing)
        removed_stake = sum(r.current_balance for r in existing if r.is_removed)
        return StateTotals(
            total_current=total_current,
            total_target=sum(r.target_balance for r in self.active),
            removed_stake=removed_stake,
            reserve_balance=self._reserve.balance,
            projected_reserve=self._reserve.balance + removed_stake,
            pool_total=total_current + self._reserve.balance,
            active_count=len(self.active),
            removed_count=len(self.removed),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mark_removed(self, ref: ValidatorRef) -> ValidatorRecord:
        """Mark an existing validator for removal and zero its target."""
        record = self._require_existing(ref, "remove")
        record.action = LifecycleAction.REMOVE
        record.target_balance = 0.0
        logger.debug("Marked %s for removal.", record.identity)
        return record

    def undo_removed(self, ref: ValidatorRef) -> ValidatorRecord:
        """Return an existing validator to ``keep`` with target = current.

        Any earlier manual target edit is discarded.
        """
        record = self._require_existing(ref, "undo")
        record.action = LifecycleAction.KEEP
        record.target_balance = record.current_balance
        logger.debug("Restored %s (target %.9f).", record.identity, record.target_balance)
        return record

    def set_target(self, ref: ValidatorRef, amount: float) -> ValidatorRecord:
        """Set the target balance directly, without rounding.

        Any index is accepted except a validator marked for removal: its
        target is pinned at 0 until ``undo_removed``, so this raises
        ``InvalidOperation`` instead of overwriting it.
        """
        record = self.get(ref)
        amount = _require_finite(amount, "Target amount")
        if record.is_removed:
            raise InvalidOperation(
                f"Cannot set a target for {record.identity}: it is marked for removal; undo first."
            )
        record.target_balance = amount
        logger.debug("Set target of %s to %.9f.", record.identity, amount)
        return record

    def add_to_target(self, ref: ValidatorRef, delta: float) -> ValidatorRecord:
        return self._adjust_target(ref, delta, sign=1)

    def subtract_from_target(self, ref: ValidatorRef, delta: float) -> ValidatorRecord:
        return self._adjust_target(ref, delta, sign=-1)

    def add_validator(self, identity: str, display_name: str | None = None) -> ValidatorRecord:
        """Propose a validator that is not yet part of the pool."""
        identity = identity.strip()
        if not identity:
            raise InvalidOperation("Validator identity must not be empty.")
        if identity in self._records:
            raise DuplicateValidator(f"Validator {identity} already exists.")
        record = ValidatorRecord.proposed(identity, display_name)
        self._records[identity] = record
        logger.debug("Proposed new validator %s at index %d.", identity, len(self) - 1)
        return record

    def apply_targets(self, targets: Mapping[str, float]) -> None:
        """Set several targets at once; all identities are checked first."""
        for identity, amount in targets.items():
            record = self._records.get(identity)
            if record is None:
                raise InvalidIndex(f"Unknown validator {identity}.")
            if record.is_removed:
                raise InvalidOperation(
                    f"Cannot set a target for {identity}: it is marked for removal."
                )
            _require_finite(amount, "Target amount")
        for identity, amount in targets.items():
            self._records[identity].target_balance = amount

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve(self, ref: ValidatorRef) -> str:
        """Map an index or identity to the storage key."""
        if isinstance(ref, bool):
            raise InvalidIndex(f"Invalid validator reference {ref!r}.")
        if isinstance(ref, int):
            if 0 <= ref < len(self._records):
                return list(self._records)[ref]
            raise InvalidIndex(
                f"Validator index {ref + 1} is out of range (1-{len(self._records)})."
            )
        if ref in self._records:
            return ref
        raise InvalidIndex(f"Unknown validator {ref}.")

    def _require_existing(self, ref: ValidatorRef, verb: str) -> ValidatorRecord:
        record = self.get(ref)
        if record.is_new:
            raise InvalidIndex(
                f"Cannot {verb} {record.identity}: it is a proposed validator, not part of the pool yet."
            )
        return record

    def _adjust_target(self, ref: ValidatorRef, delta: float, sign: int) -> ValidatorRecord:
        record = self.get(ref)
        delta = _require_finite(delta, "Adjustment")
        if record.is_removed:
            raise InvalidOperation(
                f"Cannot adjust {record.identity}: it is marked for removal; undo first."
            )
        new_target = round_to_precision(record.target_balance + sign * delta)
        if new_target < 0:
            raise InvalidOperation(
                f"Cannot subtract {delta:.9f} from {record.identity}: "
                f"target would be {new_target:.9f} SOL."
            )
        record.target_balance = new_target
        logger.debug("Adjusted target of %s by %+.9f to %.9f.", record.identity, sign * delta, new_target)
        return record


def _require_finite(value: float, what: str) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidOperation(f"{what} must be a number, got {value!r}.") from exc
    if not math.isfinite(value):
        raise InvalidOperation(f"{what} must be a finite number, got {value}.")
    return value
