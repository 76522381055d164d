"""Validator and reserve models for a single planning session."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from models.snapshot import SnapshotValidator


class LifecycleAction(str, Enum):
    """What the plan does with a validator."""

    KEEP = "keep"
    REMOVE = "remove"
    ADD = "add"


class ValidatorRecord(BaseModel):
    """Current and target stake for one validator.

    ``current_balance`` is fixed once the record is loaded; the operator only
    edits ``target_balance`` and ``action``.  A record marked ``remove`` always
    carries a zero target, and a record with ``add`` is not yet in the pool so
    its current balance is zero.
    """

    identity: str = Field(min_length=1, description="Vote account address.")
    display_name: str | None = None
    stake_account: str = ""
    transient_stake_account: str = ""
    current_balance: float = Field(ge=0, frozen=True)
    pending_balance: float = Field(default=0.0, ge=0)  # Excluded from planning math
    target_balance: float
    action: LifecycleAction = LifecycleAction.KEEP

    @classmethod
    def from_snapshot(cls, entry: SnapshotValidator) -> ValidatorRecord:
        """Build a ``keep`` record whose target equals its active stake."""
        return cls(
            identity=entry.vote_account,
            display_name=entry.name,
            stake_account=entry.stake_account,
            transient_stake_account=entry.transient_stake_account,
            current_balance=entry.active_balance,
            pending_balance=entry.transient_balance,
            target_balance=entry.active_balance,
            action=LifecycleAction.KEEP,
        )

    @classmethod
    def proposed(cls, identity: str, display_name: str | None = None) -> ValidatorRecord:
        """Build a record for a validator not yet part of the pool."""
        return cls(
            identity=identity,
            display_name=display_name,
            current_balance=0.0,
            target_balance=0.0,
            action=LifecycleAction.ADD,
        )

    @property
    def is_removed(self) -> bool:
        return self.action is LifecycleAction.REMOVE

    @property
    def is_new(self) -> bool:
        return self.action is LifecycleAction.ADD

    @property
    def change(self) -> float:
        """Signed difference between target and current stake."""
        return self.target_balance - self.current_balance

    @property
    def status_label(self) -> str:
        """Short label shown in the operator table."""
        if self.is_removed:
            return "REMOVE"
        if self.is_new:
            return "NEW"
        if self.target_balance != self.current_balance:
            return "MODIFY"
        return "keep"


class ReserveAccount(BaseModel):
    """Pool liquidity not delegated to any validator."""

    identity: str
    balance: float = Field(ge=0)
