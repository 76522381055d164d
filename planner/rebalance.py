"""Automatic redistribution of stake freed by removed validators.

Freed stake (the current balance of every validator marked ``remove``) is
poured into the remaining validators lowest-target first, each one filled up
to the equal-share point ``(sum(active targets) + freed) / len(active)``
until the freed pool runs out.  Any rounding residue left after that pass is
spread equally over all active validators, so the whole freed amount is
always consumed.  Transfers are made in whole lamports.

Proposed validators are not recipients; their targets are set by the
operator.  The computation is deterministic for a given storage order.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from planner.precision import LAMPORTS_PER_SOL, format_sol, round_to_precision, to_lamports
from planner.state import AllocationState

logger = logging.getLogger(__name__)


class RebalanceResult(BaseModel):
    """Outcome of a rebalance.

    ``targets`` maps each validator whose target changed to its new target.
    When ``applied`` is false nothing was changed and ``message`` says why.
    """

    applied: bool
    message: str
    freed_stake: float = 0.0
    target_per_validator: float | None = None
    targets: dict[str, float] = {}

    @property
    def recipients(self) -> int:
        return len(self.targets)


def plan_rebalance(state: AllocationState) -> RebalanceResult:
    """Compute the redistribution for *state* without modifying it."""
    existing = state.existing
    removed = [r for r in existing if r.is_removed]
    if not removed:
        return RebalanceResult(applied=False, message="No validators marked for removal.")

    freed = sum(r.current_balance for r in removed)
    if freed <= 0:
        return RebalanceResult(
            applied=False,
            message="Validators marked for removal hold no stake; nothing to redistribute.",
        )

    # sorted() is stable, so equal targets keep storage order.
    active = sorted(
        (r for r in existing if not r.is_removed),
        key=lambda r: r.target_balance,
    )
    if not active:
        return RebalanceResult(
            applied=False,
            message="No active validators to distribute to.",
            freed_stake=freed,
        )

    targets = {r.identity: r.target_balance for r in active}
    target_per_validator = (sum(targets.values()) + freed) / len(active)

    # ``remaining`` is charged with what each target actually moved by after
    # rounding, which differs from ``to_add`` when a target is not
    # lamport-aligned.
    remaining = round_to_precision(freed)
    filled: set[str] = set()
    for record in active:
        if remaining <= 0:
            break
        current_target = targets[record.identity]
        deficit = target_per_validator - current_target
        if deficit > 0:
            to_add = round_to_precision(min(deficit, remaining))
            new_target = round_to_precision(current_target + to_add)
            targets[record.identity] = new_target
            filled.add(record.identity)
            remaining -= new_target - current_target

    # Rounding residue only: a few lamports either way, split as evenly as
    # whole lamports allow, lowest targets first.
    residue = to_lamports(remaining)
    if residue:
        sign = 1 if residue > 0 else -1
        share, extra = divmod(abs(residue), len(active))
        for position, record in enumerate(active):
            lamports = share + (1 if position < extra else 0)
            if not lamports:
                continue
            adjusted = targets[record.identity] + sign * lamports / LAMPORTS_PER_SOL
            # Only targets this pass already aligned may be re-rounded.
            if record.identity in filled:
                adjusted = round_to_precision(adjusted)
            targets[record.identity] = adjusted

    changed = {
        r.identity: targets[r.identity]
        for r in active
        if targets[r.identity] != r.target_balance
    }
    return RebalanceResult(
        applied=True,
        message=f"Redistributed {format_sol(freed)} SOL to {len(changed)} of {len(active)} validators.",
        freed_stake=freed,
        target_per_validator=target_per_validator,
        targets=changed,
    )


def rebalance(state: AllocationState) -> RebalanceResult:
    """Compute the redistribution and apply it to *state* in place."""
    result = plan_rebalance(state)
    if result.applied:
        state.apply_targets(result.targets)
        logger.info(result.message)
    else:
        logger.info("Rebalance skipped: %s", result.message)
    return result
