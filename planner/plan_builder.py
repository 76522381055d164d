"""Map a validated allocation state onto the ``Plan`` output contract."""

from __future__ import annotations

from datetime import datetime, timezone

from models.plan import (
    Plan,
    PlanAddition,
    PlanModification,
    PlanRemoval,
    PlanSummary,
    PlanValidator,
)
from planner.state import AllocationState


def build_plan(
    state: AllocationState,
    pool_address: str = "",
    generated_at: datetime | None = None,
) -> Plan:
    """Build the plan document for *state*.

    Does not check feasibility; callers validate first (the exporter does).
    ``modifications`` holds every kept validator whose target differs from
    its current stake.
    """
    existing = state.existing
    removed = [r for r in existing if r.is_removed]
    kept = [r for r in existing if not r.is_removed]
    modified = [r for r in kept if r.target_balance != r.current_balance]
    proposed = state.proposed

    return Plan(
        generated_at=generated_at or datetime.now(timezone.utc),
        pool=pool_address,
        summary=PlanSummary(
            total_validators=len(kept) + len(proposed),
            to_remove=len(removed),
            to_add=len(proposed),
            to_modify=len(modified),
        ),
        removals=[
            PlanRemoval(
                identity=r.identity,
                stake_account_id=r.stake_account,
                current_balance=r.current_balance,
            )
            for r in removed
        ],
        additions=[
            PlanAddition(identity=r.identity, target_balance=r.target_balance)
            for r in proposed
        ],
        modifications=[
            PlanModification(
                identity=r.identity,
                stake_account_id=r.stake_account,
                current_balance=r.current_balance,
                target_balance=r.target_balance,
                change=r.change,
            )
            for r in modified
        ],
        validators=[
            PlanValidator(
                identity=r.identity,
                stake_account_id=r.stake_account,
                current_balance=r.current_balance,
                target_balance=r.target_balance,
            )
            for r in kept
        ],
    )
