"""Feasibility check that gates plan export.

A plan is fundable when the stake it must newly source (increases on kept
validators plus every proposed validator's target) fits within the reserve
plus whatever is being removed or pulled back elsewhere.  It must also keep
the active set above its operability floor, and no target may be negative.

An infeasible plan is a normal outcome: ``validate`` returns a report with
``ok=False`` and a diagnostic naming each failed rule and its shortfall.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel

from models.config import FeasibilityConfig
from planner.precision import format_sol
from planner.state import AllocationState

logger = logging.getLogger(__name__)

FeasibilityRule = Literal["non_negative_targets", "funding", "minimum_stake"]


class FeasibilityFailure(BaseModel):
    """One violated rule and the amount (SOL) by which it is violated."""

    rule: FeasibilityRule
    shortfall: float
    message: str


class FeasibilityReport(BaseModel):
    """Result of ``validate``, with every quantity used in the decision."""

    ok: bool
    diagnostic: str
    failures: list[FeasibilityFailure] = []

    total_current: float
    total_target: float
    removed_stake: float
    decreased_stake: float
    increased_stake: float
    available_reserve: float
    minimum_required: float


def validate(
    state: AllocationState,
    config: FeasibilityConfig | None = None,
) -> FeasibilityReport:
    """Decide whether *state* can be funded and keeps every floor."""
    config = config or FeasibilityConfig()
    tolerance = config.tolerance

    existing = state.existing
    kept = [r for r in existing if not r.is_removed]
    proposed = state.proposed

    total_current = sum(r.current_balance for r in existing)
    total_target = sum(r.target_balance for r in kept) + sum(r.target_balance for r in proposed)
    removed_stake = sum(r.current_balance for r in existing if r.is_removed)
    decreased_stake = sum(max(0.0, r.current_balance - r.target_balance) for r in kept)
    increased_stake = sum(max(0.0, r.target_balance - r.current_balance) for r in kept) + sum(
        r.target_balance for r in proposed
    )
    available_reserve = state.reserve.balance + removed_stake + decreased_stake
    minimum_required = (len(kept) + len(proposed)) * config.min_stake_per_validator

    failures: list[FeasibilityFailure] = []

    negative = [r for r in state.records if r.target_balance < 0]
    if negative:
        failures.append(
            FeasibilityFailure(
                rule="non_negative_targets",
                shortfall=-sum(r.target_balance for r in negative),
                message=(
                    f"{len(negative)} validator(s) have a negative target: "
                    f"{', '.join(r.identity for r in negative)}."
                ),
            )
        )

    if increased_stake > available_reserve + tolerance:
        shortfall = increased_stake - available_reserve
        failures.append(
            FeasibilityFailure(
                rule="funding",
                shortfall=shortfall,
                message=(
                    f"Increases need {format_sol(increased_stake)} SOL but only "
                    f"{format_sol(available_reserve)} SOL is available "
                    f"(short by {format_sol(shortfall)} SOL)."
                ),
            )
        )

    if total_target < minimum_required - tolerance:
        shortfall = minimum_required - total_target
        failures.append(
            FeasibilityFailure(
                rule="minimum_stake",
                shortfall=shortfall,
                message=(
                    f"Total target {format_sol(total_target)} SOL is below the minimum "
                    f"{format_sol(minimum_required)} SOL for {len(kept) + len(proposed)} "
                    f"active validator(s) (short by {format_sol(shortfall)} SOL)."
                ),
            )
        )

    if failures:
        diagnostic = "Validation failed: " + " ".join(f.message for f in failures)
        logger.info("Plan rejected: %s", "; ".join(f.rule for f in failures))
    else:
        diagnostic = (
            f"Validation passed: increases of {format_sol(increased_stake)} SOL are covered "
            f"by {format_sol(available_reserve)} SOL available."
        )
        logger.info("Plan feasible.")

    return FeasibilityReport(
        ok=not failures,
        diagnostic=diagnostic,
        failures=failures,
        total_current=total_current,
        total_target=total_target,
        removed_stake=removed_stake,
        decreased_stake=decreased_stake,
        increased_stake=increased_stake,
        available_reserve=available_reserve,
        minimum_required=minimum_required,
    )
