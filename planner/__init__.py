"""Allocation planning engine: state, rebalance and feasibility."""

from planner.errors import DuplicateValidator, InvalidIndex, InvalidOperation, PlannerError
from planner.feasibility import FeasibilityFailure, FeasibilityReport, validate
from planner.plan_builder import build_plan
from planner.rebalance import RebalanceResult, plan_rebalance, rebalance
from planner.state import AllocationState, StateTotals

__all__ = [
    # errors
    "DuplicateValidator",
    "InvalidIndex",
    "InvalidOperation",
    "PlannerError",
    # feasibility
    "FeasibilityFailure",
    "FeasibilityReport",
    "validate",
    # plan
    "build_plan",
    # rebalance
    "RebalanceResult",
    "plan_rebalance",
    "rebalance",
    # state
    "AllocationState",
    "StateTotals",
]
