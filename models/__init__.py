"""Data models for the stake pool rebalance planner.

The planner core, the snapshot collaborators, the exporter and the console
all import from models.
"""

from models.config import FeasibilityConfig, PlannerConfig
from models.plan import Plan, PlanAddition, PlanModification, PlanRemoval, PlanSummary, PlanValidator
from models.snapshot import PoolSnapshot, SnapshotValidator
from models.validator import LifecycleAction, ReserveAccount, ValidatorRecord

__all__ = [
    # config
    "FeasibilityConfig",
    "PlannerConfig",
    # plan
    "Plan",
    "PlanAddition",
    "PlanModification",
    "PlanRemoval",
    "PlanSummary",
    "PlanValidator",
    # snapshot
    "PoolSnapshot",
    "SnapshotValidator",
    # validator
    "LifecycleAction",
    "ReserveAccount",
    "ValidatorRecord",
]
