"""Plan models: the validated redistribution handed to execution tooling."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _PlanModel(BaseModel):
    """Plan documents are written with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlanSummary(_PlanModel):
    total_validators: int  # Non-removed existing + proposed
    to_remove: int
    to_add: int
    to_modify: int


class PlanRemoval(_PlanModel):
    identity: str
    stake_account_id: str
    current_balance: float


class PlanAddition(_PlanModel):
    identity: str
    target_balance: float


class PlanModification(_PlanModel):
    """Existing validator whose target differs from its current stake.

    Positive ``change`` means stake must be added, negative means stake is
    pulled back.
    """

    identity: str
    stake_account_id: str
    current_balance: float
    target_balance: float
    change: float


class PlanValidator(_PlanModel):
    identity: str
    stake_account_id: str
    current_balance: float
    target_balance: float


class Plan(_PlanModel):
    """Finalized plan: removals, additions, modifications and the kept set."""

    generated_at: datetime
    pool: str = ""
    summary: PlanSummary
    removals: list[PlanRemoval] = []
    additions: list[PlanAddition] = []
    modifications: list[PlanModification] = []
    validators: list[PlanValidator] = []

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
