"""Pool snapshot models: the on-disk / over-the-wire shape of pool state.

Snapshots use the camelCase keys produced by the pool data dumper
(``voteAccount``, ``activeBalance``, ...).  Attributes are snake_case and
either spelling is accepted on input.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class SnapshotValidator(BaseModel):
    """One validator entry in a pool snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    vote_account: str = Field(alias="voteAccount", min_length=1)
    name: str | None = None
    stake_account: str = Field(default="", alias="stakeAccount")
    active_balance: float = Field(alias="activeBalance", ge=0)
    transient_stake_account: str = Field(default="", alias="transientStakeAccount")
    transient_balance: float = Field(default=0.0, alias="transientBalance", ge=0)


class PoolSnapshot(BaseModel):
    """Reserve and validator balances captured at session start."""

    model_config = ConfigDict(populate_by_name=True)

    reserve_account: str = Field(
        validation_alias=AliasChoices("reserveAccount", "reserveAccountId", "reserve_account"),
        serialization_alias="reserveAccount",
    )
    reserve_balance: float = Field(alias="reserveBalance", ge=0)
    validators: list[SnapshotValidator] = []

    @model_validator(mode="after")
    def _unique_vote_accounts(self) -> PoolSnapshot:
        seen: set[str] = set()
        duplicates: set[str] = set()
        for entry in self.validators:
            if entry.vote_account in seen:
                duplicates.add(entry.vote_account)
            seen.add(entry.vote_account)
        if duplicates:
            raise ValueError(
                f"Duplicate vote account(s) in snapshot: {', '.join(sorted(duplicates))}."
            )
        return self

    @classmethod
    def from_json(cls, path: str | Path) -> PoolSnapshot:
        """Load and validate a snapshot from a JSON file.

        Raises ``FileNotFoundError`` if the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {path}")
        return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))

    def to_json(self, path: str | Path) -> None:
        """Write the snapshot as pretty-printed camelCase JSON."""
        Path(path).write_text(
            json.dumps(self.model_dump(by_alias=True), indent=2),
            encoding="utf-8",
        )
