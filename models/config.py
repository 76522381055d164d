"""Planner configuration models, loaded from YAML and the environment.

These live in ``models/`` because they are shared by the planner core, the
snapshot collaborators, the exporter and the operator console.  A single
``PlannerConfig`` is built at process start and passed to whatever needs it.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_NAME_API_BASE = "https://rugalert.pumpkinspool.com/api/meta"

# Environment variable -> PlannerConfig field.
_ENV_OVERRIDES = {
    "POOL_ADDRESS": "pool_address",
    "RPC_URL": "rpc_url",
    "SNAPSHOT_URL": "snapshot_url",
}


class FeasibilityConfig(BaseModel):
    """Thresholds used when deciding whether a plan can be funded."""

    model_config = ConfigDict(frozen=True)

    min_stake_per_validator: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum operable stake per active validator, in SOL. "
        "Approximates the stake program's minimum delegation plus rent.",
    )
    tolerance: float = Field(
        default=0.01,
        ge=0.0,
        description="Absolute slack applied to every feasibility comparison, in SOL.",
    )
    removal_retained_stake: float = Field(
        default=1.00228288,
        ge=0.0,
        description="Stake left on a validator's account before it is removed "
        "(minimum delegation + rent exemption).",
    )


class PlannerConfig(BaseModel):
    """Top-level configuration for a planning session."""

    model_config = ConfigDict(frozen=True)

    pool_address: str = Field(min_length=1, description="Stake pool address.")
    rpc_url: str = Field(default=DEFAULT_RPC_URL, description="Cluster RPC endpoint.")
    snapshot_path: str = Field(
        default="data.json",
        description="Cached pool snapshot; used when a fresh fetch fails.",
    )
    snapshot_url: str | None = Field(
        default=None,
        description="Optional HTTP endpoint serving a pool snapshot document; "
        "when unset the snapshot is read from the pool accounts at rpc_url.",
    )
    output_path: str = Field(
        default="desired-state.json",
        description="Where the validated plan is written.",
    )
    scripts_dir: str = Field(
        default="rebalance_{date}",
        description="Directory for generated scripts; '{date}' expands to YYYY-MM-DD.",
    )
    name_api_base: str | None = Field(
        default=DEFAULT_NAME_API_BASE,
        description="Validator metadata service; set to null to skip name lookups.",
    )
    http_timeout_seconds: float = Field(default=10.0, gt=0)
    validators_per_page: int = Field(default=15, ge=1)
    feasibility: FeasibilityConfig = Field(default_factory=FeasibilityConfig)

    @classmethod
    def from_yaml(cls, path: str | Path, **overrides: object) -> PlannerConfig:
        """Load and validate a ``PlannerConfig`` from a YAML file.

        Raises ``FileNotFoundError`` if the file does not exist and
        ``ValueError`` if the content is not a valid YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}

        if not isinstance(raw, dict):
            raise ValueError(
                f"Expected a YAML mapping in {path}, got {type(raw).__name__}."
            )

        raw.update(overrides)
        return cls(**raw)

    @classmethod
    def load(cls, path: str | Path | None = None) -> PlannerConfig:
        """Build the session config from an optional YAML file plus ``.env``.

        Environment variables (``POOL_ADDRESS``, ``RPC_URL``, ``SNAPSHOT_URL``)
        take precedence over the file.  Raises ``ValueError`` when no pool
        address is available from either source.
        """
        load_dotenv(find_dotenv(usecwd=True))  # auto-load .env from the working directory
        overrides = {
            field: os.environ[var]
            for var, field in _ENV_OVERRIDES.items()
            if os.environ.get(var)
        }

        if path is not None:
            return cls.from_yaml(path, **overrides)

        if "pool_address" not in overrides:
            raise ValueError(
                "POOL_ADDRESS environment variable is not set. Add POOL_ADDRESS to "
                "your .env file or pass --config with a pool_address entry."
            )
        return cls(**overrides)
