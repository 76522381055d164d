"""Plan exporter: writes the validated plan and its execution scripts.

The output layout is::

    {output_path}                      (desired-state.json)
    {scripts_dir}/                     (rebalance_YYYY-MM-DD/)
    ├── 01_decrease_and_remove.sh
    └── 02_add_and_increase.sh

Nothing is written unless the feasibility validator accepts the state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel

from export.scripts import write_scripts
from models.config import PlannerConfig
from models.plan import Plan
from planner.feasibility import FeasibilityReport, validate
from planner.plan_builder import build_plan
from planner.state import AllocationState

logger = logging.getLogger(__name__)


class ExportResult(BaseModel):
    """Exporter response.

    ``withheld`` means validation failed and nothing was written; the report's
    diagnostic explains why.
    """

    status: Literal["written", "withheld"]
    report: FeasibilityReport
    plan: Plan | None = None
    plan_path: Path | None = None
    script_paths: list[Path] = []


class PlanExporter:
    """Validates an allocation state and persists it as a plan."""

    def __init__(self, config: PlannerConfig) -> None:
        self._config = config

    def export(
        self,
        state: AllocationState,
        generated_at: datetime | None = None,
    ) -> ExportResult:
        """Validate *state* and, if feasible, write the plan file and scripts."""
        report = validate(state, self._config.feasibility)
        if not report.ok:
            logger.warning("Export withheld: %s", report.diagnostic)
            return ExportResult(status="withheld", report=report)

        generated_at = generated_at or datetime.now(timezone.utc)
        plan = build_plan(state, self._config.pool_address, generated_at)

        plan_path = Path(self._config.output_path)
        if plan_path.parent != Path("."):
            plan_path.parent.mkdir(parents=True, exist_ok=True)
        plan_path.write_text(plan.to_json(), encoding="utf-8")
        logger.info(
            "Saved plan to %s: %d removal(s), %d addition(s), %d modification(s).",
            plan_path,
            plan.summary.to_remove,
            plan.summary.to_add,
            plan.summary.to_modify,
        )

        names = {r.identity: r.display_name for r in state.records}
        script_paths = write_scripts(
            plan,
            self.scripts_dir(generated_at),
            names,
            rpc_url=self._config.rpc_url,
            retained_stake=self._config.feasibility.removal_retained_stake,
        )

        return ExportResult(
            status="written",
            report=report,
            plan=plan,
            plan_path=plan_path,
            script_paths=script_paths,
        )

    def scripts_dir(self, generated_at: datetime) -> Path:
        """Expand ``{date}`` in the configured scripts directory."""
        return Path(self._config.scripts_dir.format(date=generated_at.date().isoformat()))
