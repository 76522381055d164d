"""Shell script generation for a validated plan.

Two scripts are rendered from Jinja2 templates shipped next to this module:

* ``01_decrease_and_remove.sh``: stake decreases on kept validators, then
  each removal (decrease down to the retained floor, then ``remove-validator``).
* ``02_add_and_increase.sh``: ``add-validator`` for each proposed validator
  followed by its initial stake, then stake increases on kept validators.

Run them in that order: the first script returns stake to the reserve that
the second one spends.  A script with no operations is not written.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Literal

from jinja2 import Environment, FileSystemLoader
from pydantic import BaseModel

from models.plan import Plan
from planner.precision import LAMPORTS_PER_SOL, to_lamports

logger = logging.getLogger(__name__)

DECREASE_SCRIPT = "01_decrease_and_remove.sh"
INCREASE_SCRIPT = "02_add_and_increase.sh"

# ---------------------------------------------------------------------------
# Jinja2 environment: templates live in ./templates
# ---------------------------------------------------------------------------

_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


class ScriptOperation(BaseModel):
    """One validator's step in a generated script; amounts are CLI-ready strings."""

    kind: Literal["decrease", "remove", "add", "increase"]
    vote_account: str
    label: str
    amount: str
    current_balance: str = "0.000000000"
    has_amount: bool = True


def clean_sol(sol: float) -> str:
    """Format *sol* for the stake-pool CLI: lamport-exact, nine decimals, no separators."""
    return f"{to_lamports(sol) / LAMPORTS_PER_SOL:.9f}"


def build_operations(
    plan: Plan,
    names: Mapping[str, str | None],
    retained_stake: float,
) -> tuple[list[ScriptOperation], list[ScriptOperation]]:
    """Split *plan* into (decrease/remove, add/increase) operation lists."""

    def label(vote_account: str) -> str:
        return names.get(vote_account) or "Unknown"

    outgoing: list[ScriptOperation] = []
    for mod in plan.modifications:
        if mod.change < 0:
            outgoing.append(
                ScriptOperation(
                    kind="decrease",
                    vote_account=mod.identity,
                    label=label(mod.identity),
                    amount=clean_sol(-mod.change),
                    current_balance=clean_sol(mod.current_balance),
                )
            )
    for removal in plan.removals:
        decrease = max(0.0, removal.current_balance - retained_stake)
        outgoing.append(
            ScriptOperation(
                kind="remove",
                vote_account=removal.identity,
                label=label(removal.identity),
                amount=clean_sol(decrease),
                current_balance=clean_sol(removal.current_balance),
                has_amount=to_lamports(decrease) > 0,
            )
        )

    incoming: list[ScriptOperation] = [
        ScriptOperation(
            kind="add",
            vote_account=addition.identity,
            label=label(addition.identity),
            amount=clean_sol(addition.target_balance),
            has_amount=to_lamports(addition.target_balance) > 0,
        )
        for addition in plan.additions
    ]
    for mod in plan.modifications:
        if mod.change > 0:
            incoming.append(
                ScriptOperation(
                    kind="increase",
                    vote_account=mod.identity,
                    label=label(mod.identity),
                    amount=clean_sol(mod.change),
                    current_balance=clean_sol(mod.current_balance),
                )
            )
    return outgoing, incoming


def render_script(
    template_name: str,
    filename: str,
    title: str,
    operations: list[ScriptOperation],
    pool: str,
    rpc_url: str,
    generated_at: datetime,
) -> str:
    return _env.get_template(template_name).render(
        title=title,
        filename=filename,
        operations=operations,
        pool=pool,
        rpc_url=rpc_url,
        generated_at=generated_at.isoformat(),
    )


def write_scripts(
    plan: Plan,
    directory: str | Path,
    names: Mapping[str, str | None],
    rpc_url: str,
    retained_stake: float,
) -> list[Path]:
    """Render and write the plan's scripts into *directory*; return the paths written."""
    outgoing, incoming = build_operations(plan, names, retained_stake)
    jobs = [
        (
            "decrease_and_remove.sh.j2",
            DECREASE_SCRIPT,
            "Script 1: Decrease stake and remove validators from pool",
            outgoing,
        ),
        (
            "add_and_increase.sh.j2",
            INCREASE_SCRIPT,
            "Script 2: Add validators and increase stake (spend freed stake)",
            incoming,
        ),
    ]

    directory = Path(directory)
    written: list[Path] = []
    for template_name, filename, title, operations in jobs:
        if not operations:
            logger.info("No operations for %s; skipped.", filename)
            continue
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        path.write_text(
            render_script(
                template_name,
                filename,
                title,
                operations,
                pool=plan.pool,
                rpc_url=rpc_url,
                generated_at=plan.generated_at,
            ),
            encoding="utf-8",
        )
        path.chmod(0o755)
        written.append(path)
        logger.info("Generated %s (%d operation(s)).", path, len(operations))
    return written
