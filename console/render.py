"""Plain-text rendering of the allocation state for the operator console."""

from __future__ import annotations

import math

from planner.precision import format_sol
from planner.state import AllocationState

RULE = "=" * 104
THIN_RULE = "-" * 104


def short_address(address: str) -> str:
    if len(address) <= 15:
        return address
    return f"{address[:8]}...{address[-4:]}"


def short_name(name: str | None, max_len: int = 20) -> str:
    if not name:
        return "Unknown".ljust(max_len)
    if len(name) <= max_len:
        return name.ljust(max_len)
    return name[: max_len - 2] + ".."


def page_count(state: AllocationState, per_page: int) -> int:
    return max(1, math.ceil(len(state) / per_page))


def render_header(state: AllocationState) -> str:
    totals = state.totals()
    lines = [
        RULE,
        "Stake Pool Rebalance Planner".center(104),
        RULE,
        "",
        f"  Reserve Balance:   {format_sol(totals.reserve_balance)} SOL  "
        f"({short_address(state.reserve.identity)})",
    ]
    if totals.removed_stake > 0:
        for record in state.removed:
            lines.append(
                f"  + {short_name(record.display_name, 16)}  {format_sol(record.current_balance)} SOL"
            )
        lines.append(f"  = After Removals:  {format_sol(totals.projected_reserve)} SOL")
    lines += [
        "",
        f"  Staked Total:      {format_sol(totals.total_current)} SOL",
        f"  Target Staked:     {format_sol(totals.total_target)} SOL",
        f"  Pool Total:        {format_sol(totals.pool_total)} SOL",
        "",
        f"  Validators:        {totals.active_count} active, {totals.removed_count} to remove",
        "",
    ]
    return "\n".join(lines)


def render_table(state: AllocationState, page: int, per_page: int) -> str:
    """Render one page of validators, lowest target first.

    The ``#`` column is the stable 1-based command number, not the row position.
    """
    rows = state.display_order()
    pages = page_count(state, per_page)
    page = min(max(1, page), pages)
    start = (page - 1) * per_page

    lines = [
        "  #    Name                  Vote Account      "
        "           Current              Target   Action",
        "  " + THIN_RULE[2:],
    ]
    for index, record in rows[start : start + per_page]:
        diff = ""
        if record.change != 0:
            sign = "+" if record.change >= 0 else ""
            diff = f" ({sign}{format_sol(record.change)})"
        lines.append(
            f"  {index + 1:>3}  {short_name(record.display_name)}  "
            f"{short_address(record.identity):<15}  "
            f"{format_sol(record.current_balance):>18}  "
            f"{format_sol(record.target_balance):>18}   "
            f"{record.status_label}{diff}"
        )
    lines += ["", f"  Page {page}/{pages} ({len(rows)} validators)"]
    return "\n".join(lines)


def render_menu(output_path: str) -> str:
    return "\n".join(
        [
            "",
            "  Commands:",
            "  [n/p]       Next/Previous page",
            "  [r #]       Remove validator by number (e.g., r 5)",
            "  [u #]       Undo remove (e.g., u 5)",
            "  [s # AMT]   Set target stake (e.g., s 5 8000)",
            "  [+/- # AMT] Adjust target stake (e.g., + 5 100)",
            "  [a VOTE]    Add new validator (optional name after the address)",
            "  [b]         Auto-rebalance (redistribute from removed to lowest)",
            "  [v]         Validate plan",
            f"  [w]         Write/Save to {output_path}",
            "  [q]         Quit",
            "",
        ]
    )


def render_screen(state: AllocationState, page: int, per_page: int, output_path: str) -> str:
    return "\n".join(
        [render_header(state), render_table(state, page, per_page), render_menu(output_path)]
    )
