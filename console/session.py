"""Interactive operator session: the command loop around one allocation state.

Each input line is parsed and applied to the state.  Planner and parse
errors, and failures to write the plan, are reported as messages; the state
is left as it was and the loop continues.  Only ``q`` (or end of input) ends
the session; unsaved edits are discarded.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from console.commands import Command, CommandError, CommandKind, parse_command
from console.render import page_count, render_menu, render_screen
from export.exporter import PlanExporter
from models.config import PlannerConfig
from planner.errors import PlannerError
from planner.feasibility import validate
from planner.precision import format_sol
from planner.rebalance import rebalance
from planner.state import AllocationState

logger = logging.getLogger(__name__)


class PlannerSession:
    """Drives one operator session against an ``AllocationState``."""

    def __init__(
        self,
        state: AllocationState,
        config: PlannerConfig,
        exporter: PlanExporter | None = None,
        output: Callable[[str], None] = print,
    ) -> None:
        self.state = state
        self._config = config
        self._exporter = exporter or PlanExporter(config)
        self._output = output
        self.page = 1
        self.finished = False

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def run(self, read_line: Callable[[str], str] = input) -> None:
        """Render, read and execute commands until quit or end of input."""
        while not self.finished:
            self._output(self.screen())
            try:
                line = read_line("  > ")
            except (EOFError, KeyboardInterrupt):
                self._output("")
                break
            if not line.strip():
                continue
            message = self.handle(line)
            if message:
                self._output(message)
        self._output("  Goodbye!")

    def handle(self, line: str) -> str:
        """Parse and execute one line, returning the message to show."""
        try:
            command = parse_command(line)
            return self.execute(command)
        except (CommandError, PlannerError) as exc:
            logger.debug("Command '%s' rejected: %s", line.strip(), exc)
            return f"  Error: {exc}"

    def execute(self, command: Command) -> str:
        kind = command.kind
        if kind is CommandKind.QUIT:
            self.finished = True
            return ""
        if kind is CommandKind.HELP:
            return render_menu(self._config.output_path)
        if kind is CommandKind.NEXT_PAGE:
            self.page = min(self.page + 1, self._pages())
            return ""
        if kind is CommandKind.PREV_PAGE:
            self.page = max(1, self.page - 1)
            return ""

        if kind is CommandKind.REMOVE:
            record = self.state.mark_removed(command.index)
            self._normalize_page()
            return f"  Marked {record.identity} for removal."
        if kind is CommandKind.UNDO:
            record = self.state.undo_removed(command.index)
            return f"  Restored {record.identity} (target {format_sol(record.target_balance)} SOL)."
        if kind is CommandKind.SET_TARGET:
            record = self.state.set_target(command.index, command.amount)
        elif kind is CommandKind.ADD_TO_TARGET:
            record = self.state.add_to_target(command.index, command.amount)
        elif kind is CommandKind.SUBTRACT_FROM_TARGET:
            record = self.state.subtract_from_target(command.index, command.amount)
        else:
            return self._execute_plan_command(command)
        return f"  Target of {record.identity} is now {format_sol(record.target_balance)} SOL."

    def screen(self) -> str:
        return render_screen(
            self.state,
            self.page,
            self._config.validators_per_page,
            self._config.output_path,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute_plan_command(self, command: Command) -> str:
        kind = command.kind
        if kind is CommandKind.ADD_VALIDATOR:
            record = self.state.add_validator(command.identity, command.display_name)
            self._normalize_page()
            number = self.state.index_of(record.identity) + 1
            return f"  Added new validator #{number}. Set stake with: s {number} AMOUNT"

        if kind is CommandKind.REBALANCE:
            return f"  {rebalance(self.state).message}"

        if kind is CommandKind.VALIDATE:
            report = validate(self.state, self._config.feasibility)
            return f"  {'OK' if report.ok else 'FAILED'}: {report.diagnostic}"

        if kind is CommandKind.WRITE:
            try:
                result = self._exporter.export(self.state)
            except OSError as exc:
                logger.error("Failed to write plan: %s", exc)
                return f"  Not saved. Could not write output: {exc}"
            if result.status == "withheld":
                return f"  Not saved. {result.report.diagnostic}"
            lines = [f"  Saved to {result.plan_path}"]
            lines += [f"  Generated {path}" for path in result.script_paths]
            if not result.script_paths:
                lines.append("  No operations needed; no scripts generated.")
            return "\n".join(lines)

        raise CommandError(f"Unsupported command {kind.value}.")

    def _pages(self) -> int:
        return page_count(self.state, self._config.validators_per_page)

    def _normalize_page(self) -> None:
        self.page = min(self.page, self._pages())
