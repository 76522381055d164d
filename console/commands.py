"""Operator command grammar.

Validator numbers are 1-based on the console and converted to the 0-based
command index here.

    n | next                 next page
    p | prev | previous      previous page
    r N                      mark validator N for removal
    u N                      undo removal of validator N
    s N AMOUNT               set target of validator N
    + N AMOUNT               add AMOUNT to the target of validator N
    - N AMOUNT               subtract AMOUNT from the target of validator N
    a VOTE [NAME...]         propose a new validator
    b                        auto-rebalance
    v                        validate
    w                        validate and write the plan
    h | help                 show commands
    q | quit                 quit
"""

from __future__ import annotations

import math
from enum import Enum

from pydantic import BaseModel


class CommandError(ValueError):
    """The input line is not a valid command."""


class CommandKind(str, Enum):
    NEXT_PAGE = "next_page"
    PREV_PAGE = "prev_page"
    REMOVE = "remove"
    UNDO = "undo"
    SET_TARGET = "set_target"
    ADD_TO_TARGET = "add_to_target"
    SUBTRACT_FROM_TARGET = "subtract_from_target"
    ADD_VALIDATOR = "add_validator"
    REBALANCE = "rebalance"
    VALIDATE = "validate"
    WRITE = "write"
    HELP = "help"
    QUIT = "quit"


class Command(BaseModel):
    kind: CommandKind
    index: int | None = None  # 0-based
    amount: float | None = None
    identity: str | None = None
    display_name: str | None = None


_SIMPLE = {
    "n": CommandKind.NEXT_PAGE,
    "next": CommandKind.NEXT_PAGE,
    "p": CommandKind.PREV_PAGE,
    "prev": CommandKind.PREV_PAGE,
    "previous": CommandKind.PREV_PAGE,
    "b": CommandKind.REBALANCE,
    "v": CommandKind.VALIDATE,
    "w": CommandKind.WRITE,
    "h": CommandKind.HELP,
    "help": CommandKind.HELP,
    "?": CommandKind.HELP,
    "q": CommandKind.QUIT,
    "quit": CommandKind.QUIT,
    "exit": CommandKind.QUIT,
}

_INDEXED = {"r": CommandKind.REMOVE, "u": CommandKind.UNDO}

_AMOUNT = {
    "s": CommandKind.SET_TARGET,
    "+": CommandKind.ADD_TO_TARGET,
    "-": CommandKind.SUBTRACT_FROM_TARGET,
}


def parse_command(line: str) -> Command:
    """Parse one console line into a ``Command``.

    Raises ``CommandError`` for empty, unknown or malformed input.
    """
    parts = line.split()
    if not parts:
        raise CommandError("Empty command.")
    cmd, args = parts[0].lower(), parts[1:]

    if cmd in _SIMPLE:
        return Command(kind=_SIMPLE[cmd])

    if cmd in _INDEXED:
        if len(args) != 1:
            raise CommandError(f"Usage: {cmd} #")
        return Command(kind=_INDEXED[cmd], index=_parse_index(args[0]))

    if cmd in _AMOUNT:
        if len(args) != 2:
            raise CommandError(f"Usage: {cmd} # AMOUNT")
        return Command(
            kind=_AMOUNT[cmd],
            index=_parse_index(args[0]),
            amount=_parse_amount(args[1]),
        )

    if cmd == "a":
        if not args:
            raise CommandError("Usage: a VOTE_ACCOUNT [NAME]")
        return Command(
            kind=CommandKind.ADD_VALIDATOR,
            identity=args[0],
            display_name=" ".join(args[1:]) or None,
        )

    raise CommandError(f"Unknown command '{parts[0]}'. Type h for help.")


def _parse_index(token: str) -> int:
    try:
        number = int(token)
    except ValueError as exc:
        raise CommandError(f"Invalid validator number '{token}'.") from exc
    if number < 1:
        raise CommandError(f"Validator numbers start at 1, got {number}.")
    return number - 1


def _parse_amount(token: str) -> float:
    try:
        amount = float(token.replace(",", "").replace("_", ""))
    except ValueError as exc:
        raise CommandError(f"Invalid amount '{token}'.") from exc
    if not math.isfinite(amount):
        raise CommandError(f"Amount must be a finite number, got '{token}'.")
    return amount
