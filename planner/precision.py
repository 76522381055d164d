"""Lamport-precision helpers.

Balances are handled as SOL floats; every target edit is snapped to nine
decimal places so repeated adjustments cannot accumulate float drift.
"""

LAMPORTS_PER_SOL = 1_000_000_000


def round_to_precision(sol: float) -> float:
    """Round *sol* to lamport precision (9 decimal places)."""
    return round(sol * LAMPORTS_PER_SOL) / LAMPORTS_PER_SOL


def to_lamports(sol: float) -> int:
    return round(sol * LAMPORTS_PER_SOL)


def format_sol(sol: float) -> str:
    """Format *sol* with thousands separators and exactly nine decimals."""
    return f"{round_to_precision(sol):,.9f}"
