"""Tests for the fill-lowest-first rebalance."""

from __future__ import annotations

import pytest

from models.validator import ReserveAccount, ValidatorRecord
from planner.rebalance import plan_rebalance, rebalance
from planner.state import AllocationState


def _state(balances: dict[str, float], reserve: float = 0.0) -> AllocationState:
    return AllocationState(
        reserve=ReserveAccount(identity="R", balance=reserve),
        validators=[
            ValidatorRecord(identity=vote, current_balance=bal, target_balance=bal)
            for vote, bal in balances.items()
        ],
    )


def _active_target_sum(state: AllocationState) -> float:
    return sum(r.target_balance for r in state.existing if not r.is_removed)


# =============================================================================
# NO-OP CASES
# =============================================================================


def test_nothing_removed_is_a_noop():
    state = _state({"A": 10.0, "B": 20.0})
    result = rebalance(state)
    assert not result.applied
    assert "No validators marked for removal" in result.message
    assert [r.target_balance for r in state.records] == [10.0, 20.0]


def test_no_active_recipients_is_a_noop():
    state = _state({"A": 10.0, "B": 20.0})
    state.mark_removed("A")
    state.mark_removed("B")
    result = rebalance(state)
    assert not result.applied
    assert "No active validators" in result.message
    assert result.freed_stake == 30.0


def test_removed_validators_without_stake_is_a_noop():
    state = _state({"A": 0.0, "B": 20.0})
    state.mark_removed("A")
    result = rebalance(state)
    assert not result.applied
    assert state.get("B").target_balance == 20.0


def test_proposed_validators_do_not_receive_stake():
    state = _state({"A": 100.0, "B": 50.0})
    state.add_validator("NEW")
    state.mark_removed("A")
    rebalance(state)
    assert state.get("NEW").target_balance == 0
    assert state.get("B").target_balance == 150.0


# =============================================================================
# DISTRIBUTION
# =============================================================================


def test_sole_survivor_receives_everything():
    state = _state({"A": 1000.0, "B": 500.0})
    state.mark_removed(0)
    result = rebalance(state)
    assert result.applied
    assert result.freed_stake == 1000.0
    assert result.recipients == 1
    assert state.get("B").target_balance == 1500.0


def test_fills_lowest_first():
    state = _state({"LOW": 50.0, "MID": 100.0, "HIGH": 100.0, "GONE": 60.0})
    state.set_target("LOW", 0.0)
    state.mark_removed("GONE")

    rebalance(state)

    low_gain = state.get("LOW").target_balance - 0.0
    mid_gain = state.get("MID").target_balance - 100.0
    high_gain = state.get("HIGH").target_balance - 100.0
    assert low_gain >= mid_gain
    assert low_gain >= high_gain
    assert low_gain == pytest.approx(60.0)


def test_levels_toward_equal_share():
    state = _state({"A": 10.0, "B": 20.0, "C": 90.0, "X": 60.0})
    state.mark_removed("X")

    result = plan_rebalance(state)

    # Equal share is (10 + 20 + 90 + 60) / 3 = 60: A reaches it first, B gets the rest.
    assert result.target_per_validator == pytest.approx(60.0)
    assert result.targets == {"A": 60.0, "B": 30.0}
    # Planning alone does not mutate.
    assert state.get("A").target_balance == 10.0


def test_ties_are_filled_in_storage_order():
    state = _state({"A": 10.0, "B": 10.0, "X": 5.0})
    state.mark_removed("X")
    result = plan_rebalance(state)
    assert list(result.targets) == ["A", "B"]
    assert result.targets["A"] == pytest.approx(12.5)
    assert result.targets["B"] == pytest.approx(12.5)


def test_rounding_residue_is_spread():
    state = _state({"A": 0.0, "B": 0.0, "C": 0.0, "X": 1.0})
    state.mark_removed("X")
    rebalance(state)
    targets = [state.get(v).target_balance for v in "ABC"]
    assert sum(targets) == pytest.approx(1.0, abs=1e-9)
    for t in targets:
        assert t == pytest.approx(1 / 3, abs=1e-9)


def test_rebalance_is_deterministic():
    balances = {"A": 3.3, "B": 1.1, "C": 7.7, "D": 2.2, "X": 9.9}
    first = _state(balances)
    second = _state(balances)
    for s in (first, second):
        s.mark_removed("X")
    assert plan_rebalance(first).targets == plan_rebalance(second).targets


# =============================================================================
# CONSERVATION
# =============================================================================


@pytest.mark.parametrize(
    "balances, removed",
    [
        ({"A": 1000.0, "B": 500.0}, ["A"]),
        ({"A": 12.345678912, "B": 0.5, "C": 7.0, "D": 99.999999999}, ["D"]),
        ({"A": 1.0, "B": 2.0, "C": 3.0, "D": 4.0, "E": 5.0}, ["B", "D"]),
        ({"A": 0.1, "B": 0.2, "C": 0.3, "D": 1234.56789}, ["A", "D"]),
    ],
)
def test_no_stake_created_or_lost(balances, removed):
    state = _state(balances)
    for vote in removed:
        state.mark_removed(vote)
    before = _active_target_sum(state)
    removed_stake = sum(balances[v] for v in removed)

    rebalance(state)

    assert _active_target_sum(state) == pytest.approx(before + removed_stake, abs=1e-9)


def test_conservation_with_unaligned_targets():
    # set_target does not round, so targets may carry sub-lamport fractions.
    state = _state({f"V{i}": 10.0 for i in range(8)} | {"X": 80.0})
    for i in range(8):
        state.set_target(f"V{i}", 10.0000000004)
    state.mark_removed("X")
    before = _active_target_sum(state)

    result = rebalance(state)

    assert result.applied
    assert abs(_active_target_sum(state) - (before + 80.0)) <= 1e-9


def test_conservation_with_manual_edits():
    state = _state({"A": 100.0, "B": 200.0, "C": 300.0, "X": 150.0})
    state.set_target("C", 120.0)
    state.add_to_target("A", 5.5)
    state.mark_removed("X")
    before = _active_target_sum(state)

    rebalance(state)

    assert _active_target_sum(state) == pytest.approx(before + 150.0, abs=1e-9)
