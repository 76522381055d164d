"""Tests for snapshot providers, name resolution and the session-start refresh."""

from __future__ import annotations

import json
import struct
from types import SimpleNamespace

import httpx
import pytest
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey

from chain.names import ValidatorNameResolver
from chain.provider import FileSnapshotProvider, HttpSnapshotProvider, SnapshotUnavailable
from chain.refresh import provider_for, refresh_snapshot
from chain.rpc import (
    RpcSnapshotProvider,
    decode_validator_list,
    stake_account_address,
    transient_stake_account_address,
)
from models.config import PlannerConfig
from models.snapshot import PoolSnapshot

SNAPSHOT = {
    "reserveAccount": "Reserve1111",
    "reserveBalance": 12.5,
    "validators": [
        {
            "voteAccount": "VoteA",
            "name": None,
            "stakeAccount": "StakeA",
            "activeBalance": 1000.0,
            "transientStakeAccount": "TransientA",
            "transientBalance": 0.0,
        },
        {
            "voteAccount": "VoteB",
            "name": "Bravo",
            "stakeAccount": "StakeB",
            "activeBalance": 500.0,
            "transientStakeAccount": "TransientB",
            "transientBalance": 2.0,
        },
    ],
}


def _names_transport(names: dict[str, str], fail: set[str] = frozenset()) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        vote = request.url.path.rsplit("/", 1)[-1]
        if vote in fail:
            raise httpx.ConnectError("boom", request=request)
        if vote not in names:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json={"meta": {"name": names[vote]}})

    return httpx.MockTransport(handler)


# =============================================================================
# PROVIDERS
# =============================================================================


class TestFileProvider:
    def test_reads_snapshot(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
        snapshot = FileSnapshotProvider(path).fetch()
        assert snapshot.reserve_balance == 12.5
        assert [v.vote_account for v in snapshot.validators] == ["VoteA", "VoteB"]
        assert snapshot.validators[1].transient_balance == 2.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(SnapshotUnavailable):
            FileSnapshotProvider(tmp_path / "absent.json").fetch()

    def test_negative_balance_rejected(self, tmp_path):
        bad = json.loads(json.dumps(SNAPSHOT))
        bad["validators"][0]["activeBalance"] = -1
        path = tmp_path / "data.json"
        path.write_text(json.dumps(bad), encoding="utf-8")
        with pytest.raises(SnapshotUnavailable):
            FileSnapshotProvider(path).fetch()


class TestHttpProvider:
    def test_fetches_snapshot(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=SNAPSHOT))
        snapshot = HttpSnapshotProvider("https://pool.example/snapshot", transport=transport).fetch()
        assert snapshot.reserve_account == "Reserve1111"
        assert len(snapshot.validators) == 2

    def test_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        with pytest.raises(SnapshotUnavailable, match="HTTP 503"):
            HttpSnapshotProvider("https://pool.example/snapshot", transport=transport).fetch()

    def test_invalid_payload(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"validators": []})
        )
        with pytest.raises(SnapshotUnavailable):
            HttpSnapshotProvider("https://pool.example/snapshot", transport=transport).fetch()


# =============================================================================
# NAME RESOLUTION
# =============================================================================


def test_resolves_names_and_degrades_to_none():
    resolver = ValidatorNameResolver(
        "https://meta.example/api/meta/",
        transport=_names_transport({"VoteA": "Alpha "}, fail={"VoteC"}),
    )
    names = resolver.resolve_names(["VoteA", "VoteB", "VoteC"])
    assert names == {"VoteA": "Alpha", "VoteB": None, "VoteC": None}


def test_no_lookups_for_empty_input():
    resolver = ValidatorNameResolver("https://meta.example", transport=_names_transport({}))
    assert resolver.resolve_names([]) == {}


# =============================================================================
# REFRESH
# =============================================================================


class _FailingProvider:
    def fetch(self) -> PoolSnapshot:
        raise SnapshotUnavailable("rpc down")


class _StaticProvider:
    def __init__(self, payload: dict) -> None:
        self._payload = payload

    def fetch(self) -> PoolSnapshot:
        return PoolSnapshot.model_validate(self._payload)


class TestRefresh:
    def test_fresh_snapshot_is_named_and_cached(self, tmp_path):
        cache = tmp_path / "data.json"
        resolver = ValidatorNameResolver(
            "https://meta.example", transport=_names_transport({"VoteA": "Alpha"})
        )

        snapshot = refresh_snapshot(_StaticProvider(SNAPSHOT), cache, resolver)

        assert [v.name for v in snapshot.validators] == ["Alpha", "Bravo"]
        cached = json.loads(cache.read_text(encoding="utf-8"))
        assert cached["reserveAccount"] == "Reserve1111"
        assert cached["validators"][0]["voteAccount"] == "VoteA"
        assert cached["validators"][0]["name"] == "Alpha"

    def test_falls_back_to_cache(self, tmp_path):
        cache = tmp_path / "data.json"
        cache.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
        snapshot = refresh_snapshot(_FailingProvider(), cache)
        assert snapshot.reserve_balance == 12.5

    def test_no_provider_and_no_cache_aborts(self, tmp_path):
        with pytest.raises(SnapshotUnavailable):
            refresh_snapshot(_FailingProvider(), tmp_path / "missing.json")

    def test_offline_uses_cache(self, tmp_path):
        cache = tmp_path / "data.json"
        cache.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
        snapshot = refresh_snapshot(None, cache)
        assert len(snapshot.validators) == 2

    def test_names_resolved_for_cache_are_written_back(self, tmp_path):
        cache = tmp_path / "data.json"
        cache.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
        resolver = ValidatorNameResolver(
            "https://meta.example", transport=_names_transport({"VoteA": "Alpha"})
        )

        refresh_snapshot(None, cache, resolver)

        cached = json.loads(cache.read_text(encoding="utf-8"))
        assert [v["name"] for v in cached["validators"]] == ["Alpha", "Bravo"]

    def test_cache_untouched_when_no_names_resolved(self, tmp_path):
        cache = tmp_path / "data.json"
        raw = json.dumps(SNAPSHOT)
        cache.write_text(raw, encoding="utf-8")
        resolver = ValidatorNameResolver("https://meta.example", transport=_names_transport({}))

        refresh_snapshot(_FailingProvider(), cache, resolver)

        assert cache.read_text(encoding="utf-8") == raw


def test_unusable_vote_account_degrades_to_none():
    resolver = ValidatorNameResolver("https://meta.example", transport=_names_transport({}))
    assert resolver.resolve_names(["Vote\x00A"]) == {"Vote\x00A": None}


# =============================================================================
# ON-CHAIN PROVIDER
# =============================================================================

POOL = Pubkey.new_unique()
VALIDATOR_LIST = Pubkey.new_unique()
RESERVE = Pubkey.new_unique()
VOTE_A = Pubkey.new_unique()
VOTE_B = Pubkey.new_unique()
VOTE_IDLE = Pubkey.new_unique()


def _pool_account() -> bytes:
    header = bytes([1]) + bytes(32) * 3 + bytes([255])
    return header + bytes(VALIDATOR_LIST) + bytes(RESERVE) + bytes(300)


def _validator_list_account(entries: list[tuple[Pubkey, int, int, int, int]]) -> bytes:
    data = struct.pack("<BII", 2, 8, len(entries))
    for vote, active, transient, transient_seed, validator_seed in entries:
        data += struct.pack(
            "<QQQQIIB32s", active, transient, 600, transient_seed, 0, validator_seed, 0, bytes(vote)
        )
    # Unused capacity after the declared entries.
    return data + bytes(73 * 2)


class _FakeRpcClient:
    def __init__(self, accounts: dict, balances: dict, error: Exception | None = None) -> None:
        self._accounts = accounts
        self._balances = balances
        self._error = error

    def get_account_info(self, pubkey):
        if self._error is not None:
            raise self._error
        data = self._accounts.get(pubkey)
        return SimpleNamespace(value=None if data is None else SimpleNamespace(data=data))

    def get_balance(self, pubkey):
        return SimpleNamespace(value=self._balances.get(pubkey, 0))


def _rpc_provider(**client_kwargs) -> RpcSnapshotProvider:
    accounts = {
        POOL: _pool_account(),
        VALIDATOR_LIST: _validator_list_account(
            [
                (VOTE_A, 1_000_000_000_000, 0, 0, 0),
                (VOTE_IDLE, 0, 0, 0, 0),
                (VOTE_B, 500_000_000_000, 2_500_000_000, 7, 3),
            ]
        ),
    }
    client = _FakeRpcClient(accounts, {RESERVE: 12_500_000_000}, **client_kwargs)
    return RpcSnapshotProvider("https://rpc.example", str(POOL), client=client)


class TestRpcProvider:
    def test_decodes_pool_accounts(self):
        snapshot = _rpc_provider().fetch()

        assert snapshot.reserve_account == str(RESERVE)
        assert snapshot.reserve_balance == 12.5
        assert [v.vote_account for v in snapshot.validators] == [str(VOTE_A), str(VOTE_B)]
        alpha, bravo = snapshot.validators
        assert alpha.active_balance == 1000.0
        assert alpha.name is None
        assert bravo.transient_balance == 2.5

    def test_derives_stake_addresses(self):
        alpha, bravo = _rpc_provider().fetch().validators

        assert alpha.stake_account == str(stake_account_address(VOTE_A, POOL))
        assert bravo.stake_account == str(stake_account_address(VOTE_B, POOL, 3))
        assert bravo.stake_account != str(stake_account_address(VOTE_B, POOL))
        assert bravo.transient_stake_account == str(
            transient_stake_account_address(VOTE_B, POOL, 7)
        )
        assert alpha.transient_stake_account != bravo.transient_stake_account

    def test_rpc_failure_is_unavailable(self):
        provider = _rpc_provider(error=RPCException("node is behind"))
        with pytest.raises(SnapshotUnavailable, match="RPC request"):
            provider.fetch()

    def test_missing_pool_account(self):
        client = _FakeRpcClient({}, {})
        provider = RpcSnapshotProvider("https://rpc.example", str(POOL), client=client)
        with pytest.raises(SnapshotUnavailable, match="not found"):
            provider.fetch()

    def test_invalid_pool_address(self):
        provider = RpcSnapshotProvider(
            "https://rpc.example", "not-a-key", client=_FakeRpcClient({}, {})
        )
        with pytest.raises(SnapshotUnavailable, match="Invalid pool address"):
            provider.fetch()

    def test_truncated_validator_list(self):
        data = struct.pack("<BII", 2, 8, 5) + bytes(73)
        with pytest.raises(ValueError, match="declares 5 entries"):
            decode_validator_list(data)

    def test_rpc_is_default_source(self):
        config = PlannerConfig(pool_address=str(POOL))
        assert isinstance(provider_for(config), RpcSnapshotProvider)

    def test_snapshot_url_takes_precedence(self):
        config = PlannerConfig(pool_address=str(POOL), snapshot_url="https://pool.example/s")
        assert isinstance(provider_for(config), HttpSnapshotProvider)
