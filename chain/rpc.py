"""On-chain snapshot provider: reads the stake pool straight from a cluster RPC node.

Fetch sequence:
    1. ``getAccountInfo`` on the pool account; its header names the
       validator list account and the reserve stake account.
    2. ``getBalance`` on the reserve stake account.
    3. ``getAccountInfo`` on the validator list, decoded entry by entry.

Validators with neither active nor transient stake are skipped.  Stake and
transient stake account addresses are derived from the vote account and the
pool address; they are not stored in the validator list.
"""

from __future__ import annotations

import logging
import struct

import httpx
from pydantic import BaseModel
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey

from chain.provider import SnapshotUnavailable
from models.snapshot import PoolSnapshot, SnapshotValidator
from planner.precision import LAMPORTS_PER_SOL

logger = logging.getLogger(__name__)

STAKE_POOL_PROGRAM_ID = Pubkey.from_string("SPoo1Ku8WFXoNDMHPsrGSTSG1Y47rzgn41SLUNakuHy")

# Account type tags written as the first byte of program-owned accounts.
ACCOUNT_TYPE_STAKE_POOL = 1
ACCOUNT_TYPE_VALIDATOR_LIST = 2

# Pool header: account type, manager, staker, deposit authority, withdraw bump seed.
_POOL_VALIDATOR_LIST_OFFSET = 1 + 32 + 32 + 32 + 1
_POOL_RESERVE_STAKE_OFFSET = _POOL_VALIDATOR_LIST_OFFSET + 32

# Validator list header: account type, max validators, then the entry count.
_VALIDATOR_LIST_HEADER = struct.Struct("<BII")
# active, transient, last update epoch, transient seed suffix,
# unused, validator seed suffix, status, vote account.
_VALIDATOR_STAKE_INFO = struct.Struct("<QQQQIIB32s")


class ValidatorStakeInfo(BaseModel):
    """One decoded validator list entry."""

    vote_account: str
    active_stake_lamports: int
    transient_stake_lamports: int
    transient_seed_suffix: int = 0
    validator_seed_suffix: int = 0
    status: int = 0

    @property
    def has_stake(self) -> bool:
        return self.active_stake_lamports > 0 or self.transient_stake_lamports > 0


# ---------------------------------------------------------------------------
# Layout decoding
# ---------------------------------------------------------------------------


def decode_pool_header(data: bytes) -> tuple[Pubkey, Pubkey]:
    """Return ``(validator_list, reserve_stake)`` from raw pool account data."""
    end = _POOL_RESERVE_STAKE_OFFSET + 32
    if len(data) < end:
        raise ValueError(f"Stake pool account is too short ({len(data)} bytes).")
    if data[0] != ACCOUNT_TYPE_STAKE_POOL:
        raise ValueError(f"Account is not a stake pool (account type {data[0]}).")
    validator_list = Pubkey.from_bytes(
        data[_POOL_VALIDATOR_LIST_OFFSET:_POOL_RESERVE_STAKE_OFFSET]
    )
    reserve_stake = Pubkey.from_bytes(data[_POOL_RESERVE_STAKE_OFFSET:end])
    return validator_list, reserve_stake


def decode_validator_list(data: bytes) -> list[ValidatorStakeInfo]:
    """Decode every entry of a raw validator list account."""
    if len(data) < _VALIDATOR_LIST_HEADER.size:
        raise ValueError(f"Validator list account is too short ({len(data)} bytes).")
    account_type, _max_validators, count = _VALIDATOR_LIST_HEADER.unpack_from(data)
    if account_type != ACCOUNT_TYPE_VALIDATOR_LIST:
        raise ValueError(f"Account is not a validator list (account type {account_type}).")

    needed = _VALIDATOR_LIST_HEADER.size + count * _VALIDATOR_STAKE_INFO.size
    if len(data) < needed:
        raise ValueError(
            f"Validator list declares {count} entries but holds only {len(data)} bytes."
        )

    entries = []
    for offset in range(_VALIDATOR_LIST_HEADER.size, needed, _VALIDATOR_STAKE_INFO.size):
        (
            active,
            transient,
            _last_update_epoch,
            transient_seed,
            _unused,
            validator_seed,
            status,
            vote,
        ) = _VALIDATOR_STAKE_INFO.unpack_from(data, offset)
        entries.append(
            ValidatorStakeInfo(
                vote_account=str(Pubkey.from_bytes(vote)),
                active_stake_lamports=active,
                transient_stake_lamports=transient,
                transient_seed_suffix=transient_seed,
                validator_seed_suffix=validator_seed,
                status=status,
            )
        )
    return entries


# ---------------------------------------------------------------------------
# Address derivation
# ---------------------------------------------------------------------------


def stake_account_address(vote_account: Pubkey, pool: Pubkey, seed_suffix: int = 0) -> Pubkey:
    """Program address of a validator's pool stake account."""
    seeds = [bytes(vote_account), bytes(pool)]
    if seed_suffix:
        seeds.append(struct.pack("<I", seed_suffix))
    address, _bump = Pubkey.find_program_address(seeds, STAKE_POOL_PROGRAM_ID)
    return address


def transient_stake_account_address(vote_account: Pubkey, pool: Pubkey, seed: int) -> Pubkey:
    """Program address of a validator's transient stake account."""
    seeds = [b"transient", bytes(vote_account), bytes(pool), struct.pack("<Q", seed)]
    address, _bump = Pubkey.find_program_address(seeds, STAKE_POOL_PROGRAM_ID)
    return address


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class RpcSnapshotProvider:
    """Builds a ``PoolSnapshot`` from the pool's on-chain accounts.

    Names are left empty; the session-start refresh fills them in.
    """

    def __init__(
        self,
        rpc_url: str,
        pool_address: str,
        timeout: float = 10.0,
        client: Client | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._pool_address = pool_address
        self._client = client or Client(rpc_url, timeout=timeout)

    def fetch(self) -> PoolSnapshot:
        try:
            pool = Pubkey.from_string(self._pool_address)
        except ValueError as exc:
            raise SnapshotUnavailable(f"Invalid pool address '{self._pool_address}'.") from exc

        logger.info("Fetching stake pool %s from %s", pool, self._rpc_url)
        try:
            validator_list, reserve = decode_pool_header(self._account_data(pool))
            reserve_lamports = self._client.get_balance(reserve).value
            entries = decode_validator_list(self._account_data(validator_list))
        except (SolanaRpcException, RPCException, httpx.HTTPError) as exc:
            raise SnapshotUnavailable(f"RPC request to {self._rpc_url} failed: {exc}") from exc
        except ValueError as exc:
            raise SnapshotUnavailable(f"Cannot decode pool accounts: {exc}") from exc

        logger.info(
            "Decoded validator list %s: %d entries.", validator_list, len(entries)
        )

        validators = []
        for entry in entries:
            if not entry.has_stake:
                continue
            vote = Pubkey.from_string(entry.vote_account)
            validators.append(
                SnapshotValidator(
                    vote_account=entry.vote_account,
                    stake_account=str(
                        stake_account_address(vote, pool, entry.validator_seed_suffix)
                    ),
                    active_balance=entry.active_stake_lamports / LAMPORTS_PER_SOL,
                    transient_stake_account=str(
                        transient_stake_account_address(vote, pool, entry.transient_seed_suffix)
                    ),
                    transient_balance=entry.transient_stake_lamports / LAMPORTS_PER_SOL,
                )
            )

        snapshot = PoolSnapshot(
            reserve_account=str(reserve),
            reserve_balance=reserve_lamports / LAMPORTS_PER_SOL,
            validators=validators,
        )
        logger.info(
            "Fetched snapshot: %d validator(s) with stake, reserve %.9f SOL.",
            len(snapshot.validators),
            snapshot.reserve_balance,
        )
        return snapshot

    def _account_data(self, address: Pubkey) -> bytes:
        account = self._client.get_account_info(address).value
        if account is None:
            raise ValueError(f"Account {address} not found on chain.")
        return bytes(account.data)
