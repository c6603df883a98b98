"""Bindings for the Hook'd Guard hook contract (reads, keeper writes)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils.crypto import keccak

from core.base_types import Address, TokenAmount, TransactionRequest
from core.wallet_manager import WalletManager

from .client import ChainClient
from .errors import DecodeError
from .transaction_builder import TransactionBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolState:
    recent_volume: int
    baseline_volume: int
    last_update_block: int
    last_price: int


@dataclass(frozen=True)
class PoolConfig:
    velocity_multiplier: int
    block_window: int
    surge_fee_multiplier: int
    protection_enabled: bool


@dataclass(frozen=True)
class KeeperInfo:
    stake: int
    reputation_score: int
    is_active: bool

    @property
    def stake_eth(self) -> TokenAmount:
        return TokenAmount.ether(self.stake)


@dataclass(frozen=True)
class Challenge:
    challenge_id: int
    suspected_attacker: Address
    challenger: Address
    evidence_hash: str
    submit_block: int
    votes_for: int
    votes_against: int
    executed: bool
    challenger_stake: int


def pool_id_bytes(pool_id: str) -> bytes:
    normalized = pool_id[2:] if pool_id.startswith("0x") else pool_id
    raw = bytes.fromhex(normalized)
    if len(raw) != 32:
        raise ValueError("pool id must be 32 bytes")
    return raw


class HookContract:
    """
    Thin ABI layer over the hook contract.

    Reads go through ``eth_call``; writes are signed by the keeper wallet
    and sent with :class:`TransactionBuilder`. Write methods return the
    transaction hash without waiting so callers can record the submission
    before confirmation; use :meth:`wait` to confirm.
    """

    def __init__(
        self,
        client: ChainClient,
        address: Address,
        wallet: WalletManager | None = None,
        chain_id: int = 1,
        gas_priority: str = "medium",
    ):
        self._client = client
        self._wallet = wallet
        self.address = address
        self._chain_id = chain_id
        self._gas_priority = gas_priority

    # ── reads ────────────────────────────────────────────────

    def get_pool_state(self, pool_id: str) -> PoolState:
        raw = self._read(
            "getPoolState(bytes32)",
            ["bytes32"],
            [pool_id_bytes(pool_id)],
            ["(uint128,uint128,uint64,uint160)"],
        )[0]
        return PoolState(
            recent_volume=raw[0],
            baseline_volume=raw[1],
            last_update_block=raw[2],
            last_price=raw[3],
        )

    def get_pool_config(self, pool_id: str) -> PoolConfig:
        raw = self._read(
            "poolConfigs(bytes32)",
            ["bytes32"],
            [pool_id_bytes(pool_id)],
            ["(uint16,uint16,uint16,bool)"],
        )[0]
        return PoolConfig(
            velocity_multiplier=raw[0],
            block_window=raw[1],
            surge_fee_multiplier=raw[2],
            protection_enabled=bool(raw[3]),
        )

    def get_keeper(self, keeper: Address) -> KeeperInfo:
        stake, reputation, active = self._read(
            "keepers(address)",
            ["address"],
            [keeper.checksum],
            ["uint128", "uint64", "bool"],
        )
        return KeeperInfo(stake=stake, reputation_score=reputation, is_active=active)

    def get_challenge_count(self, pool_id: str) -> int:
        return self._read(
            "getChallengeCount(bytes32)",
            ["bytes32"],
            [pool_id_bytes(pool_id)],
            ["uint256"],
        )[0]

    def get_challenge(self, pool_id: str, challenge_id: int) -> Challenge:
        raw = self._read(
            "getChallenge(bytes32,uint256)",
            ["bytes32", "uint256"],
            [pool_id_bytes(pool_id), challenge_id],
            ["(address,address,bytes32,uint64,uint16,uint16,bool,uint128)"],
        )[0]
        return Challenge(
            challenge_id=challenge_id,
            suspected_attacker=Address.from_string(raw[0]),
            challenger=Address.from_string(raw[1]),
            evidence_hash=f"0x{bytes(raw[2]).hex()}",
            submit_block=raw[3],
            votes_for=raw[4],
            votes_against=raw[5],
            executed=bool(raw[6]),
            challenger_stake=raw[7],
        )

    # ── writes ───────────────────────────────────────────────

    def register_keeper(self, stake_wei: int) -> str:
        data = encode_call("registerKeeper()", [], [])
        return self._send(data, value=stake_wei)

    def submit_challenge(
        self,
        pool_id: str,
        suspected_attacker: Address,
        evidence_hash: bytes,
        gas_limit: int | None = None,
    ) -> str:
        data = encode_call(
            "submitChallenge(bytes32,address,bytes32)",
            ["bytes32", "address", "bytes32"],
            [pool_id_bytes(pool_id), suspected_attacker.checksum, evidence_hash],
        )
        return self._send(data, gas_limit=gas_limit)

    def vote_on_challenge(self, pool_id: str, challenge_id: int, support: bool) -> str:
        data = encode_call(
            "voteOnChallenge(bytes32,uint256,bool)",
            ["bytes32", "uint256", "bool"],
            [pool_id_bytes(pool_id), challenge_id, support],
        )
        return self._send(data)

    def execute_challenge(self, pool_id: str, challenge_id: int) -> str:
        data = encode_call(
            "executeChallenge(bytes32,uint256)",
            ["bytes32", "uint256"],
            [pool_id_bytes(pool_id), challenge_id],
        )
        return self._send(data)

    # ── internals ────────────────────────────────────────────

    def _read(
        self,
        signature: str,
        arg_types: list[str],
        args: list[Any],
        return_types: list[str],
    ) -> tuple:
        request = TransactionRequest(
            to=self.address,
            value=TokenAmount.ether(0),
            data=encode_call(signature, arg_types, args),
            chain_id=self._chain_id,
        )
        result = self._client.call(request)
        try:
            return decode(return_types, result)
        except DecodingError as exc:
            raise DecodeError(f"{signature} returned undecodable data") from exc

    def _send(self, data: bytes, value: int = 0, gas_limit: int | None = None) -> str:
        if self._wallet is None:
            raise ValueError("a wallet is required to send hook transactions")
        builder = (
            TransactionBuilder(self._client, self._wallet)
            .to(self.address)
            .value(TokenAmount.ether(value))
            .data(data)
            .chain_id(self._chain_id)
        )
        if gas_limit is not None:
            builder.gas_limit(gas_limit)
        else:
            builder.with_gas_estimate()
        tx_hash = builder.with_gas_price(self._gas_priority).send()
        logger.info("hook tx sent %s (selector 0x%s)", tx_hash, data[:4].hex())
        return tx_hash


def encode_call(signature: str, arg_types: list[str], args: list[Any]) -> bytes:
    selector = keccak(text=signature)[:4]
    return selector + encode(arg_types, args)
