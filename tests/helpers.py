"""Fakes and builders shared by the keeper tests."""

from __future__ import annotations

import asyncio
from typing import Optional

from eth_abi import encode

from chain.errors import RPCError
from chain.events import CHALLENGE_SUBMITTED
from chain.hook import Challenge, KeeperInfo, PoolState
from chain.pool_manager import PoolKey, SwapParams, encode_swap_call
from core.base_types import Address, TransactionReceipt
from keeper.models import CandidateTransaction

POOL_MANAGER = "0x" + "44" * 20
HOOK = "0x" + "c0" * 20
KEEPER = "0x" + "ee" * 20
ATTACKER = "0x" + "ba" * 20
HONEST = "0x" + "aa" * 20

POOL_KEY = PoolKey(
    currency0=Address("0x" + "01" * 20),
    currency1=Address("0x" + "02" * 20),
    fee=3000,
    tick_spacing=60,
    hooks=Address(HOOK),
)


def _topic_address(address: str) -> str:
    return "0x" + "00" * 12 + address[2:].lower()


def challenge_submitted_log(pool_id: str, challenge_id: int, attacker: str) -> dict:
    return {
        "topics": [
            CHALLENGE_SUBMITTED.topic,
            pool_id,
            _topic_address(attacker),
            _topic_address(KEEPER),
        ],
        "data": "0x" + encode(["uint256"], [challenge_id]).hex(),
        "blockNumber": "0x3e8",
    }


def make_swap_tx(
    sender: str = ATTACKER,
    amount: int = -100,
    max_fee_gwei: int = 20,
    to: Optional[str] = POOL_MANAGER,
    data: Optional[bytes] = None,
    tx_hash: Optional[str] = None,
) -> CandidateTransaction:
    if data is None:
        data = encode_swap_call(POOL_KEY, SwapParams(True, amount, 4295128740))
    make_swap_tx.counter += 1
    return CandidateTransaction(
        tx_hash=tx_hash or f"0x{make_swap_tx.counter:064x}",
        sender=Address(sender),
        to=Address(to) if to else None,
        data=data,
        value=0,
        gas_price=None,
        max_fee_per_gas=max_fee_gwei * 10**9,
        max_priority_fee_per_gas=2 * 10**9,
        nonce=make_swap_tx.counter,
        observed_at=0.0,
    )


make_swap_tx.counter = 0


class FakeGateway:
    """In-memory stand-in for keeper.gateway.ChainGateway."""

    def __init__(self) -> None:
        self.keeper_address = Address(KEEPER)
        self.block = 1_000
        self.transactions: dict[str, CandidateTransaction] = {}
        self.lookup_errors: set[str] = set()
        self.pool_states: dict[str, PoolState] = {}
        self.keeper = KeeperInfo(stake=0, reputation_score=0, is_active=False)
        self.submit_error: Optional[Exception] = None
        self.receipt_error: Optional[Exception] = None
        self.receipt_gate: Optional[asyncio.Event] = None
        self.lookup_gate: Optional[asyncio.Event] = None
        self.resolve_calls: list[str] = []
        self.submissions: list[tuple[str, Address, bytes]] = []
        self.registrations: list[int] = []
        self.votes: list[tuple[str, int, bool]] = []
        self.executions: list[tuple[str, int]] = []
        self._receipts: dict[str, TransactionReceipt] = {}

    async def resolve_transaction(self, tx_hash: str) -> Optional[CandidateTransaction]:
        self.resolve_calls.append(tx_hash)
        await asyncio.sleep(0)
        if self.lookup_gate is not None:
            await self.lookup_gate.wait()
        if tx_hash in self.lookup_errors:
            raise RPCError("upstream timeout")
        return self.transactions.get(tx_hash)

    async def current_block_height(self) -> int:
        return self.block

    async def read_pool_state(self, pool_id: str) -> PoolState:
        if pool_id not in self.pool_states:
            raise RPCError("execution reverted: pool not protected")
        return self.pool_states[pool_id]

    async def read_keeper(self, address: Address) -> KeeperInfo:
        return self.keeper

    async def register_keeper(self, stake_wei: int) -> TransactionReceipt:
        self.registrations.append(stake_wei)
        self.keeper = KeeperInfo(stake=stake_wei, reputation_score=100, is_active=True)
        return self._receipt("0x" + "ab" * 32, [])

    async def submit_challenge(
        self,
        pool_id: str,
        suspected: Address,
        evidence_hash: bytes,
        gas_limit: Optional[int] = None,
    ) -> str:
        await asyncio.sleep(0)
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append((pool_id, suspected, evidence_hash))
        tx_hash = f"0x{len(self.submissions):064x}"
        log = challenge_submitted_log(pool_id, len(self.submissions) - 1, suspected.lower)
        self._receipts[tx_hash] = self._receipt(tx_hash, [log])
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        if self.receipt_gate is not None:
            await self.receipt_gate.wait()
        if self.receipt_error is not None:
            raise self.receipt_error
        return self._receipts.get(tx_hash) or self._receipt(tx_hash, [])

    async def vote_on_challenge(self, pool_id: str, challenge_id: int, support: bool) -> str:
        self.votes.append((pool_id, challenge_id, support))
        return "0x" + "0d" * 32

    async def execute_challenge(self, pool_id: str, challenge_id: int) -> str:
        self.executions.append((pool_id, challenge_id))
        return "0x" + "0e" * 32

    async def challenge_count(self, pool_id: str) -> int:
        return len(self.submissions)

    async def read_challenge(self, pool_id: str, challenge_id: int) -> Challenge:
        _, suspected, evidence = self.submissions[challenge_id]
        votes_for = sum(1 for _, cid, support in self.votes if cid == challenge_id and support)
        votes_against = sum(
            1 for _, cid, support in self.votes if cid == challenge_id and not support
        )
        return Challenge(
            challenge_id=challenge_id,
            suspected_attacker=suspected,
            challenger=self.keeper_address,
            evidence_hash=f"0x{evidence.hex()}",
            submit_block=self.block,
            votes_for=votes_for,
            votes_against=votes_against,
            executed=any(cid == challenge_id for _, cid in self.executions),
            challenger_stake=10**17,
        )

    def _receipt(self, tx_hash: str, logs: list) -> TransactionReceipt:
        return TransactionReceipt(
            tx_hash=tx_hash,
            block_number=self.block,
            status=True,
            gas_used=100_000,
            effective_gas_price=10**9,
            logs=logs,
        )
