"""Async chain surface used by the keeper pipeline."""

from __future__ import annotations

import asyncio
from typing import Optional

from chain.client import ChainClient
from chain.events import HookEvent, decode_logs
from chain.hook import Challenge, HookContract, KeeperInfo, PoolConfig, PoolState
from core.base_types import Address, TokenAmount, TransactionReceipt

from .models import CandidateTransaction


class ChainGateway:
    """
    Non-blocking wrapper around :class:`ChainClient` and :class:`HookContract`.

    Each method runs the blocking RPC work in a worker thread so the event
    loop keeps interleaving notifications while a call is in flight.
    """

    def __init__(
        self,
        client: ChainClient,
        hook: HookContract,
        keeper_address: Address,
        receipt_timeout: int = 120,
    ):
        self._client = client
        self._hook = hook
        self.keeper_address = keeper_address
        self._receipt_timeout = receipt_timeout

    async def resolve_transaction(self, tx_hash: str) -> Optional[CandidateTransaction]:
        """Pending transaction by hash; None when dropped or already mined."""
        data = await asyncio.to_thread(self._client.get_transaction, tx_hash)
        if not data:
            return None
        if data.get("blockNumber") is not None:
            return None
        return CandidateTransaction.from_rpc(data)

    async def current_block_height(self) -> int:
        return await asyncio.to_thread(self._client.get_block_number)

    async def read_pool_state(self, pool_id: str) -> PoolState:
        return await asyncio.to_thread(self._hook.get_pool_state, pool_id)

    async def read_pool_config(self, pool_id: str) -> PoolConfig:
        return await asyncio.to_thread(self._hook.get_pool_config, pool_id)

    async def read_keeper(self, address: Address) -> KeeperInfo:
        return await asyncio.to_thread(self._hook.get_keeper, address)

    async def register_keeper(self, stake_wei: int) -> TransactionReceipt:
        tx_hash = await asyncio.to_thread(self._hook.register_keeper, stake_wei)
        return await self.wait_for_receipt(tx_hash)

    async def submit_challenge(
        self,
        pool_id: str,
        suspected: Address,
        evidence_hash: bytes,
        gas_limit: Optional[int] = None,
    ) -> str:
        return await asyncio.to_thread(
            self._hook.submit_challenge, pool_id, suspected, evidence_hash, gas_limit
        )

    async def vote_on_challenge(self, pool_id: str, challenge_id: int, support: bool) -> str:
        return await asyncio.to_thread(
            self._hook.vote_on_challenge, pool_id, challenge_id, support
        )

    async def execute_challenge(self, pool_id: str, challenge_id: int) -> str:
        return await asyncio.to_thread(self._hook.execute_challenge, pool_id, challenge_id)

    async def read_challenge(self, pool_id: str, challenge_id: int) -> Challenge:
        return await asyncio.to_thread(self._hook.get_challenge, pool_id, challenge_id)

    async def challenge_count(self, pool_id: str) -> int:
        return await asyncio.to_thread(self._hook.get_challenge_count, pool_id)

    async def keeper_balance(self) -> TokenAmount:
        return await asyncio.to_thread(self._client.get_balance, self.keeper_address)

    async def hook_events(
        self, from_block: int, to_block: int | str = "latest"
    ) -> list[HookEvent]:
        logs = await asyncio.to_thread(
            self._client.get_logs, self._hook.address, from_block, to_block
        )
        return decode_logs(logs)

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        return await asyncio.to_thread(
            self._client.wait_for_receipt, tx_hash, self._receipt_timeout
        )
