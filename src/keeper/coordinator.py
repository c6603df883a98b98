"""
Challenge coordinator.

Owns the pending-challenge set: at most one outstanding challenge per
``(pool_id, suspected_address)``. A key is inserted before the submission
is awaited, rolled back if the submission or its confirmation fails, and
released ``cooldown_seconds`` after confirmation so repeat offenders can be
challenged again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from chain.errors import ExecutionReverted
from chain.events import CHALLENGE_SUBMITTED, decode_logs
from chain.hook import Challenge
from core.base_types import Address, TokenAmount, TransactionReceipt

from .evidence import EvidenceRecord
from .gateway import ChainGateway
from .models import MEVAnalysis, PendingChallengeKey, SubmissionResult

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_BLOCKS = 100
DEFAULT_BLOCK_TIME_SECONDS = 12.0


class ChallengeCoordinator:
    def __init__(
        self,
        gateway: ChainGateway,
        cooldown_seconds: float = DEFAULT_COOLDOWN_BLOCKS * DEFAULT_BLOCK_TIME_SECONDS,
        gas_limit: Optional[int] = 500_000,
    ):
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be non-negative")
        self._gateway = gateway
        self.cooldown_seconds = cooldown_seconds
        self._gas_limit = gas_limit
        # key -> tx hash ("" until the node accepts the transaction)
        self._pending: dict[PendingChallengeKey, str] = {}
        self._timers: dict[PendingChallengeKey, asyncio.TimerHandle] = {}
        self._confirmations: set[asyncio.Task] = set()
        self._registration_lock = asyncio.Lock()
        self.confirmed: list[SubmissionResult] = []

    # ── challenge submission ─────────────────────────────────

    def is_pending(self, pool_id: str, suspected: Address | str) -> bool:
        return PendingChallengeKey.of(pool_id, suspected) in self._pending

    def pending_challenges(self) -> dict[PendingChallengeKey, str]:
        return dict(self._pending)

    async def submit(
        self,
        pool_id: str,
        suspected: Address | str,
        analysis: MEVAnalysis,
        tx_hash: str = "",
    ) -> Optional[SubmissionResult]:
        """
        Submit a challenge unless one is already outstanding for the pair.

        Returns None when a challenge is already pending or the submission
        failed; the latter leaves no lock behind so the caller may retry.
        """
        key = PendingChallengeKey.of(pool_id, suspected)
        if key in self._pending:
            logger.info(
                "challenge already pending for %s on pool %s",
                key.suspected_address,
                key.pool_id,
            )
            return None
        self._pending[key] = ""

        try:
            attacker = suspected if isinstance(suspected, Address) else Address(suspected)
            evidence = EvidenceRecord.from_analysis(
                analysis,
                pool_id=key.pool_id,
                suspected_attacker=attacker.checksum,
                detector=self._gateway.keeper_address.checksum,
                tx_hash=tx_hash,
            )
            logger.info(
                "submitting challenge pool=%s attacker=%s confidence=%s evidence=%s",
                key.pool_id,
                attacker.checksum,
                analysis.confidence,
                evidence.hash_hex,
            )
            logger.debug("evidence record %s", evidence.serialize().decode("utf-8"))
            sent_hash = await self._gateway.submit_challenge(
                key.pool_id, attacker, evidence.hash, self._gas_limit
            )
        except ExecutionReverted as exc:
            self._release(key)
            logger.warning(
                "hook rejected challenge against %s on %s: %s",
                key.suspected_address,
                key.pool_id,
                exc.reason,
            )
            return None
        except Exception as exc:
            self._release(key)
            logger.error(
                "failed to submit challenge against %s on %s: %s",
                key.suspected_address,
                key.pool_id,
                exc,
            )
            return None

        self._pending[key] = sent_hash
        result = SubmissionResult(tx_hash=sent_hash, evidence_hash=evidence.hash_hex)
        logger.info("challenge submitted: %s", sent_hash)

        task = asyncio.create_task(self._confirm(key, result))
        self._confirmations.add(task)
        task.add_done_callback(self._confirmations.discard)
        return result

    async def drain(self) -> None:
        """Wait for all outstanding confirmations to settle."""
        while self._confirmations:
            await asyncio.gather(*list(self._confirmations), return_exceptions=True)

    async def _confirm(self, key: PendingChallengeKey, result: SubmissionResult) -> None:
        try:
            receipt = await self._gateway.wait_for_receipt(result.tx_hash)
        except Exception as exc:
            self._release(key)
            logger.error("challenge %s did not confirm: %s", result.tx_hash, exc)
            return

        challenge_id = _challenge_id(receipt)
        confirmed = SubmissionResult(
            tx_hash=result.tx_hash,
            evidence_hash=result.evidence_hash,
            challenge_id=challenge_id,
        )
        self.confirmed.append(confirmed)
        logger.info(
            "challenge confirmed: %s id=%s block=%d fee=%s",
            result.tx_hash,
            challenge_id,
            receipt.block_number,
            receipt.tx_fee,
        )
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.cooldown_seconds, self._release, key)

    def _release(self, key: PendingChallengeKey) -> None:
        self._pending.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        logger.debug("released challenge lock %s/%s", key.pool_id, key.suspected_address)

    async def close(self, timeout: float = 5.0) -> None:
        """Cancel cooldown timers; give confirmations ``timeout`` to finish."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        if self._confirmations:
            _, still_running = await asyncio.wait(set(self._confirmations), timeout=timeout)
            for task in still_running:
                task.cancel()

    # ── keeper registration ──────────────────────────────────

    async def ensure_registered(self, stake_wei: int) -> bool:
        """
        Register the wallet as a keeper unless it is already active.

        Returns True when a registration transaction was sent. Errors
        propagate: an unregistered keeper cannot submit challenges.
        """
        async with self._registration_lock:
            keeper = await self._gateway.read_keeper(self._gateway.keeper_address)
            if keeper.is_active:
                logger.info(
                    "already registered as keeper (stake %s, reputation %d)",
                    keeper.stake_eth,
                    keeper.reputation_score,
                )
                return False
            stake = TokenAmount.ether(stake_wei)
            logger.info("registering as keeper with %s stake", stake)
            receipt = await self._gateway.register_keeper(stake_wei)
            logger.info("registered as keeper in block %d", receipt.block_number)
            return True

    # ── voting / execution ───────────────────────────────────

    async def vote(self, pool_id: str, challenge_id: int, support: bool) -> Challenge:
        tx_hash = await self._gateway.vote_on_challenge(pool_id, challenge_id, support)
        await self._gateway.wait_for_receipt(tx_hash)
        logger.info(
            "voted %s on challenge %d (%s)", "for" if support else "against", challenge_id, tx_hash
        )
        return await self._gateway.read_challenge(pool_id, challenge_id)

    async def execute(self, pool_id: str, challenge_id: int) -> Challenge:
        tx_hash = await self._gateway.execute_challenge(pool_id, challenge_id)
        await self._gateway.wait_for_receipt(tx_hash)
        logger.info("executed challenge %d (%s)", challenge_id, tx_hash)
        return await self._gateway.read_challenge(pool_id, challenge_id)

    async def challenges(self, pool_id: str) -> list[Challenge]:
        count = await self._gateway.challenge_count(pool_id)
        return [await self._gateway.read_challenge(pool_id, idx) for idx in range(count)]


def _challenge_id(receipt: TransactionReceipt) -> Optional[int]:
    try:
        events = decode_logs(receipt.logs)
    except Exception as exc:
        logger.warning("could not decode logs of %s: %s", receipt.tx_hash, exc)
        return None
    for event in events:
        if event.name == CHALLENGE_SUBMITTED.name:
            return int(event.args["challengeId"])
    return None
