"""Keeper agent: observer -> signal engine -> challenge coordinator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from decimal import Decimal
from typing import Optional, Protocol

from chain.client import ChainClient
from chain.hook import HookContract
from config import KeeperConfig
from core.base_types import Address, TokenAmount
from core.wallet_manager import WalletManager

from .bounded import KnownBotSet
from .coordinator import ChallengeCoordinator
from .detector import SignalEngine
from .gateway import ChainGateway
from .mempool import MempoolObserver
from .models import CandidateTransaction, MEVAnalysis

logger = logging.getLogger(__name__)

# Flagging happens at detector.FLAG_CONFIDENCE; spending gas on a challenge
# needs the stricter bar below.
ACTION_CONFIDENCE = Decimal("0.6")


class Observer(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class KeeperAgent:
    def __init__(
        self,
        engine: SignalEngine,
        coordinator: ChallengeCoordinator,
        observer: Observer,
        candidates: "asyncio.Queue[CandidateTransaction]",
        stake_wei: int,
        monitored_pools: Optional[list[str]] = None,
        analysis_workers: int = 4,
        challenge_queue_size: int = 100,
    ):
        if analysis_workers < 1:
            raise ValueError("analysis_workers must be >= 1")
        self.engine = engine
        self.coordinator = coordinator
        self.observer = observer
        self.candidates = candidates
        self.challenges: asyncio.Queue[tuple[CandidateTransaction, MEVAnalysis]] = (
            asyncio.Queue(maxsize=challenge_queue_size)
        )
        self.stake_wei = stake_wei
        self.monitored_pools = {pool.lower() for pool in monitored_pools or []}
        self._analysis_workers = analysis_workers
        self._workers: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()
        self._running = False
        self.stats = {"analyzed": 0, "suspicious": 0, "queued": 0, "errors": 0}

    # ── lifecycle ────────────────────────────────────────────

    async def start(self) -> None:
        logger.info("Starting Hook'd Guard keeper agent...")
        await self.coordinator.ensure_registered(self.stake_wei)
        self._workers = [
            asyncio.create_task(self._analysis_worker(), name=f"analysis-{idx}")
            for idx in range(self._analysis_workers)
        ]
        self._workers.append(
            asyncio.create_task(self._challenge_worker(), name="challenger")
        )
        try:
            await self.observer.start()
        except BaseException:
            await self._cancel_workers()
            raise
        self._running = True
        logger.info("Keeper agent running. Press Ctrl+C to stop.")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        if not self._running:
            return
        self._running = False
        logger.info("Stopping keeper agent...")
        await self.observer.stop()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._drain(), timeout=drain_timeout)
        await self._cancel_workers()
        await self.coordinator.close()
        logger.info("Keeper agent stopped %s", self.stats)

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run_forever(self) -> None:
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def _drain(self) -> None:
        await self.candidates.join()
        await self.challenges.join()

    async def _cancel_workers(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    # ── pipeline ─────────────────────────────────────────────

    async def process(self, tx: CandidateTransaction) -> MEVAnalysis:
        """Score one candidate and queue a challenge if it clears the bar."""
        analysis = await self.engine.analyze(tx)
        self.stats["analyzed"] += 1
        if not (analysis.is_suspicious and analysis.pool_id):
            return analysis

        self.stats["suspicious"] += 1
        logger.warning(
            "Suspicious transaction %s from %s confidence=%s: %s",
            tx.tx_hash,
            tx.sender.checksum,
            analysis.confidence,
            analysis.reason,
        )
        if self.should_challenge(analysis):
            await self.challenges.put((tx, analysis))
            self.stats["queued"] += 1
        return analysis

    def should_challenge(self, analysis: MEVAnalysis) -> bool:
        if not analysis.is_suspicious or analysis.pool_id is None:
            return False
        if analysis.confidence < ACTION_CONFIDENCE:
            return False
        if self.monitored_pools and analysis.pool_id.lower() not in self.monitored_pools:
            logger.debug("pool %s not monitored; not challenging", analysis.pool_id)
            return False
        return True

    async def _analysis_worker(self) -> None:
        while True:
            tx = await self.candidates.get()
            try:
                await self.process(tx)
            except Exception as exc:
                self.stats["errors"] += 1
                logger.error("Error handling transaction %s: %s", tx.tx_hash, exc)
            finally:
                self.candidates.task_done()

    async def _challenge_worker(self) -> None:
        while True:
            tx, analysis = await self.challenges.get()
            try:
                await self.coordinator.submit(
                    analysis.pool_id, tx.sender, analysis, tx_hash=tx.tx_hash
                )
            except Exception as exc:
                self.stats["errors"] += 1
                logger.error("Error challenging %s: %s", tx.sender.checksum, exc)
            finally:
                self.challenges.task_done()


def build_gateway(config: KeeperConfig) -> ChainGateway:
    """Chain client, wallet and hook binding from config."""
    wallet = WalletManager(config.private_key)
    client = ChainClient([config.rpc_url])
    hook = HookContract(
        client,
        Address.from_string(config.hook_address),
        wallet=wallet,
        chain_id=config.chain_id,
    )
    return ChainGateway(client, hook, Address.from_string(wallet.address))


def build_agent(config: KeeperConfig, extra_known_bots: Optional[list[str]] = None) -> KeeperAgent:
    gateway = build_gateway(config)
    candidates: asyncio.Queue[CandidateTransaction] = asyncio.Queue(maxsize=1000)
    known_bots = KnownBotSet(config.known_bots + list(extra_known_bots or []))
    engine = SignalEngine(
        gateway,
        Address.from_string(config.pool_manager_address),
        thresholds=config.thresholds,
        known_bots=known_bots,
    )
    coordinator = ChallengeCoordinator(
        gateway,
        cooldown_seconds=config.cooldown_seconds,
        gas_limit=config.challenge_gas_limit,
    )
    observer = MempoolObserver(gateway, config.ws_url, candidates)
    stake = TokenAmount.from_human(config.min_stake_eth, 18, "ETH")
    logger.info(
        "Configuration: chain=%d hook=%s pool_manager=%s monitored_pools=%d known_bots=%d",
        config.chain_id,
        config.hook_address,
        config.pool_manager_address,
        len(config.monitored_pools),
        len(known_bots),
    )
    return KeeperAgent(
        engine,
        coordinator,
        observer,
        candidates,
        stake_wei=stake.raw,
        monitored_pools=config.monitored_pools,
    )
