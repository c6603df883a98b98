from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Optional

import websockets

from .bounded import TTLCache
from .gateway import ChainGateway
from .models import CandidateTransaction

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60.0
SWEEP_INTERVAL_SECONDS = 60.0


class MempoolObserver:
    """
    Turns ``newPendingTransactions`` notifications into resolved candidates.

    The socket reader only enqueues hashes: ``notify`` puts them on a
    bounded lookup queue drained by ``max_in_flight`` workers, and drops
    them when that queue is full. A hash is reserved from the moment it is
    queued until its lookup finishes, and reservations plus resolved
    entries together never exceed ``max_cached``; past that, new hashes
    are refused rather than evicting anything. Resolved candidates go to
    the bounded ``output`` queue and stay in the dedup cache for
    ``ttl_seconds``.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        ws_url: str,
        output: "asyncio.Queue[CandidateTransaction]",
        ttl_seconds: float = CACHE_TTL_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        max_in_flight: int = 64,
        max_queued: int = 4096,
        max_cached: int = 50_000,
        reconnect_delay: float = 5.0,
    ) -> None:
        if max_in_flight < 1 or max_queued < 1 or max_cached < 1:
            raise ValueError("max_in_flight, max_queued and max_cached must be >= 1")
        self._gateway = gateway
        self._ws_url = ws_url
        self._output = output
        self._cache: TTLCache[str, CandidateTransaction] = TTLCache(
            ttl_seconds, max_entries=max_cached
        )
        self._reserved: set[str] = set()
        self._max_cached = max_cached
        self._inbox: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queued)
        self._max_in_flight = max_in_flight
        self._slots = asyncio.Semaphore(max_in_flight)
        self._sweep_interval = sweep_interval
        self._reconnect_delay = reconnect_delay
        self._workers: list[asyncio.Task] = []
        self._runner: Optional[asyncio.Task] = None
        self._sweeper: Optional[asyncio.Task] = None
        self._ws = None
        self._stopped = False
        self.published = 0
        self.dropped = 0

    # ── lifecycle ────────────────────────────────────────────

    async def start(self) -> None:
        self._stopped = False
        self._workers = [
            asyncio.create_task(self._lookup_worker(), name=f"mempool-lookup-{idx}")
            for idx in range(self._max_in_flight)
        ]
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="mempool-sweep")
        self._runner = asyncio.create_task(self._subscribe_loop(), name="mempool-ws")
        logger.info("Mempool observer started on %s", self._ws_url)

    async def stop(self) -> None:
        """Stop taking notifications; queued and late lookups are discarded."""
        self._stopped = True
        if self._ws is not None:
            await self._ws.close()
        tasks = [task for task in (self._runner, self._sweeper) if task is not None]
        tasks.extend(self._workers)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._workers = []
        while not self._inbox.empty():
            self._reserved.discard(self._inbox.get_nowait())
        logger.info(
            "Mempool observer stopped (%d published, %d dropped)",
            self.published,
            self.dropped,
        )

    @property
    def cached(self) -> int:
        return len(self._cache)

    @property
    def in_flight(self) -> int:
        """Hashes queued or being looked up."""
        return len(self._reserved)

    # ── notification handling ────────────────────────────────

    def notify(self, tx_hash: str) -> bool:
        """Queue a hash for lookup without waiting; False if it was not taken."""
        if self._stopped:
            return False
        key = tx_hash.lower()
        if not self._reserve(key):
            return False
        try:
            self._inbox.put_nowait(key)
        except asyncio.QueueFull:
            self._reserved.discard(key)
            self._drop(key, "lookup queue full")
            return False
        return True

    async def on_notification(self, tx_hash: str) -> None:
        """Resolve one hash inline, with the same dedup as ``notify``."""
        if self._stopped:
            return
        key = tx_hash.lower()
        if self._reserve(key):
            await self._resolve(key)

    def sweep(self) -> int:
        evicted = self._cache.sweep()
        if evicted:
            logger.debug("evicted %d cached txs (%d left)", evicted, len(self._cache))
        return evicted

    def _reserve(self, key: str) -> bool:
        if key in self._reserved or key in self._cache:
            return False
        if len(self._cache) + len(self._reserved) >= self._max_cached:
            self._drop(key, "dedup cache full")
            return False
        self._reserved.add(key)
        return True

    def _drop(self, key: str, why: str) -> None:
        self.dropped += 1
        # One warning per thousand drops; the rest at debug.
        if self.dropped % 1000 == 1:
            logger.warning("dropping pending tx %s: %s (%d dropped)", key, why, self.dropped)
        else:
            logger.debug("dropping pending tx %s: %s", key, why)

    async def _resolve(self, key: str) -> None:
        try:
            async with self._slots:
                candidate = await self._gateway.resolve_transaction(key)
        except Exception as exc:
            logger.warning("lookup of pending tx %s failed: %s", key, exc)
            return
        finally:
            self._reserved.discard(key)
        if candidate is None or self._stopped:
            return
        self._cache.put(key, candidate)
        await self._output.put(candidate)
        self.published += 1

    # ── background loops ─────────────────────────────────────

    async def _lookup_worker(self) -> None:
        while True:
            key = await self._inbox.get()
            try:
                await self._resolve(key)
            finally:
                self._inbox.task_done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    async def _subscribe_loop(self) -> None:
        subscribe_payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_subscribe",
            "params": ["newPendingTransactions"],
        }
        while not self._stopped:
            try:
                async with websockets.connect(self._ws_url) as ws:
                    self._ws = ws
                    await ws.send(json.dumps(subscribe_payload))
                    async for raw in ws:
                        tx_hash = parse_notification(raw)
                        if tx_hash is not None and not self._stopped:
                            self.notify(tx_hash)
            except (websockets.exceptions.WebSocketException, OSError) as exc:
                if self._stopped:
                    break
                logger.warning(
                    "pending-tx subscription dropped (%s); reconnecting in %.0fs",
                    exc,
                    self._reconnect_delay,
                )
            finally:
                self._ws = None
            if not self._stopped:
                await asyncio.sleep(self._reconnect_delay)


def parse_notification(raw: str | bytes) -> Optional[str]:
    """Extract the tx hash from an ``eth_subscription`` message."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("non-JSON subscription message: %r", raw)
        return None
    if not isinstance(message, dict):
        return None
    if "error" in message:
        logger.error("eth_subscribe error: %s", message["error"])
        return None
    if message.get("method") != "eth_subscription":
        if "result" in message:
            logger.info("subscribed to pending txs (id %s)", message["result"])
        return None
    result = (message.get("params") or {}).get("result")
    # Some providers push full transaction objects instead of hashes.
    if isinstance(result, dict):
        result = result.get("hash")
    if isinstance(result, str) and result.startswith("0x"):
        return result
    return None
