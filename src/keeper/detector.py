"""
MEV signal engine.

Scores a pending pool-manager swap against five independent heuristics:

* **high_gas_price**: max fee (or legacy gas price) above a gwei threshold.
* **large_swap_size**: ``|amountSpecified|`` as a percentage of the pool's
  baseline volume, read from the hook.
* **frequent_trader**: sender's scored swaps within the last 50 blocks.
* **known_bot**: sender is on the operator-maintained bot list.
* **suspicious_timing**: two or more swaps within 2 blocks, a proxy for a
  front-run / back-run pair.

Confidence is the fraction of signals that fired. Anything at or above
``FLAG_CONFIDENCE`` is reported as suspicious; whether it is worth a
challenge is decided by the agent.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from chain.errors import DecodeError
from chain.pool_manager import decode_swap_call, is_swap_call
from config import DetectionThresholds
from core.base_types import Address

from .bounded import BehaviorHistory, KnownBotSet
from .gateway import ChainGateway
from .models import CandidateTransaction, MEVAnalysis, MEVSignals

logger = logging.getLogger(__name__)

FLAG_CONFIDENCE = Decimal("0.4")

FREQUENCY_WINDOW_BLOCKS = 50
SANDWICH_WINDOW_BLOCKS = 2
SANDWICH_MIN_SWAPS = 2
HISTORY_PER_SENDER = 100


class SignalEngine:
    def __init__(
        self,
        gateway: ChainGateway,
        pool_manager: Address,
        thresholds: Optional[DetectionThresholds] = None,
        known_bots: Optional[KnownBotSet] = None,
        history: Optional[BehaviorHistory] = None,
    ):
        self._gateway = gateway
        self.pool_manager = pool_manager
        self.thresholds = thresholds or DetectionThresholds()
        self.known_bots = known_bots if known_bots is not None else KnownBotSet()
        self.history = history if history is not None else BehaviorHistory(HISTORY_PER_SENDER)

    async def analyze(self, tx: CandidateTransaction) -> MEVAnalysis:
        if tx.to is None or tx.to != self.pool_manager:
            return MEVAnalysis.not_applicable("not a swap transaction")
        if not is_swap_call(tx.data):
            return MEVAnalysis.not_applicable("not a swap function")

        pool_id, swap_amount = self._decode(tx)
        signals = MEVSignals()

        signals.high_gas_price = tx.gas_price_gwei > self.thresholds.high_gas_gwei

        if pool_id is not None and swap_amount:
            signals.large_swap_size = await self._is_large_swap(pool_id, swap_amount)

        current_block = await self._gateway.current_block_height()
        # The swap being scored counts toward its own windows.
        self.history.record(tx.sender, current_block)
        recent = self.history.count_within(tx.sender, current_block, FREQUENCY_WINDOW_BLOCKS)
        signals.frequent_trader = recent >= self.thresholds.frequency

        signals.known_bot = tx.sender in self.known_bots

        very_recent = self.history.count_within(
            tx.sender, current_block, SANDWICH_WINDOW_BLOCKS
        )
        signals.suspicious_timing = very_recent >= SANDWICH_MIN_SWAPS

        return score(signals, pool_id, swap_amount)

    def _decode(self, tx: CandidateTransaction) -> tuple[Optional[str], Optional[int]]:
        try:
            call = decode_swap_call(tx.data)
        except DecodeError as exc:
            logger.warning("failed to decode swap %s: %s", tx.tx_hash, exc)
            return None, None
        return call.pool_id, call.params.amount_specified

    async def _is_large_swap(self, pool_id: str, swap_amount: int) -> bool:
        try:
            state = await self._gateway.read_pool_state(pool_id)
        except Exception as exc:
            # Pool may simply not be registered with the hook.
            logger.debug("no pool state for %s: %s", pool_id, exc)
            return False
        if state.baseline_volume <= 0:
            return False
        swap_pct = Decimal(abs(swap_amount)) / Decimal(state.baseline_volume) * 100
        return swap_pct > self.thresholds.large_swap_pct


def score(
    signals: MEVSignals,
    pool_id: Optional[str] = None,
    swap_amount: Optional[int] = None,
) -> MEVAnalysis:
    """Turn a signal set into a verdict."""
    confidence = Decimal(signals.count) / Decimal(MEVSignals.total())
    is_suspicious = confidence >= FLAG_CONFIDENCE
    if is_suspicious:
        reason = f"suspicious signals: {', '.join(signals.fired())}"
    else:
        reason = "normal transaction"
    return MEVAnalysis(
        is_suspicious=is_suspicious,
        confidence=confidence,
        signals=signals,
        pool_id=pool_id,
        swap_amount=swap_amount,
        reason=reason,
    )
