"""Challenge evidence records and their on-chain hash."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

from eth_utils.crypto import keccak

from .models import MEVAnalysis


@dataclass(frozen=True)
class EvidenceRecord:
    """
    Off-chain evidence backing a challenge.

    Only ``keccak256`` of the canonical JSON goes on chain; the full record
    is logged so it can be archived and matched against the hash later.
    Amounts and confidence are strings so the payload holds no floats.
    """

    timestamp_ms: int
    confidence: str
    signals: dict[str, bool]
    reason: str
    swap_amount: str
    detector: str
    pool_id: str
    suspected_attacker: str
    tx_hash: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_analysis(
        cls,
        analysis: MEVAnalysis,
        pool_id: str,
        suspected_attacker: str,
        detector: str,
        tx_hash: str = "",
        timestamp_ms: int | None = None,
    ) -> "EvidenceRecord":
        return cls(
            timestamp_ms=int(time.time() * 1000) if timestamp_ms is None else timestamp_ms,
            confidence=str(analysis.confidence),
            signals=analysis.signals.to_dict(),
            reason=analysis.reason,
            swap_amount=str(analysis.swap_amount or 0),
            detector=detector,
            pool_id=pool_id,
            suspected_attacker=suspected_attacker,
            tx_hash=tx_hash,
        )

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "timestamp": self.timestamp_ms,
            "confidence": self.confidence,
            "signals": dict(self.signals),
            "reason": self.reason,
            "swapAmount": self.swap_amount,
            "detector": self.detector,
            "poolId": self.pool_id,
            "suspectedAttacker": self.suspected_attacker,
        }
        if self.tx_hash:
            payload["txHash"] = self.tx_hash
        if self.extra:
            payload["extra"] = dict(self.extra)
        return payload

    def serialize(self) -> bytes:
        """Canonical bytes: sorted keys, no whitespace, UTF-8."""
        payload = self.to_payload()
        _reject_floats(payload)
        return json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")

    @property
    def hash(self) -> bytes:
        return keccak(self.serialize())

    @property
    def hash_hex(self) -> str:
        return f"0x{self.hash.hex()}"


def _reject_floats(obj: Any) -> None:
    if isinstance(obj, float):
        raise ValueError("Floating point values are not allowed in evidence")
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise TypeError("All evidence keys must be strings")
            _reject_floats(value)
    elif isinstance(obj, list):
        for item in obj:
            _reject_floats(item)
