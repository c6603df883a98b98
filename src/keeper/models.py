"""Value types flowing through the keeper pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Optional

from core.base_types import WEI_PER_GWEI, Address, to_bytes, to_int


@dataclass(frozen=True)
class CandidateTransaction:
    """Immutable snapshot of a pending transaction."""

    tx_hash: str
    sender: Address
    to: Optional[Address]
    data: bytes
    value: int
    gas_price: Optional[int]
    max_fee_per_gas: Optional[int]
    max_priority_fee_per_gas: Optional[int]
    nonce: int
    observed_at: float

    @classmethod
    def from_rpc(cls, tx: dict, observed_at: float | None = None) -> "CandidateTransaction":
        """Build from an ``eth_getTransactionByHash`` result."""
        to_value = tx.get("to")
        return cls(
            tx_hash=str(tx["hash"]).lower(),
            sender=Address.from_string(tx["from"]),
            to=Address.from_string(to_value) if to_value else None,
            data=to_bytes(tx.get("input", tx.get("data", "0x"))),
            value=to_int(tx.get("value", 0)),
            gas_price=_optional_int(tx.get("gasPrice")),
            max_fee_per_gas=_optional_int(tx.get("maxFeePerGas")),
            max_priority_fee_per_gas=_optional_int(tx.get("maxPriorityFeePerGas")),
            nonce=to_int(tx.get("nonce", 0)),
            observed_at=time.time() if observed_at is None else observed_at,
        )

    @property
    def gas_price_gwei(self) -> Decimal:
        """maxFeePerGas if present, else legacy gasPrice, else zero."""
        wei = self.max_fee_per_gas or self.gas_price or 0
        return Decimal(wei) / Decimal(WEI_PER_GWEI)


@dataclass
class MEVSignals:
    high_gas_price: bool = False
    large_swap_size: bool = False
    frequent_trader: bool = False
    known_bot: bool = False
    suspicious_timing: bool = False

    def fired(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]

    @property
    def count(self) -> int:
        return len(self.fired())

    @classmethod
    def total(cls) -> int:
        return len(fields(cls))

    def to_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class MEVAnalysis:
    is_suspicious: bool
    confidence: Decimal
    signals: MEVSignals
    pool_id: Optional[str]
    swap_amount: Optional[int]
    reason: str

    @classmethod
    def not_applicable(cls, reason: str) -> "MEVAnalysis":
        return cls(
            is_suspicious=False,
            confidence=Decimal(0),
            signals=MEVSignals(),
            pool_id=None,
            swap_amount=None,
            reason=reason,
        )


@dataclass(frozen=True)
class PendingChallengeKey:
    pool_id: str
    suspected_address: str

    @classmethod
    def of(cls, pool_id: str, suspected: Address | str) -> "PendingChallengeKey":
        address = suspected.lower if isinstance(suspected, Address) else suspected.lower()
        return cls(pool_id=pool_id.lower(), suspected_address=address)


@dataclass(frozen=True)
class SubmissionResult:
    tx_hash: str
    evidence_hash: str
    challenge_id: Optional[int] = None


def _optional_int(value: object) -> Optional[int]:
    if value is None:
        return None
    return to_int(value)
