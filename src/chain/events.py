"""Hook event topics and log decoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils.crypto import keccak

from core.base_types import to_bytes, to_int

from .errors import DecodeError


@dataclass(frozen=True)
class EventSpec:
    name: str
    # (argument name, ABI type, indexed)
    inputs: tuple[tuple[str, str, bool], ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(arg_type for _, arg_type, _ in self.inputs)})"

    @property
    def topic(self) -> str:
        return f"0x{keccak(text=self.signature).hex()}"


PROTECTION_TRIGGERED = EventSpec(
    "ProtectionTriggered",
    (
        ("poolId", "bytes32", True),
        ("swapper", "address", True),
        ("fee", "uint24", False),
        ("reason", "string", False),
    ),
)
CHALLENGE_SUBMITTED = EventSpec(
    "ChallengeSubmitted",
    (
        ("poolId", "bytes32", True),
        ("challengeId", "uint256", False),
        ("attacker", "address", True),
        ("challenger", "address", True),
    ),
)
CHALLENGE_VOTED = EventSpec(
    "ChallengeVoted",
    (
        ("poolId", "bytes32", True),
        ("challengeId", "uint256", False),
        ("voter", "address", True),
        ("support", "bool", False),
    ),
)
CHALLENGE_EXECUTED = EventSpec(
    "ChallengeExecuted",
    (
        ("poolId", "bytes32", True),
        ("challengeId", "uint256", False),
        ("approved", "bool", False),
    ),
)
KEEPER_REGISTERED = EventSpec(
    "KeeperRegistered",
    (
        ("keeper", "address", True),
        ("stake", "uint128", False),
    ),
)

HOOK_EVENTS = {
    spec.topic: spec
    for spec in (
        PROTECTION_TRIGGERED,
        CHALLENGE_SUBMITTED,
        CHALLENGE_VOTED,
        CHALLENGE_EXECUTED,
        KEEPER_REGISTERED,
    )
}


@dataclass
class HookEvent:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None


def _normalize(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return f"0x{bytes(value).hex()}"
    return value


def decode_log(log: dict) -> Optional[HookEvent]:
    """Decode a raw log dict; returns None for logs of other events."""
    topics = [_normalize_topic(topic) for topic in log.get("topics", [])]
    if not topics:
        return None
    spec = HOOK_EVENTS.get(topics[0])
    if spec is None:
        return None

    indexed = [(name, arg_type) for name, arg_type, is_indexed in spec.inputs if is_indexed]
    plain = [(name, arg_type) for name, arg_type, is_indexed in spec.inputs if not is_indexed]
    if len(topics) != len(indexed) + 1:
        raise DecodeError(f"{spec.name} log has {len(topics)} topics")

    args: dict[str, Any] = {}
    try:
        for (name, arg_type), topic in zip(indexed, topics[1:]):
            (value,) = decode([arg_type], to_bytes(topic))
            args[name] = _normalize(value)
        values = decode([arg_type for _, arg_type in plain], to_bytes(log.get("data", "0x")))
    except DecodingError as exc:
        raise DecodeError(f"malformed {spec.name} log") from exc
    for (name, _), value in zip(plain, values):
        args[name] = _normalize(value)

    block = log.get("blockNumber")
    tx_hash = log.get("transactionHash")
    return HookEvent(
        name=spec.name,
        args=args,
        block_number=to_int(block) if block is not None else None,
        tx_hash=_normalize(tx_hash) if tx_hash is not None else None,
    )


def decode_logs(logs: list[dict]) -> list[HookEvent]:
    events = []
    for log in logs:
        event = decode_log(log)
        if event is not None:
            events.append(event)
    return events


def _normalize_topic(topic: Any) -> str:
    if isinstance(topic, (bytes, bytearray)):
        return f"0x{bytes(topic).hex()}"
    return str(topic).lower()
