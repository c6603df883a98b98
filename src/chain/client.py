"""Blocking Ethereum JSON-RPC client used by the keeper."""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import requests

from core.base_types import (
    Address,
    TokenAmount,
    TransactionReceipt,
    TransactionRequest,
    to_bytes,
    to_int,
)

from .errors import (
    ChainError,
    ExecutionReverted,
    InsufficientFunds,
    NonceTooLow,
    ReceiptTimeout,
    ReplacementUnderpriced,
    RPCError,
    TransactionFailed,
)

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")

# Substrings of node error messages, checked in order.
_ERROR_PATTERNS: tuple[tuple[str, type[ChainError]], ...] = (
    ("insufficient funds", InsufficientFunds),
    ("nonce too low", NonceTooLow),
    ("replacement transaction underpriced", ReplacementUnderpriced),
)

# ValueError covers undecodable response bodies.
_RETRYABLE = (requests.Timeout, requests.ConnectionError, ValueError)


@dataclass(frozen=True)
class GasPrice:
    """Latest base fee plus the priority-fee tiers offered to the builder."""

    base_fee: int
    priority_fee_low: int
    priority_fee_medium: int
    priority_fee_high: int

    @classmethod
    def from_node(cls, base_fee: int, suggested_tip: int) -> "GasPrice":
        return cls(
            base_fee=base_fee,
            priority_fee_low=suggested_tip,
            priority_fee_medium=suggested_tip,
            priority_fee_high=suggested_tip * 3 // 2,
        )

    def priority_fee(self, priority: str = "medium") -> int:
        if priority not in PRIORITIES:
            raise ValueError("priority must be low, medium, or high")
        return getattr(self, f"priority_fee_{priority}")

    def get_max_fee(self, priority: str = "medium", buffer: float = 1.2) -> int:
        """maxFeePerGas: buffered base fee plus the tier's tip."""
        if buffer <= 0:
            raise ValueError("buffer must be positive")
        return int(self.base_fee * buffer) + self.priority_fee(priority)


class ChainClient:
    """
    JSON-RPC over HTTP.

    A request is retried ``max_retries`` times per endpoint with exponential
    back-off on transport failures, then the next URL in ``rpc_urls`` is
    tried. Node-reported errors are raised at once as the most specific
    :mod:`chain.errors` class. Every call blocks; async callers wrap them in
    ``asyncio.to_thread``.
    """

    def __init__(
        self,
        rpc_urls: list[str],
        timeout: int = 30,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ):
        if not rpc_urls:
            raise ValueError("rpc_urls must not be empty")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._rpc_urls = list(rpc_urls)
        self._timeout = timeout
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._session = requests.Session()
        self._ids = itertools.count(1)

    # ── chain state ──────────────────────────────────────────

    def get_balance(self, address: Address) -> TokenAmount:
        return TokenAmount.ether(self._quantity("eth_getBalance", [address.checksum, "latest"]))

    def get_nonce(self, address: Address, block: str = "pending") -> int:
        return self._quantity("eth_getTransactionCount", [address.checksum, block])

    def get_block_number(self) -> int:
        return self._quantity("eth_blockNumber", [])

    def get_gas_price(self) -> GasPrice:
        block = self._rpc_call("eth_getBlockByNumber", ["latest", False]) or {}
        tip = self._quantity("eth_maxPriorityFeePerGas", [])
        return GasPrice.from_node(to_int(block.get("baseFeePerGas", "0x0")), tip)

    def get_logs(
        self,
        address: Address,
        from_block: int,
        to_block: int | str = "latest",
        topics: Optional[list] = None,
    ) -> list[dict]:
        query: dict[str, Any] = {
            "address": address.checksum,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block) if isinstance(to_block, int) else to_block,
        }
        if topics:
            query["topics"] = topics
        return self._rpc_call("eth_getLogs", [query]) or []

    # ── transactions ─────────────────────────────────────────

    def call(self, tx: TransactionRequest, block: str = "latest") -> bytes:
        result = self._rpc_call("eth_call", [tx.to_rpc_dict(), block])
        if not isinstance(result, str):
            raise RPCError("eth_call returned a non-hex result")
        return to_bytes(result)

    def estimate_gas(self, tx: TransactionRequest) -> int:
        return self._quantity("eth_estimateGas", [tx.to_rpc_dict()])

    def send_transaction(self, signed_tx: bytes) -> str:
        return str(self._rpc_call("eth_sendRawTransaction", [f"0x{signed_tx.hex()}"]))

    def get_transaction(self, tx_hash: str) -> Optional[dict]:
        """Transaction by hash; None once the node no longer knows it."""
        return self._rpc_call("eth_getTransactionByHash", [tx_hash])

    def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        data = self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        return None if data is None else TransactionReceipt.from_web3(data)

    def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: int = 120,
        poll_interval: float = 1.0,
    ) -> TransactionReceipt:
        """Poll until mined; raises TransactionFailed on revert."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            receipt = self.get_receipt(tx_hash)
            if receipt is None:
                time.sleep(poll_interval)
                continue
            if not receipt.status:
                raise TransactionFailed(tx_hash, receipt)
            return receipt
        raise ReceiptTimeout(tx_hash, timeout)

    # ── transport ────────────────────────────────────────────

    def _quantity(self, method: str, params: list[Any]) -> int:
        value = self._rpc_call(method, params)
        if not isinstance(value, str):
            raise RPCError(f"{method} returned a non-hex result")
        return to_int(value)

    def _rpc_call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        last_error: Optional[Exception] = None
        for url in self._rpc_urls:
            for attempt in range(self._max_retries):
                try:
                    return self._post(url, payload)
                except _RETRYABLE as exc:
                    last_error = exc
                    logger.debug(
                        "rpc %s via %s attempt %d failed: %s", method, url, attempt + 1, exc
                    )
                    time.sleep(self._backoff_seconds * (2**attempt))
            logger.warning("rpc endpoint %s gave up on %s", url, method)
        raise ChainError(f"RPC request {method} failed") from last_error

    def _post(self, url: str, payload: dict) -> Any:
        started = time.perf_counter()
        response = self._session.post(url, json=payload, timeout=self._timeout)
        logger.debug("rpc %s %s in %.3fs", payload["method"], url, time.perf_counter() - started)
        if response.status_code >= 400:
            raise RPCError(f"HTTP {response.status_code} from {url}")
        data = response.json()
        if "error" in data:
            raise _classify(data["error"])
        return data.get("result")


def _classify(error: dict) -> ChainError:
    message = str(error.get("message", "RPC error"))
    lowered = message.lower()
    for pattern, error_cls in _ERROR_PATTERNS:
        if pattern in lowered:
            return error_cls(message)
    if "execution reverted" in lowered:
        return ExecutionReverted(message, code=error.get("code"), data=error.get("data"))
    return RPCError(message, code=error.get("code"), data=error.get("data"))
