"""
Failures raised by the chain layer.

Everything derives from ChainError so the CLI and the agent can report a
chain problem without knowing which call produced it. Node-side rejections
are mapped onto the narrower classes by ``chain.client``.
"""

from __future__ import annotations

from typing import Optional

from core.base_types import TransactionReceipt

_REVERT_PREFIX = "execution reverted"


class ChainError(Exception):
    pass


class RPCError(ChainError):
    """The node answered with a JSON-RPC error object, or not at all."""

    def __init__(self, message: str, *, code: Optional[int] = None, data: object = None):
        super().__init__(message)
        self.code = code
        self.data = data


class ExecutionReverted(RPCError):
    """A simulated hook call reverted, e.g. the keeper is unregistered or the stake is short."""

    @property
    def reason(self) -> str:
        message = str(self)
        if message.startswith(_REVERT_PREFIX):
            return message[len(_REVERT_PREFIX):].lstrip(": ").strip()
        return message


class TransactionFailed(ChainError):
    """Mined with status 0."""

    def __init__(self, tx_hash: str, receipt: Optional[TransactionReceipt] = None):
        super().__init__(f"transaction {tx_hash} reverted on chain")
        self.tx_hash = tx_hash
        self.receipt = receipt


class ReceiptTimeout(ChainError):
    """No receipt before the polling deadline; the transaction may still be mined."""

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(f"no receipt for {tx_hash} after {timeout}s")
        self.tx_hash = tx_hash


# Broadcast rejections.
class InsufficientFunds(ChainError):
    pass


class NonceTooLow(ChainError):
    pass


class ReplacementUnderpriced(ChainError):
    pass


class DecodeError(ChainError):
    """Bytes from the mempool or the node that do not match the expected ABI."""
