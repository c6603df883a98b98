from .client import ChainClient, GasPrice
from .errors import (
    ChainError,
    DecodeError,
    ExecutionReverted,
    InsufficientFunds,
    NonceTooLow,
    ReceiptTimeout,
    ReplacementUnderpriced,
    RPCError,
    TransactionFailed,
)
from .hook import Challenge, HookContract, KeeperInfo, PoolConfig, PoolState
from .pool_manager import PoolKey, SwapCall, SwapParams, compute_pool_id
from .transaction_builder import TransactionBuilder

__all__ = [
    "ChainClient",
    "GasPrice",
    "TransactionBuilder",
    "HookContract",
    "Challenge",
    "KeeperInfo",
    "PoolConfig",
    "PoolState",
    "PoolKey",
    "SwapCall",
    "SwapParams",
    "compute_pool_id",
    "ChainError",
    "DecodeError",
    "ExecutionReverted",
    "RPCError",
    "TransactionFailed",
    "InsufficientFunds",
    "NonceTooLow",
    "ReceiptTimeout",
    "ReplacementUnderpriced",
]
