"""Pool-manager swap call decoding and deterministic pool ids."""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils.crypto import keccak

from core.base_types import Address

from .errors import DecodeError

POOL_KEY_TYPE = "(address,address,uint24,int24,address)"
SWAP_PARAMS_TYPE = "(bool,int256,uint160)"
SWAP_SIGNATURE = f"swap({POOL_KEY_TYPE},{SWAP_PARAMS_TYPE},bytes)"
SWAP_SELECTOR = keccak(text=SWAP_SIGNATURE)[:4]

MIN_SQRT_RATIO = 4295128740
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970341


@dataclass(frozen=True)
class PoolKey:
    currency0: Address
    currency1: Address
    fee: int
    tick_spacing: int
    hooks: Address

    def as_tuple(self) -> tuple:
        return (
            self.currency0.checksum,
            self.currency1.checksum,
            self.fee,
            self.tick_spacing,
            self.hooks.checksum,
        )

    @property
    def pool_id(self) -> str:
        """keccak256(abi.encode(key)), the id the pool manager and hook use."""
        return compute_pool_id(self)


@dataclass(frozen=True)
class SwapParams:
    zero_for_one: bool
    amount_specified: int
    sqrt_price_limit_x96: int


@dataclass(frozen=True)
class SwapCall:
    key: PoolKey
    params: SwapParams
    hook_data: bytes

    @property
    def pool_id(self) -> str:
        return self.key.pool_id


def compute_pool_id(key: PoolKey) -> str:
    encoded = encode(["address", "address", "uint24", "int24", "address"], list(key.as_tuple()))
    return f"0x{keccak(encoded).hex()}"


def is_swap_call(data: bytes) -> bool:
    return data[:4] == SWAP_SELECTOR


def decode_swap_call(data: bytes) -> SwapCall:
    """Decode ``swap(key, params, hookData)`` call data; raises DecodeError."""
    if not is_swap_call(data):
        raise DecodeError("call data does not start with the swap selector")
    try:
        key_raw, params_raw, hook_data = decode(
            [POOL_KEY_TYPE, SWAP_PARAMS_TYPE, "bytes"], data[4:]
        )
        key = PoolKey(
            currency0=Address.from_string(key_raw[0]),
            currency1=Address.from_string(key_raw[1]),
            fee=int(key_raw[2]),
            tick_spacing=int(key_raw[3]),
            hooks=Address.from_string(key_raw[4]),
        )
    except (DecodingError, ValueError, TypeError) as exc:
        raise DecodeError(f"malformed swap call data: {exc}") from exc
    params = SwapParams(
        zero_for_one=bool(params_raw[0]),
        amount_specified=int(params_raw[1]),
        sqrt_price_limit_x96=int(params_raw[2]),
    )
    return SwapCall(key=key, params=params, hook_data=bytes(hook_data))


def encode_swap_call(key: PoolKey, params: SwapParams, hook_data: bytes = b"") -> bytes:
    """Build swap call data (used for fixtures and simulations)."""
    body = encode(
        [POOL_KEY_TYPE, SWAP_PARAMS_TYPE, "bytes"],
        [
            key.as_tuple(),
            (params.zero_for_one, params.amount_specified, params.sqrt_price_limit_x96),
            hook_data,
        ],
    )
    return SWAP_SELECTOR + body
