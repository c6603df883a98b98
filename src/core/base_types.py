"""Value types shared by the chain bindings and the keeper pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from eth_utils.address import is_address, to_checksum_address

WEI_PER_GWEI = 10**9
WEI_PER_ETH = 10**18


@dataclass(frozen=True, eq=False)
class Address:
    """
    Ethereum address, stored checksummed.

    Equality and hashing ignore case, and an Address compares equal to a
    plain hex string of the same address, so it can be matched against raw
    RPC fields and operator-supplied lists.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError("Address value must be a string")
        if not is_address(self.value):
            raise ValueError("Invalid Ethereum address")
        object.__setattr__(self, "value", to_checksum_address(self.value))

    @classmethod
    def from_string(cls, s: str) -> "Address":
        return cls(s)

    @property
    def checksum(self) -> str:
        return self.value

    @property
    def lower(self) -> str:
        return self.value.lower()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Address):
            return self.lower == other.lower
        if isinstance(other, str):
            return self.lower == other.lower()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.lower)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TokenAmount:
    """Integer base units plus the decimals needed to display them."""

    raw: int
    decimals: int = 18
    symbol: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.raw, int) or isinstance(self.raw, bool):
            raise TypeError("raw must be an int")
        if not isinstance(self.decimals, int) or self.decimals < 0:
            raise ValueError("decimals must be a non-negative integer")

    @classmethod
    def from_human(
        cls, amount: str | Decimal, decimals: int, symbol: str | None = None
    ) -> "TokenAmount":
        """'0.1' with 18 decimals -> 10**17 base units. Floats are refused."""
        if isinstance(amount, float):
            raise TypeError("amount must be a string or Decimal, not float")
        if not isinstance(amount, (str, Decimal)):
            raise TypeError("amount must be a string or Decimal")
        scaled = Decimal(amount).scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError("amount has more precision than decimals allow")
        return cls(raw=int(scaled), decimals=decimals, symbol=symbol)

    @classmethod
    def ether(cls, wei: int) -> "TokenAmount":
        return cls(raw=wei, decimals=18, symbol="ETH")

    @property
    def human(self) -> Decimal:
        return Decimal(self.raw).scaleb(-self.decimals)

    def __str__(self) -> str:
        return f"{self.human.normalize():f} {self.symbol or ''}".strip()


@dataclass
class TransactionRequest:
    """An unsigned call or transaction from the keeper."""

    to: Address
    value: TokenAmount
    data: bytes
    nonce: Optional[int] = None
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee: Optional[int] = None
    chain_id: int = 1
    sender: Optional[Address] = None

    def to_dict(self) -> dict:
        """Field names and integer values expected by eth-account signing."""
        fields = {
            "to": self.to.checksum,
            "value": self.value.raw,
            "data": f"0x{self.data.hex()}",
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "gas": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee,
        }
        return {key: value for key, value in fields.items() if value is not None}

    def to_rpc_dict(self) -> dict:
        """Hex-quantity form for eth_call and eth_estimateGas."""
        call = {
            "to": self.to.checksum,
            "value": hex(self.value.raw),
            "data": f"0x{self.data.hex()}",
        }
        if self.sender is not None:
            call["from"] = self.sender.checksum
        return call


@dataclass
class TransactionReceipt:
    tx_hash: str
    block_number: int
    status: bool
    gas_used: int
    effective_gas_price: int
    logs: list = field(default_factory=list)

    @property
    def tx_fee(self) -> TokenAmount:
        return TokenAmount.ether(self.gas_used * self.effective_gas_price)

    @classmethod
    def from_web3(cls, receipt: dict) -> "TransactionReceipt":
        """Parse an ``eth_getTransactionReceipt`` result."""
        tx_hash = receipt.get("transactionHash")
        status = receipt.get("status")
        if isinstance(status, bool):
            succeeded = status
        elif isinstance(status, (int, str)):
            succeeded = to_int(status) == 1
        else:
            raise ValueError("Invalid status in receipt")
        return cls(
            tx_hash=tx_hash.hex() if isinstance(tx_hash, (bytes, bytearray)) else str(tx_hash),
            block_number=to_int(receipt.get("blockNumber")),
            status=succeeded,
            gas_used=to_int(receipt.get("gasUsed")),
            effective_gas_price=to_int(receipt.get("effectiveGasPrice", 0)),
            logs=list(receipt.get("logs") or []),
        )


def to_int(value: object) -> int:
    """RPC quantity (int, decimal string or 0x-hex string) to int."""
    if isinstance(value, bool):
        raise ValueError("Expected integer-like value")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    raise ValueError("Expected integer-like value")


def to_bytes(value: object) -> bytes:
    """0x-hex string or bytes-like to bytes; None is empty."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    raise ValueError("Expected hex string or bytes")
