"""Fluent builder for the keeper's signed contract calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from eth_account.datastructures import SignedTransaction

from core.base_types import Address, TokenAmount, TransactionRequest
from core.wallet_manager import WalletManager

from .client import ChainClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Draft:
    to: Address | None = None
    value: TokenAmount = TokenAmount(raw=0, decimals=18, symbol="ETH")
    data: bytes = b""
    gas_limit: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee: int | None = None
    chain_id: int = 1


class TransactionBuilder:
    """
    Chainable EIP-1559 transaction assembly, signed by the keeper wallet.

    Usage:
        tx_hash = (TransactionBuilder(client, wallet)
            .to(hook_address)
            .value(stake)
            .data(calldata)
            .chain_id(11155111)
            .with_gas_estimate()
            .with_gas_price("high")
            .send())

    The nonce is read from the node ("pending") when the request is built.
    """

    def __init__(self, client: ChainClient, wallet: WalletManager):
        self._client = client
        self._wallet = wallet
        self._draft = _Draft()

    def to(self, address: Address) -> "TransactionBuilder":
        self._draft = replace(self._draft, to=address)
        return self

    def value(self, amount: TokenAmount) -> "TransactionBuilder":
        self._draft = replace(self._draft, value=amount)
        return self

    def data(self, calldata: bytes) -> "TransactionBuilder":
        self._draft = replace(self._draft, data=calldata)
        return self

    def gas_limit(self, limit: int) -> "TransactionBuilder":
        if limit <= 0:
            raise ValueError("gas limit must be positive")
        self._draft = replace(self._draft, gas_limit=limit)
        return self

    def chain_id(self, chain_id: int) -> "TransactionBuilder":
        if chain_id <= 0:
            raise ValueError("chain_id must be positive")
        self._draft = replace(self._draft, chain_id=chain_id)
        return self

    def with_gas_estimate(self, buffer: float = 1.2) -> "TransactionBuilder":
        """Estimate from the keeper address and pad the limit by ``buffer``."""
        if buffer <= 0:
            raise ValueError("buffer must be positive")
        estimate = self._client.estimate_gas(self._request(require_fees=False))
        return self.gas_limit(int(estimate * buffer))

    def with_gas_price(self, priority: str = "medium") -> "TransactionBuilder":
        gas = self._client.get_gas_price()
        self._draft = replace(
            self._draft,
            max_priority_fee=gas.priority_fee(priority),
            max_fee_per_gas=gas.get_max_fee(priority),
        )
        return self

    def build(self) -> TransactionRequest:
        return self._request(require_fees=True)

    def build_and_sign(self) -> SignedTransaction:
        return self._wallet.sign_transaction(self.build().to_dict())

    def send(self) -> str:
        """Sign and broadcast; returns the transaction hash."""
        signed = self.build_and_sign()
        tx_hash = self._client.send_transaction(signed.raw_transaction)
        logger.debug("broadcast %s to %s", tx_hash, self._draft.to)
        return tx_hash

    def _request(self, require_fees: bool) -> TransactionRequest:
        draft = self._draft
        if draft.to is None:
            raise ValueError("to address is required")
        if require_fees:
            if draft.gas_limit is None:
                raise ValueError("gas_limit is required (call with_gas_estimate)")
            if draft.max_fee_per_gas is None or draft.max_priority_fee is None:
                raise ValueError("max_fee_per_gas is required (call with_gas_price)")

        sender = Address.from_string(self._wallet.address)
        return TransactionRequest(
            to=draft.to,
            value=draft.value,
            data=draft.data,
            nonce=self._client.get_nonce(sender),
            gas_limit=draft.gas_limit,
            max_fee_per_gas=draft.max_fee_per_gas,
            max_priority_fee=draft.max_priority_fee,
            chain_id=draft.chain_id,
            sender=sender,
        )
