"""Keeper signing key."""

from __future__ import annotations

import os
from typing import Any

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount


def _mask_private_key(private_key: Any) -> str:
    """First 6 and last 4 hex chars; anything shorter is fully redacted."""
    text = private_key.hex() if isinstance(private_key, (bytes, bytearray)) else str(private_key)
    if text.startswith("0x"):
        text = text[2:]
    if len(text) < 10:
        return "<redacted>"
    return f"0x{text[:6]}...{text[-4:]}"


class WalletManager:
    """
    Signs the keeper's hook transactions.

    The wallet address is the keeper identity: it is what ``keepers(address)``
    is queried with and what evidence records name as the detector. The key
    itself never appears in errors, logs or ``repr``.
    """

    def __init__(self, private_key: str | bytes) -> None:
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except Exception as exc:
            raise ValueError(f"Invalid private key: {_mask_private_key(private_key)}") from exc

    @classmethod
    def from_env(cls, env_var: str = "PRIVATE_KEY") -> "WalletManager":
        private_key = os.environ.get(env_var)
        if not private_key:
            raise ValueError(f"Environment variable {env_var} is not set")
        return cls(private_key)

    @property
    def address(self) -> str:
        """Checksummed keeper address."""
        return self._account.address

    def sign_transaction(self, tx: dict) -> SignedTransaction:
        if not isinstance(tx, dict):
            raise TypeError("tx must be a dict")
        if not tx:
            raise ValueError("tx must not be empty")
        return self._account.sign_transaction(tx)

    def __repr__(self) -> str:
        return f"WalletManager(address={self.address})"

    __str__ = __repr__
