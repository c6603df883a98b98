from decimal import Decimal

import pytest

from core.base_types import Address, TokenAmount, TransactionReceipt, to_bytes, to_int


def test_address_invalid_raises():
    with pytest.raises(ValueError, match="Invalid Ethereum address"):
        Address("invalid")


def test_address_case_insensitive_equality():
    lower = Address("0x000000000000000000000000000000000000dead")
    upper = Address("0x000000000000000000000000000000000000DEAD")
    assert lower == upper
    assert hash(lower) == hash(upper)
    assert lower == "0x000000000000000000000000000000000000DEAD"


def test_address_is_checksummed():
    address = Address("0x000000000000000000000000000000000000dead")
    assert address.checksum == "0x000000000000000000000000000000000000dEaD"
    assert str(address) == address.checksum
    assert address.lower == "0x000000000000000000000000000000000000dead"


def test_token_amount_from_human_raw():
    amount = TokenAmount.from_human("1.5", 18)
    assert amount.raw == 1_500_000_000_000_000_000


def test_token_amount_rejects_float_input():
    with pytest.raises(TypeError, match="not float"):
        TokenAmount.from_human(1.5, 18)


def test_token_amount_rejects_excess_precision():
    with pytest.raises(ValueError, match="more precision"):
        TokenAmount.from_human("0.0000001", 6)


def test_min_stake_formats_as_ether():
    stake = TokenAmount.from_human(Decimal("0.1"), 18, "ETH")
    assert stake.raw == 10**17
    assert str(TokenAmount.ether(stake.raw)) == "0.1 ETH"


def test_receipt_from_rpc_dict():
    receipt = TransactionReceipt.from_web3(
        {
            "transactionHash": "0xabc",
            "blockNumber": "0x10",
            "status": "0x1",
            "gasUsed": "0x5208",
            "effectiveGasPrice": "0x3b9aca00",
            "logs": [],
        }
    )
    assert receipt.status is True
    assert receipt.block_number == 16
    assert receipt.tx_fee.raw == 21_000 * 10**9


def test_receipt_with_bad_status_raises():
    with pytest.raises(ValueError, match="Invalid status"):
        TransactionReceipt.from_web3({"transactionHash": "0x1", "status": None})


def test_rpc_quantity_parsing():
    assert to_int("0x1f") == 31
    assert to_int("42") == 42
    assert to_bytes("0x") == b""
    assert to_bytes("0xdead") == b"\xde\xad"
    with pytest.raises(ValueError):
        to_int(True)
