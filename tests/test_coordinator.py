import asyncio
import logging
from decimal import Decimal

import pytest

from chain.errors import ExecutionReverted, TransactionFailed
from core.base_types import Address
from helpers import ATTACKER, HONEST, KEEPER, challenge_submitted_log
from keeper.coordinator import ChallengeCoordinator, _challenge_id
from keeper.evidence import EvidenceRecord
from keeper.models import MEVAnalysis, MEVSignals

POOL_ID = "0x" + "ab" * 32


def _analysis(confidence: str = "0.6") -> MEVAnalysis:
    return MEVAnalysis(
        is_suspicious=True,
        confidence=Decimal(confidence),
        signals=MEVSignals(high_gas_price=True, large_swap_size=True, suspicious_timing=True),
        pool_id=POOL_ID,
        swap_amount=-100,
        reason="suspicious signals: high_gas_price, large_swap_size, suspicious_timing",
    )


@pytest.mark.asyncio
async def test_concurrent_submissions_for_same_pair_send_once(gateway):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=60)

    results = await asyncio.gather(
        *[coordinator.submit(POOL_ID, ATTACKER, _analysis()) for _ in range(5)]
    )

    assert len(gateway.submissions) == 1
    assert sum(1 for result in results if result is not None) == 1
    assert coordinator.is_pending(POOL_ID.upper().replace("0X", "0x"), ATTACKER)
    await coordinator.close()


@pytest.mark.asyncio
async def test_distinct_pairs_are_independent(gateway):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=60)

    first = await coordinator.submit(POOL_ID, ATTACKER, _analysis())
    second = await coordinator.submit(POOL_ID, HONEST, _analysis())
    third = await coordinator.submit("0x" + "cd" * 32, ATTACKER, _analysis())

    assert None not in (first, second, third)
    assert len(gateway.submissions) == 3
    assert len(coordinator.pending_challenges()) == 3
    await coordinator.close()


@pytest.mark.asyncio
async def test_submission_carries_evidence_hash(gateway):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=60)

    result = await coordinator.submit(POOL_ID, Address(ATTACKER), _analysis(), tx_hash="0x01")

    pool_id, suspected, evidence_hash = gateway.submissions[0]
    assert pool_id == POOL_ID
    assert suspected == ATTACKER
    assert len(evidence_hash) == 32
    assert result.evidence_hash == "0x" + evidence_hash.hex()
    assert result.tx_hash == "0x" + "00" * 31 + "01"
    await coordinator.close()


@pytest.mark.asyncio
async def test_failed_submission_releases_key(gateway, caplog):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=60)
    gateway.submit_error = ExecutionReverted("execution reverted: Not a keeper")

    with caplog.at_level(logging.WARNING, logger="keeper.coordinator"):
        assert await coordinator.submit(POOL_ID, ATTACKER, _analysis()) is None
    assert "rejected challenge" in caplog.text
    assert "Not a keeper" in caplog.text
    assert not coordinator.is_pending(POOL_ID, ATTACKER)

    gateway.submit_error = None
    assert await coordinator.submit(POOL_ID, ATTACKER, _analysis()) is not None
    assert len(gateway.submissions) == 1
    await coordinator.close()


@pytest.mark.asyncio
async def test_confirmation_records_challenge_id(gateway):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=60)

    await coordinator.submit(POOL_ID, ATTACKER, _analysis())
    await coordinator.drain()

    assert len(coordinator.confirmed) == 1
    assert coordinator.confirmed[0].challenge_id == 0
    assert coordinator.is_pending(POOL_ID, ATTACKER)
    await coordinator.close()


@pytest.mark.asyncio
async def test_reverted_confirmation_releases_key(gateway):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=60)
    gateway.receipt_error = TransactionFailed("0x01", receipt=None)

    await coordinator.submit(POOL_ID, ATTACKER, _analysis())
    await coordinator.drain()

    assert coordinator.confirmed == []
    assert not coordinator.is_pending(POOL_ID, ATTACKER)


@pytest.mark.asyncio
async def test_pair_is_blocked_until_cooldown_elapses(gateway):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=0.05)
    gateway.receipt_gate = asyncio.Event()

    assert await coordinator.submit(POOL_ID, ATTACKER, _analysis()) is not None
    # Still unconfirmed: the pair stays locked.
    assert await coordinator.submit(POOL_ID, ATTACKER, _analysis()) is None

    gateway.receipt_gate.set()
    await coordinator.drain()
    assert await coordinator.submit(POOL_ID, ATTACKER, _analysis()) is None

    await asyncio.sleep(0.1)
    assert not coordinator.is_pending(POOL_ID, ATTACKER)
    assert await coordinator.submit(POOL_ID, ATTACKER, _analysis()) is not None
    assert len(gateway.submissions) == 2
    await coordinator.close()


@pytest.mark.asyncio
async def test_ensure_registered_skips_active_keeper(gateway):
    coordinator = ChallengeCoordinator(gateway)

    assert await coordinator.ensure_registered(10**17) is True
    assert await coordinator.ensure_registered(10**17) is False
    assert gateway.registrations == [10**17]


@pytest.mark.asyncio
async def test_concurrent_registration_sends_once(gateway):
    coordinator = ChallengeCoordinator(gateway)

    await asyncio.gather(*[coordinator.ensure_registered(10**17) for _ in range(3)])

    assert gateway.registrations == [10**17]


@pytest.mark.asyncio
async def test_vote_and_execute_return_updated_challenge(gateway):
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=60)
    await coordinator.submit(POOL_ID, ATTACKER, _analysis())
    await coordinator.drain()

    voted = await coordinator.vote(POOL_ID, 0, support=True)
    executed = await coordinator.execute(POOL_ID, 0)
    listed = await coordinator.challenges(POOL_ID)

    assert voted.votes_for == 1
    assert executed.executed is True
    assert [challenge.challenge_id for challenge in listed] == [0]
    assert gateway.votes == [(POOL_ID, 0, True)]
    await coordinator.close()


def test_challenge_id_missing_from_receipt(gateway):
    receipt = gateway._receipt("0x01", [{"topics": ["0x" + "11" * 32], "data": "0x"}])
    assert _challenge_id(receipt) is None

    receipt = gateway._receipt("0x02", [challenge_submitted_log(POOL_ID, 9, ATTACKER)])
    assert _challenge_id(receipt) == 9


def test_evidence_names_keeper_as_detector(gateway):
    record = EvidenceRecord.from_analysis(
        _analysis(),
        pool_id=POOL_ID,
        suspected_attacker=Address(ATTACKER).checksum,
        detector=Address(KEEPER).checksum,
    )
    assert record.to_payload()["detector"] == Address(KEEPER).checksum


def test_negative_cooldown_rejected(gateway):
    with pytest.raises(ValueError):
        ChallengeCoordinator(gateway, cooldown_seconds=-1)
