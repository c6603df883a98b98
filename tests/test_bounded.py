import pytest

from core.base_types import Address
from keeper.bounded import BehaviorHistory, KnownBotSet, TTLCache


class _Clock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_ttl_cache_sweep_evicts_only_expired():
    clock = _Clock()
    cache = TTLCache(60, clock=clock)
    cache.put("a", 1)
    clock.now = 30
    cache.put("b", 2)

    clock.now = 61
    assert cache.sweep() == 1
    assert "a" not in cache
    assert cache.get("b") == 2

    clock.now = 91
    assert cache.sweep() == 1
    assert len(cache) == 0


def test_ttl_cache_refresh_restarts_ttl():
    clock = _Clock()
    cache = TTLCache(10, clock=clock)
    cache.put("tx", None)
    clock.now = 9
    assert cache.put("tx", "resolved") is True
    assert cache.get("tx") == "resolved"

    clock.now = 10
    assert cache.sweep() == 0
    clock.now = 19
    assert cache.sweep() == 1
    assert cache.get("tx") is None


def test_ttl_cache_refuses_new_keys_at_cap():
    cache = TTLCache(60, max_entries=2)
    assert cache.put("a", 1)
    assert cache.put("b", 2)

    assert cache.full
    assert cache.put("c", 3) is False
    assert "a" in cache and "c" not in cache
    assert cache.put("a", 10) is True
    assert cache.get("a") == 10
    assert len(cache) == 2


def test_ttl_cache_rejects_bad_arguments():
    with pytest.raises(ValueError):
        TTLCache(0)
    with pytest.raises(ValueError):
        TTLCache(10, max_entries=0)


def test_behavior_history_window_counts():
    history = BehaviorHistory()
    sender = Address("0x" + "ba" * 20)
    for block in (100, 120, 148, 149):
        history.record(sender, block)

    assert history.count_within(sender, 149, 50) == 4
    assert history.count_within(sender, 170, 50) == 2
    assert history.count_within(sender, 149, 2) == 2
    assert history.count_within("0x" + "aa" * 20, 149, 50) == 0


def test_behavior_history_is_case_insensitive():
    history = BehaviorHistory()
    history.record("0x" + "BA" * 20, 5)
    assert history.entries(Address("0x" + "ba" * 20)) == [5]
    assert len(history) == 1


def test_behavior_history_ring_is_bounded():
    history = BehaviorHistory(max_entries_per_sender=3)
    for block in range(10):
        history.record("0x" + "ba" * 20, block)
    assert history.entries("0x" + "ba" * 20) == [7, 8, 9]


def test_known_bot_set_membership():
    bots = KnownBotSet(["0x" + "BA" * 20])
    assert Address("0x" + "ba" * 20) in bots
    assert "0x" + "ba" * 20 in bots
    assert 42 not in bots

    bots.remove("0x" + "ba" * 20)
    assert len(bots) == 0
    bots.add(Address("0x" + "aa" * 20))
    assert list(bots) == ["0x" + "aa" * 20]
