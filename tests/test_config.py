from decimal import Decimal

import pytest

import config
from config import DetectionThresholds, KeeperConfig

REQUIRED = {
    "RPC_URL": "https://rpc.example",
    "WS_URL": "wss://ws.example",
    "PRIVATE_KEY": "0x" + "11" * 32,
    "HOOK_ADDRESS": "0x" + "c0" * 20,
    "POOL_MANAGER_ADDRESS": "0x" + "44" * 20,
}
OPTIONAL = (
    "CHAIN_ID",
    "MIN_STAKE",
    "HIGH_GAS_THRESHOLD",
    "LARGE_SWAP_THRESHOLD",
    "FREQUENCY_THRESHOLD",
    "MONITORED_POOLS",
    "KNOWN_BOTS",
    "CHALLENGE_GAS_LIMIT",
    "BLOCK_TIME_SECONDS",
    "CHALLENGE_COOLDOWN_BLOCKS",
    "LOG_LEVEL",
)


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setattr(config, "_ENV_LOADED", True)
    for name in OPTIONAL:
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


def test_defaults(env):
    cfg = KeeperConfig.from_env()

    assert cfg.chain_id == 11155111
    assert cfg.min_stake_eth == Decimal("0.1")
    assert cfg.thresholds == DetectionThresholds()
    assert cfg.thresholds.high_gas_gwei == Decimal("100")
    assert cfg.thresholds.large_swap_pct == Decimal("5")
    assert cfg.thresholds.frequency == 3
    assert cfg.monitored_pools == []
    assert cfg.known_bots == []
    assert cfg.challenge_gas_limit == 500_000
    assert cfg.cooldown_seconds == 1200
    assert cfg.log_level == "INFO"


def test_overrides_and_lists(env):
    env.setenv("HIGH_GAS_THRESHOLD", "50.5")
    env.setenv("FREQUENCY_THRESHOLD", "5")
    env.setenv("MONITORED_POOLS", " 0xAB, ,0xcd ")
    env.setenv("KNOWN_BOTS", "0x" + "ba" * 20)
    env.setenv("CHALLENGE_COOLDOWN_BLOCKS", "10")
    env.setenv("BLOCK_TIME_SECONDS", "2")
    env.setenv("LOG_LEVEL", "debug")

    cfg = KeeperConfig.from_env()

    assert cfg.thresholds.high_gas_gwei == Decimal("50.5")
    assert cfg.thresholds.frequency == 5
    assert cfg.monitored_pools == ["0xab", "0xcd"]
    assert cfg.known_bots == ["0x" + "ba" * 20]
    assert cfg.cooldown_seconds == 20
    assert cfg.log_level == "DEBUG"


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_missing_required_exits(env, missing):
    env.delenv(missing)
    with pytest.raises(SystemExit, match=missing):
        KeeperConfig.from_env()


def test_invalid_values_rejected(env):
    env.setenv("MIN_STAKE", "0")
    with pytest.raises(ValueError, match="min_stake_eth"):
        KeeperConfig.from_env()


def test_thresholds_validate():
    with pytest.raises(ValueError, match="frequency"):
        DetectionThresholds(frequency=0)
    with pytest.raises(ValueError, match="high_gas_gwei"):
        DetectionThresholds(high_gas_gwei=Decimal("-1"))
