"""Environment-driven configuration for the keeper agent."""

from __future__ import annotations

import importlib
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

_ENV_LOADED = False

DEFAULT_CHAIN_ID = 11155111  # Sepolia


def _load_env() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    try:
        dotenv = importlib.import_module("dotenv")
    except ImportError as exc:  # pragma: no cover
        raise SystemExit("python-dotenv is required (pip install -e .)") from exc
    env_path = Path(__file__).resolve().parents[1] / ".env"
    dotenv.load_dotenv(dotenv_path=env_path)
    _ENV_LOADED = True


def get_env(
    name: str, default: str | None = None, required: bool = False
) -> str | None:
    _load_env()
    value = os.environ.get(name, default)
    if required and (value is None or value == ""):
        raise SystemExit(f"{name} env var is required")
    return value


def get_list(name: str) -> list[str]:
    raw = get_env(name, "") or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class DetectionThresholds:
    """Per-signal thresholds used by the signal engine."""

    high_gas_gwei: Decimal = Decimal("100")
    large_swap_pct: Decimal = Decimal("5")
    frequency: int = 3

    def __post_init__(self) -> None:
        if self.high_gas_gwei < 0:
            raise ValueError("high_gas_gwei must be non-negative")
        if self.large_swap_pct < 0:
            raise ValueError("large_swap_pct must be non-negative")
        if self.frequency < 1:
            raise ValueError("frequency must be >= 1")


@dataclass
class KeeperConfig:
    rpc_url: str
    ws_url: str
    private_key: str
    hook_address: str
    pool_manager_address: str
    chain_id: int = DEFAULT_CHAIN_ID
    min_stake_eth: Decimal = Decimal("0.1")
    thresholds: DetectionThresholds = field(default_factory=DetectionThresholds)
    monitored_pools: list[str] = field(default_factory=list)
    known_bots: list[str] = field(default_factory=list)
    challenge_gas_limit: int = 500_000
    block_time_seconds: float = 12.0
    challenge_cooldown_blocks: int = 100
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.chain_id <= 0:
            raise ValueError("chain_id must be positive")
        if self.min_stake_eth <= 0:
            raise ValueError("min_stake_eth must be positive")
        if self.challenge_gas_limit <= 0:
            raise ValueError("challenge_gas_limit must be positive")
        if self.block_time_seconds <= 0:
            raise ValueError("block_time_seconds must be positive")
        if self.challenge_cooldown_blocks < 0:
            raise ValueError("challenge_cooldown_blocks must be non-negative")
        self.monitored_pools = [pool.lower() for pool in self.monitored_pools]

    @property
    def cooldown_seconds(self) -> float:
        """Wall-clock equivalent of the challenge cooldown window."""
        return self.challenge_cooldown_blocks * self.block_time_seconds

    @classmethod
    def from_env(cls) -> "KeeperConfig":
        """Build config from the process environment; exits on missing values."""
        thresholds = DetectionThresholds(
            high_gas_gwei=Decimal(get_env("HIGH_GAS_THRESHOLD", "100") or "100"),
            large_swap_pct=Decimal(get_env("LARGE_SWAP_THRESHOLD", "5") or "5"),
            frequency=int(get_env("FREQUENCY_THRESHOLD", "3") or "3"),
        )
        return cls(
            rpc_url=str(get_env("RPC_URL", required=True)),
            ws_url=str(get_env("WS_URL", required=True)),
            private_key=str(get_env("PRIVATE_KEY", required=True)),
            hook_address=str(get_env("HOOK_ADDRESS", required=True)),
            pool_manager_address=str(get_env("POOL_MANAGER_ADDRESS", required=True)),
            chain_id=int(get_env("CHAIN_ID", str(DEFAULT_CHAIN_ID)) or DEFAULT_CHAIN_ID),
            min_stake_eth=Decimal(get_env("MIN_STAKE", "0.1") or "0.1"),
            thresholds=thresholds,
            monitored_pools=get_list("MONITORED_POOLS"),
            known_bots=get_list("KNOWN_BOTS"),
            challenge_gas_limit=int(get_env("CHALLENGE_GAS_LIMIT", "500000") or "500000"),
            block_time_seconds=float(get_env("BLOCK_TIME_SECONDS", "12") or "12"),
            challenge_cooldown_blocks=int(
                get_env("CHALLENGE_COOLDOWN_BLOCKS", "100") or "100"
            ),
            log_level=(get_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        )
