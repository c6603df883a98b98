"""CLI entrypoint for the Hook'd Guard keeper agent."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys

from chain.errors import ChainError
from chain.pool_manager import PoolKey
from config import KeeperConfig, get_env
from core.base_types import Address, TokenAmount
from keeper.agent import build_agent, build_gateway
from keeper.coordinator import ChallengeCoordinator


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hook'd Guard keeper agent")
    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Watch the mempool and challenge MEV")
    run.add_argument(
        "--known-bot",
        action="append",
        default=[],
        help="Address to treat as a known bot (repeatable)",
    )

    subparsers.add_parser("register", help="Stake MIN_STAKE and register as keeper")
    subparsers.add_parser("keeper-status", help="Show keeper stake and reputation")

    challenges = subparsers.add_parser("challenges", help="List challenges for a pool")
    challenges.add_argument("--pool", required=True, help="Pool id (bytes32 hex)")

    vote = subparsers.add_parser("vote", help="Vote on a challenge")
    vote.add_argument("--pool", required=True, help="Pool id (bytes32 hex)")
    vote.add_argument("--id", type=int, required=True, help="Challenge id")
    side = vote.add_mutually_exclusive_group(required=True)
    side.add_argument("--support", dest="support", action="store_true")
    side.add_argument("--against", dest="support", action="store_false")

    execute = subparsers.add_parser("execute", help="Execute a challenge")
    execute.add_argument("--pool", required=True, help="Pool id (bytes32 hex)")
    execute.add_argument("--id", type=int, required=True, help="Challenge id")

    pool_status = subparsers.add_parser("pool-status", help="Show hook state for a pool")
    pool_status.add_argument("--pool", required=True, help="Pool id (bytes32 hex)")

    events = subparsers.add_parser("events", help="Print hook events since a block")
    events.add_argument("--from-block", type=int, required=True)
    events.add_argument("--to-block", type=int, default=None)

    pool_id = subparsers.add_parser("pool-id", help="Compute a pool id from its key")
    pool_id.add_argument("--currency0", required=True)
    pool_id.add_argument("--currency1", required=True)
    pool_id.add_argument("--fee", type=int, required=True)
    pool_id.add_argument("--tick-spacing", type=int, required=True)
    pool_id.add_argument("--hooks", required=True)

    parser.set_defaults(command="run", known_bot=[])
    return parser


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    _configure_logging(get_env("LOG_LEVEL", "INFO") or "INFO")

    try:
        if args.command == "pool-id":
            key = PoolKey(
                currency0=Address.from_string(args.currency0),
                currency1=Address.from_string(args.currency1),
                fee=args.fee,
                tick_spacing=args.tick_spacing,
                hooks=Address.from_string(args.hooks),
            )
            print(key.pool_id)
            return

        config = KeeperConfig.from_env()
        if args.command == "run":
            asyncio.run(_run(config, args.known_bot))
            return
        asyncio.run(_admin(config, args))
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    except ChainError as exc:
        print(f"chain error: {exc}", file=sys.stderr)
        sys.exit(1)


async def _run(config: KeeperConfig, known_bots: list[str]) -> None:
    agent = build_agent(config, extra_known_bots=known_bots)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, agent.request_stop)
    await agent.run_forever()


async def _admin(config: KeeperConfig, args: argparse.Namespace) -> None:
    gateway = build_gateway(config)
    coordinator = ChallengeCoordinator(gateway, cooldown_seconds=config.cooldown_seconds)

    if args.command == "register":
        stake = TokenAmount.from_human(config.min_stake_eth, 18, "ETH")
        registered = await coordinator.ensure_registered(stake.raw)
        print("registered" if registered else "already registered")
        return

    if args.command == "keeper-status":
        info = await gateway.read_keeper(gateway.keeper_address)
        print(
            json.dumps(
                {
                    "keeper": gateway.keeper_address.checksum,
                    "balance": str(await gateway.keeper_balance()),
                    "active": info.is_active,
                    "stake": str(info.stake_eth),
                    "reputation": info.reputation_score,
                },
                indent=2,
            )
        )
        return

    if args.command == "pool-status":
        state = await gateway.read_pool_state(args.pool)
        pool_config = await gateway.read_pool_config(args.pool)
        print(
            json.dumps(
                {
                    "poolId": args.pool,
                    "recentVolume": str(state.recent_volume),
                    "baselineVolume": str(state.baseline_volume),
                    "lastUpdateBlock": state.last_update_block,
                    "velocityMultiplier": pool_config.velocity_multiplier,
                    "blockWindow": pool_config.block_window,
                    "surgeFeeMultiplier": pool_config.surge_fee_multiplier,
                    "protectionEnabled": pool_config.protection_enabled,
                },
                indent=2,
            )
        )
        return

    if args.command == "events":
        to_block = args.to_block if args.to_block is not None else "latest"
        for event in await gateway.hook_events(args.from_block, to_block):
            print(
                json.dumps(
                    {"event": event.name, "block": event.block_number, "args": event.args},
                    default=str,
                )
            )
        return

    if args.command == "challenges":
        for challenge in await coordinator.challenges(args.pool):
            print(json.dumps(_challenge_dict(challenge)))
        return

    if args.command == "vote":
        challenge = await coordinator.vote(args.pool, args.id, args.support)
        print(json.dumps(_challenge_dict(challenge), indent=2))
        return

    if args.command == "execute":
        challenge = await coordinator.execute(args.pool, args.id)
        print(json.dumps(_challenge_dict(challenge), indent=2))
        return


def _challenge_dict(challenge) -> dict:
    return {
        "id": challenge.challenge_id,
        "suspectedAttacker": challenge.suspected_attacker.checksum,
        "challenger": challenge.challenger.checksum,
        "evidenceHash": challenge.evidence_hash,
        "submitBlock": challenge.submit_block,
        "votesFor": challenge.votes_for,
        "votesAgainst": challenge.votes_against,
        "executed": challenge.executed,
        "challengerStake": str(TokenAmount.ether(challenge.challenger_stake)),
    }


if __name__ == "__main__":
    main()
