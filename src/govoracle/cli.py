"""Command-line interface for the governance oracle.

Commands:
  govoracle run                               Sync, tally and back up power until interrupted
  govoracle migrate [--status] [--rollback] [--target V] [--dry-run]
                                              Apply, roll back or list database migrations
  govoracle sync --network ID                 One sync run for a network
  govoracle tally --network ID                One tally run for a network
  govoracle seal --unlock-time UNIX PAYLOAD   Print an armored sealed ballot
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from .app import OracleApp
from .core.config import get_config
from .core.exceptions import OracleException
from .core.logging import configure_logging, correlation_context
from .core.migrations import MigrationRunner

logger = logging.getLogger(__name__)


async def _run_forever(app: OracleApp) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await app.start()
    try:
        await stop.wait()
    finally:
        await app.close()


def cmd_run(args: argparse.Namespace) -> int:
    """Start the scheduler."""
    config = get_config()
    if not config.networks:
        print("No networks configured (set GOVORACLE_NETWORKS or GOVORACLE_NETWORKS_FILE)", file=sys.stderr)
        return 1
    asyncio.run(_run_forever(OracleApp(config)))
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply pending migrations, or show their status."""
    runner = MigrationRunner()
    if args.status:
        for entry in runner.status():
            applied = entry.applied_at.isoformat() if entry.applied_at else "-"
            print(f"{entry.version}  {entry.state:<18} {applied:<32} {entry.description}")
        return 0

    if args.rollback:
        rolled_back = runner.down(target=args.target, dry_run=args.dry_run)
        if not rolled_back:
            print("Nothing to roll back.")
        for version in rolled_back:
            print(f"{'Would roll back' if args.dry_run else 'Rolled back'} migration {version}")
        return 0

    applied = runner.up(target=args.target, dry_run=args.dry_run)
    if not applied:
        print("Database is up to date.")
    for version in applied:
        print(f"{'Would apply' if args.dry_run else 'Applied'} migration {version}")
    return 0


async def _one_shot(action: Callable[[OracleApp], Awaitable[Any]]) -> Any:
    app = OracleApp()
    try:
        with correlation_context(task_name="cli"):
            return await action(app)
    finally:
        await app.close()


def cmd_sync(args: argparse.Namespace) -> int:
    """One sync run for a network."""

    async def sync_once(app: OracleApp) -> dict:
        return (await app.sync_engine.sync_network(args.network)).to_dict()

    print(json.dumps(asyncio.run(_one_shot(sync_once)), indent=2))
    return 0


def cmd_tally(args: argparse.Namespace) -> int:
    """One tally run for a network."""

    async def tally_once(app: OracleApp) -> dict:
        return (await app.tally_engine.run(args.network)).to_dict()

    print(json.dumps(asyncio.run(_one_shot(tally_once)), indent=2))
    return 0


def cmd_seal(args: argparse.Namespace) -> int:
    """Seal a JSON payload until the given unlock time."""
    try:
        payload = json.loads(args.payload)
    except json.JSONDecodeError as e:
        print(f"Payload is not valid JSON: {e}", file=sys.stderr)
        return 1

    async def seal(app: OracleApp):
        return await app.encryptor.encrypt(payload, args.unlock_time)

    ballot = asyncio.run(_one_shot(seal))
    print(f"# round {ballot.round} of chain {ballot.chain_hash}", file=sys.stderr)
    sys.stdout.write(ballot.ciphertext)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Multi-network governance oracle",
        prog="govoracle",
    )
    parser.add_argument("--log-level", default=None, help="Override GOVORACLE_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Run the scheduler until interrupted")

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate_parser.add_argument("--status", action="store_true", help="List migrations and their state")
    migrate_parser.add_argument("--rollback", action="store_true", help="Roll back instead of applying")
    migrate_parser.add_argument("--target", default=None, help="Apply up to (or roll back above) this version")
    migrate_parser.add_argument("--dry-run", action="store_true", help="Show what would be applied")

    sync_parser = subparsers.add_parser("sync", help="One sync run")
    sync_parser.add_argument("--network", type=int, required=True, help="Network (chain) id")

    tally_parser = subparsers.add_parser("tally", help="One tally run")
    tally_parser.add_argument("--network", type=int, required=True, help="Network (chain) id")

    seal_parser = subparsers.add_parser("seal", help="Seal a vote payload")
    seal_parser.add_argument("--unlock-time", type=int, required=True, help="Unix time the ballot opens")
    seal_parser.add_argument("payload", help='Vote payload as JSON, e.g. \'[["approve"]]\'')

    return parser


COMMANDS = {
    "run": cmd_run,
    "migrate": cmd_migrate,
    "sync": cmd_sync,
    "tally": cmd_tally,
    "seal": cmd_seal,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)

    try:
        return COMMANDS[args.command](args)
    except OracleException as e:
        logger.error("%s: %s", type(e).__name__, e.message)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
