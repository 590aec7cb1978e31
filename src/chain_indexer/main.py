"""Command-line entry point for the chain indexer.

Usage:
    chain-indexer run                 # poll the node and index forever
    chain-indexer sync                # index up to the node's tip once
    chain-indexer sync --to 1000      # index up to height 1000
    chain-indexer rollback 998        # retract the block archived at 998
    chain-indexer height              # highest archived height
    chain-indexer balance <address>   # current balance of an address
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from prometheus_client import start_http_server

from chain_indexer.config.settings import AppConfig
from chain_indexer.engine.client import IndexerEngine
from chain_indexer.errors.indexer_errors import IndexerError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("chain_indexer")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chain-indexer", description="Blockchain ledger indexer")
    parser.add_argument("-c", "--config", default="", help="YAML config file")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("run", help="poll the node and index new blocks until stopped")

    sync = commands.add_parser("sync", help="index from the resume height once")
    sync.add_argument("--to", type=int, default=None, help="last height (default: node tip)")

    rollback = commands.add_parser("rollback", help="retract one archived block")
    rollback.add_argument("height", type=int)

    commands.add_parser("height", help="print the highest archived height")

    balance = commands.add_parser("balance", help="print the balance of an address")
    balance.add_argument("address")
    return parser


def load_config(path: str) -> AppConfig:
    if path:
        return AppConfig.from_yaml(path)
    return AppConfig()


def create_engine(config: AppConfig) -> IndexerEngine:
    """Build the engine the CLI commands run against."""
    return IndexerEngine(config)


async def run_command(args: argparse.Namespace, config: AppConfig) -> int:
    """Execute one parsed command; returns the process exit code."""
    if args.command == "run":
        config.task.enabled = True
    engine = create_engine(config)
    await engine.initialize()
    try:
        if args.command == "run":
            if config.metrics.enabled and engine.metrics is not None:
                start_http_server(config.metrics.port, registry=engine.metrics.registry)
                logger.info("Serving metrics on :%d", config.metrics.port)
            assert engine.task_manager is not None
            await engine.task_manager.wait()
        elif args.command == "sync":
            if args.to is None:
                last = await engine.sync_to_tip()
            else:
                last = await engine.driver.run(await engine.driver.resume_height(), args.to)
            print(last)
        elif args.command == "rollback":
            await engine.rollbacker.rollback_block(args.height)
            print(f"rolled back {args.height}")
        elif args.command == "height":
            print(await engine.blocks.max_height())
        elif args.command == "balance":
            balance = await engine.balances.get(args.address)
            print(balance.amount if balance is not None else 0)
    finally:
        await engine.close()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Parse *argv*, configure logging and metrics, and run the command."""
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    logging.basicConfig(level=config.log_level.value, format=_LOG_FORMAT)

    try:
        return asyncio.run(run_command(args, config))
    except IndexerError as exc:
        logger.error("%s failed [%s]: %s", args.command, exc.code, exc.message)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
