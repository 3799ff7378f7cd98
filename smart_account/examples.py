"""
Smart Account Demo Runner

Demo flows against a live node:
1. balances - initialize the account and print EOA / smart account balances
2. fund - make sure the smart account holds the configured minimum
3. check-balance ADDRESS - read any address's balance

Usage:
    python -m smart_account.examples balances [--config smart_account_config.yaml]

Reads PRIVATE_KEY (and optionally RPC_URL, SMART_ACCOUNT_ENV)
from the environment or a .env file. Exits with status 1 on failure.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from .config import load_config
from .exceptions import SmartAccountError
from .manager import SmartAccountManager
from .utils import format_ether


async def example_balances(manager: SmartAccountManager):
    await manager.initialize()
    await manager.display_balances()


async def example_fund(manager: SmartAccountManager):
    await manager.initialize()
    decision = await manager.ensure_funding()

    if decision.transferred:
        logger.info(f"✅ Funded with {format_ether(decision.amount)} ETH (tx: {decision.tx_hash})")
    else:
        logger.info("✅ No funding needed")

    await manager.display_balances()


async def example_check_balance(manager: SmartAccountManager, address: str):
    await manager.initialize()
    balance = await manager.check_balance(address)
    logger.info(f"{address}: {balance} wei ({format_ether(balance)} ETH)")


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    manager = SmartAccountManager(config)

    try:
        if args.command == 'balances':
            await example_balances(manager)
        elif args.command == 'fund':
            await example_fund(manager)
        elif args.command == 'check-balance':
            await example_check_balance(manager, args.address)
        return 0

    except SmartAccountError as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        await manager.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="smart_account.examples", description="Self-funded smart account demos")
    parser.add_argument('--config', default=None, help="YAML config file")
    parser.add_argument('--log-level', default="INFO")

    commands = parser.add_subparsers(dest='command', required=True)
    commands.add_parser('balances', help="Show EOA and smart account balances")
    commands.add_parser('fund', help="Top up the smart account to the minimum balance")
    check = commands.add_parser('check-balance', help="Read an address balance")
    check.add_argument('address')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    try:
        return asyncio.run(run(args))
    except SmartAccountError as e:
        # Configuration errors happen before the manager exists
        logger.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
