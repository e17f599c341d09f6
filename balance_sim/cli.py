# cli.py
import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional

import structlog
from eth_utils import to_checksum_address

from .config import SimulatorConfig
from .core.state import StateView
from .errors import BalanceSimError, ValidationError
from .ethereum.provider import RpcStateProvider
from .logging_config import configure_logging
from .simulation.params import parse_address, parse_rpc_url
from .simulation.simulator import Simulator
from .slots.finder import find_balance_slot

logger = structlog.get_logger()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="balance-sim",
        description="Discover ERC20 balance slots and simulate calls with an overridden balance",
    )
    parser.add_argument('--log-level', default=os.environ.get('LOG_LEVEL', 'INFO'), choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], help='Logging level (default: INFO)')
    parser.add_argument('--console-logs', action='store_true', help='Human readable logs instead of JSON')
    parser.add_argument('--rpc-url', default=os.environ.get('ETH_RPC'), help='JSON-RPC endpoint (default: $ETH_RPC)')

    subparsers = parser.add_subparsers(dest="command", required=True)

    find_slot = subparsers.add_parser("find-slot", help="Discover the storage slot holding a balance")
    find_slot.add_argument('--token', required=True, help='ERC20 token address')
    find_slot.add_argument('--holder', required=True, help='Balance holder address')

    simulate = subparsers.add_parser("simulate", help="Override a balance and simulate approve + target call")
    simulate.add_argument('--chain-id', required=True, help='Chain id of the RPC endpoint')
    simulate.add_argument('--user', required=True, help='Address that receives the balance and sends both transactions')
    simulate.add_argument('--token', required=True, help='ERC20 token to override')
    simulate.add_argument('--target', required=True, help='Spender approved for the token and target of the call')
    simulate.add_argument('--calldata', default='0x', help='Hex calldata of the target call')
    simulate.add_argument('--amount', required=True, help='Balance to give the user (decimal or 0x hex)')
    simulate.add_argument('--remote-timeout-ms', type=int, default=None, help='eth_callMany timeout (default: $BALANCE_SIM_REMOTE_TIMEOUT_MS or 5000)')
    return parser.parse_args(argv)


def run_find_slot(args: argparse.Namespace, config: SimulatorConfig) -> dict:
    rpc_url = parse_rpc_url(args.rpc_url)
    token = parse_address("token", args.token)
    holder = parse_address("holder", args.holder)

    provider = RpcStateProvider(rpc_url, config.rpc_timeout_seconds)
    block = provider.get_latest_block()
    view = StateView(provider=provider, block_number=block.number)
    slot = find_balance_slot(token, holder, view, block)
    return {
        "token": to_checksum_address(token),
        "holder": to_checksum_address(holder),
        "address": to_checksum_address(slot.address),
        "slot": hex(slot.slot),
        "block_number": block.number,
    }


def run_simulate(args: argparse.Namespace, config: SimulatorConfig) -> dict:
    if args.remote_timeout_ms is not None:
        config.remote_timeout_ms = args.remote_timeout_ms
    simulator = Simulator(config)
    result = asyncio.run(
        simulator.simulate(
            args.user, args.token, args.target, args.calldata, args.amount, args.chain_id, args.rpc_url
        )
    )
    return result.to_dict()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = SimulatorConfig.from_env()
    config.log_level = args.log_level
    configure_logging(config.log_level, json_output=not args.console_logs)

    commands = {"find-slot": run_find_slot, "simulate": run_simulate}
    try:
        if args.rpc_url is None:
            raise ValidationError("rpc_url", "pass --rpc-url or set ETH_RPC")
        output = commands[args.command](args, config)
    except BalanceSimError as e:
        logger.error("Command failed", command=args.command, stage=e.stage, error=str(e))
        print(json.dumps({"error": str(e), "stage": e.stage}), file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
