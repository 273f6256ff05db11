#!/usr/bin/env python3
"""
Fetch Move module interfaces from a Sui full node and print them as JSON.

This helper drives the same fetch-and-cache path as the ABI service and can be
executed from a developer workstation or CI job:

    python scripts/fetch_abi.py 0xdee9::clob_v2
    python scripts/fetch_abi.py 0xdee9 --list --network testnet
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

from service_abi.app.config import get_abi_config
from service_abi.app.fetcher.orchestrator import create_abi_fetcher
from service_abi.app.fetcher.validation import parse_package_input
from shared.errors import AbiAccessException
from shared.logging import configure_logging


LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


async def fetch(target: str, *, network: str, rpc_url: str, include_source: bool, list_only: bool) -> Any:
    """Resolve ``target`` and return a JSON-serialisable result."""
    overrides = {"network": network}
    if rpc_url:
        overrides["rpc_url"] = rpc_url
    config = get_abi_config(**overrides)
    fetcher = create_abi_fetcher(config)

    package_id, module_name = parse_package_input(target)

    if list_only:
        return {"package_id": package_id, "modules": await fetcher.list_modules(package_id)}

    if module_name:
        module = await fetcher.fetch_module(package_id, module_name, include_source=include_source)
        return module.to_dict()

    modules = await fetcher.fetch_package(package_id)
    return [module.to_dict() for module in modules]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch Move module interfaces from a Sui full node.")
    parser.add_argument("target", help="Package id, or package::module (e.g. 0x2::coin)")
    parser.add_argument("--network", default=os.getenv("ABI_NETWORK", "mainnet"), choices=["mainnet", "testnet", "devnet"], help="Sui network")
    parser.add_argument("--rpc-url", default=os.getenv("ABI_RPC_URL"), help="Override the full node URL")
    parser.add_argument("--no-source", action="store_true", help="Skip disassembled source")
    parser.add_argument("--list", action="store_true", help="Only list module names")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write the JSON result")
    parser.add_argument("--log-level", type=str.lower, default=os.getenv("ABI_LOG_LEVEL", "warning"), choices=LOG_LEVELS, help="Log level")
    args = parser.parse_args()
    # choices are not applied to defaults, so check the ABI_LOG_LEVEL value too
    if args.log_level not in LOG_LEVELS:
        parser.error(f"invalid log level: {args.log_level!r} (choose from {', '.join(LOG_LEVELS)})")
    return args


def main() -> int:
    args = _parse_args()
    configure_logging("abi", args.log_level, json_logs=False, stream=sys.stderr)

    try:
        result = asyncio.run(
            fetch(
                args.target,
                network=args.network,
                rpc_url=args.rpc_url,
                include_source=not args.no_source,
                list_only=args.list,
            )
        )
    except KeyboardInterrupt:
        return 130
    except AbiAccessException as exc:
        print(f"[fetch-abi] {exc.code.value}: {exc.message}", file=sys.stderr)
        return 1

    rendered = json.dumps(result, indent=2)
    print(rendered)

    if args.output:
        args.output.write_text(rendered)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
