#!/usr/bin/env python3
"""Simple CLI for checking supply and prices without starting the server"""

import argparse
import asyncio
import sys
from datetime import timedelta

from app.cache import FreshnessCache
from app.config import load_settings
from app.errors import ConfigError, UpstreamError
from app.logging_config import setup_logging
from app.providers.coingecko import CoingeckoPriceReader
from app.providers.rpc import JsonRpcChainReader
from app.services.prices import PriceService
from app.services.supply import SupplyAggregator, format_decimal, format_timestamp


async def cli_supply(settings) -> None:
    reader = JsonRpcChainReader(
        settings.base_rpc_url,
        timeout_s=settings.request_timeout_seconds,
        max_batch_size=settings.rpc_max_batch_size,
    )
    aggregator = SupplyAggregator(
        reader,
        FreshnessCache(default_ttl=timedelta(seconds=settings.supply_cache_ttl_seconds)),
        token_address=settings.token_address,
        burn_addresses=settings.burn_addresses,
        locked_addresses=settings.locked_addresses,
    )
    try:
        record = await aggregator.get_supply()
    finally:
        await reader.aclose()

    print("Supply")
    print("=" * 50)
    print(f"Token:       {settings.token_address}")
    print(f"Total:       {format_decimal(record.total_supply)}")
    print(f"Circulating: {format_decimal(record.circulating_supply)}")
    print(f"Decimals:    {record.decimals}")
    print(f"Updated:     {format_timestamp(record.computed_at)}")


async def cli_prices(settings) -> None:
    reader = CoingeckoPriceReader(
        settings.price_token_ids,
        api_key=settings.coingecko_api_key,
        base_url=settings.coingecko_base_url,
        timeout_s=settings.request_timeout_seconds,
    )
    service = PriceService(
        reader,
        FreshnessCache(default_ttl=timedelta(seconds=settings.price_cache_ttl_seconds)),
        token_ids=settings.price_token_ids,
    )
    try:
        record = await service.get_prices()
    finally:
        await reader.aclose()

    print("Prices (USD)")
    print("=" * 50)
    for symbol in service.supported_symbols:
        price = record.prices.get(symbol)
        print(f"{symbol:<10} {format_decimal(price) if price is not None else 'n/a'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clones Supply API CLI")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the HTTP API")
    subparsers.add_parser("supply", help="Fetch total and circulating supply once")
    subparsers.add_parser("prices", help="Fetch USD prices once")

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "serve":
        from app.main import main as serve
        serve()
        return 0

    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level, console=True)

    try:
        if args.command == "supply":
            asyncio.run(cli_supply(settings))
        elif args.command == "prices":
            asyncio.run(cli_prices(settings))
    except UpstreamError as exc:
        print(f"❌ Upstream failure: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
