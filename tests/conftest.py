"""Shared fakes: a manual clock and in-memory upstream readers."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import pytest

from app.errors import UpstreamError
from app.providers.base import ChainReader, PriceReader

UNIT = 10 ** 18


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeChainReader(ChainReader):
    name = "fake-rpc"

    def __init__(
        self,
        total_supply: int = 1_000_000 * UNIT,
        decimals: int = 18,
        balances: Optional[Dict[str, int]] = None,
    ):
        self.total_supply = total_supply
        self.decimals = decimals
        self.balances = balances or {}
        self.fail = False
        self.scalar_calls: List[List[str]] = []
        self.balance_calls: List[List[str]] = []
        self.closed = False

    async def read_scalar_fields(
        self, contract_address: str, abi: Sequence[Dict[str, Any]], field_names: Sequence[str]
    ) -> List[Any]:
        self.scalar_calls.append(list(field_names))
        if self.fail:
            raise UpstreamError("rpc down", source=self.name)
        values = {"totalSupply": self.total_supply, "decimals": self.decimals}
        return [values[name] for name in field_names]

    async def batch_balance_of(
        self, contract_address: str, abi: Sequence[Dict[str, Any]], addresses: Sequence[str]
    ) -> List[int]:
        self.balance_calls.append(list(addresses))
        if self.fail:
            raise UpstreamError("rpc down", source=self.name)
        return [self.balances.get(address, 0) for address in addresses]

    async def aclose(self) -> None:
        self.closed = True


class FakePriceReader(PriceReader):
    name = "fake-prices"

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self.prices = prices if prices is not None else {
            "ETH": Decimal("3150.42"),
            "USDC": Decimal("0.9998"),
        }
        self.fail = False
        self.calls: List[List[str]] = []
        self.closed = False

    async def fetch_prices(self, symbols: Sequence[str]) -> Dict[str, Decimal]:
        self.calls.append(list(symbols))
        await asyncio.sleep(0)
        if self.fail:
            raise UpstreamError("price api down", source=self.name)
        return {symbol: self.prices[symbol] for symbol in symbols if symbol in self.prices}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chain_reader() -> FakeChainReader:
    return FakeChainReader()


@pytest.fixture
def price_reader() -> FakePriceReader:
    return FakePriceReader()
