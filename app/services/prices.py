"""USD price quotes for the configured token set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from ..cache import Clock, FreshnessCache, SystemClock
from ..errors import NotFoundError, ValidationError
from ..providers.base import PriceReader
from .supply import format_timestamp

logger = logging.getLogger(__name__)

PRICES_CACHE_KEY = "prices"


@dataclass(frozen=True)
class PriceRecord:
    prices: Mapping[str, Decimal] = field(default_factory=dict)
    computed_at: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "prices": dict(self.prices),
            "updated_at": format_timestamp(self.computed_at) if self.computed_at else None,
        }


class PriceService:
    def __init__(
        self,
        reader: PriceReader,
        cache: FreshnessCache,
        *,
        token_ids: Mapping[str, str],
        clock: Optional[Clock] = None,
    ):
        self._reader = reader
        self._cache = cache
        self.token_ids: Mapping[str, str] = MappingProxyType(
            {symbol.upper(): coin_id for symbol, coin_id in token_ids.items()}
        )
        self._clock = clock or SystemClock()

    @property
    def supported_symbols(self) -> Tuple[str, ...]:
        return tuple(sorted(self.token_ids))

    def normalize_symbol(self, symbol: str) -> str:
        normalized = (symbol or "").strip().upper()
        if normalized not in self.token_ids:
            raise ValidationError(symbol, self.supported_symbols)
        return normalized

    async def compute_prices(self) -> PriceRecord:
        logger.info("Fetching fresh prices for %s", ", ".join(self.supported_symbols))
        quotes = await self._reader.fetch_prices(self.supported_symbols)
        prices = {symbol: quotes[symbol] for symbol in self.supported_symbols if symbol in quotes}
        return PriceRecord(prices=MappingProxyType(prices), computed_at=self._clock.now())

    async def get_prices(self) -> PriceRecord:
        return await self._cache.get(PRICES_CACHE_KEY, self.compute_prices)

    async def get_price(self, symbol: str) -> Decimal:
        """Price for one symbol (case-insensitive).

        Raises ``ValidationError`` before touching the cache when the symbol
        is not configured, and ``NotFoundError`` when no quote is available.
        """
        normalized = self.normalize_symbol(symbol)
        record = await self.get_prices()
        price = record.prices.get(normalized)
        if price is None:
            raise NotFoundError(f"No price available for {normalized}")
        return price
