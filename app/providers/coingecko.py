import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

from ..errors import UpstreamError
from .base import PriceReader

logger = logging.getLogger(__name__)


class CoingeckoPriceReader(PriceReader):
    """Coingecko API reader for USD token prices"""

    name = "coingecko"
    timeout_s = 15

    def __init__(
        self,
        token_ids: Mapping[str, str],
        *,
        api_key: str = "",
        base_url: str = "https://api.coingecko.com/api/v3",
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[float] = None,
        vs_currency: str = "usd",
    ):
        self.token_ids = {symbol.upper(): coin_id for symbol, coin_id in token_ids.items()}
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.vs_currency = vs_currency
        if timeout_s is not None:
            self.timeout_s = timeout_s
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout_s)

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_prices(self, symbols: Sequence[str]) -> Dict[str, Decimal]:
        """Get current USD prices for the given symbols in a single request"""
        wanted = {}
        for symbol in symbols:
            coin_id = self.token_ids.get(symbol.upper())
            if coin_id:
                wanted[symbol.upper()] = coin_id
        if not wanted:
            return {}

        params = {
            "ids": ",".join(sorted(set(wanted.values()))),
            "vs_currencies": self.vs_currency,
        }

        try:
            response = await self._client.get(
                f"{self.base_url}/simple/price",
                headers=self._build_headers(),
                params=params,
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            # parse_float keeps quotes exact
            data = response.json(parse_float=Decimal)
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"Coingecko returned HTTP {exc.response.status_code}", source=self.name
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Coingecko request failed: {exc!r}", source=self.name) from exc
        except ValueError as exc:
            raise UpstreamError("Coingecko returned invalid JSON", source=self.name) from exc

        if not isinstance(data, dict):
            raise UpstreamError("Unexpected Coingecko payload", source=self.name)

        prices: Dict[str, Decimal] = {}
        for symbol, coin_id in wanted.items():
            price = _extract_price(data.get(coin_id), self.vs_currency)
            if price is None:
                logger.info("No %s quote for %s (%s)", self.vs_currency, symbol, coin_id)
                continue
            prices[symbol] = price
        return prices


def _extract_price(entry: Any, vs_currency: str) -> Optional[Decimal]:
    if not isinstance(entry, dict):
        return None
    value = entry.get(vs_currency)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        try:
            return Decimal(value)
        except ArithmeticError:
            return None
    return None
