"""Total and circulating supply computed from on-chain balances."""

from __future__ import annotations

import decimal
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..cache import Clock, FreshnessCache, SystemClock
from ..errors import UpstreamError
from ..providers.base import ChainReader
from .evm import ERC20_ABI

logger = logging.getLogger(__name__)

SUPPLY_CACHE_KEY = "supply"

# uint256 has 78 decimal digits; leave room for the fractional part
_SCALE_CONTEXT = decimal.Context(prec=160)


def scale_units(raw: int, decimals: int) -> Decimal:
    """Convert a raw integer amount into token units without rounding."""

    return _SCALE_CONTEXT.scaleb(Decimal(raw), -decimals)


def format_decimal(value: Decimal) -> str:
    """Plain notation with trailing zeros removed (``1000000``, ``0.5``)."""

    if value == 0:
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""

    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class SupplyRecord:
    total_supply: Decimal
    circulating_supply: Decimal
    decimals: int
    computed_at: datetime

    def __post_init__(self) -> None:
        if not 0 <= self.decimals <= 255:
            raise ValueError(f"decimals out of range: {self.decimals}")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "total": self.total_supply,
            "circulating": self.circulating_supply,
            "decimals": self.decimals,
            "updated_at": format_timestamp(self.computed_at),
        }


class SupplyAggregator:
    """Computes supply figures and serves them through the freshness cache.

    Circulating supply is total supply minus the balances held by the burn
    and locked addresses.
    """

    def __init__(
        self,
        reader: ChainReader,
        cache: FreshnessCache,
        *,
        token_address: str,
        burn_addresses: Sequence[str],
        locked_addresses: Sequence[str],
        abi: Optional[Sequence[Dict[str, Any]]] = None,
        clock: Optional[Clock] = None,
    ):
        self._reader = reader
        self._cache = cache
        self.token_address = token_address
        self.burn_addresses: Tuple[str, ...] = tuple(burn_addresses)
        self.locked_addresses: Tuple[str, ...] = tuple(locked_addresses)
        self._abi = list(abi or ERC20_ABI)
        self._clock = clock or SystemClock()

    @property
    def excluded_addresses(self) -> Tuple[str, ...]:
        return self.burn_addresses + self.locked_addresses

    async def get_supply(self) -> SupplyRecord:
        return await self._cache.get(SUPPLY_CACHE_KEY, self.compute_supply)

    async def compute_supply(self) -> SupplyRecord:
        logger.info("Fetching fresh supply data from the chain")

        total_raw, decimals = await self._reader.read_scalar_fields(
            self.token_address, self._abi, ["totalSupply", "decimals"]
        )
        balances: List[int] = await self._reader.batch_balance_of(
            self.token_address, self._abi, self.excluded_addresses
        )
        if len(balances) != len(self.excluded_addresses):
            raise UpstreamError(
                f"Expected {len(self.excluded_addresses)} balances, got {len(balances)}",
                source="rpc",
            )

        excluded_raw = sum(int(balance) for balance in balances)
        total = scale_units(int(total_raw), int(decimals))
        excluded = scale_units(excluded_raw, int(decimals))

        record = SupplyRecord(
            total_supply=total,
            circulating_supply=_SCALE_CONTEXT.subtract(total, excluded),
            decimals=int(decimals),
            computed_at=self._clock.now(),
        )
        logger.info(
            "Updated supply data: total=%s circulating=%s decimals=%d",
            format_decimal(record.total_supply),
            format_decimal(record.circulating_supply),
            record.decimals,
        )
        return record
