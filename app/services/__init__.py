"""Service layer: supply aggregation and price quotes"""

from .prices import PriceRecord, PriceService
from .supply import SupplyAggregator, SupplyRecord

__all__ = [
    "PriceRecord",
    "PriceService",
    "SupplyAggregator",
    "SupplyRecord",
]
