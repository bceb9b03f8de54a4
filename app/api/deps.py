from typing import Dict

from fastapi import Request

from ..cache import FreshnessCache
from ..config import Settings
from ..services.prices import PriceService
from ..services.supply import SupplyAggregator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> FreshnessCache:
    return request.app.state.cache


def get_supply_aggregator(request: Request) -> SupplyAggregator:
    return request.app.state.supply


def get_price_service(request: Request) -> PriceService:
    return request.app.state.prices


def cache_headers(settings: Settings) -> Dict[str, str]:
    """Public Cache-Control for successful responses, independent of the internal TTL."""
    return {"Cache-Control": f"public, max-age={settings.response_cache_max_age_seconds}"}
