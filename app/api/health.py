from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ..cache import FreshnessCache
from ..config import Settings
from ..services.prices import PRICES_CACHE_KEY
from ..services.supply import SUPPLY_CACHE_KEY
from ..types import CacheHealthResponse
from .deps import get_cache, get_settings

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
async def health() -> PlainTextResponse:
    """Liveness only; never touches upstreams"""
    return PlainTextResponse("OK", status_code=200)


@router.get("/healthz", response_model=CacheHealthResponse)
async def health_details(
    cache: FreshnessCache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> CacheHealthResponse:
    """Cache diagnostics: state, age and last refresh error per key"""

    caches = cache.snapshot()
    for key in (SUPPLY_CACHE_KEY, PRICES_CACHE_KEY):
        caches.setdefault(key, {"state": "idle", "has_value": False, "fresh": False})

    has_error = any(entry.get("last_error") for entry in caches.values())
    supply_ready = caches[SUPPLY_CACHE_KEY]["has_value"]

    return CacheHealthResponse(
        status="ok" if supply_ready and not has_error else "degraded",
        environment=settings.environment,
        caches=caches,
    )
