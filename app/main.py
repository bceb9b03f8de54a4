import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import health, prices, supply
from .auth import log_api_key_mode
from .cache import Clock, FreshnessCache, SystemClock
from .config import Settings, load_settings
from .errors import ConfigError, SupplyApiError, UpstreamError
from .logging_config import setup_logging
from .middleware import RateLimiter, RateLimitMiddleware, RequestLoggingMiddleware
from .providers.base import ChainReader, PriceReader
from .providers.coingecko import CoingeckoPriceReader
from .providers.rpc import JsonRpcChainReader
from .services.prices import PRICES_CACHE_KEY, PriceService
from .services.supply import SUPPLY_CACHE_KEY, SupplyAggregator

logger = logging.getLogger(__name__)

APP_TITLE = "Clones Supply API"
APP_VERSION = "0.1.0"


async def _warm_supply_cache(aggregator: SupplyAggregator) -> None:
    try:
        await aggregator.get_supply()
    except UpstreamError as exc:
        logger.error("Initial supply fetch failed: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    log_api_key_mode(settings)
    logger.info("%s starting on port %d", APP_TITLE, settings.port)

    warmup: Optional[asyncio.Task] = None
    if settings.warm_cache_on_startup:
        warmup = asyncio.create_task(_warm_supply_cache(app.state.supply), name="supply-warmup")

    try:
        yield
    finally:
        if warmup is not None and not warmup.done():
            warmup.cancel()
        await app.state.chain_reader.aclose()
        await app.state.price_reader.aclose()


async def _supply_api_error_handler(request: Request, exc: SupplyApiError) -> JSONResponse:
    if isinstance(exc, UpstreamError):
        logger.error("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


def create_app(
    settings: Optional[Settings] = None,
    *,
    chain_reader: Optional[ChainReader] = None,
    price_reader: Optional[PriceReader] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Build the application.

    Readers and the clock can be injected; by default the JSON-RPC and
    Coingecko readers are created from ``settings``.
    """
    settings = settings or load_settings()
    clock = clock or SystemClock()

    chain_reader = chain_reader or JsonRpcChainReader(
        settings.base_rpc_url,
        timeout_s=settings.request_timeout_seconds,
        max_batch_size=settings.rpc_max_batch_size,
    )
    price_reader = price_reader or CoingeckoPriceReader(
        settings.price_token_ids,
        api_key=settings.coingecko_api_key,
        base_url=settings.coingecko_base_url,
        timeout_s=settings.request_timeout_seconds,
    )

    cache = FreshnessCache(
        {
            SUPPLY_CACHE_KEY: timedelta(seconds=settings.supply_cache_ttl_seconds),
            PRICES_CACHE_KEY: timedelta(seconds=settings.price_cache_ttl_seconds),
        },
        clock=clock,
        serve_stale_while_refreshing=settings.serve_stale_while_refreshing,
    )

    app = FastAPI(
        title=APP_TITLE,
        description="Token supply and price metrics for the Clones token",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.cache = cache
    app.state.chain_reader = chain_reader
    app.state.price_reader = price_reader
    app.state.supply = SupplyAggregator(
        chain_reader,
        cache,
        token_address=settings.token_address,
        burn_addresses=settings.burn_addresses,
        locked_addresses=settings.locked_addresses,
        clock=clock,
    )
    app.state.prices = PriceService(
        price_reader,
        cache,
        token_ids=settings.price_token_ids,
        clock=clock,
    )

    app.add_exception_handler(SupplyApiError, _supply_api_error_handler)

    # Last added runs first: logging wraps rate limiting wraps CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    if settings.enable_rate_limit:
        app.add_middleware(
            RateLimitMiddleware,
            rate_limiter=RateLimiter(
                limit=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            ),
        )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["Health"])
    app.include_router(supply.router, tags=["Supply"])
    app.include_router(prices.router, tags=["Prices"])

    return app


def main() -> None:
    """Console entry point: configure logging, load settings, serve."""
    import uvicorn

    try:
        settings = load_settings()
    except ConfigError as exc:
        setup_logging()
        logger.critical("Refusing to start: %s", exc)
        sys.exit(1)

    setup_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
