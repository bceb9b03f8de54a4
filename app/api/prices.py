from fastapi import APIRouter, Depends, Path
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..auth import require_api_key
from ..config import Settings
from ..services.prices import PriceService
from ..services.supply import format_decimal
from ..types import PricesResponse
from .deps import cache_headers, get_price_service, get_settings

# ValidationError, NotFoundError and UpstreamError reach the app-level handlers
router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get("/price/{symbol}", response_class=PlainTextResponse)
async def get_price(
    symbol: str = Path(..., description="Token symbol, case-insensitive"),
    prices: PriceService = Depends(get_price_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    """USD price for one token as plain text"""
    price = await prices.get_price(symbol)
    return PlainTextResponse(format_decimal(price), headers=cache_headers(settings))


@router.get("/prices", response_model=PricesResponse)
async def get_prices(
    prices: PriceService = Depends(get_price_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    """USD prices for every configured token that has a quote"""
    record = await prices.get_prices()
    body = PricesResponse(**record.to_payload())
    return JSONResponse(body.model_dump(mode="json"), headers=cache_headers(settings))
