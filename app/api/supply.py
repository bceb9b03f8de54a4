import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..config import Settings
from ..errors import UpstreamError
from ..services.supply import SupplyAggregator, format_decimal
from ..types import SupplyResponse
from .deps import cache_headers, get_settings, get_supply_aggregator

router = APIRouter()
_logger = logging.getLogger(__name__)


@router.get("/total", response_class=PlainTextResponse)
async def get_total_supply(
    supply: SupplyAggregator = Depends(get_supply_aggregator),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Total supply as plain text"""
    try:
        record = await supply.get_supply()
    except UpstreamError as e:
        _logger.error("Error fetching total supply: %s", e)
        return PlainTextResponse("Internal Server Error", status_code=500)
    return PlainTextResponse(format_decimal(record.total_supply), headers=cache_headers(settings))


@router.get("/circulating", response_class=PlainTextResponse)
async def get_circulating_supply(
    supply: SupplyAggregator = Depends(get_supply_aggregator),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Circulating supply as plain text"""
    try:
        record = await supply.get_supply()
    except UpstreamError as e:
        _logger.error("Error fetching circulating supply: %s", e)
        return PlainTextResponse("Internal Server Error", status_code=500)
    return PlainTextResponse(format_decimal(record.circulating_supply), headers=cache_headers(settings))


@router.get("/supply", response_model=SupplyResponse)
async def get_supply(
    supply: SupplyAggregator = Depends(get_supply_aggregator),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Total supply, circulating supply, decimals and last update time"""
    try:
        record = await supply.get_supply()
    except UpstreamError as e:
        _logger.error("Error fetching supply data: %s", e)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)
    body = SupplyResponse(**record.to_payload())
    return JSONResponse(body.model_dump(mode="json"), headers=cache_headers(settings))
