from .responses import CacheHealthResponse, ErrorResponse, PricesResponse, SupplyResponse

__all__ = [
    "CacheHealthResponse",
    "ErrorResponse",
    "PricesResponse",
    "SupplyResponse",
]
