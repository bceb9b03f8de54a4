from decimal import Decimal
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, Field, PlainSerializer

# Decimal internally, JSON number on the wire
JsonNumber = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class SupplyResponse(BaseModel):
    total: JsonNumber = Field(description="Total token supply")
    circulating: JsonNumber = Field(description="Total supply minus burned and locked balances")
    decimals: int = Field(ge=0, le=255, description="Token decimals reported by the contract")
    updated_at: str = Field(description="When the figures were computed (ISO-8601 UTC)")


class PricesResponse(BaseModel):
    prices: Dict[str, JsonNumber] = Field(default_factory=dict, description="USD price per symbol")
    updated_at: Optional[str] = Field(default=None, description="When the quotes were fetched (ISO-8601 UTC)")


class ErrorResponse(BaseModel):
    error: str = Field(description="Error message")


class CacheHealthResponse(BaseModel):
    status: str = Field(description="ok when every cached key holds a value, degraded otherwise")
    environment: str = Field(description="Configured environment mode")
    caches: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-key cache diagnostics")
