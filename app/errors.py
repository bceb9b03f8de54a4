"""
Error taxonomy for the supply API.

Each error carries the HTTP status it maps to; the app factory registers
handlers that turn them into JSON responses.
"""

from typing import Any, Dict, Iterable, Optional


class SupplyApiError(Exception):
    """Base error for the supply API."""

    status_code: int = 500

    def __init__(self, message: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class ConfigError(SupplyApiError):
    """Required configuration is missing or invalid. Fatal at startup."""
    pass


class UpstreamError(SupplyApiError):
    """An upstream call (RPC batch, price API) failed."""

    status_code = 500

    def __init__(self, message: str, *, source: Optional[str] = None):
        super().__init__(message)
        self.source = source

    def to_payload(self) -> Dict[str, Any]:
        # Upstream details stay in the logs
        return {"error": "Internal Server Error"}


class ValidationError(SupplyApiError):
    """Unsupported token symbol."""

    status_code = 400

    def __init__(self, symbol: str, supported: Iterable[str]):
        supported_list = sorted(supported)
        super().__init__(
            f"Unsupported token symbol '{symbol}'",
            extra={"supported": supported_list},
        )
        self.symbol = symbol
        self.supported = supported_list


class NotFoundError(SupplyApiError):
    """Supported symbol with no available quote."""

    status_code = 404


class AuthError(SupplyApiError):
    """Invalid or missing API key on a gated endpoint."""

    status_code = 401
