"""
API-key gating for the price endpoints.
"""

import secrets
from typing import Optional

import structlog
from fastapi import Request

from ..config import Settings
from ..errors import AuthError

logger = structlog.stdlib.get_logger(__name__)


def check_api_key(settings: Settings, provided: Optional[str]) -> None:
    """
    Validate a header-supplied key against the configured secret.

    Bypassed in the development environment and a no-op when no secret is
    configured. Raises AuthError on a missing or mismatched key.
    """
    if settings.is_development or not settings.has_api_key:
        return

    if not provided:
        raise AuthError("Missing API key")

    if not secrets.compare_digest(provided.encode("utf-8"), settings.api_key.encode("utf-8")):
        raise AuthError("Invalid API key")


async def require_api_key(request: Request) -> None:
    """
    FastAPI dependency guarding a route.

    Runs before the route body, so a rejected request never reaches the
    price service or its upstream.
    """
    settings: Settings = request.app.state.settings
    provided = request.headers.get(settings.api_key_header)
    try:
        check_api_key(settings, provided)
    except AuthError:
        logger.warning(
            "api_key_rejected",
            path=request.url.path,
            client=request.client.host if request.client else None,
            header_present=bool(provided),
        )
        raise


def log_api_key_mode(settings: Settings) -> None:
    """Log how price endpoints are gated; called once at startup."""
    if settings.is_development:
        logger.info("api_key_check_bypassed", environment=settings.environment)
    elif not settings.has_api_key:
        logger.warning("api_key_not_configured", detail="price endpoints are not protected")
    else:
        logger.info("api_key_check_enabled", header=settings.api_key_header)
