from pathlib import Path
from typing import Any, Dict, List

from pydantic import AliasChoices, Field, ValidationError as SettingsValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


BASE_DIR = Path(__file__).resolve().parents[1]

DEVELOPMENT_ENVIRONMENT = "development"

# Clones token on Base
DEFAULT_TOKEN_ADDRESS = "0xaadd98Ad4660008C917C6FE7286Bc54b2eEF894d"

DEFAULT_BURN_ADDRESSES = [
    "0x0000000000000000000000000000000000000000",
    "0x000000000000000000000000000000000000dEaD",
]

DEFAULT_LOCKED_ADDRESSES = [
    "0xe2326bB154053cF3A96BC3484e9f2c4D12cA445F",  # KOLs
    "0x15FecCC979828DE7aF82ec1f4672d519cF1b7F09",  # Team
    "0xCA5996B9447c092458D46eb143b8E9c332F65C76",  # Marketing
    "0x750FF2F710FbB1Aa08E4C69e0F96Ea4b39eA2299",  # Rewards
    "0xb5d78dd3276325f5faf3106cc4acc56e28e0fe3b",  # Sablier (team vesting)
]

DEFAULT_PRICE_TOKEN_IDS = {
    "CLONES": "clones",
    "ETH": "ethereum",
    "USDC": "usd-coin",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(
        default="production",
        description="Environment mode; API key checks are bypassed in development",
        validation_alias=AliasChoices("environment", "app_env"),
    )

    # Upstream RPC
    base_rpc_url: str = Field(description="JSON-RPC endpoint for the Base chain")
    rpc_max_batch_size: int = Field(default=100, ge=1, description="Max eth_call requests per JSON-RPC batch")
    request_timeout_seconds: float = Field(default=10.0, gt=0, description="Timeout for each upstream call")

    # Token & address lists
    token_address: str = Field(default=DEFAULT_TOKEN_ADDRESS, description="ERC-20 token contract address")
    burn_addresses: List[str] = Field(
        default_factory=lambda: list(DEFAULT_BURN_ADDRESSES),
        description="Burn addresses excluded from circulating supply",
    )
    locked_addresses: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LOCKED_ADDRESSES),
        description="Team, vesting and treasury addresses excluded from circulating supply",
    )

    # Price API
    coingecko_api_key: str = Field(default="", description="Coingecko API key")
    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="Coingecko API base URL",
    )
    price_token_ids: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_PRICE_TOKEN_IDS),
        description="Supported symbol -> Coingecko coin id",
    )

    # API key gating
    api_key: str = Field(default="", description="Secret required in the x-api-key header for price endpoints")
    api_key_header: str = Field(default="x-api-key", description="Header carrying the API key")

    # Cache Settings
    supply_cache_ttl_seconds: int = Field(default=1800, gt=0, description="Supply cache TTL in seconds")
    price_cache_ttl_seconds: int = Field(default=1800, gt=0, description="Price cache TTL in seconds")
    serve_stale_while_refreshing: bool = Field(
        default=False,
        description="Return the stale value immediately while a refresh runs",
    )
    warm_cache_on_startup: bool = Field(default=True, description="Fetch supply data in the background at startup")
    response_cache_max_age_seconds: int = Field(default=60, ge=0, description="Cache-Control max-age for responses")

    # Rate Limiting
    enable_rate_limit: bool = Field(default=True, description="Enable per-IP rate limiting")
    rate_limit_requests: int = Field(default=20, ge=1, description="Requests allowed per window per client")
    rate_limit_window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")

    @field_validator("base_rpc_url")
    @classmethod
    def _require_rpc_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("BASE_RPC_URL must not be empty")
        return value

    @field_validator("price_token_ids")
    @classmethod
    def _upper_symbols(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {symbol.strip().upper(): coin_id for symbol, coin_id in value.items()}

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() == DEVELOPMENT_ENVIRONMENT

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def has_coingecko_key(self) -> bool:
        return bool(self.coingecko_api_key)


def load_settings(**overrides: Any) -> Settings:
    """Load settings from the environment, raising ``ConfigError`` when invalid."""

    try:
        return Settings(**overrides)
    except SettingsValidationError as exc:
        missing = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
        raise ConfigError(f"Invalid configuration: {', '.join(missing) or exc}") from exc
