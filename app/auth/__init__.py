from .api_key import check_api_key, log_api_key_mode, require_api_key

__all__ = [
    "check_api_key",
    "log_api_key_mode",
    "require_api_key",
]
