import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

def _get_optional_env(key: str) -> str | None:
    val = os.getenv(key)
    if val is None or not val.strip():
        return None
    return val.strip()

def _get_bool_env(key: str, default: str) -> bool:
    return _get_env(key, default).lower() in ("1", "true", "yes")

APP_ENV = _get_env("APP_ENV", "local")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/app.log")

# Write-through archive of match records; in-memory only when unset
DATABASE_URL = _get_optional_env("DATABASE_URL")

PLACE_SEARCH_URL = _get_optional_env("PLACE_SEARCH_URL")
PLACE_SEARCH_API_KEY = _get_optional_env("PLACE_SEARCH_API_KEY")
PLACE_SEARCH_TIMEOUT_SECONDS = float(_get_env("PLACE_SEARCH_TIMEOUT_SECONDS", "3"))

TRANSPORT_WEBHOOK_URL = _get_optional_env("TRANSPORT_WEBHOOK_URL")
TRANSPORT_TIMEOUT_SECONDS = float(_get_env("TRANSPORT_TIMEOUT_SECONDS", "5"))

PRESENCE_REJECT_STALE = _get_bool_env("PRESENCE_REJECT_STALE", "true")

logger.debug(
    f"Config loaded: APP_ENV={APP_ENV}, LOG_LEVEL={LOG_LEVEL}, "
    f"DATABASE_URL={'set' if DATABASE_URL else 'unset'}, "
    f"PLACE_SEARCH_URL={PLACE_SEARCH_URL}, TRANSPORT_WEBHOOK_URL={TRANSPORT_WEBHOOK_URL}"
)
