"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for stormstarter happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. server_id -> SERVER_ID). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field checks run once all fields are
      resolved. Used to normalise the log level and to resolve the default
      route directory relative to the repository.

Snowflake notes:
  SERVER_ID is the node identifier baked into every generated snowflake. Two
  processes sharing a database MUST use distinct SERVER_ID values, otherwise
  identifiers can collide. The range is 0..1023 (10 bits).

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("stormstarter.config")

# 2018-01-01T00:00:00Z -- the reference instant all snowflakes count from.
DEFAULT_EPOCH_MS = 1514764800000

_REPO_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_ROUTES_DIR = _REPO_ROOT / "api" / "routes"
_DEFAULT_DB_URL = f"sqlite:///{_REPO_ROOT / 'auth' / 'stormstarter.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    server_id: int = Field(default=0, ge=0, le=1023)
    snowflake_epoch_ms: int = Field(default=DEFAULT_EPOCH_MS, ge=0)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    http_host: str = "0.0.0.0"  # nosec B104 -- container default, override via HTTP_HOST
    http_port: int = 8080
    # Empty string means "use the api/routes directory shipped with the repo".
    routes_dir: str = ""
    # Upper bound for one request's guard chain + handler. 0 disables the limit.
    guard_timeout_seconds: float = Field(default=30.0, ge=0)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def normalise(self) -> "Settings":
        """Normalise LOG_LEVEL and resolve the default ROUTES_DIR.

        An unknown log level is rejected at startup rather than silently
        falling back to INFO -- a typo in LOG_LEVEL should be loud.
        """
        level = self.log_level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown LOG_LEVEL: {self.log_level!r}")
        self.log_level = level
        if self.debug and level == "INFO":
            self.log_level = "DEBUG"
        if not self.routes_dir:
            self.routes_dir = str(_DEFAULT_ROUTES_DIR)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
