"""
core/config.py -- Centralized process configuration via pydantic-settings.

All environment variable reads for Combiner happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. project_root -> PROJECT_ROOT). Type coercion and validation are
      built in.

The handler map itself (endpoints, roots, transforms) is not an environment
concern. It lives in the JSON document named by COMBINER_CONFIG and is parsed
by core/handlers.py.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or cache/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("combiner.config")


class Settings(BaseSettings):
    """Process settings loaded from environment variables and .env file.

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
    project_root: str = "."
    # Path to the handler document, relative to project_root unless absolute.
    combiner_config: str = "combiner.json"

    # ------------------------------------------------------------------
    # Network roots
    # ------------------------------------------------------------------

    network_protocol: str = "http"
    network_host: str = "localhost"
    network_port: int = 3000
    # Network roots are skipped unless this is on.
    network_fetch: bool = False
    network_ttl: int = 300

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    resolve_timeout: float = 30.0
    # When true, an unreadable asset fails the whole bundle instead of
    # being dropped from it.
    strict_io: bool = False
    skip_param: str = "skipCombiner"

    # ------------------------------------------------------------------
    # File output
    # ------------------------------------------------------------------

    output_suffix: str = ".packaged"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    write_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_project_root(self) -> "Settings":
        """Resolve project_root to an absolute directory or refuse to start.

        Every filesystem root without an explicit prefix is joined onto this
        path, so a typo here would turn every bundle into a list of missing
        assets. Failing at startup is louder.
        """
        root = Path(self.project_root).expanduser().resolve()
        if not root.is_dir():
            raise ValueError(f"PROJECT_ROOT is not a directory: {root}")
        self.project_root = str(root)
        if self.resolve_timeout <= 0:
            raise ValueError("RESOLVE_TIMEOUT must be positive.")
        return self

    @property
    def config_path(self) -> Path:
        path = Path(self.combiner_config)
        return path if path.is_absolute() else Path(self.project_root) / path


@lru_cache
def get_settings() -> Settings:
    """Return the process Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
