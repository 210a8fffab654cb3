"""
Single source of truth for all FTT_* environment variables.

Nothing in the package reads os.getenv directly. The same variable names are
used in every environment; only the values differ (set in .env for local
use, injected by the deployment otherwise).

Usage::

    from ftt.settings import get_settings
    s = get_settings()
    print(s.database_url, s.device_role)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All tracker settings, loaded from FTT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FTT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Environment ───────────────────────────────────────────────────────────
    env: Literal["local", "dev", "prod"] = "local"

    # ── Database ──────────────────────────────────────────────────────────────
    # sqlite+aiosqlite for a single device; postgresql+asyncpg is also supported.
    database_url: str = "sqlite+aiosqlite:///./ftt.db"
    sql_echo: bool = False

    # ── Template library ──────────────────────────────────────────────────────
    # Empty string → bundled sample library.
    library_path: str = ""

    # ── Sharing ───────────────────────────────────────────────────────────────
    # Stamped as last_modified_by on student edits made on this device.
    device_role: Literal["instructor", "student"] = "instructor"

    # Empty string → no remote transport; `ftt sync` refuses to run.
    share_base_url: str = ""
    share_timeout_seconds: float = 10.0
    # Period of `ftt sync --watch`.
    sync_interval_seconds: float = 60.0

    # ── Observability ─────────────────────────────────────────────────────────
    log_level: str = "INFO"

    # ── Startup validation ────────────────────────────────────────────────────

    @model_validator(mode="after")
    def _validate_config(self) -> Settings:
        """
        Fail fast on misconfiguration. All errors are collected before raising
        so a single startup failure lists every problem at once.
        """
        errors: list[str] = []

        if self.share_timeout_seconds <= 0:
            errors.append("FTT_SHARE_TIMEOUT_SECONDS must be positive")

        if self.sync_interval_seconds <= 0:
            errors.append("FTT_SYNC_INTERVAL_SECONDS must be positive")

        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            errors.append(f"FTT_LOG_LEVEL {self.log_level!r} is not a logging level")

        # ── Production only ───────────────────────────────────────────────────
        if self.env == "prod":
            if not self.share_base_url:
                errors.append("FTT_SHARE_BASE_URL is required in prod (sharing will not work)")

            if self.database_url.startswith("sqlite"):
                errors.append("FTT_DATABASE_URL must not be SQLite in prod")

        if errors:
            raise ValueError(
                f"[FTT env={self.env!r}] Configuration errors:\n  - " + "\n  - ".join(errors)
            )

        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (used in tests)."""
    get_settings.cache_clear()
