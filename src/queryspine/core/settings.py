"""Settings for query-spine.

``QuerySpineSettings`` is the configuration collaborator: it supplies the
connection URL and the default command timeout, read once from environment
variables (``QUERYSPINE_*``) or a ``.env`` file and frozen afterwards.

Manifesto:
    The command timeout is not optional. Every statement this layer issues
    runs under it, so it is validated at startup rather than discovered
    as a hang in production.

    - **Pydantic validation:** Type-checked at startup
    - **Environment-driven:** Reads from env vars and .env files
    - **Read-only:** Settings are frozen once constructed

Examples:
    >>> import os
    >>> os.environ["QUERYSPINE_DATABASE_URL"] = "sqlite:///items.db"
    >>> QuerySpineSettings().command_timeout
    30.0

Tags:
    settings, configuration, pydantic, environment, query-spine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from queryspine.core.dialect import Dialect, dialect_for_url, get_dialect
from queryspine.core.errors import InvalidConfigError


class QuerySpineSettings(BaseSettings):
    """Connection and execution settings.

    Fields
    ──────
    database_url     : SQLAlchemy URL, sqlite file path or ``memory``
    command_timeout  : Per-statement timeout in seconds (> 0)
    dialect          : Output dialect override (inferred from the URL if unset)
    log_level        : Structlog log level
    log_json         : Force JSON (True) / console (False) rendering; None = auto
    """

    model_config = SettingsConfigDict(
        env_prefix="QUERYSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ── Connection ───────────────────────────────────────────────
    database_url: str = "memory"
    command_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-statement timeout in seconds",
    )
    dialect: str | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("dialect")
    @classmethod
    def _known_dialect(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                get_dialect(value)
            except InvalidConfigError as exc:
                raise ValueError(exc.message) from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    def resolve_dialect(self) -> Dialect:
        """The configured dialect, or the one implied by ``database_url``."""
        if self.dialect:
            return get_dialect(self.dialect)
        return dialect_for_url(self.database_url)
