"""Server configuration.

Settings come from command-line arguments, with environment variables as
defaults for the values a deployment usually injects (``DATABASE_URL``,
``LOG_LEVEL``).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from supabase_mcp.database import DEFAULT_SCHEMAS
from supabase_mcp.response import ChunkingConfig, LimiterConfig, get_preset

# =============================================================================
# Constants
# =============================================================================

DEFAULT_RESPONSE_PRESET = "DATABASE_RESULTS"
DEFAULT_LIMITER_MAX_TOKENS = 20000
DEFAULT_MIN_CONNECTIONS = 1
DEFAULT_MAX_CONNECTIONS = 5

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """Everything the server needs to start.

    Attributes:
        database_url: Postgres connection URL. Required to run tools.
        read_only: Run ``execute_sql`` statements in read-only transactions.
        schemas: Default schemas for ``list_tables``.
        response_preset: Name of the chunking preset for query results.
        limiter_max_tokens: Token ceiling for the catalog listings.
        min_connections: Connections kept open by the pool.
        max_connections: Maximum concurrent connections.
        log_level: Root log level name.
        json_logs: Emit JSON log lines instead of text.

    Raises:
        ValueError: On an unknown preset or log level, or bad pool bounds.

    Example:
        >>> config = ServerConfig(database_url="postgresql://localhost/postgres")
        >>> config.chunking_config.max_array_items
        25
    """

    database_url: str | None = None
    read_only: bool = True
    schemas: list[str] = field(default_factory=lambda: list(DEFAULT_SCHEMAS))
    response_preset: str = DEFAULT_RESPONSE_PRESET
    limiter_max_tokens: int = DEFAULT_LIMITER_MAX_TOKENS
    min_connections: int = DEFAULT_MIN_CONNECTIONS
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    log_level: str = "INFO"
    json_logs: bool = False

    def __post_init__(self) -> None:
        # Resolves the preset now so a typo fails at startup
        get_preset(self.response_preset)
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"Unknown log level {self.log_level!r} (choose from {', '.join(LOG_LEVELS)})"
            )
        if self.limiter_max_tokens < 1:
            raise ValueError(
                f"limiter_max_tokens must be positive, got {self.limiter_max_tokens}"
            )
        if self.min_connections < 0 or self.max_connections < max(self.min_connections, 1):
            raise ValueError(
                f"Invalid pool bounds: min={self.min_connections}, "
                f"max={self.max_connections}"
            )

    @property
    def chunking_config(self) -> ChunkingConfig:
        """Preset applied to table listings and query results."""
        return get_preset(self.response_preset)

    @property
    def limiter_config(self) -> LimiterConfig:
        """Limiter settings for extension and migration listings."""
        return LimiterConfig(max_tokens=self.limiter_max_tokens)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Config with values taken from ``DATABASE_URL`` and ``LOG_LEVEL``."""
        environ = os.environ if environ is None else environ
        return cls(
            database_url=environ.get("DATABASE_URL"),
            log_level=environ.get("LOG_LEVEL", "INFO"),
        )
