"""Observability for supabase-mcp: structured logging and response statistics.

Example:
    from supabase_mcp.observability import LogContext, get_logger

    logger = get_logger(__name__)

    with LogContext(tool="execute_sql"):
        logger.info("Response reduced", strategy="sampling", total_items=812)

Statistics Example:
    from supabase_mcp.observability import ResponseStats

    stats = ResponseStats()
    manager = ResponseManager(config, stats=stats)
    ...
    print(stats.to_dict()["tokens_saved"])
"""

from supabase_mcp.observability.logging import (
    JSONFormatter,
    LogContext,
    StructuredFormatter,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from supabase_mcp.observability.stats import (
    ResponseStats,
    StrategySummary,
)

__all__ = [
    # Logging
    "JSONFormatter",
    "LogContext",
    "StructuredFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "ResponseStats",
    "StrategySummary",
]
