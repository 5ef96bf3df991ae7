"""MCP Server entry point for Supabase database tools."""

import argparse
import asyncio
import logging
import os
import sys

from mcp.server import Server
from mcp.server.stdio import stdio_server

from supabase_mcp.config import LOG_LEVELS, ServerConfig
from supabase_mcp.database import PostgresQuerier, Querier
from supabase_mcp.observability import ResponseStats, configure_logging, get_logger
from supabase_mcp.response import RESPONSE_CONFIGS
from supabase_mcp.tools import database

logger = get_logger(__name__)


def create_server(
    config: ServerConfig,
    querier: Querier | None = None,
    stats: ResponseStats | None = None,
) -> Server:
    """Create and configure the MCP server.

    Builds the querier from ``config.database_url`` unless one is given
    and registers the database tools.

    Args:
        config: Server settings.
        querier: SQL backend to use instead of a Postgres pool.
        stats: Response statistics collector; a fresh one by default.

    Returns:
        Configured MCP Server instance with all tools registered.

    Raises:
        ValueError: If no querier is given and ``config.database_url`` is
            not set.

    Example:
        >>> server = create_server(ServerConfig(database_url="postgresql:///postgres"))
    """
    if querier is None:
        if not config.database_url:
            raise ValueError("A database URL is required (--database-url or DATABASE_URL)")
        querier = PostgresQuerier(
            config.database_url,
            min_connections=config.min_connections,
            max_connections=config.max_connections,
        )

    server = Server("supabase-mcp")
    database.register(
        server,
        database.ToolContext(
            querier=querier,
            config=config,
            stats=stats or ResponseStats(),
        ),
    )
    logger.info(
        "Server created",
        read_only=config.read_only,
        response_preset=config.response_preset,
    )
    return server


async def run_server(config: ServerConfig) -> None:
    """Run the MCP server over stdio until the client disconnects.

    The Postgres pool is closed on exit.

    Args:
        config: Server settings.
    """
    querier = PostgresQuerier(
        config.database_url or "",
        min_connections=config.min_connections,
        max_connections=config.max_connections,
    )
    server = create_server(config, querier=querier)

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        querier.close()
        logger.info("Database connections closed")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    ``--database-url`` and ``--log-level`` default to the ``DATABASE_URL``
    and ``LOG_LEVEL`` environment variables.

    Args:
        argv: Arguments to parse; ``sys.argv[1:]`` when None.

    Returns:
        argparse.Namespace with database_url, read_only, schemas,
        response_preset, limiter_max_tokens, min_connections,
        max_connections, log_level and json_logs.

    Raises:
        SystemExit: On invalid arguments.
    """
    defaults = ServerConfig.from_env()
    parser = argparse.ArgumentParser(
        description="Supabase MCP Server - Inspect and query a Postgres database"
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=defaults.database_url,
        help="Postgres connection URL (default: $DATABASE_URL)",
    )
    parser.add_argument(
        "--read-write",
        dest="read_only",
        action="store_false",
        help="Allow execute_sql to modify data (read-only by default)",
    )
    parser.add_argument(
        "--schemas",
        type=lambda value: [s.strip() for s in value.split(",") if s.strip()],
        default=defaults.schemas,
        help="Comma-separated schemas listed by list_tables (default: public)",
    )
    parser.add_argument(
        "--response-preset",
        type=str.upper,
        choices=list(RESPONSE_CONFIGS),
        default=defaults.response_preset,
        help="Chunking preset for query results (default: DATABASE_RESULTS)",
    )
    parser.add_argument(
        "--limiter-max-tokens",
        type=int,
        default=defaults.limiter_max_tokens,
        help="Token ceiling for extension and migration listings (default: 20000)",
    )
    parser.add_argument(
        "--min-connections",
        type=int,
        default=defaults.min_connections,
        help="Connections kept open by the pool (default: 1)",
    )
    parser.add_argument(
        "--max-connections",
        type=int,
        default=defaults.max_connections,
        help="Maximum concurrent database connections (default: 5)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=defaults.log_level,
        help="Log level (default: $LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the supabase-mcp server.

    Parses arguments, configures structured logging on stderr (stdout
    carries the MCP protocol) and runs the server over stdio.

    Raises:
        SystemExit: On argument errors or a missing database URL.
    """
    args = parse_args(argv)
    config = ServerConfig(**vars(args))

    configure_logging(
        level=getattr(logging, config.log_level),
        json_format=config.json_logs,
        stream=sys.stderr,
        force=True,
    )

    if not config.database_url:
        logger.error("No database URL configured")
        raise SystemExit("A database URL is required (--database-url or DATABASE_URL)")

    logger.info("Starting MCP server", pid=os.getpid())
    asyncio.run(run_server(config))


if __name__ == "__main__":  # pragma: no cover
    main()
