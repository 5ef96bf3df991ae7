"""Database access for the MCP tools."""

from supabase_mcp.database.querier import (
    PostgresQuerier,
    Querier,
    normalize_value,
    rows_to_dicts,
)
from supabase_mcp.database.queries import (
    DEFAULT_SCHEMAS,
    LIST_EXTENSIONS_SQL,
    LIST_MIGRATIONS_SQL,
    LIST_TABLES_SQL,
)

__all__ = [
    "PostgresQuerier",
    "Querier",
    "normalize_value",
    "rows_to_dicts",
    "DEFAULT_SCHEMAS",
    "LIST_EXTENSIONS_SQL",
    "LIST_MIGRATIONS_SQL",
    "LIST_TABLES_SQL",
]
