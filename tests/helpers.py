"""Test helpers for supabase-mcp.

Provides an in-memory :class:`~supabase_mcp.database.Querier` and builders
for the kinds of payloads database tools return.

Example:
    from tests.helpers import FakeQuerier, make_rows

    querier = FakeQuerier({"select": make_rows(200)})
    rows = querier.execute("select * from orders")
"""

from __future__ import annotations

import json
import threading
from typing import Any

from supabase_mcp.response.limiter import estimate_tokens


class FakeQuerier:
    """Querier returning canned rows, matched by SQL substring.

    Args:
        results: Maps a substring of the SQL to the rows returned when a
            statement contains it. The first matching key wins.
        error: Exception raised by every ``execute`` call, if set.

    Attributes:
        calls: ``(sql, params, read_only)`` for every execute call.
        thread_ids: Thread identifier of every execute call.
        closed: Set by :meth:`close`.
    """

    def __init__(
        self,
        results: dict[str, list[dict[str, Any]]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.results = results or {}
        self.error = error
        self.calls: list[tuple[str, Any, bool]] = []
        self.thread_ids: list[int] = []
        self.closed = False

    def execute(
        self, sql: str, params: Any = None, read_only: bool = True
    ) -> list[dict[str, Any]]:
        self.calls.append((sql, params, read_only))
        self.thread_ids.append(threading.get_ident())
        if self.error is not None:
            raise self.error
        for fragment, rows in self.results.items():
            if fragment in sql:
                return rows
        return []

    def close(self) -> None:
        self.closed = True


def make_rows(count: int, width: int = 4) -> list[dict[str, Any]]:
    """Rows shaped like a query result: ``id`` plus ``width - 1`` columns."""
    return [
        {"id": i, **{f"col_{c}": f"value {i}-{c}" for c in range(1, width)}}
        for i in range(count)
    ]


def make_tables(count: int, columns: int) -> dict[str, Any]:
    """``{"tables": [...]}`` payload with ``columns`` columns per table."""
    return {
        "tables": [
            {
                "schema": "public",
                "name": f"table_{t}",
                "columns": [
                    {
                        "name": f"column_{c}",
                        "data_type": "text",
                        "is_nullable": c % 2 == 0,
                        "default_value": None,
                    }
                    for c in range(columns)
                ],
            }
            for t in range(count)
        ]
    }


def limiter_tokens(value: Any) -> int:
    """Tokens of ``value`` as the limiter measures them (indented JSON)."""
    return estimate_tokens(json.dumps(value, indent=2))


def extract_json_block(text: str) -> Any:
    """Parse the fenced json block of a Markdown-formatted response."""
    start = text.index("```json\n") + len("```json\n")
    end = text.index("\n```", start)
    return json.loads(text[start:end])


def nested_list(depth: int) -> list[Any]:
    """``[[[...[0]...]]]`` nested ``depth`` levels, built without recursion."""
    value: Any = 0
    for _ in range(depth):
        value = [value]
    return value
