"""Pytest configuration and fixtures for supabase-mcp tests.

Fixtures here are shared by every test module: a clean logging state per
test, response configs, and an in-memory querier standing in for
Postgres.
"""

import pytest

from supabase_mcp.config import ServerConfig
from supabase_mcp.observability import ResponseStats, reset_logging
from supabase_mcp.response import ChunkingConfig
from tests.helpers import FakeQuerier


@pytest.fixture(autouse=True)
def clean_logging():
    """Reset package logging before and after each test.

    Tests that call ``configure_logging`` with custom streams must not
    leak handlers into later tests.

    Yields:
        None.
    """
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def chunking_config() -> ChunkingConfig:
    """Default chunking config (50 items, 30 properties, 4000 tokens)."""
    return ChunkingConfig()


@pytest.fixture
def querier() -> FakeQuerier:
    """In-memory querier with no canned results."""
    return FakeQuerier()


@pytest.fixture
def stats() -> ResponseStats:
    """Fresh response statistics collector."""
    return ResponseStats()


@pytest.fixture
def server_config() -> ServerConfig:
    """Server config pointing at a placeholder database."""
    return ServerConfig(database_url="postgresql://postgres@localhost/postgres")
