"""Tests for supabase_mcp.server: server assembly, CLI parsing and main()."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from mcp.server import Server

from supabase_mcp import server
from supabase_mcp.config import ServerConfig
from supabase_mcp.database import PostgresQuerier
from tests.helpers import FakeQuerier


@pytest.fixture
def no_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove the environment variables the CLI reads."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)


class TestCreateServer:
    """Tests for create_server()."""

    def test_with_querier(self, server_config: ServerConfig, querier: FakeQuerier) -> None:
        """Verifies an injected querier is used as is."""
        mcp_server = server.create_server(server_config, querier=querier)

        assert isinstance(mcp_server, Server)
        assert mcp_server.name == "supabase-mcp"

    def test_builds_postgres_querier(self, server_config: ServerConfig) -> None:
        """Verifies the pool settings come from the config.

        Assertion Strategy:
        - PostgresQuerier built with the URL and bounds, no connection opened.
        """
        with patch.object(server, "PostgresQuerier") as querier_cls:
            server.create_server(server_config)

        querier_cls.assert_called_once_with(
            server_config.database_url, min_connections=1, max_connections=5
        )

    def test_requires_database_url(self) -> None:
        """Verifies a missing URL and querier is rejected."""
        with pytest.raises(ValueError, match="database URL"):
            server.create_server(ServerConfig())


class TestParseArgs:
    """Tests for parse_args()."""

    def test_defaults(self, no_env: None) -> None:
        """Verifies defaults match ServerConfig."""
        args = server.parse_args([])

        assert args.database_url is None
        assert args.read_only is True
        assert args.schemas == ["public"]
        assert args.response_preset == "DATABASE_RESULTS"
        assert args.limiter_max_tokens == 20000
        assert args.log_level == "INFO"
        assert args.json_logs is False

    def test_environment_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verifies DATABASE_URL and LOG_LEVEL seed the defaults."""
        monkeypatch.setenv("DATABASE_URL", "postgresql://db/app")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        args = server.parse_args([])

        assert args.database_url == "postgresql://db/app"
        assert args.log_level == "DEBUG"

    def test_options(self, no_env: None) -> None:
        """Verifies every option is parsed and normalized."""
        args = server.parse_args(
            [
                "--database-url", "postgresql://db/app",
                "--read-write",
                "--schemas", "public, auth,,storage",
                "--response-preset", "conservative",
                "--limiter-max-tokens", "5000",
                "--min-connections", "2",
                "--max-connections", "8",
                "--log-level", "warning",
                "--json-logs",
            ]
        )

        assert args.read_only is False
        assert args.schemas == ["public", "auth", "storage"]
        assert args.response_preset == "CONSERVATIVE"
        assert args.limiter_max_tokens == 5000
        assert (args.min_connections, args.max_connections) == (2, 8)
        assert args.log_level == "WARNING"
        assert args.json_logs is True

    def test_unknown_preset(self, no_env: None) -> None:
        """Verifies an unknown preset is an argument error."""
        with pytest.raises(SystemExit):
            server.parse_args(["--response-preset", "huge"])

    def test_namespace_builds_config(self, no_env: None) -> None:
        """Verifies the parsed namespace maps onto ServerConfig fields."""
        args = server.parse_args(["--database-url", "postgresql://db/app"])

        config = ServerConfig(**vars(args))

        assert config.database_url == "postgresql://db/app"


class TestRunServer:
    """Tests for run_server()."""

    @pytest.mark.asyncio
    async def test_closes_querier(self, server_config: ServerConfig) -> None:
        """Verifies the pool is closed after the stdio session ends.

        Arrangement:
        1. Patch PostgresQuerier, stdio_server and create_server.

        Assertion Strategy:
        - server.run awaited with the stdio streams.
        - querier.close() called.
        """
        querier = MagicMock(spec=PostgresQuerier)
        mcp_server = MagicMock()
        mcp_server.run = AsyncMock()

        @asynccontextmanager
        async def fake_stdio():
            yield ("read", "write")

        with (
            patch.object(server, "PostgresQuerier", return_value=querier),
            patch.object(server, "stdio_server", fake_stdio),
            patch.object(server, "create_server", return_value=mcp_server),
        ):
            await server.run_server(server_config)

        mcp_server.run.assert_awaited_once()
        assert mcp_server.run.await_args.args[:2] == ("read", "write")
        querier.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_closes_querier_on_error(self, server_config: ServerConfig) -> None:
        """Verifies the pool is closed when the session fails."""
        querier = MagicMock(spec=PostgresQuerier)
        mcp_server = MagicMock()
        mcp_server.run = AsyncMock(side_effect=RuntimeError("transport closed"))

        @asynccontextmanager
        async def fake_stdio():
            yield ("read", "write")

        with (
            patch.object(server, "PostgresQuerier", return_value=querier),
            patch.object(server, "stdio_server", fake_stdio),
            patch.object(server, "create_server", return_value=mcp_server),
            pytest.raises(RuntimeError),
        ):
            await server.run_server(server_config)

        querier.close.assert_called_once()


class TestMain:
    """Tests for main()."""

    def test_missing_database_url(self, no_env: None) -> None:
        """Verifies main() exits with a message when no URL is configured."""
        with pytest.raises(SystemExit, match="database URL is required"):
            server.main([])

    def test_runs_server(self, no_env: None) -> None:
        """Verifies main() runs the server with the parsed config.

        Assertion Strategy:
        - run_server called with a ServerConfig built from the arguments.
        - Its coroutine handed to asyncio.run.
        """
        with (
            patch.object(server, "run_server", new=MagicMock()) as run_server,
            patch.object(server.asyncio, "run") as asyncio_run,
        ):
            server.main(["--database-url", "postgresql://db/app", "--log-level", "debug"])

        (config,), _ = run_server.call_args
        assert config.database_url == "postgresql://db/app"
        assert config.log_level == "DEBUG"
        asyncio_run.assert_called_once_with(run_server.return_value)
