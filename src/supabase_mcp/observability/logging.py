"""Structured logging for supabase-mcp.

Thin layer over the standard :mod:`logging` package that lets call sites
attach key-value data to a record instead of interpolating it into the
message::

    logger = get_logger(__name__)
    logger.info("Chunking applied", strategy="sampling", total_items=500)

    with LogContext(tool="execute_sql"):
        logger.debug("Rendering response")  # carries tool=execute_sql

Output is human readable (``message | key=value ...``) by default, or one
JSON object per line with ``configure_logging(json_format=True)``.

Logs are written to stderr. The MCP stdio transport owns stdout, so
nothing in this package may log there.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any, cast

#: Name of the package root logger all module loggers hang off.
ROOT_LOGGER_NAME = "supabase_mcp"

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "supabase_mcp_log_context", default={}
)


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger whose level methods accept arbitrary keyword arguments.

    Keyword arguments that are not standard logging parameters are merged
    with the active :class:`LogContext` and stored on the record as
    ``structured_data``. Explicit keywords win over context values.

    Example:
        >>> logger = get_logger("supabase_mcp.response.chunker")
        >>> logger.warning("Chunking failed", reason="TypeError")
    """

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any] | None,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        structured_data = {**_log_context.get(), **kwargs}
        extra = dict(extra) if extra else {}
        extra["structured_data"] = structured_data
        # One extra frame so the record points at the caller, not this method
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


# =============================================================================
# Formatters
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """Human-readable formatter: ``<base format> | key=value key=value``."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Create the formatter.

        Args:
            fmt: Base format string. Defaults to
                ``'%(asctime)s - %(name)s - %(levelname)s - %(message)s'``.
            datefmt: Optional ``strftime`` format for ``%(asctime)s``.
            include_structured: Append structured data after the message.
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format the record and append its structured data, if any.

        Args:
            record: Record to format. A missing ``structured_data``
                attribute is treated as empty.

        Returns:
            The formatted line, e.g.
            ``'... - INFO - Chunking applied | strategy=sampling'``.
        """
        base = super().format(record)
        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """One JSON object per record (NDJSON), structured data at top level."""

    def format(self, record: logging.LogRecord) -> str:
        """Serialize the record as a single JSON line.

        The object always contains ``timestamp`` (UTC ISO 8601), ``level``,
        ``logger`` and ``message``; ``exception`` is added when the record
        carries exception info. Values that JSON cannot encode are passed
        through ``str()``.

        Args:
            record: Record to serialize.

        Returns:
            JSON text without a trailing newline.
        """
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_dict.update(getattr(record, "structured_data", {}))

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Render one structured value for the key=value text format.

    ``None`` becomes ``null``, strings containing spaces are quoted,
    dicts and lists are JSON encoded and everything else goes through
    ``str()``.

    Example:
        >>> _format_value("array_pagination")
        'array_pagination'
        >>> _format_value("offset 40")
        '"offset 40"'
        >>> _format_value({"characters": 120})
        '{"characters": 120}'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context Management
# =============================================================================


class LogContext:
    """Context manager adding key-value pairs to every record in its scope.

    Backed by :mod:`contextvars`, so concurrent tool calls running on the
    same event loop each see their own context. Contexts nest; inner
    values override outer ones.

    Example:
        >>> with LogContext(tool="list_tables"):
        ...     with LogContext(preset="DATABASE_RESULTS"):
        ...         logger.info("Processing")  # tool and preset attached
    """

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = kwargs
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    def __repr__(self) -> str:
        return f"LogContext({self._kwargs!r})"


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure the ``supabase_mcp`` logger hierarchy.

    Installs :class:`StructuredLogger` as the logger class, attaches one
    stream handler to the package root logger and stops propagation to
    the global root logger. Calling it again is a no-op unless ``force``
    is set, in which case existing handlers are removed first.

    Args:
        level: Minimum level, as an int or a name such as ``"DEBUG"``.
        json_format: Emit NDJSON via :class:`JSONFormatter` instead of the
            key=value text format.
        stream: Destination stream. Defaults to ``sys.stderr``.
        include_structured: Append structured data in text mode. JSON mode
            always includes it.
        force: Reconfigure even if logging was already configured.

    Example:
        >>> configure_logging(level="DEBUG", json_format=True, force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Configure logging; caller holds ``_config_lock``."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StructuredFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Drop all package handlers; caller holds ``_config_lock``."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Return logging to the unconfigured state. Intended for tests."""
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Return a :class:`StructuredLogger`, configuring defaults on first use.

    Args:
        name: Logger name, normally ``__name__`` of the calling module.

    Returns:
        Logger accepting structured keyword arguments on every level method.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.debug("Analysis complete", estimated_tokens=5120)
    """
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    logger = logging.getLogger(name)
    if not isinstance(logger, StructuredLogger):
        # Created before setLoggerClass() ran (e.g. by a third party import);
        # swap in the structured class so keyword arguments are accepted.
        logger.__class__ = StructuredLogger
    return cast(StructuredLogger, logger)
