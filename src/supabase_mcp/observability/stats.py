"""Response-processing statistics.

Collects metrics about how tool output was reduced before it reached the
calling model:

- How many responses went through each chunking strategy
- Processing time (min, max, avg, p95) per strategy
- Estimated tokens before and after reduction
- Fallbacks taken after an internal failure

The collector is an explicit object injected into a
:class:`~supabase_mcp.response.manager.ResponseManager`; the chunking
functions themselves never touch it. Thread-safe.

Example:
    stats = ResponseStats()
    stats.record(strategy="sampling", duration_ms=1.8,
                 original_tokens=42000, final_tokens=3100)

    summary = stats.get_summary("sampling")
    print(f"Saved {summary.tokens_saved} tokens")

    data = stats.to_dict()
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

# =============================================================================
# Constants
# =============================================================================

#: Number of records kept per strategy for timing percentiles.
DEFAULT_STATS_WINDOW_SIZE: int = 1000


def _utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class StrategySummary:
    """Summary statistics for one chunking strategy.

    Attributes:
        strategy: Strategy tag (``"none"``, ``"sampling"``, ...).
        total_responses: Responses processed with this strategy.
        fallbacks: How many of those were failure fallbacks.
        original_tokens: Sum of estimated tokens before reduction.
        final_tokens: Sum of estimated tokens after reduction.
        tokens_saved: ``original_tokens - final_tokens`` (never negative).
        min_duration_ms: Fastest processing time in the window.
        max_duration_ms: Slowest processing time in the window.
        avg_duration_ms: Mean processing time in the window.
        p95_duration_ms: 95th percentile processing time in the window.
        last_processed: Time of the most recent record.
    """

    strategy: str
    total_responses: int = 0
    fallbacks: int = 0
    original_tokens: int = 0
    final_tokens: int = 0
    tokens_saved: int = 0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    avg_duration_ms: float = 0.0
    p95_duration_ms: float = 0.0
    last_processed: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable copy of the summary."""
        return {
            "strategy": self.strategy,
            "total_responses": self.total_responses,
            "fallbacks": self.fallbacks,
            "original_tokens": self.original_tokens,
            "final_tokens": self.final_tokens,
            "tokens_saved": self.tokens_saved,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "p95_duration_ms": self.p95_duration_ms,
            "last_processed": (
                self.last_processed.isoformat() if self.last_processed else None
            ),
        }


@dataclass
class ResponseRecord:
    """Single processed response."""

    timestamp: float  # monotonic time
    duration_ms: float
    original_tokens: int
    final_tokens: int
    fallback: bool = False


@dataclass
class _StrategyTotals:
    records: deque[ResponseRecord]
    total: int = 0
    fallbacks: int = 0
    original_tokens: int = 0
    final_tokens: int = 0
    last_processed: datetime | None = None


class ResponseStats:
    """Thread-safe statistics for processed tool responses.

    Cumulative counters are kept for the lifetime of the collector (or
    until :meth:`reset`); timing statistics come from a rolling window of
    the most recent records per strategy so memory stays bounded.
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        """Create an empty collector.

        Args:
            window_size: Records retained per strategy for timing
                statistics. Must be positive.

        Raises:
            ValueError: If ``window_size`` is not positive.
        """
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self._window_size = window_size
        self._totals: dict[str, _StrategyTotals] = {}
        self._start_time = time.monotonic()
        self._lock = threading.Lock()

    def record(
        self,
        strategy: str,
        duration_ms: float,
        original_tokens: int,
        final_tokens: int,
        fallback: bool = False,
    ) -> None:
        """Record one processed response.

        Args:
            strategy: Strategy tag that produced the output.
            duration_ms: Time spent analyzing and reducing, in milliseconds.
            original_tokens: Estimated tokens of the raw value.
            final_tokens: Estimated tokens of the text sent to the client.
            fallback: True if the output came from a failure fallback.

        Example:
            >>> stats = ResponseStats()
            >>> stats.record("truncation", 0.4, 9000, 1700, fallback=True)
        """
        entry = ResponseRecord(
            timestamp=time.monotonic(),
            duration_ms=duration_ms,
            original_tokens=original_tokens,
            final_tokens=final_tokens,
            fallback=fallback,
        )

        with self._lock:
            totals = self._totals.get(strategy)
            if totals is None:
                totals = _StrategyTotals(records=deque(maxlen=self._window_size))
                self._totals[strategy] = totals
            totals.records.append(entry)
            totals.total += 1
            totals.original_tokens += original_tokens
            totals.final_tokens += final_tokens
            if fallback:
                totals.fallbacks += 1
            totals.last_processed = _utc_now()

    def get_summary(self, strategy: str) -> StrategySummary:
        """Compute the summary for one strategy.

        Unknown strategies yield an all-zero summary.

        Args:
            strategy: Strategy tag to summarize.

        Returns:
            Snapshot :class:`StrategySummary`; later records do not
            affect it.

        Example:
            >>> stats = ResponseStats()
            >>> stats.record("sampling", 2.0, 100, 40)
            >>> stats.record("sampling", 4.0, 100, 40)
            >>> stats.get_summary("sampling").avg_duration_ms
            3.0
        """
        # Copy under the lock, sort outside it
        with self._lock:
            totals = self._totals.get(strategy)
            if totals is None:
                return StrategySummary(strategy=strategy)
            durations = [r.duration_ms for r in totals.records]
            total = totals.total
            fallbacks = totals.fallbacks
            original = totals.original_tokens
            final = totals.final_tokens
            last_processed = totals.last_processed

        if durations:
            min_dur = min(durations)
            max_dur = max(durations)
            avg_dur = sum(durations) / len(durations)
            p95_dur = _percentile(sorted(durations), 95)
        else:  # pragma: no cover - a strategy entry always has a record
            min_dur = max_dur = avg_dur = p95_dur = 0.0

        return StrategySummary(
            strategy=strategy,
            total_responses=total,
            fallbacks=fallbacks,
            original_tokens=original,
            final_tokens=final,
            tokens_saved=max(0, original - final),
            min_duration_ms=min_dur,
            max_duration_ms=max_dur,
            avg_duration_ms=avg_dur,
            p95_duration_ms=p95_dur,
            last_processed=last_processed,
        )

    def get_all_summaries(self) -> dict[str, StrategySummary]:
        """Return summaries for every strategy seen so far."""
        with self._lock:
            strategies = list(self._totals)
        return {name: self.get_summary(name) for name in strategies}

    def reset(self) -> None:
        """Forget all records and restart the uptime clock."""
        with self._lock:
            self._totals.clear()
            self._start_time = time.monotonic()

    def to_dict(self) -> dict[str, Any]:
        """Export all statistics as a JSON-serializable dict.

        Returns:
            ``{"uptime_seconds", "total_responses", "tokens_saved",
            "strategies": {tag: summary dict}}``.
        """
        summaries = self.get_all_summaries()
        with self._lock:
            uptime = time.monotonic() - self._start_time
        return {
            "uptime_seconds": uptime,
            "total_responses": sum(s.total_responses for s in summaries.values()),
            "tokens_saved": sum(s.tokens_saved for s in summaries.values()),
            "strategies": {name: s.to_dict() for name, s in summaries.items()},
        }


def _percentile(sorted_data: list[float], p: float) -> float:
    """Linear-interpolated percentile of pre-sorted data.

    Args:
        sorted_data: Values in ascending order. Empty input returns 0.0.
        p: Percentile in [0, 100].

    Returns:
        The interpolated percentile value.

    Raises:
        ValueError: If ``p`` is outside [0, 100].

    Example:
        >>> _percentile([100.0, 150.0, 200.0], 95)
        195.0
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")

    if not sorted_data:
        return 0.0

    k = (len(sorted_data) - 1) * (p / 100)
    floor_idx = int(k)
    ceil_idx = min(floor_idx + 1, len(sorted_data) - 1)

    if floor_idx == ceil_idx:
        return sorted_data[floor_idx]

    fraction = k - floor_idx
    return sorted_data[floor_idx] * (1 - fraction) + sorted_data[ceil_idx] * fraction
