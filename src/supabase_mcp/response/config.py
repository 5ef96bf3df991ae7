"""Size-budget configuration for response processing.

Configs are frozen dataclasses. Presets are module constants, but since
they cannot be mutated they carry no shared state between tool calls;
derive a variant with :meth:`ChunkingConfig.replace` instead of editing one.

Example:
    >>> config = RESPONSE_CONFIGS["DATABASE_RESULTS"].replace(max_array_items=10)
    >>> config.max_array_items
    10
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from supabase_mcp.response.types import SummaryStrategy


@dataclass(frozen=True)
class ChunkingConfig:
    """Thresholds for the chunking orchestrator and response manager.

    Attributes:
        max_tokens: Estimated token ceiling before a response is reduced.
        max_characters: Character ceiling; the truncator keeps 80% of it.
        max_array_items: Array length above which arrays are chunked.
        max_object_properties: Property count above which objects are
            reduced.
        summary_strategy: Strategy used when ``force_strategy`` is set.
        enable_pagination: Paginate oversized arrays instead of sampling.
        include_metadata: Render the processing-details section.
        force_strategy: Dispatch to ``summary_strategy`` instead of the
            analyzer's suggestion.

    Raises:
        ValueError: If any limit is not a positive integer.
    """

    max_tokens: int = 4000
    max_characters: int = 15000
    max_array_items: int = 50
    max_object_properties: int = 30
    summary_strategy: SummaryStrategy = SummaryStrategy.SAMPLE
    enable_pagination: bool = True
    include_metadata: bool = True
    force_strategy: bool = False

    def __post_init__(self) -> None:
        for name in (
            "max_tokens",
            "max_characters",
            "max_array_items",
            "max_object_properties",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if not isinstance(self.summary_strategy, SummaryStrategy):
            # Accept the plain string form ("sample", ...) as well
            object.__setattr__(
                self, "summary_strategy", SummaryStrategy(self.summary_strategy)
            )

    def replace(self, **changes: Any) -> ChunkingConfig:
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class LimiterConfig:
    """Settings for :func:`~supabase_mcp.response.limiter.limit_response_size`.

    Attributes:
        max_tokens: Hard ceiling on estimated tokens of the output body.
        max_array_items: Items kept from an array before size checks.
        include_warning: Prefix the output with a disclosure header.
    """

    max_tokens: int = 20000
    max_array_items: int = 50
    include_warning: bool = True

    def __post_init__(self) -> None:
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.max_array_items < 1:
            raise ValueError(
                f"max_array_items must be positive, got {self.max_array_items}"
            )


DEFAULT_CHUNKING_CONFIG = ChunkingConfig()

#: Named presets. Read-only mapping of immutable configs.
RESPONSE_CONFIGS: MappingProxyType[str, ChunkingConfig] = MappingProxyType(
    {
        # Strict limits for token-conscious clients
        "CONSERVATIVE": ChunkingConfig(
            max_tokens=2000,
            max_characters=8000,
            max_array_items=20,
            max_object_properties=15,
            summary_strategy=SummaryStrategy.SUMMARIZE,
            include_metadata=False,
        ),
        "STANDARD": DEFAULT_CHUNKING_CONFIG,
        # Detailed analysis sessions
        "PERMISSIVE": ChunkingConfig(
            max_tokens=8000,
            max_characters=30000,
            max_array_items=100,
            max_object_properties=50,
            summary_strategy=SummaryStrategy.SAMPLE,
        ),
        # Query results: rows are paginated, wide rows sampled
        "DATABASE_RESULTS": ChunkingConfig(
            max_tokens=2000,
            max_characters=8000,
            max_array_items=25,
            max_object_properties=20,
            summary_strategy=SummaryStrategy.SAMPLE,
        ),
    }
)


def get_preset(name: str) -> ChunkingConfig:
    """Look up a preset by case-insensitive name.

    Raises:
        ValueError: If no preset has that name.

    Example:
        >>> get_preset("conservative").max_array_items
        20
    """
    try:
        return RESPONSE_CONFIGS[name.upper()]
    except KeyError:
        choices = ", ".join(RESPONSE_CONFIGS)
        raise ValueError(
            f"Unknown response preset {name!r} (choose from {choices})"
        ) from None
