"""Response-size governance for tool output.

Keeps what a tool hands back to the model within a token budget:
analysis, reduction strategies, the chunking orchestrator, the hard
limiter and the Markdown-rendering response manager.
"""

from supabase_mcp.response.analyzer import (
    analyze_response,
    get_response_summary,
    is_oversized,
)
from supabase_mcp.response.chunker import chunk_page, chunk_response
from supabase_mcp.response.config import (
    DEFAULT_CHUNKING_CONFIG,
    RESPONSE_CONFIGS,
    ChunkingConfig,
    LimiterConfig,
    get_preset,
)
from supabase_mcp.response.limiter import limit_response_size
from supabase_mcp.response.manager import ResponseManager, process_response
from supabase_mcp.response.types import (
    ChunkedResponse,
    ChunkingResult,
    ChunkingStrategy,
    OriginalSize,
    ResponseAnalysis,
    ResponseMetadata,
    SamplingInfo,
    SummaryStrategy,
    ValueShape,
    decode_continuation_token,
    encode_continuation_token,
)

__all__ = [
    # Analysis
    "analyze_response",
    "get_response_summary",
    "is_oversized",
    # Chunking
    "chunk_page",
    "chunk_response",
    "limit_response_size",
    # Configuration
    "DEFAULT_CHUNKING_CONFIG",
    "RESPONSE_CONFIGS",
    "ChunkingConfig",
    "LimiterConfig",
    "get_preset",
    # Manager
    "ResponseManager",
    "process_response",
    # Types
    "ChunkedResponse",
    "ChunkingResult",
    "ChunkingStrategy",
    "OriginalSize",
    "ResponseAnalysis",
    "ResponseMetadata",
    "SamplingInfo",
    "SummaryStrategy",
    "ValueShape",
    "decode_continuation_token",
    "encode_continuation_token",
]
