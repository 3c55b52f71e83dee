"""input-logprobs - Log-probabilities of input tokens from a model's per-position logits."""

from .core import (
    LogitScorer,
    ScorerConfig,
    LogprobSequence,
    log_softmax_at,
    token_positions,
    score,
    FIRST_TOKEN_SENTINEL,
    InputLogprobsError,
    ContractViolation,
    ConfigurationError,
)
from .interface import (
    TokenRun,
    EmbeddingBlock,
    as_segment,
    as_chunk,
    segment_from_dict,
    chunk_to_json,
    chunk_from_json,
)
from .report import (
    TokenLogprob,
    LogprobStats,
    LogprobReport,
    pair_tokens,
    summarize,
)

__all__ = [
    # Core
    "LogitScorer",
    "ScorerConfig",
    "LogprobSequence",
    "log_softmax_at",
    "token_positions",
    "score",
    "FIRST_TOKEN_SENTINEL",
    # Errors
    "InputLogprobsError",
    "ContractViolation",
    "ConfigurationError",
    # Segment types
    "TokenRun",
    "EmbeddingBlock",
    "as_segment",
    "as_chunk",
    "segment_from_dict",
    "chunk_to_json",
    "chunk_from_json",
    # Reporting
    "TokenLogprob",
    "LogprobStats",
    "LogprobReport",
    "pair_tokens",
    "summarize",
]
