"""Core scoring of input tokens from a model's per-position logits."""

from dataclasses import dataclass
import logging
import numbers
import os
from typing import Optional

import torch

from .interface import EmbeddingBlock, as_segment

logger = logging.getLogger(__name__)

EMBED_SIZE_ENV = "INPUT_LOGPROBS_EMBED_SIZE"
DEFAULT_EMBED_SIZE = 5

# Emitted for the token at global position 0. Not a log-probability: no
# earlier position exists to have predicted it.
FIRST_TOKEN_SENTINEL = 0.0


# =============================================================================
# Errors
# =============================================================================

class InputLogprobsError(ValueError):
    """Base class for scoring failures."""


class ContractViolation(InputLogprobsError):
    """The logits buffer and the chunk layout disagree.

    Raised when the layout needs more rows than the buffer holds, when a
    token id is not an int or lies outside the vocabulary, or when the
    buffer shape does not match the vocabulary size.
    """


class ConfigurationError(InputLogprobsError):
    """A size parameter (vocabulary or embedding width) is malformed."""


def _check_positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an int, got {type(value).__name__}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class ScorerConfig:
    """Deployment constants shared with the producer of the logits.

    Attributes:
        embed_size: Number of sequence positions one embedding block occupies
    """
    embed_size: int = DEFAULT_EMBED_SIZE

    def __post_init__(self):
        _check_positive_int("embed_size", self.embed_size)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ScorerConfig":
        """Build a config from INPUT_LOGPROBS_EMBED_SIZE, if set.

        A malformed value raises ConfigurationError instead of falling back
        to the default, since the width has to match the producer.
        """
        environ = os.environ if environ is None else environ
        raw = environ.get(EMBED_SIZE_ENV)
        if raw is None or raw.strip() == "":
            return cls()
        try:
            embed_size = int(raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"{EMBED_SIZE_ENV} must be an integer, got {raw!r}"
            ) from exc
        return cls(embed_size=embed_size)


# =============================================================================
# Log-softmax
# =============================================================================

def log_softmax_at(row: torch.Tensor, token_id: int) -> float:
    """Log-probability of one token under the distribution implied by a logit row.

    Uses the max-subtraction form so large logits never overflow:
        log p(t) = r[t] - (log Σ exp(r_j - m) + m),  m = max(r)

    Args:
        row: Logit vector [vocab_size]
        token_id: Vocabulary index to score

    Returns:
        log softmax(row)[token_id] as a Python float
    """
    vocab_size = row.shape[-1]
    if not 0 <= token_id < vocab_size:
        raise ContractViolation(
            f"Token id {token_id} outside vocabulary of size {vocab_size}"
        )
    # A row holding +inf, or only -inf, yields NaN.
    row = row.double()
    m = row.max()
    s = torch.exp(row - m).sum()
    log_sum_exp = torch.log(s) + m
    return (row[token_id] - log_sum_exp).item()


# =============================================================================
# Sequence Layout
# =============================================================================

def token_positions(chunks, embed_size: int) -> list[tuple[int, int]]:
    """Walk a chunk layout and return (token_id, position) for every text token.

    Positions are absolute: an embedding block advances the cursor by
    embed_size, each token by one.
    """
    _check_positive_int("embed_size", embed_size)
    positions = []
    pos = 0
    for item in chunks:
        segment = as_segment(item)
        if isinstance(segment, EmbeddingBlock):
            pos += embed_size
            continue
        for token_id in segment.token_ids:
            if isinstance(token_id, bool) or not isinstance(token_id, numbers.Integral):
                raise ContractViolation(
                    f"Token id at position {pos} must be an int, got {token_id!r}"
                )
            positions.append((int(token_id), pos))
            pos += 1
    return positions


class LogprobSequence:
    """Log-probabilities of the input tokens, in encounter order.

    When the sequence starts with text, the first value is the position-0
    sentinel rather than a log-probability; has_sentinel records this so
    aggregates can leave it out.
    """

    def __init__(self, values: list[float], has_sentinel: bool = False):
        self.values = values
        self.has_sentinel = has_sentinel

    def __repr__(self):
        return f"LogprobSequence({self.values!r}, has_sentinel={self.has_sentinel})"

    def __len__(self):
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def __getitem__(self, i):
        return self.values[i]

    def tolist(self) -> list[float]:
        return list(self.values)

    def scored(self) -> list[float]:
        """Values that are true log-probabilities (sentinel removed)."""
        return self.values[1:] if self.has_sentinel else list(self.values)


# =============================================================================
# Scorer
# =============================================================================

class LogitScorer:
    """Score input tokens against the logits of the preceding position.

    The token at global position p is scored with logit row p - 1, the
    distribution the model emitted after consuming position p - 1. The token
    at position 0 has no such row and gets FIRST_TOKEN_SENTINEL.

    Example:
        >>> scorer = LogitScorer(ScorerConfig(embed_size=5))
        >>> result = scorer.score(logits, [[0], EmbeddingBlock(), [1]], vocab_size=3)
        >>> result.scored()
    """

    def __init__(self, config: Optional[ScorerConfig] = None):
        self.config = config if config is not None else ScorerConfig()

    def __repr__(self):
        return f"LogitScorer(embed_size={self.config.embed_size})"

    def score(self, logits, chunks, vocab_size: int) -> LogprobSequence:
        """Compute one log-probability per text token.

        Args:
            logits: Flat buffer of positions * vocab_size floats (row-major),
                or a [positions, vocab_size] tensor
            chunks: Ordered segments (TokenRun / EmbeddingBlock, or lists of ids)
            vocab_size: Width of one logit row

        Returns:
            LogprobSequence with one entry per text token

        Raises:
            ConfigurationError: If vocab_size is not a positive int
            ContractViolation: If the layout does not fit the buffer
        """
        rows, positions = self._prepare(logits, chunks, vocab_size)
        values = []
        with torch.no_grad():
            for token_id, pos in positions:
                if pos == 0:
                    values.append(FIRST_TOKEN_SENTINEL)
                else:
                    values.append(log_softmax_at(rows[pos - 1], token_id))
        return LogprobSequence(values, has_sentinel=_starts_at_zero(positions))

    def score_vectorized(
        self,
        logits,
        chunks,
        vocab_size: int,
        batch_size: int = 1024,
    ) -> LogprobSequence:
        """Same contract as score(), computed in batched tensor passes.

        Rows are gathered batch_size tokens at a time so the float64 copy
        never exceeds batch_size * vocab_size elements.
        """
        _check_positive_int("batch_size", batch_size)
        rows, positions = self._prepare(logits, chunks, vocab_size)
        scored = [(token_id, pos) for token_id, pos in positions if pos > 0]

        logprobs = []
        with torch.no_grad():
            for start in range(0, len(scored), batch_size):
                batch = scored[start:start + batch_size]
                row_idx = torch.tensor(
                    [pos - 1 for _, pos in batch], dtype=torch.long, device=rows.device
                )
                targets = torch.tensor(
                    [token_id for token_id, _ in batch], dtype=torch.long, device=rows.device
                )

                selected = rows[row_idx].double()  # [N, vocab_size]
                m = selected.max(dim=-1, keepdim=True).values
                s = torch.exp(selected - m).sum(dim=-1)
                log_sum_exp = torch.log(s) + m.squeeze(-1)
                target_logits = selected.gather(-1, targets.unsqueeze(-1)).squeeze(-1)
                logprobs.extend((target_logits - log_sum_exp).tolist())

        has_sentinel = _starts_at_zero(positions)
        values = [FIRST_TOKEN_SENTINEL] + logprobs if has_sentinel else logprobs
        return LogprobSequence(values, has_sentinel=has_sentinel)

    def _prepare(self, logits, chunks, vocab_size: int):
        """Validate inputs and return (rows [positions, vocab_size], token positions)."""
        _check_positive_int("vocab_size", vocab_size)
        rows = _as_rows(logits, vocab_size)
        n_rows = rows.shape[0]
        positions = token_positions(chunks, self.config.embed_size)

        for token_id, pos in positions:
            if not 0 <= token_id < vocab_size:
                raise ContractViolation(
                    f"Token id {token_id} at position {pos} outside vocabulary "
                    f"of size {vocab_size}"
                )
            if pos > 0 and pos - 1 >= n_rows:
                raise ContractViolation(
                    f"Token at position {pos} needs logit row {pos - 1}, "
                    f"but the buffer holds {n_rows} rows"
                )

        logger.debug(
            "Scoring %d tokens against %d logit rows (vocab_size=%d, embed_size=%d)",
            len(positions), n_rows, vocab_size, self.config.embed_size,
        )
        return rows, positions


def _starts_at_zero(positions: list[tuple[int, int]]) -> bool:
    return bool(positions) and positions[0][1] == 0


def _as_rows(logits, vocab_size: int) -> torch.Tensor:
    """View a logits buffer as [positions, vocab_size] without copying when possible."""
    buffer = torch.as_tensor(logits).detach()
    if buffer.dim() == 1:
        if buffer.numel() % vocab_size != 0:
            raise ContractViolation(
                f"Buffer of {buffer.numel()} values is not a whole number of "
                f"rows of width {vocab_size}"
            )
        return buffer.reshape(-1, vocab_size)
    if buffer.dim() == 2:
        if buffer.shape[1] != vocab_size:
            raise ContractViolation(
                f"Buffer rows have width {buffer.shape[1]}, expected {vocab_size}"
            )
        return buffer
    raise ContractViolation(
        f"Expected a flat or [positions, vocab_size] buffer, got shape {tuple(buffer.shape)}"
    )


def score(logits, chunks, vocab_size: int, embed_size: Optional[int] = None) -> LogprobSequence:
    """Score input tokens with a one-off LogitScorer.

    Args:
        logits: Flat row-major logits buffer or [positions, vocab_size] tensor
        chunks: Ordered segments of the input sequence
        vocab_size: Width of one logit row
        embed_size: Positions per embedding block (default: ScorerConfig default)

    Returns:
        LogprobSequence with one entry per text token
    """
    config = ScorerConfig() if embed_size is None else ScorerConfig(embed_size=embed_size)
    return LogitScorer(config).score(logits, chunks, vocab_size)
