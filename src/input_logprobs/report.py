"""Reporting helpers for scored input tokens.

Pairs log-probabilities with token labels and reduces them to simple
statistics (min, max, mean, perplexity) for display.
"""

from dataclasses import dataclass
import math
from typing import Optional

from .core import LogprobSequence


@dataclass
class TokenLogprob:
    """A token label with its log-probability."""
    token: str
    logprob: float

    @property
    def probability(self) -> float:
        return math.exp(self.logprob)


@dataclass
class LogprobStats:
    """Aggregate statistics over a set of log-probabilities."""
    min: float
    max: float
    avg: float
    perplexity: float
    count: int


def pair_tokens(logprobs, tokens: Optional[list] = None) -> list[TokenLogprob]:
    """Pair log-probabilities with token labels.

    Pairs up to the shorter of the two sequences. Without labels, tokens are
    named by index ("[0]", "[1]", ...).
    """
    values = list(logprobs)
    if tokens is None:
        return [TokenLogprob(token=f"[{i}]", logprob=v) for i, v in enumerate(values)]
    return [TokenLogprob(token=str(t), logprob=v) for t, v in zip(tokens, values)]


def summarize(logprobs, include_sentinel: bool = False) -> Optional[LogprobStats]:
    """Compute min, max, mean and perplexity exp(-mean).

    NaN values are dropped. For a LogprobSequence that starts with the
    position-0 sentinel, the sentinel is left out unless include_sentinel is
    set, since averaging it in biases the mean towards zero.

    Returns:
        LogprobStats, or None when no values remain
    """
    if isinstance(logprobs, LogprobSequence) and not include_sentinel:
        values = logprobs.scored()
    else:
        values = list(logprobs)
    values = [v for v in values if not math.isnan(v)]
    if not values:
        return None

    avg = sum(values) / len(values)
    return LogprobStats(
        min=min(values),
        max=max(values),
        avg=avg,
        perplexity=math.exp(-avg),
        count=len(values),
    )


@dataclass
class LogprobReport:
    """Per-token log-probabilities of a text, with summary statistics."""
    text: str
    tokens: list[TokenLogprob]
    stats: Optional[LogprobStats]

    @classmethod
    def build(cls, text: str, logprobs, tokens: Optional[list] = None,
              include_sentinel: bool = False) -> "LogprobReport":
        return cls(
            text=text,
            tokens=pair_tokens(logprobs, tokens),
            stats=summarize(logprobs, include_sentinel=include_sentinel),
        )

    def summary(self, k: int = 5) -> str:
        """Return the statistics and the k least likely tokens."""
        if self.stats is None:
            lines = ["No scored tokens"]
        else:
            lines = [
                f"Perplexity: {self.stats.perplexity:.2f}",
                f"Avg logprob: {self.stats.avg:.2f} "
                f"(min {self.stats.min:.2f}, max {self.stats.max:.2f}, n={self.stats.count})",
            ]
        surprising = sorted(self.tokens, key=lambda tl: tl.logprob)[:k]
        if surprising:
            lines.append(f"Least likely {len(surprising)} tokens:")
            for i, tl in enumerate(surprising, 1):
                lines.append(f"  {i}. {tl.token!r} (logprob: {tl.logprob:.4f}, prob: {tl.probability:.2%})")
        return "\n".join(lines)

    def print_report(self):
        """Print every token with its log-probability, then the summary."""
        print(f"Text: {self.text!r}")
        for tl in self.tokens:
            print(f"  {tl.token!r:>20} {tl.logprob:+.4f}")
        print()
        print(self.summary())
