"""
Token counting and usage tracking.

Applies the per-model weighting rule that turns raw token counts into the
display tokens compared against plan limits.

Weighting (case-insensitive substring match, checked in this order):
1. "opus"   - (input + output) * 5
2. "sonnet" - input + output
3. anything else is excluded from weighted totals entirely
"""

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, List, Optional

from usage_monitor.storage.models import UsageEvent

if TYPE_CHECKING:
    from .segmenter import SessionWindow


OPUS_MULTIPLIER = 5


@dataclass(frozen=True)
class ModelStats:
    """Accumulated token counters for one model within one window."""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    entries_count: int = 0

    @property
    def raw_tokens(self) -> int:
        """Input plus output tokens. Cache counters never count."""
        return self.input_tokens + self.output_tokens

    def add(self, event: UsageEvent) -> "ModelStats":
        """Return the counters with one more event folded in."""
        return replace(
            self,
            input_tokens=self.input_tokens + event.input_tokens,
            output_tokens=self.output_tokens + event.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens + event.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens + event.cache_read_tokens,
            entries_count=self.entries_count + 1,
        )


@dataclass(frozen=True)
class ModelBreakdown:
    """Read-only per-model projection of the active window."""
    model: str
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    raw_tokens: int
    weighted_tokens: int


def is_counted_model(model: str) -> bool:
    """Whether a model contributes to weighted totals."""
    name = model.lower()
    return "opus" in name or "sonnet" in name


def weighted_tokens(model: str, stats: ModelStats) -> Optional[int]:
    """Weighted token count for a model.

    Args:
        model: Model identifier
        stats: Counters for that model

    Returns:
        Weighted tokens, or None when the model is excluded from totals
    """
    name = model.lower()
    if "opus" in name:
        return stats.raw_tokens * OPUS_MULTIPLIER
    if "sonnet" in name:
        return stats.raw_tokens
    return None


def display_tokens(window: "SessionWindow") -> int:
    """Sum of weighted tokens over every counted model in the window."""
    total = 0
    for model, stats in window.per_model_stats.items():
        weighted = weighted_tokens(model, stats)
        if weighted is not None:
            total += weighted
    return total


def raw_tokens(window: "SessionWindow") -> int:
    """Unweighted, unfiltered input+output total. Diagnostic only."""
    return sum(stats.raw_tokens for stats in window.per_model_stats.values())


def model_breakdown(window: "SessionWindow") -> List[ModelBreakdown]:
    """Per-model breakdown of counted models, heaviest first.

    Ties keep the order in which models first appeared in the window.
    """
    breakdowns = []
    for model, stats in window.per_model_stats.items():
        weighted = weighted_tokens(model, stats)
        if weighted is None:
            continue
        breakdowns.append(ModelBreakdown(
            model=model,
            input_tokens=stats.input_tokens,
            output_tokens=stats.output_tokens,
            cache_creation_tokens=stats.cache_creation_tokens,
            cache_read_tokens=stats.cache_read_tokens,
            raw_tokens=stats.raw_tokens,
            weighted_tokens=weighted,
        ))
    # sorted() is stable, so insertion order breaks ties
    return sorted(breakdowns, key=lambda b: b.weighted_tokens, reverse=True)
