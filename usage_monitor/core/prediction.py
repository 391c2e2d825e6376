"""
Exhaustion prediction.

Forecasts whether the token limit or the window reset comes first, and
formats the time left until the earlier of the two.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


MAX_FORECAST_MINUTES = 300


class PredictionState(Enum):
    """Outcome of a time-remaining forecast."""
    EXCEEDED = "Exceeded"
    UNBOUNDED = "Unbounded"
    BEYOND_WINDOW = "5h+"
    REMAINING = "remaining"


@dataclass(frozen=True)
class Prediction:
    """Time-remaining forecast for the active window."""
    state: PredictionState
    label: str
    minutes_to_exhaustion: Optional[float] = None
    minutes_to_reset: Optional[float] = None


def _minutes_until(end: datetime, now: datetime) -> float:
    return (end - now).total_seconds() / 60.0


def format_minutes(minutes: float) -> str:
    """Whole hours and minutes, e.g. 95 minutes is '1h 35m'."""
    whole = int(minutes)
    return f"{whole // 60}h {whole % 60}m"


def predict_time_remaining(
    current_tokens: int,
    limit: int,
    burn_rate: float,
    window_end: datetime,
    now: datetime
) -> Prediction:
    """Forecast time left before the budget runs out or the window resets.

    Args:
        current_tokens: Display tokens used in the active window
        limit: Token limit of the active plan
        burn_rate: Tokens per minute over the last hour
        window_end: End time of the active window
        now: Reference time

    Returns:
        Prediction; never raises for zero or negative rates
    """
    if current_tokens >= limit:
        return Prediction(PredictionState.EXCEEDED, PredictionState.EXCEEDED.value)

    if burn_rate <= 0:
        return Prediction(PredictionState.UNBOUNDED, PredictionState.UNBOUNDED.value)

    minutes_to_exhaustion = (limit - current_tokens) / burn_rate
    minutes_to_reset = _minutes_until(window_end, now)
    effective = min(minutes_to_exhaustion, minutes_to_reset)

    if effective < 0:
        state = PredictionState.EXCEEDED
        label = state.value
    elif effective > MAX_FORECAST_MINUTES:
        state = PredictionState.BEYOND_WINDOW
        label = state.value
    else:
        state = PredictionState.REMAINING
        label = format_minutes(effective)

    return Prediction(
        state=state,
        label=label,
        minutes_to_exhaustion=minutes_to_exhaustion,
        minutes_to_reset=minutes_to_reset,
    )


def will_exceed_before_reset(
    current_tokens: int,
    limit: int,
    burn_rate: float,
    window_end: datetime,
    now: datetime
) -> bool:
    """Whether the limit is hit before the window resets at the current rate."""
    if burn_rate <= 0:
        return False
    minutes_to_exhaustion = (limit - current_tokens) / burn_rate
    return minutes_to_exhaustion < _minutes_until(window_end, now)
