"""
Plan tier detection and manual override resolution.

The tier is inferred from the heaviest session window seen so far. Thresholds
are exclusive-upper: exactly 44,000 display tokens is still Pro.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .segmenter import SessionWindow
from usage_monitor.storage.models import ManualOverride

logger = logging.getLogger(__name__)


AUTO_CHOICE = "Auto"
CUSTOM_LIMIT_STEP = 10_000


class PlanTier(Enum):
    """Usage tiers, valued by their display name."""
    PRO = "Pro"
    MAX5 = "Max5"
    MAX20 = "Max20"
    CUSTOM_MAX = "Custom Max"

    @property
    def fixed_limit(self) -> Optional[int]:
        """Token limit for the tier; Custom Max has none of its own."""
        return _FIXED_LIMITS.get(self)

    @classmethod
    def from_user_choice(cls, choice: str) -> Optional["PlanTier"]:
        """Parse a plan chosen by the user.

        Args:
            choice: "Pro", "Max5", "Max20" or "Auto"

        Returns:
            The chosen tier, or None for "Auto"

        Raises:
            ValueError: If the choice is unknown or detection-only
        """
        if choice == AUTO_CHOICE:
            return None
        try:
            tier = cls(choice)
        except ValueError:
            valid = [t.value for t in MANUAL_TIERS] + [AUTO_CHOICE]
            raise ValueError(f"Unknown plan '{choice}', must be one of: {valid}")
        if tier not in MANUAL_TIERS:
            raise ValueError(f"'{choice}' is detection-only and cannot be chosen manually")
        return tier


_FIXED_LIMITS = {
    PlanTier.PRO: 44_000,
    PlanTier.MAX5: 220_000,
    PlanTier.MAX20: 880_000,
}

MANUAL_TIERS = (PlanTier.PRO, PlanTier.MAX5, PlanTier.MAX20)


@dataclass(frozen=True)
class PlanDetection:
    """Tier inferred from historical usage."""
    tier: PlanTier
    limit: int
    max_window_tokens: int


@dataclass(frozen=True)
class ActivePlan:
    """Tier and limit actually in force after applying any manual override."""
    tier: PlanTier
    limit: int
    detected: PlanDetection
    is_manual: bool

    @property
    def label(self) -> str:
        mode = "Manual" if self.is_manual else "Auto"
        return f"{self.tier.value} ({mode})"


DEFAULT_DETECTION = PlanDetection(
    tier=PlanTier.PRO,
    limit=_FIXED_LIMITS[PlanTier.PRO],
    max_window_tokens=0,
)


def detect_plan(windows: Iterable[SessionWindow]) -> PlanDetection:
    """Infer the plan tier from the maximum display tokens of any window.

    Args:
        windows: All windows from one segmentation pass, historical and active

    Returns:
        PlanDetection with tier and limit
    """
    max_tokens = max(
        (w.display_tokens for w in windows if not w.is_gap),
        default=0
    )

    if max_tokens > _FIXED_LIMITS[PlanTier.MAX20]:
        # integer ceiling to the next 10k
        limit = -(-max_tokens // CUSTOM_LIMIT_STEP) * CUSTOM_LIMIT_STEP
        return PlanDetection(PlanTier.CUSTOM_MAX, limit, max_tokens)
    if max_tokens > _FIXED_LIMITS[PlanTier.MAX5]:
        tier = PlanTier.MAX20
    elif max_tokens > _FIXED_LIMITS[PlanTier.PRO]:
        tier = PlanTier.MAX5
    else:
        tier = PlanTier.PRO
    return PlanDetection(tier, _FIXED_LIMITS[tier], max_tokens)


def resolve_plan(detection: PlanDetection, override: ManualOverride) -> ActivePlan:
    """Apply a manual override on top of the detected tier.

    An enabled override whose stored tier is not a valid manual choice falls
    back to Pro, the most conservative limit.
    """
    if not override.enabled:
        return ActivePlan(
            tier=detection.tier,
            limit=detection.limit,
            detected=detection,
            is_manual=False
        )

    try:
        tier = PlanTier.from_user_choice(override.tier or "")
    except ValueError as e:
        logger.warning("Ignoring stored manual plan: %s", e)
        tier = None
    if tier is None:
        tier = PlanTier.PRO

    return ActivePlan(
        tier=tier,
        limit=tier.fixed_limit,
        detected=detection,
        is_manual=True
    )
