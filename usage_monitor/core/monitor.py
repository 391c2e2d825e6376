"""
Usage monitor controller.

Runs one refresh cycle over the full event history and owns the published
snapshot that observers render.

Refresh Order:
1. Load all events (a failed load keeps the previous snapshot)
2. Segment into windows and find the active one
3. Breakdown, burn rate and plan detection over all windows
4. Prediction against the active window's totals
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .burn_rate import calculate_burn_rate
from .formatting import TimeFormatter, usage_level
from .plans import DEFAULT_DETECTION, ActivePlan, PlanTier, detect_plan, resolve_plan
from .prediction import predict_time_remaining, will_exceed_before_reset
from .segmenter import find_active_window, segment_events
from .token_counter import ModelBreakdown, model_breakdown
from usage_monitor.loader import DataLoadError

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class UsageSnapshot:
    """Published usage state. Replaced as a whole, never mutated."""
    current_tokens: int
    token_limit: int
    burn_rate: float
    time_remaining: str
    reset_time: str
    plan: PlanTier
    detected_plan: PlanTier
    is_manual_plan: bool
    session_start: datetime
    session_end: datetime
    has_active_session: bool
    model_breakdown: Tuple[ModelBreakdown, ...] = field(default_factory=tuple)
    raw_tokens: int = 0
    will_exceed_before_reset: bool = False

    @property
    def plan_label(self) -> str:
        mode = "Manual" if self.is_manual_plan else "Auto"
        return f"{self.plan.value} ({mode})"

    @property
    def usage_percentage(self) -> float:
        """Share of the limit used, 0.0 when there is no positive limit."""
        if self.token_limit <= 0:
            return 0.0
        return self.current_tokens / self.token_limit * 100

    @property
    def usage_level(self) -> str:
        return usage_level(self.usage_percentage)


def _with_plan(snapshot: UsageSnapshot, plan: ActivePlan, now: datetime) -> UsageSnapshot:
    """Apply a plan to a snapshot, re-forecasting when a session is active."""
    updated = replace(
        snapshot,
        token_limit=plan.limit,
        plan=plan.tier,
        detected_plan=plan.detected.tier,
        is_manual_plan=plan.is_manual,
    )
    if not snapshot.has_active_session:
        return updated

    prediction = predict_time_remaining(
        current_tokens=snapshot.current_tokens,
        limit=plan.limit,
        burn_rate=snapshot.burn_rate,
        window_end=snapshot.session_end,
        now=now
    )
    return replace(
        updated,
        time_remaining=prediction.label,
        will_exceed_before_reset=will_exceed_before_reset(
            snapshot.current_tokens, plan.limit, snapshot.burn_rate, snapshot.session_end, now
        ),
    )


class UsageMonitorController:
    """Orchestrates refreshes and publishes UsageSnapshot objects.

    Collaborators are duck-typed:
    - loader.load_usage_data() -> ascending, deduplicated UsageEvent list
    - settings.get_manual_override() / settings.set_manual_override(enabled, tier)

    Refreshes are single-flight: a refresh requested while another is running
    is dropped and the current snapshot is returned.
    """

    def __init__(
        self,
        loader,
        settings,
        formatter: Optional[TimeFormatter] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.loader = loader
        self.settings = settings
        self.formatter = formatter or TimeFormatter()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._refresh_lock = threading.Lock()
        self._subscribers: List[Callable[[UsageSnapshot], None]] = []
        self._detection = DEFAULT_DETECTION
        # bumped on every plan change; snapshots computed under an older value are stale
        self._plan_generation = 0
        self._computed: Optional[Tuple[UsageSnapshot, int]] = None

        now = self._clock()
        plan = resolve_plan(self._detection, self.settings.get_manual_override())
        self._snapshot = self._idle_snapshot(plan, now)

    @property
    def snapshot(self) -> UsageSnapshot:
        return self._snapshot

    def subscribe(self, callback: Callable[[UsageSnapshot], None]) -> None:
        """Register an observer called with every published snapshot."""
        self._subscribers.append(callback)

    def publish(self, snapshot: UsageSnapshot) -> None:
        """Swap in a new snapshot and notify observers on the calling thread.

        A snapshot from compute_snapshot that was started before the latest
        set_plan call is dropped; the next refresh picks up the new plan.
        """
        computed = self._computed
        if computed is not None and computed[0] is snapshot and computed[1] != self._plan_generation:
            logger.debug("Dropping snapshot computed before the last plan change")
            return
        self._snapshot = snapshot
        for callback in self._subscribers:
            callback(snapshot)

    def compute_snapshot(self, now: Optional[datetime] = None) -> Optional[UsageSnapshot]:
        """Recompute usage state from the full event history.

        Safe to run off the observer thread; it does not publish.

        Args:
            now: Reference time (defaults to the controller's clock)

        Returns:
            New snapshot, or None if the refresh was dropped or the load failed
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.debug("Refresh already in flight, dropping tick")
            return None
        try:
            generation = self._plan_generation
            snapshot = self._collect(now or self._clock())
            if snapshot is not None:
                self._computed = (snapshot, generation)
            return snapshot
        finally:
            self._refresh_lock.release()

    def refresh(self, now: Optional[datetime] = None) -> UsageSnapshot:
        """Run one full refresh and publish the result.

        Returns:
            The published snapshot (the previous one if nothing new was computed)
        """
        snapshot = self.compute_snapshot(now)
        if snapshot is not None:
            self.publish(snapshot)
        return self._snapshot

    def set_plan(self, choice: str, now: Optional[datetime] = None) -> UsageSnapshot:
        """Persist a user plan choice and republish with it applied.

        Waits for a running refresh to finish, so the override is never
        written while a refresh is reading it.

        Args:
            choice: "Pro", "Max5", "Max20", or "Auto" to clear the override

        Raises:
            ValueError: If the choice is not a valid manual plan
        """
        tier = PlanTier.from_user_choice(choice)
        with self._refresh_lock:
            if tier is None:
                self.settings.set_manual_override(False, None)
            else:
                self.settings.set_manual_override(True, tier.value)
            self._plan_generation += 1

            plan = resolve_plan(self._detection, self.settings.get_manual_override())
            self.publish(_with_plan(self._snapshot, plan, now or self._clock()))
            return self._snapshot

    def _collect(self, now: datetime) -> Optional[UsageSnapshot]:
        try:
            events = self.loader.load_usage_data()
        except (DataLoadError, OSError) as e:
            logger.warning("Skipping refresh, usage data unavailable: %s", e)
            return None

        windows = segment_events(events)
        active = find_active_window(windows, now)
        override = self.settings.get_manual_override()

        if active is None:
            logger.debug("No active session among %d windows", len(windows))
            return self._idle_snapshot(resolve_plan(self._detection, override), now)

        self._detection = detect_plan(windows)
        plan = resolve_plan(self._detection, override)
        burn_rate = calculate_burn_rate(windows, now)
        current_tokens = active.display_tokens
        prediction = predict_time_remaining(
            current_tokens=current_tokens,
            limit=plan.limit,
            burn_rate=burn_rate,
            window_end=active.end_time,
            now=now
        )

        logger.debug(
            "Refreshed: %d tokens of %d (%s), %.1f tokens/min, %s",
            current_tokens, plan.limit, plan.label, burn_rate, prediction.label
        )
        return UsageSnapshot(
            current_tokens=current_tokens,
            token_limit=plan.limit,
            burn_rate=burn_rate,
            time_remaining=prediction.label,
            reset_time=self.formatter.format(active.end_time),
            plan=plan.tier,
            detected_plan=plan.detected.tier,
            is_manual_plan=plan.is_manual,
            session_start=active.start_time,
            session_end=active.end_time,
            has_active_session=True,
            model_breakdown=tuple(model_breakdown(active)),
            raw_tokens=active.raw_tokens,
            will_exceed_before_reset=will_exceed_before_reset(
                current_tokens, plan.limit, burn_rate, active.end_time, now
            ),
        )

    @staticmethod
    def _idle_snapshot(plan: ActivePlan, now: datetime) -> UsageSnapshot:
        return UsageSnapshot(
            current_tokens=0,
            token_limit=plan.limit,
            burn_rate=0.0,
            time_remaining=NOT_AVAILABLE,
            reset_time=NOT_AVAILABLE,
            plan=plan.tier,
            detected_plan=plan.detected.tier,
            is_manual_plan=plan.is_manual,
            session_start=now,
            session_end=now,
            has_active_session=False,
        )
