"""
Study Activity and Streak Tracking.

Maintains the single persisted activity aggregate:
- day-granular study streak (current and longest)
- minutes studied "today", bucketed by calendar day
- daily minute goal and weekly day goal
- lifetime totals (days, minutes, cards, pages)

Every mutation runs under one lock and is written through the injected
ActivityStore before it becomes visible, so a failed save leaves the
tracker unchanged and the call can simply be repeated.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Protocol

from loguru import logger

from .clock import Clock, SystemClock

MIN_DAILY_GOAL_MINUTES = 5
MAX_DAILY_GOAL_MINUTES = 480
MIN_WEEKLY_GOAL_DAYS = 1
MAX_WEEKLY_GOAL_DAYS = 7

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ActivityState:
    """Persisted streak, goal and total counters."""

    current_streak: int = 0
    longest_streak: int = 0
    last_study_at: datetime | None = None

    daily_goal_minutes: int = 30
    today_minutes: int = 0
    today_bucket_date: datetime | None = None  # Day today_minutes belongs to

    weekly_goal_days: int = 5

    total_study_days: int = 0
    total_minutes: int = 0
    total_cards_reviewed: int = 0
    total_pages_read: int = 0


@dataclass
class SessionRecord:
    """A finished study session, kept for weekly activity views."""

    started_at: datetime
    ended_at: datetime
    duration_seconds: int
    cards_processed: int
    cards_skipped: int = 0
    scope: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class DayActivity:
    """Aggregated study activity for one calendar day."""

    day: date
    minutes: int
    cards: int

    @property
    def studied(self) -> bool:
        return self.minutes > 0 or self.cards > 0


class ActivityStore(Protocol):
    """Persistence for the activity aggregate."""

    def load_activity(self) -> ActivityState | None:
        ...

    def save_activity(self, state: ActivityState) -> None:
        ...


# =============================================================================
# Activity Tracker
# =============================================================================


class ActivityTracker:
    """
    Streak and goal bookkeeping over an injected ActivityStore.

    The store holds the only copy that survives restarts; the tracker keeps
    a committed in-memory snapshot and replaces it only after a save
    succeeds.
    """

    def __init__(
        self,
        store: ActivityStore,
        clock: Clock | None = None,
        defaults: ActivityState | None = None,
    ):
        """
        Load the aggregate from ``store``, creating it on first use.

        Args:
            store: Where the aggregate is persisted
            clock: Time source (system clock in UTC if None)
            defaults: Initial state used when the store is empty
        """
        self.store = store
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()

        loaded = store.load_activity()
        if loaded is None:
            loaded = replace(defaults) if defaults else ActivityState()
            store.save_activity(loaded)
            logger.info("Created activity state")
        self._state = loaded

    @property
    def state(self) -> ActivityState:
        """Snapshot of the committed state."""
        with self._lock:
            return replace(self._state)

    def _commit(self, new_state: ActivityState) -> ActivityState:
        self.store.save_activity(new_state)
        self._state = new_state
        return replace(new_state)

    def _is_stale_bucket(self, state: ActivityState, today: date) -> bool:
        if state.today_bucket_date is None:
            return False
        return self.clock.calendar_day(state.today_bucket_date) != today

    # =========================================================================
    # Recording
    # =========================================================================

    def record_study(self, minutes: int, cards: int = 0, pages: int = 0) -> ActivityState:
        """
        Apply one "study occurred" event.

        Args:
            minutes: Minutes studied
            cards: Flashcards reviewed
            pages: Pages read

        Returns:
            The committed state after the update
        """
        with self._lock:
            now = self.clock.now()
            today = self.clock.calendar_day(now)
            state = replace(self._state)

            if self._is_stale_bucket(state, today):
                state.today_minutes = 0
            state.today_bucket_date = now

            if state.last_study_at is None:
                # First session ever
                state.current_streak = 1
                state.today_minutes = minutes
                state.total_study_days = 1
            else:
                last_day = self.clock.calendar_day(state.last_study_at)

                if last_day == today:
                    state.today_minutes += minutes
                else:
                    gap = (today - last_day).days

                    if gap == 1:
                        state.current_streak += 1
                        state.today_minutes = minutes
                        state.total_study_days += 1
                    elif gap > 1:
                        logger.info(f"Streak broken after {gap} days, restarting at 1")
                        state.current_streak = 1
                        state.today_minutes = minutes
                        state.total_study_days += 1
                    else:
                        # Last study day is in the future: clock moved backwards.
                        logger.warning(
                            f"Last study day {last_day} is after today {today}; "
                            f"streak and today's minutes left unchanged"
                        )

            state.last_study_at = now
            state.total_minutes += minutes
            state.total_cards_reviewed += cards
            state.total_pages_read += pages
            state.longest_streak = max(state.longest_streak, state.current_streak)

            logger.debug(
                f"Recorded study: +{minutes}m, +{cards} cards, +{pages} pages "
                f"(streak={state.current_streak}, today={state.today_minutes}m)"
            )
            return self._commit(state)

    def check_streak_status(self) -> ActivityState:
        """
        Roll the day bucket over and lapse the streak after a missed day.

        Safe to call on every activation; a second call on the same day
        changes nothing.
        """
        with self._lock:
            now = self.clock.now()
            today = self.clock.calendar_day(now)
            state = replace(self._state)

            if self._is_stale_bucket(state, today):
                state.today_minutes = 0
                state.today_bucket_date = now

            if state.last_study_at is not None:
                days_since = (today - self.clock.calendar_day(state.last_study_at)).days
                if days_since > 1 and state.current_streak != 0:
                    logger.info(f"No study for {days_since} days, streak lapsed")
                    state.current_streak = 0

            if state == self._state:
                return replace(state)
            return self._commit(state)

    def reset_today_progress(self) -> ActivityState:
        with self._lock:
            state = replace(self._state, today_minutes=0, today_bucket_date=self.clock.now())
            return self._commit(state)

    # =========================================================================
    # Goals
    # =========================================================================

    def update_daily_goal(self, minutes: int) -> ActivityState:
        """Set the daily goal, clamped to 5 minutes .. 8 hours."""
        clamped = max(MIN_DAILY_GOAL_MINUTES, min(MAX_DAILY_GOAL_MINUTES, minutes))
        if clamped != minutes:
            logger.warning(f"Daily goal {minutes}m out of range, clamped to {clamped}m")
        with self._lock:
            return self._commit(replace(self._state, daily_goal_minutes=clamped))

    def update_weekly_goal(self, days: int) -> ActivityState:
        """Set the weekly goal, clamped to 1..7 days."""
        clamped = max(MIN_WEEKLY_GOAL_DAYS, min(MAX_WEEKLY_GOAL_DAYS, days))
        if clamped != days:
            logger.warning(f"Weekly goal {days} days out of range, clamped to {clamped}")
        with self._lock:
            return self._commit(replace(self._state, weekly_goal_days=clamped))

    # =========================================================================
    # Derived Values
    # =========================================================================

    @property
    def today_minutes(self) -> int:
        """Minutes for the current calendar day (0 if the bucket is stale)."""
        with self._lock:
            today = self.clock.calendar_day(self.clock.now())
            if self._is_stale_bucket(self._state, today):
                return 0
            return self._state.today_minutes

    @property
    def goal_progress(self) -> float:
        with self._lock:
            goal = self._state.daily_goal_minutes
            if goal <= 0:
                return 0.0
            return min(1.0, self.today_minutes / goal)

    @property
    def has_met_daily_goal(self) -> bool:
        with self._lock:
            return self.today_minutes >= self._state.daily_goal_minutes

    @property
    def has_studied_today(self) -> bool:
        last = self._state.last_study_at
        if last is None:
            return False
        return self.clock.calendar_day(last) == self.clock.calendar_day(self.clock.now())

    @property
    def formatted_today_time(self) -> str:
        return format_minutes(self.today_minutes)

    @property
    def formatted_total_time(self) -> str:
        return format_minutes(self._state.total_minutes)

    def weekly_progress(self, days_studied: int) -> float:
        """Fraction of the weekly day goal reached, capped at 1.0."""
        goal = self._state.weekly_goal_days
        if goal <= 0:
            return 0.0
        return min(1.0, days_studied / goal)


# =============================================================================
# Weekly Activity
# =============================================================================


def weekly_activity(
    sessions: Iterable[SessionRecord],
    clock: Clock,
    now: datetime | None = None,
    days: int = 7,
) -> list[DayActivity]:
    """
    Aggregate session history into per-day totals, oldest day first.

    Args:
        sessions: Finished sessions (any order, any age)
        clock: Defines the calendar-day boundaries
        now: Reference time (clock.now() if None)
        days: Number of days ending today

    Returns:
        One DayActivity per day, including days with no study
    """
    now = now or clock.now()
    today = clock.calendar_day(now)
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]

    seconds: dict[date, int] = {day: 0 for day in window}
    cards: dict[date, int] = {day: 0 for day in window}

    for session in sessions:
        day = clock.calendar_day(session.started_at)
        if day in seconds:
            seconds[day] += session.duration_seconds
            cards[day] += session.cards_processed

    return [DayActivity(day=day, minutes=seconds[day] // 60, cards=cards[day]) for day in window]


def days_studied(activity: Iterable[DayActivity]) -> int:
    return sum(1 for day in activity if day.studied)


def format_minutes(minutes: int) -> str:
    """``"1h 5m"`` or ``"45m"``."""
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"
