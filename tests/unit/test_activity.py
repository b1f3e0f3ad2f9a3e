"""
Unit tests for streak and goal tracking.

Covers streak continuation, breaks and lapses, the daily minute bucket,
goal clamping, midnight boundaries in a non-UTC zone and weekly activity.

Run: pytest tests/unit/test_activity.py -v
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from studyengine.activity import (
    ActivityState,
    ActivityTracker,
    SessionRecord,
    days_studied,
    format_minutes,
    weekly_activity,
)
from studyengine.repository import InMemoryStore

EASTERN = timezone(timedelta(hours=-5), "EST")


class CountingStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.saves = 0

    def save_activity(self, state):
        self.saves += 1
        super().save_activity(state)


class FailingStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save_activity(self, state):
        if self.fail:
            raise OSError("database is locked")
        super().save_activity(state)


def seeded(store, clock, **fields):
    store.activity = ActivityState(**fields)
    return ActivityTracker(store, clock)


class TestRecordStudy:
    """Study events and the streak."""

    def test_first_study_starts_streak(self, store, clock):
        tracker = ActivityTracker(store, clock)

        state = tracker.record_study(25, cards=10, pages=3)

        assert state.current_streak == 1
        assert state.longest_streak == 1
        assert state.today_minutes == 25
        assert state.total_study_days == 1
        assert state.total_minutes == 25
        assert state.total_cards_reviewed == 10
        assert state.total_pages_read == 3
        assert state.last_study_at == clock.now()
        assert store.activity == state

    def test_same_day_accumulates(self, store, clock):
        tracker = ActivityTracker(store, clock)

        tracker.record_study(10)
        clock.advance(hours=3)
        state = tracker.record_study(15)

        assert state.current_streak == 1
        assert state.today_minutes == 25
        assert state.total_study_days == 1

    def test_consecutive_day_extends_streak(self, store, clock):
        yesterday = clock.now() - timedelta(days=1)
        tracker = seeded(
            store,
            clock,
            current_streak=3,
            longest_streak=3,
            last_study_at=yesterday,
            today_minutes=40,
            today_bucket_date=yesterday,
            total_study_days=3,
        )

        state = tracker.record_study(10)

        assert state.current_streak == 4
        assert state.longest_streak == 4
        assert state.today_minutes == 10
        assert state.total_study_days == 4

    def test_gap_restarts_streak(self, store, clock):
        tracker = seeded(
            store,
            clock,
            current_streak=5,
            longest_streak=7,
            last_study_at=clock.now() - timedelta(days=3),
        )

        state = tracker.record_study(10)

        assert state.current_streak == 1
        assert state.longest_streak == 7

    def test_last_study_in_future_only_adds_totals(self, store, clock):
        tomorrow = clock.now() + timedelta(days=1)
        tracker = seeded(
            store,
            clock,
            current_streak=2,
            longest_streak=2,
            last_study_at=tomorrow,
            today_minutes=5,
            today_bucket_date=clock.now(),
        )

        state = tracker.record_study(10)

        assert state.current_streak == 2
        assert state.today_minutes == 5
        assert state.total_minutes == 10

    def test_current_never_exceeds_longest(self, store, clock):
        tracker = ActivityTracker(store, clock)
        for gap in (0, 1, 1, 3, 1, 0, 1, 5, 1):
            clock.advance(days=gap)
            tracker.check_streak_status()
            state = tracker.record_study(5)
            assert state.current_streak <= state.longest_streak

        assert tracker.state.longest_streak == 3

    def test_failed_save_leaves_state_unchanged(self, clock):
        store = FailingStore()
        tracker = ActivityTracker(store, clock)
        before = tracker.state

        store.fail = True
        with pytest.raises(OSError):
            tracker.record_study(20)

        assert tracker.state == before

        store.fail = False
        assert tracker.record_study(20).current_streak == 1


class TestCheckStreakStatus:
    """Day rollover and streak lapse."""

    def test_two_skipped_days_zero_the_streak(self, store, clock):
        tracker = seeded(
            store,
            clock,
            current_streak=5,
            longest_streak=5,
            last_study_at=clock.now() - timedelta(days=3),
        )

        state = tracker.check_streak_status()

        assert state.current_streak == 0
        assert state.longest_streak == 5

    def test_yesterday_keeps_streak_and_resets_today(self, store, clock):
        yesterday = clock.now() - timedelta(days=1)
        tracker = seeded(
            store,
            clock,
            current_streak=2,
            longest_streak=2,
            last_study_at=yesterday,
            today_minutes=30,
            today_bucket_date=yesterday,
        )

        state = tracker.check_streak_status()

        assert state.current_streak == 2
        assert state.today_minutes == 0
        assert state.today_bucket_date == clock.now()

    def test_repeated_check_is_a_no_op(self, clock):
        store = CountingStore()
        store.activity = ActivityState(
            current_streak=4,
            longest_streak=4,
            last_study_at=clock.now() - timedelta(days=4),
            today_minutes=12,
            today_bucket_date=clock.now() - timedelta(days=4),
        )
        tracker = ActivityTracker(store, clock)

        first = tracker.check_streak_status()
        saves = store.saves
        second = tracker.check_streak_status()

        assert first == second
        assert store.saves == saves == 1

    def test_fresh_state_needs_no_save(self, clock):
        store = CountingStore()
        tracker = ActivityTracker(store, clock)

        tracker.check_streak_status()

        assert store.saves == 1  # initial creation only


class TestMidnightBoundary:
    """Calendar days follow the clock's zone, not UTC."""

    def test_streak_extends_across_local_midnight(self, store, eastern_clock):
        tracker = ActivityTracker(store, eastern_clock)

        eastern_clock.set(datetime(2024, 3, 10, 23, 50, tzinfo=EASTERN))
        tracker.record_study(10)
        eastern_clock.advance(minutes=20)
        state = tracker.record_study(5)

        assert state.current_streak == 2
        assert state.today_minutes == 5

    def test_utc_midnight_is_not_a_new_day(self, store, eastern_clock):
        tracker = ActivityTracker(store, eastern_clock)

        eastern_clock.set(datetime(2024, 3, 10, 18, 0, tzinfo=EASTERN))  # 23:00 UTC
        tracker.record_study(10)
        eastern_clock.set(datetime(2024, 3, 10, 19, 30, tzinfo=EASTERN))  # 00:30 UTC next day
        state = tracker.record_study(10)

        assert state.current_streak == 1
        assert state.today_minutes == 20

    def test_lapse_uses_local_days(self, store, eastern_clock):
        tracker = ActivityTracker(store, eastern_clock)
        eastern_clock.set(datetime(2024, 3, 10, 23, 50, tzinfo=EASTERN))
        tracker.record_study(10)

        eastern_clock.set(datetime(2024, 3, 11, 23, 59, tzinfo=EASTERN))
        assert tracker.check_streak_status().current_streak == 1

        eastern_clock.set(datetime(2024, 3, 12, 0, 5, tzinfo=EASTERN))
        assert tracker.check_streak_status().current_streak == 0


class TestGoals:
    """Daily and weekly goals."""

    @pytest.mark.parametrize("value,expected", [(1, 5), (5, 5), (45, 45), (480, 480), (1000, 480)])
    def test_daily_goal_clamped(self, store, clock, value, expected):
        tracker = ActivityTracker(store, clock)
        assert tracker.update_daily_goal(value).daily_goal_minutes == expected

    @pytest.mark.parametrize("value,expected", [(0, 1), (3, 3), (7, 7), (9, 7)])
    def test_weekly_goal_clamped(self, store, clock, value, expected):
        tracker = ActivityTracker(store, clock)
        assert tracker.update_weekly_goal(value).weekly_goal_days == expected

    def test_goal_progress(self, store, clock):
        tracker = ActivityTracker(store, clock)

        tracker.record_study(15)
        assert tracker.goal_progress == 0.5
        assert not tracker.has_met_daily_goal

        tracker.record_study(30)
        assert tracker.goal_progress == 1.0
        assert tracker.has_met_daily_goal

    def test_goal_read_waits_for_goal_update(self, store, clock):
        tracker = ActivityTracker(store, clock)
        tracker.record_study(10)
        results = []

        with tracker._lock:
            reader = threading.Thread(target=lambda: results.append(tracker.goal_progress))
            reader.start()
            reader.join(timeout=0.1)
            assert reader.is_alive()
            tracker.update_daily_goal(10)
        reader.join()

        assert results == [1.0]

    def test_stale_bucket_reads_as_zero(self, store, clock):
        tracker = ActivityTracker(store, clock)
        tracker.record_study(20)

        clock.advance(days=1)

        assert tracker.today_minutes == 0
        assert tracker.goal_progress == 0.0
        assert tracker.state.today_minutes == 20

    def test_defaults_used_for_new_state(self, store, clock):
        tracker = ActivityTracker(store, clock, defaults=ActivityState(daily_goal_minutes=60, weekly_goal_days=3))

        assert tracker.state.daily_goal_minutes == 60
        assert store.activity.weekly_goal_days == 3

    def test_reset_today_progress(self, store, clock):
        tracker = ActivityTracker(store, clock)
        tracker.record_study(20)

        tracker.reset_today_progress()

        assert tracker.today_minutes == 0
        assert tracker.state.total_minutes == 20

    def test_has_studied_today(self, store, clock):
        tracker = ActivityTracker(store, clock)
        assert not tracker.has_studied_today

        tracker.record_study(5)
        assert tracker.has_studied_today

        clock.advance(days=1)
        assert not tracker.has_studied_today

    def test_formatted_times(self, store, clock):
        tracker = ActivityTracker(store, clock)
        tracker.record_study(65)

        assert tracker.formatted_today_time == "1h 5m"
        assert tracker.formatted_total_time == "1h 5m"

    def test_weekly_progress(self, store, clock):
        tracker = ActivityTracker(store, clock)

        assert tracker.weekly_progress(2) == pytest.approx(0.4)
        assert tracker.weekly_progress(9) == 1.0


class TestWeeklyActivity:
    """Per-day aggregation of session history."""

    def session(self, started_at, seconds, cards):
        return SessionRecord(
            started_at=started_at,
            ended_at=started_at + timedelta(seconds=seconds),
            duration_seconds=seconds,
            cards_processed=cards,
        )

    def test_seven_days_oldest_first(self, clock):
        now = clock.now()
        sessions = [
            self.session(now - timedelta(days=1), 600, 10),
            self.session(now - timedelta(days=1, hours=2), 300, 5),
            self.session(now, 120, 2),
            self.session(now - timedelta(days=10), 900, 30),
        ]

        week = weekly_activity(sessions, clock)

        assert len(week) == 7
        assert week[0].day == (now - timedelta(days=6)).date()
        assert week[-1].day == now.date()
        assert (week[-2].minutes, week[-2].cards) == (15, 15)
        assert (week[-1].minutes, week[-1].cards) == (2, 2)
        assert sum(day.cards for day in week) == 17
        assert days_studied(week) == 2

    def test_empty_history(self, clock):
        week = weekly_activity([], clock)

        assert len(week) == 7
        assert days_studied(week) == 0


@pytest.mark.parametrize("minutes,label", [(0, "0m"), (45, "45m"), (60, "1h 0m"), (125, "2h 5m")])
def test_format_minutes(minutes, label):
    assert format_minutes(minutes) == label
