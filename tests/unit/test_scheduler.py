"""
Unit tests for the SM-2 scheduler.

Covers the ease-factor update, the interval ladder (1, 6, then multiplied),
failure resets and interval previews.

Run: pytest tests/unit/test_scheduler.py -v
"""

from dataclasses import replace
from datetime import timedelta
from itertools import cycle, islice

import pytest

from studyengine.card import Quality
from studyengine.scheduler import SM2Config, SM2Scheduler, format_interval


@pytest.fixture
def scheduler():
    return SM2Scheduler()


class TestEaseFactor:
    """Ease factor update on the four-level scale."""

    def test_good_keeps_ease(self, scheduler):
        assert scheduler.next_ease_factor(2.5, Quality.GOOD) == pytest.approx(2.5)

    def test_easy_raises_ease(self, scheduler):
        assert scheduler.next_ease_factor(2.5, Quality.EASY) == pytest.approx(2.6)

    def test_hard_lowers_ease(self, scheduler):
        assert scheduler.next_ease_factor(2.5, Quality.HARD) == pytest.approx(2.36)

    def test_again_lowers_ease(self, scheduler):
        assert scheduler.next_ease_factor(2.0, Quality.AGAIN) == pytest.approx(1.68)

    def test_ease_floor(self, scheduler):
        assert scheduler.next_ease_factor(1.3, Quality.AGAIN) == 1.3
        assert scheduler.next_ease_factor(1.35, Quality.HARD) == 1.3

    def test_custom_floor(self):
        scheduler = SM2Scheduler(SM2Config(minimum_easiness=1.5))
        assert scheduler.next_ease_factor(1.6, Quality.AGAIN) == 1.5


class TestReview:
    """Full review step."""

    def test_good_good_easy_sequence(self, scheduler, make_card, clock):
        card = make_card()
        intervals = []
        for quality in (Quality.GOOD, Quality.GOOD, Quality.EASY):
            card = scheduler.review(card, quality, clock.now()).card
            intervals.append(card.interval)

        assert intervals == [1, 6, 15]
        assert card.repetitions == 3
        assert card.ease_factor == pytest.approx(2.6)

    def test_again_resets_progress(self, scheduler, make_card, clock):
        card = make_card(ease_factor=2.0, interval=15, repetitions=3)

        outcome = scheduler.review(card, Quality.AGAIN, clock.now())

        assert outcome.card.repetitions == 0
        assert outcome.card.interval == 1
        assert outcome.card.ease_factor == pytest.approx(1.68)
        assert not outcome.passed

    def test_hard_counts_as_failure(self, scheduler, make_card, clock):
        card = make_card(interval=6, repetitions=2)

        updated = scheduler.review(card, Quality.HARD, clock.now()).card

        assert updated.repetitions == 0
        assert updated.interval == 1

    def test_next_review_is_interval_days_ahead(self, scheduler, make_card, clock):
        card = make_card(interval=6, repetitions=2)

        updated = scheduler.review(card, Quality.GOOD, clock.now()).card

        assert updated.interval == 15
        assert updated.next_review == clock.now() + timedelta(days=15)
        assert updated.last_reviewed == clock.now()

    def test_input_card_is_not_modified(self, scheduler, make_card, clock):
        card = make_card()
        before = replace(card)

        scheduler.review(card, Quality.EASY, clock.now())

        assert card == before

    def test_log_entry_records_before_and_after(self, scheduler, make_card, clock):
        card = make_card(interval=6, repetitions=2)

        entry = scheduler.review(card, Quality.EASY, clock.now()).log_entry

        assert entry.card_id == card.id
        assert entry.reviewed_at == clock.now()
        assert entry.quality == Quality.EASY
        assert entry.previous_interval == 6
        assert entry.new_interval == 15
        assert entry.previous_ease_factor == pytest.approx(2.5)
        assert entry.new_ease_factor == pytest.approx(2.6)
        assert entry.response_seconds is None

    def test_accepts_plain_int_quality(self, scheduler, make_card, clock):
        outcome = scheduler.review(make_card(), 3, clock.now())
        assert outcome.log_entry.quality is Quality.EASY

    def test_bounds_hold_over_long_sequences(self, scheduler, make_card, clock):
        card = make_card()
        pattern = [Quality.AGAIN, Quality.EASY, Quality.HARD, Quality.GOOD, Quality.AGAIN, Quality.AGAIN]

        for quality in islice(cycle(pattern), 60):
            card = scheduler.review(card, quality, clock.now()).card
            assert card.ease_factor >= 1.3
            assert card.interval >= 0
            assert card.repetitions >= 0


class TestPreview:
    """Interval previews shown before rating."""

    def test_new_card_preview(self, scheduler, make_card, clock):
        previews = scheduler.preview_intervals(make_card(), clock.now())

        assert previews == {
            Quality.AGAIN: "1d",
            Quality.HARD: "1d",
            Quality.GOOD: "1d",
            Quality.EASY: "1d",
        }

    def test_second_repetition_preview(self, scheduler, make_card, clock):
        card = make_card(interval=1, repetitions=1)

        previews = scheduler.preview_intervals(card, clock.now())

        assert previews[Quality.GOOD] == "6d"
        assert previews[Quality.AGAIN] == "1d"

    def test_long_interval_preview(self, scheduler, make_card, clock):
        card = make_card(interval=200, repetitions=6)

        previews = scheduler.preview_intervals(card, clock.now())

        assert previews[Quality.GOOD] == "1y"
        assert previews[Quality.AGAIN] == "1d"

    def test_preview_does_not_touch_card(self, scheduler, make_card, clock):
        card = make_card(interval=6, repetitions=2)
        before = replace(card)

        scheduler.preview_intervals(card, clock.now())

        assert card == before


class TestFormatInterval:
    """Interval labels."""

    @pytest.mark.parametrize(
        "days,label",
        [
            (0, "now"),
            (1, "1d"),
            (29, "29d"),
            (30, "1mo"),
            (95, "3mo"),
            (364, "12mo"),
            (365, "1y"),
            (800, "2y"),
        ],
    )
    def test_labels(self, days, label):
        assert format_interval(days) == label
