"""
SM-2 Spaced Repetition Scheduler.

Implements the SM-2 update on a four-level quality scale:

0 - Again: no recall
1 - Hard: recalled with serious difficulty
2 - Good: recalled with some effort
3 - Easy: perfect recall

The ease-factor constants are the classic SM-2 ones, shifted so that the
top of the scale is 3 instead of 5. Hard resets the repetition count like
Again does.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime

from loguru import logger

from .card import Card, Quality
from .clock import add_days
from .review_log import ReviewLogEntry

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for the SM-2 algorithm."""

    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    passing_quality: int = Quality.GOOD
    max_quality: int = Quality.EASY


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of reviewing a card: the rescheduled card and its log entry."""

    card: Card
    log_entry: ReviewLogEntry

    @property
    def passed(self) -> bool:
        return self.log_entry.quality >= Quality.GOOD


class SM2Scheduler:
    """
    Pure SM-2 scheduler.

    Each card has:
    - Ease Factor (EF): how fast intervals grow (2.5 default, min 1.3)
    - Interval: days until next review
    - Repetitions: consecutive successful recalls
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def next_ease_factor(self, ease_factor: float, quality: Quality) -> float:
        # EF' = EF + (0.1 - (3 - q) * (0.08 + (3 - q) * 0.02))
        distance = self.config.max_quality - int(quality)
        ef_delta = 0.1 - distance * (0.08 + distance * 0.02)
        return max(self.config.minimum_easiness, ease_factor + ef_delta)

    def next_interval(self, card: Card, quality: Quality, new_ease: float) -> tuple[int, int]:
        """
        Compute (repetitions, interval) after a review.

        The third and later intervals multiply by the already-updated ease
        factor.
        """
        if quality < self.config.passing_quality:
            return 0, self.config.first_interval

        repetitions = card.repetitions + 1
        if repetitions == 1:
            interval = self.config.first_interval
        elif repetitions == 2:
            interval = self.config.second_interval
        else:
            interval = math.floor(card.interval * new_ease)
        return repetitions, max(0, interval)

    def review(self, card: Card, quality: Quality | int, now: datetime) -> ReviewOutcome:
        """
        Reschedule ``card`` for the given rating.

        The input card is not modified; a new Card is returned with every
        scheduling field updated together.

        Args:
            card: Card being reviewed
            quality: Recall rating (0-3)
            now: Review time

        Returns:
            ReviewOutcome with the updated card and its review log entry
        """
        outcome = self._reschedule(card, Quality(quality), now)
        logger.debug(
            f"Reviewed {card.id}: quality={outcome.log_entry.quality.display_name}, "
            f"interval={card.interval}d->{outcome.card.interval}d, "
            f"ef={card.ease_factor:.2f}->{outcome.card.ease_factor:.2f}"
        )
        return outcome

    def _reschedule(self, card: Card, quality: Quality, now: datetime) -> ReviewOutcome:
        new_ease = self.next_ease_factor(card.ease_factor, quality)
        repetitions, interval = self.next_interval(card, quality, new_ease)

        updated = replace(
            card,
            ease_factor=new_ease,
            interval=interval,
            repetitions=repetitions,
            next_review=add_days(now, interval),
            last_reviewed=now,
            modified_at=now,
        )

        entry = ReviewLogEntry(
            card_id=card.id,
            reviewed_at=now,
            quality=quality,
            previous_interval=card.interval,
            new_interval=interval,
            previous_ease_factor=card.ease_factor,
            new_ease_factor=new_ease,
        )

        return ReviewOutcome(card=updated, log_entry=entry)

    def preview_intervals(self, card: Card, now: datetime) -> dict[Quality, str]:
        """
        Describe the interval each rating would produce, without changing the card.

        Returns:
            Mapping of quality to a short label such as "1d", "6d" or "2mo"
        """
        return {
            quality: format_interval(self._reschedule(card, quality, now).card.interval)
            for quality in Quality
        }


def format_interval(days: int) -> str:
    """Short human label for an interval in days."""
    if days <= 0:
        return "now"
    if days < 30:
        return f"{days}d"
    if days < 365:
        return f"{days // 30}mo"
    return f"{days // 365}y"
