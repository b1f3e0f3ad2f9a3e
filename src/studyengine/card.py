"""
Flashcard model, recall-quality scale and mastery classification.

A Card carries its own SM-2 scheduling fields. Content and provenance are
opaque to scheduling; only the scheduler and the explicit content edit
produce changed cards.
"""

from __future__ import annotations

import uuid
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum, IntEnum

# =============================================================================
# Quality Scale
# =============================================================================


class Quality(IntEnum):
    """
    Four-level recall rating.

    Again and Hard both count as a failed recall for scheduling purposes.
    """

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @property
    def shortcut(self) -> str:
        """Keyboard shortcut used by the terminal front-end (1-4)."""
        return str(self.value + 1)

    @classmethod
    def from_shortcut(cls, key: str) -> Quality:
        return cls(int(key) - 1)


# =============================================================================
# Mastery Levels
# =============================================================================


class MasteryLevel(Enum):
    """Coarse learning stage derived from the repetition count."""

    NEW = "New"
    LEARNING = "Learning"
    REVIEWING = "Reviewing"
    MASTERED = "Mastered"

    @property
    def color(self) -> str:
        return {
            MasteryLevel.NEW: "grey50",
            MasteryLevel.LEARNING: "orange1",
            MasteryLevel.REVIEWING: "blue",
            MasteryLevel.MASTERED: "green",
        }[self]


# =============================================================================
# Card
# =============================================================================

DEFAULT_EASE_FACTOR = 2.5


@dataclass
class Card:
    """A single flashcard and its review schedule."""

    id: str
    front: str
    back: str
    next_review: datetime
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0  # Days
    repetitions: int = 0  # Consecutive successful reviews
    last_reviewed: datetime | None = None

    # Provenance (opaque to scheduling)
    scope: str | None = None  # Book the card belongs to
    source_page: int | None = None
    source_text: str | None = None

    created_at: datetime | None = None
    modified_at: datetime | None = None

    @classmethod
    def create(
        cls,
        front: str,
        back: str,
        now: datetime,
        scope: str | None = None,
        source_page: int | None = None,
        source_text: str | None = None,
    ) -> Card:
        """New card, due immediately."""
        return cls(
            id=uuid.uuid4().hex,
            front=front,
            back=back,
            next_review=now,
            scope=scope,
            source_page=source_page,
            source_text=source_text,
            created_at=now,
            modified_at=now,
        )

    def is_due(self, now: datetime) -> bool:
        return now >= self.next_review

    @property
    def mastery(self) -> MasteryLevel:
        return classify(self)

    def with_content(self, front: str, back: str, now: datetime) -> Card:
        """Copy with new text; scheduling fields are left untouched."""
        return replace(self, front=front, back=back, modified_at=now)

    def reset_schedule(self, now: datetime) -> Card:
        """Copy with scheduling returned to the new-card defaults."""
        return replace(
            self,
            ease_factor=DEFAULT_EASE_FACTOR,
            interval=0,
            repetitions=0,
            next_review=now,
            last_reviewed=None,
            modified_at=now,
        )


# =============================================================================
# Classifier
# =============================================================================


def classify(card: Card) -> MasteryLevel:
    """
    Map a card's repetition count to its mastery level.

    0 -> New, 1-2 -> Learning, 3-5 -> Reviewing, 6+ -> Mastered.
    """
    reps = card.repetitions
    if reps <= 0:
        return MasteryLevel.NEW
    if reps <= 2:
        return MasteryLevel.LEARNING
    if reps <= 5:
        return MasteryLevel.REVIEWING
    return MasteryLevel.MASTERED


def count_by_mastery(cards: Iterable[Card]) -> dict[MasteryLevel, int]:
    """Count cards per mastery level; every level is present in the result."""
    counts = Counter(classify(card) for card in cards)
    return {level: counts.get(level, 0) for level in MasteryLevel}
