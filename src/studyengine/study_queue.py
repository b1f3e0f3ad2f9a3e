"""
Session-scoped study queue.

Holds the due cards for one study session in the order the repository
returned them, plus a cursor. Ratings go through the scheduler; cards that
are still in the Learning stage and immediately due again are appended to
the end once, so a session always terminates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from loguru import logger

from .card import Card, MasteryLevel, Quality, classify
from .errors import CardNotFoundError
from .scheduler import ReviewOutcome, SM2Scheduler


class SessionState(Enum):
    """Lifecycle of a study session."""

    IDLE = "idle"
    LOADING = "loading"  # Waiting on the repository fetch
    ACTIVE = "active"
    COMPLETE = "complete"


@dataclass
class QueueItem:
    """A queued card; ``requeued`` marks entries added by a re-enqueue."""

    card: Card
    requeued: bool = False
    rated: bool = False


class StudyQueue:
    """
    Ordered working set of cards for one session.

    Invariants:
    - the cursor only moves forward, except when a deletion shifts indices
    - an entry produced by a requeue is never requeued again
    """

    def __init__(self, scheduler: SM2Scheduler | None = None):
        self.scheduler = scheduler or SM2Scheduler()
        self.items: list[QueueItem] = []
        self.cursor = 0
        self.rated_count = 0
        self.skipped_count = 0
        self.requeued_count = 0
        self._loading = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def begin_loading(self) -> None:
        """Drop the current queue and mark the session as waiting for cards."""
        self._reset()
        self._loading = True

    def start(self, cards: list[Card]) -> None:
        """Replace the queue with ``cards``, keeping their order."""
        self._reset()
        self.items = [QueueItem(card=card) for card in cards]
        logger.debug(f"Study queue started with {len(self.items)} cards")

    def _reset(self) -> None:
        self.items = []
        self.cursor = 0
        self.rated_count = 0
        self.skipped_count = 0
        self.requeued_count = 0
        self._loading = False

    @property
    def state(self) -> SessionState:
        if self._loading:
            return SessionState.LOADING
        if self.remaining() > 0:
            return SessionState.ACTIVE
        if self.rated_count > 0:
            return SessionState.COMPLETE
        return SessionState.IDLE

    @property
    def is_complete(self) -> bool:
        return self.state == SessionState.COMPLETE

    # =========================================================================
    # Navigation
    # =========================================================================

    def current(self) -> Card | None:
        if self.cursor >= len(self.items):
            return None
        return self.items[self.cursor].card

    def remaining(self) -> int:
        return max(0, len(self.items) - self.cursor)

    @property
    def current_is_rated(self) -> bool:
        """True when a deletion clamp left the cursor on an entry rated earlier."""
        return self.cursor < len(self.items) and self.items[self.cursor].rated

    def __len__(self) -> int:
        return len(self.items)

    def _require_current(self) -> QueueItem:
        if self.cursor >= len(self.items):
            raise CardNotFoundError(detail="No card at the current queue position")
        return self.items[self.cursor]

    # =========================================================================
    # Actions
    # =========================================================================

    def rate(self, quality: Quality | int, now: datetime) -> ReviewOutcome:
        """
        Review the current card and move on.

        Args:
            quality: Recall rating
            now: Time of the rating

        Returns:
            The scheduler's outcome for the current card
        """
        item = self._require_current()
        outcome = self.scheduler.review(item.card, quality, now)
        item.card = outcome.card
        item.rated = True

        if self._should_requeue(item, now):
            self.items.append(QueueItem(card=outcome.card, requeued=True))
            self.requeued_count += 1
            logger.debug(f"Requeued {outcome.card.id} (still due in learning stage)")

        self.cursor += 1
        self.rated_count += 1
        return outcome

    def _should_requeue(self, item: QueueItem, now: datetime) -> bool:
        if item.requeued:
            return False
        return classify(item.card) == MasteryLevel.LEARNING and item.card.next_review <= now

    def skip(self) -> Card:
        """Move the current card to the end of the queue without rating it."""
        item = self._require_current()
        self.items.append(QueueItem(card=item.card, requeued=item.requeued))
        self.cursor += 1
        self.skipped_count += 1
        return item.card

    def delete(self, index: int) -> Card:
        """
        Remove the entry at ``index`` and any other entry for the same card.

        Raises:
            CardNotFoundError: index is outside the queue
        """
        if not 0 <= index < len(self.items):
            raise CardNotFoundError(detail=f"No queue entry at index {index}")

        card = self.items[index].card
        self.remove_card(card.id)
        return card

    def remove_card(self, card_id: str) -> int:
        """
        Invalidate every entry referencing ``card_id``.

        Returns:
            Number of entries removed
        """
        positions = [i for i, item in enumerate(self.items) if item.card.id == card_id]

        for position in reversed(positions):
            del self.items[position]
            if position < self.cursor:
                self.cursor -= 1

        if positions and len(self.items) <= self.cursor:
            self.cursor = max(0, len(self.items) - 1)

        return len(positions)

    def replace_card(self, card: Card) -> None:
        """Point every entry for ``card.id`` at the given (edited) card."""
        for item in self.items:
            if item.card.id == card.id:
                item.card = card
