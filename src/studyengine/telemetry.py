"""
Session Telemetry.

Wall-clock bookkeeping for a single study session:
- session start and elapsed time
- cards processed (ratings only, skips are counted separately)
- per-card response times
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .card import Quality
from .clock import Clock, SystemClock


@dataclass
class ReviewEvent:
    """A single rating in the session."""

    card_id: str
    quality: Quality
    response_seconds: float
    timestamp: datetime

    @property
    def is_correct(self) -> bool:
        return self.quality >= Quality.GOOD


@dataclass(frozen=True)
class SessionSummary:
    """Totals handed to the activity tracker when a session ends."""

    started_at: datetime
    ended_at: datetime
    cards_processed: int
    cards_skipped: int
    elapsed_seconds: float

    @property
    def minutes(self) -> int:
        """Whole minutes studied; any rated card counts as at least one minute."""
        whole = int(self.elapsed_seconds // 60)
        if self.cards_processed > 0:
            return max(1, whole)
        return whole


class SessionTelemetry:
    """
    Tracks timing for one study session.

    Holds no durable state; ``end`` produces the snapshot that gets
    persisted elsewhere.
    """

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or SystemClock()
        self.started_at = self.clock.now()
        self.card_started_at = self.started_at
        self.events: list[ReviewEvent] = []
        self.cards_skipped = 0

    # =========================================================================
    # Recording
    # =========================================================================

    def record(self, card_id: str, quality: Quality) -> ReviewEvent:
        """
        Record a rating for the card currently shown and restart the card timer.

        Returns:
            The recorded event, with its response time
        """
        now = self.clock.now()
        event = ReviewEvent(
            card_id=card_id,
            quality=Quality(quality),
            response_seconds=self.current_card_seconds(now),
            timestamp=now,
        )
        self.events.append(event)
        self.card_started_at = now
        return event

    def record_skip(self) -> None:
        self.cards_skipped += 1
        self.card_started_at = self.clock.now()

    def restart_card_timer(self) -> None:
        """Called whenever the cursor moves without a rating (e.g. a deletion)."""
        self.card_started_at = self.clock.now()

    def current_card_seconds(self, now: datetime | None = None) -> float:
        now = now or self.clock.now()
        return max(0.0, (now - self.card_started_at).total_seconds())

    # =========================================================================
    # Metrics
    # =========================================================================

    @property
    def cards_processed(self) -> int:
        return len(self.events)

    @property
    def elapsed_seconds(self) -> float:
        return max(0.0, (self.clock.now() - self.started_at).total_seconds())

    @property
    def average_seconds_per_card(self) -> float:
        if not self.events:
            return 0.0
        return self.elapsed_seconds / len(self.events)

    @property
    def accuracy(self) -> float:
        """Share of ratings that were Good or Easy."""
        if not self.events:
            return 0.0
        return sum(1 for e in self.events if e.is_correct) / len(self.events)

    @property
    def formatted_clock(self) -> str:
        return format_clock(self.elapsed_seconds)

    def end(self) -> SessionSummary:
        return SessionSummary(
            started_at=self.started_at,
            ended_at=self.clock.now(),
            cards_processed=self.cards_processed,
            cards_skipped=self.cards_skipped,
            elapsed_seconds=self.elapsed_seconds,
        )

    def get_stats(self) -> dict:
        return {
            "elapsed": self.formatted_clock,
            "cards_processed": self.cards_processed,
            "cards_skipped": self.cards_skipped,
            "avg_seconds_per_card": round(self.average_seconds_per_card, 1),
            "accuracy_percent": round(self.accuracy * 100, 1),
            "quality_distribution": self._quality_distribution(),
        }

    def _quality_distribution(self) -> dict[Quality, int]:
        dist = {quality: 0 for quality in Quality}
        for event in self.events:
            dist[event.quality] += 1
        return dist


def format_clock(seconds: float) -> str:
    """``m:ss`` clock, or ``h:mm:ss`` once past an hour."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
