"""
Card repository contract and an in-memory implementation.

The engine only talks to storage through these protocols. ``StateStore``
is the SQLite implementation; ``InMemoryStore`` backs tests and
throwaway sessions.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from .activity import ActivityState, SessionRecord
from .card import Card
from .errors import CardNotFoundError
from .review_log import ReviewLogEntry


@dataclass(frozen=True)
class StageCounts:
    """Cards per scheduling stage for one scope."""

    new: int = 0
    learning: int = 0
    due: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.due


class CardRepository(Protocol):
    """Source of due cards and sink for rescheduled ones."""

    def add_card(self, card: Card) -> Card:
        ...

    def fetch_due(self, scope: str | None, now: datetime, limit: int | None = None) -> list[Card]:
        ...

    def get(self, card_id: str) -> Card | None:
        ...

    def persist(self, card: Card) -> None:
        ...

    def delete(self, card_id: str) -> None:
        ...

    def counts_by_stage(self, scope: str | None, now: datetime) -> StageCounts:
        ...

    def list_cards(self, scope: str | None = None) -> list[Card]:
        ...


class SessionHistoryStore(Protocol):
    """Persistence for finished study sessions."""

    def record_session(self, record: SessionRecord) -> int:
        ...

    def get_session_history(self, since: datetime | None = None, limit: int = 50) -> list[SessionRecord]:
        ...


def count_stages(cards: Iterable[Card], now: datetime) -> StageCounts:
    """
    Split cards into new / learning / due.

    - new: never reviewed
    - learning: due, and either failed since the last success or 1-2 repetitions in
    - due: due, 3+ repetitions
    Cards that are not due yet and have been reviewed count in none of them.
    """
    new = learning = due = 0
    for card in cards:
        if card.repetitions == 0 and card.last_reviewed is None:
            new += 1
        elif not card.is_due(now):
            continue
        elif card.repetitions <= 2:
            learning += 1
        else:
            due += 1
    return StageCounts(new=new, learning=learning, due=due)


def in_scope(card: Card, scope: str | None) -> bool:
    return scope is None or card.scope == scope


class InMemoryStore:
    """Dict-backed card repository, activity store and review log sink."""

    def __init__(self, cards: Iterable[Card] = ()):
        self.cards: dict[str, Card] = {card.id: card for card in cards}
        self.review_entries: list[ReviewLogEntry] = []
        self.sessions: list[SessionRecord] = []
        self.activity: ActivityState | None = None

    # Cards

    def add_card(self, card: Card) -> Card:
        self.cards[card.id] = card
        return card

    def fetch_due(self, scope: str | None, now: datetime, limit: int | None = None) -> list[Card]:
        due = sorted(
            (c for c in self.cards.values() if in_scope(c, scope) and c.is_due(now)),
            key=lambda c: c.next_review,
        )
        return due[:limit] if limit is not None else due

    def get(self, card_id: str) -> Card | None:
        return self.cards.get(card_id)

    def persist(self, card: Card) -> None:
        if card.id not in self.cards:
            raise CardNotFoundError(card.id)
        self.cards[card.id] = card

    def delete(self, card_id: str) -> None:
        if self.cards.pop(card_id, None) is None:
            raise CardNotFoundError(card_id)

    def counts_by_stage(self, scope: str | None, now: datetime) -> StageCounts:
        return count_stages(self.list_cards(scope), now)

    def list_cards(self, scope: str | None = None) -> list[Card]:
        return [c for c in self.cards.values() if in_scope(c, scope)]

    # Review log

    def append(self, entry: ReviewLogEntry) -> None:
        self.review_entries.append(entry)

    # Activity

    def load_activity(self) -> ActivityState | None:
        return replace(self.activity) if self.activity else None

    def save_activity(self, state: ActivityState) -> None:
        self.activity = replace(state)

    # Sessions

    def record_session(self, record: SessionRecord) -> int:
        record = replace(record, id=len(self.sessions) + 1)
        self.sessions.append(record)
        return record.id

    def get_session_history(self, since: datetime | None = None, limit: int = 50) -> list[SessionRecord]:
        sessions = [s for s in self.sessions if since is None or s.started_at >= since]
        sessions.sort(key=lambda s: s.started_at, reverse=True)
        return sessions[:limit]
