"""
Exceptions raised by the study engine.

Scheduling itself never fails; everything here originates at an I/O
boundary (repository, activity store) or from a stale queue reference.
"""

from __future__ import annotations


class StudyEngineError(Exception):
    """Base class for all study engine errors."""


class NotConfiguredError(StudyEngineError):
    """The engine was used before a repository, store or clock was wired up."""

    def __init__(self, component: str):
        self.component = component
        super().__init__(f"Study engine not configured: missing {component}")


class CardNotFoundError(StudyEngineError):
    """An operation targeted a card that is no longer in the queue or repository."""

    def __init__(self, card_id: str | None = None, detail: str | None = None):
        self.card_id = card_id
        message = detail or "Flashcard not found"
        if card_id:
            message = f"{message}: {card_id}"
        super().__init__(message)


class PersistFailedError(StudyEngineError):
    """
    Writing one or more reviewed cards to the repository failed.

    The computed schedule is not lost: the engine keeps the cards in its
    pending list and retries them on the next operation.
    """

    def __init__(self, card_ids: list[str], cause: Exception | None = None):
        self.card_ids = list(card_ids)
        self.cause = cause
        joined = ", ".join(self.card_ids)
        super().__init__(f"Failed to save flashcard(s): {joined}")
