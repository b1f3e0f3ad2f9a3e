"""
Append-only review log.

Each scheduling decision is written out for later analytics. Writing is
best-effort: a failing sink is reported through the logger and never
undoes the review that produced the entry.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from loguru import logger

from .card import Quality


@dataclass(frozen=True)
class ReviewLogEntry:
    """A single scheduling decision."""

    card_id: str
    reviewed_at: datetime
    quality: Quality
    previous_interval: int
    new_interval: int
    previous_ease_factor: float
    new_ease_factor: float
    response_seconds: float | None = None

    def with_response_time(self, seconds: float | None) -> ReviewLogEntry:
        return replace(self, response_seconds=seconds)


class ReviewLogSink(Protocol):
    """Storage the review log writes to."""

    def append(self, entry: ReviewLogEntry) -> None:
        ...


class ReviewLog:
    """
    Write-only front for a ReviewLogSink.

    ``record`` never raises; failed writes are logged and counted so callers
    can surface them without blocking the study session.
    """

    def __init__(self, sink: ReviewLogSink | None = None):
        self.sink = sink
        self.written = 0
        self.failures = 0

    def record(self, entry: ReviewLogEntry) -> bool:
        """
        Append an entry.

        Returns:
            True if the sink accepted the entry
        """
        if self.sink is None:
            logger.debug(f"No review log sink configured, dropping entry for {entry.card_id}")
            return False

        try:
            self.sink.append(entry)
        except Exception as exc:
            self.failures += 1
            logger.warning(f"Review log write failed for {entry.card_id}: {exc}")
            return False

        self.written += 1
        return True
