"""
Study Engine.

Single entry point for a presentation layer. Wires together:
- the study queue and SM-2 scheduler for the current session
- session telemetry (timing, cards processed)
- the review log and the card repository
- the activity tracker (streaks, goals)

A rating always advances the session first and persists second. When the
repository write fails after retries the rescheduled card is parked in a
pending list and written again before the next operation, so a computed
schedule is never lost.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from loguru import logger

from .activity import ActivityState, ActivityTracker, DayActivity, SessionRecord, days_studied, weekly_activity
from .card import Card, MasteryLevel, Quality, count_by_mastery
from .clock import Clock, SystemClock
from .errors import CardNotFoundError, NotConfiguredError, PersistFailedError
from .repository import CardRepository, SessionHistoryStore, StageCounts
from .review_log import ReviewLog
from .scheduler import ReviewOutcome, SM2Scheduler
from .study_queue import StudyQueue
from .telemetry import SessionSummary, SessionTelemetry

DEFAULT_DUE_LIMIT = 20
DEFAULT_PERSIST_RETRIES = 2


class StudyEngine:
    """
    Facade over one user's flashcard study state.

    Collaborators are injected; any of them may be left out, in which case
    the operations that need it raise NotConfiguredError.
    """

    def __init__(
        self,
        repository: CardRepository | None = None,
        activity: ActivityTracker | None = None,
        review_log: ReviewLog | None = None,
        history: SessionHistoryStore | None = None,
        clock: Clock | None = None,
        scheduler: SM2Scheduler | None = None,
        due_limit: int | None = DEFAULT_DUE_LIMIT,
        persist_retries: int = DEFAULT_PERSIST_RETRIES,
    ):
        """
        Initialize the engine.

        Args:
            repository: Card storage
            activity: Streak and goal tracker
            review_log: Destination for review log entries
            history: Storage for finished sessions (weekly activity)
            clock: Time source shared with the activity tracker
            scheduler: SM-2 scheduler (defaults if None)
            due_limit: Maximum cards fetched per session (None = all)
            persist_retries: Extra attempts after a failed card write
        """
        self.repository = repository
        self.activity = activity
        self.review_log = review_log or ReviewLog()
        self.history = history
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or SM2Scheduler()
        self.due_limit = due_limit
        self.persist_retries = max(0, persist_retries)

        self.queue = StudyQueue(self.scheduler)
        self.telemetry: SessionTelemetry | None = None
        self.scope: str | None = None
        self._pending: dict[str, Card] = {}

    # =========================================================================
    # Wiring checks
    # =========================================================================

    def _require_repository(self) -> CardRepository:
        if self.repository is None:
            raise NotConfiguredError("card repository")
        return self.repository

    def _require_activity(self) -> ActivityTracker:
        if self.activity is None:
            raise NotConfiguredError("activity store")
        return self.activity

    def _require_history(self) -> SessionHistoryStore:
        if self.history is None:
            raise NotConfiguredError("session history store")
        return self.history

    # =========================================================================
    # Session
    # =========================================================================

    def start_session(self, scope: str | None = None) -> StudyQueue:
        """
        Load due cards and start a new session.

        A session that is still running is ended first, so cards already
        rated in it count towards activity and history.

        Args:
            scope: Book id, or None for every due card

        Returns:
            The populated study queue
        """
        repository = self._require_repository()
        self._retry_pending()

        if self.telemetry is not None:
            self.end_session()

        self.queue.begin_loading()
        try:
            cards = repository.fetch_due(scope, self.clock.now(), self.due_limit)
        except Exception:
            self.queue.start([])
            raise

        self.queue.start(cards)
        self.telemetry = SessionTelemetry(self.clock)
        self.scope = scope

        logger.info(f"Study session started: {len(cards)} due cards (scope={scope or 'all'})")
        return self.queue

    def rate(self, quality: Quality | int) -> ReviewOutcome:
        """
        Rate the current card, advance the queue and save the new schedule.

        Returns:
            The scheduler outcome; its log entry carries the response time

        Raises:
            CardNotFoundError: there is no current card
            PersistFailedError: the card could not be saved; the session
                has still advanced and the card is kept as pending
        """
        self._require_repository()
        self._retry_pending()

        telemetry = self._session_telemetry()
        quality = Quality(quality)
        outcome = self.queue.rate(quality, self.clock.now())

        event = telemetry.record(outcome.card.id, quality)
        outcome = replace(outcome, log_entry=outcome.log_entry.with_response_time(event.response_seconds))

        persist_error: PersistFailedError | None = None
        try:
            self._persist(outcome.card)
        except PersistFailedError as exc:
            persist_error = exc

        self.review_log.record(outcome.log_entry)

        if persist_error is not None:
            raise persist_error
        return outcome

    def skip(self) -> Card:
        """Defer the current card to the end of the queue without rating it."""
        telemetry = self._session_telemetry()
        card = self.queue.skip()
        telemetry.record_skip()
        return card

    def delete(self, index: int) -> Card:
        """
        Delete the card at queue position ``index`` from the repository and
        from every queue entry that references it.
        """
        repository = self._require_repository()
        if not 0 <= index < len(self.queue):
            raise CardNotFoundError(detail=f"No queue entry at index {index}")

        card = self.queue.items[index].card
        current = self.queue.current()
        self._delete_from_repository(repository, card.id)
        self.queue.delete(index)
        self._restart_timer_if_moved(current)
        return card

    def delete_card(self, card_id: str) -> None:
        """Delete a card by id; any queue entries for it are dropped."""
        repository = self._require_repository()
        current = self.queue.current()
        self._delete_from_repository(repository, card_id)
        self.queue.remove_card(card_id)
        self._restart_timer_if_moved(current)

    def _restart_timer_if_moved(self, previous: Card | None) -> None:
        if self.telemetry is not None and self.queue.current() is not previous:
            self.telemetry.restart_card_timer()

    def _delete_from_repository(self, repository: CardRepository, card_id: str) -> None:
        try:
            repository.delete(card_id)
        except CardNotFoundError:
            logger.debug(f"Card {card_id} already gone from repository")
        self._pending.pop(card_id, None)
        logger.info(f"Deleted card {card_id}")

    def end_session(self) -> SessionSummary | None:
        """
        Close the current session and record its totals.

        Returns:
            Session summary, or None if no session was running
        """
        if self.telemetry is None:
            return None

        summary = self.telemetry.end()

        if summary.cards_processed > 0:
            if self.activity is not None:
                self.activity.record_study(summary.minutes, cards=summary.cards_processed, pages=0)
            else:
                logger.debug("No activity tracker configured, session totals not recorded")

            if self.history is not None:
                self._record_history(summary)

        self.telemetry = None
        logger.info(
            f"Study session ended: {summary.cards_processed} rated, "
            f"{summary.cards_skipped} skipped, {summary.minutes}m"
        )
        return summary

    def _record_history(self, summary: SessionSummary) -> None:
        record = SessionRecord(
            started_at=summary.started_at,
            ended_at=summary.ended_at,
            duration_seconds=int(summary.elapsed_seconds),
            cards_processed=summary.cards_processed,
            cards_skipped=summary.cards_skipped,
            scope=self.scope,
        )
        try:
            self.history.record_session(record)
        except Exception as exc:
            logger.warning(f"Could not save session history: {exc}")

    def _session_telemetry(self) -> SessionTelemetry:
        if self.telemetry is None:
            raise CardNotFoundError(detail="No study session running")
        return self.telemetry

    # =========================================================================
    # Card Management
    # =========================================================================

    def add_card(
        self,
        front: str,
        back: str,
        scope: str | None = None,
        source_page: int | None = None,
        source_text: str | None = None,
    ) -> Card:
        """Create a new card, due immediately."""
        repository = self._require_repository()
        card = Card.create(
            front,
            back,
            now=self.clock.now(),
            scope=scope,
            source_page=source_page,
            source_text=source_text,
        )
        repository.add_card(card)
        logger.info(f"Added card {card.id} (scope={scope or 'none'})")
        return card

    def edit_card(self, card_id: str, front: str, back: str) -> Card:
        """
        Replace a card's content. Scheduling fields are left as they are.

        Raises:
            CardNotFoundError: no card with that id
        """
        card = self._load_card(card_id)
        updated = card.with_content(front, back, self.clock.now())
        self.queue.replace_card(updated)
        self._persist(updated)
        return updated

    def reset_card(self, card_id: str) -> Card:
        """
        Put a card back to the New stage, due now.

        Raises:
            CardNotFoundError: no card with that id
        """
        card = self._load_card(card_id)
        updated = card.reset_schedule(self.clock.now())
        self.queue.replace_card(updated)
        self._persist(updated)
        logger.info(f"Reset schedule for card {card_id}")
        return updated

    def _load_card(self, card_id: str) -> Card:
        repository = self._require_repository()
        self._retry_pending()

        card = self._pending.get(card_id) or repository.get(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        return card

    def preview_intervals(self, card: Card | None = None) -> dict[Quality, str]:
        """
        Interval label each rating would give ``card`` (the current card if None).
        """
        card = card or self.queue.current()
        if card is None:
            raise CardNotFoundError(detail="No card to preview")
        return self.scheduler.preview_intervals(card, self.clock.now())

    # =========================================================================
    # Persistence
    # =========================================================================

    @property
    def pending(self) -> list[Card]:
        """Reviewed cards whose schedule has not been saved yet."""
        return list(self._pending.values())

    def _persist(self, card: Card) -> None:
        repository = self._require_repository()
        attempts = self.persist_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                repository.persist(card)
            except CardNotFoundError:
                logger.info(f"Card {card.id} was deleted before its schedule could be saved")
                self._pending.pop(card.id, None)
                return
            except Exception as exc:
                last_error = exc
                logger.warning(f"Saving card {card.id} failed (attempt {attempt}/{attempts}): {exc}")
            else:
                self._pending.pop(card.id, None)
                return

        self._pending[card.id] = card
        raise PersistFailedError([card.id], cause=last_error) from last_error

    def flush_pending(self) -> int:
        """
        Write every pending card to the repository.

        Returns:
            Number of cards written

        Raises:
            PersistFailedError: some cards are still pending
        """
        repository = self._require_repository()
        written = 0
        failed: list[str] = []
        last_error: Exception | None = None

        for card_id, card in list(self._pending.items()):
            try:
                repository.persist(card)
            except CardNotFoundError:
                del self._pending[card_id]
            except Exception as exc:
                failed.append(card_id)
                last_error = exc
            else:
                del self._pending[card_id]
                written += 1

        if written:
            logger.info(f"Saved {written} pending card(s)")
        if failed:
            raise PersistFailedError(failed, cause=last_error) from last_error
        return written

    def _retry_pending(self) -> None:
        if not self._pending:
            return
        try:
            self.flush_pending()
        except PersistFailedError as exc:
            logger.warning(f"{len(exc.card_ids)} card(s) still pending: {exc.cause}")

    # =========================================================================
    # Activity
    # =========================================================================

    def record_study_activity(self, minutes: int, cards: int = 0, pages: int = 0) -> ActivityState:
        return self._require_activity().record_study(minutes, cards=cards, pages=pages)

    def check_streak_status(self) -> ActivityState:
        return self._require_activity().check_streak_status()

    def update_daily_goal(self, minutes: int) -> ActivityState:
        return self._require_activity().update_daily_goal(minutes)

    def update_weekly_goal(self, days: int) -> ActivityState:
        return self._require_activity().update_weekly_goal(days)

    # =========================================================================
    # Read Accessors
    # =========================================================================

    def counts(self, scope: str | None = None) -> StageCounts:
        return self._require_repository().counts_by_stage(scope, self.clock.now())

    def mastery_counts(self, scope: str | None = None) -> dict[MasteryLevel, int]:
        return count_by_mastery(self._require_repository().list_cards(scope))

    @property
    def session_clock(self) -> str:
        """Elapsed time of the running session as ``m:ss``."""
        if self.telemetry is None:
            return "0:00"
        return self.telemetry.formatted_clock

    @property
    def goal_progress(self) -> float:
        return self._require_activity().goal_progress

    def weekly_activity(self, now: datetime | None = None) -> list[DayActivity]:
        """Minutes and cards for each of the last seven days, oldest first."""
        now = now or self.clock.now()
        sessions = self._require_history().get_session_history(since=now - timedelta(days=8), limit=1000)
        return weekly_activity(sessions, self.clock, now=now)

    def weekly_progress(self, now: datetime | None = None) -> float:
        return self._require_activity().weekly_progress(days_studied(self.weekly_activity(now)))
