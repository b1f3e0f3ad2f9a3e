"""
SQLite State Store for the study engine.

Provides portable persistence for:
- flashcards with their SM-2 scheduling fields
- the append-only review log
- the activity/streak aggregate (single row)
- session history for weekly activity views

Database location: ~/.studyengine/state.db (configurable).
Timestamps are stored as UTC ISO 8601 strings so they sort as text.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone, tzinfo
from pathlib import Path

from loguru import logger

from .activity import ActivityState, SessionRecord
from .card import Card, Quality
from .errors import CardNotFoundError
from .repository import StageCounts, count_stages
from .review_log import ReviewLogEntry

# =============================================================================
# Timestamp helpers
# =============================================================================


def _to_db(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    SQLite-backed persistence.

    Implements the card repository, the review log sink, the activity store
    and the session history store on one connection.
    """

    DEFAULT_DB_PATH = Path.home() / ".studyengine" / "state.db"

    def __init__(self, db_path: Path | str | None = None, tz: tzinfo | None = None):
        """
        Initialize the state store.

        Args:
            db_path: Custom database path (defaults to ~/.studyengine/state.db)
            tz: Zone loaded timestamps are converted to (UTC if None)
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.tz = tz or timezone.utc

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"StateStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _from_db(self, value: str | None) -> datetime | None:
        if value is None:
            return None
        return datetime.fromisoformat(value).astimezone(self.tz)

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS cards (
                id TEXT PRIMARY KEY,
                front TEXT NOT NULL,
                back TEXT NOT NULL,
                ease_factor REAL NOT NULL DEFAULT 2.5,
                interval_days INTEGER NOT NULL DEFAULT 0,
                repetitions INTEGER NOT NULL DEFAULT 0,
                next_review TEXT NOT NULL,
                last_reviewed TEXT,
                scope TEXT,
                source_page INTEGER,
                source_text TEXT,
                created_at TEXT,
                modified_at TEXT
            )
        """)

        # Review history log
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS review_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                card_id TEXT NOT NULL,
                reviewed_at TEXT NOT NULL,
                quality INTEGER NOT NULL,
                previous_interval INTEGER NOT NULL,
                new_interval INTEGER NOT NULL,
                previous_ease_factor REAL NOT NULL,
                new_ease_factor REAL NOT NULL,
                response_seconds REAL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS activity_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                current_streak INTEGER NOT NULL DEFAULT 0,
                longest_streak INTEGER NOT NULL DEFAULT 0,
                last_study_at TEXT,
                daily_goal_minutes INTEGER NOT NULL DEFAULT 30,
                today_minutes INTEGER NOT NULL DEFAULT 0,
                today_bucket_date TEXT,
                weekly_goal_days INTEGER NOT NULL DEFAULT 5,
                total_study_days INTEGER NOT NULL DEFAULT 0,
                total_minutes INTEGER NOT NULL DEFAULT 0,
                total_cards_reviewed INTEGER NOT NULL DEFAULT 0,
                total_pages_read INTEGER NOT NULL DEFAULT 0
            )
        """)

        # Session history
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS session_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                scope TEXT,
                started_at TEXT NOT NULL,
                ended_at TEXT NOT NULL,
                duration_seconds INTEGER NOT NULL DEFAULT 0,
                cards_processed INTEGER NOT NULL DEFAULT 0,
                cards_skipped INTEGER NOT NULL DEFAULT 0
            )
        """)

        # Index for fast due-date queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_cards_next_review
            ON cards(next_review)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_review_log_card
            ON review_log(card_id)
        """)

        self.conn.commit()

    # =========================================================================
    # Card Operations
    # =========================================================================

    def _row_to_card(self, row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"],
            front=row["front"],
            back=row["back"],
            ease_factor=row["ease_factor"],
            interval=row["interval_days"],
            repetitions=row["repetitions"],
            next_review=self._from_db(row["next_review"]),
            last_reviewed=self._from_db(row["last_reviewed"]),
            scope=row["scope"],
            source_page=row["source_page"],
            source_text=row["source_text"],
            created_at=self._from_db(row["created_at"]),
            modified_at=self._from_db(row["modified_at"]),
        )

    def _card_params(self, card: Card) -> tuple:
        return (
            card.front,
            card.back,
            card.ease_factor,
            card.interval,
            card.repetitions,
            _to_db(card.next_review),
            _to_db(card.last_reviewed),
            card.scope,
            card.source_page,
            card.source_text,
            _to_db(card.created_at),
            _to_db(card.modified_at),
            card.id,
        )

    def add_card(self, card: Card) -> Card:
        """Insert a new card."""
        self.conn.execute(
            """
            INSERT INTO cards (
                front, back, ease_factor, interval_days, repetitions,
                next_review, last_reviewed, scope, source_page, source_text,
                created_at, modified_at, id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            self._card_params(card),
        )
        self.conn.commit()
        logger.debug(f"Added card {card.id}")
        return card

    def get(self, card_id: str) -> Card | None:
        row = self.conn.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
        return self._row_to_card(row) if row else None

    def persist(self, card: Card) -> None:
        """
        Save an existing card.

        Raises:
            CardNotFoundError: the card was deleted in the meantime
        """
        cursor = self.conn.execute(
            """
            UPDATE cards SET
                front = ?, back = ?, ease_factor = ?, interval_days = ?,
                repetitions = ?, next_review = ?, last_reviewed = ?, scope = ?,
                source_page = ?, source_text = ?, created_at = ?, modified_at = ?
            WHERE id = ?
        """,
            self._card_params(card),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise CardNotFoundError(card.id)

    def delete(self, card_id: str) -> None:
        """Delete a card. Its review log rows are kept for analytics."""
        cursor = self.conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
        self.conn.commit()
        if cursor.rowcount == 0:
            raise CardNotFoundError(card_id)

    def fetch_due(self, scope: str | None, now: datetime, limit: int | None = None) -> list[Card]:
        """
        Get cards due at ``now``, earliest first.

        Args:
            scope: Book id, or None for all cards
            now: Reference time
            limit: Maximum cards to return (no limit if None)
        """
        query = "SELECT * FROM cards WHERE next_review <= ?"
        params: list = [_to_db(now)]
        if scope is not None:
            query += " AND scope = ?"
            params.append(scope)
        query += " ORDER BY next_review ASC, interval_days ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        return [self._row_to_card(row) for row in self.conn.execute(query, params).fetchall()]

    def list_cards(self, scope: str | None = None) -> list[Card]:
        if scope is None:
            rows = self.conn.execute("SELECT * FROM cards ORDER BY created_at").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM cards WHERE scope = ? ORDER BY created_at", (scope,)
            ).fetchall()
        return [self._row_to_card(row) for row in rows]

    def counts_by_stage(self, scope: str | None, now: datetime) -> StageCounts:
        return count_stages(self.list_cards(scope), now)

    # =========================================================================
    # Review Log Operations
    # =========================================================================

    def append(self, entry: ReviewLogEntry) -> None:
        """Append a review log entry."""
        self.conn.execute(
            """
            INSERT INTO review_log (
                card_id, reviewed_at, quality, previous_interval, new_interval,
                previous_ease_factor, new_ease_factor, response_seconds
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                entry.card_id,
                _to_db(entry.reviewed_at),
                int(entry.quality),
                entry.previous_interval,
                entry.new_interval,
                entry.previous_ease_factor,
                entry.new_ease_factor,
                entry.response_seconds,
            ),
        )
        self.conn.commit()

    def get_review_history(self, card_id: str, limit: int = 50) -> list[ReviewLogEntry]:
        """Review log entries for a card, most recent first."""
        rows = self.conn.execute(
            """
            SELECT * FROM review_log
            WHERE card_id = ?
            ORDER BY reviewed_at DESC
            LIMIT ?
        """,
            (card_id, limit),
        ).fetchall()

        return [
            ReviewLogEntry(
                card_id=row["card_id"],
                reviewed_at=self._from_db(row["reviewed_at"]),
                quality=Quality(row["quality"]),
                previous_interval=row["previous_interval"],
                new_interval=row["new_interval"],
                previous_ease_factor=row["previous_ease_factor"],
                new_ease_factor=row["new_ease_factor"],
                response_seconds=row["response_seconds"],
            )
            for row in rows
        ]

    def count_reviews_since(self, since: datetime) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS cnt FROM review_log WHERE reviewed_at >= ?", (_to_db(since),)
        ).fetchone()
        return row["cnt"]

    # =========================================================================
    # Activity Operations
    # =========================================================================

    def load_activity(self) -> ActivityState | None:
        row = self.conn.execute("SELECT * FROM activity_state WHERE id = 1").fetchone()
        if row is None:
            return None

        return ActivityState(
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            last_study_at=self._from_db(row["last_study_at"]),
            daily_goal_minutes=row["daily_goal_minutes"],
            today_minutes=row["today_minutes"],
            today_bucket_date=self._from_db(row["today_bucket_date"]),
            weekly_goal_days=row["weekly_goal_days"],
            total_study_days=row["total_study_days"],
            total_minutes=row["total_minutes"],
            total_cards_reviewed=row["total_cards_reviewed"],
            total_pages_read=row["total_pages_read"],
        )

    def save_activity(self, state: ActivityState) -> None:
        self.conn.execute(
            """
            INSERT INTO activity_state (
                id, current_streak, longest_streak, last_study_at,
                daily_goal_minutes, today_minutes, today_bucket_date,
                weekly_goal_days, total_study_days, total_minutes,
                total_cards_reviewed, total_pages_read
            ) VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                current_streak = excluded.current_streak,
                longest_streak = excluded.longest_streak,
                last_study_at = excluded.last_study_at,
                daily_goal_minutes = excluded.daily_goal_minutes,
                today_minutes = excluded.today_minutes,
                today_bucket_date = excluded.today_bucket_date,
                weekly_goal_days = excluded.weekly_goal_days,
                total_study_days = excluded.total_study_days,
                total_minutes = excluded.total_minutes,
                total_cards_reviewed = excluded.total_cards_reviewed,
                total_pages_read = excluded.total_pages_read
        """,
            (
                state.current_streak,
                state.longest_streak,
                _to_db(state.last_study_at),
                state.daily_goal_minutes,
                state.today_minutes,
                _to_db(state.today_bucket_date),
                state.weekly_goal_days,
                state.total_study_days,
                state.total_minutes,
                state.total_cards_reviewed,
                state.total_pages_read,
            ),
        )
        self.conn.commit()

    # =========================================================================
    # Session Operations
    # =========================================================================

    def record_session(self, record: SessionRecord) -> int:
        """
        Store a finished session.

        Returns:
            Session ID
        """
        cursor = self.conn.execute(
            """
            INSERT INTO session_history (
                scope, started_at, ended_at, duration_seconds, cards_processed, cards_skipped
            ) VALUES (?, ?, ?, ?, ?, ?)
        """,
            (
                record.scope,
                _to_db(record.started_at),
                _to_db(record.ended_at),
                record.duration_seconds,
                record.cards_processed,
                record.cards_skipped,
            ),
        )
        self.conn.commit()
        return cursor.lastrowid

    def get_session_history(self, since: datetime | None = None, limit: int = 50) -> list[SessionRecord]:
        """Recent sessions, newest first."""
        query = "SELECT * FROM session_history"
        params: list = []
        if since is not None:
            query += " WHERE started_at >= ?"
            params.append(_to_db(since))
        query += " ORDER BY started_at DESC LIMIT ?"
        params.append(limit)

        return [
            SessionRecord(
                id=row["id"],
                scope=row["scope"],
                started_at=self._from_db(row["started_at"]),
                ended_at=self._from_db(row["ended_at"]),
                duration_seconds=row["duration_seconds"],
                cards_processed=row["cards_processed"],
                cards_skipped=row["cards_skipped"],
            )
            for row in self.conn.execute(query, params).fetchall()
        ]

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self, now: datetime) -> dict:
        """
        Get overall review statistics.

        Returns:
            Dictionary with aggregate stats
        """
        cursor = self.conn.cursor()

        cursor.execute("SELECT COUNT(*) AS cnt FROM cards")
        total_cards = cursor.fetchone()["cnt"]

        cursor.execute("SELECT COUNT(*) AS cnt FROM cards WHERE next_review <= ?", (_to_db(now),))
        cards_due = cursor.fetchone()["cnt"]

        cursor.execute("SELECT COUNT(*) AS cnt FROM review_log")
        total_reviews = cursor.fetchone()["cnt"]

        # Retention over the last 100 reviews (Good or Easy is passing)
        cursor.execute("""
            SELECT
                COUNT(CASE WHEN quality >= 2 THEN 1 END) * 100.0 / COUNT(*) AS retention
            FROM (
                SELECT quality FROM review_log ORDER BY reviewed_at DESC LIMIT 100
            )
        """)
        row = cursor.fetchone()
        retention = row["retention"] if row["retention"] else 0

        cursor.execute("SELECT COUNT(*) AS cnt FROM session_history")
        sessions = cursor.fetchone()["cnt"]

        return {
            "total_cards": total_cards,
            "cards_due": cards_due,
            "total_reviews": total_reviews,
            "retention_rate_percent": round(retention, 1),
            "sessions_completed": sessions,
        }

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
