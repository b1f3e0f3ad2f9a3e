"""
studyengine: adaptive flashcard study engine.

Spaced repetition for reading notes, usable from the terminal or embedded
in another front-end.

Components:
- SM2Scheduler: SM-2 rescheduling on a four-level quality scale
- StudyQueue: Session-scoped queue with skip, delete and requeue
- SessionTelemetry: Session timing and counters
- ActivityTracker: Study streaks and daily/weekly goals
- ReviewLog: Best-effort append-only review history
- StateStore: SQLite persistence
- StudyEngine: Facade tying the above together
"""

from .activity import ActivityState, ActivityTracker, DayActivity, SessionRecord, weekly_activity
from .card import Card, MasteryLevel, Quality, classify, count_by_mastery
from .clock import Clock, FixedClock, SystemClock
from .engine import StudyEngine
from .errors import CardNotFoundError, NotConfiguredError, PersistFailedError, StudyEngineError
from .repository import CardRepository, InMemoryStore, StageCounts
from .review_log import ReviewLog, ReviewLogEntry
from .scheduler import ReviewOutcome, SM2Config, SM2Scheduler, format_interval
from .state_store import StateStore
from .study_queue import SessionState, StudyQueue
from .telemetry import SessionSummary, SessionTelemetry

__version__ = "0.1.0"

__all__ = [
    # Cards
    "Card",
    "Quality",
    "MasteryLevel",
    "classify",
    "count_by_mastery",
    # Scheduling
    "SM2Scheduler",
    "SM2Config",
    "ReviewOutcome",
    "format_interval",
    # Sessions
    "StudyQueue",
    "SessionState",
    "SessionTelemetry",
    "SessionSummary",
    # Activity
    "ActivityTracker",
    "ActivityState",
    "DayActivity",
    "SessionRecord",
    "weekly_activity",
    # Persistence
    "CardRepository",
    "StageCounts",
    "InMemoryStore",
    "StateStore",
    "ReviewLog",
    "ReviewLogEntry",
    # Time
    "Clock",
    "SystemClock",
    "FixedClock",
    # Engine
    "StudyEngine",
    # Errors
    "StudyEngineError",
    "NotConfiguredError",
    "CardNotFoundError",
    "PersistFailedError",
]
