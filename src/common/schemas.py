# ABOUTME: Defines canonical record structures shared by both analytics engines.
# ABOUTME: Centralizes activity window, discussion, quiz, study-group, and flagged-activity schemas.

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional, Tuple


class RoomType:
    QUIZ_DISCUSSION = "QUIZ_DISCUSSION"
    STUDY_GROUP = "STUDY_GROUP"
    GENERAL = "GENERAL"


class Severity:
    """Shared LOW/MEDIUM/HIGH vocabulary for violation severity and student risk level."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    # Worst first; index doubles as a severity rank.
    ORDERED = (HIGH, MEDIUM, LOW)


class ViolationType:
    KEYWORD_MATCH = "KEYWORD_MATCH"
    EXCESSIVE_MESSAGING = "EXCESSIVE_MESSAGING"
    TIMING_VIOLATION = "TIMING_VIOLATION"
    PATTERN_DETECTION = "PATTERN_DETECTION"


def as_utc(timestamp: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC, matching how parquet exports are read."""
    if timestamp is None or timestamp.tzinfo is not None:
        return timestamp
    return timestamp.replace(tzinfo=timezone.utc)


def _normalize_times(record: object, *names: str) -> None:
    # Frozen dataclasses need object.__setattr__ inside __post_init__.
    for name in names:
        object.__setattr__(record, name, as_utc(getattr(record, name)))


@dataclass(frozen=True)
class ActivityWindow:
    """Immutable query scope for one pipeline run; end_date is the run's snapshot of now."""

    start_date: datetime
    end_date: datetime
    quiz_id: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        _normalize_times(self, "start_date", "end_date")

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days

    def contains(self, timestamp: Optional[datetime]) -> bool:
        if timestamp is None:
            return False
        return self.start_date <= as_utc(timestamp) <= self.end_date


@dataclass(frozen=True)
class DiscussionMessage:
    message_id: str
    user_id: str
    created_at: datetime
    room_type: str
    room_id: Optional[str] = None
    quiz_id: Optional[str] = None

    def __post_init__(self) -> None:
        _normalize_times(self, "created_at")


@dataclass(frozen=True)
class QuizAttempt:
    attempt_id: str
    user_id: str
    quiz_id: str
    score: float
    passed: bool
    completed_at: datetime
    passing_score: Optional[float] = None

    def __post_init__(self) -> None:
        _normalize_times(self, "completed_at")


@dataclass(frozen=True)
class StudentActivity:
    """One student with the discussion messages and quiz attempts read for a window."""

    student_id: str
    name: str
    email: Optional[str] = None
    messages: Tuple[DiscussionMessage, ...] = ()
    attempts: Tuple[QuizAttempt, ...] = ()


@dataclass(frozen=True)
class StudyGroupMembership:
    student_id: str
    group_id: str
    group_name: Optional[str] = None
    joined_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _normalize_times(self, "joined_at")


@dataclass(frozen=True)
class QuizInfo:
    quiz_id: str
    title: str
    passing_score: Optional[float] = None


@dataclass(frozen=True)
class SuspiciousActivityRecord:
    """Discussion event flagged by the external detection process."""

    id: str
    type: str
    severity: str
    description: str
    timestamp: datetime
    user_id: str
    room_id: str
    quiz_id: Optional[str] = None
    user_name: Optional[str] = None
    evidence: Mapping[str, object] = field(default_factory=dict)
    resolved: bool = False

    def __post_init__(self) -> None:
        _normalize_times(self, "timestamp")
