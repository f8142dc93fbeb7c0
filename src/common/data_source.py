# ABOUTME: Read-only data access for analytics runs plus activity-window construction.
# ABOUTME: Provides in-memory and parquet-backed sources and wraps upstream read failures.

from __future__ import annotations

import json
import logging
import numbers
import re
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence

import pandas as pd

from .schemas import (
    ActivityWindow,
    DiscussionMessage,
    QuizAttempt,
    QuizInfo,
    StudentActivity,
    StudyGroupMembership,
    SuspiciousActivityRecord,
)

logger = logging.getLogger(__name__)

STUDENTS_TABLE = "students.parquet"
MESSAGES_TABLE = "messages.parquet"
ATTEMPTS_TABLE = "attempts.parquet"
MEMBERSHIPS_TABLE = "memberships.parquet"
SUSPICIOUS_TABLE = "suspicious_activities.parquet"
QUIZZES_TABLE = "quizzes.parquet"

TABLE_COLUMNS = {
    STUDENTS_TABLE: ["student_id", "name", "email"],
    MESSAGES_TABLE: ["message_id", "user_id", "created_at", "room_type", "room_id", "quiz_id"],
    ATTEMPTS_TABLE: ["attempt_id", "user_id", "quiz_id", "score", "passed", "completed_at", "passing_score"],
    MEMBERSHIPS_TABLE: ["student_id", "group_id", "group_name", "joined_at"],
    SUSPICIOUS_TABLE: [
        "id",
        "type",
        "severity",
        "description",
        "timestamp",
        "user_id",
        "room_id",
        "quiz_id",
        "user_name",
        "evidence",
        "resolved",
    ],
    QUIZZES_TABLE: ["quiz_id", "title", "passing_score"],
}
REQUIRED_TABLES = {STUDENTS_TABLE}


class AnalyticsComputationError(RuntimeError):
    """Raised once when any upstream read feeding a pipeline run fails."""


class ActivityDataSource(Protocol):
    def fetch_students(self, window: ActivityWindow) -> List[StudentActivity]:
        ...

    def fetch_study_group_memberships(self, window: ActivityWindow) -> List[StudyGroupMembership]:
        ...

    def fetch_suspicious_activities(self, window: ActivityWindow) -> List[SuspiciousActivityRecord]:
        ...

    def fetch_quiz_attempts(self, window: ActivityWindow) -> List[QuizAttempt]:
        ...

    def get_quiz(self, quiz_id: str) -> Optional[QuizInfo]:
        ...


def parse_time_range(time_range_days: object) -> int:
    """
    Validate the window length in days. Accepts integers and digit-only strings.
    """
    if isinstance(time_range_days, bool):
        raise ValueError("time_range_days must be an integer number of days, got a boolean.")
    if isinstance(time_range_days, numbers.Integral):
        days = int(time_range_days)
    elif isinstance(time_range_days, str) and re.fullmatch(r"\s*\d+\s*", time_range_days):
        days = int(time_range_days.strip())
    else:
        raise ValueError(f"time_range_days must be an integer number of days, got {time_range_days!r}.")
    if days < 1:
        raise ValueError(f"time_range_days must be at least 1, got {days}.")
    return days


def build_window(
    time_range_days: object,
    quiz_id: Optional[str] = None,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ActivityWindow:
    days = parse_time_range(time_range_days)
    end_date = now or datetime.now(timezone.utc)
    if end_date.tzinfo is None:
        end_date = end_date.replace(tzinfo=timezone.utc)
    return ActivityWindow(
        start_date=end_date - timedelta(days=days),
        end_date=end_date,
        quiz_id=_clean_id(quiz_id),
        user_id=_clean_id(user_id),
    )


@contextmanager
def upstream_reads(stage: str) -> Iterator[None]:
    """Convert any failure raised by the data source into AnalyticsComputationError."""
    try:
        yield
    except AnalyticsComputationError:
        raise
    except Exception as exc:
        raise AnalyticsComputationError(f"[{stage}] computation failed: {exc}") from exc


def resolve_quiz(source: ActivityDataSource, window: ActivityWindow, stage: str) -> Optional[QuizInfo]:
    if window.quiz_id is None:
        return None
    with upstream_reads(stage):
        quiz = source.get_quiz(window.quiz_id)
    if quiz is None:
        raise ValueError(f"Unknown quiz id '{window.quiz_id}'.")
    return quiz


class InMemoryDataSource:
    """Serves frozen record collections, applying window, quiz, and user scoping."""

    def __init__(
        self,
        students: Iterable[StudentActivity] = (),
        memberships: Iterable[StudyGroupMembership] = (),
        suspicious_activities: Iterable[SuspiciousActivityRecord] = (),
        quizzes: Iterable[QuizInfo] = (),
    ):
        self._students = tuple(students)
        self._memberships = tuple(memberships)
        self._suspicious = tuple(suspicious_activities)
        self._quizzes = {quiz.quiz_id: quiz for quiz in quizzes}

    def fetch_students(self, window: ActivityWindow) -> List[StudentActivity]:
        scoped = []
        for student in self._students:
            scoped.append(
                StudentActivity(
                    student_id=student.student_id,
                    name=student.name,
                    email=student.email,
                    messages=tuple(m for m in student.messages if _message_in_scope(m, window)),
                    attempts=tuple(a for a in student.attempts if _attempt_in_scope(a, window)),
                )
            )
        return scoped

    def fetch_study_group_memberships(self, window: ActivityWindow) -> List[StudyGroupMembership]:
        # Memberships are current state rather than windowed events.
        return list(self._memberships)

    def fetch_suspicious_activities(self, window: ActivityWindow) -> List[SuspiciousActivityRecord]:
        scoped = [r for r in self._suspicious if _activity_in_scope(r, window)]
        return sorted(scoped, key=lambda r: r.timestamp, reverse=True)

    def fetch_quiz_attempts(self, window: ActivityWindow) -> List[QuizAttempt]:
        return [
            attempt
            for student in self._students
            for attempt in student.attempts
            if _attempt_in_scope(attempt, window)
        ]

    def get_quiz(self, quiz_id: str) -> Optional[QuizInfo]:
        return self._quizzes.get(quiz_id)


class ParquetDataSource:
    """
    Reads a directory of parquet tables exported from the course platform.

    Expected tables (only ``students.parquet`` is mandatory):
    students, messages, attempts, memberships, suspicious_activities, quizzes.
    Suspicious-activity evidence is stored as JSON text.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._frames: Dict[str, pd.DataFrame] = {}

    def _table(self, name: str) -> pd.DataFrame:
        if name not in self._frames:
            path = self.data_dir / name
            if path.exists():
                logger.debug("Reading %s", path)
                frame = pd.read_parquet(path)
            elif name in REQUIRED_TABLES:
                raise FileNotFoundError(f"Missing required table {path}")
            else:
                frame = pd.DataFrame(columns=TABLE_COLUMNS[name])
            for column in TABLE_COLUMNS[name]:
                if column not in frame.columns:
                    frame[column] = None
            self._frames[name] = frame
        return self._frames[name]

    def fetch_students(self, window: ActivityWindow) -> List[StudentActivity]:
        students = self._table(STUDENTS_TABLE)
        messages = _scoped_frame(self._table(MESSAGES_TABLE), "created_at", window, quiz=True)
        attempts = _scored_attempts(_scoped_frame(self._table(ATTEMPTS_TABLE), "completed_at", window, quiz=True))

        messages_by_user = {
            str(user_id): tuple(_row_to_message(row) for row in group.to_dict("records"))
            for user_id, group in messages.groupby("user_id", sort=False)
        }
        attempts_by_user = {
            str(user_id): tuple(_row_to_attempt(row) for row in group.to_dict("records"))
            for user_id, group in attempts.groupby("user_id", sort=False)
        }

        return [
            StudentActivity(
                student_id=str(row["student_id"]),
                name=str(row["name"]),
                email=_optional_str(row.get("email")),
                messages=messages_by_user.get(str(row["student_id"]), ()),
                attempts=attempts_by_user.get(str(row["student_id"]), ()),
            )
            for row in students.to_dict("records")
        ]

    def fetch_study_group_memberships(self, window: ActivityWindow) -> List[StudyGroupMembership]:
        frame = self._table(MEMBERSHIPS_TABLE)
        return [
            StudyGroupMembership(
                student_id=str(row["student_id"]),
                group_id=str(row["group_id"]),
                group_name=_optional_str(row.get("group_name")),
                joined_at=_optional_datetime(row.get("joined_at")),
            )
            for row in frame.to_dict("records")
        ]

    def fetch_suspicious_activities(self, window: ActivityWindow) -> List[SuspiciousActivityRecord]:
        frame = _scoped_frame(self._table(SUSPICIOUS_TABLE), "timestamp", window, quiz=True)
        if window.user_id is not None and not frame.empty:
            frame = frame[frame["user_id"].astype(str) == window.user_id]
        frame = frame.sort_values("timestamp", ascending=False, kind="mergesort")
        return [_row_to_activity(row) for row in frame.to_dict("records")]

    def fetch_quiz_attempts(self, window: ActivityWindow) -> List[QuizAttempt]:
        frame = _scored_attempts(_scoped_frame(self._table(ATTEMPTS_TABLE), "completed_at", window, quiz=True))
        return [_row_to_attempt(row) for row in frame.to_dict("records")]

    def get_quiz(self, quiz_id: str) -> Optional[QuizInfo]:
        frame = self._table(QUIZZES_TABLE)
        match = frame[frame["quiz_id"].astype(str) == quiz_id]
        if match.empty:
            return None
        row = match.iloc[0]
        return QuizInfo(
            quiz_id=str(row["quiz_id"]),
            title=str(row["title"]),
            passing_score=_optional_float(row.get("passing_score")),
        )


def _clean_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _message_in_scope(message: DiscussionMessage, window: ActivityWindow) -> bool:
    if not window.contains(message.created_at):
        return False
    return window.quiz_id is None or message.quiz_id == window.quiz_id


def _attempt_in_scope(attempt: QuizAttempt, window: ActivityWindow) -> bool:
    if not window.contains(attempt.completed_at):
        return False
    return window.quiz_id is None or attempt.quiz_id == window.quiz_id


def _activity_in_scope(record: SuspiciousActivityRecord, window: ActivityWindow) -> bool:
    if not window.contains(record.timestamp):
        return False
    if window.quiz_id is not None and record.quiz_id != window.quiz_id:
        return False
    return window.user_id is None or record.user_id == window.user_id


def _scoped_frame(frame: pd.DataFrame, time_column: str, window: ActivityWindow, quiz: bool) -> pd.DataFrame:
    if frame.empty:
        return frame
    frame = frame.copy()
    frame[time_column] = pd.to_datetime(frame[time_column], utc=True, errors="coerce")
    mask = (frame[time_column] >= window.start_date) & (frame[time_column] <= window.end_date)
    if quiz and window.quiz_id is not None:
        mask &= frame["quiz_id"].astype(str) == window.quiz_id
    return frame[mask]


def _scored_attempts(frame: pd.DataFrame) -> pd.DataFrame:
    """Drop attempts without a score; an ungraded attempt has no value to average."""
    if frame.empty:
        return frame
    scored = frame[pd.to_numeric(frame["score"], errors="coerce").notna()]
    if len(scored) < len(frame):
        logger.warning("Skipping %d attempts with no score", len(frame) - len(scored))
    return scored


def _row_to_message(row: Mapping) -> DiscussionMessage:
    return DiscussionMessage(
        message_id=str(row["message_id"]),
        user_id=str(row["user_id"]),
        created_at=_optional_datetime(row["created_at"]),
        room_type=str(row["room_type"]),
        room_id=_optional_str(row.get("room_id")),
        quiz_id=_optional_str(row.get("quiz_id")),
    )


def _row_to_attempt(row: Mapping) -> QuizAttempt:
    return QuizAttempt(
        attempt_id=str(row["attempt_id"]),
        user_id=str(row["user_id"]),
        quiz_id=str(row["quiz_id"]),
        score=float(row["score"]),
        passed=bool(row["passed"]),
        completed_at=_optional_datetime(row["completed_at"]),
        passing_score=_optional_float(row.get("passing_score")),
    )


def _row_to_activity(row: Mapping) -> SuspiciousActivityRecord:
    return SuspiciousActivityRecord(
        id=str(row["id"]),
        type=str(row["type"]),
        severity=str(row["severity"]).upper(),
        description=_optional_str(row.get("description")) or "",
        timestamp=_optional_datetime(row["timestamp"]),
        user_id=str(row["user_id"]),
        room_id=str(row["room_id"]),
        quiz_id=_optional_str(row.get("quiz_id")),
        user_name=_optional_str(row.get("user_name")),
        evidence=_parse_evidence(row.get("evidence")),
        resolved=bool(row.get("resolved") or False),
    )


def _parse_evidence(value: object) -> Dict[str, object]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return {}
    if isinstance(value, dict):
        return dict(value)
    parsed = json.loads(str(value))
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, Sequence) and not isinstance(parsed, str):
        return {"items": list(parsed)}
    return {"value": parsed}


def _optional_str(value: object) -> Optional[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)) or value is pd.NA:
        return None
    text = str(value)
    return text or None


def _optional_float(value: object) -> Optional[float]:
    if value is None or value is pd.NA:
        return None
    number = float(value)
    return None if pd.isna(number) else number


def _optional_datetime(value: object) -> Optional[datetime]:
    if value is None or value is pd.NA or value is pd.NaT:
        return None
    stamp = pd.Timestamp(value)
    if pd.isna(stamp):
        return None
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return stamp.to_pydatetime()
