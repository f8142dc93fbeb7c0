# ABOUTME: Computes learning analytics for a window: engagement vs score, study habits, group effectiveness.
# ABOUTME: Also rolls discussion volume into daily activity and a cohort-level summary block.

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

import pandas as pd

from src.common.config import DEFAULT_POLICY, CohortBands, ScoringPolicy
from src.common.data_source import ActivityDataSource, build_window, resolve_quiz, upstream_reads
from src.common.schemas import ActivityWindow, RoomType, StudentActivity, StudyGroupMembership
from src.common.statistics import correlation_strength, pearson_correlation, safe_mean, safe_ratio

from .cohort import CorrelationSummary

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = ["user_id", "created_at", "room_type", "room_id"]
STUDY_ROOM_TYPES = (RoomType.QUIZ_DISCUSSION, RoomType.STUDY_GROUP)


@dataclass(frozen=True)
class EngagementCorrelationEntry:
    user_id: str
    message_count: int
    average_score: float
    quiz_attempts: int


@dataclass(frozen=True)
class StudyPattern:
    total_messages: int
    quiz_discussion_messages: int
    study_group_messages: int
    peak_hours: Dict[int, int]
    peak_hour: Optional[int] = None


@dataclass(frozen=True)
class GroupEffectiveness:
    group_id: str
    group_name: Optional[str]
    member_count: int
    average_score: float
    pass_rate: float
    total_messages: int
    messages_per_member: float


@dataclass(frozen=True)
class LearningSummary:
    total_users: int
    total_messages: int
    average_engagement: float
    correlation: CorrelationSummary


@dataclass(frozen=True)
class LearningAnalytics:
    window: ActivityWindow
    engagement_correlation: List[EngagementCorrelationEntry]
    user_study_patterns: Dict[str, StudyPattern]
    study_group_effectiveness: List[GroupEffectiveness]
    daily_activity: Dict[str, int]
    summary: LearningSummary


def messages_to_frame(students: Sequence[StudentActivity]) -> pd.DataFrame:
    rows = [
        {
            "user_id": m.user_id,
            "created_at": m.created_at,
            "room_type": m.room_type,
            "room_id": m.room_id,
        }
        for s in students
        for m in s.messages
    ]
    if not rows:
        return pd.DataFrame(columns=MESSAGE_COLUMNS)
    frame = pd.DataFrame(rows, columns=MESSAGE_COLUMNS)
    frame["created_at"] = pd.to_datetime(frame["created_at"], utc=True)
    return frame


def correlate_engagement(students: Sequence[StudentActivity]) -> List[EngagementCorrelationEntry]:
    """One entry per student who posted in the window; students without attempts average 0."""
    return [
        EngagementCorrelationEntry(
            user_id=s.student_id,
            message_count=len(s.messages),
            average_score=safe_mean([a.score for a in s.attempts]),
            quiz_attempts=len(s.attempts),
        )
        for s in students
        if s.messages
    ]


def analyze_study_patterns(frame: pd.DataFrame) -> Dict[str, StudyPattern]:
    """
    Summarize each user's quiz-discussion and study-group messages.

    General-channel chatter is left out. Peak hours are UTC hours; the single
    peak hour breaks ties toward the earliest hour.
    """
    study = frame[frame["room_type"].isin(STUDY_ROOM_TYPES)]
    if study.empty:
        return {}

    patterns: Dict[str, StudyPattern] = {}
    for user_id, group in study.groupby("user_id", sort=True):
        hours = group["created_at"].dt.hour.value_counts().sort_index()
        peak_hours = {int(hour): int(count) for hour, count in hours.items()}
        patterns[str(user_id)] = StudyPattern(
            total_messages=len(group),
            quiz_discussion_messages=int((group["room_type"] == RoomType.QUIZ_DISCUSSION).sum()),
            study_group_messages=int((group["room_type"] == RoomType.STUDY_GROUP).sum()),
            peak_hours=peak_hours,
            peak_hour=max(peak_hours, key=lambda hour: (peak_hours[hour], -hour)),
        )
    return patterns


def evaluate_study_groups(
    students: Sequence[StudentActivity],
    memberships: Sequence[StudyGroupMembership],
    frame: pd.DataFrame,
) -> List[GroupEffectiveness]:
    """
    Score each study group by its members' windowed attempts and its room traffic.

    A group's room is the study-group room whose room_id equals the group_id.
    Pass rate is the share of members with at least one passed attempt.
    """
    members: Dict[str, Set[str]] = defaultdict(set)
    names: Dict[str, Optional[str]] = {}
    for membership in memberships:
        members[membership.group_id].add(membership.student_id)
        if names.get(membership.group_id) is None:
            names[membership.group_id] = membership.group_name

    room_messages: Dict[str, int] = {}
    group_rooms = frame[frame["room_type"] == RoomType.STUDY_GROUP]
    if not group_rooms.empty:
        room_messages = {str(k): int(v) for k, v in group_rooms["room_id"].value_counts().items()}

    students_by_id = {s.student_id: s for s in students}
    results = []
    for group_id in sorted(members):
        member_ids = sorted(members[group_id])
        member_attempts = [students_by_id[sid].attempts if sid in students_by_id else () for sid in member_ids]
        scores = [a.score for attempts in member_attempts for a in attempts]
        passed_members = sum(1 for attempts in member_attempts if any(a.passed for a in attempts))
        total_messages = room_messages.get(group_id, 0)
        results.append(
            GroupEffectiveness(
                group_id=group_id,
                group_name=names.get(group_id),
                member_count=len(member_ids),
                average_score=safe_mean(scores),
                pass_rate=safe_ratio(passed_members, len(member_ids)),
                total_messages=total_messages,
                messages_per_member=safe_ratio(total_messages, len(member_ids)),
            )
        )
    return results


def daily_activity(frame: pd.DataFrame) -> Dict[str, int]:
    if frame.empty:
        return {}
    days = frame["created_at"].dt.strftime("%Y-%m-%d").value_counts().sort_index()
    return {str(day): int(count) for day, count in days.items()}


def summarize_learning(
    correlation_entries: Sequence[EngagementCorrelationEntry],
    patterns: Dict[str, StudyPattern],
    bands: CohortBands = DEFAULT_POLICY.cohort,
) -> LearningSummary:
    r = pearson_correlation(
        [e.message_count for e in correlation_entries],
        [e.average_score for e in correlation_entries],
    )
    return LearningSummary(
        total_users=len(patterns),
        total_messages=sum(p.total_messages for p in patterns.values()),
        average_engagement=safe_mean([e.message_count for e in correlation_entries]),
        correlation=CorrelationSummary(
            value=r,
            strength=correlation_strength(r, bands.strong_correlation, bands.moderate_correlation),
        ),
    )


def run_learning_analytics(
    source: ActivityDataSource,
    time_range_days: object = 30,
    quiz_id: Optional[str] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
) -> LearningAnalytics:
    window = build_window(time_range_days, quiz_id=quiz_id, now=now)
    resolve_quiz(source, window, stage="learning")

    with upstream_reads("learning"):
        students = source.fetch_students(window)
        memberships = source.fetch_study_group_memberships(window)

    frame = messages_to_frame(students)
    logger.info("Analyzing %d messages from %d students (quiz=%s)", len(frame), len(students), window.quiz_id or "all")

    correlation_entries = correlate_engagement(students)
    patterns = analyze_study_patterns(frame)
    return LearningAnalytics(
        window=window,
        engagement_correlation=correlation_entries,
        user_study_patterns=patterns,
        study_group_effectiveness=evaluate_study_groups(students, memberships, frame),
        daily_activity=daily_activity(frame),
        summary=summarize_learning(correlation_entries, patterns, policy.cohort),
    )
