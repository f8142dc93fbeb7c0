# ABOUTME: Turns one student's raw activity into engagement, performance, and study-group metrics.
# ABOUTME: Pure functions that resolve empty inputs to zero-valued metric structures.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Sequence

from src.common.config import DEFAULT_POLICY, MetricPolicy
from src.common.schemas import DiscussionMessage, QuizAttempt, RoomType, StudyGroupMembership, as_utc
from src.common.statistics import clamp, population_std, safe_mean, safe_ratio

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class RoomTypeCounts:
    quiz_discussion: int = 0
    study_group: int = 0
    general: int = 0

    @property
    def active_categories(self) -> int:
        return sum(1 for count in (self.quiz_discussion, self.study_group, self.general) if count > 0)


@dataclass(frozen=True)
class ChatEngagementMetrics:
    total_messages: int = 0
    by_room_type: RoomTypeCounts = field(default_factory=RoomTypeCounts)
    messages_per_day: float = 0.0
    diversity_score: float = 0.0
    engagement_score: float = 0.0


@dataclass(frozen=True)
class PerformanceMetrics:
    total_attempts: int = 0
    average_score: float = 0.0
    pass_rate: float = 0.0
    improvement_trend: float = 0.0
    consistency_score: float = 0.0
    recent_performance: float = 0.0


@dataclass(frozen=True)
class StudyGroupParticipation:
    active_groups: int = 0
    participation_score: float = 0.0
    has_groups: bool = False


@dataclass(frozen=True)
class StudentMetrics:
    chat: ChatEngagementMetrics
    performance: PerformanceMetrics
    study_group: StudyGroupParticipation


def calculate_chat_engagement(
    messages: Sequence[DiscussionMessage],
    as_of: datetime,
    policy: MetricPolicy = DEFAULT_POLICY.metrics,
) -> ChatEngagementMetrics:
    """
    Summarize discussion activity.

    Frequency is messages per day since the student's earliest message in the
    window (at least one day). Diversity is the share of the three tracked room
    types with at least one message.
    """
    if not messages:
        return ChatEngagementMetrics()

    by_room_type = RoomTypeCounts(
        quiz_discussion=sum(1 for m in messages if m.room_type == RoomType.QUIZ_DISCUSSION),
        study_group=sum(1 for m in messages if m.room_type == RoomType.STUDY_GROUP),
        general=sum(1 for m in messages if m.room_type == RoomType.GENERAL),
    )

    earliest = min(m.created_at for m in messages)
    elapsed_days = math.ceil((as_utc(as_of) - earliest).total_seconds() / SECONDS_PER_DAY)
    total_messages = len(messages)
    messages_per_day = total_messages / max(1, elapsed_days)
    diversity_score = by_room_type.active_categories / 3
    engagement_score = clamp(
        min(100.0, messages_per_day * policy.messages_per_day_factor + diversity_score * policy.diversity_factor)
    )

    return ChatEngagementMetrics(
        total_messages=total_messages,
        by_room_type=by_room_type,
        messages_per_day=messages_per_day,
        diversity_score=diversity_score,
        engagement_score=engagement_score,
    )


def calculate_performance_metrics(
    attempts: Iterable[QuizAttempt],
    policy: MetricPolicy = DEFAULT_POLICY.metrics,
) -> PerformanceMetrics:
    """
    Summarize quiz attempts in chronological order of completion.

    The improvement trend compares the mean score of the later half of the
    attempts with the earlier half, splitting at floor(n / 2).
    """
    ordered = sorted(attempts, key=lambda a: a.completed_at)
    if not ordered:
        return PerformanceMetrics()

    scores: List[float] = [float(a.score) for a in ordered]
    total_attempts = len(scores)
    midpoint = total_attempts // 2
    first_half = scores[:midpoint]
    second_half = scores[midpoint:]
    first_half_avg = sum(first_half) / max(1, len(first_half))
    second_half_avg = sum(second_half) / max(1, len(second_half))

    return PerformanceMetrics(
        total_attempts=total_attempts,
        average_score=safe_mean(scores),
        pass_rate=safe_ratio(sum(1 for a in ordered if a.passed), total_attempts),
        improvement_trend=second_half_avg - first_half_avg,
        consistency_score=max(0.0, 100.0 - population_std(scores)),
        recent_performance=safe_mean(scores[-policy.recent_attempt_count:]),
    )


def calculate_study_group_participation(
    memberships: Iterable[StudyGroupMembership],
    policy: MetricPolicy = DEFAULT_POLICY.metrics,
) -> StudyGroupParticipation:
    active_groups = len({m.group_id for m in memberships})
    return StudyGroupParticipation(
        active_groups=active_groups,
        participation_score=min(100.0, active_groups * policy.points_per_group),
        has_groups=active_groups > 0,
    )
