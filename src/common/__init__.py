# ABOUTME: Makes the shared common package importable across engines.
# ABOUTME: Re-exports record schemas, the scoring policy, and data-source helpers.

from .schemas import (
    ActivityWindow,
    DiscussionMessage,
    QuizAttempt,
    QuizInfo,
    StudentActivity,
    StudyGroupMembership,
    SuspiciousActivityRecord,
)
from .config import ScoringPolicy, load_policy
from .data_source import AnalyticsComputationError, InMemoryDataSource, ParquetDataSource, build_window

__all__ = [
    "ActivityWindow",
    "DiscussionMessage",
    "QuizAttempt",
    "QuizInfo",
    "StudentActivity",
    "StudyGroupMembership",
    "SuspiciousActivityRecord",
    "ScoringPolicy",
    "load_policy",
    "AnalyticsComputationError",
    "InMemoryDataSource",
    "ParquetDataSource",
    "build_window",
]
