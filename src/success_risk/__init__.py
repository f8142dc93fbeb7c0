# ABOUTME: Groups the student-success prediction engine.
# ABOUTME: Re-exports metric calculators, scoring, risk rules, cohort insights, and the pipeline entrypoints.

from .metrics import (
    calculate_chat_engagement,
    calculate_performance_metrics,
    calculate_study_group_participation,
)
from .scoring import RiskLevel, classify_risk_level, predict_next_quiz_success, predict_success_probability
from .risk_factors import identify_risk_factors, recommend_interventions
from .prediction import SuccessPrediction, predict_student
from .cohort import generate_cohort_insights
from .early_warning import generate_early_warnings
from .pipeline import PredictionResult, run_success_prediction
from .learning import LearningAnalytics, run_learning_analytics

__all__ = [
    "calculate_chat_engagement",
    "calculate_performance_metrics",
    "calculate_study_group_participation",
    "RiskLevel",
    "classify_risk_level",
    "predict_next_quiz_success",
    "predict_success_probability",
    "identify_risk_factors",
    "recommend_interventions",
    "SuccessPrediction",
    "predict_student",
    "generate_cohort_insights",
    "generate_early_warnings",
    "PredictionResult",
    "run_success_prediction",
    "LearningAnalytics",
    "run_learning_analytics",
]
