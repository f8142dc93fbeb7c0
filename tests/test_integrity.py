# ABOUTME: Tests the academic-integrity analyzer and report assembly.
# ABOUTME: Covers penalties and levels, hourly patterns, user risk ranking, quiz scoping, and recommendations.

from datetime import datetime, timedelta, timezone

import pytest

from src.common.data_source import InMemoryDataSource, build_window
from src.common.schemas import (
    QuizAttempt,
    QuizInfo,
    Severity,
    StudentActivity,
    SuspiciousActivityRecord,
    ViolationType,
)
from src.integrity.analyzer import (
    analyze_quiz_integrity,
    analyze_violation_patterns,
    assess_user_risk,
    calculate_integrity_score,
    generate_recommendations,
    summarize_activities,
)
from src.integrity.report import build_integrity_report, generate_integrity_report

NOW = datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)
WINDOW = build_window(30, now=NOW)

_counter = {"n": 0}


def _record(
    user_id: str,
    severity: str = Severity.LOW,
    violation_type: str = ViolationType.PATTERN_DETECTION,
    at: datetime = None,
    quiz_id: str = None,
    resolved: bool = False,
    user_name: str = None,
) -> SuspiciousActivityRecord:
    _counter["n"] += 1
    return SuspiciousActivityRecord(
        id=f"r{_counter['n']}",
        type=violation_type,
        severity=severity,
        description="flagged",
        timestamp=at or NOW - timedelta(days=1),
        user_id=user_id,
        room_id="room-1",
        quiz_id=quiz_id,
        user_name=user_name,
        resolved=resolved,
    )


def _score(records):
    summary = summarize_activities(records, WINDOW)
    return calculate_integrity_score(summary, analyze_violation_patterns(records))


def test_empty_window_yields_perfect_report():
    report = build_integrity_report([], WINDOW)

    assert report.integrity_score.score == 100
    assert report.integrity_score.level == "EXCELLENT"
    assert report.suspicious_activities == []
    assert report.recommendations == []
    assert report.user_risk_assessment == []
    assert report.pattern_analysis.hourly_distribution == {}
    assert report.summary.total_violations == 0
    assert report.summary.risk_level == "LOW"
    assert report.summary.headline == "No significant integrity concerns detected."
    assert report.summary.time_range_days == 30


def test_penalty_combines_severities_and_repeat_offenders():
    records = [
        _record("u1", Severity.HIGH),
        _record("u1", Severity.MEDIUM),
        _record("u2", Severity.HIGH),
        _record("u3", Severity.MEDIUM),
        _record("u4", Severity.LOW),
    ]
    # 2*5 + 2*2 + 1*0.5 + 1 repeat offender * 3 = 17.5
    score = _score(records)
    assert score.score == 83
    assert score.level == "GOOD"
    assert score.description == "Good academic integrity with some minor concerns"


@pytest.mark.parametrize(
    "high_count,expected_score,expected_level",
    [
        (2, 90, "EXCELLENT"),
        (3, 85, "GOOD"),
        (5, 75, "GOOD"),
        (6, 70, "FAIR"),
        (8, 60, "FAIR"),
        (12, 40, "POOR"),
        (13, 35, "CRITICAL"),
        (30, 0, "CRITICAL"),
    ],
)
def test_score_levels_and_floor(high_count, expected_score, expected_level):
    records = [_record(f"user-{i}", Severity.HIGH) for i in range(high_count)]
    score = _score(records)
    assert score.score == expected_score
    assert score.level == expected_level


def test_score_never_increases_when_violations_are_added():
    records = [_record("a", Severity.LOW)]
    previous = _score(records).score
    for idx, severity in enumerate([Severity.MEDIUM, Severity.HIGH, Severity.LOW, Severity.HIGH]):
        records.append(_record(f"b{idx}", severity))
        current = _score(records).score
        assert current <= previous
        previous = current


def test_hourly_distribution_uses_utc_hour():
    day = datetime(2024, 5, 30, tzinfo=timezone.utc)
    records = [
        _record("u1", Severity.HIGH, at=day + timedelta(hours=14, minutes=5)),
        _record("u2", Severity.LOW, at=day + timedelta(hours=14, minutes=50)),
        _record("u3", Severity.MEDIUM, at=day + timedelta(hours=9)),
        # 23:30 at UTC-2 is 01:30 UTC the next day.
        _record("u4", Severity.LOW, at=datetime(2024, 5, 29, 23, 30, tzinfo=timezone(timedelta(hours=-2)))),
    ]
    hourly = analyze_violation_patterns(records).hourly_distribution

    assert list(hourly) == [1, 9, 14]
    assert (hourly[14].high, hourly[14].medium, hourly[14].low, hourly[14].total) == (1, 0, 1, 2)
    assert hourly[9].medium == 1
    assert hourly[1].total == 1


def test_violation_types_sorted_and_repeat_offenders_detected():
    records = [
        _record("u1", violation_type=ViolationType.TIMING_VIOLATION, user_name="Una"),
        _record("u1", violation_type=ViolationType.KEYWORD_MATCH),
        _record("u2", violation_type=ViolationType.KEYWORD_MATCH),
        _record("u2", violation_type=ViolationType.EXCESSIVE_MESSAGING),
        _record("u2", violation_type=ViolationType.KEYWORD_MATCH),
        _record("u3", violation_type=ViolationType.EXCESSIVE_MESSAGING),
    ]
    patterns = analyze_violation_patterns(records)

    assert [(v.type, v.count) for v in patterns.violations_by_type] == [
        ("KEYWORD_MATCH", 3),
        ("EXCESSIVE_MESSAGING", 2),
        ("TIMING_VIOLATION", 1),
    ]
    assert [(o.user_id, o.violation_count) for o in patterns.repeat_offenders] == [("u2", 3), ("u1", 2)]
    assert patterns.repeat_offenders[1].user_name == "Una"


def test_user_risk_scores_and_ranking():
    records = [
        _record("u1", Severity.HIGH),
        _record("u1", Severity.MEDIUM),
        _record("u2", Severity.HIGH),
        _record("u2", Severity.HIGH),
        _record("u3", Severity.LOW),
    ]
    assessments = assess_user_risk(records)

    assert [a.user_id for a in assessments] == ["u2", "u1", "u3"]
    assert [a.risk_score for a in assessments] == [3.0, 2.5, 1.0]
    assert [a.risk_level for a in assessments] == ["HIGH", "HIGH", "LOW"]
    assert assessments[1].violations.total == 2


def test_user_risk_count_overrides():
    many_high = [_record("h", Severity.HIGH) for _ in range(3)] + [_record("h", Severity.LOW) for _ in range(20)]
    many_medium = [_record("m", Severity.MEDIUM) for _ in range(5)] + [_record("m", Severity.LOW) for _ in range(10)]
    levels = {a.user_id: a for a in assess_user_risk(many_high + many_medium)}

    # (3*3 + 20) / 23 and (5*2 + 10) / 15 both fall below 1.5.
    assert levels["h"].risk_score == pytest.approx(1.26)
    assert levels["h"].risk_level == "HIGH"
    assert levels["m"].risk_score == pytest.approx(1.33)
    assert levels["m"].risk_level == "MEDIUM"


def test_quiz_integrity_counts_compromised_attempts():
    quiz = QuizInfo(quiz_id="q1", title="Midterm")
    attempts = [
        QuizAttempt(attempt_id=f"a{i}", user_id=f"u{i}", quiz_id="q1", score=70, passed=True, completed_at=NOW)
        for i in range(1, 5)
    ]
    attempts.append(QuizAttempt(attempt_id="other", user_id="u9", quiz_id="q2", score=50, passed=False, completed_at=NOW))
    records = [
        _record("u1", quiz_id="q1", violation_type=ViolationType.KEYWORD_MATCH),
        _record("u1", quiz_id="q1", violation_type=ViolationType.TIMING_VIOLATION),
        _record("u2", quiz_id="q1", violation_type=ViolationType.KEYWORD_MATCH),
        _record("u3", quiz_id="q2", violation_type=ViolationType.KEYWORD_MATCH),
    ]
    analysis = analyze_quiz_integrity(quiz, attempts, records)

    assert analysis.total_attempts == 4
    assert analysis.total_violations == 3
    assert analysis.compromised_attempts == 2
    assert analysis.integrity_score == 50.0
    assert analysis.violations_by_type == {"KEYWORD_MATCH": 2, "TIMING_VIOLATION": 1}


def test_quiz_without_attempts_scores_full():
    analysis = analyze_quiz_integrity(QuizInfo(quiz_id="q1", title="Quiz"), [], [_record("u1", quiz_id="q1")])
    assert analysis.integrity_score == 100.0
    assert analysis.compromised_attempts == 0


@pytest.mark.parametrize(
    "severities,risk_level,headline",
    [
        ([Severity.HIGH], "HIGH", "1 high-risk activities detected. Immediate review recommended."),
        ([Severity.MEDIUM] * 3, "HIGH", "3 medium-risk activities detected. Pattern suggests potential issues."),
        ([Severity.MEDIUM], "MEDIUM", "1 suspicious activities detected. Monitoring recommended."),
        ([Severity.LOW] * 4, "MEDIUM", "4 suspicious activities detected. Monitoring recommended."),
        ([Severity.LOW] * 3, "LOW", "No significant integrity concerns detected."),
    ],
)
def test_summary_risk_level_and_headline(severities, risk_level, headline):
    records = [_record(f"u{i}", severity) for i, severity in enumerate(severities)]
    summary = summarize_activities(records, WINDOW)
    assert summary.risk_level == risk_level
    assert summary.headline == headline


def test_summary_counts():
    records = [
        _record("u1", Severity.HIGH, quiz_id="q1", resolved=True),
        _record("u1", Severity.LOW, quiz_id="q2"),
        _record("u2", Severity.MEDIUM),
    ]
    summary = summarize_activities(records, WINDOW)
    assert summary.total_violations == 3
    assert (summary.high_severity_violations, summary.medium_severity_violations) == (1, 1)
    assert summary.low_severity_violations == 1
    assert summary.resolved_violations == 1
    assert summary.unique_users == 2
    assert summary.unique_quizzes == 2


def test_recommendations_for_severe_clustered_activity():
    at = datetime(2024, 5, 31, 14, 10, tzinfo=timezone.utc)
    records = [_record(f"u{i}", Severity.HIGH, at=at + timedelta(minutes=i)) for i in range(6)]
    summary = summarize_activities(records, WINDOW)
    recommendations = generate_recommendations(summary, analyze_violation_patterns(records))

    assert recommendations == [
        "Immediate review required: High number of severe violations detected",
        "Consider implementing stricter chat monitoring during quiz periods",
        "Increase monitoring during 14:00 UTC - peak violation time",
    ]


def test_recommendations_for_keyword_volume_and_workshop():
    keyword = [
        _record(f"k{i}", violation_type=ViolationType.KEYWORD_MATCH, at=NOW - timedelta(hours=i + 1))
        for i in range(11)
    ]
    patterns = analyze_violation_patterns(keyword)
    recommendations = generate_recommendations(summarize_activities(keyword, WINDOW), patterns)
    assert recommendations == [
        "Review and update suspicious keyword detection rules",
        "Provide clearer guidelines on acceptable chat behavior during quizzes",
    ]

    busy = [_record(f"w{i}", at=NOW - timedelta(hours=i + 1)) for i in range(21)]
    recommendations = generate_recommendations(summarize_activities(busy, WINDOW), analyze_violation_patterns(busy))
    assert recommendations == [
        "Conduct academic integrity workshop for students",
        "Review quiz security measures and chat policies",
    ]


def test_repeat_offender_recommendation():
    records = [_record("u1"), _record("u1")]
    recommendations = generate_recommendations(summarize_activities(records, WINDOW), analyze_violation_patterns(records))
    assert recommendations == [
        "Monitor 1 repeat offenders closely",
        "Consider individual meetings with students showing repeated violations",
    ]


def _source():
    attempts = tuple(
        QuizAttempt(
            attempt_id=f"a-{user}",
            user_id=user,
            quiz_id="q1",
            score=80,
            passed=True,
            completed_at=NOW - timedelta(days=2),
        )
        for user in ("u1", "u2")
    )
    students = [
        StudentActivity(student_id="u1", name="Una", attempts=attempts[:1]),
        StudentActivity(student_id="u2", name="Vic", attempts=attempts[1:]),
    ]
    records = [
        _record("u1", Severity.HIGH, quiz_id="q1", at=NOW - timedelta(days=3)),
        _record("u1", Severity.LOW, quiz_id="q2", at=NOW - timedelta(days=1)),
        _record("u2", Severity.MEDIUM, at=NOW - timedelta(hours=5)),
        _record("u2", Severity.HIGH, quiz_id="q1", at=NOW - timedelta(days=45)),
    ]
    return InMemoryDataSource(
        students=students,
        suspicious_activities=records,
        quizzes=[QuizInfo(quiz_id="q1", title="Midterm"), QuizInfo(quiz_id="q2", title="Final")],
    )


def test_report_reads_window_newest_first():
    report = generate_integrity_report(_source(), now=NOW)

    assert report.summary.total_violations == 3
    timestamps = [r.timestamp for r in report.suspicious_activities]
    assert timestamps == sorted(timestamps, reverse=True)
    assert report.quiz_analysis is None


def test_report_with_quiz_filter_includes_quiz_analysis():
    report = generate_integrity_report(_source(), quiz_id="q1", now=NOW)

    assert report.summary.total_violations == 1
    assert report.quiz_analysis.quiz_title == "Midterm"
    assert report.quiz_analysis.total_attempts == 2
    assert report.quiz_analysis.compromised_attempts == 1
    assert report.quiz_analysis.integrity_score == 50.0


def test_report_with_user_filter():
    report = generate_integrity_report(_source(), user_id="u2", now=NOW)
    assert [r.user_id for r in report.suspicious_activities] == ["u2"]
    assert report.window.user_id == "u2"


def test_report_rejects_unknown_quiz_and_bad_range():
    with pytest.raises(ValueError, match="Unknown quiz"):
        generate_integrity_report(_source(), quiz_id="nope", now=NOW)
    with pytest.raises(ValueError):
        generate_integrity_report(_source(), time_range_days="thirty", now=NOW)


def test_quiz_analysis_ignores_user_filter():
    attempts = [
        QuizAttempt(
            attempt_id=f"a-{user}",
            user_id=user,
            quiz_id="q1",
            score=75,
            passed=True,
            completed_at=NOW - timedelta(days=2),
        )
        for user in ("u1", "u2", "u3", "u4")
    ]
    source = InMemoryDataSource(
        students=[StudentActivity(student_id=a.user_id, name=a.user_id.upper(), attempts=(a,)) for a in attempts],
        suspicious_activities=[_record(user, quiz_id="q1", at=NOW - timedelta(days=1)) for user in ("u1", "u2", "u3")],
        quizzes=[QuizInfo(quiz_id="q1", title="Midterm")],
    )

    unfiltered = generate_integrity_report(source, quiz_id="q1", now=NOW)
    scoped = generate_integrity_report(source, quiz_id="q1", user_id="u4", now=NOW)

    assert scoped.suspicious_activities == []
    assert scoped.summary.total_violations == 0
    assert scoped.quiz_analysis == unfiltered.quiz_analysis
    assert scoped.quiz_analysis.compromised_attempts == 3
    assert scoped.quiz_analysis.total_violations == 3
    assert scoped.quiz_analysis.integrity_score == 25.0


def test_naive_timestamps_are_read_as_utc():
    naive = SuspiciousActivityRecord(
        id="naive-1",
        type=ViolationType.KEYWORD_MATCH,
        severity=Severity.MEDIUM,
        description="flagged",
        timestamp=datetime(2024, 5, 31, 12, 0),
        user_id="u1",
        room_id="room-1",
    )
    aware = _record("u2", Severity.LOW, at=NOW - timedelta(hours=1))
    report = generate_integrity_report(InMemoryDataSource(suspicious_activities=[naive, aware]), now=NOW)

    assert naive.timestamp.tzinfo is not None
    assert [r.id for r in report.suspicious_activities] == [aware.id, "naive-1"]
    assert list(report.pattern_analysis.hourly_distribution) == [12, 17]


@pytest.mark.parametrize(
    "severities,types,expected",
    [
        ([], [], []),
        (
            [Severity.HIGH],
            [ViolationType.PATTERN_DETECTION],
            [
                "Review flagged messages immediately",
                "Consider invalidating quiz attempts if cheating is confirmed",
                "Contact affected students for clarification",
            ],
        ),
        (
            [Severity.MEDIUM] * 3,
            [ViolationType.PATTERN_DETECTION] * 3,
            [
                "Review message patterns for academic dishonesty",
                "Monitor students more closely in future assessments",
            ],
        ),
        (
            [Severity.MEDIUM, Severity.LOW],
            [ViolationType.TIMING_VIOLATION, ViolationType.KEYWORD_MATCH],
            [
                "Keep records of flagged activities",
                "Consider additional proctoring measures",
                "Ensure chat restrictions during quizzes are properly enforced",
                "Review chat content for academic integrity violations",
            ],
        ),
        ([Severity.LOW], [ViolationType.KEYWORD_MATCH], ["Review chat content for academic integrity violations"]),
    ],
)
def test_summary_recommendations_follow_triage_level(severities, types, expected):
    records = [
        _record(f"u{i}", severity, violation_type=violation_type)
        for i, (severity, violation_type) in enumerate(zip(severities, types))
    ]
    assert summarize_activities(records, WINDOW).recommendations == expected
