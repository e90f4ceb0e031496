# tests/test_analytics.py — Manager analytics engine
from datetime import date, datetime, timezone

import pytest

from analytics_engine import (
    ProjectRecord, TaskRecord, WorkLogRecord, HealthStatus,
    compute_manager_analytics, estimate_accuracy, health_score, health_status,
    time_window, week_start, compute_velocity,
)

NOW = datetime(2026, 6, 17, 12, 0, tzinfo=timezone.utc)  # a Wednesday


def _at(month, day, hour=10):
    return datetime(2026, month, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def dataset():
    projects = [ProjectRecord("p1", "Alpha"), ProjectRecord("p2", "Beta")]
    tasks = [
        TaskRecord("t1", "p1", "COMPLETED", "HIGH", 10, completed_at=_at(6, 10), assignee_ids=["u1"]),
        TaskRecord("t2", "p1", "COMPLETED", "MEDIUM", 4, completed_at=_at(6, 16), assignee_ids=["u1", "u2"]),
        TaskRecord("t3", "p1", "IN_PROGRESS", "LOW", 6, end_date=date(2026, 6, 10), assignee_ids=["u2"]),
        TaskRecord("t4", "p1", "NEW", "CRITICAL"),
        # Completed before the window; naive timestamp as SQLite hands it back
        TaskRecord("t5", "p1", "COMPLETED", "MEDIUM", 5, completed_at=datetime(2026, 5, 1, 9, 0), assignee_ids=["u1"]),
    ]
    work_logs = [
        WorkLogRecord("t1", "u1", 8, "DEVELOPMENT", _at(6, 9)),
        WorkLogRecord("t2", "u1", 2, "TESTING", _at(6, 15)),
        WorkLogRecord("t2", "u2", 3, "CODE_REVIEW", _at(6, 16)),
        WorkLogRecord("t3", "u2", 4, "DEVELOPMENT", _at(6, 12)),
        WorkLogRecord("t5", "u1", 5, "DEVELOPMENT", _at(4, 30)),
    ]
    return projects, tasks, work_logs, {"u1": "alex", "u2": "jordan"}


@pytest.fixture
def report(dataset):
    projects, tasks, work_logs, usernames = dataset
    return compute_manager_analytics(projects, tasks, work_logs, usernames, days=14, now=NOW).to_dict()


class TestHelpers:
    def test_week_start_is_monday(self):
        assert week_start(date(2026, 6, 17)) == date(2026, 6, 15)
        assert week_start(date(2026, 6, 15)) == date(2026, 6, 15)
        assert week_start(date(2026, 6, 14)) == date(2026, 6, 8)

    def test_estimate_accuracy(self):
        assert estimate_accuracy(10, 10) == 100
        assert estimate_accuracy(10, 8) == pytest.approx(80)
        assert estimate_accuracy(10, 12) == pytest.approx(80)
        assert estimate_accuracy(10, 25) == 0
        assert estimate_accuracy(0, 5) == 0

    def test_health_score_penalises_overspend(self):
        assert health_score(100, 80, 0) == 100
        assert health_score(100, 150, 0) == pytest.approx(87.5)
        assert health_score(0, 300, 100) == 0

    def test_health_status_thresholds(self):
        assert health_status(70) == HealthStatus.GOOD
        assert health_status(69.9) == HealthStatus.WARNING
        assert health_status(40) == HealthStatus.WARNING
        assert health_status(39.9) == HealthStatus.CRITICAL

    def test_time_window(self):
        window = time_window(7, NOW)
        assert window.end == NOW
        assert window.start == datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)
        assert window.contains(datetime(2026, 6, 12))
        assert not window.contains(None)

    def test_empty_velocity_is_zero_filled(self):
        velocity = compute_velocity([], time_window(30, NOW))
        assert velocity.total_weeks == 5
        assert velocity.tasks_per_week == 0
        assert all(w["tasksCompleted"] == 0 for w in velocity.trend)


class TestManagerAnalytics:
    def test_overview(self, report):
        assert report["overview"] == {
            "totalProjects": 2,
            "totalTasks": 5,
            "completedTasks": 3,
            "inProgressTasks": 1,
            "todoTasks": 1,
            "completionRate": 60.0,
            "totalTeamMembers": 2,
        }

    def test_velocity(self, report):
        velocity = report["velocity"]
        assert velocity["totalWeeks"] == 2
        assert velocity["tasksPerWeek"] == 1.0
        assert velocity["trend"] == [
            {"week": "2026-06-01", "tasksCompleted": 0},
            {"week": "2026-06-08", "tasksCompleted": 1},
            {"week": "2026-06-15", "tasksCompleted": 1},
        ]

    def test_estimation(self, report):
        assert report["estimation"] == {
            "accuracy": 85.0,
            "totalEstimatedHours": "19.0",
            "totalActualHours": "18.0",
            "variance": "-1.0",
            "tasksWithEstimates": 3,
        }

    def test_burn_rate(self, report):
        assert report["burnRate"] == {
            "percentage": 88.0,
            "hoursConsumed": "22.0",
            "hoursEstimated": "25.0",
            "hoursRemaining": "3.0",
        }

    def test_team_performance(self, report):
        alex, jordan = report["teamPerformance"]
        assert alex["username"] == "alex"
        assert alex["tasksCompleted"] == 2
        assert alex["hoursLogged"] == 10.0
        assert alex["workLogCount"] == 2
        assert alex["avgHoursPerTask"] == "5.0"
        assert alex["efficiency"] == "140.0"

        assert jordan["tasksCompleted"] == 1
        assert jordan["hoursLogged"] == 7.0
        assert jordan["efficiency"] == "133.3"

    def test_distribution(self, report):
        assert report["distribution"]["byPriority"] == {"LOW": 1, "MEDIUM": 2, "HIGH": 1, "CRITICAL": 1}
        assert report["distribution"]["byStatus"] == {"TODO": 1, "IN_PROGRESS": 1, "COMPLETED": 3, "CANCELLED": 0}

    def test_work_types_sorted_by_hours(self, report):
        assert report["workTypeDistribution"] == [
            {"workType": "DEVELOPMENT", "hours": 12.0},
            {"workType": "CODE_REVIEW", "hours": 3.0},
            {"workType": "TESTING", "hours": 2.0},
        ]

    def test_project_health(self, report):
        alpha, beta = report["projectHealth"]
        assert alpha["projectName"] == "Alpha"
        assert alpha["completionRate"] == "60.0"
        assert alpha["burnRate"] == "88.0"
        assert alpha["overdueTasks"] == 1
        assert alpha["healthScore"] == "75.0"
        assert alpha["status"] == "GOOD"

        # No tasks: neither progress nor problems
        assert beta["totalTasks"] == 0
        assert beta["healthScore"] == "50.0"
        assert beta["status"] == "WARNING"

    def test_time_range(self, report):
        assert report["timeRange"]["days"] == 14
        assert report["timeRange"]["endDate"] == NOW.isoformat()

    def test_empty_scope(self):
        result = compute_manager_analytics([], [], [], {}, days=30, now=NOW).to_dict()
        assert result["overview"]["totalTasks"] == 0
        assert result["overview"]["completionRate"] == 0
        assert result["estimation"]["accuracy"] == 0
        assert result["burnRate"]["percentage"] == 0
        assert result["teamPerformance"] == []
        assert result["projectHealth"] == []
