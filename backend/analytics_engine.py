"""
DevTrack — Manager Analytics Engine

Derives the manager dashboard metrics (velocity, estimation accuracy,
burn rate, team performance, distributions, project health) from plain
snapshots of projects, tasks and work logs. Nothing here touches the
database, so the router loads rows and the export layer re-uses the
resulting dict.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterable
from datetime import datetime, date, timezone, timedelta
from enum import Enum
from collections import defaultdict
import math
import statistics


PRIORITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
TODO_STATUSES = ("NEW", "ASSIGNED")
CLOSED_STATUSES = ("COMPLETED", "CANCELLED")

GOOD_THRESHOLD = 70.0
WARNING_THRESHOLD = 40.0


class HealthStatus(str, Enum):
    GOOD = "GOOD"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


# ============================================================
# INPUT SNAPSHOTS
# ============================================================

@dataclass
class ProjectRecord:
    id: str
    name: str


@dataclass
class TaskRecord:
    id: str
    project_id: str
    status: str
    priority: str = "MEDIUM"
    estimated_hours: Optional[float] = None
    end_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    assignee_ids: List[str] = field(default_factory=list)


@dataclass
class WorkLogRecord:
    task_id: str
    user_id: str
    hours: float
    work_type: str
    logged_at: datetime


# ============================================================
# RESULT SECTIONS
# ============================================================

@dataclass
class TimeRange:
    start: datetime
    end: datetime
    days: int

    def contains(self, moment: Optional[datetime]) -> bool:
        return moment is not None and self.start <= _aware(moment) <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {"startDate": self.start.isoformat(), "endDate": self.end.isoformat(), "days": self.days}


@dataclass
class Overview:
    total_projects: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    todo_tasks: int = 0
    completion_rate: float = 0.0
    total_team_members: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalProjects": self.total_projects,
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
            "inProgressTasks": self.in_progress_tasks,
            "todoTasks": self.todo_tasks,
            "completionRate": self.completion_rate,
            "totalTeamMembers": self.total_team_members,
        }


@dataclass
class Velocity:
    tasks_per_week: float = 0.0
    total_weeks: int = 0
    trend: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"tasksPerWeek": self.tasks_per_week, "totalWeeks": self.total_weeks, "trend": self.trend}


@dataclass
class Estimation:
    accuracy: float = 0.0
    total_estimated_hours: float = 0.0
    total_actual_hours: float = 0.0
    tasks_with_estimates: int = 0

    @property
    def variance(self) -> float:
        return self.total_actual_hours - self.total_estimated_hours

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "totalEstimatedHours": _fmt(self.total_estimated_hours),
            "totalActualHours": _fmt(self.total_actual_hours),
            "variance": _fmt(self.variance),
            "tasksWithEstimates": self.tasks_with_estimates,
        }


@dataclass
class BurnRate:
    percentage: float = 0.0
    hours_consumed: float = 0.0
    hours_estimated: float = 0.0

    @property
    def hours_remaining(self) -> float:
        return max(0.0, self.hours_estimated - self.hours_consumed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percentage": self.percentage,
            "hoursConsumed": _fmt(self.hours_consumed),
            "hoursEstimated": _fmt(self.hours_estimated),
            "hoursRemaining": _fmt(self.hours_remaining),
        }


@dataclass
class MemberPerformance:
    user_id: str
    username: str
    tasks_completed: int = 0
    hours_logged: float = 0.0
    work_log_count: int = 0
    efficiency: float = 0.0

    @property
    def avg_hours_per_task(self) -> float:
        return self.hours_logged / self.tasks_completed if self.tasks_completed else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "tasksCompleted": self.tasks_completed,
            "hoursLogged": round(self.hours_logged, 1),
            "avgHoursPerTask": _fmt(self.avg_hours_per_task),
            "workLogCount": self.work_log_count,
            "efficiency": _fmt(self.efficiency),
        }


@dataclass
class ProjectHealth:
    project_id: str
    project_name: str
    total_tasks: int = 0
    completed_tasks: int = 0
    completion_rate: float = 0.0
    burn_rate: float = 0.0
    overdue_tasks: int = 0
    health_score: float = 0.0
    status: HealthStatus = HealthStatus.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "projectName": self.project_name,
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
            "completionRate": _fmt(self.completion_rate),
            "burnRate": _fmt(self.burn_rate),
            "overdueTasks": self.overdue_tasks,
            "healthScore": _fmt(self.health_score),
            "status": self.status.value,
        }


@dataclass
class ManagerAnalytics:
    overview: Overview
    velocity: Velocity
    estimation: Estimation
    burn_rate: BurnRate
    team_performance: List[MemberPerformance]
    by_priority: Dict[str, int]
    by_status: Dict[str, int]
    work_type_hours: Dict[str, float]
    project_health: List[ProjectHealth]
    time_range: TimeRange

    def to_dict(self) -> Dict[str, Any]:
        work_types = sorted(self.work_type_hours.items(), key=lambda kv: (-kv[1], kv[0]))
        return {
            "overview": self.overview.to_dict(),
            "velocity": self.velocity.to_dict(),
            "estimation": self.estimation.to_dict(),
            "burnRate": self.burn_rate.to_dict(),
            "teamPerformance": [m.to_dict() for m in self.team_performance],
            "distribution": {
                "byPriority": dict(self.by_priority),
                "byStatus": dict(self.by_status),
                "byWorkType": {wt: round(h, 1) for wt, h in work_types},
            },
            "workTypeDistribution": [{"workType": wt, "hours": round(h, 1)} for wt, h in work_types],
            "projectHealth": [p.to_dict() for p in self.project_health],
            "timeRange": self.time_range.to_dict(),
        }


# ============================================================
# HELPERS
# ============================================================

def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _fmt(value: float) -> str:
    return f"{value:.1f}"


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


def week_start(day: date) -> date:
    """Monday of the week containing day"""
    return day - timedelta(days=day.weekday())


def time_window(days: int, now: Optional[datetime] = None) -> TimeRange:
    end = _aware(now) if now else datetime.now(timezone.utc)
    return TimeRange(start=end - timedelta(days=days), end=end, days=days)


def estimate_accuracy(estimated: float, actual: float) -> float:
    """100 for a perfect estimate, dropping by the relative error, floored at 0"""
    if not estimated:
        return 0.0
    return max(0.0, 100 - abs(actual - estimated) / estimated * 100)


def health_score(completion_rate: float, burn_rate: float, overdue_share: float) -> float:
    budget = 100.0 if burn_rate <= 100 else max(0.0, 200 - burn_rate)
    schedule = 100.0 - overdue_share
    return 0.5 * completion_rate + 0.25 * budget + 0.25 * schedule


def health_status(score: float) -> HealthStatus:
    if score >= GOOD_THRESHOLD:
        return HealthStatus.GOOD
    if score >= WARNING_THRESHOLD:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def is_overdue(task: TaskRecord, today: date) -> bool:
    return task.end_date is not None and task.status not in CLOSED_STATUSES and task.end_date < today


def _hours_by_task(work_logs: Iterable[WorkLogRecord]) -> Dict[str, float]:
    hours: Dict[str, float] = defaultdict(float)
    for log in work_logs:
        hours[log.task_id] += log.hours
    return hours


# ============================================================
# SECTIONS
# ============================================================

def compute_overview(projects: List[ProjectRecord], tasks: List[TaskRecord]) -> Overview:
    completed = sum(1 for t in tasks if t.status == "COMPLETED")
    members = {uid for t in tasks for uid in t.assignee_ids}
    return Overview(
        total_projects=len(projects),
        total_tasks=len(tasks),
        completed_tasks=completed,
        in_progress_tasks=sum(1 for t in tasks if t.status == "IN_PROGRESS"),
        todo_tasks=sum(1 for t in tasks if t.status in TODO_STATUSES),
        completion_rate=round(_pct(completed, len(tasks)), 1),
        total_team_members=len(members),
    )


def compute_velocity(tasks: List[TaskRecord], window: TimeRange) -> Velocity:
    per_week: Dict[date, int] = defaultdict(int)
    completed_in_window = 0
    for t in tasks:
        if t.status == "COMPLETED" and window.contains(t.completed_at):
            per_week[week_start(_aware(t.completed_at).date())] += 1
            completed_in_window += 1

    trend = []
    week = week_start(window.start.date())
    last = week_start(window.end.date())
    while week <= last:
        trend.append({"week": week.isoformat(), "tasksCompleted": per_week.get(week, 0)})
        week += timedelta(days=7)

    total_weeks = max(1, math.ceil(window.days / 7))
    return Velocity(
        tasks_per_week=round(completed_in_window / total_weeks, 1),
        total_weeks=total_weeks,
        trend=trend,
    )


def compute_estimation(tasks: List[TaskRecord], hours_by_task: Dict[str, float]) -> Estimation:
    scored = [
        (t.estimated_hours, hours_by_task[t.id])
        for t in tasks
        if t.status == "COMPLETED" and t.estimated_hours and hours_by_task.get(t.id, 0) > 0
    ]
    if not scored:
        return Estimation()
    return Estimation(
        accuracy=round(statistics.mean(estimate_accuracy(e, a) for e, a in scored), 1),
        total_estimated_hours=sum(e for e, _ in scored),
        total_actual_hours=sum(a for _, a in scored),
        tasks_with_estimates=len(scored),
    )


def compute_burn_rate(tasks: List[TaskRecord], hours_by_task: Dict[str, float]) -> BurnRate:
    estimated = sum(t.estimated_hours or 0 for t in tasks)
    consumed = sum(hours_by_task.get(t.id, 0) for t in tasks)
    return BurnRate(
        percentage=round(_pct(consumed, estimated), 1),
        hours_consumed=consumed,
        hours_estimated=estimated,
    )


def compute_team_performance(
    tasks: List[TaskRecord],
    work_logs: List[WorkLogRecord],
    usernames: Dict[str, str],
    window: TimeRange,
) -> List[MemberPerformance]:
    members: Dict[str, MemberPerformance] = {}
    for t in tasks:
        for uid in t.assignee_ids:
            if uid not in members:
                members[uid] = MemberPerformance(user_id=uid, username=usernames.get(uid, "Unknown"))

    # (estimated, actual) on each member's tasks completed in the window
    effort: Dict[str, List[float]] = defaultdict(lambda: [0.0, 0.0])
    completed_by: Dict[str, set] = defaultdict(set)
    for t in tasks:
        if t.status == "COMPLETED" and window.contains(t.completed_at):
            for uid in t.assignee_ids:
                members[uid].tasks_completed += 1
                completed_by[uid].add(t.id)
                effort[uid][0] += t.estimated_hours or 0

    for log in work_logs:
        member = members.get(log.user_id)
        if member is None:
            continue
        if window.contains(log.logged_at):
            member.hours_logged += log.hours
            member.work_log_count += 1
        if log.task_id in completed_by[log.user_id]:
            effort[log.user_id][1] += log.hours

    for uid, member in members.items():
        estimated, actual = effort[uid]
        member.efficiency = _pct(estimated, actual) if estimated else 0.0

    return sorted(members.values(), key=lambda m: (-m.tasks_completed, -m.hours_logged, m.username))


def compute_distribution(tasks: List[TaskRecord]) -> Dict[str, Dict[str, int]]:
    by_priority = {p: 0 for p in PRIORITIES}
    by_status = {"TODO": 0, "IN_PROGRESS": 0, "COMPLETED": 0, "CANCELLED": 0}
    for t in tasks:
        by_priority[t.priority] = by_priority.get(t.priority, 0) + 1
        bucket = "TODO" if t.status in TODO_STATUSES else t.status
        by_status[bucket] = by_status.get(bucket, 0) + 1
    return {"byPriority": by_priority, "byStatus": by_status}


def compute_work_type_hours(work_logs: List[WorkLogRecord], window: TimeRange) -> Dict[str, float]:
    hours: Dict[str, float] = defaultdict(float)
    for log in work_logs:
        if window.contains(log.logged_at):
            hours[log.work_type] += log.hours
    return dict(hours)


def compute_project_health(
    projects: List[ProjectRecord],
    tasks: List[TaskRecord],
    hours_by_task: Dict[str, float],
    today: date,
) -> List[ProjectHealth]:
    by_project: Dict[str, List[TaskRecord]] = defaultdict(list)
    for t in tasks:
        by_project[t.project_id].append(t)

    results = []
    for p in projects:
        project_tasks = by_project.get(p.id, [])
        total = len(project_tasks)
        completed = sum(1 for t in project_tasks if t.status == "COMPLETED")
        overdue = sum(1 for t in project_tasks if is_overdue(t, today))
        burn = compute_burn_rate(project_tasks, hours_by_task)
        completion = _pct(completed, total)
        score = health_score(completion, burn.percentage, _pct(overdue, total))
        results.append(ProjectHealth(
            project_id=p.id,
            project_name=p.name,
            total_tasks=total,
            completed_tasks=completed,
            completion_rate=completion,
            burn_rate=burn.percentage,
            overdue_tasks=overdue,
            health_score=score,
            status=health_status(score),
        ))
    return results


# ============================================================
# ENTRY POINT
# ============================================================

def compute_manager_analytics(
    projects: List[ProjectRecord],
    tasks: List[TaskRecord],
    work_logs: List[WorkLogRecord],
    usernames: Dict[str, str],
    days: int = 30,
    now: Optional[datetime] = None,
) -> ManagerAnalytics:
    """Aggregate every dashboard section for the given scope and window.

    Overview, distribution, burn rate and project health look at every
    scoped task; velocity, team performance and work-type hours only at
    activity inside the window.
    """
    window = time_window(days, now)
    hours_by_task = _hours_by_task(work_logs)
    distribution = compute_distribution(tasks)

    return ManagerAnalytics(
        overview=compute_overview(projects, tasks),
        velocity=compute_velocity(tasks, window),
        estimation=compute_estimation(tasks, hours_by_task),
        burn_rate=compute_burn_rate(tasks, hours_by_task),
        team_performance=compute_team_performance(tasks, work_logs, usernames, window),
        by_priority=distribution["byPriority"],
        by_status=distribution["byStatus"],
        work_type_hours=compute_work_type_hours(work_logs, window),
        project_health=compute_project_health(projects, tasks, hours_by_task, window.end.date()),
        time_range=window,
    )
