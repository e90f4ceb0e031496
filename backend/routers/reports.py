# routers/reports.py — Manager analytics dashboard data and PDF/Excel exports
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access import enum_value, visible_project_ids, get_visible_project
from analytics_engine import (
    ProjectRecord, TaskRecord, WorkLogRecord, ManagerAnalytics, compute_manager_analytics,
)
from auth import require_permission, record_audit, CurrentUser
from database import get_db_session
from models import Project, Task, TaskAssignment, WorkLog, User, AuditEventType, utcnow
from report_export import EXPORTERS, export_filename
from telemetry import span

logger = logging.getLogger("devtrack.reports")

router = APIRouter(prefix="/api/v1/reports", tags=["Reports"])


async def _load_analytics(
    user: CurrentUser,
    db: AsyncSession,
    days: int,
    project_id: Optional[str],
) -> ManagerAnalytics:
    """Snapshot the caller's scope from the database and aggregate it"""
    if project_id:
        projects = [await get_visible_project(project_id, user, db)]
    else:
        stmt = (
            select(Project)
            .where(Project.id.in_(visible_project_ids(user)))
            .order_by(Project.project_name.asc())
        )
        projects = list((await db.execute(stmt)).scalars().all())

    project_ids = [p.id for p in projects]
    tasks = []
    if project_ids:
        tasks = list((await db.execute(select(Task).where(Task.project_id.in_(project_ids)))).scalars().all())
    task_ids = [t.id for t in tasks]

    assignees = {}
    work_logs = []
    if task_ids:
        assign_stmt = select(TaskAssignment.task_id, TaskAssignment.developer_id).where(
            TaskAssignment.task_id.in_(task_ids)
        )
        for task_id, developer_id in (await db.execute(assign_stmt)).all():
            assignees.setdefault(task_id, []).append(developer_id)

        log_stmt = select(WorkLog).where(WorkLog.task_id.in_(task_ids))
        work_logs = [
            WorkLogRecord(
                task_id=w.task_id,
                user_id=w.user_id,
                hours=w.hours,
                work_type=enum_value(w.work_type),
                logged_at=w.logged_at,
            )
            for w in (await db.execute(log_stmt)).scalars().all()
        ]

    member_ids = {uid for ids in assignees.values() for uid in ids}
    usernames = {}
    if member_ids:
        name_stmt = select(User.id, User.username).where(User.id.in_(member_ids))
        usernames = {uid: name for uid, name in (await db.execute(name_stmt)).all()}

    task_records = [
        TaskRecord(
            id=t.id,
            project_id=t.project_id,
            status=enum_value(t.status),
            priority=enum_value(t.priority),
            estimated_hours=t.estimated_hours,
            end_date=t.end_date,
            completed_at=t.completed_at,
            assignee_ids=assignees.get(t.id, []),
        )
        for t in tasks
    ]
    with span("analytics.compute", tracer_name="devtrack.reports", days=days, projects=len(projects)):
        return compute_manager_analytics(
            projects=[ProjectRecord(id=p.id, name=p.project_name) for p in projects],
            tasks=task_records,
            work_logs=work_logs,
            usernames=usernames,
            days=days,
        )


@router.get("/manager-analytics")
async def manager_analytics(
    time_range: int = Query(default=30, ge=1, le=365, alias="timeRange"),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    user: CurrentUser = Depends(require_permission("reports:read")),
    db: AsyncSession = Depends(get_db_session),
):
    """Dashboard metrics over the caller's projects for the last N days"""
    analytics = await _load_analytics(user, db, time_range, project_id)
    return {"analytics": analytics.to_dict()}


@router.get("/manager-analytics/export")
async def export_manager_analytics(
    request: Request,
    format: str = Query(default="pdf"),
    time_range: int = Query(default=30, ge=1, le=365, alias="timeRange"),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    user: CurrentUser = Depends(require_permission("reports:export")),
    db: AsyncSession = Depends(get_db_session),
):
    """Download the analytics as a PDF or Excel attachment"""
    fmt = format.lower()
    if fmt not in EXPORTERS:
        raise HTTPException(status_code=400, detail=f"Unsupported format: {format}. Use one of: {', '.join(EXPORTERS)}")
    media_type, builder = EXPORTERS[fmt]

    analytics = await _load_analytics(user, db, time_range, project_id)
    generated_at = utcnow()
    with span("analytics.export", tracer_name="devtrack.reports", format=fmt):
        content = builder(analytics.to_dict(), generated_at)
    filename = export_filename(fmt, generated_at)

    record_audit(
        db, AuditEventType.REPORT_EXPORTED, user_id=user.id,
        resource_type="report", resource_id=project_id,
        details={"format": fmt, "time_range": time_range, "size": len(content)}, request=request,
    )
    await db.commit()
    logger.info(f"Exported analytics report {filename} ({len(content)} bytes) for {user.username}")

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
