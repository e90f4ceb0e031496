# routers/tasks.py — Tasks, developer assignments and work logs
import logging
from datetime import date, datetime
from typing import Optional, List, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from access import (
    ts, enum_value, visible_tasks_stmt, get_visible_task, get_managed_project,
    can_manage_project, is_assigned,
)
from auth import get_current_user, require_permission, record_audit, CurrentUser
from database import get_db_session
from models import (
    Project, Task, TaskAssignment, WorkLog, User,
    TaskStatus, TaskPriority, WorkType, UserRole, AuditEventType, utcnow, as_utc,
)
from routers.files import stored_blob_paths, unlink_blobs

logger = logging.getLogger("devtrack.tasks")

router = APIRouter(prefix="/api/v1", tags=["Tasks"])

# Fields an assigned developer may touch on a task they do not manage
DEVELOPER_EDITABLE = {"status", "progress_percentage"}


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    priority: str = "MEDIUM"
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    assigned_developer: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    progress_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    estimated_hours: Optional[float] = Field(default=None, ge=0)


class AssigneeOut(BaseModel):
    user_id: str
    username: str
    assigned_at: Optional[str] = None


class TaskOut(BaseModel):
    task_id: str
    project_id: str
    title: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: str
    priority: str
    progress_percentage: int
    estimated_hours: Optional[float] = None
    actual_hours: float = 0.0
    is_overdue: bool = False
    assigned_developers: List[AssigneeOut] = []
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None


class AssignmentCreate(BaseModel):
    developer_id: str


class WorkLogCreate(BaseModel):
    hours: float = Field(..., gt=0, le=24)
    work_type: str = "DEVELOPMENT"
    description: Optional[str] = None
    logged_at: Optional[datetime] = None


class WorkLogOut(BaseModel):
    work_log_id: str
    task_id: str
    user_id: str
    username: Optional[str] = None
    hours: float
    work_type: str
    description: Optional[str] = None
    logged_at: str


# ============================================================
# HELPERS
# ============================================================

def _parse_enum(enum_cls, value: str, label: str):
    try:
        return enum_cls(value.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label}: {value}")


def _check_dates(start: Optional[date], end: Optional[date]):
    if start and end and end < start:
        raise HTTPException(status_code=400, detail="end_date cannot be before start_date")


def is_overdue(task: Task, today: Optional[date] = None) -> bool:
    if task.end_date is None:
        return False
    if enum_value(task.status) in (TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value):
        return False
    return task.end_date < (today or utcnow().date())


def apply_status(task: Task, new_status: TaskStatus):
    """Move a task to new_status, stamping/clearing the lifecycle timestamps"""
    old_status = TaskStatus(enum_value(task.status))
    if new_status == old_status:
        return
    if new_status == TaskStatus.IN_PROGRESS and task.started_at is None:
        task.started_at = utcnow()
    if new_status == TaskStatus.COMPLETED:
        task.completed_at = utcnow()
        task.progress_percentage = 100
    elif old_status == TaskStatus.COMPLETED:
        task.completed_at = None
    task.status = new_status


async def _tasks_to_out(tasks: List[Task], db: AsyncSession) -> List[TaskOut]:
    if not tasks:
        return []
    ids = [t.id for t in tasks]

    assign_stmt = (
        select(TaskAssignment.task_id, User.id, User.username, TaskAssignment.assigned_at)
        .join(User, User.id == TaskAssignment.developer_id)
        .where(TaskAssignment.task_id.in_(ids))
        .order_by(TaskAssignment.assigned_at.asc())
    )
    assignees: Dict[str, List[AssigneeOut]] = {}
    for task_id, user_id, username, assigned_at in (await db.execute(assign_stmt)).all():
        assignees.setdefault(task_id, []).append(
            AssigneeOut(user_id=user_id, username=username, assigned_at=ts(assigned_at))
        )

    hours_stmt = (
        select(WorkLog.task_id, func.sum(WorkLog.hours))
        .where(WorkLog.task_id.in_(ids))
        .group_by(WorkLog.task_id)
    )
    hours = {task_id: float(total or 0) for task_id, total in (await db.execute(hours_stmt)).all()}

    today = utcnow().date()
    return [
        TaskOut(
            task_id=t.id,
            project_id=t.project_id,
            title=t.title,
            description=t.description,
            start_date=ts(t.start_date),
            end_date=ts(t.end_date),
            status=enum_value(t.status),
            priority=enum_value(t.priority),
            progress_percentage=t.progress_percentage or 0,
            estimated_hours=t.estimated_hours,
            actual_hours=round(hours.get(t.id, 0.0), 2),
            is_overdue=is_overdue(t, today),
            assigned_developers=assignees.get(t.id, []),
            started_at=ts(t.started_at),
            completed_at=ts(t.completed_at),
            created_at=ts(t.created_at) or "",
            updated_at=ts(t.updated_at),
        )
        for t in tasks
    ]


async def _task_to_out(task: Task, db: AsyncSession) -> TaskOut:
    return (await _tasks_to_out([task], db))[0]


async def _get_developer(developer_id: str, db: AsyncSession) -> User:
    stmt = select(User).where(User.id == developer_id, User.deleted_at.is_(None))
    developer = (await db.execute(stmt)).scalar_one_or_none()
    if not developer:
        raise HTTPException(status_code=404, detail="Developer not found")
    if not developer.is_active or enum_value(developer.role) != UserRole.DEVELOPER.value:
        raise HTTPException(status_code=400, detail="Tasks can only be assigned to active developers")
    return developer


async def _managed_task(task_id: str, user: CurrentUser, db: AsyncSession) -> Task:
    task = await get_visible_task(task_id, user, db)
    await get_managed_project(task.project_id, user, db)
    return task


def _work_log_to_out(w: WorkLog, username: Optional[str]) -> WorkLogOut:
    return WorkLogOut(
        work_log_id=w.id,
        task_id=w.task_id,
        user_id=w.user_id,
        username=username,
        hours=w.hours,
        work_type=enum_value(w.work_type),
        description=w.description,
        logged_at=ts(w.logged_at) or "",
    )


# ============================================================
# TASKS
# ============================================================

@router.get("/tasks")
async def list_tasks(
    user: CurrentUser = Depends(require_permission("tasks:read")),
    db: AsyncSession = Depends(get_db_session),
    project_id: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(default=200, le=1000),
    offset: int = Query(default=0, ge=0),
):
    """List tasks visible to the caller (developers: only their assignments)"""
    stmt = visible_tasks_stmt(user)
    if project_id:
        stmt = stmt.where(Task.project_id == project_id)
    if status:
        stmt = stmt.where(Task.status == _parse_enum(TaskStatus, status, "status"))
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(or_(
            func.lower(Task.title).like(pattern),
            func.lower(Task.description).like(pattern),
        ))
    stmt = stmt.order_by(Task.created_at.desc()).offset(offset).limit(limit)

    tasks = (await db.execute(stmt)).scalars().all()
    return {"tasks": await _tasks_to_out(list(tasks), db), "count": len(tasks)}


@router.get("/tasks/developer/stats")
async def developer_stats(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Counters for the caller's own assigned tasks"""
    status_stmt = (
        select(Task.status, func.count(Task.id))
        .join(TaskAssignment, TaskAssignment.task_id == Task.id)
        .where(TaskAssignment.developer_id == user.id)
        .group_by(Task.status)
    )
    by_status = {enum_value(s): c for s, c in (await db.execute(status_stmt)).all()}

    hours_stmt = select(func.sum(WorkLog.hours)).where(WorkLog.user_id == user.id)
    hours_logged = float((await db.execute(hours_stmt)).scalar() or 0)

    overdue_stmt = (
        select(func.count(Task.id))
        .join(TaskAssignment, TaskAssignment.task_id == Task.id)
        .where(
            TaskAssignment.developer_id == user.id,
            Task.end_date < utcnow().date(),
            Task.status.notin_([TaskStatus.COMPLETED, TaskStatus.CANCELLED]),
        )
    )
    overdue = (await db.execute(overdue_stmt)).scalar() or 0

    return {
        "total_tasks": sum(by_status.values()),
        "assigned_tasks": by_status.get(TaskStatus.ASSIGNED.value, 0),
        "in_progress_tasks": by_status.get(TaskStatus.IN_PROGRESS.value, 0),
        "completed_tasks": by_status.get(TaskStatus.COMPLETED.value, 0),
        "overdue_tasks": overdue,
        "hours_logged": round(hours_logged, 2),
    }


@router.post("/projects/{project_id}/tasks", response_model=TaskOut)
async def create_task(
    project_id: str,
    data: TaskCreate,
    request: Request,
    user: CurrentUser = Depends(require_permission("tasks:write")),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a task in a project, optionally assigning a developer"""
    project = await get_managed_project(project_id, user, db)
    _check_dates(data.start_date, data.end_date)
    priority = _parse_enum(TaskPriority, data.priority, "priority")

    developer = None
    if data.assigned_developer:
        developer = await _get_developer(data.assigned_developer, db)

    task = Task(
        project_id=project.id,
        title=data.title.strip(),
        description=data.description,
        start_date=data.start_date,
        end_date=data.end_date,
        priority=priority,
        estimated_hours=data.estimated_hours,
        status=TaskStatus.ASSIGNED if developer else TaskStatus.NEW,
        progress_percentage=0,
    )
    db.add(task)
    await db.flush()

    if developer:
        db.add(TaskAssignment(task_id=task.id, developer_id=developer.id))
        record_audit(
            db, AuditEventType.TASK_ASSIGNED, user_id=user.id,
            resource_type="task", resource_id=task.id,
            details={"developer_id": developer.id}, request=request,
        )

    await db.commit()
    await db.refresh(task)
    return await _task_to_out(task, db)


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await get_visible_task(task_id, user, db)
    return await _task_to_out(task, db)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update task fields; assigned developers may only move status and progress"""
    task = await get_visible_task(task_id, user, db)
    project = (await db.execute(select(Project).where(Project.id == task.project_id))).scalar_one()
    changes = data.model_dump(exclude_unset=True)

    if not can_manage_project(user, project):
        if not await is_assigned(task.id, user.id, db):
            raise HTTPException(status_code=403, detail="Not assigned to this task")
        forbidden = set(changes) - DEVELOPER_EDITABLE
        if forbidden:
            raise HTTPException(
                status_code=403,
                detail=f"Developers can only update status and progress, not: {', '.join(sorted(forbidden))}",
            )

    _check_dates(
        changes["start_date"] if "start_date" in changes else task.start_date,
        changes["end_date"] if "end_date" in changes else task.end_date,
    )

    if data.title is not None:
        task.title = data.title.strip()
    if "description" in changes:
        task.description = data.description
    if "start_date" in changes:
        task.start_date = data.start_date
    if "end_date" in changes:
        task.end_date = data.end_date
    if data.priority is not None:
        task.priority = _parse_enum(TaskPriority, data.priority, "priority")
    if "estimated_hours" in changes:
        task.estimated_hours = data.estimated_hours
    if data.progress_percentage is not None:
        task.progress_percentage = data.progress_percentage
    if data.status is not None:
        apply_status(task, _parse_enum(TaskStatus, data.status, "status"))

    await db.commit()
    await db.refresh(task)
    return await _task_to_out(task, db)


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    request: Request,
    user: CurrentUser = Depends(require_permission("tasks:write")),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a task with its assignments, comments, work logs and files"""
    task = await _managed_task(task_id, user, db)

    blobs = await stored_blob_paths(db, task_id=task.id)

    await db.delete(task)
    record_audit(
        db, AuditEventType.TASK_DELETED, user_id=user.id,
        resource_type="task", resource_id=task_id,
        details={"title": task.title, "project_id": task.project_id}, request=request,
    )
    await db.commit()
    unlink_blobs(blobs)
    return {"status": "deleted", "task_id": task_id}


# ============================================================
# ASSIGNMENTS
# ============================================================

@router.post("/tasks/{task_id}/assignments", response_model=TaskOut)
async def assign_developer(
    task_id: str,
    data: AssignmentCreate,
    request: Request,
    user: CurrentUser = Depends(require_permission("tasks:assign")),
    db: AsyncSession = Depends(get_db_session),
):
    """Assign a developer to a task; a NEW task becomes ASSIGNED"""
    task = await _managed_task(task_id, user, db)
    developer = await _get_developer(data.developer_id, db)

    if await is_assigned(task.id, developer.id, db):
        raise HTTPException(status_code=409, detail="Developer is already assigned to this task")

    db.add(TaskAssignment(task_id=task.id, developer_id=developer.id))
    if enum_value(task.status) == TaskStatus.NEW.value:
        task.status = TaskStatus.ASSIGNED

    record_audit(
        db, AuditEventType.TASK_ASSIGNED, user_id=user.id,
        resource_type="task", resource_id=task.id,
        details={"developer_id": developer.id}, request=request,
    )
    await db.commit()
    await db.refresh(task)
    logger.info(f"Task {task.id} assigned to {developer.username}")
    return await _task_to_out(task, db)


@router.delete("/tasks/{task_id}/assignments/{developer_id}", response_model=TaskOut)
async def unassign_developer(
    task_id: str,
    developer_id: str,
    request: Request,
    user: CurrentUser = Depends(require_permission("tasks:assign")),
    db: AsyncSession = Depends(get_db_session),
):
    """Remove a developer; the last removal sends an ASSIGNED task back to NEW"""
    task = await _managed_task(task_id, user, db)

    stmt = select(TaskAssignment).where(
        TaskAssignment.task_id == task.id,
        TaskAssignment.developer_id == developer_id,
    )
    assignment = (await db.execute(stmt)).scalar_one_or_none()
    if not assignment:
        raise HTTPException(status_code=404, detail="Assignment not found")

    await db.delete(assignment)
    await db.flush()

    remaining = (await db.execute(
        select(func.count(TaskAssignment.id)).where(TaskAssignment.task_id == task.id)
    )).scalar() or 0
    if remaining == 0 and enum_value(task.status) == TaskStatus.ASSIGNED.value:
        task.status = TaskStatus.NEW

    record_audit(
        db, AuditEventType.TASK_UNASSIGNED, user_id=user.id,
        resource_type="task", resource_id=task.id,
        details={"developer_id": developer_id}, request=request,
    )
    await db.commit()
    await db.refresh(task)
    return await _task_to_out(task, db)


# ============================================================
# WORK LOGS
# ============================================================

@router.get("/tasks/{task_id}/work-logs")
async def list_work_logs(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await get_visible_task(task_id, user, db)
    stmt = (
        select(WorkLog, User.username)
        .join(User, User.id == WorkLog.user_id)
        .where(WorkLog.task_id == task.id)
        .order_by(WorkLog.logged_at.desc())
    )
    rows = (await db.execute(stmt)).all()
    logs = [_work_log_to_out(w, username) for w, username in rows]
    return {
        "work_logs": logs,
        "total_hours": round(sum(w.hours for w in logs), 2),
        "estimated_hours": task.estimated_hours,
    }


@router.post("/tasks/{task_id}/work-logs", response_model=WorkLogOut)
async def log_work(
    task_id: str,
    data: WorkLogCreate,
    user: CurrentUser = Depends(require_permission("tasks:log_work")),
    db: AsyncSession = Depends(get_db_session),
):
    """Log hours against a task (assigned developers or the project manager)"""
    task = await get_visible_task(task_id, user, db)
    project = (await db.execute(select(Project).where(Project.id == task.project_id))).scalar_one()
    if not can_manage_project(user, project) and not await is_assigned(task.id, user.id, db):
        raise HTTPException(status_code=403, detail="Not assigned to this task")

    work_type = _parse_enum(WorkType, data.work_type, "work_type")
    logged_at = as_utc(data.logged_at) if data.logged_at else utcnow()
    if logged_at > utcnow():
        raise HTTPException(status_code=400, detail="Cannot log work in the future")

    work_log = WorkLog(
        task_id=task.id,
        user_id=user.id,
        hours=data.hours,
        work_type=work_type,
        description=data.description,
        logged_at=logged_at,
    )
    db.add(work_log)
    await db.commit()
    await db.refresh(work_log)
    return _work_log_to_out(work_log, user.username)
