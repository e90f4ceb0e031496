# access.py — Who can see and manage which projects and tasks
#
# ADMIN sees everything. A MANAGER sees the projects they own.
# A DEVELOPER sees the projects that contain a task assigned to them,
# and within those only the assigned tasks.
from datetime import datetime, date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser
from models import Project, Task, TaskAssignment, UserRole


def ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, (datetime, date)) else str(dt)


def enum_value(v) -> Optional[str]:
    if v is None:
        return None
    return v.value if hasattr(v, "value") else v


def visible_project_ids(user: CurrentUser):
    """Subquery of project ids the user may read"""
    role = UserRole(user.role)
    if role == UserRole.ADMIN:
        return select(Project.id)
    if role == UserRole.MANAGER:
        return select(Project.id).where(Project.owner_manager_id == user.id)
    return (
        select(Task.project_id)
        .join(TaskAssignment, TaskAssignment.task_id == Task.id)
        .where(TaskAssignment.developer_id == user.id)
    )


def visible_tasks_stmt(user: CurrentUser):
    stmt = select(Task).where(Task.project_id.in_(visible_project_ids(user)))
    if UserRole(user.role) == UserRole.DEVELOPER:
        assigned = select(TaskAssignment.task_id).where(TaskAssignment.developer_id == user.id)
        stmt = stmt.where(Task.id.in_(assigned))
    return stmt


def can_manage_project(user: CurrentUser, project: Project) -> bool:
    role = UserRole(user.role)
    if role == UserRole.ADMIN:
        return True
    return role == UserRole.MANAGER and project.owner_manager_id == user.id


async def get_visible_project(project_id: str, user: CurrentUser, db: AsyncSession) -> Project:
    stmt = select(Project).where(
        Project.id == project_id,
        Project.id.in_(visible_project_ids(user)),
    )
    project = (await db.execute(stmt)).scalar_one_or_none()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def get_managed_project(project_id: str, user: CurrentUser, db: AsyncSession) -> Project:
    project = await get_visible_project(project_id, user, db)
    if not can_manage_project(user, project):
        raise HTTPException(status_code=403, detail="Only the project owner or an admin can do this")
    return project


async def get_visible_task(task_id: str, user: CurrentUser, db: AsyncSession) -> Task:
    stmt = visible_tasks_stmt(user).where(Task.id == task_id)
    task = (await db.execute(stmt)).scalar_one_or_none()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def is_assigned(task_id: str, user_id: str, db: AsyncSession) -> bool:
    stmt = select(TaskAssignment.id).where(
        TaskAssignment.task_id == task_id,
        TaskAssignment.developer_id == user_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none() is not None
