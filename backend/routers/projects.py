# routers/projects.py — Project CRUD scoped by role
from typing import Optional, List, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from access import (
    ts, enum_value, visible_project_ids, get_visible_project, get_managed_project,
)
from auth import get_current_user, require_permission, record_audit, CurrentUser
from database import get_db_session
from models import Project, Task, User, UserRole, TaskStatus, AuditEventType
from routers.files import stored_blob_paths, unlink_blobs

router = APIRouter(prefix="/api/v1/projects", tags=["Projects"])


# --- Schemas ---

class ProjectCreate(BaseModel):
    project_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    owner_manager_id: Optional[str] = None  # Admins only; defaults to the caller


class ProjectUpdate(BaseModel):
    project_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    owner_manager_id: Optional[str] = None


class ProjectOut(BaseModel):
    project_id: str
    project_name: str
    description: Optional[str] = None
    owner_manager_id: str
    owner_name: Optional[str] = None
    task_count: int = 0
    completed_task_count: int = 0
    created_at: str
    updated_at: str


# --- Helpers ---

async def _status_counts(project_ids: List[str], db: AsyncSession) -> Dict[str, Dict[str, int]]:
    if not project_ids:
        return {}
    stmt = (
        select(Task.project_id, Task.status, func.count(Task.id))
        .where(Task.project_id.in_(project_ids))
        .group_by(Task.project_id, Task.status)
    )
    counts: Dict[str, Dict[str, int]] = {}
    for project_id, status, count in (await db.execute(stmt)).all():
        counts.setdefault(project_id, {})[enum_value(status)] = count
    return counts


async def _owner_names(owner_ids, db: AsyncSession) -> Dict[str, str]:
    if not owner_ids:
        return {}
    stmt = select(User.id, User.username).where(User.id.in_(set(owner_ids)))
    return {uid: name for uid, name in (await db.execute(stmt)).all()}


def _project_to_out(p: Project, counts: Dict[str, int], owner_name: Optional[str]) -> ProjectOut:
    return ProjectOut(
        project_id=p.id,
        project_name=p.project_name,
        description=p.description,
        owner_manager_id=p.owner_manager_id,
        owner_name=owner_name,
        task_count=sum(counts.values()),
        completed_task_count=counts.get(TaskStatus.COMPLETED.value, 0),
        created_at=ts(p.created_at) or "",
        updated_at=ts(p.updated_at) or "",
    )


async def _single_out(p: Project, db: AsyncSession) -> ProjectOut:
    counts = await _status_counts([p.id], db)
    names = await _owner_names([p.owner_manager_id], db)
    return _project_to_out(p, counts.get(p.id, {}), names.get(p.owner_manager_id))


async def _resolve_owner(owner_id: str, db: AsyncSession) -> User:
    stmt = select(User).where(User.id == owner_id, User.deleted_at.is_(None), User.is_active == True)
    owner = (await db.execute(stmt)).scalar_one_or_none()
    if not owner:
        raise HTTPException(status_code=404, detail="Owner not found")
    if UserRole(enum_value(owner.role)) not in (UserRole.MANAGER, UserRole.ADMIN):
        raise HTTPException(status_code=400, detail="Project owner must be a manager or admin")
    return owner


# --- Endpoints ---

@router.get("")
async def list_projects(
    user: CurrentUser = Depends(require_permission("projects:read")),
    db: AsyncSession = Depends(get_db_session),
    search: Optional[str] = None,
    limit: int = Query(default=100, le=500),
    offset: int = Query(default=0, ge=0),
):
    """List the projects visible to the caller"""
    stmt = (
        select(Project)
        .where(Project.id.in_(visible_project_ids(user)))
        .order_by(Project.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    if search:
        stmt = stmt.where(func.lower(Project.project_name).like(f"%{search.lower()}%"))

    projects = (await db.execute(stmt)).scalars().all()
    counts = await _status_counts([p.id for p in projects], db)
    names = await _owner_names([p.owner_manager_id for p in projects], db)
    return {
        "projects": [
            _project_to_out(p, counts.get(p.id, {}), names.get(p.owner_manager_id))
            for p in projects
        ],
        "count": len(projects),
    }


@router.get("/stats")
async def project_stats(
    user: CurrentUser = Depends(require_permission("projects:read")),
    db: AsyncSession = Depends(get_db_session),
):
    """Dashboard counters across the caller's visible projects"""
    visible = visible_project_ids(user)
    total_projects = (
        await db.execute(select(func.count(Project.id)).where(Project.id.in_(visible)))
    ).scalar() or 0

    status_stmt = (
        select(Task.status, func.count(Task.id))
        .where(Task.project_id.in_(visible_project_ids(user)))
        .group_by(Task.status)
    )
    by_status = {enum_value(s): c for s, c in (await db.execute(status_stmt)).all()}

    return {
        "total_projects": total_projects,
        "total_tasks": sum(by_status.values()),
        "completed_tasks": by_status.get(TaskStatus.COMPLETED.value, 0),
        "in_progress_tasks": by_status.get(TaskStatus.IN_PROGRESS.value, 0),
    }


@router.post("", response_model=ProjectOut)
async def create_project(
    data: ProjectCreate,
    request: Request,
    user: CurrentUser = Depends(require_permission("projects:write")),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a project owned by the caller (admins may pick the owner)"""
    owner_id = user.id
    if data.owner_manager_id and data.owner_manager_id != user.id:
        if UserRole(user.role) != UserRole.ADMIN:
            raise HTTPException(status_code=403, detail="Only admins can set another owner")
        owner_id = (await _resolve_owner(data.owner_manager_id, db)).id

    project = Project(
        project_name=data.project_name.strip(),
        description=data.description,
        owner_manager_id=owner_id,
    )
    db.add(project)
    await db.flush()

    record_audit(
        db, AuditEventType.PROJECT_CREATED, user_id=user.id,
        resource_type="project", resource_id=project.id, request=request,
    )
    await db.commit()
    await db.refresh(project)
    return await _single_out(project, db)


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    project = await get_visible_project(project_id, user, db)
    return await _single_out(project, db)


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    user: CurrentUser = Depends(require_permission("projects:write")),
    db: AsyncSession = Depends(get_db_session),
):
    """Update name/description (owner or admin); ownership transfer is admin-only"""
    project = await get_managed_project(project_id, user, db)

    if data.project_name is not None:
        project.project_name = data.project_name.strip()
    if data.description is not None:
        project.description = data.description
    if data.owner_manager_id is not None and data.owner_manager_id != project.owner_manager_id:
        if UserRole(user.role) != UserRole.ADMIN:
            raise HTTPException(status_code=403, detail="Only admins can transfer ownership")
        project.owner_manager_id = (await _resolve_owner(data.owner_manager_id, db)).id

    await db.commit()
    await db.refresh(project)
    return await _single_out(project, db)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    request: Request,
    user: CurrentUser = Depends(require_permission("projects:delete")),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a project together with its tasks, comments, work logs and files"""
    project = await get_managed_project(project_id, user, db)

    blobs = await stored_blob_paths(db, project_id=project.id)

    await db.delete(project)
    record_audit(
        db, AuditEventType.PROJECT_DELETED, user_id=user.id,
        resource_type="project", resource_id=project_id,
        details={"project_name": project.project_name}, request=request,
    )
    await db.commit()
    unlink_blobs(blobs)
    return {"status": "deleted", "project_id": project_id}
