# routers/admin.py — Admin dashboard counters and user administration
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from access import ts, enum_value
from auth import require_permission, record_audit, CurrentUser
from database import get_db_session
from models import User, Project, Task, UserRole, TaskStatus, AuditEventType, utcnow

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


# --- Schemas ---

class AdminUserOut(BaseModel):
    user_id: str
    username: str
    email: str
    role: str
    is_active: bool
    last_login_at: Optional[str] = None
    created_at: str


class RoleUpdate(BaseModel):
    role: str = Field(..., description="One of: ADMIN, MANAGER, DEVELOPER")


def _user_to_out(u: User) -> AdminUserOut:
    return AdminUserOut(
        user_id=u.id,
        username=u.username,
        email=u.email,
        role=enum_value(u.role),
        is_active=u.is_active,
        last_login_at=ts(u.last_login_at),
        created_at=ts(u.created_at) or "",
    )


async def _get_live_user(user_id: str, db: AsyncSession) -> User:
    stmt = select(User).where(User.id == user_id, User.deleted_at.is_(None))
    target = (await db.execute(stmt)).scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    return target


# --- Endpoints ---

@router.get("/dashboard")
async def admin_dashboard(
    user: CurrentUser = Depends(require_permission("admin:dashboard")),
    db: AsyncSession = Depends(get_db_session),
):
    """System-wide counters for the admin dashboard"""
    role_stmt = (
        select(User.role, func.count(User.id))
        .where(User.deleted_at.is_(None))
        .group_by(User.role)
    )
    by_role = {enum_value(r): c for r, c in (await db.execute(role_stmt)).all()}

    project_total = (await db.execute(select(func.count(Project.id)))).scalar() or 0

    status_stmt = select(Task.status, func.count(Task.id)).group_by(Task.status)
    by_status = {enum_value(s): c for s, c in (await db.execute(status_stmt)).all()}

    return {
        "users": {
            "total": sum(by_role.values()),
            "by_role": {r.value: by_role.get(r.value, 0) for r in UserRole},
        },
        "projects": {"total": project_total},
        "tasks": {
            "total": sum(by_status.values()),
            "by_status": {s.value: by_status.get(s.value, 0) for s in TaskStatus},
        },
    }


@router.get("/users")
async def list_users(
    user: CurrentUser = Depends(require_permission("users:write")),
    db: AsyncSession = Depends(get_db_session),
    search: Optional[str] = None,
    role: Optional[str] = None,
    limit: int = Query(default=100, le=500),
    offset: int = Query(default=0, ge=0),
):
    """List all users with optional search and role filter"""
    stmt = (
        select(User)
        .where(User.deleted_at.is_(None))
        .order_by(User.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    if role:
        try:
            stmt = stmt.where(User.role == UserRole(role.upper()))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid role: {role}")
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(or_(
            func.lower(User.username).like(pattern),
            func.lower(User.email).like(pattern),
        ))

    users: List[User] = (await db.execute(stmt)).scalars().all()
    return {"users": [_user_to_out(u) for u in users], "count": len(users)}


@router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    role_update: RoleUpdate,
    request: Request,
    current_user: CurrentUser = Depends(require_permission("users:write")),
    db: AsyncSession = Depends(get_db_session),
):
    """Change a user's role"""
    try:
        new_role = UserRole(role_update.role.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid role: {role_update.role}")

    if user_id == current_user.id and new_role != UserRole.ADMIN:
        raise HTTPException(status_code=400, detail="Cannot demote yourself")

    target = await _get_live_user(user_id, db)
    old_role = enum_value(target.role)
    target.role = new_role

    record_audit(
        db, AuditEventType.USER_ROLE_CHANGED, user_id=current_user.id,
        resource_type="user", resource_id=user_id,
        details={"old_role": old_role, "new_role": new_role.value}, request=request,
    )
    await db.commit()
    await db.refresh(target)
    return {"user": _user_to_out(target), "old_role": old_role, "new_role": new_role.value}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    current_user: CurrentUser = Depends(require_permission("users:delete")),
    db: AsyncSession = Depends(get_db_session),
):
    """Soft-delete / deactivate a user"""
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot delete yourself")

    target = await _get_live_user(user_id, db)
    target.is_active = False
    target.deleted_at = utcnow()

    record_audit(
        db, AuditEventType.USER_DEACTIVATED, user_id=current_user.id,
        resource_type="user", resource_id=user_id, request=request,
    )
    await db.commit()
    return {"user_id": user_id, "status": "deleted"}
