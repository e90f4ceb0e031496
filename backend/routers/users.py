# routers/users.py — User directory (assignment pickers, people lookups)
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access import ts, enum_value
from auth import get_current_user, require_permission, CurrentUser
from database import get_db_session
from models import User, UserRole

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


class UserOut(BaseModel):
    user_id: str
    username: str
    email: str
    role: str
    created_at: str


def _user_to_out(u: User) -> UserOut:
    return UserOut(
        user_id=u.id,
        username=u.username,
        email=u.email,
        role=enum_value(u.role),
        created_at=ts(u.created_at) or "",
    )


@router.get("")
async def list_users(
    user: CurrentUser = Depends(require_permission("users:read")),
    db: AsyncSession = Depends(get_db_session),
    role: Optional[str] = None,
    limit: int = Query(default=200, le=500),
):
    """List active users, optionally by role (e.g. DEVELOPER for assignment)"""
    stmt = (
        select(User)
        .where(User.deleted_at.is_(None), User.is_active == True)
        .order_by(User.username.asc())
        .limit(limit)
    )
    if role:
        try:
            stmt = stmt.where(User.role == UserRole(role.upper()))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid role: {role}")

    users: List[User] = (await db.execute(stmt)).scalars().all()
    return {"users": [_user_to_out(u) for u in users]}


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Get a specific user"""
    stmt = select(User).where(User.id == user_id, User.deleted_at.is_(None))
    target = (await db.execute(stmt)).scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_to_out(target)
