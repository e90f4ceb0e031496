# routers/profile.py — Own profile and notification preferences
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from access import ts, enum_value
from auth import get_current_user, CurrentUser
from database import get_db_session
from models import User, NotificationPreference

router = APIRouter(prefix="/api/v1/profile", tags=["Profile"])

PREFERENCE_FIELDS = (
    "email_notifications", "task_assignments", "deadline_reminders",
    "status_updates", "weekly_digest", "milestone_updates",
)


class ProfileOut(BaseModel):
    user_id: str
    username: str
    email: str
    role: str
    created_at: str
    updated_at: Optional[str] = None


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None


class PreferencesUpdate(BaseModel):
    email_notifications: Optional[bool] = None
    task_assignments: Optional[bool] = None
    deadline_reminders: Optional[bool] = None
    status_updates: Optional[bool] = None
    weekly_digest: Optional[bool] = None
    milestone_updates: Optional[bool] = None


def _profile_out(u: User) -> ProfileOut:
    return ProfileOut(
        user_id=u.id,
        username=u.username,
        email=u.email,
        role=enum_value(u.role),
        created_at=ts(u.created_at) or "",
        updated_at=ts(u.updated_at),
    )


def _preferences_out(pref: Optional[NotificationPreference]) -> dict:
    # A user who never saved preferences gets everything switched on
    return {f: (getattr(pref, f) if pref is not None else True) for f in PREFERENCE_FIELDS}


async def _load_self(user: CurrentUser, db: AsyncSession) -> User:
    user_obj = (await db.execute(select(User).where(User.id == user.id))).scalar_one_or_none()
    if not user_obj:
        raise HTTPException(status_code=404, detail="User not found")
    return user_obj


@router.get("", response_model=ProfileOut)
async def get_profile(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return _profile_out(await _load_self(user, db))


@router.patch("", response_model=ProfileOut)
async def update_profile(
    data: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update own username and/or email"""
    user_obj = await _load_self(user, db)
    if data.username is not None:
        data.username = data.username.strip()
        if not data.username:
            raise HTTPException(status_code=400, detail="Username cannot be blank")

    clashes = []
    if data.username is not None and data.username != user_obj.username:
        clashes.append(User.username == data.username)
    if data.email is not None and data.email != user_obj.email:
        clashes.append(User.email == data.email)
    if clashes:
        stmt = select(User.id).where(or_(*clashes), User.id != user_obj.id)
        if (await db.execute(stmt)).first():
            raise HTTPException(status_code=409, detail="Username or email already in use")

    if data.username is not None:
        user_obj.username = data.username
    if data.email is not None:
        user_obj.email = data.email

    await db.commit()
    await db.refresh(user_obj)
    return _profile_out(user_obj)


@router.get("/preferences")
async def get_preferences(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    stmt = select(NotificationPreference).where(NotificationPreference.user_id == user.id)
    pref = (await db.execute(stmt)).scalar_one_or_none()
    return {"preferences": _preferences_out(pref)}


@router.put("/preferences")
async def update_preferences(
    data: PreferencesUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Upsert notification preferences; omitted fields keep their value"""
    stmt = select(NotificationPreference).where(NotificationPreference.user_id == user.id)
    pref = (await db.execute(stmt)).scalar_one_or_none()
    if pref is None:
        pref = NotificationPreference(user_id=user.id, **{f: True for f in PREFERENCE_FIELDS})
        db.add(pref)

    for field_name, value in data.model_dump(exclude_none=True).items():
        setattr(pref, field_name, value)

    await db.commit()
    await db.refresh(pref)
    return {"preferences": _preferences_out(pref), "status": "saved"}
