# auth.py — Authentication & role-based access for DevTrack
# Features:
# - JWT access / refresh / reset tokens with JTI for revocation
# - 3-tier RBAC (ADMIN, MANAGER, DEVELOPER)
# - Permission scopes per role
# - Password policy enforcement
# - Brute force protection on login
# - OTP-based password reset

import os
import uuid
import hashlib
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List
from collections import defaultdict

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from models import (
    User, AuditLog, AuditEventType, UserRole, RevokedToken, PasswordResetOTP,
    utcnow, as_utc,
)

logger = logging.getLogger("devtrack.auth")
mail_logger = logging.getLogger("devtrack.mailer")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or len(SECRET_KEY) < 32:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or too short. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
RESET_TOKEN_EXPIRE_MINUTES = int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", "15"))
OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", "10"))
MAX_OTP_ATTEMPTS = 5
MIN_PASSWORD_LENGTH = 8
MAX_LOGIN_ATTEMPTS = 5
LOGIN_LOCKOUT_MINUTES = 15

security = HTTPBearer()

# In-memory brute force tracker (per process)
_login_attempts: Dict[str, list] = defaultdict(list)


# ============================================================
# ROLE HIERARCHY & PERMISSIONS
# ============================================================

ROLE_HIERARCHY = {
    UserRole.ADMIN: 3,
    UserRole.MANAGER: 2,
    UserRole.DEVELOPER: 1,
}

ROLE_PERMISSIONS = {
    UserRole.ADMIN: [
        "users:read", "users:write", "users:delete",
        "projects:read", "projects:write", "projects:delete",
        "tasks:read", "tasks:write", "tasks:assign", "tasks:log_work",
        "comments:write", "comments:moderate",
        "files:read", "files:write", "files:delete",
        "reports:read", "reports:export",
        "admin:dashboard",
    ],
    UserRole.MANAGER: [
        "users:read",
        "projects:read", "projects:write", "projects:delete",
        "tasks:read", "tasks:write", "tasks:assign", "tasks:log_work",
        "comments:write", "comments:moderate",
        "files:read", "files:write", "files:delete",
        "reports:read", "reports:export",
    ],
    UserRole.DEVELOPER: [
        "projects:read",
        "tasks:read", "tasks:log_work",
        "comments:write",
        "files:read", "files:write",
    ],
}


def validate_password_strength(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not any(c.isalpha() for c in v):
        raise ValueError("Password must contain at least one letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str
    username: str = Field(default="", max_length=50)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class CurrentUser(BaseModel):
    id: str
    username: str
    email: str
    role: str
    is_active: bool
    permissions: List[str] = []
    token_jti: Optional[str] = None
    token_exp: Optional[int] = None

    def has_role(self, *roles: UserRole) -> bool:
        return UserRole(self.role) in roles


class RefreshRequest(BaseModel):
    refresh_token: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return validate_password_strength(v)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class VerifyOTPRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)


class ResetPasswordRequest(BaseModel):
    reset_token: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return validate_password_strength(v)


# ============================================================
# AUDIT
# ============================================================

def record_audit(
    db: AsyncSession,
    event_type: AuditEventType,
    user_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    details: Optional[dict] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """Stage an audit row on the session; the caller's commit persists it"""
    entry = AuditLog(
        event_type=event_type,
        user_id=user_id,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=request.client.host if request and request.client else None,
        request_id=getattr(request.state, "request_id", None) if request is not None else None,
    )
    db.add(entry)
    return entry


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Authentication service: hashing, tokens, login, password reset"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        return AuthService._create_token(data, "access", delta)

    @staticmethod
    def create_refresh_token(data: Dict[str, Any]) -> str:
        return AuthService._create_token(data, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))

    @staticmethod
    def create_reset_token(user_id: str, otp_id: str) -> str:
        return AuthService._create_token(
            {"sub": user_id, "otp_id": otp_id}, "reset",
            timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES),
        )

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def token_claims(user: User) -> Dict[str, Any]:
        return {
            "sub": user.id,
            "username": user.username,
            "role": user.role.value if isinstance(user.role, UserRole) else user.role,
        }

    @staticmethod
    def _check_brute_force(email: str) -> None:
        """Check if login attempts exceed threshold"""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=LOGIN_LOCKOUT_MINUTES)
        _login_attempts[email] = [t for t in _login_attempts[email] if t > cutoff]
        if len(_login_attempts[email]) >= MAX_LOGIN_ATTEMPTS:
            raise HTTPException(
                status_code=429,
                detail=f"Too many login attempts. Try again in {LOGIN_LOCKOUT_MINUTES} minutes.",
            )

    @staticmethod
    def _record_failed_attempt(email: str) -> None:
        _login_attempts[email].append(datetime.now(timezone.utc))

    @staticmethod
    def _clear_attempts(email: str) -> None:
        _login_attempts.pop(email, None)

    @staticmethod
    def generate_otp() -> str:
        return f"{secrets.randbelow(10 ** 6):06d}"

    @staticmethod
    def hash_otp(otp: str) -> str:
        return hashlib.sha256(otp.encode()).hexdigest()

    @staticmethod
    async def _free_username(base: str, db: AsyncSession) -> str:
        """First of base, base2, base3, ... that nobody holds yet"""
        base = base[:45]
        stmt = select(User.username).where(User.username.like(f"{base}%"))
        taken = set((await db.execute(stmt)).scalars().all())
        if base not in taken:
            return base
        suffix = 2
        while f"{base}{suffix}" in taken:
            suffix += 1
        return f"{base}{suffix}"

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        username = user_data.username.strip()
        clashes = [User.email == user_data.email]
        if username:
            clashes.append(User.username == username)

        stmt = select(User.id).where(or_(*clashes))
        if (await db.execute(stmt)).first():
            raise HTTPException(status_code=409, detail="User already exists")

        if not username:
            username = await AuthService._free_username(user_data.email.split("@")[0], db)

        new_user = User(
            email=user_data.email,
            username=username,
            password_hash=AuthService.hash_password(user_data.password),
            role=UserRole.DEVELOPER,
            is_active=True,
        )
        db.add(new_user)
        await db.flush()

        record_audit(db, AuditEventType.USER_REGISTER, user_id=new_user.id)
        await db.commit()
        await db.refresh(new_user)
        logger.info(f"Registered user {new_user.username} ({new_user.id[:8]})")
        return new_user

    @staticmethod
    async def authenticate_user(
        email: str, password: str, db: AsyncSession, request: Optional[Request] = None,
    ) -> Optional[User]:
        AuthService._check_brute_force(email)

        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            AuthService._record_failed_attempt(email)
            logger.warning(f"Failed login for {email}")
            return None

        if not user.is_active or user.deleted_at is not None:
            return None

        AuthService._clear_attempts(email)

        user.last_login_at = utcnow()
        db.add(user)
        record_audit(db, AuditEventType.USER_LOGIN, user_id=user.id, request=request)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def is_token_revoked(jti: str, db: AsyncSession) -> bool:
        stmt = select(RevokedToken).where(RevokedToken.jti == jti)
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def revoke_token(jti: str, user_id: str, expires_at: datetime, db: AsyncSession) -> None:
        db.add(RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at))

    @staticmethod
    async def issue_reset_otp(user: User, db: AsyncSession) -> str:
        """Create a fresh OTP for the user; earlier unused ones stop working"""
        now = utcnow()
        stmt = select(PasswordResetOTP).where(
            PasswordResetOTP.user_id == user.id,
            PasswordResetOTP.used_at.is_(None),
        )
        for stale in (await db.execute(stmt)).scalars().all():
            stale.used_at = now

        otp = AuthService.generate_otp()
        db.add(PasswordResetOTP(
            user_id=user.id,
            otp_hash=AuthService.hash_otp(otp),
            expires_at=now + timedelta(minutes=OTP_EXPIRE_MINUTES),
        ))
        return otp

    @staticmethod
    async def verify_reset_otp(user: User, otp: str, db: AsyncSession) -> PasswordResetOTP:
        stmt = (
            select(PasswordResetOTP)
            .where(PasswordResetOTP.user_id == user.id, PasswordResetOTP.used_at.is_(None))
            .order_by(PasswordResetOTP.created_at.desc())
        )
        record = (await db.execute(stmt)).scalars().first()
        if not record or as_utc(record.expires_at) < utcnow():
            raise HTTPException(status_code=400, detail="OTP expired or not requested")
        if record.attempts >= MAX_OTP_ATTEMPTS:
            raise HTTPException(status_code=429, detail="Too many OTP attempts. Request a new code.")

        if not secrets.compare_digest(record.otp_hash, AuthService.hash_otp(otp)):
            record.attempts += 1
            await db.commit()
            raise HTTPException(status_code=400, detail="Invalid OTP")
        return record

    @staticmethod
    def get_user_permissions(role) -> List[str]:
        try:
            return ROLE_PERMISSIONS.get(UserRole(role), ROLE_PERMISSIONS[UserRole.DEVELOPER])
        except (ValueError, KeyError):
            return ROLE_PERMISSIONS[UserRole.DEVELOPER]


def deliver_reset_otp(email: str, otp: str) -> None:
    """Hand the OTP to the mail transport. Outside production the code is logged."""
    if os.getenv("ENVIRONMENT", "development") == "production":
        mail_logger.info(f"Password reset code queued for {email}")
    else:
        mail_logger.info(f"Password reset code for {email}: {otp}")


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    jti = payload.get("jti")
    if jti and await AuthService.is_token_revoked(jti, db):
        raise HTTPException(status_code=401, detail="Token has been revoked")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    stmt = select(User).where(User.id == user_id)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if not user or not user.is_active or user.deleted_at is not None:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return CurrentUser(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role.value if isinstance(user.role, UserRole) else user.role,
        is_active=user.is_active,
        permissions=AuthService.get_user_permissions(user.role),
        token_jti=jti,
        token_exp=payload.get("exp"),
    )


def require_role(*roles: UserRole):
    """Dependency factory: require user to have one of the specified roles"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if UserRole(user.role) not in roles:
            raise HTTPException(status_code=403, detail="Insufficient role privileges")
        return user
    return _check


def require_permission(*scopes: str):
    """Dependency factory: require user to have specific permission scopes"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        for scope in scopes:
            if scope not in user.permissions:
                raise HTTPException(
                    status_code=403,
                    detail=f"Missing required permission: {scope}",
                )
        return user
    return _check


def require_min_role(min_role: UserRole):
    """Dependency factory: require user role level >= min_role"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        user_level = ROLE_HIERARCHY.get(UserRole(user.role), 0)
        required_level = ROLE_HIERARCHY.get(min_role, 0)
        if user_level < required_level:
            raise HTTPException(status_code=403, detail="Insufficient role level")
        return user
    return _check
