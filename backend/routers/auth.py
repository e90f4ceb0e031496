# routers/auth.py — Authentication endpoints with token revocation and password reset
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, TokenResponse, RefreshRequest,
    PasswordChange, ForgotPasswordRequest, VerifyOTPRequest, ResetPasswordRequest,
    ACCESS_TOKEN_EXPIRE_MINUTES, get_current_user, deliver_reset_otp, record_audit,
    CurrentUser,
)
from database import get_db_session
from models import User, UserRole, PasswordResetOTP, AuditEventType, utcnow

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = "If the email is registered, a reset code has been sent."


def _user_payload(user_obj: User) -> dict:
    role = user_obj.role.value if isinstance(user_obj.role, UserRole) else user_obj.role
    return {
        "user_id": user_obj.id,
        "username": user_obj.username,
        "email": user_obj.email,
        "role": role,
        "permissions": AuthService.get_user_permissions(user_obj.role),
    }


def _build_token_response(user_obj: User) -> TokenResponse:
    """Build token response from a user ORM instance"""
    token_data = AuthService.token_claims(user_obj)
    return TokenResponse(
        access_token=AuthService.create_access_token(token_data),
        refresh_token=AuthService.create_refresh_token(token_data),
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=_user_payload(user_obj),
    )


async def _active_user_by_email(email: str, db: AsyncSession):
    stmt = select(User).where(
        User.email == email, User.is_active == True, User.deleted_at.is_(None),
    )
    return (await db.execute(stmt)).scalar_one_or_none()


@router.post("/register", response_model=TokenResponse)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new developer account"""
    user = await AuthService.register_user(user_data, db)
    return _build_token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive tokens"""
    user = await AuthService.authenticate_user(
        credentials.email, credentials.password, db, request
    )
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _build_token_response(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_req: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Refresh access token using a refresh token"""
    payload = AuthService.verify_token(refresh_req.refresh_token)

    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token type. Expected refresh token.")

    jti = payload.get("jti")
    if jti and await AuthService.is_token_revoked(jti, db):
        raise HTTPException(status_code=401, detail="Refresh token has been revoked")

    stmt = select(User).where(User.id == payload.get("sub"))
    user = (await db.execute(stmt)).scalar_one_or_none()
    if not user or not user.is_active or user.deleted_at is not None:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return _build_token_response(user)


@router.post("/logout")
async def logout(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Logout and revoke the presented access token"""
    if user.token_jti:
        expires_at = (
            datetime.fromtimestamp(user.token_exp, tz=timezone.utc)
            if user.token_exp else utcnow()
        )
        await AuthService.revoke_token(user.token_jti, user.id, expires_at, db)

    record_audit(db, AuditEventType.USER_LOGOUT, user_id=user.id, request=request)
    await db.commit()
    return {"status": "logged_out", "message": "Session terminated"}


@router.get("/me")
async def get_current_user_info(user: CurrentUser = Depends(get_current_user)):
    """Get current authenticated user information"""
    return {
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
        "permissions": user.permissions,
    }


@router.post("/change-password", response_model=TokenResponse)
async def change_password(
    data: PasswordChange,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Change the current user's password; the old token is revoked and a new one issued"""
    user_obj = (await db.execute(select(User).where(User.id == user.id))).scalar_one_or_none()
    if not user_obj:
        raise HTTPException(status_code=404, detail="User not found")

    if not AuthService.verify_password(data.current_password, user_obj.password_hash):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    if data.current_password == data.new_password:
        raise HTTPException(status_code=400, detail="New password must differ from the current one")

    user_obj.password_hash = AuthService.hash_password(data.new_password)
    db.add(user_obj)

    if user.token_jti and user.token_exp:
        await AuthService.revoke_token(
            user.token_jti, user.id,
            datetime.fromtimestamp(user.token_exp, tz=timezone.utc), db,
        )

    record_audit(db, AuditEventType.PASSWORD_CHANGED, user_id=user.id, request=request)
    await db.commit()
    await db.refresh(user_obj)
    return _build_token_response(user_obj)


@router.post("/forgot-password")
async def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    """Send a one-time reset code. The response never reveals whether the email exists."""
    user = await _active_user_by_email(data.email, db)
    if user:
        otp = await AuthService.issue_reset_otp(user, db)
        record_audit(db, AuditEventType.PASSWORD_RESET_REQUESTED, user_id=user.id, request=request)
        await db.commit()
        deliver_reset_otp(user.email, otp)

    return {"status": "sent", "message": FORGOT_PASSWORD_MESSAGE}


@router.post("/verify-reset-otp")
async def verify_reset_otp(
    data: VerifyOTPRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Exchange a valid OTP for a short-lived reset token"""
    user = await _active_user_by_email(data.email, db)
    if not user:
        raise HTTPException(status_code=400, detail="Invalid OTP")

    record = await AuthService.verify_reset_otp(user, data.otp, db)
    return {
        "status": "verified",
        "reset_token": AuthService.create_reset_token(user.id, record.id),
    }


@router.post("/reset-password", response_model=TokenResponse)
async def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    """Set a new password with a reset token; returns fresh tokens"""
    payload = AuthService.verify_token(data.reset_token)
    if payload.get("type") != "reset":
        raise HTTPException(status_code=401, detail="Invalid token type. Expected reset token.")

    otp_stmt = select(PasswordResetOTP).where(
        PasswordResetOTP.id == payload.get("otp_id"),
        PasswordResetOTP.user_id == payload.get("sub"),
    )
    otp_record = (await db.execute(otp_stmt)).scalar_one_or_none()
    if not otp_record or otp_record.used_at is not None:
        raise HTTPException(status_code=400, detail="Reset token already used")

    user = (await db.execute(select(User).where(User.id == payload.get("sub")))).scalar_one_or_none()
    if not user or not user.is_active or user.deleted_at is not None:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    user.password_hash = AuthService.hash_password(data.new_password)
    otp_record.used_at = utcnow()
    record_audit(db, AuditEventType.PASSWORD_RESET, user_id=user.id, request=request)
    await db.commit()
    await db.refresh(user)
    AuthService._clear_attempts(user.email)
    return _build_token_response(user)
