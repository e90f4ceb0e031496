# models.py — Database models for DevTrack
# - String UUID primary keys everywhere
# - 3-tier role system (ADMIN, MANAGER, DEVELOPER)
# - Soft deletes for users so authored history survives
# - Projects -> tasks -> assignments / comments / work logs / files
# - Auth support tables (revoked tokens, password reset OTPs, audit log)

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Date, JSON, Boolean, BigInteger, Integer, Float,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def as_utc(dt):
    """Return an aware UTC datetime; SQLite hands timestamps back naive."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    DEVELOPER = "DEVELOPER"


class TaskStatus(str, PyEnum):
    NEW = "NEW"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, PyEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class WorkType(str, PyEnum):
    DEVELOPMENT = "DEVELOPMENT"
    TESTING = "TESTING"
    CODE_REVIEW = "CODE_REVIEW"
    DOCUMENTATION = "DOCUMENTATION"
    MEETING = "MEETING"
    BUG_FIX = "BUG_FIX"
    RESEARCH = "RESEARCH"
    OTHER = "OTHER"


class AuditEventType(str, PyEnum):
    # Auth events
    USER_LOGIN = "auth.user.login"
    USER_LOGOUT = "auth.user.logout"
    USER_REGISTER = "auth.user.register"
    USER_ROLE_CHANGED = "auth.user.role_changed"
    USER_DEACTIVATED = "auth.user.deactivated"
    PASSWORD_CHANGED = "auth.password.changed"
    PASSWORD_RESET_REQUESTED = "auth.password.reset_requested"
    PASSWORD_RESET = "auth.password.reset"
    # Project events
    PROJECT_CREATED = "project.created"
    PROJECT_DELETED = "project.deleted"
    # Task events
    TASK_DELETED = "task.deleted"
    TASK_ASSIGNED = "task.assigned"
    TASK_UNASSIGNED = "task.unassigned"
    # File events
    FILE_UPLOADED = "file.uploaded"
    FILE_DELETED = "file.deleted"
    # Report events
    REPORT_EXPORTED = "report.exported"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.DEVELOPER, nullable=False, index=True)
    is_active = Column(Boolean, default=True, index=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    owned_projects = relationship("Project", back_populates="owner")
    assignments = relationship("TaskAssignment", back_populates="developer")
    preferences = relationship(
        "NotificationPreference", back_populates="user", uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_user_role_active", "role", "is_active"),
    )


class NotificationPreference(Base):
    """Per-user notification toggles (one row per user, created lazily)"""
    __tablename__ = "notification_preferences"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email_notifications = Column(Boolean, default=True, nullable=False)
    task_assignments = Column(Boolean, default=True, nullable=False)
    deadline_reminders = Column(Boolean, default=True, nullable=False)
    status_updates = Column(Boolean, default=True, nullable=False)
    weekly_digest = Column(Boolean, default=True, nullable=False)
    milestone_updates = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="preferences")


# ============================================================
# TOKEN REVOCATION & PASSWORD RESET
# ============================================================

class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    id = Column(String, primary_key=True, default=new_uuid)
    jti = Column(String, unique=True, nullable=False, index=True)  # JWT ID
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    revoked_at = Column(DateTime(timezone=True), default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)  # When the token would have expired


class PasswordResetOTP(Base):
    """One-time passcode issued by the forgot-password flow"""
    __tablename__ = "password_reset_otps"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    otp_hash = Column(String, nullable=False)  # sha256 of the 6 digits
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


# ============================================================
# AUDIT LOGS (Append-only — never update or delete)
# ============================================================

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)
    event_type = Column(SQLEnum(AuditEventType), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    resource_type = Column(String, nullable=True)
    resource_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String, nullable=True)
    # X-Request-ID of the API call that produced the row; shared by every row of that call
    request_id = Column(String, nullable=True, index=True)

    __table_args__ = (
        Index("idx_audit_event_timestamp", "event_type", "timestamp"),
    )


# ============================================================
# PROJECTS
# ============================================================

class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=new_uuid)
    project_name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    owner_manager_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", back_populates="owned_projects")
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")
    files = relationship("File", back_populates="project", cascade="all, delete-orphan")


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)  # Due date; past and not completed = overdue
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.NEW, nullable=False, index=True)
    priority = Column(SQLEnum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False)
    progress_percentage = Column(Integer, default=0, nullable=False)
    estimated_hours = Column(Float, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    project = relationship("Project", back_populates="tasks")
    assignments = relationship("TaskAssignment", back_populates="task", cascade="all, delete-orphan")
    comments = relationship(
        "Comment", back_populates="task", cascade="all, delete-orphan",
        order_by="Comment.created_at",
    )
    work_logs = relationship("WorkLog", back_populates="task", cascade="all, delete-orphan")
    files = relationship("File", back_populates="task", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_task_project_status", "project_id", "status"),
    )


class TaskAssignment(Base):
    """Links a developer to a task"""
    __tablename__ = "task_assignments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    developer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    assigned_at = Column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="assignments")
    developer = relationship("User", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("task_id", "developer_id", name="uq_assignment_task_developer"),
    )


class Comment(Base):
    """Comments on a task"""
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    task = relationship("Task", back_populates="comments")
    author = relationship("User")


class WorkLog(Base):
    """Hours a user spent on a task, by kind of work"""
    __tablename__ = "work_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    hours = Column(Float, nullable=False)
    work_type = Column(SQLEnum(WorkType), default=WorkType.DEVELOPMENT, nullable=False)
    description = Column(Text, nullable=True)
    logged_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    task = relationship("Task", back_populates="work_logs")
    user = relationship("User")

    __table_args__ = (
        Index("idx_worklog_user_time", "user_id", "logged_at"),
    )


# ============================================================
# FILES
# ============================================================

class File(Base):
    """Uploaded file attached to a project (and optionally a task)"""
    __tablename__ = "files"

    id = Column(String, primary_key=True, default=new_uuid)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    uploaded_by_user_id = Column(String, ForeignKey("users.id"), nullable=False)
    file_name = Column(String, nullable=False)
    file_path_in_storage = Column(String, nullable=False)
    file_size = Column(BigInteger, nullable=True)
    mime_type = Column(String, nullable=True)
    upload_date = Column(DateTime(timezone=True), default=utcnow)

    project = relationship("Project", back_populates="files")
    task = relationship("Task", back_populates="files")
    uploader = relationship("User")
