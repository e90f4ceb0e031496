"""Initial DevTrack schema

Revision ID: a1d3f5e7c9b2
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:
- users, notification_preferences (accounts, roles, settings)
- revoked_tokens, password_reset_otps, audit_logs (auth support)
- projects, tasks, task_assignments, comments, work_logs, files
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'a1d3f5e7c9b2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('ADMIN', 'MANAGER', 'DEVELOPER', name='userrole')
task_status = sa.Enum('NEW', 'ASSIGNED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='taskstatus')
task_priority = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'CRITICAL', name='taskpriority')
work_type = sa.Enum(
    'DEVELOPMENT', 'TESTING', 'CODE_REVIEW', 'DOCUMENTATION', 'MEETING', 'BUG_FIX', 'RESEARCH', 'OTHER',
    name='worktype',
)
audit_event_type = sa.Enum(
    'USER_LOGIN', 'USER_LOGOUT', 'USER_REGISTER', 'USER_ROLE_CHANGED', 'USER_DEACTIVATED',
    'PASSWORD_CHANGED', 'PASSWORD_RESET_REQUESTED', 'PASSWORD_RESET',
    'PROJECT_CREATED', 'PROJECT_DELETED', 'TASK_DELETED', 'TASK_ASSIGNED', 'TASK_UNASSIGNED',
    'FILE_UPLOADED', 'FILE_DELETED', 'REPORT_EXPORTED',
    name='auditeventtype',
)


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_is_active', 'users', ['is_active'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])
    op.create_index('idx_user_role_active', 'users', ['role', 'is_active'])

    # --- notification_preferences ---
    op.create_table(
        'notification_preferences',
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('task_assignments', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deadline_reminders', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('status_updates', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('weekly_digest', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('milestone_updates', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
    )

    # --- revoked_tokens ---
    op.create_table(
        'revoked_tokens',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('jti', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_revoked_tokens_jti', 'revoked_tokens', ['jti'], unique=True)

    # --- password_reset_otps ---
    op.create_table(
        'password_reset_otps',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('otp_hash', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_password_reset_otps_user_id', 'password_reset_otps', ['user_id'])

    # --- audit_logs ---
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('event_type', audit_event_type, nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('resource_type', sa.String(), nullable=True),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('ix_audit_logs_event_type', 'audit_logs', ['event_type'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_request_id', 'audit_logs', ['request_id'], unique=False)
    op.create_index('idx_audit_event_timestamp', 'audit_logs', ['event_type', 'timestamp'])

    # --- projects ---
    op.create_table(
        'projects',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('owner_manager_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_projects_project_name', 'projects', ['project_name'])
    op.create_index('ix_projects_owner_manager_id', 'projects', ['owner_manager_id'])
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])

    # --- tasks ---
    op.create_table(
        'tasks',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('status', task_status, nullable=False),
        sa.Column('priority', task_priority, nullable=False),
        sa.Column('progress_percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('estimated_hours', sa.Float(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_status', 'tasks', ['status'])
    op.create_index('ix_tasks_completed_at', 'tasks', ['completed_at'])
    op.create_index('idx_task_project_status', 'tasks', ['project_id', 'status'])

    # --- task_assignments ---
    op.create_table(
        'task_assignments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('task_id', sa.String(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('developer_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_id', 'developer_id', name='uq_assignment_task_developer'),
    )
    op.create_index('ix_task_assignments_task_id', 'task_assignments', ['task_id'])
    op.create_index('ix_task_assignments_developer_id', 'task_assignments', ['developer_id'])

    # --- comments ---
    op.create_table(
        'comments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('task_id', sa.String(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_comments_task_id', 'comments', ['task_id'])

    # --- work_logs ---
    op.create_table(
        'work_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('task_id', sa.String(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('hours', sa.Float(), nullable=False),
        sa.Column('work_type', work_type, nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('logged_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_work_logs_task_id', 'work_logs', ['task_id'])
    op.create_index('ix_work_logs_user_id', 'work_logs', ['user_id'])
    op.create_index('ix_work_logs_logged_at', 'work_logs', ['logged_at'])
    op.create_index('idx_worklog_user_time', 'work_logs', ['user_id', 'logged_at'])

    # --- files ---
    op.create_table(
        'files',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('task_id', sa.String(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=True),
        sa.Column('uploaded_by_user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_path_in_storage', sa.String(), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('mime_type', sa.String(), nullable=True),
        sa.Column('upload_date', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_files_project_id', 'files', ['project_id'])
    op.create_index('ix_files_task_id', 'files', ['task_id'])


def downgrade() -> None:
    op.drop_table('files')
    op.drop_table('work_logs')
    op.drop_table('comments')
    op.drop_table('task_assignments')
    op.drop_table('tasks')
    op.drop_table('projects')
    op.drop_table('audit_logs')
    op.drop_table('password_reset_otps')
    op.drop_table('revoked_tokens')
    op.drop_table('notification_preferences')
    op.drop_table('users')
    for enum in (audit_event_type, work_type, task_priority, task_status, user_role):
        enum.drop(op.get_bind(), checkfirst=True)
