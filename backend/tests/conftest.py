# tests/conftest.py — Shared test fixtures
import os
import tempfile
from datetime import date, timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("FILE_STORAGE_ROOT", os.path.join(tempfile.gettempdir(), "devtrack-test-files"))

from models import Base, User, Project, Task, TaskAssignment, UserRole, TaskStatus, TaskPriority
from auth import AuthService
from database import get_db_session
from main import app

PASSWORD = "DevTrack123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_user(db_session, username: str, role: UserRole, password: str = PASSWORD) -> User:
    user = User(
        username=username,
        email=f"{username}@devtrack.dev",
        password_hash=AuthService.hash_password(password),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


async def make_project(db_session, owner: User, name: str = "Customer Portal") -> Project:
    project = Project(project_name=name, description="Test project", owner_manager_id=owner.id)
    db_session.add(project)
    await db_session.commit()
    await db_session.refresh(project)
    return project


async def make_task(
    db_session,
    project: Project,
    title: str = "Implement login form",
    status: TaskStatus = TaskStatus.NEW,
    assignees=(),
    estimated_hours: float = 8.0,
    end_date=None,
) -> Task:
    task = Task(
        project_id=project.id,
        title=title,
        status=status,
        priority=TaskPriority.MEDIUM,
        estimated_hours=estimated_hours,
        start_date=date.today() - timedelta(days=3),
        end_date=end_date or date.today() + timedelta(days=7),
    )
    db_session.add(task)
    await db_session.flush()
    for dev in assignees:
        db_session.add(TaskAssignment(task_id=task.id, developer_id=dev.id))
    await db_session.commit()
    await db_session.refresh(task)
    return task


@pytest_asyncio.fixture
async def admin_user(db_session):
    """Create an admin user"""
    return await make_user(db_session, "admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def manager_user(db_session):
    """Create a manager user"""
    return await make_user(db_session, "manager", UserRole.MANAGER)


@pytest_asyncio.fixture
async def other_manager(db_session):
    return await make_user(db_session, "manager2", UserRole.MANAGER)


@pytest_asyncio.fixture
async def developer_user(db_session):
    """Create a developer user"""
    return await make_user(db_session, "developer", UserRole.DEVELOPER)


@pytest_asyncio.fixture
async def other_developer(db_session):
    return await make_user(db_session, "developer2", UserRole.DEVELOPER)


@pytest_asyncio.fixture
async def project(db_session, manager_user):
    return await make_project(db_session, manager_user)


@pytest_asyncio.fixture
async def assigned_task(db_session, project, developer_user):
    """A task in the manager's project assigned to developer_user"""
    return await make_task(db_session, project, status=TaskStatus.ASSIGNED, assignees=[developer_user])


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token(AuthService.token_claims(user))
    return {"Authorization": f"Bearer {token}"}
