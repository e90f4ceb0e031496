# tests/test_projects.py — Project CRUD and role scoping
import pytest
from httpx import AsyncClient
from sqlalchemy import select, func

from models import AuditLog, AuditEventType, Task, TaskStatus
from tests.conftest import get_auth_headers, make_project, make_task


@pytest.mark.asyncio
class TestProjectCreate:
    async def test_manager_creates_project(self, client: AsyncClient, manager_user):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(manager_user), json={
            "project_name": "  Billing Revamp ",
            "description": "Move invoices to the new provider",
        })
        assert res.status_code == 200
        data = res.json()
        assert data["project_name"] == "Billing Revamp"
        assert data["owner_manager_id"] == manager_user.id
        assert data["owner_name"] == "manager"
        assert data["task_count"] == 0

    async def test_developer_cannot_create(self, client: AsyncClient, developer_user):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(developer_user), json={
            "project_name": "Side project",
        })
        assert res.status_code == 403

    async def test_empty_name_rejected(self, client: AsyncClient, manager_user):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(manager_user), json={
            "project_name": "",
        })
        assert res.status_code == 422

    async def test_admin_picks_owner(self, client: AsyncClient, admin_user, manager_user):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(admin_user), json={
            "project_name": "Search Service",
            "owner_manager_id": manager_user.id,
        })
        assert res.status_code == 200
        assert res.json()["owner_manager_id"] == manager_user.id

    async def test_admin_cannot_make_developer_owner(self, client: AsyncClient, admin_user, developer_user):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(admin_user), json={
            "project_name": "Search Service",
            "owner_manager_id": developer_user.id,
        })
        assert res.status_code == 400

    async def test_manager_cannot_pick_other_owner(self, client: AsyncClient, manager_user, other_manager):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(manager_user), json={
            "project_name": "Search Service",
            "owner_manager_id": other_manager.id,
        })
        assert res.status_code == 403

    async def test_creation_is_audited(self, client: AsyncClient, db_session, manager_user):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(manager_user), json={
            "project_name": "Audited",
        })
        project_id = res.json()["project_id"]
        stmt = select(AuditLog).where(AuditLog.resource_id == project_id)
        entry = (await db_session.execute(stmt)).scalar_one()
        assert entry.event_type == AuditEventType.PROJECT_CREATED
        assert entry.user_id == manager_user.id
        assert entry.request_id == res.headers["x-request-id"]

    async def test_audit_rows_carry_caller_request_id(self, client: AsyncClient, db_session, manager_user):
        headers = {**get_auth_headers(manager_user), "X-Request-ID": "req-devtrack-42"}
        for name in ("First", "Second"):
            res = await client.post("/api/v1/projects", headers=headers, json={"project_name": name})
            assert res.status_code == 200

        stmt = select(AuditLog).where(AuditLog.event_type == AuditEventType.PROJECT_CREATED)
        entries = (await db_session.execute(stmt)).scalars().all()
        assert [e.request_id for e in entries] == ["req-devtrack-42", "req-devtrack-42"]


@pytest.mark.asyncio
class TestProjectVisibility:
    async def test_manager_sees_only_own(self, client: AsyncClient, db_session, manager_user, other_manager):
        await make_project(db_session, manager_user, "Mine")
        await make_project(db_session, other_manager, "Theirs")

        res = await client.get("/api/v1/projects", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        assert [p["project_name"] for p in res.json()["projects"]] == ["Mine"]

    async def test_admin_sees_all(self, client: AsyncClient, db_session, admin_user, manager_user, other_manager):
        await make_project(db_session, manager_user, "Mine")
        await make_project(db_session, other_manager, "Theirs")

        res = await client.get("/api/v1/projects", headers=get_auth_headers(admin_user))
        assert res.json()["count"] == 2

    async def test_developer_sees_projects_with_assignments(
        self, client: AsyncClient, db_session, manager_user, developer_user,
    ):
        assigned = await make_project(db_session, manager_user, "Assigned")
        await make_project(db_session, manager_user, "Unrelated")
        await make_task(db_session, assigned, status=TaskStatus.ASSIGNED, assignees=[developer_user])

        res = await client.get("/api/v1/projects", headers=get_auth_headers(developer_user))
        assert [p["project_name"] for p in res.json()["projects"]] == ["Assigned"]

    async def test_search(self, client: AsyncClient, db_session, manager_user):
        await make_project(db_session, manager_user, "Mobile App")
        await make_project(db_session, manager_user, "Data Warehouse")

        res = await client.get("/api/v1/projects?search=mobile", headers=get_auth_headers(manager_user))
        assert [p["project_name"] for p in res.json()["projects"]] == ["Mobile App"]

    async def test_other_manager_gets_404(self, client: AsyncClient, project, other_manager):
        res = await client.get(f"/api/v1/projects/{project.id}", headers=get_auth_headers(other_manager))
        assert res.status_code == 404

    async def test_task_counts(self, client: AsyncClient, db_session, project, manager_user):
        await make_task(db_session, project)
        await make_task(db_session, project, status=TaskStatus.COMPLETED)

        res = await client.get(f"/api/v1/projects/{project.id}", headers=get_auth_headers(manager_user))
        data = res.json()
        assert data["task_count"] == 2
        assert data["completed_task_count"] == 1

    async def test_stats(self, client: AsyncClient, db_session, project, manager_user):
        await make_task(db_session, project, status=TaskStatus.IN_PROGRESS)
        await make_task(db_session, project, status=TaskStatus.COMPLETED)
        await make_task(db_session, project)

        res = await client.get("/api/v1/projects/stats", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        assert res.json() == {
            "total_projects": 1,
            "total_tasks": 3,
            "completed_tasks": 1,
            "in_progress_tasks": 1,
        }


@pytest.mark.asyncio
class TestProjectUpdateDelete:
    async def test_owner_updates(self, client: AsyncClient, project, manager_user):
        res = await client.patch(f"/api/v1/projects/{project.id}", headers=get_auth_headers(manager_user), json={
            "description": "Updated scope",
        })
        assert res.status_code == 200
        assert res.json()["description"] == "Updated scope"
        assert res.json()["project_name"] == project.project_name

    async def test_manager_cannot_transfer_ownership(self, client: AsyncClient, project, manager_user, other_manager):
        res = await client.patch(f"/api/v1/projects/{project.id}", headers=get_auth_headers(manager_user), json={
            "owner_manager_id": other_manager.id,
        })
        assert res.status_code == 403

    async def test_admin_transfers_ownership(self, client: AsyncClient, project, admin_user, other_manager):
        res = await client.patch(f"/api/v1/projects/{project.id}", headers=get_auth_headers(admin_user), json={
            "owner_manager_id": other_manager.id,
        })
        assert res.status_code == 200
        assert res.json()["owner_name"] == "manager2"

    async def test_assigned_developer_cannot_update(self, client: AsyncClient, project, assigned_task, developer_user):
        res = await client.patch(f"/api/v1/projects/{project.id}", headers=get_auth_headers(developer_user), json={
            "project_name": "Hijacked",
        })
        assert res.status_code == 403

    async def test_delete_cascades_tasks(self, client: AsyncClient, db_session, project, assigned_task, manager_user):
        res = await client.delete(f"/api/v1/projects/{project.id}", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        assert res.json() == {"status": "deleted", "project_id": project.id}

        remaining = (await db_session.execute(
            select(func.count(Task.id)).where(Task.project_id == project.id)
        )).scalar()
        assert remaining == 0

        res = await client.get(f"/api/v1/projects/{project.id}", headers=get_auth_headers(manager_user))
        assert res.status_code == 404

    async def test_developer_cannot_delete(self, client: AsyncClient, project, assigned_task, developer_user):
        res = await client.delete(f"/api/v1/projects/{project.id}", headers=get_auth_headers(developer_user))
        assert res.status_code == 403
