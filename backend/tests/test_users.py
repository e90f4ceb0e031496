# tests/test_users.py — User directory, own profile and admin user management
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers, make_project, make_task
from models import TaskStatus


@pytest.mark.asyncio
class TestUserDirectory:
    async def test_manager_lists_developers(self, client: AsyncClient, manager_user, developer_user, other_developer):
        res = await client.get("/api/v1/users?role=developer", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        names = [u["username"] for u in res.json()["users"]]
        assert names == ["developer", "developer2"]

    async def test_developer_cannot_list_users(self, client: AsyncClient, developer_user):
        res = await client.get("/api/v1/users", headers=get_auth_headers(developer_user))
        assert res.status_code == 403

    async def test_invalid_role_filter(self, client: AsyncClient, manager_user):
        res = await client.get("/api/v1/users?role=wizard", headers=get_auth_headers(manager_user))
        assert res.status_code == 400

    async def test_get_user(self, client: AsyncClient, developer_user, manager_user):
        res = await client.get(f"/api/v1/users/{manager_user.id}", headers=get_auth_headers(developer_user))
        assert res.status_code == 200
        assert res.json()["role"] == "MANAGER"

    async def test_get_missing_user(self, client: AsyncClient, developer_user):
        res = await client.get("/api/v1/users/does-not-exist", headers=get_auth_headers(developer_user))
        assert res.status_code == 404


@pytest.mark.asyncio
class TestProfile:
    async def test_get_profile(self, client: AsyncClient, developer_user):
        res = await client.get("/api/v1/profile", headers=get_auth_headers(developer_user))
        assert res.status_code == 200
        assert res.json()["email"] == developer_user.email

    async def test_update_profile(self, client: AsyncClient, developer_user):
        res = await client.patch("/api/v1/profile", headers=get_auth_headers(developer_user), json={
            "username": "dev-renamed",
        })
        assert res.status_code == 200
        assert res.json()["username"] == "dev-renamed"

    async def test_update_profile_blank_username(self, client: AsyncClient, developer_user):
        res = await client.patch("/api/v1/profile", headers=get_auth_headers(developer_user), json={
            "username": "   ",
        })
        assert res.status_code == 400

        res = await client.get("/api/v1/profile", headers=get_auth_headers(developer_user))
        assert res.json()["username"] == "developer"

    async def test_update_profile_strips_username(self, client: AsyncClient, developer_user):
        res = await client.patch("/api/v1/profile", headers=get_auth_headers(developer_user), json={
            "username": "  dev-trimmed ",
        })
        assert res.status_code == 200
        assert res.json()["username"] == "dev-trimmed"

    async def test_update_profile_clash(self, client: AsyncClient, developer_user, other_developer):
        res = await client.patch("/api/v1/profile", headers=get_auth_headers(developer_user), json={
            "email": other_developer.email,
        })
        assert res.status_code == 409

    async def test_preferences_default_on(self, client: AsyncClient, developer_user):
        res = await client.get("/api/v1/profile/preferences", headers=get_auth_headers(developer_user))
        assert res.status_code == 200
        assert all(res.json()["preferences"].values())

    async def test_update_preferences_keeps_omitted(self, client: AsyncClient, developer_user):
        headers = get_auth_headers(developer_user)
        res = await client.put("/api/v1/profile/preferences", headers=headers, json={"weekly_digest": False})
        assert res.status_code == 200
        prefs = res.json()["preferences"]
        assert prefs["weekly_digest"] is False
        assert prefs["task_assignments"] is True

        res = await client.put("/api/v1/profile/preferences", headers=headers, json={"deadline_reminders": False})
        prefs = res.json()["preferences"]
        assert prefs["weekly_digest"] is False
        assert prefs["deadline_reminders"] is False


@pytest.mark.asyncio
class TestAdmin:
    async def test_dashboard_counts(self, client: AsyncClient, db_session, admin_user, manager_user, developer_user):
        project = await make_project(db_session, manager_user)
        await make_task(db_session, project)
        await make_task(db_session, project, status=TaskStatus.COMPLETED)

        res = await client.get("/api/v1/admin/dashboard", headers=get_auth_headers(admin_user))
        assert res.status_code == 200
        data = res.json()
        assert data["users"]["total"] == 3
        assert data["users"]["by_role"] == {"ADMIN": 1, "MANAGER": 1, "DEVELOPER": 1}
        assert data["projects"]["total"] == 1
        assert data["tasks"]["total"] == 2
        assert data["tasks"]["by_status"]["COMPLETED"] == 1

    async def test_manager_cannot_open_dashboard(self, client: AsyncClient, manager_user):
        res = await client.get("/api/v1/admin/dashboard", headers=get_auth_headers(manager_user))
        assert res.status_code == 403

    async def test_search_users(self, client: AsyncClient, admin_user, developer_user, manager_user):
        res = await client.get("/api/v1/admin/users?search=develop", headers=get_auth_headers(admin_user))
        assert res.status_code == 200
        assert res.json()["count"] == 1

    async def test_promote_developer(self, client: AsyncClient, admin_user, developer_user):
        res = await client.patch(
            f"/api/v1/admin/users/{developer_user.id}/role",
            headers=get_auth_headers(admin_user),
            json={"role": "manager"},
        )
        assert res.status_code == 200
        data = res.json()
        assert data["old_role"] == "DEVELOPER"
        assert data["new_role"] == "MANAGER"

    async def test_cannot_demote_self(self, client: AsyncClient, admin_user):
        res = await client.patch(
            f"/api/v1/admin/users/{admin_user.id}/role",
            headers=get_auth_headers(admin_user),
            json={"role": "DEVELOPER"},
        )
        assert res.status_code == 400

    async def test_invalid_role(self, client: AsyncClient, admin_user, developer_user):
        res = await client.patch(
            f"/api/v1/admin/users/{developer_user.id}/role",
            headers=get_auth_headers(admin_user),
            json={"role": "OWNER"},
        )
        assert res.status_code == 400

    async def test_deactivate_user(self, client: AsyncClient, admin_user, developer_user):
        headers = get_auth_headers(admin_user)
        res = await client.delete(f"/api/v1/admin/users/{developer_user.id}", headers=headers)
        assert res.status_code == 200
        assert res.json()["status"] == "deleted"

        res = await client.get("/api/v1/auth/me", headers=get_auth_headers(developer_user))
        assert res.status_code == 401

        res = await client.delete(f"/api/v1/admin/users/{developer_user.id}", headers=headers)
        assert res.status_code == 404

    async def test_cannot_delete_self(self, client: AsyncClient, admin_user):
        res = await client.delete(f"/api/v1/admin/users/{admin_user.id}", headers=get_auth_headers(admin_user))
        assert res.status_code == 400
