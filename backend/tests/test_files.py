# tests/test_files.py — Project/task attachments on local storage
import os

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

import routers.files as files_router
from routers.files import sanitise_filename
from main import app
from tests.conftest import get_auth_headers, make_task


@pytest.fixture(autouse=True)
def storage_root(tmp_path, monkeypatch):
    monkeypatch.setattr(files_router, "STORAGE_ROOT", str(tmp_path))
    return tmp_path


async def _upload(client, project, user, name="notes.txt", body=b"hello devtrack", task_id=None):
    data = {"task_id": task_id} if task_id else {}
    return await client.post(
        f"/api/v1/projects/{project.id}/files",
        headers=get_auth_headers(user),
        files={"file": (name, body, "text/plain")},
        data=data,
    )


def test_sanitise_filename():
    assert sanitise_filename("../../etc/passwd") == "passwd"
    assert sanitise_filename("C:\\Users\\me\\report final.pdf") == "report_final.pdf"
    assert sanitise_filename("") == "file"
    assert sanitise_filename(None) == "file"


@pytest.mark.asyncio
class TestUpload:
    async def test_upload_and_download(self, client: AsyncClient, project, manager_user, storage_root):
        res = await _upload(client, project, manager_user)
        assert res.status_code == 200
        data = res.json()
        assert data["file_name"] == "notes.txt"
        assert data["file_size"] == len(b"hello devtrack")
        assert data["mime_type"] == "text/plain"
        assert os.listdir(storage_root / project.id)

        res = await client.get(f"/api/v1/files/{data['file_id']}/download", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        assert res.content == b"hello devtrack"
        assert "notes.txt" in res.headers["content-disposition"]

    async def test_assigned_developer_attaches_to_task(self, client: AsyncClient, project, assigned_task, developer_user):
        res = await _upload(client, project, developer_user, task_id=assigned_task.id)
        assert res.status_code == 200
        assert res.json()["task_id"] == assigned_task.id

        res = await client.get(
            f"/api/v1/projects/{project.id}/files?task_id={assigned_task.id}",
            headers=get_auth_headers(developer_user),
        )
        assert res.json()["count"] == 1

    async def test_task_from_other_project(self, client: AsyncClient, db_session, project, manager_user):
        from tests.conftest import make_project
        elsewhere = await make_project(db_session, manager_user, "Elsewhere")
        foreign_task = await make_task(db_session, elsewhere)
        res = await _upload(client, project, manager_user, task_id=foreign_task.id)
        assert res.status_code == 400

    async def test_upload_too_large(self, client: AsyncClient, project, manager_user, monkeypatch):
        monkeypatch.setattr(files_router, "MAX_UPLOAD_MB", 0)
        res = await _upload(client, project, manager_user)
        assert res.status_code == 413

    async def test_outsider_cannot_upload(self, client: AsyncClient, project, developer_user):
        res = await _upload(client, project, developer_user)
        assert res.status_code == 404

    async def test_missing_blob(self, client: AsyncClient, project, manager_user, storage_root):
        res = await _upload(client, project, manager_user)
        file_id = res.json()["file_id"]
        for name in os.listdir(storage_root / project.id):
            os.remove(storage_root / project.id / name)

        res = await client.get(f"/api/v1/files/{file_id}/download", headers=get_auth_headers(manager_user))
        assert res.status_code == 404


@pytest.mark.asyncio
class TestDelete:
    async def test_uploader_deletes(self, client: AsyncClient, project, assigned_task, developer_user, storage_root):
        res = await _upload(client, project, developer_user, task_id=assigned_task.id)
        file_id = res.json()["file_id"]

        res = await client.delete(f"/api/v1/files/{file_id}", headers=get_auth_headers(developer_user))
        assert res.status_code == 200
        assert os.listdir(storage_root / project.id) == []

        res = await client.get(f"/api/v1/files/{file_id}", headers=get_auth_headers(developer_user))
        assert res.status_code == 404

    async def test_developer_cannot_delete_managers_file(self, client: AsyncClient, project, assigned_task, manager_user, developer_user):
        res = await _upload(client, project, manager_user, task_id=assigned_task.id)
        file_id = res.json()["file_id"]
        res = await client.delete(f"/api/v1/files/{file_id}", headers=get_auth_headers(developer_user))
        assert res.status_code == 403

    async def test_project_delete_removes_blobs(self, client: AsyncClient, project, manager_user, storage_root):
        await _upload(client, project, manager_user)
        res = await client.delete(f"/api/v1/projects/{project.id}", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        assert os.listdir(storage_root / project.id) == []

    async def test_task_delete_removes_blobs(self, client: AsyncClient, project, assigned_task, manager_user, storage_root):
        await _upload(client, project, manager_user, task_id=assigned_task.id)
        res = await client.delete(f"/api/v1/tasks/{assigned_task.id}", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        assert os.listdir(storage_root / project.id) == []

    @pytest.mark.parametrize("target", ["project", "task"])
    async def test_failed_commit_keeps_blobs(
        self, client: AsyncClient, project, assigned_task, manager_user, storage_root, monkeypatch, target,
    ):
        res = await _upload(client, project, manager_user, task_id=assigned_task.id)
        file_id = res.json()["file_id"]
        url = f"/api/v1/projects/{project.id}" if target == "project" else f"/api/v1/tasks/{assigned_task.id}"

        async def failing_commit(self):
            raise RuntimeError("database unavailable")

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as failing_client:
            with monkeypatch.context() as m:
                m.setattr(AsyncSession, "commit", failing_commit)
                res = await failing_client.delete(url, headers=get_auth_headers(manager_user))
        assert res.status_code == 500

        assert len(os.listdir(storage_root / project.id)) == 1
        res = await client.get(f"/api/v1/files/{file_id}/download", headers=get_auth_headers(manager_user))
        assert res.status_code == 200
        assert res.content == b"hello devtrack"
