# tests/test_comments.py — Task comment threads
import pytest
from httpx import AsyncClient

from models import TaskAssignment
from tests.conftest import get_auth_headers, make_task


async def _post_comment(client, task, user, content="Pushed a first draft."):
    res = await client.post(
        f"/api/v1/tasks/{task.id}/comments",
        headers=get_auth_headers(user),
        json={"content": content},
    )
    assert res.status_code == 200
    return res.json()


@pytest.mark.asyncio
class TestComments:
    async def test_thread_is_oldest_first(self, client: AsyncClient, assigned_task, developer_user, manager_user):
        await _post_comment(client, assigned_task, developer_user, "First")
        await _post_comment(client, assigned_task, manager_user, "Second")

        res = await client.get(f"/api/v1/tasks/{assigned_task.id}/comments", headers=get_auth_headers(developer_user))
        assert res.status_code == 200
        data = res.json()
        assert data["count"] == 2
        assert [c["content"] for c in data["comments"]] == ["First", "Second"]
        assert data["comments"][1]["username"] == "manager"

    async def test_empty_comment_rejected(self, client: AsyncClient, assigned_task, developer_user):
        res = await client.post(
            f"/api/v1/tasks/{assigned_task.id}/comments",
            headers=get_auth_headers(developer_user),
            json={"content": ""},
        )
        assert res.status_code == 422

    async def test_blank_comment_rejected(self, client: AsyncClient, assigned_task, developer_user):
        res = await client.post(
            f"/api/v1/tasks/{assigned_task.id}/comments",
            headers=get_auth_headers(developer_user),
            json={"content": "   \n\t"},
        )
        assert res.status_code == 400

        res = await client.get(f"/api/v1/tasks/{assigned_task.id}/comments", headers=get_auth_headers(developer_user))
        assert res.json()["count"] == 0

    async def test_blank_edit_rejected(self, client: AsyncClient, assigned_task, developer_user):
        comment = await _post_comment(client, assigned_task, developer_user)
        res = await client.patch(
            f"/api/v1/comments/{comment['comment_id']}",
            headers=get_auth_headers(developer_user),
            json={"content": "   "},
        )
        assert res.status_code == 400

    async def test_cannot_comment_on_invisible_task(self, client: AsyncClient, db_session, project, developer_user):
        hidden = await make_task(db_session, project, title="Hidden")
        res = await client.post(
            f"/api/v1/tasks/{hidden.id}/comments",
            headers=get_auth_headers(developer_user),
            json={"content": "Hello?"},
        )
        assert res.status_code == 404

    async def test_author_edits(self, client: AsyncClient, assigned_task, developer_user):
        comment = await _post_comment(client, assigned_task, developer_user)
        res = await client.patch(
            f"/api/v1/comments/{comment['comment_id']}",
            headers=get_auth_headers(developer_user),
            json={"content": "Pushed a second draft."},
        )
        assert res.status_code == 200
        assert res.json()["content"] == "Pushed a second draft."
        assert res.json()["updated_at"] is not None

    async def test_only_author_edits(self, client: AsyncClient, assigned_task, developer_user, manager_user):
        comment = await _post_comment(client, assigned_task, developer_user)
        res = await client.patch(
            f"/api/v1/comments/{comment['comment_id']}",
            headers=get_auth_headers(manager_user),
            json={"content": "Edited by someone else"},
        )
        assert res.status_code == 403

    async def test_manager_moderates(self, client: AsyncClient, assigned_task, developer_user, manager_user):
        comment = await _post_comment(client, assigned_task, developer_user)
        res = await client.delete(f"/api/v1/comments/{comment['comment_id']}", headers=get_auth_headers(manager_user))
        assert res.status_code == 200

        res = await client.get(f"/api/v1/tasks/{assigned_task.id}/comments", headers=get_auth_headers(manager_user))
        assert res.json()["count"] == 0

    async def test_developer_cannot_delete_others(
        self, client: AsyncClient, db_session, assigned_task, manager_user, developer_user, other_developer,
    ):
        db_session.add(TaskAssignment(task_id=assigned_task.id, developer_id=other_developer.id))
        await db_session.commit()

        comment = await _post_comment(client, assigned_task, other_developer)
        res = await client.delete(f"/api/v1/comments/{comment['comment_id']}", headers=get_auth_headers(developer_user))
        assert res.status_code == 403

    async def test_missing_comment(self, client: AsyncClient, manager_user):
        res = await client.delete("/api/v1/comments/nope", headers=get_auth_headers(manager_user))
        assert res.status_code == 404
