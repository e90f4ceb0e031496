# routers/comments.py — Task discussion threads
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access import ts, get_visible_task, can_manage_project
from auth import get_current_user, require_permission, CurrentUser
from database import get_db_session
from models import Comment, Project, Task, User, utcnow

router = APIRouter(prefix="/api/v1", tags=["Comments"])


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class CommentOut(BaseModel):
    comment_id: str
    task_id: str
    user_id: str
    username: str
    content: str
    created_at: str
    updated_at: Optional[str] = None


def _clean_content(content: str) -> str:
    content = content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment cannot be blank")
    return content


def _comment_to_out(c: Comment, username: Optional[str]) -> CommentOut:
    return CommentOut(
        comment_id=c.id,
        task_id=c.task_id,
        user_id=c.user_id,
        username=username or "Unknown",
        content=c.content,
        created_at=ts(c.created_at) or "",
        updated_at=ts(c.updated_at),
    )


async def _get_comment(comment_id: str, user: CurrentUser, db: AsyncSession) -> Comment:
    comment = (await db.execute(select(Comment).where(Comment.id == comment_id))).scalar_one_or_none()
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    # Comments on tasks the caller cannot see do not exist for them
    await get_visible_task(comment.task_id, user, db)
    return comment


@router.get("/tasks/{task_id}/comments")
async def list_comments(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """List comments on a task, oldest first"""
    task = await get_visible_task(task_id, user, db)
    stmt = (
        select(Comment, User.username)
        .join(User, User.id == Comment.user_id)
        .where(Comment.task_id == task.id)
        .order_by(Comment.created_at.asc())
    )
    rows = (await db.execute(stmt)).all()
    return {"comments": [_comment_to_out(c, username) for c, username in rows], "count": len(rows)}


@router.post("/tasks/{task_id}/comments", response_model=CommentOut)
async def add_comment(
    task_id: str,
    data: CommentCreate,
    user: CurrentUser = Depends(require_permission("comments:write")),
    db: AsyncSession = Depends(get_db_session),
):
    task = await get_visible_task(task_id, user, db)
    comment = Comment(task_id=task.id, user_id=user.id, content=_clean_content(data.content))
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return _comment_to_out(comment, user.username)


@router.patch("/comments/{comment_id}", response_model=CommentOut)
async def update_comment(
    comment_id: str,
    data: CommentUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Edit a comment (only the author can edit)"""
    comment = await _get_comment(comment_id, user, db)
    if comment.user_id != user.id:
        raise HTTPException(status_code=403, detail="Can only edit your own comments")

    comment.content = _clean_content(data.content)
    comment.updated_at = utcnow()
    await db.commit()
    await db.refresh(comment)
    return _comment_to_out(comment, user.username)


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a comment (author, project owner or admin)"""
    comment = await _get_comment(comment_id, user, db)
    if comment.user_id != user.id:
        stmt = select(Project).join(Task, Task.project_id == Project.id).where(Task.id == comment.task_id)
        project = (await db.execute(stmt)).scalar_one()
        if not can_manage_project(user, project):
            raise HTTPException(status_code=403, detail="Cannot delete others' comments")

    await db.delete(comment)
    await db.commit()
    return {"status": "deleted", "comment_id": comment_id}
