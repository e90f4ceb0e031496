# routers/files.py — Project/task file attachments on local disk storage
import os
import re
import uuid
import logging
import mimetypes
from typing import Optional

from fastapi import (
    APIRouter, Depends, HTTPException, Request, UploadFile, Form, File as FastAPIFile,
)
from fastapi.responses import FileResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access import ts, get_visible_project, get_visible_task, can_manage_project
from auth import require_permission, record_audit, CurrentUser
from database import get_db_session
from models import File, Project, AuditEventType

logger = logging.getLogger("devtrack.files")

router = APIRouter(prefix="/api/v1", tags=["Files"])

# Storage directory (configurable via env)
STORAGE_ROOT = os.getenv("FILE_STORAGE_ROOT", "./data/files")
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "50"))

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


# --- Schemas ---

class FileOut(BaseModel):
    file_id: str
    project_id: str
    task_id: Optional[str] = None
    uploaded_by_user_id: str
    file_name: str
    file_size: int
    mime_type: Optional[str] = None
    upload_date: str


# --- Helpers ---

def sanitise_filename(name: Optional[str]) -> str:
    """Strip directories and anything outside [A-Za-z0-9._-]"""
    base = os.path.basename((name or "").replace("\\", "/"))
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[:200] or "file"


def _file_to_out(f: File) -> FileOut:
    return FileOut(
        file_id=f.id,
        project_id=f.project_id,
        task_id=f.task_id,
        uploaded_by_user_id=f.uploaded_by_user_id,
        file_name=f.file_name,
        file_size=f.file_size or 0,
        mime_type=f.mime_type,
        upload_date=ts(f.upload_date) or "",
    )


def _absolute_path(storage_path: str) -> str:
    return os.path.join(STORAGE_ROOT, storage_path)


async def _get_file(file_id: str, user: CurrentUser, db: AsyncSession) -> File:
    node = (await db.execute(select(File).where(File.id == file_id))).scalar_one_or_none()
    if not node:
        raise HTTPException(status_code=404, detail="File not found")
    await get_visible_project(node.project_id, user, db)
    return node


async def stored_blob_paths(db: AsyncSession, project_id: Optional[str] = None, task_id: Optional[str] = None):
    """Absolute blob paths of every file row under a project or task"""
    stmt = select(File.file_path_in_storage)
    if project_id:
        stmt = stmt.where(File.project_id == project_id)
    if task_id:
        stmt = stmt.where(File.task_id == task_id)
    return [_absolute_path(p) for p in (await db.execute(stmt)).scalars().all()]


def unlink_blobs(paths):
    """Remove stored blobs; only call once the owning rows are committed away"""
    for path in paths:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove stored file {path}: {e}")


# --- Endpoints ---

@router.post("/projects/{project_id}/files", response_model=FileOut)
async def upload_file(
    project_id: str,
    request: Request,
    file: UploadFile = FastAPIFile(...),
    task_id: Optional[str] = Form(default=None),
    user: CurrentUser = Depends(require_permission("files:write")),
    db: AsyncSession = Depends(get_db_session),
):
    """Upload a file to a project, optionally attached to one of its tasks"""
    project = await get_visible_project(project_id, user, db)
    if task_id:
        task = await get_visible_task(task_id, user, db)
        if task.project_id != project.id:
            raise HTTPException(status_code=400, detail="Task does not belong to this project")

    max_bytes = MAX_UPLOAD_MB * 1024 * 1024
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail=f"File exceeds the {MAX_UPLOAD_MB} MB upload limit")

    file_name = sanitise_filename(file.filename)
    storage_path = f"{project.id}/{uuid.uuid4()}_{file_name}"
    absolute = _absolute_path(storage_path)
    os.makedirs(os.path.dirname(absolute), exist_ok=True)
    with open(absolute, "wb") as fh:
        fh.write(content)

    mime_type = file.content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
    node = File(
        project_id=project.id,
        task_id=task_id or None,
        uploaded_by_user_id=user.id,
        file_name=file_name,
        file_path_in_storage=storage_path,
        file_size=len(content),
        mime_type=mime_type,
    )
    db.add(node)
    await db.flush()

    record_audit(
        db, AuditEventType.FILE_UPLOADED, user_id=user.id,
        resource_type="file", resource_id=node.id,
        details={"project_id": project.id, "file_name": file_name, "size": len(content)},
        request=request,
    )
    await db.commit()
    await db.refresh(node)
    logger.info(f"Stored {file_name} ({len(content)} bytes) for project {project.id}")
    return _file_to_out(node)


@router.get("/projects/{project_id}/files")
async def list_project_files(
    project_id: str,
    task_id: Optional[str] = None,
    user: CurrentUser = Depends(require_permission("files:read")),
    db: AsyncSession = Depends(get_db_session),
):
    """List files of a project, or of one task in it"""
    project = await get_visible_project(project_id, user, db)
    stmt = select(File).where(File.project_id == project.id).order_by(File.upload_date.desc())
    if task_id:
        stmt = stmt.where(File.task_id == task_id)
    files = (await db.execute(stmt)).scalars().all()
    return {"files": [_file_to_out(f) for f in files], "count": len(files)}


@router.get("/files/{file_id}", response_model=FileOut)
async def get_file(
    file_id: str,
    user: CurrentUser = Depends(require_permission("files:read")),
    db: AsyncSession = Depends(get_db_session),
):
    """Get file metadata"""
    return _file_to_out(await _get_file(file_id, user, db))


@router.get("/files/{file_id}/download")
async def download_file(
    file_id: str,
    user: CurrentUser = Depends(require_permission("files:read")),
    db: AsyncSession = Depends(get_db_session),
):
    node = await _get_file(file_id, user, db)
    path = _absolute_path(node.file_path_in_storage)
    if not os.path.isfile(path):
        logger.error(f"Blob missing for file {node.id}: {path}")
        raise HTTPException(status_code=404, detail="Stored file is missing")
    return FileResponse(path, media_type=node.mime_type, filename=node.file_name)


@router.delete("/files/{file_id}")
async def delete_file(
    file_id: str,
    request: Request,
    user: CurrentUser = Depends(require_permission("files:write")),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a file and its stored blob (uploader, project owner or admin)"""
    node = await _get_file(file_id, user, db)
    if node.uploaded_by_user_id != user.id:
        project = (await db.execute(select(Project).where(Project.id == node.project_id))).scalar_one()
        if not can_manage_project(user, project):
            raise HTTPException(status_code=403, detail="Cannot delete files you didn't upload")

    path = _absolute_path(node.file_path_in_storage)
    await db.delete(node)
    record_audit(
        db, AuditEventType.FILE_DELETED, user_id=user.id,
        resource_type="file", resource_id=file_id,
        details={"file_name": node.file_name}, request=request,
    )
    await db.commit()
    unlink_blobs([path])

    return {"file_id": file_id, "status": "deleted"}
