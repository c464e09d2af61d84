"""
Document endpoints backed by the "documents" storage bucket.

    GET    /api/v1/documents                     list (q matches name, project_id)
    POST   /api/v1/documents                     multipart upload (201)
    GET    /api/v1/documents/{id}                metadata
    GET    /api/v1/documents/{id}/download-url   signed URL, valid APP_SIGNED_URL_TTL seconds
    DELETE /api/v1/documents/{id}                remove stored object, then the row

Objects are stored as ``documents/{epoch_millis}.{ext}``. If the row
insert fails after the upload, the stored object is removed again.
"""

import logging
import sqlite3
import time
from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status

from api import cache
from api.auth import get_current_user
from api.database import get_db, require_owned
from api.models import DocumentOut, DownloadUrlOut, Page
from api.settings import get_settings, get_storage
from utils.common import file_extension, file_stem
from utils.config import DOCUMENTS_BUCKET
from utils.database import insert_row, new_id, query_one, query_to_dicts, utc_now
from utils.query import build_where_clause
from utils.storage import LocalStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])

_SELECT = """
    SELECT d.*, p.name AS project_name
    FROM documents d
    LEFT JOIN projects p ON p.id = d.project_id
"""


def list_documents(
    conn: sqlite3.Connection,
    owner_id: str,
    q: str | None = None,
    project_id: str | None = None,
    limit: int = 500,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(rows, total)``, newest upload first."""
    where, params = build_where_clause(
        owner_id=owner_id,
        owner_column="d.owner_id",
        equals={"d.project_id": project_id},
        search=q,
        search_columns=["d.name"],
    )
    total = conn.execute(f"SELECT COUNT(*) FROM documents d {where}", params).fetchone()[0]
    rows = query_to_dicts(
        conn, f"{_SELECT} {where} ORDER BY d.created_at DESC LIMIT ? OFFSET ?",
        params + [limit, offset],
    )
    return rows, total


def get_document(conn: sqlite3.Connection, owner_id: str, document_id: str) -> dict[str, Any]:
    row = query_one(conn, f"{_SELECT} WHERE d.id = ? AND d.owner_id = ?", (document_id, owner_id))
    if row is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return row


def _object_path(storage: LocalStorage, ext: str) -> str:
    """``documents/{epoch_millis}.{ext}``, bumped by 1 ms until unused."""
    millis = int(time.time() * 1000)
    suffix = f".{ext}" if ext else ""
    while storage.exists(DOCUMENTS_BUCKET, f"documents/{millis}{suffix}"):
        millis += 1
    return f"documents/{millis}{suffix}"


def upload_document(
    conn: sqlite3.Connection,
    storage: LocalStorage,
    owner_id: str,
    filename: str,
    data: bytes,
    content_type: str | None = None,
    name: str | None = None,
    project_id: str | None = None,
    task_id: str | None = None,
) -> dict[str, Any]:
    """Store the file, then record it. Returns the new document row.

    Raises:
        HTTPException: 400 for an empty file or a name shorter than 2
            characters, 404 for an unknown project/task, 413 when larger
            than the configured upload limit.
    """
    if not data:
        raise HTTPException(status_code=400, detail="Please select a file to upload")
    max_bytes = get_settings().max_upload_bytes
    if len(data) > max_bytes:
        raise HTTPException(status_code=413,
                            detail=f"File exceeds the {get_settings().max_upload_mb} MB limit")
    display_name = (name or "").strip() or file_stem(filename or "")
    if len(display_name) < 2:
        raise HTTPException(status_code=400, detail="Document name must be at least 2 characters")
    project_id = project_id or None
    task_id = task_id or None
    if project_id:
        require_owned(conn, "projects", project_id, owner_id, "Project")
    if task_id:
        require_owned(conn, "tasks", task_id, owner_id, "Task")

    path = _object_path(storage, file_extension(filename or ""))
    storage.upload(DOCUMENTS_BUCKET, path, data)
    doc_id = new_id()
    try:
        insert_row(conn, "documents", {
            "id": doc_id,
            "owner_id": owner_id,
            "name": display_name,
            "file_path": path,
            "file_type": content_type or "application/octet-stream",
            "file_size": len(data),
            "project_id": project_id,
            "task_id": task_id,
            "created_at": utc_now(),
        })
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        storage.remove(DOCUMENTS_BUCKET, [path])
        raise
    logger.info("document uploaded id=%s path=%s bytes=%d", doc_id, path, len(data))
    cache.invalidate(owner_id)
    return get_document(conn, owner_id, doc_id)


def delete_document(conn: sqlite3.Connection, storage: LocalStorage,
                    owner_id: str, document_id: str) -> None:
    """Remove the stored object first, then the database row."""
    row = require_owned(conn, "documents", document_id, owner_id, "Document")
    storage.remove(DOCUMENTS_BUCKET, [row["file_path"]])
    conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
    conn.commit()
    logger.info("document deleted id=%s path=%s", document_id, row["file_path"])
    cache.invalidate(owner_id)


def download_url(storage: LocalStorage, document: dict[str, Any]) -> DownloadUrlOut:
    ttl = get_settings().signed_url_ttl
    url = storage.create_signed_url(DOCUMENTS_BUCKET, document["file_path"], ttl)
    return DownloadUrlOut(url=url, expires_in=ttl)


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.get("", response_model=Page[DocumentOut], summary="List documents")
def list_documents_endpoint(
    q: str | None = Query(None, description="Case-insensitive match on document name"),
    project_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Page[DocumentOut]:
    rows, total = list_documents(conn, user["id"], q, project_id, limit, offset)
    return Page[DocumentOut](total=total, limit=limit, offset=offset,
                             items=[DocumentOut(**r) for r in rows])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DocumentOut,
             summary="Upload document",
             responses={413: {"description": "File too large"}})
def upload_document_endpoint(
    file: UploadFile = File(..., description="The file to store"),
    name: str | None = Form(None, description="Display name; defaults to the file name stem"),
    project_id: str | None = Form(None),
    task_id: str | None = Form(None),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
) -> DocumentOut:
    data = file.file.read(get_settings().max_upload_bytes + 1)
    row = upload_document(conn, storage, user["id"], file.filename or "", data,
                          file.content_type, name, project_id, task_id)
    return DocumentOut(**row)


@router.get("/{document_id}", response_model=DocumentOut, summary="Document metadata")
def get_document_endpoint(
    document_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> DocumentOut:
    return DocumentOut(**get_document(conn, user["id"], document_id))


@router.get("/{document_id}/download-url", response_model=DownloadUrlOut,
            summary="Signed download URL")
def download_url_endpoint(
    document_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
) -> DownloadUrlOut:
    return download_url(storage, get_document(conn, user["id"], document_id))


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="Delete document")
def delete_document_endpoint(
    document_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
) -> Response:
    delete_document(conn, storage, user["id"], document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
