import json
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.auth.service import create_audit_log
from caseace.cases.access import can_view_case
from caseace.common.pagination import PaginatedResponse
from caseace.config import settings
from caseace.database import get_db
from caseace.dependencies import get_current_user
from caseace.documents.schemas import DocumentResponse
from caseace.documents.service import delete_document, get_document, get_documents, get_download_url, upload_document

router = APIRouter()
case_router = APIRouter()


async def _get_visible_document(db: AsyncSession, user: User, document_id: uuid.UUID):
    doc = await get_document(db, document_id)
    if doc is None or not await can_view_case(db, user, doc.case_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return doc


@case_router.get("/{case_id}/documents", response_model=PaginatedResponse)
async def list_case_documents(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1, le=100),
    search: Optional[str] = None,
):
    if not await can_view_case(db, current_user, case_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    docs, total = await get_documents(db, case_id, page, page_size, search)
    items = [DocumentResponse.model_validate(d).model_dump() for d in docs]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@case_router.post("/{case_id}/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_case_document(
    case_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    file: UploadFile = File(...),
):
    if not await can_view_case(db, current_user, case_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")

    content = await file.read()
    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large (max {settings.max_upload_size_bytes // (1024 * 1024)}MB)",
        )

    doc = await upload_document(
        db, case_id, current_user.id, file.filename or "unnamed",
        content, file.content_type or "application/octet-stream",
    )
    await create_audit_log(
        db, current_user.id, "document", str(doc.id), "create",
        changes_json=json.dumps({"name": doc.name, "case_id": str(case_id)}),
        ip_address=request.client.host if request.client else None,
    )
    return doc


@router.get("/{document_id}/download")
async def download_document(
    document_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    doc = await _get_visible_document(db, current_user, document_id)
    return RedirectResponse(url=get_download_url(doc.storage_key))


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_existing_document(
    document_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    doc = await _get_visible_document(db, current_user, document_id)
    if not current_user.is_staff and doc.uploaded_by_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Can only delete your own documents")

    await delete_document(db, doc)
    await create_audit_log(
        db, current_user.id, "document", str(document_id), "delete",
        ip_address=request.client.host if request.client else None,
    )
