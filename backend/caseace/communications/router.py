import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.cases.access import can_view_case
from caseace.communications.schemas import (
    DocumentRequestCreate,
    DocumentRequestRespond,
    DocumentRequestResponse,
    MessageCreate,
    MessageResponse,
)
from caseace.communications.service import (
    create_document_request,
    create_message,
    get_document_request,
    get_document_requests,
    get_messages,
    respond_to_document_request,
)
from caseace.database import get_db
from caseace.dependencies import get_current_user

router = APIRouter()


async def _require_case_access(db: AsyncSession, user: User, case_id: uuid.UUID) -> None:
    if not await can_view_case(db, user, case_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")


@router.get("/{case_id}/communications/messages", response_model=list[MessageResponse])
async def list_messages(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    await _require_case_access(db, current_user, case_id)
    return await get_messages(db, case_id)


@router.post("/{case_id}/communications/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message(
    case_id: uuid.UUID,
    data: MessageCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    await _require_case_access(db, current_user, case_id)
    return await create_message(db, case_id, current_user.id, data.content)


@router.get("/{case_id}/communications/document-requests", response_model=list[DocumentRequestResponse])
async def list_document_requests(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    await _require_case_access(db, current_user, case_id)
    return await get_document_requests(db, case_id)


@router.post(
    "/{case_id}/communications/document-requests",
    response_model=DocumentRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_document_request(
    case_id: uuid.UUID,
    data: DocumentRequestCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    await _require_case_access(db, current_user, case_id)
    return await create_document_request(db, case_id, current_user.id, data)


@router.post(
    "/{case_id}/communications/document-requests/{request_id}/respond",
    response_model=DocumentRequestResponse,
)
async def respond_document_request(
    case_id: uuid.UUID,
    request_id: uuid.UUID,
    data: DocumentRequestRespond,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    await _require_case_access(db, current_user, case_id)
    doc_request = await get_document_request(db, request_id)
    if doc_request is None or doc_request.case_id != case_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document request not found")
    return await respond_to_document_request(db, doc_request, data.response)
