import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.communications.models import DocumentRequest, DocumentRequestStatus, Message
from caseace.communications.schemas import DocumentRequestCreate


async def get_messages(db: AsyncSession, case_id: uuid.UUID) -> list[Message]:
    result = await db.execute(select(Message).where(Message.case_id == case_id).order_by(Message.created_at.asc()))
    return result.scalars().all()


async def create_message(db: AsyncSession, case_id: uuid.UUID, sender_id: uuid.UUID, content: str) -> Message:
    message = Message(case_id=case_id, sender_id=sender_id, content=content)
    db.add(message)
    await db.flush()
    await db.refresh(message)
    return message


async def get_document_requests(db: AsyncSession, case_id: uuid.UUID) -> list[DocumentRequest]:
    result = await db.execute(
        select(DocumentRequest).where(DocumentRequest.case_id == case_id).order_by(DocumentRequest.created_at.desc())
    )
    return result.scalars().all()


async def get_document_request(db: AsyncSession, request_id: uuid.UUID) -> Optional[DocumentRequest]:
    result = await db.execute(select(DocumentRequest).where(DocumentRequest.id == request_id))
    return result.scalar_one_or_none()


async def create_document_request(
    db: AsyncSession, case_id: uuid.UUID, requested_by: uuid.UUID, data: DocumentRequestCreate
) -> DocumentRequest:
    request = DocumentRequest(
        case_id=case_id,
        requested_by_id=requested_by,
        title=data.title,
        description=data.description,
    )
    db.add(request)
    await db.flush()
    await db.refresh(request)
    return request


async def respond_to_document_request(db: AsyncSession, request: DocumentRequest, response: str) -> DocumentRequest:
    request.response = response
    request.status = DocumentRequestStatus.responded
    request.responded_at = datetime.now(timezone.utc)
    await db.flush()
    await db.refresh(request)
    return request
