import logging
import uuid
from datetime import timedelta
from io import BytesIO
from typing import Optional

from minio import Minio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.config import settings
from caseace.documents.models import Document

logger = logging.getLogger(__name__)

_minio_client = None


def get_minio_client() -> Minio:
    global _minio_client
    if _minio_client is None:
        _minio_client = Minio(
            settings.minio_endpoint,
            access_key=settings.minio_root_user,
            secret_key=settings.minio_root_password,
            secure=settings.minio_use_ssl,
        )
        if not _minio_client.bucket_exists(settings.minio_bucket):
            _minio_client.make_bucket(settings.minio_bucket)
    return _minio_client


def store_object(storage_key: str, content: bytes, content_type: str) -> None:
    client = get_minio_client()
    client.put_object(
        settings.minio_bucket,
        storage_key,
        BytesIO(content),
        length=len(content),
        content_type=content_type,
    )


def remove_stored_object(storage_key: str) -> None:
    """Delete an object from the bucket; failures are logged, never raised."""
    try:
        get_minio_client().remove_object(settings.minio_bucket, storage_key)
    except Exception as exc:
        logger.error("Could not remove %s from object storage: %s", storage_key, exc)


def get_download_url(storage_key: str, expires_hours: int = 1) -> str:
    client = get_minio_client()
    return client.presigned_get_object(settings.minio_bucket, storage_key, expires=timedelta(hours=expires_hours))


async def get_documents(
    db: AsyncSession,
    case_id: uuid.UUID,
    page: int = 1,
    page_size: int = 25,
    search: Optional[str] = None,
) -> tuple[list[Document], int]:
    query = select(Document).where(Document.case_id == case_id)
    count_query = select(func.count(Document.id)).where(Document.case_id == case_id)

    if search:
        query = query.where(Document.name.ilike(f"%{search}%"))
        count_query = count_query.where(Document.name.ilike(f"%{search}%"))

    total = (await db.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    result = await db.execute(query.order_by(Document.created_at.desc()).offset(offset).limit(page_size))
    return result.scalars().all(), total


async def get_document(db: AsyncSession, document_id: uuid.UUID) -> Optional[Document]:
    result = await db.execute(select(Document).where(Document.id == document_id))
    return result.scalar_one_or_none()


async def upload_document(
    db: AsyncSession,
    case_id: uuid.UUID,
    uploaded_by: uuid.UUID,
    filename: str,
    content: bytes,
    file_type: str,
) -> Document:
    storage_key = f"cases/{case_id}/{uuid.uuid4()}/{filename}"
    store_object(storage_key, content, file_type)

    doc = Document(
        case_id=case_id,
        uploaded_by_id=uploaded_by,
        name=filename,
        file_type=file_type,
        storage_key=storage_key,
        file_size=len(content),
    )
    db.add(doc)
    await db.flush()
    await db.refresh(doc)
    logger.info("Stored document %s (%d bytes) for case %s", filename, len(content), case_id)
    return doc


async def delete_document(db: AsyncSession, document: Document) -> None:
    remove_stored_object(document.storage_key)
    await db.delete(document)
    await db.flush()
