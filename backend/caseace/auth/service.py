import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, status
from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import AuditLog, User, UserRole
from caseace.auth.schemas import RegisterRequest
from caseace.config import settings
from caseace.database import session_factory

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload = {"sub": user_id, "role": role, "type": "access", "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def generate_password(length: int = 12) -> str:
    """Random password for portal accounts created on someone else's behalf."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def register_user(db: AsyncSession, data: RegisterRequest) -> User:
    if await get_user_by_email(db, data.email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User with this email already exists")

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        name=data.name,
        phone=data.phone,
        address=data.address,
        role=data.role,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Registered user %s with role %s", user.email, user.role.value)
    return user


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[uuid.UUID],
    entity_type: str,
    entity_id: str,
    action: str,
    changes_json: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    user_email: Optional[str] = None,
    outcome: str = "success",
):
    from caseace.common.audit import ACTION_SEVERITY, compute_integrity_hash

    # Chain onto the most recent entry
    prev_result = await db.execute(select(AuditLog.seq, AuditLog.integrity_hash).order_by(AuditLog.seq.desc()).limit(1))
    prev = prev_result.first()
    previous_hash = prev.integrity_hash if prev else None
    seq = prev.seq + 1 if prev else 1

    severity = ACTION_SEVERITY.get(action, "info")

    entry_id = str(uuid.uuid4())
    now_dt = datetime.now(timezone.utc)
    now = now_dt.isoformat()

    integrity_hash = compute_integrity_hash(
        entry_id,
        now,
        str(user_id) if user_id else None,
        action,
        entity_type,
        str(entity_id),
        changes_json,
        previous_hash,
    )

    entry = AuditLog(
        id=uuid.UUID(entry_id),
        seq=seq,
        user_id=user_id,
        user_email=user_email,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        changes_json=changes_json,
        ip_address=ip_address,
        user_agent=user_agent,
        outcome=outcome,
        severity=severity,
        integrity_hash=integrity_hash,
        previous_hash=previous_hash,
        hashed_at=now,
        timestamp=now_dt,
    )
    db.add(entry)
    await db.flush()
    return entry


async def bootstrap_partner():
    """Create the first partner account if the users table is empty."""
    async with session_factory() as db:
        result = await db.execute(select(User).limit(1))
        if result.scalar_one_or_none() is not None:
            return

        partner = User(
            email=settings.first_partner_email,
            password_hash=hash_password(settings.first_partner_password),
            name="Managing Partner",
            role=UserRole.partner,
        )
        db.add(partner)
        await db.commit()
        logger.info("Bootstrap partner created: %s", settings.first_partner_email)
