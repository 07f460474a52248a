import uuid

from sqlalchemy import BigInteger, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseace.common.base_models import GUID, TimestampMixin, UUIDBase


class Document(UUIDBase, TimestampMixin):
    __tablename__ = "documents"

    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1000), unique=True, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    uploaded_by_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False)

    uploaded_by = relationship("User", lazy="selectin")
