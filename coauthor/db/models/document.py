from sqlalchemy import Column, String, Text, Boolean, DateTime, Enum, JSON, Index, Uuid

from coauthor.core.db import Base
from coauthor.db.base import BaseModel

DOCUMENT_KINDS = ("text", "code", "image", "sheet")
VISIBILITIES = ("public", "private")


class DocumentVersion(BaseModel):
    """Строка версии документа; все версии одного документа делят document_id"""
    __tablename__ = "document_versions"

    document_id = Column("id", Uuid(as_uuid=True), nullable=False)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=True)
    kind = Column(Enum(*DOCUMENT_KINDS, name="artifact_kind"), nullable=False, default="text")
    user_id = Column(String(255), nullable=False)
    # Слабая ссылка: существование чата проверяется до записи, каскада нет
    chat_id = Column(Uuid(as_uuid=True), nullable=True)
    is_current = Column(Boolean, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    visibility = Column(String(16), nullable=False, default="private")
    author = Column(Text, nullable=True)
    style = Column(JSON, nullable=True)
    slug = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_document_versions_user_slug", "user_id", "slug", unique=True),
        Index("ix_document_versions_identity", "id", "user_id", "is_current"),
    )


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    user_id = Column(String(255), nullable=False)
    title = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    document_context = Column(JSON, nullable=True)
