from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
import uuid
from datetime import datetime

from coauthor.domains.documents.entities import DocumentKind, Visibility


class DocumentWriteRequest(BaseModel):
    """Тело запроса создания / обновления / переименования документа"""
    id: Optional[str] = None
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = Field(None, max_length=1000000)  # 1MB max content
    kind: Optional[DocumentKind] = None
    chat_id: Optional[str] = Field(None, alias="chatId")

    model_config = ConfigDict(populate_by_name=True)

    def is_rename(self) -> bool:
        """Переименование: есть id и title, нет content / kind / chatId"""
        return bool(self.id and self.title and not self.content and not self.kind and not self.chat_id)


class DocumentPublishRequest(BaseModel):
    """Схема для настроек публикации"""
    id: str
    visibility: Visibility = Visibility.PRIVATE
    author: Optional[str] = None
    style: Optional[dict] = None
    slug: str = Field(..., min_length=1, max_length=255)

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, v):
        if not v.strip():
            raise ValueError('Slug cannot be empty')
        return v.strip()


class DocumentVersionResponse(BaseModel):
    """Строка версии документа в формате API"""
    id: uuid.UUID
    title: str
    content: Optional[str] = None
    kind: DocumentKind
    user_id: str = Field(..., serialization_alias="userId")
    chat_id: Optional[uuid.UUID] = Field(None, serialization_alias="chatId")
    is_current: bool
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")
    visibility: Visibility
    author: Optional[str] = None
    style: Optional[dict] = None
    slug: Optional[str] = None

    @classmethod
    def from_entity(cls, version) -> "DocumentVersionResponse":
        return cls(
            id=version.document_id,
            title=version.title,
            content=version.content,
            kind=version.kind,
            user_id=version.user_id,
            chat_id=version.chat_id,
            is_current=version.is_current,
            created_at=version.created_at,
            updated_at=version.updated_at,
            visibility=version.visibility,
            author=version.author,
            style=version.style,
            slug=version.slug,
        )


class DocumentSummaryResponse(BaseModel):
    """Краткие данные документа для списков"""
    id: uuid.UUID
    title: str
    kind: DocumentKind
    created_at: datetime = Field(..., serialization_alias="createdAt")

    @classmethod
    def from_entity(cls, version) -> "DocumentSummaryResponse":
        return cls(id=version.document_id, title=version.title, kind=version.kind, created_at=version.created_at)


class DocumentPageResponse(BaseModel):
    """Страница текущих документов"""
    documents: List[DocumentSummaryResponse]
    has_more: bool = Field(..., serialization_alias="hasMore")


class DocumentSearchResult(BaseModel):
    id: uuid.UUID
    title: str
    type: str = "document"


class DocumentSearchResponse(BaseModel):
    """Схема для ответа с результатами поиска"""
    results: List[DocumentSearchResult]
    query: str


class DocumentRenameResponse(BaseModel):
    id: uuid.UUID
    title: str


class DocumentUpdateResponse(BaseModel):
    """Результат правки: слияние с текущей версией или новая версия"""
    outcome: str
    document: DocumentVersionResponse

    @classmethod
    def from_result(cls, result) -> "DocumentUpdateResponse":
        return cls(outcome=result.outcome.value, document=DocumentVersionResponse.from_entity(result.version))


class DocumentDeleteResponse(BaseModel):
    id: uuid.UUID
    deleted: int
