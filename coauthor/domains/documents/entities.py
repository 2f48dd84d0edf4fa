import enum
import re
import uuid
from datetime import datetime, timezone
from typing import Optional, Any

from coauthor.core.errors import InvalidIdentifier

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

DEFAULT_TITLE = "Untitled Document"


class DocumentKind(str, enum.Enum):
    TEXT = "text"
    CODE = "code"
    IMAGE = "image"
    SHEET = "sheet"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite отдает наивные даты; считаем их UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_document_id(value: Any) -> uuid.UUID:
    """Проверка формата идентификатора до любого обращения к хранилищу"""
    if isinstance(value, uuid.UUID):
        return value

    if not value or not isinstance(value, str) or not UUID_PATTERN.match(value.strip()):
        raise InvalidIdentifier(f"Invalid document ID format: {value!r}. Must be a valid UUID.")

    return uuid.UUID(value.strip())


def is_valid_document_id(value: Any) -> bool:
    try:
        parse_document_id(value)
    except InvalidIdentifier:
        return False
    return True


class DocumentVersion:
    """Сущность версии документа"""

    def __init__(
        self,
        document_id: uuid.UUID,
        title: str,
        content: Optional[str],
        kind: DocumentKind,
        user_id: str,
        is_current: bool,
        created_at: datetime,
        updated_at: datetime,
        chat_id: Optional[uuid.UUID] = None,
        visibility: Visibility = Visibility.PRIVATE,
        author: Optional[str] = None,
        style: Optional[dict] = None,
        slug: Optional[str] = None,
        row_uuid: Optional[uuid.UUID] = None,
    ):
        self.document_id = document_id
        self.title = title
        self.content = content
        self.kind = DocumentKind(kind)
        self.user_id = user_id
        self.is_current = is_current
        self.created_at = ensure_utc(created_at)
        self.updated_at = ensure_utc(updated_at)
        self.chat_id = chat_id
        self.visibility = Visibility(visibility)
        self.author = author
        self.style = style
        self.slug = slug
        self.row_uuid = row_uuid

    @property
    def text(self) -> str:
        return self.content or ""

    def is_empty(self) -> bool:
        return len(self.text) == 0

    def minutes_since_update(self, now: datetime) -> float:
        return (now - self.updated_at).total_seconds() / 60

    def __eq__(self, other) -> bool:
        if not isinstance(other, DocumentVersion):
            return False
        return self.row_uuid == other.row_uuid

    def __repr__(self) -> str:
        return (
            f"DocumentVersion(document_id={self.document_id}, title={self.title}, "
            f"is_current={self.is_current}, created_at={self.created_at.isoformat()})"
        )


class UpdateOutcome(str, enum.Enum):
    MERGED = "merged"
    FORKED = "forked"


class VersionUpdateResult:
    """Результат обновления содержимого: итоговая версия и выбранный путь"""

    def __init__(self, version: DocumentVersion, outcome: UpdateOutcome):
        self.version = version
        self.outcome = outcome

    def __repr__(self) -> str:
        return f"VersionUpdateResult(outcome={self.outcome.value}, version={self.version!r})"
