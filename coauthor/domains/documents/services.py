import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from coauthor.core.config import settings
from coauthor.core.errors import ChatAssociationInvalid, NotFoundOrUnauthorized
from coauthor.core.events import DocumentEvent, DocumentEventBus, document_events
from coauthor.db.repositories.chat_repository import ChatRepository
from coauthor.db.repositories.document_repository import DocumentRepository
from coauthor.domains.documents.entities import (
    DEFAULT_TITLE, DocumentKind, DocumentVersion, UpdateOutcome, VersionUpdateResult,
    Visibility, is_valid_document_id, parse_document_id, utcnow
)
from coauthor.domains.documents.schemas import DocumentPublishRequest, DocumentWriteRequest

logger = logging.getLogger(__name__)


class DocumentService:
    """Координатор версий: единственный путь долговременной записи содержимого.

    Правка от человека и принятое предложение ИИ проходят через update_content
    и получают одинаковую семантику слияния / ответвления.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        events: DocumentEventBus = document_events,
        merge_threshold_minutes: Optional[int] = None,
    ):
        self.session = session
        self.clock = clock
        self.events = events
        self.document_repository = DocumentRepository(session, clock=clock)
        self.chat_repository = ChatRepository(session)
        if merge_threshold_minutes is None:
            merge_threshold_minutes = settings.version_merge_threshold_minutes
        self.merge_threshold = timedelta(minutes=merge_threshold_minutes)

    async def create_document(self, owner_id: str, request: DocumentWriteRequest) -> DocumentVersion:
        """Создание документа (или новой текущей версии по известному id)"""
        document_id = parse_document_id(request.id) if request.id else uuid.uuid4()
        chat_id = await self._resolve_chat_id(request.chat_id)

        if await self.document_repository.check_ownership(owner_id, document_id):
            logger.info(f"Document {document_id} exists for user {owner_id}, replacing current version")
        else:
            logger.info(f"Document {document_id} is new for user {owner_id}")

        version = await self.document_repository.replace_current_version(
            owner_id,
            document_id,
            title=request.title or DEFAULT_TITLE,
            content=request.content or "",
            kind=request.kind or DocumentKind.TEXT,
            chat_id=chat_id,
        )
        self._publish("created", version)
        return version

    async def create_empty_document(
        self, owner_id: str, title: str, kind: DocumentKind = DocumentKind.TEXT
    ) -> DocumentVersion:
        """Пустой документ со свежим идентификатором"""
        version = await self.document_repository.create_initial_version(
            owner_id, uuid.uuid4(), title=title, content="", kind=kind
        )
        self._publish("created", version)
        return version

    async def update_content(
        self,
        owner_id: str,
        document_id,
        content: str,
        kind: Optional[DocumentKind] = None,
        chat_id: Optional[str] = None,
    ) -> VersionUpdateResult:
        """Слить правку в текущую версию или ответвить новую.

        Слияние только если текущая версия обновлялась меньше порога назад и
        тип содержимого не изменился; смена типа всегда дает новую версию.
        """
        document_id = parse_document_id(document_id)
        now = self.clock()

        current = await self.document_repository.get_current_version(owner_id, document_id)
        title = DEFAULT_TITLE

        if current is not None:
            title = current.title
            target_kind = DocumentKind(kind) if kind else current.kind
            elapsed = now - current.updated_at
            kind_matches = current.kind == target_kind
            should_merge = elapsed < self.merge_threshold and kind_matches

            logger.info(
                f"Threshold check for {document_id}: updated {current.minutes_since_update(now):.1f}m ago, "
                f"threshold {self.merge_threshold.total_seconds() / 60:.0f}m, kind matches: {kind_matches}, "
                f"decision: {'merge' if should_merge else 'fork'}"
            )

            if should_merge:
                version = await self.document_repository.merge_current_version(owner_id, document_id, content)
                self._publish("merged", version)
                return VersionUpdateResult(version, UpdateOutcome.MERGED)
        else:
            target_kind = DocumentKind(kind) if kind else DocumentKind.TEXT
            latest = await self.document_repository.get_latest_version_by_creation_time(document_id, owner_id)
            if latest is not None:
                title = latest.title
                logger.info(f"No current version for {document_id}, using title {title!r} from latest version")
            else:
                logger.info(f"No versions found for {document_id}, creating with default title")

        resolved_chat_id = await self._resolve_chat_id(chat_id)
        version = await self.document_repository.fork_new_version(
            owner_id, document_id, title, content, target_kind, chat_id=resolved_chat_id
        )
        self._publish("forked", version)
        return VersionUpdateResult(version, UpdateOutcome.FORKED)

    async def rename_document(self, owner_id: str, document_id, title: str) -> DocumentVersion:
        """Переименование всех версий документа"""
        document_id = parse_document_id(document_id)
        await self.document_repository.rename(owner_id, document_id, title)

        version = await self.document_repository.get_current_version(owner_id, document_id)
        if version is None:
            version = await self.document_repository.get_latest_version_by_creation_time(document_id, owner_id)
        self._publish("renamed", version)
        return version

    async def delete_document(self, owner_id: str, document_id) -> int:
        """Удаление документа со всеми версиями"""
        document_id = parse_document_id(document_id)
        deleted = await self.document_repository.delete_all(owner_id, document_id)
        self.events.publish(DocumentEvent("deleted", owner_id, str(document_id)))
        return deleted

    async def get_current_document(self, owner_id: str, document_id) -> DocumentVersion:
        """Текущая версия или NotFoundOrUnauthorized"""
        document_id = parse_document_id(document_id)
        version = await self.document_repository.get_current_version(owner_id, document_id)
        if version is None:
            raise NotFoundOrUnauthorized()
        return version

    async def get_document_versions(self, owner_id: str, document_id) -> List[DocumentVersion]:
        """Все версии документа владельца"""
        document_id = parse_document_id(document_id)
        return await self.document_repository.list_versions([document_id], owner_id)

    async def list_documents(
        self, owner_id: str, limit: int, ending_before: Optional[str] = None
    ) -> Tuple[List[DocumentVersion], bool]:
        """Страница текущих документов"""
        cursor_id = parse_document_id(ending_before) if ending_before else None
        return await self.document_repository.list_current_versions_paginated(owner_id, limit, cursor_id)

    async def search_documents(self, owner_id: str, query: str, limit: int = 5) -> List[DocumentVersion]:
        """Поиск документов"""
        logger.info(f"User {owner_id} searching for: {query!r}")
        return await self.document_repository.search_by_title_or_content(owner_id, query, limit)

    async def get_file_by_path(self, owner_id: str, path: str) -> Optional[DocumentVersion]:
        """Поиск документа сначала по id, затем по заголовку"""
        if is_valid_document_id(path):
            version = await self.document_repository.get_current_version(owner_id, parse_document_id(path))
            if version is not None:
                return version

        return await self.document_repository.get_current_by_title(owner_id, path)

    async def publish_document(self, owner_id: str, request: DocumentPublishRequest) -> DocumentVersion:
        """Обновление настроек публикации"""
        document_id = parse_document_id(request.id)
        version = await self.document_repository.update_publish_settings(
            owner_id,
            document_id,
            visibility=Visibility(request.visibility),
            author=request.author,
            style=request.style,
            slug=request.slug,
        )
        self._publish("published", version, slug=version.slug, visibility=version.visibility.value)
        return version

    async def _resolve_chat_id(self, chat_id: Optional[str]) -> Optional[uuid.UUID]:
        """Связь с чатом необязательна: невалидный чат просто отбрасывается"""
        if not chat_id:
            return None

        try:
            if not await self.chat_repository.exists(chat_id):
                raise ChatAssociationInvalid(f"Chat {chat_id} not found or invalid")
        except ChatAssociationInvalid as e:
            logger.warning(f"{e}; continuing without chat link")
            return None

        return uuid.UUID(str(chat_id))

    def _publish(self, event_type: str, version: Optional[DocumentVersion], **payload) -> None:
        if version is None:
            return
        self.events.publish(
            DocumentEvent(
                type=event_type,
                owner_id=version.user_id,
                document_id=str(version.document_id),
                title=version.title,
                payload=payload,
            )
        )
