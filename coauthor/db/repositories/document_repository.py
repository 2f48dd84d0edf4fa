import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coauthor.core.errors import NotFoundOrUnauthorized, SlugConflict
from coauthor.db.models.document import DocumentVersion as DocumentVersionModel
from coauthor.domains.documents.entities import DocumentVersion, DocumentKind, Visibility, utcnow

logger = logging.getLogger(__name__)


class DocumentRepository:
    """Хранилище версий документов.

    Все операции ограничены парой (document_id, user_id). Инвариант: у пары не
    больше одной строки с is_current = True в любой наблюдаемый момент.
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    def _select(self):
        return select(DocumentVersionModel).execution_options(populate_existing=True)

    def _identity(self, owner_id: str, document_id: uuid.UUID):
        return and_(
            DocumentVersionModel.document_id == document_id,
            DocumentVersionModel.user_id == owner_id,
        )

    def _new_row(
        self,
        owner_id: str,
        document_id: uuid.UUID,
        title: str,
        content: str,
        kind: DocumentKind,
        chat_id: Optional[uuid.UUID],
    ) -> DocumentVersionModel:
        now = self.clock()
        return DocumentVersionModel(
            uuid=uuid.uuid4(),
            document_id=document_id,
            title=title,
            content=content,
            kind=DocumentKind(kind).value,
            user_id=owner_id,
            chat_id=chat_id,
            is_current=True,
            created_at=now,
            updated_at=now,
            visibility=Visibility.PRIVATE.value,
        )

    async def create_initial_version(
        self,
        owner_id: str,
        document_id: uuid.UUID,
        title: str,
        content: str = "",
        kind: DocumentKind = DocumentKind.TEXT,
        chat_id: Optional[uuid.UUID] = None,
    ) -> DocumentVersion:
        """Вставка первой строки документа.

        Флаг is_current у других строк не снимается: при повторном создании
        используйте replace_current_version.
        """
        db_version = self._new_row(owner_id, document_id, title, content, kind, chat_id)
        self.session.add(db_version)
        try:
            await self.session.commit()
            await self.session.refresh(db_version)
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Saved initial version for doc {document_id}, user {owner_id}")
        return self._to_domain(db_version)

    async def clear_current_flag(self, owner_id: str, document_id: uuid.UUID) -> None:
        """Снятие флага is_current со всех строк документа"""
        await self.session.execute(
            update(DocumentVersionModel)
            .where(self._identity(owner_id, document_id))
            .values(is_current=False, slug=None)
        )
        await self.session.commit()
        logger.info(f"Marked versions of doc {document_id} for user {owner_id} as not current")

    async def replace_current_version(
        self,
        owner_id: str,
        document_id: uuid.UUID,
        title: str,
        content: str,
        kind: DocumentKind,
        chat_id: Optional[uuid.UUID] = None,
        carry_publish_settings: bool = False,
    ) -> DocumentVersion:
        """Атомарно: снять текущий флаг и вставить новую текущую строку"""
        try:
            previous = None
            if carry_publish_settings:
                result = await self.session.execute(
                    self._select()
                    .where(self._identity(owner_id, document_id))
                    .where(DocumentVersionModel.is_current.is_(True))
                    .limit(1)
                )
                previous = result.scalar_one_or_none()
                if previous is not None:
                    previous = {
                        "visibility": previous.visibility,
                        "author": previous.author,
                        "style": previous.style,
                        "slug": previous.slug,
                    }

            # Неактуальные строки не держат slug: уникальный индекс покрывает все строки владельца.
            # При пересоздании slug сбрасывается, при форке переезжает на новую строку
            await self.session.execute(
                update(DocumentVersionModel)
                .where(self._identity(owner_id, document_id))
                .values(is_current=False, slug=None)
            )

            db_version = self._new_row(owner_id, document_id, title, content, kind, chat_id)
            if previous:
                db_version.visibility = previous["visibility"]
                db_version.author = previous["author"]
                db_version.style = previous["style"]
                db_version.slug = previous["slug"]

            self.session.add(db_version)
            await self.session.commit()
            await self.session.refresh(db_version)
        except Exception:
            await self.session.rollback()
            logger.exception(f"Failed to create new version for doc {document_id}, user {owner_id}")
            raise

        logger.info(f"Created new current version for doc {document_id}, user {owner_id}")
        return self._to_domain(db_version)

    async def fork_new_version(
        self,
        owner_id: str,
        document_id: uuid.UUID,
        title: str,
        content: str,
        kind: DocumentKind,
        chat_id: Optional[uuid.UUID] = None,
    ) -> DocumentVersion:
        """Новая версия поверх текущей; настройки публикации переносятся"""
        return await self.replace_current_version(
            owner_id,
            document_id,
            title,
            content,
            kind,
            chat_id=chat_id,
            carry_publish_settings=True,
        )

    async def merge_current_version(
        self, owner_id: str, document_id: uuid.UUID, content: str
    ) -> DocumentVersion:
        """Обновление содержимого текущей версии на месте"""
        result = await self.session.execute(
            update(DocumentVersionModel)
            .where(self._identity(owner_id, document_id))
            .where(DocumentVersionModel.is_current.is_(True))
            .values(content=content, updated_at=self.clock())
            .execution_options(synchronize_session="fetch")
        )

        if result.rowcount == 0:
            await self.session.rollback()
            logger.warning(f"No current version to update for doc {document_id}, user {owner_id}")
            raise NotFoundOrUnauthorized()

        await self.session.commit()
        logger.info(f"Updated content for current version of doc {document_id}, user {owner_id}")

        current = await self.get_current_version(owner_id, document_id)
        if current is None:
            raise NotFoundOrUnauthorized()
        return current

    async def get_current_version(self, owner_id: str, document_id: uuid.UUID) -> Optional[DocumentVersion]:
        """Текущая версия документа владельца"""
        result = await self.session.execute(
            self._select()
            .where(self._identity(owner_id, document_id))
            .where(DocumentVersionModel.is_current.is_(True))
            .limit(1)
        )
        db_version = result.scalar_one_or_none()
        return self._to_domain(db_version) if db_version else None

    async def get_latest_version_by_creation_time(
        self, document_id: uuid.UUID, owner_id: Optional[str] = None
    ) -> Optional[DocumentVersion]:
        """Последняя по времени создания строка, без учета флага is_current"""
        query = self._select().where(DocumentVersionModel.document_id == document_id)
        if owner_id is not None:
            query = query.where(DocumentVersionModel.user_id == owner_id)

        result = await self.session.execute(
            query.order_by(DocumentVersionModel.created_at.desc()).limit(1)
        )
        db_version = result.scalar_one_or_none()
        return self._to_domain(db_version) if db_version else None

    async def list_versions(self, document_ids: Iterable[uuid.UUID], owner_id: str) -> List[DocumentVersion]:
        """Все версии документов владельца по возрастанию времени создания"""
        ids = list(document_ids)
        if not ids:
            return []

        result = await self.session.execute(
            self._select()
            .where(DocumentVersionModel.user_id == owner_id)
            .where(DocumentVersionModel.document_id.in_(ids))
            .order_by(DocumentVersionModel.created_at.asc())
        )
        return [self._to_domain(row) for row in result.scalars().all()]

    async def list_current_versions_paginated(
        self, owner_id: str, limit: int, cursor_id: Optional[uuid.UUID] = None
    ) -> Tuple[List[DocumentVersion], bool]:
        """Курсорная пагинация по текущим версиям.

        Курсор - идентификатор уже показанного документа; берется время его
        создания, и возвращаются строки строго старше него.
        """
        query = (
            self._select()
            .where(DocumentVersionModel.user_id == owner_id)
            .where(DocumentVersionModel.is_current.is_(True))
        )

        if cursor_id is not None:
            cursor = await self.get_current_version(owner_id, cursor_id)
            if cursor is None:
                cursor = await self.get_latest_version_by_creation_time(cursor_id, owner_id)
            if cursor is None:
                return [], False
            query = query.where(DocumentVersionModel.created_at < cursor.created_at)

        result = await self.session.execute(
            query.order_by(DocumentVersionModel.created_at.desc()).limit(limit + 1)
        )
        rows = result.scalars().all()

        has_more = len(rows) > limit
        return [self._to_domain(row) for row in rows[:limit]], has_more

    async def check_ownership(self, owner_id: str, document_id: uuid.UUID) -> bool:
        """Есть ли у владельца хотя бы одна версия документа"""
        result = await self.session.execute(
            select(func.count(DocumentVersionModel.uuid)).where(self._identity(owner_id, document_id))
        )
        return (result.scalar() or 0) > 0

    async def count_versions(self, owner_id: str, document_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count(DocumentVersionModel.uuid)).where(self._identity(owner_id, document_id))
        )
        return result.scalar() or 0

    async def rename(self, owner_id: str, document_id: uuid.UUID, new_title: str) -> None:
        """Переименование всех версий документа"""
        if not await self.check_ownership(owner_id, document_id):
            logger.warning(f"User {owner_id} attempted to rename document {document_id} they don't own")
            raise NotFoundOrUnauthorized()

        await self.session.execute(
            update(DocumentVersionModel)
            .where(self._identity(owner_id, document_id))
            .values(title=new_title)
        )
        await self.session.commit()
        logger.info(f"Renamed document {document_id} to {new_title!r} for user {owner_id}")

    async def delete_all(self, owner_id: str, document_id: uuid.UUID) -> int:
        """Удаление всех версий документа"""
        if not await self.check_ownership(owner_id, document_id):
            logger.warning(f"User {owner_id} attempted to delete document {document_id} they don't own")
            raise NotFoundOrUnauthorized()

        result = await self.session.execute(
            delete(DocumentVersionModel).where(self._identity(owner_id, document_id))
        )
        await self.session.commit()
        logger.info(f"Deleted all versions of document {document_id} for user {owner_id}")
        return result.rowcount

    async def update_publish_settings(
        self,
        owner_id: str,
        document_id: uuid.UUID,
        visibility: Visibility,
        author: Optional[str],
        style: Optional[dict],
        slug: Optional[str],
    ) -> DocumentVersion:
        """Настройки публикации текущей версии в одной транзакции"""
        try:
            if slug:
                duplicate = await self.session.execute(
                    select(DocumentVersionModel.uuid)
                    .where(DocumentVersionModel.user_id == owner_id)
                    .where(DocumentVersionModel.slug == slug)
                    .where(DocumentVersionModel.is_current.is_(True))
                    .where(DocumentVersionModel.document_id != document_id)
                    .limit(1)
                )
                if duplicate.first() is not None:
                    raise SlugConflict()

            # Старые версии хранят прежний slug и нарушили бы уникальный индекс
            await self.session.execute(
                update(DocumentVersionModel)
                .where(self._identity(owner_id, document_id))
                .where(DocumentVersionModel.is_current.is_(False))
                .values(slug=None)
            )

            result = await self.session.execute(
                update(DocumentVersionModel)
                .where(self._identity(owner_id, document_id))
                .where(DocumentVersionModel.is_current.is_(True))
                .values(visibility=Visibility(visibility).value, author=author, style=style, slug=slug)
            )
            if result.rowcount == 0:
                raise NotFoundOrUnauthorized()

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        current = await self.get_current_version(owner_id, document_id)
        if current is None:
            raise NotFoundOrUnauthorized()
        return current

    async def search_by_title_or_content(self, owner_id: str, query: str, limit: int = 5) -> List[DocumentVersion]:
        """Поиск подстроки без учета регистра только по текущим версиям"""
        result = await self.session.execute(
            self._select()
            .where(DocumentVersionModel.user_id == owner_id)
            .where(DocumentVersionModel.is_current.is_(True))
            .where(
                or_(
                    DocumentVersionModel.title.ilike(f"%{query}%"),
                    DocumentVersionModel.content.ilike(f"%{query}%"),
                )
            )
            .order_by(DocumentVersionModel.created_at.desc())
            .limit(limit)
        )
        return [self._to_domain(row) for row in result.scalars().all()]

    async def get_current_by_title(self, owner_id: str, title: str) -> Optional[DocumentVersion]:
        """Текущая версия с совпадающим заголовком (без учета регистра)"""
        result = await self.session.execute(
            self._select()
            .where(DocumentVersionModel.user_id == owner_id)
            .where(DocumentVersionModel.is_current.is_(True))
            .where(func.lower(DocumentVersionModel.title) == title.lower())
            .order_by(DocumentVersionModel.created_at.desc())
            .limit(1)
        )
        db_version = result.scalar_one_or_none()
        return self._to_domain(db_version) if db_version else None

    def _to_domain(self, db_version: DocumentVersionModel) -> DocumentVersion:
        """Преобразование модели БД в доменную сущность"""
        return DocumentVersion(
            document_id=db_version.document_id,
            title=db_version.title,
            content=db_version.content,
            kind=db_version.kind,
            user_id=db_version.user_id,
            is_current=db_version.is_current,
            created_at=db_version.created_at,
            updated_at=db_version.updated_at,
            chat_id=db_version.chat_id,
            visibility=db_version.visibility,
            author=db_version.author,
            style=db_version.style,
            slug=db_version.slug,
            row_uuid=db_version.uuid,
        )
