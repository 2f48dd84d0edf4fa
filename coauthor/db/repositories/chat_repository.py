import logging
import uuid
from typing import Optional, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coauthor.db.models.document import Chat as ChatModel
from coauthor.domains.documents.entities import UUID_PATTERN, utcnow

logger = logging.getLogger(__name__)


class ChatRepository:
    """Репозиторий чатов: только то, что нужно для связи документа с чатом"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, chat_id: uuid.UUID, user_id: str, title: str, document_context: Optional[dict] = None) -> uuid.UUID:
        """Сохранение чата"""
        self.session.add(
            ChatModel(
                id=chat_id,
                user_id=user_id,
                title=title,
                created_at=utcnow(),
                document_context=document_context,
            )
        )
        await self.session.commit()
        return chat_id

    async def exists(self, chat_id: Any) -> bool:
        """Проверка существования чата; невалидный формат - просто False"""
        if isinstance(chat_id, uuid.UUID):
            parsed = chat_id
        elif isinstance(chat_id, str) and UUID_PATTERN.match(chat_id):
            parsed = uuid.UUID(chat_id)
        else:
            logger.warning(f"Invalid chat ID format provided: {chat_id}")
            return False

        result = await self.session.execute(select(ChatModel.id).where(ChatModel.id == parsed).limit(1))
        return result.first() is not None
