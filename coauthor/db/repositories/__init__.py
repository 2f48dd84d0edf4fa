from coauthor.db.repositories.document_repository import DocumentRepository
from coauthor.db.repositories.chat_repository import ChatRepository

__all__ = [
    "DocumentRepository",
    "ChatRepository",
]
