from coauthor.core.db import Base
from coauthor.db.models.document import DocumentVersion, Chat

__all__ = [
    "Base",
    "DocumentVersion",
    "Chat",
]
