import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from coauthor.domains.documents.entities import DocumentKind, utcnow


@dataclass(frozen=True)
class ToolContext:
    """Ровно те поля, которые доступны инструменту в рамках одного запроса"""
    user_id: str
    active_document_id: Optional[str] = None
    chat_id: Optional[str] = None


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Proposal:
    """Предложенная ИИ правка. В хранилище не пишется до явного принятия"""

    def __init__(
        self,
        document_id: uuid.UUID,
        owner_id: str,
        title: str,
        kind: DocumentKind,
        original_content: str,
        proposed_content: str = "",
        proposal_id: Optional[uuid.UUID] = None,
        status: ProposalStatus = ProposalStatus.PENDING,
        created_at: Optional[datetime] = None,
    ):
        self.proposal_id = proposal_id or uuid.uuid4()
        self.document_id = document_id
        self.owner_id = owner_id
        self.title = title
        self.kind = kind
        self.original_content = original_content
        self.proposed_content = proposed_content
        self.status = status
        self.created_at = created_at or utcnow()

    def append(self, delta: str) -> None:
        self.proposed_content += delta

    def to_result(self) -> Dict[str, Any]:
        return {
            "id": str(self.document_id),
            "proposalId": str(self.proposal_id),
            "title": self.title,
            "kind": self.kind.value,
            "originalContent": self.original_content,
            "proposedContent": self.proposed_content,
            "status": self.status.value,
        }

    def __repr__(self):
        return f"<Proposal {self.proposal_id} for {self.document_id} ({self.status.value})>"
