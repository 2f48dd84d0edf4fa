import logging
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coauthor.core.errors import InvalidIdentifier, NotFoundOrUnauthorized
from coauthor.domains.documents.entities import VersionUpdateResult, utcnow
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.mutations.entities import Proposal, ProposalStatus

logger = logging.getLogger(__name__)


class ProposalRegistry:
    """Ожидающие решения предложения, только в памяти процесса"""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._proposals: "OrderedDict[uuid.UUID, Proposal]" = OrderedDict()

    def register(self, proposal: Proposal) -> Proposal:
        self._proposals[proposal.proposal_id] = proposal
        while len(self._proposals) > self.max_size:
            evicted_id, _ = self._proposals.popitem(last=False)
            logger.warning(f"Proposal registry full, evicted proposal {evicted_id}")
        return proposal

    def get(self, proposal_id, owner_id: str) -> Proposal:
        try:
            key = uuid.UUID(str(proposal_id))
        except ValueError:
            raise InvalidIdentifier(f"Invalid proposal ID format: {proposal_id!r}")

        proposal = self._proposals.get(key)
        if proposal is None or proposal.owner_id != owner_id:
            raise NotFoundOrUnauthorized("Proposal not found or unauthorized")
        return proposal

    def pop(self, proposal_id, owner_id: str) -> Proposal:
        proposal = self.get(proposal_id, owner_id)
        del self._proposals[proposal.proposal_id]
        return proposal

    def __len__(self):
        return len(self._proposals)

    def __contains__(self, proposal_id):
        try:
            return uuid.UUID(str(proposal_id)) in self._proposals
        except ValueError:
            return False


proposal_registry = ProposalRegistry()


class ProposalService:
    """Принятие и отклонение предложений ИИ"""

    def __init__(
        self,
        session: AsyncSession,
        registry: ProposalRegistry = proposal_registry,
        clock: Callable[[], datetime] = utcnow,
        documents: Optional[DocumentService] = None,
    ):
        self.registry = registry
        self.documents = documents or DocumentService(session, clock=clock)

    async def accept(self, owner_id: str, proposal_id) -> VersionUpdateResult:
        """Принятое предложение проходит тот же путь, что и ручная правка"""
        proposal = self.registry.get(proposal_id, owner_id)
        result = await self.documents.update_content(owner_id, proposal.document_id, proposal.proposed_content)
        self.registry.pop(proposal.proposal_id, owner_id)
        proposal.status = ProposalStatus.ACCEPTED
        logger.info(
            f"Proposal {proposal.proposal_id} accepted for document {proposal.document_id}: {result.outcome.value}"
        )
        return result

    def reject(self, owner_id: str, proposal_id) -> Proposal:
        proposal = self.registry.pop(proposal_id, owner_id)
        proposal.status = ProposalStatus.REJECTED
        logger.info(f"Proposal {proposal.proposal_id} rejected for document {proposal.document_id}")
        return proposal
