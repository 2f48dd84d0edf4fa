import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coauthor.core.auth import RequestContext, get_request_context
from coauthor.core.db import get_db, get_session_factory
from coauthor.core.errors import CoauthorError
from coauthor.api.http.errors import to_http_exception
from coauthor.domains.dispatcher.services import ChatTurnService
from coauthor.domains.documents.schemas import DocumentUpdateResponse
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.generation.client import TextGenerator, get_text_generator
from coauthor.domains.mutations.entities import ToolContext
from coauthor.domains.mutations.services import ProposalRegistry, ProposalService, proposal_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

SSE_HEADERS = {"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"}


class ChatMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class ChatTurnRequest(BaseModel):
    """Ход диалога с активным документом"""
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(..., min_length=1)
    active_document_id: Optional[str] = Field(None, alias="activeDocumentId")
    mentioned_document_ids: List[str] = Field(default_factory=list, alias="mentionedDocumentIds")
    chat_id: Optional[str] = Field(None, alias="chatId")
    custom_instructions: Optional[str] = Field(None, alias="customInstructions")
    writing_style_summary: Optional[str] = Field(None, alias="writingStyleSummary")
    apply_style: bool = Field(True, alias="applyStyle")


class ProposalRejectResponse(BaseModel):
    id: str
    status: str


def get_proposal_registry() -> ProposalRegistry:
    return proposal_registry


@router.post("/chat")
async def chat_turn(
    turn: ChatTurnRequest,
    context: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    generator: TextGenerator = Depends(get_text_generator),
    registry: ProposalRegistry = Depends(get_proposal_registry),
):
    """Ход диалога в виде SSE: текст модели, события правок и результаты инструментов"""
    tool_context = ToolContext(
        user_id=context.user_id,
        active_document_id=turn.active_document_id,
        chat_id=turn.chat_id,
    )
    messages: List[Dict[str, Any]] = [message.model_dump() for message in turn.messages]

    async def event_stream():
        async with session_factory() as db:
            service = ChatTurnService(
                DocumentService(db),
                generator,
                tool_options={"updateDocument": {"registry": registry}},
            )
            async for chunk in service.stream(
                tool_context,
                messages,
                mentioned_document_ids=turn.mentioned_document_ids,
                custom_instructions=turn.custom_instructions,
                writing_style_summary=turn.writing_style_summary,
                apply_style=turn.apply_style,
            ):
                yield chunk

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/proposals/{proposal_id}/accept", response_model=DocumentUpdateResponse)
async def accept_proposal(
    proposal_id: str,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    registry: ProposalRegistry = Depends(get_proposal_registry),
):
    """Принятие предложения: та же семантика версий, что у ручной правки"""
    proposal_service = ProposalService(db, registry=registry)
    try:
        result = await proposal_service.accept(context.user_id, proposal_id)
    except CoauthorError as e:
        raise to_http_exception(e)

    return DocumentUpdateResponse.from_result(result)


@router.post("/proposals/{proposal_id}/reject", response_model=ProposalRejectResponse)
async def reject_proposal(
    proposal_id: str,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    registry: ProposalRegistry = Depends(get_proposal_registry),
):
    """Отклонение предложения; хранилище не меняется"""
    proposal_service = ProposalService(db, registry=registry)
    try:
        proposal = proposal_service.reject(context.user_id, proposal_id)
    except CoauthorError as e:
        raise to_http_exception(e)

    return ProposalRejectResponse(id=str(proposal.proposal_id), status=proposal.status.value)
