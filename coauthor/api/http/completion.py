from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from coauthor.core.auth import RequestContext, get_request_context
from coauthor.core.db import get_db
from coauthor.core.errors import CoauthorError
from coauthor.api.http.chat import SSE_HEADERS
from coauthor.api.http.errors import to_http_exception
from coauthor.domains.completion.heuristics import apply_suggestion
from coauthor.domains.completion.schemas import (
    CompletionAcceptRequest, CompletionAcceptResponse, CompletionRequest
)
from coauthor.domains.completion.services import InlineCompletionService
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.generation.client import TextGenerator, get_text_generator

router = APIRouter(prefix="/inline-suggestion", tags=["completion"])


@router.post("")
async def inline_suggestion(
    completion_request: CompletionRequest,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    generator: TextGenerator = Depends(get_text_generator),
):
    """Поток подсказки для позиции курсора"""
    service = InlineCompletionService(DocumentService(db), generator)
    try:
        document = await service.resolve_document(context.user_id, completion_request)
    except CoauthorError as e:
        raise to_http_exception(e)

    return StreamingResponse(
        service.stream(completion_request, document.title),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/accept", response_model=CompletionAcceptResponse)
async def accept_inline_suggestion(
    accept_request: CompletionAcceptRequest,
    context: RequestContext = Depends(get_request_context),
):
    """Текст блока после принятия подсказки, с учетом списков"""
    accepted = apply_suggestion(
        accept_request.context_before,
        accept_request.suggestion,
        accept_request.context_after,
        accept_request.block_type,
    )
    return CompletionAcceptResponse(
        text=accepted.text, cursor=accepted.cursor, list_items_added=accepted.list_items_added
    )
