import logging
from typing import AsyncIterator, Optional

from coauthor.core.config import settings
from coauthor.core.errors import CoauthorError
from coauthor.domains.completion.entities import CancellationToken, ContentClass
from coauthor.domains.completion.heuristics import classify_content, clip_delta
from coauthor.domains.completion.schemas import CompletionRequest
from coauthor.domains.documents.entities import DocumentVersion
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.generation.client import TextGenerator
from coauthor.domains.mutations.events import encode_sse

logger = logging.getLogger(__name__)

MAX_TOKENS = {"short": 20, "medium": 50, "long": 80}
LENGTH_INSTRUCTIONS = {
    "short": "Suggest the next 1-5 words.",
    "medium": "Suggest the next 5-10 words.",
    "long": "Suggest the next 10-15 words.",
}

CODE_SYSTEM_PROMPT = """You are a code completion assistant. Complete the code naturally, following the established style and patterns.
Keep suggestions concise and focused on the immediate next tokens.
- Match indentation and code style
- Use valid syntax
- Don't add comments unless continuing one
- Stop at natural boundaries (semicolons, brackets, etc.)"""

TEXT_SYSTEM_PROMPT = """You are a writing assistant providing quick, natural text completions.
Your goal is to predict the next few words that would naturally follow the cursor position.
- Match the exact tone and style of the text
- Keep suggestions short and natural
- Stop at natural boundaries (periods, commas, etc.)
- Do NOT add quotation marks unless continuing an existing quote.
- Don't complete entire sentences or paragraphs"""


class InlineCompletionService:
    """Подсказки «призрачного текста». С версиями документа не связаны и ничего не пишут"""

    def __init__(self, documents: DocumentService, generator: TextGenerator):
        self.documents = documents
        self.generator = generator

    @staticmethod
    def has_enough_context(request: CompletionRequest) -> bool:
        return len(request.context_before.strip()) >= settings.completion_min_context_chars

    async def resolve_document(self, owner_id: str, request: CompletionRequest) -> DocumentVersion:
        return await self.documents.get_current_document(owner_id, request.document_id)

    def build_system_prompt(self, content_class: ContentClass, custom_instructions: Optional[str]) -> str:
        prompt = CODE_SYSTEM_PROMPT if content_class == ContentClass.CODE else TEXT_SYSTEM_PROMPT
        if custom_instructions:
            prompt += f"\n\nFollow these user instructions:\n{custom_instructions}"
        return prompt

    def build_prompt(self, request: CompletionRequest, content_class: ContentClass, title: str = "") -> str:
        is_code = content_class == ContentClass.CODE
        window = settings.completion_context_window_code if is_code else settings.completion_context_window_text
        relevant = request.context_before[-window:]

        prompt = f"Complete this {'code' if is_code else 'text'} naturally."
        if title:
            prompt += f' Document: "{title}"'
        prompt += f'\n\nCurrent content (cursor at end):\n"""\n{relevant}\n"""'

        if request.context_after and len(request.context_after) < 100:
            prompt += f'\n\nWhat follows (for context only):\n"""\n{request.context_after}\n"""'

        prompt += "\n\nProvide a natural, immediate continuation from the cursor position."
        if is_code:
            prompt += " Complete the current code construct."
        else:
            prompt += f" {LENGTH_INSTRUCTIONS[request.suggestion_length]}"
        return prompt

    async def suggest(
        self,
        request: CompletionRequest,
        title: str = "",
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """Дельты подсказки с применением правил остановки"""
        if not self.has_enough_context(request):
            logger.debug("Context too short, skipping inline suggestion")
            return

        content_class = classify_content(request.context_before, request.block_type)
        stream = self.generator.stream_text(
            self.build_prompt(request, content_class, title),
            system=self.build_system_prompt(content_class, request.custom_instructions),
            model=settings.completion_model,
            temperature=0.2 if content_class == ContentClass.CODE else 0.4,
            max_tokens=MAX_TOKENS[request.suggestion_length],
        )
        generated = ""
        emitted = 0
        stopped = False
        try:
            async for delta in stream:
                if token is not None and token.cancelled:
                    logger.debug(f"Suggestion {token.generation} superseded")
                    return
                generated += delta
                visible, stopped = clip_delta(generated, emitted, content_class, settings.completion_max_chars)
                if visible:
                    emitted += len(visible)
                    yield visible
                if stopped:
                    break

            if not stopped and not (token is not None and token.cancelled):
                visible, _ = clip_delta(
                    generated, emitted, content_class, settings.completion_max_chars, final=True
                )
                if visible:
                    yield visible
        finally:
            await stream.aclose()

    async def stream(self, request: CompletionRequest, title: str = "") -> AsyncIterator[str]:
        """SSE-кадры suggestion-delta / finish / error"""
        try:
            async for delta in self.suggest(request, title):
                yield encode_sse({"type": "suggestion-delta", "content": delta})
            yield encode_sse({"type": "finish", "content": ""})
        except CoauthorError as e:
            logger.error(f"Inline suggestion failed: {e}")
            yield encode_sse({"type": "error", "content": str(e)})
