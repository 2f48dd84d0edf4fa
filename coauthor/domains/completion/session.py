import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from coauthor.core.config import settings
from coauthor.core.errors import CoauthorError
from coauthor.domains.completion.entities import AcceptedSuggestion, CancellationToken, CompletionState
from coauthor.domains.completion.heuristics import apply_suggestion
from coauthor.domains.completion.schemas import CompletionRequest

logger = logging.getLogger(__name__)

SuggestFn = Callable[[CompletionRequest, CancellationToken], AsyncIterator[str]]
EmitFn = Callable[[Dict[str, Any]], Awaitable[None]]


class CompletionSession:
    """Сессия подсказок одного редактора: IDLE -> DEBOUNCING -> REQUESTING -> DISPLAYING.

    Любая новая активность отменяет токен и задачу предыдущего запроса до
    запуска следующего, поэтому одновременно выполняется не больше одного
    запроса.
    """

    def __init__(
        self,
        suggest: SuggestFn,
        emit: EmitFn,
        debounce_ms: Optional[int] = None,
        min_context_chars: Optional[int] = None,
    ):
        self.suggest = suggest
        self.emit = emit
        self.debounce = (settings.completion_debounce_ms if debounce_ms is None else debounce_ms) / 1000
        self.min_context_chars = (
            settings.completion_min_context_chars if min_context_chars is None else min_context_chars
        )
        self.state = CompletionState.IDLE
        self.suggestion = ""
        self.request: Optional[CompletionRequest] = None
        self.requests_started = 0
        self._generation = 0
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def generation(self) -> int:
        return self._generation

    async def on_activity(self, request: CompletionRequest) -> None:
        """Правка или перемещение курсора"""
        await self.cancel()

        if len(request.context_before.strip()) < self.min_context_chars:
            return

        self._generation += 1
        token = CancellationToken(self._generation)
        self._token = token
        self.request = request
        self.state = CompletionState.DEBOUNCING
        self._task = asyncio.create_task(self._run(request, token))

    async def cancel(self) -> None:
        """Отмена текущей подсказки; возврат в IDLE"""
        token, task = self._token, self._task
        self._token = None
        self._task = None

        if token is not None:
            token.cancel()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.state = CompletionState.IDLE
        self.suggestion = ""
        self.request = None

    def accept(self) -> Optional[AcceptedSuggestion]:
        """Вставка показанной подсказки в исходную позицию курсора"""
        if self.state != CompletionState.DISPLAYING or not self.suggestion or self.request is None:
            return None

        accepted = apply_suggestion(
            self.request.context_before, self.suggestion, self.request.context_after, self.request.block_type
        )
        logger.info(f"Suggestion {self._generation} accepted ({len(self.suggestion)} chars)")
        if self._token is not None:
            self._token.cancel()
        self._token = None
        self._task = None
        self.state = CompletionState.IDLE
        self.suggestion = ""
        self.request = None
        return accepted

    async def wait(self) -> None:
        """Дождаться завершения текущего запроса (для тестов и закрытия)"""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        await self.cancel()

    async def _run(self, request: CompletionRequest, token: CancellationToken) -> None:
        await asyncio.sleep(self.debounce)
        if token.cancelled:
            return

        self.state = CompletionState.REQUESTING
        self.requests_started += 1
        logger.debug(f"Requesting suggestion {token.generation}")

        try:
            async for delta in self.suggest(request, token):
                if token.cancelled:
                    return
                self.suggestion += delta
                self.state = CompletionState.DISPLAYING
                await self.emit({
                    "type": "suggestion-delta",
                    "content": delta,
                    "generation": token.generation,
                })
        except CoauthorError as e:
            logger.error(f"Suggestion {token.generation} failed: {e}")
            self.state = CompletionState.IDLE
            self.suggestion = ""
            await self.emit({"type": "error", "content": str(e), "generation": token.generation})
            return

        if token.cancelled:
            return
        if not self.suggestion:
            self.state = CompletionState.IDLE
        await self.emit({"type": "finish", "content": self.suggestion, "generation": token.generation})
