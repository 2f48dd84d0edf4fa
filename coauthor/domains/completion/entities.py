import asyncio
import enum
from dataclasses import dataclass
from typing import Optional


class ContentClass(str, enum.Enum):
    CODE = "code"
    MARKDOWN = "markdown"
    TEXT = "text"


class CompletionState(str, enum.Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    REQUESTING = "requesting"
    DISPLAYING = "displaying"


class CancellationToken:
    """Токен одного запроса подсказки; generation растет с каждой новой активностью"""

    def __init__(self, generation: int):
        self.generation = generation
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self):
        state = "cancelled" if self.cancelled else "active"
        return f"<CancellationToken #{self.generation} {state}>"


@dataclass
class AcceptedSuggestion:
    """Результат принятия: новый текст блока и позиция курсора в нем"""
    text: str
    cursor: int
    list_items_added: int = 0
    list_marker: Optional[str] = None
