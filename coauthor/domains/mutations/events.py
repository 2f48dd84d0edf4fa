"""Поток событий конвейера правок.

Клиент получает события только из словаря StreamEventType, каждое со
строковым содержимым или null. Кадрирование: ``data: {json}\\n\\n``.
"""

import asyncio
import json
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional


class StreamEventType(str, Enum):
    ID = "id"
    TITLE = "title"
    CLEAR = "clear"
    TEXT_DELTA = "textDelta"
    FORCE_SAVE = "force-save"
    FINISH = "finish"
    ERROR = "error"


def data_event(event_type: StreamEventType, content: Optional[str] = None) -> Dict[str, Any]:
    return {"type": f"data-{event_type.value}", "data": content}


def encode_sse(message: Dict[str, Any]) -> str:
    return f"data: {json.dumps(message, ensure_ascii=False)}\n\n"


class DataStreamWriter:
    """Канал push-событий одного запроса"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def write(self, message: Dict[str, Any]) -> None:
        if self._closed:
            return
        self._queue.put_nowait(message)

    def write_data(self, event_type: StreamEventType, content: Optional[str] = None) -> None:
        self.write(data_event(event_type, content))

    def write_id(self, document_id: str) -> None:
        self.write_data(StreamEventType.ID, document_id)

    def write_title(self, title: str) -> None:
        self.write_data(StreamEventType.TITLE, title)

    def clear(self) -> None:
        self.write_data(StreamEventType.CLEAR)

    def text_delta(self, delta: str) -> None:
        self.write_data(StreamEventType.TEXT_DELTA, delta)

    def force_save(self) -> None:
        self.write_data(StreamEventType.FORCE_SAVE)

    def finish(self) -> None:
        self.write_data(StreamEventType.FINISH)

    def error(self, message: str) -> None:
        self.write_data(StreamEventType.ERROR, message)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        """Сообщения по мере поступления, до close()"""
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    def drain(self) -> list:
        """Все уже записанные сообщения (без ожидания)"""
        drained = []
        while not self._queue.empty():
            message = self._queue.get_nowait()
            if message is not None:
                drained.append(message)
        return drained
