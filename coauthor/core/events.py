import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class DocumentEvent:
    """Уведомление об изменении документа"""
    type: str  # created | merged | forked | renamed | deleted | published
    owner_id: str
    document_id: str
    title: Optional[str] = None
    payload: dict = field(default_factory=dict)

    def to_message(self) -> dict:
        return {
            "type": f"document_{self.type}",
            "data": {"document_id": self.document_id, "title": self.title, **self.payload},
        }


class DocumentEventBus:
    """Шина событий документов: подписки по владельцу"""

    def __init__(self, max_queue_size: int = 100):
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}
        self._max_queue_size = max_queue_size

    def subscribe(self, owner_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(owner_id, set()).add(queue)
        return queue

    def unsubscribe(self, owner_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(owner_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[owner_id]

    def subscriber_count(self, owner_id: str) -> int:
        return len(self._subscribers.get(owner_id, ()))

    def publish(self, event: DocumentEvent) -> None:
        for queue in list(self._subscribers.get(event.owner_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Медленный подписчик теряет событие, остальные получают
                logger.warning(f"Dropping {event.type} event for slow subscriber of owner {event.owner_id}")


document_events = DocumentEventBus()
