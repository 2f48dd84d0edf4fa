import asyncio
import json
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from coauthor.core.auth import context_from_token
from coauthor.core.db import get_session_factory
from coauthor.core.events import document_events
from coauthor.core.security import extract_token_from_header
from coauthor.domains.completion.schemas import CompletionRequest
from coauthor.domains.completion.services import InlineCompletionService
from coauthor.domains.completion.session import CompletionSession
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.generation.client import TextGenerator, get_text_generator

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    def __init__(self):
        # Активные соединения: {user_id: [websocket, ...]}
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        """Подключение пользователя"""
        await websocket.accept()
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info(f"WebSocket accepted for user {user_id} ({self.connection_count(user_id)} open)")

        await websocket.send_text(json.dumps({"type": "connected", "data": {"user_id": user_id}}))

    def disconnect(self, websocket: WebSocket, user_id: str):
        """Отключение пользователя"""
        connections = self.active_connections.get(user_id, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(user_id, None)

        logger.info(f"User {user_id} disconnected")

    def connection_count(self, user_id: str) -> int:
        return len(self.active_connections.get(user_id, []))


manager = ConnectionManager()


async def _authenticate(websocket: WebSocket, token: str):
    # Токен из query-параметра либо из заголовка Authorization
    token = token or extract_token_from_header(websocket.headers.get("authorization", ""))
    context = context_from_token(token)
    if context is None:
        logger.warning("Rejecting WebSocket with invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return context


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        event = await queue.get()
        await websocket.send_text(json.dumps(event.to_message()))


@router.websocket("/ws/documents")
async def document_events_endpoint(websocket: WebSocket, token: str = Query("")):
    """Уведомления об изменениях документов владельца"""
    context = await _authenticate(websocket, token)
    if context is None:
        return

    user_id = context.user_id
    queue = document_events.subscribe(user_id)
    await manager.connect(websocket, user_id)
    forwarder = asyncio.create_task(_forward_events(websocket, queue))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from user {user_id}")
                continue
            if not isinstance(message, dict):
                logger.warning(f"Invalid JSON from user {user_id}: expected an object")
                continue

            if message.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    except WebSocketDisconnect:
        pass
    finally:
        forwarder.cancel()
        document_events.unsubscribe(user_id, queue)
        manager.disconnect(websocket, user_id)


@router.websocket("/ws/completions")
async def completion_endpoint(
    websocket: WebSocket,
    token: str = Query(""),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    generator: TextGenerator = Depends(get_text_generator),
):
    """Сессия подсказок редактора: activity / accept / cancel"""
    context = await _authenticate(websocket, token)
    if context is None:
        return

    user_id = context.user_id

    async def suggest(request, cancel_token):
        async with session_factory() as db:
            service = InlineCompletionService(DocumentService(db), generator)
            document = await service.resolve_document(user_id, request)
        async for delta in service.suggest(request, document.title, cancel_token):
            yield delta

    async def emit(message):
        await websocket.send_text(json.dumps(message))

    session = CompletionSession(suggest, emit)
    await manager.connect(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from user {user_id}")
                continue
            if not isinstance(message, dict):
                logger.warning(f"Invalid JSON from user {user_id}: expected an object")
                continue

            message_type = message.get("type")

            if message_type == "activity":
                try:
                    request = CompletionRequest.model_validate(message.get("data") or {})
                except ValidationError as e:
                    await emit({"type": "error", "content": f"Invalid completion request: {e.error_count()} errors"})
                    continue
                await session.on_activity(request)

            elif message_type == "accept":
                accepted = session.accept()
                await emit({
                    "type": "accepted",
                    "data": None if accepted is None else {
                        "text": accepted.text,
                        "cursor": accepted.cursor,
                        "listItemsAdded": accepted.list_items_added,
                    },
                })

            elif message_type == "cancel":
                await session.cancel()
                await emit({"type": "cancelled"})

            elif message_type == "ping":
                await emit({"type": "pong"})

            else:
                logger.warning(f"Unknown message type from user {user_id}: {message_type}")
    except WebSocketDisconnect:
        pass
    finally:
        await session.close()
        manager.disconnect(websocket, user_id)
