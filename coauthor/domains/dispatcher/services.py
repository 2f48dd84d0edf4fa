import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from coauthor.core.config import settings
from coauthor.core.errors import CoauthorError, InvalidIdentifier, NotFoundOrUnauthorized
from coauthor.domains.documents.entities import DocumentVersion, is_valid_document_id
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.generation.client import TextGenerator
from coauthor.domains.generation.prompts import build_system_prompt
from coauthor.domains.mutations.entities import ToolContext
from coauthor.domains.mutations.events import DataStreamWriter, encode_sse
from coauthor.domains.mutations.tools import (
    CREATE_DOCUMENT, STREAMING_DOCUMENT, TOOL_CLASSES, UPDATE_DOCUMENT, MutationTool
)

logger = logging.getLogger(__name__)


class DispatcherState(str, Enum):
    NO_ACTIVE_DOCUMENT = "no_active_document"
    ACTIVE_DOCUMENT_EMPTY = "active_document_empty"
    ACTIVE_DOCUMENT_WITH_CONTENT = "active_document_with_content"


STATE_TOOLS = {
    DispatcherState.NO_ACTIVE_DOCUMENT: CREATE_DOCUMENT,
    DispatcherState.ACTIVE_DOCUMENT_EMPTY: STREAMING_DOCUMENT,
    DispatcherState.ACTIVE_DOCUMENT_WITH_CONTENT: UPDATE_DOCUMENT,
}


@dataclass
class TurnPlan:
    state: DispatcherState
    tool_name: str
    system_prompt: str
    active_document: Optional[DocumentVersion] = None
    mentioned_documents: List[DocumentVersion] = field(default_factory=list)


class ToolDispatcher:
    """Выбор единственного инструмента изменения на текущий ход.

    Состояние вычисляется заново на каждом ходе по свежему содержимому
    активного документа, кэша между ходами нет.
    """

    def __init__(self, documents: DocumentService):
        self.documents = documents

    async def classify(
        self, owner_id: str, active_document_id: Optional[str]
    ) -> Tuple[DispatcherState, Optional[DocumentVersion]]:
        if not active_document_id or not is_valid_document_id(active_document_id):
            if active_document_id:
                logger.warning(f"Ignoring malformed active document id {active_document_id!r}")
            return DispatcherState.NO_ACTIVE_DOCUMENT, None

        try:
            document = await self.documents.get_current_document(owner_id, active_document_id)
        except NotFoundOrUnauthorized:
            logger.warning(f"Active document {active_document_id} not found for user {owner_id}")
            return DispatcherState.NO_ACTIVE_DOCUMENT, None

        if document.is_empty():
            return DispatcherState.ACTIVE_DOCUMENT_EMPTY, document
        return DispatcherState.ACTIVE_DOCUMENT_WITH_CONTENT, document

    async def plan(
        self,
        context: ToolContext,
        mentioned_document_ids: Iterable[str] = (),
        custom_instructions: Optional[str] = None,
        writing_style_summary: Optional[str] = None,
        apply_style: bool = True,
    ) -> TurnPlan:
        state, active_document = await self.classify(context.user_id, context.active_document_id)
        tool_name = STATE_TOOLS[state]
        mentioned = await self._load_mentioned(context.user_id, mentioned_document_ids)

        system_prompt = build_system_prompt(
            [tool_name],
            active_document=active_document,
            mentioned_documents=mentioned,
            custom_instructions=custom_instructions,
            writing_style_summary=writing_style_summary,
            apply_style=apply_style,
        )
        logger.info(f"Dispatcher state for user {context.user_id}: {state.value}, exposing {tool_name}")
        return TurnPlan(state, tool_name, system_prompt, active_document, mentioned)

    def build_tools(
        self,
        plan: TurnPlan,
        context: ToolContext,
        writer: DataStreamWriter,
        generator: TextGenerator,
        **tool_options: Any,
    ) -> Dict[str, MutationTool]:
        tool_class = TOOL_CLASSES[plan.tool_name]
        tool = tool_class(context, writer, self.documents, generator, **tool_options.get(plan.tool_name, {}))
        return {tool.name: tool}

    async def _load_mentioned(self, owner_id: str, document_ids: Iterable[str]) -> List[DocumentVersion]:
        mentioned = []
        for document_id in document_ids:
            try:
                mentioned.append(await self.documents.get_current_document(owner_id, document_id))
            except (InvalidIdentifier, NotFoundOrUnauthorized) as e:
                logger.warning(f"Skipping mentioned document {document_id!r}: {e}")
        return mentioned


class ChatTurnService:
    """Один ход диалога: модель, вызовы инструментов и поток событий клиенту"""

    def __init__(
        self,
        documents: DocumentService,
        generator: TextGenerator,
        max_steps: Optional[int] = None,
        tool_options: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.documents = documents
        self.generator = generator
        self.dispatcher = ToolDispatcher(documents)
        self.max_steps = max_steps or settings.max_tool_steps
        self.tool_options = tool_options or {}

    async def stream(
        self,
        context: ToolContext,
        messages: List[Dict[str, Any]],
        mentioned_document_ids: Iterable[str] = (),
        custom_instructions: Optional[str] = None,
        writing_style_summary: Optional[str] = None,
        apply_style: bool = True,
    ) -> AsyncIterator[str]:
        writer = DataStreamWriter()
        task = asyncio.create_task(
            self._run(
                writer,
                context,
                messages,
                list(mentioned_document_ids),
                custom_instructions,
                writing_style_summary,
                apply_style,
            )
        )
        try:
            async for message in writer.messages():
                yield encode_sse(message)
            await task
        finally:
            if not task.done():
                logger.info(f"Chat turn for user {context.user_id} aborted by client")
                task.cancel()

    async def _run(
        self,
        writer: DataStreamWriter,
        context: ToolContext,
        messages: List[Dict[str, Any]],
        mentioned_document_ids: List[str],
        custom_instructions: Optional[str],
        writing_style_summary: Optional[str],
        apply_style: bool,
    ) -> None:
        try:
            plan = await self.dispatcher.plan(
                context, mentioned_document_ids, custom_instructions, writing_style_summary, apply_style
            )
            tools = self.dispatcher.build_tools(plan, context, writer, self.generator, **self.tool_options)
            definitions = [tool.definition() for tool in tools.values()]
            conversation = list(messages)

            for _ in range(self.max_steps):
                text = ""
                calls = []
                async for chunk in self.generator.stream_turn(
                    system=plan.system_prompt, messages=conversation, tools=definitions, model=settings.chat_model
                ):
                    if chunk.text:
                        text += chunk.text
                        writer.write({"type": "text-delta", "content": chunk.text})
                    if chunk.tool_call:
                        calls.append(chunk.tool_call)

                if not calls:
                    break

                conversation.append({
                    "role": "assistant",
                    "content": text or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                        }
                        for call in calls
                    ],
                })
                for call in calls:
                    tool = tools.get(call.name)
                    if tool is None:
                        logger.warning(f"Model requested unavailable tool {call.name} in state {plan.state.value}")
                        result = {"error": f"Tool {call.name} is not available"}
                    else:
                        result = await tool.execute(call.arguments)
                    writer.write({"type": "tool-result", "toolCallId": call.id, "toolName": call.name, "result": result})
                    conversation.append({"role": "tool", "tool_call_id": call.id, "content": json.dumps(result)})
            else:
                logger.warning(f"Chat turn for user {context.user_id} stopped after {self.max_steps} tool steps")
        except CoauthorError as e:
            logger.error(f"Chat turn failed for user {context.user_id}: {e}")
            writer.write({"type": "error", "content": str(e)})
        finally:
            writer.close()
