"""Инструменты изменения документа, доступные модели.

Ни один инструмент не выбрасывает исключение за свою границу: ошибка
превращается в результат ``{"error": ...}`` и событие data-error, а ход
диалога продолжается без изменения документа.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from coauthor.core.config import settings
from coauthor.core.errors import CoauthorError, InvalidIdentifier, InvalidToolArguments
from coauthor.domains.documents.entities import DEFAULT_TITLE, DocumentKind, parse_document_id
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.generation.client import TextGenerator
from coauthor.domains.generation.prompts import (
    STREAM_FILL_SYSTEM_PROMPT, UPDATE_SYSTEM_PROMPT, build_update_prompt
)
from coauthor.domains.mutations.entities import Proposal, ToolContext
from coauthor.domains.mutations.events import DataStreamWriter
from coauthor.domains.mutations.services import ProposalRegistry, proposal_registry

logger = logging.getLogger(__name__)

CREATE_DOCUMENT = "createDocument"
STREAMING_DOCUMENT = "streamingDocument"
UPDATE_DOCUMENT = "updateDocument"


class MutationTool(ABC):
    name: str
    description: str
    parameters: Dict[str, Any]

    def __init__(
        self,
        context: ToolContext,
        writer: DataStreamWriter,
        documents: DocumentService,
        generator: TextGenerator,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.context = context
        self.writer = writer
        self.documents = documents
        self.generator = generator
        self.sleep = sleep

    def definition(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}

    async def execute(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Executing tool {self.name} for user {self.context.user_id}")
        try:
            if arguments is None:
                arguments = {}
            if not isinstance(arguments, dict):
                raise InvalidToolArguments(f"Invalid arguments for {self.name}: expected an object")
            return await self.run(arguments)
        except CoauthorError as e:
            logger.warning(f"Tool {self.name} failed: {e}")
            self.writer.error(str(e))
            return {"error": str(e)}

    @abstractmethod
    async def run(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def _active_document_id(self):
        document_id = self.context.active_document_id
        if not document_id or document_id in ("undefined", "null"):
            raise InvalidIdentifier(f"Invalid document ID: {document_id!r}")
        return parse_document_id(document_id)


def _parse_kind(value: Optional[str], default: DocumentKind) -> DocumentKind:
    if not value:
        return default
    try:
        return DocumentKind(value)
    except ValueError:
        raise InvalidIdentifier(f"Unknown document kind: {value!r}")


class CreateDocumentTool(MutationTool):
    """Новая пустая запись, id отдается клиенту для инициализации редактора"""

    name = CREATE_DOCUMENT
    description = (
        "Creates a new document record in the database, streams back its ID so the editor can initialize it."
    )
    parameters = {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "The title for the new document."},
            "kind": {
                "type": "string",
                "enum": [kind.value for kind in DocumentKind],
                "description": "The kind of document to create (e.g., text).",
            },
        },
        "required": ["title"],
    }

    def __init__(self, *args, settle_delay: Optional[float] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.settle_delay = settings.create_settle_delay_seconds if settle_delay is None else settle_delay

    async def run(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        title = (arguments.get("title") or "").strip() or DEFAULT_TITLE
        kind = _parse_kind(arguments.get("kind"), DocumentKind.TEXT)

        document = await self.documents.create_empty_document(self.context.user_id, title, kind)
        document_id = str(document.document_id)

        self.writer.write_id(document_id)
        self.writer.write_title(document.title)
        self.writer.clear()
        await self.sleep(self.settle_delay)
        self.writer.finish()

        logger.info(f"Created document {document_id} with title {title!r}")
        return {"id": document_id, "title": document.title, "kind": kind.value, "content": "New document created."}


class StreamingDocumentTool(MutationTool):
    """Заполнение свежего пустого документа потоком сгенерированного текста"""

    name = STREAMING_DOCUMENT
    description = (
        "Generates content based on a title or prompt and streams it into the active document view. "
        "Use this to start writing or add content."
    )
    parameters = {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "The title or topic to generate content about."},
        },
        "required": ["title"],
    }

    def __init__(self, *args, settle_delay: Optional[float] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.settle_delay = settings.stream_fill_settle_delay_seconds if settle_delay is None else settle_delay

    async def run(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        topic = (arguments.get("title") or "").strip()
        if not topic:
            return self._fail("No title or topic provided.")

        document_id = self._active_document_id()
        document = await self.documents.get_current_document(self.context.user_id, document_id)
        if not document.is_empty():
            return self._fail("The active document already has content; use an update instead.")

        await self.sleep(self.settle_delay)
        self.writer.clear()

        content = ""
        async for delta in self.generator.stream_text(
            topic, system=STREAM_FILL_SYSTEM_PROMPT, model=settings.artifact_model
        ):
            content += delta
            self.writer.text_delta(delta)

        # Пишем только полностью полученный текст
        result = await self.documents.update_content(self.context.user_id, document_id, content)
        self.writer.force_save()
        self.writer.finish()

        logger.info(f"Streamed {len(content)} chars into document {document_id} ({result.outcome.value})")
        return {
            "id": str(document_id),
            "title": document.title,
            "kind": document.kind.value,
            "content": "Content generation streamed.",
        }

    def _fail(self, message: str) -> Dict[str, Any]:
        self.writer.error(message)
        return {"error": message}


class UpdateDocumentTool(MutationTool):
    """Предложение правки: генерация накапливается в Proposal, хранилище не трогается"""

    name = UPDATE_DOCUMENT
    description = (
        "Update a document based on a description. Returns the original and proposed new content for review."
    )
    parameters = {
        "type": "object",
        "properties": {
            "description": {"type": "string", "description": "The description of changes that need to be made"},
        },
        "required": ["description"],
    }

    def __init__(self, *args, registry: ProposalRegistry = proposal_registry, **kwargs):
        super().__init__(*args, **kwargs)
        self.registry = registry

    async def run(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        description = (arguments.get("description") or "").strip()
        if not description:
            message = "No update description provided."
            self.writer.error(message)
            return {"error": message}

        document_id = self._active_document_id()
        document = await self.documents.get_current_document(self.context.user_id, document_id)
        original_content = document.text

        proposal = Proposal(
            document_id=document_id,
            owner_id=self.context.user_id,
            title=document.title,
            kind=document.kind,
            original_content=original_content,
        )

        self.writer.clear()
        async for delta in self.generator.stream_text(
            build_update_prompt(original_content, description),
            system=UPDATE_SYSTEM_PROMPT,
            model=settings.artifact_model,
            temperature=0.2,
        ):
            proposal.append(delta)
            self.writer.text_delta(delta)

        self.registry.register(proposal)
        self.writer.force_save()
        self.writer.finish()

        logger.info(f"Update proposal {proposal.proposal_id} generated for document {document_id}")
        return proposal.to_result()


TOOL_CLASSES = {
    CREATE_DOCUMENT: CreateDocumentTool,
    STREAMING_DOCUMENT: StreamingDocumentTool,
    UPDATE_DOCUMENT: UpdateDocumentTool,
}
