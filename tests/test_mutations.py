"""Tests for the create / stream-fill / update tools and proposal accept/reject."""

import uuid

import pytest

from coauthor.core.errors import GenerationFailure, NotFoundOrUnauthorized
from coauthor.domains.documents.entities import DocumentKind, UpdateOutcome
from coauthor.domains.mutations.entities import ProposalStatus, ToolContext
from coauthor.domains.mutations.events import DataStreamWriter
from coauthor.domains.mutations.services import ProposalRegistry, ProposalService
from coauthor.domains.mutations.tools import CreateDocumentTool, StreamingDocumentTool, UpdateDocumentTool
from tests.conftest import OTHER_OWNER, OWNER
from tests.fakes import FakeGenerator, RecordingSleep


def _types(writer):
    return [message["type"] for message in writer.drain()]


@pytest.fixture
def writer():
    return DataStreamWriter()


@pytest.fixture
def registry():
    return ProposalRegistry()


@pytest.fixture
def proposals(db_session, registry, document_service):
    return ProposalService(db_session, registry=registry, documents=document_service)


async def _document_with_content(document_service, clock, content):
    document = await document_service.create_empty_document(OWNER, "D1")
    await document_service.update_content(OWNER, document.document_id, content)
    return document.document_id


class TestCreateDocumentTool:
    async def test_emits_init_sequence_after_persisting(self, document_service, writer):
        sleep = RecordingSleep()
        tool = CreateDocumentTool(
            ToolContext(user_id=OWNER), writer, document_service, FakeGenerator(), sleep=sleep, settle_delay=4.5
        )

        result = await tool.execute({"title": "Trip plan", "kind": "text"})

        messages = writer.drain()
        assert [message["type"] for message in messages] == ["data-id", "data-title", "data-clear", "data-finish"]
        assert messages[0]["data"] == result["id"]
        assert messages[1]["data"] == "Trip plan"
        assert messages[2]["data"] is None
        assert sleep.calls == [4.5]

        stored = await document_service.get_current_document(OWNER, result["id"])
        assert stored.content == ""
        assert stored.title == "Trip plan"

    async def test_unknown_kind_returns_error(self, document_service, writer):
        tool = CreateDocumentTool(
            ToolContext(user_id=OWNER), writer, document_service, FakeGenerator(), sleep=RecordingSleep()
        )

        result = await tool.execute({"title": "X", "kind": "video"})

        assert "error" in result
        assert _types(writer) == ["data-error"]


class TestStreamingDocumentTool:
    def _tool(self, document_service, writer, document_id, generator):
        return StreamingDocumentTool(
            ToolContext(user_id=OWNER, active_document_id=str(document_id)),
            writer,
            document_service,
            generator,
            sleep=RecordingSleep(),
            settle_delay=0,
        )

    async def test_streams_into_empty_document_and_commits_once(self, document_service, writer, clock):
        document = await document_service.create_empty_document(OWNER, "Essay")
        generator = FakeGenerator(text_chunks=["# Essay\n", "Body text."])
        clock.advance(minutes=1)

        result = await self._tool(document_service, writer, document.document_id, generator).execute(
            {"title": "Essay about rivers"}
        )

        assert result["id"] == str(document.document_id)
        assert _types(writer) == [
            "data-clear", "data-textDelta", "data-textDelta", "data-force-save", "data-finish"
        ]
        stored = await document_service.get_current_document(OWNER, document.document_id)
        assert stored.content == "# Essay\nBody text."
        assert await document_service.document_repository.count_versions(OWNER, document.document_id) == 1
        assert generator.text_calls[0]["prompt"] == "Essay about rivers"

    async def test_refuses_document_with_content(self, document_service, writer, clock):
        document_id = await _document_with_content(document_service, clock, "existing")
        generator = FakeGenerator(text_chunks=["new"])

        result = await self._tool(document_service, writer, document_id, generator).execute({"title": "x"})

        assert "error" in result
        assert generator.text_calls == []
        stored = await document_service.get_current_document(OWNER, document_id)
        assert stored.content == "existing"

    async def test_generation_failure_persists_nothing(self, document_service, writer):
        document = await document_service.create_empty_document(OWNER, "Essay")
        generator = FakeGenerator(error=GenerationFailure("model unavailable"))

        result = await self._tool(document_service, writer, document.document_id, generator).execute(
            {"title": "Essay"}
        )

        assert result == {"error": "model unavailable"}
        assert _types(writer)[-1] == "data-error"
        stored = await document_service.get_current_document(OWNER, document.document_id)
        assert stored.content == ""


class TestUpdateDocumentTool:
    def _tool(self, document_service, writer, document_id, generator, registry):
        return UpdateDocumentTool(
            ToolContext(user_id=OWNER, active_document_id=str(document_id) if document_id else None),
            writer,
            document_service,
            generator,
            registry=registry,
        )

    async def test_proposal_is_streamed_but_not_stored(self, document_service, writer, clock, registry):
        document_id = await _document_with_content(document_service, clock, "A")
        generator = FakeGenerator(text_chunks=["B", "B"])

        result = await self._tool(document_service, writer, document_id, generator, registry).execute(
            {"description": "Replace A with BB"}
        )

        assert result["originalContent"] == "A"
        assert result["proposedContent"] == "BB"
        assert result["status"] == ProposalStatus.PENDING.value
        assert result["id"] == str(document_id)
        assert _types(writer) == [
            "data-clear", "data-textDelta", "data-textDelta", "data-force-save", "data-finish"
        ]
        assert len(registry) == 1
        stored = await document_service.get_current_document(OWNER, document_id)
        assert stored.content == "A"
        assert "Replace A with BB" in generator.text_calls[0]["prompt"]

    async def test_missing_active_document_returns_error(self, document_service, writer, registry):
        result = await self._tool(document_service, writer, None, FakeGenerator(), registry).execute(
            {"description": "edit"}
        )

        assert "error" in result
        assert _types(writer) == ["data-error"]

    async def test_malformed_id_returns_error(self, document_service, writer, registry):
        result = await self._tool(document_service, writer, "not-a-uuid", FakeGenerator(), registry).execute(
            {"description": "edit"}
        )

        assert "Invalid document ID" in result["error"]

    async def test_unknown_document_returns_error(self, document_service, writer, registry):
        result = await self._tool(document_service, writer, uuid.uuid4(), FakeGenerator(), registry).execute(
            {"description": "edit"}
        )

        assert result["error"] == "Document not found or unauthorized"
        assert len(registry) == 0

    async def test_empty_description_returns_error(self, document_service, writer, clock, registry):
        document_id = await _document_with_content(document_service, clock, "A")

        result = await self._tool(document_service, writer, document_id, FakeGenerator(), registry).execute(
            {"description": "   "}
        )

        assert result == {"error": "No update description provided."}

    async def test_generation_failure_discards_partial_proposal(self, document_service, writer, clock, registry):
        document_id = await _document_with_content(document_service, clock, "A")
        generator = FakeGenerator(error=GenerationFailure("timeout"))

        result = await self._tool(document_service, writer, document_id, generator, registry).execute(
            {"description": "edit"}
        )

        assert result == {"error": "timeout"}
        assert len(registry) == 0


class TestProposalDecisions:
    async def _propose(self, document_service, clock, registry, original, proposed):
        document_id = await _document_with_content(document_service, clock, original)
        tool = UpdateDocumentTool(
            ToolContext(user_id=OWNER, active_document_id=str(document_id)),
            DataStreamWriter(),
            document_service,
            FakeGenerator(text_chunks=[proposed]),
            registry=registry,
        )
        result = await tool.execute({"description": "rewrite"})
        return document_id, result["proposalId"]

    async def test_reject_leaves_content_byte_identical(self, document_service, clock, registry, proposals):
        document_id, proposal_id = await self._propose(document_service, clock, registry, "A", "B")
        before = await document_service.get_current_document(OWNER, document_id)

        assert proposal_id in registry

        rejected = proposals.reject(OWNER, proposal_id)

        after = await document_service.get_current_document(OWNER, document_id)
        assert rejected.status == ProposalStatus.REJECTED
        assert after.content == "A"
        assert after.updated_at == before.updated_at
        assert after.row_uuid == before.row_uuid
        assert len(registry) == 0
        assert proposal_id not in registry
        assert "not-a-uuid" not in registry

    async def test_accept_merges_within_window(self, document_service, clock, registry, proposals):
        document_id, proposal_id = await self._propose(document_service, clock, registry, "A", "B")

        clock.advance(minutes=2)
        result = await proposals.accept(OWNER, proposal_id)

        assert result.outcome == UpdateOutcome.MERGED
        stored = await document_service.get_current_document(OWNER, document_id)
        assert stored.content == "B"

    async def test_accept_matches_manual_edit_outcome(self, document_service, clock, registry, proposals):
        proposed_id, proposal_id = await self._propose(document_service, clock, registry, "A", "B")
        manual_id = await _document_with_content(document_service, clock, "A")

        clock.advance(minutes=12)
        accepted = await proposals.accept(OWNER, proposal_id)
        manual = await document_service.update_content(OWNER, manual_id, "B")

        assert accepted.outcome == manual.outcome == UpdateOutcome.FORKED
        assert accepted.version.content == manual.version.content
        assert accepted.version.kind == manual.version.kind == DocumentKind.TEXT

    async def test_other_owner_cannot_accept(self, document_service, clock, registry, proposals):
        _, proposal_id = await self._propose(document_service, clock, registry, "A", "B")

        with pytest.raises(NotFoundOrUnauthorized):
            await proposals.accept(OTHER_OWNER, proposal_id)

        assert len(registry) == 1

    async def test_proposal_cannot_be_decided_twice(self, document_service, clock, registry, proposals):
        _, proposal_id = await self._propose(document_service, clock, registry, "A", "B")
        proposals.reject(OWNER, proposal_id)

        with pytest.raises(NotFoundOrUnauthorized):
            await proposals.accept(OWNER, proposal_id)
