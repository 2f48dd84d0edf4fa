"""Tests for the merge-vs-fork coordinator."""

import uuid

import pytest

from coauthor.core.errors import InvalidIdentifier, NotFoundOrUnauthorized
from coauthor.db.repositories.chat_repository import ChatRepository
from coauthor.domains.documents.entities import DEFAULT_TITLE, DocumentKind, UpdateOutcome
from coauthor.domains.documents.schemas import DocumentPublishRequest, DocumentWriteRequest
from coauthor.domains.documents.services import DocumentService
from tests.conftest import OTHER_OWNER, OWNER
from tests.fakes import T0


class TestMergeOrFork:
    async def test_update_within_threshold_merges_then_forks_after(self, document_service, clock):
        document = await document_service.create_empty_document(OWNER, "D1", DocumentKind.TEXT)
        document_id = document.document_id

        clock.advance(minutes=2)
        merged = await document_service.update_content(OWNER, document_id, "first draft", kind=DocumentKind.TEXT)

        assert merged.outcome == UpdateOutcome.MERGED
        assert await document_service.document_repository.count_versions(OWNER, document_id) == 1
        assert merged.version.updated_at == clock.now
        assert merged.version.created_at == T0

        merged_at = clock.now
        clock.advance(minutes=10)
        forked = await document_service.update_content(OWNER, document_id, "second draft", kind=DocumentKind.TEXT)

        assert forked.outcome == UpdateOutcome.FORKED
        versions = await document_service.get_document_versions(OWNER, document_id)
        assert len(versions) == 2
        old, new = versions
        assert not old.is_current
        assert old.updated_at == merged_at
        assert old.content == "first draft"
        assert new.is_current
        assert new.content == "second draft"
        assert new.title == "D1"

    async def test_elapsed_at_threshold_always_forks(self, document_service, clock):
        document = await document_service.create_empty_document(OWNER, "D1")

        clock.advance(minutes=10)
        result = await document_service.update_content(OWNER, document.document_id, "text")

        assert result.outcome == UpdateOutcome.FORKED

    async def test_kind_change_forks_inside_window(self, document_service, clock):
        document = await document_service.create_empty_document(OWNER, "Snippet", DocumentKind.TEXT)

        clock.advance(minutes=1)
        result = await document_service.update_content(
            OWNER, document.document_id, "print('hi')", kind=DocumentKind.CODE
        )

        assert result.outcome == UpdateOutcome.FORKED
        assert result.version.kind == DocumentKind.CODE

    async def test_missing_kind_inherits_stored_kind(self, document_service, clock):
        document = await document_service.create_empty_document(OWNER, "Snippet", DocumentKind.CODE)

        clock.advance(minutes=1)
        result = await document_service.update_content(OWNER, document.document_id, "x = 1")

        assert result.outcome == UpdateOutcome.MERGED
        assert result.version.kind == DocumentKind.CODE

    async def test_threshold_is_configurable(self, db_session, clock, events):
        service = DocumentService(db_session, clock=clock, events=events, merge_threshold_minutes=1)
        document = await service.create_empty_document(OWNER, "D1")

        clock.advance(minutes=2)
        result = await service.update_content(OWNER, document.document_id, "text")

        assert result.outcome == UpdateOutcome.FORKED

    async def test_update_without_current_inherits_latest_title(self, document_service, clock):
        document = await document_service.create_empty_document(OWNER, "Inherited")
        await document_service.document_repository.clear_current_flag(OWNER, document.document_id)

        clock.advance(minutes=1)
        result = await document_service.update_content(OWNER, document.document_id, "revived")

        assert result.outcome == UpdateOutcome.FORKED
        assert result.version.title == "Inherited"
        assert result.version.is_current

    async def test_update_of_unknown_document_uses_default_title(self, document_service):
        result = await document_service.update_content(OWNER, str(uuid.uuid4()), "fresh")

        assert result.outcome == UpdateOutcome.FORKED
        assert result.version.title == DEFAULT_TITLE
        assert result.version.kind == DocumentKind.TEXT

    async def test_malformed_id_is_rejected_before_store_access(self, document_service):
        with pytest.raises(InvalidIdentifier):
            await document_service.update_content(OWNER, "init", "text")

    async def test_invalid_chat_is_dropped_silently(self, document_service):
        result = await document_service.update_content(
            OWNER, str(uuid.uuid4()), "text", chat_id=str(uuid.uuid4())
        )

        assert result.version.chat_id is None

    async def test_existing_chat_is_linked_on_fork(self, document_service, db_session):
        chat_id = await ChatRepository(db_session).create(uuid.uuid4(), OWNER, "Chat")

        result = await document_service.update_content(OWNER, str(uuid.uuid4()), "text", chat_id=str(chat_id))

        assert result.version.chat_id == chat_id


class TestDocumentActions:
    async def test_create_generates_id_and_defaults(self, document_service):
        document = await document_service.create_document(OWNER, DocumentWriteRequest())

        assert isinstance(document.document_id, uuid.UUID)
        assert document.title == DEFAULT_TITLE
        assert document.content == ""
        assert document.kind == DocumentKind.TEXT

    async def test_create_with_malformed_id_fails(self, document_service):
        with pytest.raises(InvalidIdentifier):
            await document_service.create_document(OWNER, DocumentWriteRequest(id="abc"))

    async def test_create_over_existing_identity_keeps_one_current(self, document_service, clock):
        document_id = str(uuid.uuid4())
        await document_service.create_document(OWNER, DocumentWriteRequest(id=document_id, content="a"))
        clock.advance(seconds=5)
        await document_service.create_document(OWNER, DocumentWriteRequest(id=document_id, content="b"))

        versions = await document_service.get_document_versions(OWNER, document_id)
        assert [version.is_current for version in versions] == [False, True]

    async def test_rename_does_not_touch_updated_at(self, document_service, clock):
        document = await document_service.create_empty_document(OWNER, "Old")

        clock.advance(minutes=30)
        renamed = await document_service.rename_document(OWNER, str(document.document_id), "New")

        assert renamed.title == "New"
        assert renamed.updated_at == T0

    async def test_get_current_document_of_other_owner(self, document_service):
        document = await document_service.create_empty_document(OWNER, "Private")

        with pytest.raises(NotFoundOrUnauthorized):
            await document_service.get_current_document(OTHER_OWNER, document.document_id)

    async def test_get_file_by_path_prefers_id_then_title(self, document_service):
        document = await document_service.create_empty_document(OWNER, "Roadmap")

        by_id = await document_service.get_file_by_path(OWNER, str(document.document_id))
        by_title = await document_service.get_file_by_path(OWNER, "roadmap")

        assert by_id.document_id == document.document_id
        assert by_title.document_id == document.document_id
        assert await document_service.get_file_by_path(OTHER_OWNER, "Roadmap") is None

    async def test_publish_sets_slug(self, document_service):
        document = await document_service.create_empty_document(OWNER, "Post")

        published = await document_service.publish_document(
            OWNER, DocumentPublishRequest(id=str(document.document_id), visibility="public", slug=" my-post ")
        )

        assert published.slug == "my-post"
        assert published.visibility.value == "public"

    async def test_recreate_releases_slug_for_other_document(self, document_service, clock):
        first = await document_service.create_document(OWNER, DocumentWriteRequest(title="First"))
        first_id = str(first.document_id)
        await document_service.publish_document(OWNER, DocumentPublishRequest(id=first_id, slug="x"))

        clock.advance(seconds=5)
        recreated = await document_service.create_document(OWNER, DocumentWriteRequest(id=first_id, content="new"))
        second = await document_service.create_document(OWNER, DocumentWriteRequest(title="Second"))
        published = await document_service.publish_document(
            OWNER, DocumentPublishRequest(id=str(second.document_id), slug="x")
        )

        assert recreated.slug is None
        assert published.slug == "x"
        versions = await document_service.get_document_versions(OWNER, first_id)
        assert [version.slug for version in versions] == [None, None]


class TestNotifications:
    async def test_events_follow_each_write(self, document_service, events, clock):
        queue = events.subscribe(OWNER)
        other_queue = events.subscribe(OTHER_OWNER)

        document = await document_service.create_empty_document(OWNER, "D1")
        clock.advance(minutes=1)
        await document_service.update_content(OWNER, document.document_id, "a")
        clock.advance(minutes=20)
        await document_service.update_content(OWNER, document.document_id, "b")
        await document_service.rename_document(OWNER, document.document_id, "D2")
        await document_service.delete_document(OWNER, document.document_id)

        received = []
        while not queue.empty():
            received.append(queue.get_nowait().type)

        assert received == ["created", "merged", "forked", "renamed", "deleted"]
        assert other_queue.empty()

    async def test_event_message_shape(self, document_service, events):
        queue = events.subscribe(OWNER)
        document = await document_service.create_empty_document(OWNER, "D1")

        message = queue.get_nowait().to_message()

        assert message == {
            "type": "document_created",
            "data": {"document_id": str(document.document_id), "title": "D1"},
        }

    async def test_unsubscribed_queue_stops_receiving(self, document_service, events):
        first = events.subscribe(OWNER)
        second = events.subscribe(OWNER)
        assert events.subscriber_count(OWNER) == 2

        events.unsubscribe(OWNER, first)
        await document_service.create_empty_document(OWNER, "D1")

        assert events.subscriber_count(OWNER) == 1
        assert first.empty()
        assert second.get_nowait().type == "created"

        events.unsubscribe(OWNER, second)
        assert events.subscriber_count(OWNER) == 0
