"""HTTP and WebSocket API tests."""

import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from coauthor.core.config import settings
from coauthor.core.security import create_access_token
from coauthor.domains.generation.client import ToolCall, TurnChunk, get_text_generator
from coauthor.main import app
from tests.conftest import OTHER_OWNER, OWNER, auth_headers, parse_sse
from tests.fakes import FakeGenerator


async def _create(client, **body):
    response = await client.put("/documents/", json=body, headers=auth_headers())
    assert response.status_code == 201
    return response.json()


class TestDocumentEndpoints:
    async def test_requires_bearer_token(self, client):
        response = await client.get("/documents/")

        assert response.status_code in (401, 403)

    async def test_create_returns_camel_case_row(self, client):
        document = await _create(client, title="Plan", content="Step one", chatId="not-a-chat")

        assert document["title"] == "Plan"
        assert document["userId"] == OWNER
        assert document["chatId"] is None
        assert document["is_current"] is True
        assert {"createdAt", "updatedAt", "visibility", "slug"} <= set(document)

    async def test_create_with_malformed_id_is_400(self, client):
        response = await client.put("/documents/", json={"id": "nope"}, headers=auth_headers())

        assert response.status_code == 400

    async def test_update_twice_merges_into_one_version(self, client):
        document = await _create(client, title="Plan")

        first = await client.post("/documents/", json={"id": document["id"], "content": "v1"}, headers=auth_headers())
        second = await client.post("/documents/", json={"id": document["id"], "content": "v2"}, headers=auth_headers())

        assert first.json()["outcome"] == "merged"
        assert second.json()["outcome"] == "merged"
        versions = await client.get(f"/documents/{document['id']}/versions", headers=auth_headers())
        assert [row["content"] for row in versions.json()] == ["v2"]

    async def test_kind_change_forks(self, client):
        document = await _create(client, title="Snippet", content="x")

        response = await client.post(
            "/documents/", json={"id": document["id"], "content": "x = 1", "kind": "code"}, headers=auth_headers()
        )

        assert response.json()["outcome"] == "forked"
        assert response.json()["document"]["kind"] == "code"

    async def test_update_without_id_is_400(self, client):
        response = await client.post("/documents/", json={"content": "orphan"}, headers=auth_headers())

        assert response.status_code == 400

    async def test_rename_is_detected_from_body_shape(self, client):
        document = await _create(client, title="Old", content="text")

        response = await client.post("/documents/", json={"id": document["id"], "title": "New"}, headers=auth_headers())

        assert response.json() == {"id": document["id"], "title": "New"}
        current = await client.get(f"/documents/{document['id']}", headers=auth_headers())
        assert current.json()["title"] == "New"
        assert current.json()["content"] == "text"

    async def test_other_owner_gets_404(self, client):
        document = await _create(client, title="Mine")

        read = await client.get(f"/documents/{document['id']}", headers=auth_headers(OTHER_OWNER))
        delete = await client.delete(f"/documents/{document['id']}", headers=auth_headers(OTHER_OWNER))

        assert read.status_code == 404
        assert delete.status_code == 404

    async def test_delete_removes_document(self, client):
        document = await _create(client, title="Temp")

        response = await client.delete(f"/documents/{document['id']}", headers=auth_headers())

        assert response.json() == {"id": document["id"], "deleted": 1}
        missing = await client.get(f"/documents/{document['id']}", headers=auth_headers())
        assert missing.status_code == 404

    async def test_list_pagination(self, client):
        for index in range(3):
            await _create(client, title=f"Doc {index}")

        first = await client.get("/documents/", params={"limit": 2}, headers=auth_headers())
        assert first.json()["hasMore"] is True
        ids = [doc["id"] for doc in first.json()["documents"]]

        second = await client.get(
            "/documents/", params={"limit": 2, "ending_before": ids[-1]}, headers=auth_headers()
        )
        assert second.json()["hasMore"] is False
        assert len(second.json()["documents"]) == 1
        assert second.json()["documents"][0]["id"] not in ids

    async def test_search(self, client):
        document = await _create(client, title="Quarterly report", content="Revenue grew")

        response = await client.get("/documents/search", params={"query": "revenue"}, headers=auth_headers())

        assert response.json() == {
            "results": [{"id": document["id"], "title": "Quarterly report", "type": "document"}],
            "query": "revenue",
        }

    async def test_by_path_lookup(self, client):
        document = await _create(client, title="Roadmap")

        found = await client.get("/documents/by-path", params={"path": "roadmap"}, headers=auth_headers())
        missing = await client.get("/documents/by-path", params={"path": "nothing"}, headers=auth_headers())

        assert found.json()["id"] == document["id"]
        assert missing.status_code == 404

    async def test_publish_slug_conflict_is_409(self, client):
        first = await _create(client, title="One")
        second = await _create(client, title="Two")

        ok = await client.post(
            "/documents/publish",
            json={"id": first["id"], "visibility": "public", "slug": "post"},
            headers=auth_headers(),
        )
        conflict = await client.post(
            "/documents/publish",
            json={"id": second["id"], "visibility": "public", "slug": "post"},
            headers=auth_headers(),
        )

        assert ok.status_code == 200
        assert ok.json()["slug"] == "post"
        assert conflict.status_code == 409


class TestChatEndpoints:
    async def test_create_turn_streams_document_id(self, client, generator, monkeypatch):
        monkeypatch.setattr(settings, "create_settle_delay_seconds", 0)
        generator.turns = [
            [TurnChunk(tool_call=ToolCall(id="call_1", name="createDocument", arguments={"title": "Ideas"}))],
            [TurnChunk(text="Created.")],
        ]

        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "new doc"}]}, headers=auth_headers()
        )

        events = parse_sse(response.text)
        assert response.headers["content-type"].startswith("text/event-stream")
        assert events[0]["type"] == "data-id"
        document_id = events[0]["data"]
        stored = await client.get(f"/documents/{document_id}", headers=auth_headers())
        assert stored.json()["title"] == "Ideas"
        assert stored.json()["content"] == ""

    async def test_proposal_accept_and_reject(self, client, generator):
        document = await _create(client, title="Notes", content="A")
        generator.text_chunks = ["B"]

        async def propose():
            generator.turns = [
                [TurnChunk(tool_call=ToolCall(id="c", name="updateDocument", arguments={"description": "B"}))]
            ]
            response = await client.post(
                "/chat",
                json={"messages": [{"role": "user", "content": "edit"}], "activeDocumentId": document["id"]},
                headers=auth_headers(),
            )
            result = next(event for event in parse_sse(response.text) if event["type"] == "tool-result")
            return result["result"]["proposalId"]

        rejected_id = await propose()
        rejected = await client.post(f"/proposals/{rejected_id}/reject", headers=auth_headers())
        assert rejected.json() == {"id": rejected_id, "status": "rejected"}
        current = await client.get(f"/documents/{document['id']}", headers=auth_headers())
        assert current.json()["content"] == "A"

        accepted_id = await propose()
        foreign = await client.post(f"/proposals/{accepted_id}/accept", headers=auth_headers(OTHER_OWNER))
        assert foreign.status_code == 404

        accepted = await client.post(f"/proposals/{accepted_id}/accept", headers=auth_headers())
        assert accepted.json()["outcome"] == "merged"
        assert accepted.json()["document"]["content"] == "B"

    async def test_unknown_proposal_is_404(self, client):
        response = await client.post(f"/proposals/{uuid.uuid4()}/accept", headers=auth_headers())

        assert response.status_code == 404


class TestInlineSuggestionEndpoint:
    async def test_streams_suggestion(self, client, generator):
        document = await _create(client, title="Story")
        generator.text_chunks = [" the hills"]

        response = await client.post(
            "/inline-suggestion",
            json={"documentId": document["id"], "currentContent": "They walked over"},
            headers=auth_headers(),
        )

        assert parse_sse(response.text) == [
            {"type": "suggestion-delta", "content": " the hills"},
            {"type": "finish", "content": ""},
        ]

    async def test_unknown_document_is_404(self, client):
        response = await client.post(
            "/inline-suggestion",
            json={"documentId": str(uuid.uuid4()), "currentContent": "They walked over"},
            headers=auth_headers(),
        )

        assert response.status_code == 404

    async def test_accept_endpoint_rebuilds_list(self, client):
        response = await client.post(
            "/inline-suggestion/accept",
            json={"currentContent": "- one\n- tw", "suggestion": "o\nthree", "contextAfter": ""},
            headers=auth_headers(),
        )

        assert response.json() == {"text": "- one\n- two\n- three", "cursor": 19, "listItemsAdded": 1}


class TestWebSockets:
    @pytest.fixture
    def sync_client(self):
        app.dependency_overrides[get_text_generator] = lambda: FakeGenerator()
        with TestClient(app) as test_client:
            yield test_client
        app.dependency_overrides.clear()

    def _token(self, user_id=OWNER):
        return create_access_token({"sub": user_id})

    def test_document_channel_handshake_and_ping(self, sync_client):
        with sync_client.websocket_connect(f"/ws/documents?token={self._token()}") as websocket:
            assert websocket.receive_json() == {"type": "connected", "data": {"user_id": OWNER}}
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

    @pytest.mark.parametrize("channel", ["documents", "completions"])
    def test_non_object_messages_are_skipped(self, sync_client, channel):
        with sync_client.websocket_connect(f"/ws/{channel}?token={self._token()}") as websocket:
            websocket.receive_json()
            websocket.send_json([])
            websocket.send_json("x")
            websocket.send_text("not json")
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

    def test_invalid_token_is_rejected(self, sync_client):
        with pytest.raises(WebSocketDisconnect):
            with sync_client.websocket_connect("/ws/documents?token=bad") as websocket:
                websocket.receive_json()

    def test_completion_channel_controls(self, sync_client):
        with sync_client.websocket_connect(f"/ws/completions?token={self._token()}") as websocket:
            websocket.receive_json()

            websocket.send_json({"type": "activity", "data": {"documentId": "d", "currentContent": "Hi"}})
            websocket.send_json({"type": "accept"})
            assert websocket.receive_json() == {"type": "accepted", "data": None}

            websocket.send_json({"type": "cancel"})
            assert websocket.receive_json() == {"type": "cancelled"}

            websocket.send_json({"type": "activity", "data": {}})
            assert websocket.receive_json()["type"] == "error"

    def test_token_accepted_from_authorization_header(self, sync_client):
        headers = {"Authorization": f"Bearer {self._token(OTHER_OWNER)}"}
        with sync_client.websocket_connect("/ws/documents", headers=headers) as websocket:
            assert websocket.receive_json() == {"type": "connected", "data": {"user_id": OTHER_OWNER}}
