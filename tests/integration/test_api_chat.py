"""Integration tests for the chat, conversation and model routes.

Run with:
    pytest tests/integration/test_api_chat.py -v
"""

import json

import pytest

from app.config import ProviderType
from app.core.providers import RateLimitError
from app.models import TurnRole
from app.services.conversations import TurnInput
from tests.utils.test_helpers import parse_sse

HISTORY = [
    {"role": "user", "content": "What is ATP?"},
    {"role": "model", "content": "ATP is the energy currency of the cell."},
]

FLASHCARDS_JSON = json.dumps(
    {
        "title": "ATP Basics",
        "flashcards": [{"question": "What is ATP?", "answer": "Energy currency"}],
    }
)

QUIZ_JSON = json.dumps(
    {
        "title": "ATP Quiz",
        "quiz": [
            {
                "question": "ATP stores?",
                "options": ["Energy", "Water", "DNA", "Salt"],
                "correctAnswer": 0,
                "explanation": "Chemical energy.",
            }
        ],
    }
)


@pytest.mark.fast
class TestChatStream:
    """Tests for POST /api/v1/chat/stream."""

    @pytest.mark.asyncio
    async def test_sse_frames(self, test_client):
        """Test chunks then a done event, framed as SSE."""
        response = await test_client.post("/api/v1/chat/stream", json={"message": "Hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = parse_sse(response.text)
        assert events == [
            {"content": "Hello", "done": False},
            {"content": ", ", "done": False},
            {"content": "student", "done": False},
            {"content": "", "done": True, "conversationId": None},
        ]

    @pytest.mark.asyncio
    async def test_missing_message_is_400(self, test_client, provider):
        """Test a missing message is rejected before streaming starts."""
        response = await test_client.post("/api/v1/chat/stream", json={"history": HISTORY})

        assert response.status_code == 400
        assert response.json()["error"] == "Message is required"
        assert provider.stream_calls == []

    @pytest.mark.asyncio
    async def test_invalid_body_is_400(self, test_client):
        """Test a body that is not JSON is a 400."""
        response = await test_client.post(
            "/api/v1/chat/stream",
            content=b"not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_authenticated_stream_saves(self, test_client, auth_headers, store, user):
        """Test the done event carries the id of the saved conversation."""
        response = await test_client.post(
            "/api/v1/chat/stream", json={"message": "Explain photosynthesis"}, headers=auth_headers
        )

        done = parse_sse(response.text)[-1]
        conversation = await store.get_conversation(done["conversationId"], user.id)
        assert conversation.title == "Photosynthesis Basics"
        assert [t.content for t in conversation.turns] == ["Explain photosynthesis", "Hello, student"]

    @pytest.mark.asyncio
    async def test_exhaustion_is_error_event(self, test_client, provider):
        """Test every model failing ends the stream with an error event."""
        provider.default_stream = [RateLimitError(ProviderType.OPENROUTER)]

        response = await test_client.post("/api/v1/chat/stream", json={"message": "Hi"})

        assert response.status_code == 200
        events = parse_sse(response.text)
        assert len(events) == 1
        assert "All models failed" in events[0]["error"]

    @pytest.mark.asyncio
    async def test_multipart_with_image(self, test_client, provider, auth_headers, store, user):
        """Test a multipart request with an image uses the vision chain."""
        response = await test_client.post(
            "/api/v1/chat/stream",
            data={"message": "What is this?", "history": json.dumps(HISTORY)},
            files={"image": ("leaf.png", b"\x89PNG data", "image/png")},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert provider.stream_calls == ["test/vision-a"]
        prompt = provider.stream_messages[0]
        assert prompt[-1].image.mime_type == "image/png"
        assert [m.role for m in prompt] == ["system", "user", "assistant", "user"]

        done = parse_sse(response.text)[-1]
        conversation = await store.get_conversation(done["conversationId"], user.id)
        assert conversation.turns[0].image_mime == "image/png"

    @pytest.mark.asyncio
    async def test_multipart_rejects_non_image(self, test_client):
        """Test only image uploads are accepted."""
        response = await test_client.post(
            "/api/v1/chat/stream",
            data={"message": "Read this"},
            files={"image": ("notes.txt", b"text", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Only image files are allowed"

    @pytest.mark.asyncio
    async def test_multipart_rejects_large_image(self, test_client, env):
        """Test images over the size limit are rejected."""
        env(MAX_IMAGE_BYTES="16")

        response = await test_client.post(
            "/api/v1/chat/stream",
            data={"message": "What is this?"},
            files={"image": ("big.png", b"x" * 32, "image/png")},
        )

        assert response.status_code == 400
        assert "limit" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_multipart_bad_history(self, test_client):
        """Test history must be a JSON array."""
        response = await test_client.post(
            "/api/v1/chat/stream",
            data={"message": "Hi"},
            files={"history": (None, b"{nope")},
        )

        assert response.status_code == 400


@pytest.mark.fast
class TestChatOnce:
    """Tests for POST /api/v1/chat."""

    @pytest.mark.asyncio
    async def test_reply(self, test_client):
        """Test the complete reply and the model that produced it."""
        response = await test_client.post(
            "/api/v1/chat", json={"message": "Hi", "history": HISTORY, "modelId": "test/text-b"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Tutor reply"
        assert data["role"] == "model"
        assert data["model"] == "test/text-b"

    @pytest.mark.asyncio
    async def test_follow_up_appends(self, test_client, auth_headers, store, user):
        """Test a follow-up with a conversation id appends to it."""
        conversation = await store.create_conversation(
            user.id, "ATP", turns=[TurnInput(TurnRole.USER, "q"), TurnInput(TurnRole.ASSISTANT, "a")]
        )

        response = await test_client.post(
            "/api/v1/chat",
            json={"message": "More", "conversationId": conversation.id},
            headers=auth_headers,
        )

        assert response.json()["conversationId"] == conversation.id
        loaded = await store.get_conversation(conversation.id, user.id)
        assert len(loaded.turns) == 4


@pytest.mark.fast
class TestStudyArtifacts:
    """Tests for POST /api/v1/chat/flashcards and /quiz."""

    @pytest.mark.asyncio
    async def test_flashcards_anonymous(self, test_client, provider):
        """Test flashcards are returned without an artifact id for anonymous callers."""
        provider.completions["test/gen"] = FLASHCARDS_JSON

        response = await test_client.post("/api/v1/chat/flashcards", json={"history": HISTORY})

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "ATP Basics"
        assert data["count"] == 1
        assert data["flashcards"][0]["answer"] == "Energy currency"
        assert "artifactId" not in data

    @pytest.mark.asyncio
    async def test_quiz_saved_and_listed(self, test_client, provider, auth_headers, store, user):
        """Test a saved quiz shows up in activities for its conversation."""
        provider.completions["test/gen"] = QUIZ_JSON
        conversation = await store.create_conversation(user.id, "ATP")

        response = await test_client.post(
            "/api/v1/chat/quiz",
            json={"history": HISTORY, "conversationId": conversation.id},
            headers=auth_headers,
        )

        data = response.json()
        assert data["quiz"][0]["correctAnswer"] == 0
        assert data["artifactId"]

        listed = await test_client.get(
            "/api/v1/chat/activities",
            params={"conversationId": conversation.id},
            headers=auth_headers,
        )
        activities = listed.json()["activities"]
        assert [a["id"] for a in activities] == [data["artifactId"]]
        assert activities[0]["type"] == "quiz"
        assert activities[0]["data"][0]["options"] == ["Energy", "Water", "DNA", "Salt"]

    @pytest.mark.asyncio
    async def test_empty_history_is_400(self, test_client):
        """Test generation needs history."""
        response = await test_client.post("/api/v1/chat/quiz", json={"history": []})

        assert response.status_code == 400
        assert response.json()["error"] == "Chat history is required"

    @pytest.mark.asyncio
    async def test_unparseable_reply_is_502(self, test_client, provider):
        """Test a malformed model reply is a bad gateway."""
        provider.completions["test/gen"] = "no json here"

        response = await test_client.post("/api/v1/chat/flashcards", json={"history": HISTORY})

        assert response.status_code == 502
        assert response.json()["detail"] == "ArtifactParseError"

    @pytest.mark.asyncio
    async def test_delete_activity(self, test_client, provider, auth_headers, store, user):
        """Test deleting an activity twice is a 404 the second time."""
        provider.completions["test/gen"] = FLASHCARDS_JSON
        conversation = await store.create_conversation(user.id, "ATP")
        created = await test_client.post(
            "/api/v1/chat/flashcards",
            json={"history": HISTORY, "conversationId": conversation.id},
            headers=auth_headers,
        )
        artifact_id = created.json()["artifactId"]

        first = await test_client.delete(f"/api/v1/chat/activities/{artifact_id}", headers=auth_headers)
        second = await test_client.delete(f"/api/v1/chat/activities/{artifact_id}", headers=auth_headers)

        assert first.status_code == 200
        assert second.status_code == 404


@pytest.mark.fast
class TestConversationRoutes:
    """Tests for history, detail, create and delete."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/v1/chat/history"),
            ("POST", "/api/v1/chat/conversations"),
            ("GET", "/api/v1/chat/activities"),
            ("DELETE", "/api/v1/chat/activities/some-id"),
            ("GET", "/api/v1/chat/some-id"),
            ("DELETE", "/api/v1/chat/some-id"),
        ],
    )
    @pytest.mark.asyncio
    async def test_requires_session(self, test_client, method, path):
        """Test owner routes answer 401 to anonymous callers."""
        response = await test_client.request(method, path)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_list_get(self, test_client, auth_headers):
        """Test a created conversation is listed and can be fetched."""
        created = await test_client.post(
            "/api/v1/chat/conversations", json={"title": "Cells"}, headers=auth_headers
        )
        assert created.status_code == 201
        conversation_id = created.json()["id"]

        history = await test_client.get("/api/v1/chat/history", headers=auth_headers)
        assert [c["title"] for c in history.json()["conversations"]] == ["Cells"]

        detail = await test_client.get(f"/api/v1/chat/{conversation_id}", headers=auth_headers)
        assert detail.status_code == 200
        assert detail.json()["messages"] == []
        assert "createdAt" in detail.json()

    @pytest.mark.asyncio
    async def test_create_without_body(self, test_client, auth_headers):
        """Test the default title is used when no body is sent."""
        created = await test_client.post("/api/v1/chat/conversations", headers=auth_headers)

        assert created.status_code == 201
        assert created.json()["title"] == "New Chat"

    @pytest.mark.asyncio
    async def test_detail_messages(self, test_client, auth_headers, store, user):
        """Test messages come back oldest first with client roles."""
        conversation = await store.create_conversation(
            user.id,
            "ATP",
            turns=[TurnInput(TurnRole.USER, "q", "image/png"), TurnInput(TurnRole.ASSISTANT, "a")],
        )

        detail = await test_client.get(f"/api/v1/chat/{conversation.id}", headers=auth_headers)

        assert detail.json()["messages"] == [
            {"role": "user", "content": "q", "hasImage": True},
            {"role": "model", "content": "a", "hasImage": False},
        ]

    @pytest.mark.asyncio
    async def test_foreign_conversation_is_404(self, test_client, auth_headers, store, other_user):
        """Test another user's conversation is not found."""
        conversation = await store.create_conversation(other_user.id, "Theirs")

        response = await test_client.get(f"/api/v1/chat/{conversation.id}", headers=auth_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_twice(self, test_client, auth_headers, store, user):
        """Test the second delete of a conversation is a 404."""
        conversation = await store.create_conversation(user.id, "ATP")

        first = await test_client.delete(f"/api/v1/chat/{conversation.id}", headers=auth_headers)
        second = await test_client.delete(f"/api/v1/chat/{conversation.id}", headers=auth_headers)

        assert first.status_code == 200
        assert first.json() == {"detail": "Conversation deleted"}
        assert second.status_code == 404


@pytest.mark.fast
class TestModelsEndpoint:
    """Tests for GET /api/v1/models."""

    @pytest.mark.asyncio
    async def test_list(self, test_client):
        """Test the catalog and chains are returned."""
        response = await test_client.get("/api/v1/models")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["default_model"] == "test/text-a"
        assert data["vision_fallbacks"] == ["test/vision-a", "test/vision-b"]

    @pytest.mark.asyncio
    async def test_vision_filter(self, test_client):
        """Test ?vision=true keeps only image-capable models."""
        response = await test_client.get("/api/v1/models", params={"vision": "true"})

        assert [m["id"] for m in response.json()["models"]] == ["test/vision-a"]

    @pytest.mark.asyncio
    async def test_get_model_with_slash(self, test_client):
        """Test model ids containing a slash resolve."""
        response = await test_client.get("/api/v1/models/test/text-b")

        assert response.status_code == 200
        assert response.json()["display_name"] == "Text B"

    @pytest.mark.asyncio
    async def test_get_unknown_model(self, test_client):
        """Test an unknown model is a 404."""
        response = await test_client.get("/api/v1/models/nobody/nothing")

        assert response.status_code == 404
