"""Unit tests for the conversation store.

Tests for app/services/conversations.py - owner scoping, turn ordering,
artifacts and cascading deletes.

Run with:
    pytest tests/unit/test_conversation_store.py -v
    pytest tests/unit/test_conversation_store.py -v -m fast
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.errors import StoreError
from app.database import drop_db, session_scope
from app.models import ArtifactKind, StudyArtifact, Turn, TurnRole
from app.services.conversations import TurnInput

CARDS = [{"question": "What is ATP?", "answer": "Energy"}]


async def count(session_factory, model) -> int:
    async with session_scope(session_factory) as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


@pytest.mark.fast
class TestConversations:
    """Tests for conversation operations."""

    @pytest.mark.asyncio
    async def test_create_with_turns(self, store, user):
        """Test a conversation is created with ordered turns."""
        conversation = await store.create_conversation(
            user.id,
            "Photosynthesis",
            turns=[
                TurnInput(TurnRole.USER, "What is chlorophyll?", "image/png"),
                TurnInput(TurnRole.ASSISTANT, "A pigment."),
            ],
        )

        loaded = await store.get_conversation(conversation.id, user.id)
        assert loaded.title == "Photosynthesis"
        assert [(t.position, t.role) for t in loaded.turns] == [
            (0, TurnRole.USER),
            (1, TurnRole.ASSISTANT),
        ]
        assert loaded.turns[0].has_image is True
        assert loaded.turns[1].has_image is False

    @pytest.mark.asyncio
    async def test_default_title(self, store, user):
        """Test an empty conversation is called New Chat."""
        conversation = await store.create_conversation(user.id)
        assert conversation.title == "New Chat"
        assert conversation.to_summary()["createdAt"] is not None

    @pytest.mark.asyncio
    async def test_append_exchange_positions(self, store, user):
        """Test appended turns continue the position sequence."""
        conversation = await store.create_conversation(user.id, "ATP")

        assert await store.append_exchange(conversation.id, user.id, "q1", "a1")
        assert await store.append_exchange(conversation.id, user.id, "q2", "a2")

        loaded = await store.get_conversation(conversation.id, user.id)
        assert [(t.position, t.content) for t in loaded.turns] == [
            (0, "q1"),
            (1, "a1"),
            (2, "q2"),
            (3, "a2"),
        ]

    @pytest.mark.asyncio
    async def test_append_bumps_updated_at(self, store, user):
        """Test appending moves the conversation to the top of the list."""
        older = await store.create_conversation(user.id, "Older")
        newer = await store.create_conversation(user.id, "Newer")

        await store.append_exchange(older.id, user.id, "q", "a")

        listed = await store.list_conversations(user.id)
        assert [c.id for c in listed] == [older.id, newer.id]

    @pytest.mark.asyncio
    async def test_append_to_foreign_conversation(self, store, session_factory, user, other_user):
        """Test appending to someone else's conversation writes nothing."""
        conversation = await store.create_conversation(other_user.id, "Theirs")

        assert await store.append_exchange(conversation.id, user.id, "q", "a") is False
        assert await count(session_factory, Turn) == 0

    @pytest.mark.asyncio
    async def test_append_to_missing_conversation(self, store, user):
        """Test appending to an unknown id returns False."""
        assert await store.append_exchange("missing", user.id, "q", "a") is False

    @pytest.mark.asyncio
    async def test_get_is_owner_scoped(self, store, user, other_user):
        """Test another user's conversation looks like it does not exist."""
        conversation = await store.create_conversation(user.id, "Mine")

        assert await store.get_conversation(conversation.id, other_user.id) is None
        assert await store.list_conversations(other_user.id) == []

    @pytest.mark.asyncio
    async def test_to_dict_shape(self, store, user):
        """Test the client-facing shape labels the tutor as model."""
        conversation = await store.create_conversation(
            user.id,
            "ATP",
            turns=[TurnInput(TurnRole.USER, "q"), TurnInput(TurnRole.ASSISTANT, "a")],
        )
        data = (await store.get_conversation(conversation.id, user.id)).to_dict()

        assert data["messages"] == [
            {"role": "user", "content": "q", "hasImage": False},
            {"role": "model", "content": "a", "hasImage": False},
        ]


@pytest.mark.fast
class TestDeleteConversation:
    """Tests for delete_conversation."""

    @pytest.mark.asyncio
    async def test_delete_cascades(self, store, session_factory, user):
        """Test turns and artifacts go with the conversation."""
        conversation = await store.create_conversation(
            user.id, "ATP", turns=[TurnInput(TurnRole.USER, "q"), TurnInput(TurnRole.ASSISTANT, "a")]
        )
        await store.create_artifact(user.id, conversation.id, ArtifactKind.FLASHCARDS, "Cards", CARDS)

        assert await store.delete_conversation(conversation.id, user.id) is True

        assert await store.get_conversation(conversation.id, user.id) is None
        assert await count(session_factory, Turn) == 0
        assert await count(session_factory, StudyArtifact) == 0

    @pytest.mark.asyncio
    async def test_delete_twice(self, store, user):
        """Test the second delete reports nothing to delete."""
        conversation = await store.create_conversation(user.id, "ATP")

        assert await store.delete_conversation(conversation.id, user.id) is True
        assert await store.delete_conversation(conversation.id, user.id) is False

    @pytest.mark.asyncio
    async def test_delete_foreign(self, store, user, other_user):
        """Test another user cannot delete a conversation."""
        conversation = await store.create_conversation(user.id, "Mine")

        assert await store.delete_conversation(conversation.id, other_user.id) is False
        assert await store.get_conversation(conversation.id, user.id) is not None


@pytest.mark.fast
class TestArtifacts:
    """Tests for study artifact operations."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, store, user):
        """Test artifacts are listed newest first, optionally per conversation."""
        first = await store.create_conversation(user.id, "One")
        second = await store.create_conversation(user.id, "Two")
        cards = await store.create_artifact(user.id, first.id, ArtifactKind.FLASHCARDS, "Cards", CARDS)
        quiz = await store.create_artifact(user.id, second.id, ArtifactKind.QUIZ, "Quiz", [{"q": 1}])

        assert [a.id for a in await store.list_artifacts(user.id)] == [quiz.id, cards.id]
        assert [a.id for a in await store.list_artifacts(user.id, first.id)] == [cards.id]

    @pytest.mark.asyncio
    async def test_to_dict(self, store, user):
        """Test the activity shape."""
        conversation = await store.create_conversation(user.id, "One")
        artifact = await store.create_artifact(
            user.id, conversation.id, ArtifactKind.FLASHCARDS, "Cards", CARDS, model_used="test/gen"
        )

        data = artifact.to_dict()
        assert data["type"] == "flashcard"
        assert data["conversationId"] == conversation.id
        assert data["data"] == CARDS
        assert data["count"] == 1

    @pytest.mark.asyncio
    async def test_create_for_foreign_conversation(self, store, user, other_user):
        """Test artifacts cannot be attached to someone else's conversation."""
        conversation = await store.create_conversation(other_user.id, "Theirs")

        assert await store.create_artifact(
            user.id, conversation.id, ArtifactKind.QUIZ, "Quiz", CARDS
        ) is None

    @pytest.mark.asyncio
    async def test_delete_artifact(self, store, user, other_user):
        """Test only the owner can delete, and only once."""
        conversation = await store.create_conversation(user.id, "One")
        artifact = await store.create_artifact(user.id, conversation.id, ArtifactKind.QUIZ, "Quiz", CARDS)

        assert await store.delete_artifact(artifact.id, other_user.id) is False
        assert await store.delete_artifact(artifact.id, user.id) is True
        assert await store.delete_artifact(artifact.id, user.id) is False


@pytest.mark.fast
class TestStoreErrors:
    """Tests for database failure handling."""

    @pytest.mark.asyncio
    async def test_database_failure_raises_store_error(self, store, db_engine, user):
        """Test SQLAlchemy failures surface as StoreError."""
        await drop_db(db_engine)

        with pytest.raises(StoreError, match="Failed to list conversations") as exc_info:
            await store.list_conversations(user.id)
        assert isinstance(exc_info.value.__cause__, OperationalError)
