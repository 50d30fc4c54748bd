"""Conversation store.

Persists conversations, their turns and the study artifacts generated from
them. Every operation opens its own unit of work from the session factory,
so a store can be used from a streaming response after the request's own
dependencies have been torn down.

All operations are owner-scoped: a conversation or artifact that belongs to
someone else behaves exactly like one that does not exist.

Examples:
    >>> store = ConversationStore()
    >>> conversation = await store.create_conversation(user.id, "Photosynthesis")
    >>> await store.append_exchange(conversation.id, user.id, "What is ATP?", "ATP is ...")
    True

Tests:
    - tests/unit/test_conversation_store.py
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.core.errors import StoreError
from app.database import get_session_factory, session_scope
from app.models import (
    ArtifactKind,
    Conversation,
    StudyArtifact,
    Turn,
    TurnRole,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnInput:
    """A turn to be written; image bytes are never part of it."""

    role: TurnRole
    content: str
    image_mime: str | None = None


class ConversationStore:
    """Owner-scoped persistence for conversations and study artifacts.

    Attributes:
        session_factory: Factory for per-operation sessions (defaults to the
            process-wide one, resolved lazily)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncGenerator[AsyncSession, None]:
        """Unit of work that turns any SQLAlchemy failure into StoreError."""
        try:
            async with session_scope(self.session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Conversation store failed to {action}: {e}")
            raise StoreError(f"Failed to {action}") from e

    @staticmethod
    def _build_turn(position: int, turn: TurnInput, conversation_id: str | None = None) -> Turn:
        return Turn(
            conversation_id=conversation_id,
            position=position,
            role=turn.role,
            content=turn.content,
            has_image=turn.image_mime is not None,
            image_mime=turn.image_mime,
        )

    async def _owned_conversation(
        self,
        session: AsyncSession,
        conversation_id: str,
        owner_id: str,
    ) -> Conversation | None:
        conversation = await session.get(Conversation, conversation_id)
        if conversation is None or conversation.owner_id != owner_id:
            return None
        return conversation

    # Conversations

    async def create_conversation(
        self,
        owner_id: str,
        title: str = "New Chat",
        turns: Sequence[TurnInput] = (),
    ) -> Conversation:
        """Create a conversation, optionally seeded with turns.

        Args:
            owner_id: Owning user id.
            title: Display title.
            turns: Initial turns, in order.

        Returns:
            The new conversation with its turns loaded.

        Raises:
            StoreError: If the insert fails.
        """
        async with self._transaction("create conversation") as session:
            conversation = Conversation(
                owner_id=owner_id,
                title=title,
                turns=[self._build_turn(i, turn) for i, turn in enumerate(turns)],
            )
            session.add(conversation)

        logger.info(f"Created conversation {conversation.id} with {len(turns)} turns")
        return conversation

    async def append_exchange(
        self,
        conversation_id: str,
        owner_id: str,
        user_text: str,
        assistant_text: str,
        image_mime: str | None = None,
    ) -> bool:
        """Append one user turn and one assistant turn.

        Positions are computed inside the same transaction as the insert.

        Returns:
            False if the conversation does not exist or is not owned by
            owner_id; nothing is written in that case.

        Raises:
            StoreError: If the write fails.
        """
        async with self._transaction("append exchange") as session:
            conversation = await self._owned_conversation(session, conversation_id, owner_id)
            if conversation is None:
                return False

            result = await session.execute(
                select(func.max(Turn.position)).where(Turn.conversation_id == conversation_id)
            )
            last_position = result.scalar_one_or_none()
            next_position = 0 if last_position is None else last_position + 1

            session.add_all(
                [
                    self._build_turn(
                        next_position,
                        TurnInput(TurnRole.USER, user_text, image_mime),
                        conversation_id,
                    ),
                    self._build_turn(
                        next_position + 1,
                        TurnInput(TurnRole.ASSISTANT, assistant_text),
                        conversation_id,
                    ),
                ]
            )
            conversation.updated_at = utcnow()

        logger.info(f"Appended exchange to conversation {conversation_id}")
        return True

    async def get_conversation(
        self,
        conversation_id: str,
        owner_id: str,
    ) -> Conversation | None:
        """Load an owned conversation with its turns, or None."""
        async with self._transaction("load conversation") as session:
            result = await session.execute(
                select(Conversation)
                .options(selectinload(Conversation.turns))
                .where(
                    Conversation.id == conversation_id,
                    Conversation.owner_id == owner_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_conversations(self, owner_id: str) -> list[Conversation]:
        """Owned conversations, most recently updated first. Turns are not loaded."""
        async with self._transaction("list conversations") as session:
            result = await session.execute(
                select(Conversation)
                .where(Conversation.owner_id == owner_id)
                .order_by(Conversation.updated_at.desc())
            )
            return list(result.scalars().all())

    async def delete_conversation(self, conversation_id: str, owner_id: str) -> bool:
        """Delete an owned conversation with its turns and artifacts.

        Returns:
            False if there was nothing to delete.
        """
        async with self._transaction("delete conversation") as session:
            conversation = await self._owned_conversation(session, conversation_id, owner_id)
            if conversation is None:
                return False

            await session.execute(
                delete(StudyArtifact).where(StudyArtifact.conversation_id == conversation_id)
            )
            await session.execute(delete(Turn).where(Turn.conversation_id == conversation_id))
            await session.delete(conversation)

        logger.info(f"Deleted conversation {conversation_id}")
        return True

    # Study artifacts

    async def create_artifact(
        self,
        owner_id: str,
        conversation_id: str,
        kind: ArtifactKind,
        title: str,
        items: list[dict[str, Any]],
        model_used: str | None = None,
    ) -> StudyArtifact | None:
        """Persist a generated flashcard set or quiz.

        Returns:
            The artifact, or None if the conversation is not the owner's.

        Raises:
            StoreError: If the insert fails.
        """
        async with self._transaction("create artifact") as session:
            conversation = await self._owned_conversation(session, conversation_id, owner_id)
            if conversation is None:
                return None

            artifact = StudyArtifact(
                conversation_id=conversation_id,
                owner_id=owner_id,
                kind=kind,
                title=title,
                items_json=items,
                model_used=model_used,
            )
            session.add(artifact)

        logger.info(f"Saved {kind.value} artifact {artifact.id} ({len(items)} items)")
        return artifact

    async def list_artifacts(
        self,
        owner_id: str,
        conversation_id: str | None = None,
    ) -> list[StudyArtifact]:
        """Owned artifacts, newest first, optionally for one conversation."""
        async with self._transaction("list artifacts") as session:
            query = select(StudyArtifact).where(StudyArtifact.owner_id == owner_id)
            if conversation_id:
                query = query.where(StudyArtifact.conversation_id == conversation_id)
            result = await session.execute(query.order_by(StudyArtifact.created_at.desc()))
            return list(result.scalars().all())

    async def delete_artifact(self, artifact_id: str, owner_id: str) -> bool:
        """Delete one owned artifact. False if there was nothing to delete."""
        async with self._transaction("delete artifact") as session:
            artifact = await session.get(StudyArtifact, artifact_id)
            if artifact is None or artifact.owner_id != owner_id:
                return False
            await session.delete(artifact)

        logger.info(f"Deleted artifact {artifact_id}")
        return True
