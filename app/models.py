"""SQLAlchemy models for tutor conversations and study artifacts.

A Conversation owns an ordered list of Turns (user / assistant pairs) and
any number of StudyArtifacts (flashcard sets and quizzes) generated from it.
Deleting a conversation deletes both.

Examples:
    >>> from app.models import Conversation, Turn, TurnRole
    >>> conversation = Conversation(owner_id=user.id, title="Photosynthesis basics")
    >>> conversation.turns.append(Turn(role=TurnRole.USER, content="What is ATP?", position=0))

Tests:
    - tests/unit/test_models.py
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class TurnRole(str, Enum):
    """Author of a turn.

    The browser client calls the assistant "model"; both spellings are
    accepted on input and normalized to ASSISTANT.
    """

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: str) -> "TurnRole":
        """Map a client-supplied role onto a TurnRole."""
        if value in ("model", "assistant"):
            return cls.ASSISTANT
        return cls.USER


class ArtifactKind(str, Enum):
    """Kind of study artifact derived from a conversation."""

    FLASHCARDS = "flashcard"
    QUIZ = "quiz"


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(Base):
    """A persisted tutor conversation.

    Attributes:
        id: Unique identifier (UUID)
        owner_id: Owning user
        title: Display title (max 50 characters when synthesized)
        turns: Ordered turns, oldest first
        artifacts: Flashcard sets and quizzes generated from this conversation
        created_at: Creation timestamp
        updated_at: Last append timestamp
    """

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(100), default="New Chat")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        index=True,
    )

    turns: Mapped[list["Turn"]] = relationship(
        back_populates="conversation",
        order_by="Turn.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    artifacts: Mapped[list["StudyArtifact"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id!r}, title={self.title!r})>"

    @property
    def turn_count(self) -> int:
        return len(self.turns)

    def to_summary(self) -> dict[str, Any]:
        """Listing shape used by the history panel."""
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_dict(self) -> dict[str, Any]:
        """Full conversation with turns."""
        data = self.to_summary()
        data["messages"] = [turn.to_dict() for turn in self.turns]
        return data


class Turn(Base):
    """One role-tagged message within a conversation. Never updated.

    Image bytes are not stored; has_image and image_mime record that the
    user attached one.
    """

    __tablename__ = "turns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[TurnRole] = mapped_column(SQLEnum(TurnRole), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    has_image: Mapped[bool] = mapped_column(Boolean, default=False)
    image_mime: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    conversation: Mapped["Conversation"] = relationship(back_populates="turns")

    def __repr__(self) -> str:
        return f"<Turn(position={self.position}, role={self.role.value})>"

    def to_dict(self) -> dict[str, Any]:
        # "model" is what the client renders as the tutor
        return {
            "role": "model" if self.role == TurnRole.ASSISTANT else "user",
            "content": self.content,
            "hasImage": self.has_image,
        }


class StudyArtifact(Base):
    """A flashcard set or quiz generated from a conversation transcript.

    Created once after a successful generation and never mutated.
    """

    __tablename__ = "study_artifacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    kind: Mapped[ArtifactKind] = mapped_column(SQLEnum(ArtifactKind), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    items_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    model_used: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        index=True,
    )

    conversation: Mapped["Conversation"] = relationship(back_populates="artifacts")

    def __repr__(self) -> str:
        return f"<StudyArtifact(kind={self.kind.value}, items={len(self.items_json)})>"

    @property
    def count(self) -> int:
        return len(self.items_json)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "type": self.kind.value,
            "title": self.title,
            "data": self.items_json,
            "count": self.count,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
