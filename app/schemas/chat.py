"""Request and response schemas for the tutor chat API.

JSON keys are camelCase on the wire (``conversationId``, ``modelId``,
``correctAnswer``); attributes are snake_case in Python. Both spellings are
accepted on input.

Examples:
    >>> from app.schemas.chat import ChatRequest
    >>> request = ChatRequest.model_validate(
    ...     {"message": "What is ATP?", "history": [], "conversationId": None}
    ... )

Tests:
    - tests/unit/test_schemas.py
    - tests/unit/test_study_artifacts.py
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryItem(CamelModel):
    """A prior turn supplied by the client.

    The client labels tutor turns "model"; "assistant" is accepted too.
    """

    role: Literal["user", "model", "assistant"]
    content: str = ""


class ChatRequest(CamelModel):
    """Body of POST /chat and POST /chat/stream.

    ``message`` is optional here so the relay can reject a missing message
    with its own validation error instead of a 422.
    """

    message: str | None = None
    history: list[HistoryItem] = Field(default_factory=list)
    conversation_id: str | None = None
    model_id: str | None = None


class ChatResponse(CamelModel):
    """Non-streaming tutor reply."""

    message: str
    role: Literal["model"] = "model"
    conversation_id: str | None = None
    model: str | None = None


class ArtifactRequest(CamelModel):
    """Body of POST /chat/flashcards and POST /chat/quiz."""

    history: list[HistoryItem] = Field(default_factory=list)
    conversation_id: str | None = None
    model_id: str | None = None


class Flashcard(CamelModel):
    """One question/answer card."""

    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)


class QuizQuestion(CamelModel):
    """One multiple-choice question.

    Attributes:
        question: Question text
        options: Exactly four answer options
        correct_answer: Index (0-3) of the correct option
        explanation: Why the answer is correct
    """

    question: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=4, max_length=4)
    correct_answer: int = Field(..., ge=0, le=3, strict=True)
    explanation: str = ""


class FlashcardsResponse(CamelModel):
    title: str
    flashcards: list[Flashcard]
    count: int
    artifact_id: str | None = None


class QuizResponse(CamelModel):
    title: str
    quiz: list[QuizQuestion]
    count: int
    artifact_id: str | None = None


class ConversationSummary(CamelModel):
    """History panel entry."""

    id: str
    title: str
    created_at: str | None = None
    updated_at: str | None = None


class ConversationListResponse(CamelModel):
    conversations: list[ConversationSummary]


class ConversationMessage(CamelModel):
    role: Literal["user", "model"]
    content: str
    has_image: bool = False


class ConversationDetail(ConversationSummary):
    """A conversation with its turns, oldest first."""

    messages: list[ConversationMessage] = Field(default_factory=list)


class CreateConversationRequest(CamelModel):
    title: str = Field(default="New Chat", min_length=1, max_length=100)


class ActivityResponse(CamelModel):
    """A persisted flashcard set or quiz."""

    id: str
    conversation_id: str
    type: Literal["flashcard", "quiz"]
    title: str
    data: list[dict]
    count: int
    created_at: str | None = None


class ActivityListResponse(CamelModel):
    activities: list[ActivityResponse]
