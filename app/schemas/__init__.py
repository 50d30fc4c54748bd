"""Pydantic schemas for the tutor API.

Re-exports all schemas for convenient imports.

Examples:
    >>> from app.schemas import ChatRequest, QuizQuestion
    >>> request = ChatRequest(message="What is ATP?")
"""

from app.schemas.chat import (
    ActivityListResponse,
    ActivityResponse,
    ArtifactRequest,
    ChatRequest,
    ChatResponse,
    ConversationDetail,
    ConversationListResponse,
    ConversationMessage,
    ConversationSummary,
    CreateConversationRequest,
    Flashcard,
    FlashcardsResponse,
    HistoryItem,
    QuizQuestion,
    QuizResponse,
)

__all__ = [
    # Requests
    "ArtifactRequest",
    "ChatRequest",
    "CreateConversationRequest",
    "HistoryItem",
    # Chat
    "ChatResponse",
    # Study artifacts
    "Flashcard",
    "FlashcardsResponse",
    "QuizQuestion",
    "QuizResponse",
    # Conversations
    "ActivityListResponse",
    "ActivityResponse",
    "ConversationDetail",
    "ConversationListResponse",
    "ConversationMessage",
    "ConversationSummary",
]
