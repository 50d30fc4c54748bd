"""Tutor chat API endpoints.

Endpoints:
    POST   /api/v1/chat                    - Complete tutor reply
    POST   /api/v1/chat/stream             - Stream tutor reply (SSE), JSON or multipart
    POST   /api/v1/chat/flashcards         - Generate flashcards from history
    POST   /api/v1/chat/quiz               - Generate a quiz from history
    GET    /api/v1/chat/history            - List the caller's conversations
    POST   /api/v1/chat/conversations      - Create an empty conversation
    GET    /api/v1/chat/activities         - List saved flashcards and quizzes
    DELETE /api/v1/chat/activities/{id}    - Delete a saved flashcard set or quiz
    GET    /api/v1/chat/{conversation_id}  - Conversation with its messages
    DELETE /api/v1/chat/{conversation_id}  - Delete a conversation and its activities

Examples:
    >>> POST /api/v1/chat/stream
    >>> {"message": "What is ATP?", "history": [], "conversationId": null}
    data: {"content": "ATP is", "done": false}
    data: {"content": "", "done": true, "conversationId": "..."}

Tests:
    - tests/integration/test_api_chat.py
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import TypeAdapter, ValidationError
from starlette.datastructures import UploadFile

from app.agents.study_artifacts import ArtifactGenerator
from app.api.v1.dependencies import get_artifact_generator, get_relay, get_store
from app.auth.dependencies import get_current_user, require_user
from app.config import get_settings
from app.core.channel import SSE_HEADERS, StreamChannel, format_sse
from app.core.errors import InputValidationError
from app.core.providers import ImageAttachment
from app.core.relay import ConversationRelay, RelayRequest
from app.models import ArtifactKind
from app.models_auth import User
from app.schemas.chat import (
    ActivityListResponse,
    ActivityResponse,
    ArtifactRequest,
    ChatRequest,
    ChatResponse,
    ConversationDetail,
    ConversationListResponse,
    ConversationSummary,
    CreateConversationRequest,
    FlashcardsResponse,
    HistoryItem,
    QuizResponse,
)
from app.services.conversations import ConversationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

_history_adapter = TypeAdapter(list[HistoryItem])


# =============================================================================
# REQUEST NORMALIZATION
# =============================================================================


async def _read_image(upload: UploadFile) -> ImageAttachment:
    """Validate an uploaded image.

    Raises:
        InputValidationError: Not an image, empty or too large.
    """
    mime_type = upload.content_type or ""
    if not mime_type.startswith("image/"):
        raise InputValidationError("Only image files are allowed")

    max_bytes = get_settings().MAX_IMAGE_BYTES
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise InputValidationError(f"Image exceeds {max_bytes // (1024 * 1024)}MB limit")
    if not data:
        raise InputValidationError("Image is empty")
    return ImageAttachment(mime_type=mime_type, data=data)


async def _from_multipart(request: Request) -> RelayRequest:
    form = await request.form()

    raw_history = form.get("history") or "[]"
    if not isinstance(raw_history, str):
        raise InputValidationError("History must be a JSON array of messages")
    try:
        history = _history_adapter.validate_json(raw_history)
    except ValidationError as e:
        raise InputValidationError("History must be a JSON array of messages") from e

    image = None
    upload = form.get("image")
    if isinstance(upload, UploadFile):
        image = await _read_image(upload)

    def text_field(name: str) -> str | None:
        value = form.get(name)
        return value if isinstance(value, str) and value else None

    return RelayRequest(
        message=text_field("message"),
        history=history,
        conversation_id=text_field("conversationId"),
        model_id=text_field("modelId"),
        image=image,
    )


async def _from_json(request: Request) -> RelayRequest:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise InputValidationError("Request body must be JSON") from e

    try:
        chat_request = ChatRequest.model_validate(body)
    except ValidationError as e:
        raise InputValidationError(f"Invalid chat request: {e.error_count()} errors") from e

    return RelayRequest(
        message=chat_request.message,
        history=chat_request.history,
        conversation_id=chat_request.conversation_id,
        model_id=chat_request.model_id,
    )


async def normalize_chat_request(request: Request) -> RelayRequest:
    """Turn a JSON or multipart chat request into one RelayRequest."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        return await _from_multipart(request)
    return await _from_json(request)


def _owner_id(user: User | None) -> str | None:
    return user.id if user is not None else None


# =============================================================================
# CHAT ENDPOINTS
# =============================================================================


@router.post("", response_model=ChatResponse)
async def chat(
    relay_request: RelayRequest = Depends(normalize_chat_request),
    user: User | None = Depends(get_current_user),
    relay: ConversationRelay = Depends(get_relay),
) -> ChatResponse:
    """Complete tutor reply.

    Authenticated callers get the exchange saved; the response carries the
    conversation id (new or given).
    """
    result = await relay.relay_once(relay_request, _owner_id(user))
    return ChatResponse(
        message=result.text,
        conversation_id=result.conversation_id,
        model=result.model,
    )


@router.post("/stream")
async def chat_stream(
    relay_request: RelayRequest = Depends(normalize_chat_request),
    user: User | None = Depends(get_current_user),
    relay: ConversationRelay = Depends(get_relay),
) -> StreamingResponse:
    """Stream the tutor reply as server-sent events.

    Accepts the chat body as JSON, or as multipart form fields with an
    optional ``image`` file.

    Returns:
        StreamingResponse with SSE events
    """
    # Reject a missing message before the stream starts
    relay.validate(relay_request)
    owner_id = _owner_id(user)
    channel = StreamChannel()

    async def produce() -> None:
        try:
            await relay.relay_streamed(relay_request, owner_id, channel)
        except Exception as e:
            logger.exception(f"Unexpected error while streaming: {e}")
            await channel.on_error(RuntimeError("Failed to generate response"))

    async def stream_events() -> AsyncGenerator[str, None]:
        producer = asyncio.create_task(produce())
        try:
            async for event in channel.events():
                yield format_sse(event)
        finally:
            channel.close()
            if not producer.done():
                producer.cancel()

    return StreamingResponse(
        stream_events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# =============================================================================
# STUDY ARTIFACTS
# =============================================================================


@router.post("/flashcards", response_model=FlashcardsResponse, response_model_exclude_none=True)
async def generate_flashcards(
    request: ArtifactRequest,
    user: User | None = Depends(get_current_user),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
) -> FlashcardsResponse:
    """Generate flashcards from the conversation history."""
    artifact = await generator.generate(
        ArtifactKind.FLASHCARDS,
        request.history,
        requested_model=request.model_id,
        owner_id=_owner_id(user),
        conversation_id=request.conversation_id,
    )
    return FlashcardsResponse(
        title=artifact.title,
        flashcards=artifact.items,
        count=artifact.count,
        artifact_id=artifact.artifact_id,
    )


@router.post("/quiz", response_model=QuizResponse, response_model_exclude_none=True)
async def generate_quiz(
    request: ArtifactRequest,
    user: User | None = Depends(get_current_user),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
) -> QuizResponse:
    """Generate a multiple-choice quiz from the conversation history."""
    artifact = await generator.generate(
        ArtifactKind.QUIZ,
        request.history,
        requested_model=request.model_id,
        owner_id=_owner_id(user),
        conversation_id=request.conversation_id,
    )
    return QuizResponse(
        title=artifact.title,
        quiz=artifact.items,
        count=artifact.count,
        artifact_id=artifact.artifact_id,
    )


# =============================================================================
# CONVERSATIONS AND ACTIVITIES
# =============================================================================


@router.get("/history", response_model=ConversationListResponse)
async def list_history(
    user: User = Depends(require_user),
    store: ConversationStore = Depends(get_store),
) -> ConversationListResponse:
    """The caller's conversations, most recently updated first."""
    conversations = await store.list_conversations(user.id)
    return ConversationListResponse(
        conversations=[ConversationSummary.model_validate(c.to_summary()) for c in conversations]
    )


@router.post(
    "/conversations",
    response_model=ConversationSummary,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    request: CreateConversationRequest | None = None,
    user: User = Depends(require_user),
    store: ConversationStore = Depends(get_store),
) -> ConversationSummary:
    """Create an empty conversation."""
    title = request.title if request is not None else "New Chat"
    conversation = await store.create_conversation(user.id, title)
    return ConversationSummary.model_validate(conversation.to_summary())


@router.get("/activities", response_model=ActivityListResponse)
async def list_activities(
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    user: User = Depends(require_user),
    store: ConversationStore = Depends(get_store),
) -> ActivityListResponse:
    """Saved flashcards and quizzes, newest first."""
    artifacts = await store.list_artifacts(user.id, conversation_id)
    return ActivityListResponse(
        activities=[ActivityResponse.model_validate(a.to_dict()) for a in artifacts]
    )


@router.delete("/activities/{artifact_id}")
async def delete_activity(
    artifact_id: str,
    user: User = Depends(require_user),
    store: ConversationStore = Depends(get_store),
) -> dict[str, str]:
    """Delete one saved flashcard set or quiz."""
    if not await store.delete_artifact(artifact_id, user.id):
        raise HTTPException(status_code=404, detail="Activity not found")
    return {"detail": "Activity deleted"}


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: str,
    user: User = Depends(require_user),
    store: ConversationStore = Depends(get_store),
) -> ConversationDetail:
    """A conversation with its messages, oldest first."""
    conversation = await store.get_conversation(conversation_id, user.id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ConversationDetail.model_validate(conversation.to_dict())


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user: User = Depends(require_user),
    store: ConversationStore = Depends(get_store),
) -> dict[str, str]:
    """Delete a conversation together with its flashcards and quizzes."""
    if not await store.delete_conversation(conversation_id, user.id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"detail": "Conversation deleted"}
