"""Conversation relay: one tutor turn from request to persisted exchange.

The relay assembles the prompt (tutor instruction, prior turns, the new
user turn with an optional image), runs it through the fallback policy and
hands the reply to the caller, either as a stream of chunks through a
ChunkSink or as one complete text. Once the full reply is known it saves
the exchange for authenticated callers: a new conversation (with a
synthesized title) when no id was given, otherwise two more turns on the
given conversation.

Saving is best-effort. A store failure is logged and the reply still
completes. A stream that was cancelled, or that failed, saves nothing.

Examples:
    >>> relay = ConversationRelay(runner, store, titles)
    >>> result = await relay.relay_once(RelayRequest(message="What is ATP?"), owner_id=user.id)
    >>> result.conversation_id

Tests:
    - tests/unit/test_relay.py
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass, field

from app.agents.titles import TitleSynthesizer
from app.core.channel import ChunkSink
from app.core.errors import InputValidationError, RelayError, StoreError
from app.core.fallback import FallbackRunner
from app.core.providers import ImageAttachment, PromptMessage, ProviderError
from app.models import TurnRole
from app.prompts.tutor import SYSTEM_INSTRUCTION
from app.schemas.chat import HistoryItem
from app.services.conversations import ConversationStore, TurnInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayRequest:
    """Canonical form of a chat request, whatever its transport encoding.

    Attributes:
        message: The new user message
        history: Prior turns, oldest first
        conversation_id: Conversation to append to; None starts a new one
        model_id: Model the caller asked for
        image: Optional image attached to the new message
    """

    message: str | None
    history: list[HistoryItem] = field(default_factory=list)
    conversation_id: str | None = None
    model_id: str | None = None
    image: ImageAttachment | None = None

    @property
    def requires_image(self) -> bool:
        return self.image is not None


@dataclass(frozen=True)
class RelayResult:
    text: str
    conversation_id: str | None
    model: str | None = None


class ConversationRelay:
    """Drive one tutor turn.

    Attributes:
        runner: Fallback runner for the tutor model
        store: Conversation store
        titles: Title synthesizer for new conversations
        temperature: Sampling temperature for tutor replies
    """

    def __init__(
        self,
        runner: FallbackRunner,
        store: ConversationStore,
        titles: TitleSynthesizer,
        temperature: float = 0.7,
    ) -> None:
        self.runner = runner
        self.store = store
        self.titles = titles
        self.temperature = temperature

    @staticmethod
    def validate(request: RelayRequest) -> str:
        """Return the stripped message.

        Raises:
            InputValidationError: The message is missing or blank.
        """
        message = (request.message or "").strip()
        if not message:
            raise InputValidationError("Message is required")
        return message

    @staticmethod
    def build_prompt(request: RelayRequest, message: str) -> list[PromptMessage]:
        """System instruction, prior turns, then the new user turn."""
        prompt = [PromptMessage(role="system", text=SYSTEM_INSTRUCTION)]
        for item in request.history:
            prompt.append(
                PromptMessage(role=TurnRole.parse(item.role).value, text=item.content)
            )
        prompt.append(PromptMessage(role="user", text=message, image=request.image))
        return prompt

    async def _persist(
        self,
        request: RelayRequest,
        owner_id: str | None,
        message: str,
        reply: str,
    ) -> str | None:
        """Save the exchange; returns the conversation id to report."""
        if owner_id is None:
            return request.conversation_id

        image_mime = request.image.mime_type if request.image else None
        try:
            if request.conversation_id:
                appended = await self.store.append_exchange(
                    request.conversation_id,
                    owner_id,
                    message,
                    reply,
                    image_mime=image_mime,
                )
                if not appended:
                    logger.warning(
                        f"Conversation {request.conversation_id} not found for owner, exchange not saved"
                    )
                return request.conversation_id

            title = await self.titles.synthesize(message)
            conversation = await self.store.create_conversation(
                owner_id,
                title,
                turns=[
                    TurnInput(TurnRole.USER, message, image_mime),
                    TurnInput(TurnRole.ASSISTANT, reply),
                ],
            )
            return conversation.id
        except StoreError as e:
            logger.error(f"Failed to save exchange: {e}")
            return request.conversation_id

    async def relay_streamed(
        self,
        request: RelayRequest,
        owner_id: str | None,
        sink: ChunkSink,
    ) -> None:
        """Stream a reply into sink, then save it.

        Exactly one of sink.on_complete or sink.on_error is called, unless
        the sink is cancelled first, in which case neither is and nothing
        is saved. Deltas from a candidate that fails part way are not
        retracted; the reply that is saved is the one from the candidate
        that finished.
        """
        try:
            message = self.validate(request)
        except InputValidationError as e:
            await sink.on_error(e)
            return

        prompt = self.build_prompt(request, message)
        parts: list[str] = []
        attempt = 0

        try:
            async with aclosing(
                self.runner.stream(
                    prompt,
                    requested_model=request.model_id,
                    requires_image=request.requires_image,
                    temperature=self.temperature,
                )
            ) as deltas:
                async for delta in deltas:
                    if sink.cancelled:
                        logger.info("Client went away, abandoning stream")
                        return
                    if delta.attempt != attempt:
                        logger.info(f"Restarting reply on {delta.model}")
                        parts.clear()
                        attempt = delta.attempt
                    parts.append(delta.text)
                    await sink.on_chunk(delta.text)
        except (RelayError, ProviderError) as e:
            if sink.cancelled:
                return
            logger.error(f"Streaming reply failed: {e}")
            await sink.on_error(e)
            return

        if sink.cancelled:
            logger.info("Client went away before completion, not saving")
            return

        conversation_id = await self._persist(request, owner_id, message, "".join(parts))
        await sink.on_complete(conversation_id)

    async def relay_once(self, request: RelayRequest, owner_id: str | None) -> RelayResult:
        """Generate a complete reply, then save it.

        Raises:
            InputValidationError: The message is missing.
            AllCandidatesExhaustedError: Every candidate failed retryably.
            ProviderError: A non-retryable provider failure.
        """
        message = self.validate(request)
        response = await self.runner.complete(
            self.build_prompt(request, message),
            requested_model=request.model_id,
            requires_image=request.requires_image,
            temperature=self.temperature,
        )
        conversation_id = await self._persist(request, owner_id, message, response.content or "")
        return RelayResult(
            text=response.content or "",
            conversation_id=conversation_id,
            model=response.model,
        )
