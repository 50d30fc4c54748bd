"""Study artifact agent: flashcards and quizzes from a conversation.

Renders the conversation transcript into a prompt, asks for a JSON object
through the fallback policy and validates the reply. A reply that does not
have the expected shape is an ArtifactParseError; it is not retried on
another model.

When both an owner and a conversation id are given the artifact is saved;
a failed save is logged and the artifact is still returned.

Examples:
    >>> generator = ArtifactGenerator(runner, store)
    >>> artifact = await generator.generate(ArtifactKind.QUIZ, history)
    >>> artifact.count
    5

Tests:
    - tests/unit/test_study_artifacts.py
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Union

from pydantic import TypeAdapter, ValidationError

from app.agents.base import AgentResult, BaseAgent
from app.core.errors import ArtifactParseError, InputValidationError, StoreError
from app.core.fallback import FallbackRunner
from app.models import ArtifactKind, TurnRole
from app.prompts.study_artifacts import get_flashcards_prompt, get_quiz_prompt
from app.schemas.chat import Flashcard, HistoryItem, QuizQuestion
from app.services.conversations import ConversationStore

logger = logging.getLogger(__name__)

ArtifactItem = Union[Flashcard, QuizQuestion]

# JSON key holding the items, per kind
ITEMS_KEY = {
    ArtifactKind.FLASHCARDS: "flashcards",
    ArtifactKind.QUIZ: "quiz",
}

DEFAULT_TITLE_PREFIX = {
    ArtifactKind.FLASHCARDS: "Flash Cards",
    ArtifactKind.QUIZ: "Quiz",
}

_ITEM_ADAPTERS: dict[ArtifactKind, TypeAdapter] = {
    ArtifactKind.FLASHCARDS: TypeAdapter(list[Flashcard]),
    ArtifactKind.QUIZ: TypeAdapter(list[QuizQuestion]),
}

_JSON_FENCE = re.compile(r"```json\n?")
_FENCE = re.compile(r"```\n?")


def strip_code_fence(text: str) -> str:
    """Remove markdown code fences around a JSON reply."""
    return _FENCE.sub("", _JSON_FENCE.sub("", text)).strip()


def default_title(kind: ArtifactKind, today: date | None = None) -> str:
    """e.g. "Quiz (3/14/2025)"."""
    today = today or date.today()
    return f"{DEFAULT_TITLE_PREFIX[kind]} ({today.month}/{today.day}/{today.year})"


def parse_artifact(kind: ArtifactKind, raw: str) -> tuple[str | None, list[ArtifactItem]]:
    """Parse a model reply into (title, items).

    Args:
        kind: Expected artifact kind.
        raw: Model reply, possibly wrapped in a code fence.

    Returns:
        The title (None when missing) and at least one validated item.

    Raises:
        ArtifactParseError: The reply is not JSON or does not have the
            expected shape.
    """
    try:
        data = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as e:
        raise ArtifactParseError(f"Model reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ArtifactParseError("Model reply is not a JSON object")

    key = ITEMS_KEY[kind]
    raw_items = data.get(key)
    if not isinstance(raw_items, list) or not raw_items:
        raise ArtifactParseError(f"Model reply has no '{key}' items")

    try:
        items = _ITEM_ADAPTERS[kind].validate_python(raw_items)
    except ValidationError as e:
        raise ArtifactParseError(
            f"Model reply has malformed {key} items: {e.error_count()} errors"
        ) from e

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        title = None
    return (title.strip() if title else None), items


@dataclass
class ArtifactInput:
    kind: ArtifactKind
    history: list[HistoryItem]
    requested_model: str | None = None


@dataclass
class GeneratedArtifact:
    """A generated flashcard set or quiz.

    Attributes:
        kind: Flashcards or quiz
        title: Display title
        items: Validated items, in model order
        artifact_id: Id of the saved artifact, None when not saved
        model_used: Model that produced it
    """

    kind: ArtifactKind
    title: str
    items: list[ArtifactItem] = field(default_factory=list)
    artifact_id: str | None = None
    model_used: str | None = None

    @property
    def count(self) -> int:
        return len(self.items)

    def items_as_dicts(self) -> list[dict[str, Any]]:
        return [item.model_dump(by_alias=True) for item in self.items]


class ArtifactGenerator(BaseAgent[ArtifactInput, GeneratedArtifact]):
    """Generate and optionally save flashcards or quizzes.

    Attributes:
        store: Conversation store used to save artifacts
    """

    def __init__(
        self,
        runner: FallbackRunner,
        store: ConversationStore,
        default_model: str | None = None,
        temperature: float = 0.5,
        name: str | None = None,
    ) -> None:
        super().__init__(runner, default_model=default_model, temperature=temperature, name=name)
        self.store = store

    def get_prompt(self, input_data: ArtifactInput) -> str:
        turns = [(TurnRole.parse(item.role).value, item.content) for item in input_data.history]
        if input_data.kind == ArtifactKind.QUIZ:
            return get_quiz_prompt(turns)
        return get_flashcards_prompt(turns)

    async def run(self, input_data: ArtifactInput) -> AgentResult[GeneratedArtifact]:
        """Generate and parse one artifact without saving it.

        Raises:
            InputValidationError: Empty history.
            ArtifactParseError: The reply did not have the expected shape.
            AllCandidatesExhaustedError: Every candidate failed retryably.
            ProviderError: A non-retryable provider failure.
        """
        if not input_data.history:
            raise InputValidationError("Chat history is required")

        response = await self._complete(
            self.get_prompt(input_data),
            requested_model=input_data.requested_model,
            json_mode=True,
        )
        title, items = parse_artifact(input_data.kind, response.content or "")
        logger.info(f"{self.name}: parsed {len(items)} {input_data.kind.value} items from {response.model}")

        return AgentResult(
            success=True,
            content=GeneratedArtifact(
                kind=input_data.kind,
                title=title or default_title(input_data.kind),
                items=items,
                model_used=response.model,
            ),
            latency_ms=response.latency_ms,
            model_used=response.model,
        )

    async def generate(
        self,
        kind: ArtifactKind,
        history: list[HistoryItem],
        requested_model: str | None = None,
        owner_id: str | None = None,
        conversation_id: str | None = None,
    ) -> GeneratedArtifact:
        """Generate an artifact and save it when owner and conversation are known.

        Args:
            kind: Flashcards or quiz.
            history: Conversation so far, oldest first.
            requested_model: Model the caller asked for.
            owner_id: Authenticated user, if any.
            conversation_id: Conversation the artifact belongs to, if any.

        Returns:
            The artifact; artifact_id is set only when it was saved.
        """
        result = await self.run(ArtifactInput(kind, history, requested_model))
        artifact = result.content

        if owner_id and conversation_id:
            try:
                saved = await self.store.create_artifact(
                    owner_id,
                    conversation_id,
                    kind,
                    artifact.title,
                    artifact.items_as_dicts(),
                    model_used=artifact.model_used,
                )
            except StoreError as e:
                logger.error(f"{self.name}: failed to save {kind.value} artifact: {e}")
            else:
                if saved is None:
                    logger.warning(
                        f"{self.name}: conversation {conversation_id} not found for owner, artifact not saved"
                    )
                else:
                    artifact.artifact_id = saved.id

        return artifact
