"""Title agent for new conversations.

Asks the generation model for a short title based on the student's first
message. Never fails: any error or unusable reply falls back to the message
itself, shortened to fit.

Examples:
    >>> synthesizer = TitleSynthesizer(runner, default_model="google/gemini-2.0-flash-exp:free")
    >>> await synthesizer.synthesize("Can you explain how photosynthesis works?")
    'How Photosynthesis Works'

Tests:
    - tests/unit/test_titles.py
"""

from __future__ import annotations

import logging
import re

from app.agents.base import AgentResult, BaseAgent
from app.prompts.title import MAX_TITLE_LENGTH, get_prompt

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."
DEFAULT_TITLE = "New Chat"

_SURROUNDING_QUOTES = re.compile(r"^[\"']|[\"']$")


def fallback_title(message: str) -> str:
    """Title derived from the message alone.

    The message itself when it fits, otherwise its beginning followed by
    "...", never longer than MAX_TITLE_LENGTH.
    """
    text = message.strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) <= MAX_TITLE_LENGTH:
        return text
    return text[: MAX_TITLE_LENGTH - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def clean_title(raw: str) -> str:
    """Normalize a model-written title; empty string if unusable."""
    lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    title = _SURROUNDING_QUOTES.sub("", lines[0]).strip()
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - len(TRUNCATION_MARKER)].rstrip() + TRUNCATION_MARKER
    return title


class TitleSynthesizer(BaseAgent[str, str]):
    """Generate a conversation title from the first user message.

    Examples:
        >>> synthesizer = TitleSynthesizer(runner)
        >>> result = await synthesizer.run("What is the Krebs cycle?")
        >>> result.content
        'Understanding the Krebs Cycle'
    """

    def get_prompt(self, input_data: str) -> str:
        return get_prompt(input_data)

    async def run(self, input_data: str) -> AgentResult[str]:
        """Ask the model for a title.

        Returns:
            AgentResult whose content is the cleaned title; failed when the
            model call failed or the reply was empty.
        """
        try:
            response = await self._complete(self.get_prompt(input_data))
        except Exception as e:
            logger.warning(f"{self.name}: title generation failed - {e}")
            return AgentResult(success=False, error=str(e))

        title = clean_title(response.content or "")
        if not title:
            return AgentResult(success=False, error="Empty title", model_used=response.model)
        return AgentResult(
            success=True,
            content=title,
            latency_ms=response.latency_ms,
            model_used=response.model,
        )

    async def synthesize(self, first_user_message: str) -> str:
        """Title for a new conversation; falls back to the message on any failure."""
        result = await self.run(first_user_message)
        if result.success and result.content:
            return result.content
        return fallback_title(first_user_message)
