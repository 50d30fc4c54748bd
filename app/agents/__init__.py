"""One-shot generation agents.

Each agent turns an input into a prompt, runs it through the model
fallback policy and interprets the reply.

Agents:
    1. TitleSynthesizer - Conversation titles (never fails)
    2. ArtifactGenerator - Flashcard sets and quizzes

Examples:
    >>> from app.agents import TitleSynthesizer
    >>> synthesizer = TitleSynthesizer(runner)
    >>> title = await synthesizer.synthesize("What is the Krebs cycle?")

Tests:
    - tests/unit/test_titles.py
    - tests/unit/test_study_artifacts.py
"""

from app.agents.base import AgentResult, BaseAgent
from app.agents.study_artifacts import ArtifactGenerator, GeneratedArtifact
from app.agents.titles import TitleSynthesizer

__all__ = [
    "AgentResult",
    "ArtifactGenerator",
    "BaseAgent",
    "GeneratedArtifact",
    "TitleSynthesizer",
]
