"""Prompt templates for the tutor, titles and study artifacts.

Examples:
    >>> from app.prompts import study_artifacts, title, tutor
    >>> prompt = title.get_prompt("How do vaccines work?")
"""

from app.prompts import study_artifacts, title, tutor

__all__ = [
    "study_artifacts",
    "title",
    "tutor",
]
