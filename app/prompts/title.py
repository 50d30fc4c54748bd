"""Conversation title prompt.

Examples:
    >>> from app.prompts.title import get_prompt
    >>> get_prompt("How do vaccines work?")
"""

MAX_TITLE_LENGTH = 50

TITLE_TEMPLATE = """Based on this student's question, generate a short, descriptive title (max {max_length} characters) for this learning session. Return ONLY the title, no quotes or extra text.

Question: {message}

Respond with just the title:"""


def get_prompt(message: str) -> str:
    """Build the title prompt for a student's first message."""
    return TITLE_TEMPLATE.format(max_length=MAX_TITLE_LENGTH, message=message)
