"""Flashcard and quiz prompt templates.

Both prompts embed the full conversation transcript and ask for a single
JSON object.

Examples:
    >>> from app.prompts.study_artifacts import get_flashcards_prompt
    >>> prompt = get_flashcards_prompt([("user", "What is ATP?"), ("assistant", "...")])
"""

from collections.abc import Iterable

SPEAKER_LABELS = {
    "user": "Student",
    "assistant": "Tutor",
}

FLASHCARDS_TEMPLATE = """Based on the following conversation, generate flash cards to help the student review key concepts.
Conversation:
{transcript}

Generate 5-10 flash cards and a descriptive title (max 40 characters) in JSON format.
Return ONLY a JSON object with this structure:
{{
  "title": "descriptive title for these flashcards",
  "flashcards": [
    {{ "question": "...", "answer": "..." }},
    ...
  ]
}}"""

QUIZ_TEMPLATE = """Based on the following conversation, generate a quiz to test the student's understanding.
Conversation:
{transcript}

Generate a descriptive title (max 40 characters) and 5 multiple-choice questions in JSON format. Each question should have:
- "question": the question text
- "options": array of 4 possible answers
- "correctAnswer": the index (0-3) of the correct option
- "explanation": brief explanation of why the answer is correct

Return ONLY a JSON object with this structure:
{{
  "title": "descriptive title for this quiz",
  "quiz": [
    {{
      "question": "...",
      "options": ["A", "B", "C", "D"],
      "correctAnswer": 0,
      "explanation": "..."
    }},
    ...
  ]
}}"""


def format_transcript(turns: Iterable[tuple[str, str]]) -> str:
    """Render (role, content) pairs as "Speaker: content" lines."""
    return "\n".join(
        f"{SPEAKER_LABELS.get(role, 'Student')}: {content}" for role, content in turns
    )


def get_flashcards_prompt(turns: Iterable[tuple[str, str]]) -> str:
    return FLASHCARDS_TEMPLATE.format(transcript=format_transcript(turns))


def get_quiz_prompt(turns: Iterable[tuple[str, str]]) -> str:
    return QUIZ_TEMPLATE.format(transcript=format_transcript(turns))
