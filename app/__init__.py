"""Room To Grow: AI tutor chat with flashcards and quizzes."""

__version__ = "1.0.0"
