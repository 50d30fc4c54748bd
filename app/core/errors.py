"""Errors raised above the provider layer.

Provider failures live in app.core.providers.base. The classes here cover
input validation, candidate exhaustion, persistence and artifact parsing.
Each carries the HTTP status the API layer answers with.

Tests:
    - tests/unit/test_fallback.py
    - tests/unit/test_study_artifacts.py
"""

from __future__ import annotations

from app.core.providers.base import ProviderError


class RelayError(Exception):
    """Base class for chat relay and generation errors."""

    status_code: int = 500


class InputValidationError(RelayError):
    """Required input is missing or unusable."""

    status_code = 400


class AllCandidatesExhaustedError(RelayError):
    """Every candidate model failed with a retryable error.

    Attributes:
        attempts: (model_id, error) for each candidate tried, in order
    """

    status_code = 503

    def __init__(
        self,
        attempts: list[tuple[str, ProviderError]],
        message: str | None = None,
    ) -> None:
        self.attempts = attempts
        if message is None:
            tried = ", ".join(model for model, _ in attempts)
            message = f"All models failed or rate-limited (tried: {tried})"
        super().__init__(message)

    @property
    def last_error(self) -> ProviderError | None:
        return self.attempts[-1][1] if self.attempts else None


class NoCandidatesError(AllCandidatesExhaustedError):
    """Candidate selection produced an empty list (configuration error)."""

    status_code = 500

    def __init__(self) -> None:
        super().__init__([], message="No candidate models are configured")


class StoreError(RelayError):
    """A conversation store operation failed."""

    status_code = 500


class ArtifactParseError(RelayError):
    """The model replied but its flashcards/quiz did not match the expected shape."""

    status_code = 502
