"""
Domain error taxonomy.

Routers translate these into HTTP responses in ``quizloop.main``; services
raise them and never build HTTP errors themselves.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quizloop.services.question_validator import ValidationResult


class QuizEngineError(Exception):
    """Base class for every error the engine raises on purpose."""


class ValidationError(QuizEngineError):
    """A generated question was rejected, or a request is malformed."""

    def __init__(self, message: str, result: ValidationResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class NotFoundError(QuizEngineError):
    """Unknown session, or no challenges left for a topic."""


class UpstreamError(QuizEngineError):
    """The oracle failed after exhausting its retry budget."""


class PersistenceError(QuizEngineError):
    """A transactional write failed and was rolled back."""
