"""
Quality gate for generated questions.

Structural checks produce blocking ``errors``; heuristic hallucination
signals produce non-blocking ``warnings``.  Every check runs independently
and nothing is short-circuited, so the score reflects all problems at once.

The heuristics are cheap surface patterns, NOT fact checking.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date

from quizloop.services.question_parser import StructuredQuestion

logger = logging.getLogger(__name__)

MIN_QUESTION_CHARS: int = 10
REQUIRED_OPTIONS: int = 4

ERROR_PENALTY: int = 25
WARNING_PENALTY: int = 10

TECHNICAL_TOPIC_MARKERS: tuple[str, ...] = (
    "linux",
    "programming",
    "programación",
    "science",
    "mathematics",
    "computer science",
)

_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
_SPECIFIC_NAME_RE = re.compile(r"\b[A-Z][a-z]+(?:\s+(?:de\s+la\s+|de\s+|of\s+)?[A-Z][a-z]+){2,}\b")
_QUOTED_TITLE_RE = re.compile(r'"([^"]{15,})"')
_LONG_NUMBER_RE = re.compile(r"\b\d{4,}\b")
_LONG_LOWERCASE_WORD_RE = re.compile(r"\b[a-z]{15,}\b")


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    score: int = 0

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "score": self.score,
        }


@dataclass(frozen=True, slots=True)
class BatchValidationReport:
    total: int
    valid: int
    invalid: int
    average_score: float
    results: tuple[ValidationResult, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _structural_errors(question: StructuredQuestion) -> list[str]:
    errors: list[str] = []
    text = question.question_text or ""
    options = question.options or ()

    if len(text.strip()) < MIN_QUESTION_CHARS:
        errors.append("Question text is empty or too short")

    if len(options) != REQUIRED_OPTIONS:
        errors.append(
            f"Expected {REQUIRED_OPTIONS} options, received {len(options)}"
        )

    if not question.correct_answer:
        errors.append("No correct answer was specified")
    elif question.correct_answer not in {o.letter for o in options}:
        errors.append(
            f'Correct answer "{question.correct_answer}" is not among the options'
        )

    texts = [o.text.strip().lower() for o in options]
    if len(set(texts)) < len(texts):
        errors.append("Duplicate options")

    return errors


def detect_hallucinations(
    question: StructuredQuestion,
    topic: str = "",
    *,
    today: date | None = None,
) -> list[str]:
    """Return warnings for surface patterns that often signal invented facts."""
    current_year = (today or date.today()).year
    full_text = " ".join(
        [question.question_text or ""] + [o.text for o in question.options]
    )
    warnings: list[str] = []

    if any(int(y) > current_year for y in _YEAR_RE.findall(full_text)):
        warnings.append("Contains future dates (possible hallucination)")

    if any(len(m) > 30 for m in _SPECIFIC_NAME_RE.findall(full_text)):
        warnings.append("Very specific or complex names (verify authenticity)")

    if len(_QUOTED_TITLE_RE.findall(full_text)) > 2:
        warnings.append("Multiple quoted titles (verify that they exist)")

    if any(len(n) > 6 for n in _LONG_NUMBER_RE.findall(full_text)):
        warnings.append("Very specific numbers (verify precision)")

    lowered_topic = topic.lower()
    if any(marker in lowered_topic for marker in TECHNICAL_TOPIC_MARKERS):
        if _LONG_LOWERCASE_WORD_RE.search(full_text):
            warnings.append("Contains very long technical words (verify that they exist)")

    return warnings


def quality_score(
    question: StructuredQuestion,
    errors: Sequence[str],
    warnings: Sequence[str],
) -> int:
    score = 100 - len(errors) * ERROR_PENALTY - len(warnings) * WARNING_PENALTY
    if len(question.question_text or "") > 20:
        score += 5
    if question.options and all(len(o.text) > 5 for o in question.options):
        score += 5
    return max(0, min(100, score))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_question(
    question: StructuredQuestion,
    topic: str = "",
    *,
    today: date | None = None,
) -> ValidationResult:
    errors = _structural_errors(question)
    warnings = detect_hallucinations(question, topic or question.topic, today=today)
    result = ValidationResult(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        score=quality_score(question, errors, warnings),
    )
    if not result.is_valid:
        logger.debug(
            "validate_question rejected topic=%r errors=%s", topic[:40], errors
        )
    return result


def validate_batch(
    questions: Sequence[StructuredQuestion],
    topic: str = "",
    *,
    today: date | None = None,
) -> BatchValidationReport:
    """Validate many questions and aggregate the results (offline audits)."""
    results = tuple(validate_question(q, topic, today=today) for q in questions)
    valid = sum(1 for r in results if r.is_valid)
    return BatchValidationReport(
        total=len(results),
        valid=valid,
        invalid=len(results) - valid,
        average_score=(
            sum(r.score for r in results) / len(results) if results else 0.0
        ),
        results=results,
    )
