"""
Turns the oracle's free-text reply into a StructuredQuestion.

Expected (soft) template:

    Pregunta: <question text>

    A) <option A>
    B) <option B>
    C) <option C>
    D) <option D>

    Respuesta correcta: <letter>

Parsing is permissive and multi-stage: exact markers first, then a
line-position fallback.  This module never raises: malformed input degrades
to a low-quality question that ``question_validator`` rejects.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

OPTION_LETTERS: tuple[str, ...] = ("A", "B", "C", "D")

EMPTY_RESPONSE_TEXT: str = "No response received from the generator"

# First match wins.
_ANSWER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"Respuesta correcta:\s*([ABCD])", re.IGNORECASE),
    re.compile(r"Correcta:\s*([ABCD])", re.IGNORECASE),
    re.compile(r"La respuesta correcta es\s*([ABCD])", re.IGNORECASE),
)
_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_QUESTION_LABEL_RE = re.compile(r"^Pregunta:\s*", re.IGNORECASE)
_OPTION_RE = re.compile(r"^([A-D])[).]\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_LEADING_MARKER_RE = re.compile(r"^[A-D][).]\s*", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class QuestionOption:
    letter: str
    text: str


@dataclass(frozen=True, slots=True)
class StructuredQuestion:
    question_text: str
    options: tuple[QuestionOption, ...] = ()
    correct_answer: str | None = None
    raw_text: str = ""
    topic: str = ""
    level: str = ""

    def options_as_dicts(self) -> list[dict[str, str]]:
        return [{"letter": o.letter, "text": o.text} for o in self.options]


# ---------------------------------------------------------------------------
# Parsing stages
# ---------------------------------------------------------------------------

def _normalise(raw_text: str) -> str:
    return raw_text.replace("\r\n", "\n").replace("*", "").strip()


def _extract_answer(body: str) -> tuple[str | None, str]:
    """Return (letter, body-without-answer-clause)."""
    for pattern in _ANSWER_PATTERNS:
        match = pattern.search(body)
        if match:
            # Drop the matched clause through the end of its line
            line_end = body.find("\n", match.end())
            tail = "" if line_end == -1 else body[line_end:]
            body = (body[: match.start()] + tail).strip()
            return match.group(1).upper(), body
    return None, body


def _extract_options(options_text: str) -> tuple[QuestionOption, ...]:
    options = [
        QuestionOption(letter=m.group(1).upper(), text=m.group(2).strip())
        for m in _OPTION_RE.finditer(options_text)
    ][:4]
    if options:
        return tuple(options)

    # No lettered markers: assign letters by position
    lines = [line.strip() for line in options_text.split("\n") if line.strip()]
    return tuple(
        QuestionOption(letter=letter, text=_LEADING_MARKER_RE.sub("", line))
        for letter, line in zip(OPTION_LETTERS, lines)
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_question(
    raw_text: str | None,
    *,
    topic: str = "",
    level: str = "",
) -> StructuredQuestion:
    """Parse one oracle reply. Never raises."""
    if raw_text is None or not raw_text.strip():
        return StructuredQuestion(
            question_text=EMPTY_RESPONSE_TEXT,
            raw_text=raw_text or "",
            topic=topic,
            level=level,
        )

    try:
        body = _normalise(raw_text)
        correct_answer, body = _extract_answer(body)

        parts = _BLANK_LINE_RE.split(body, maxsplit=1)
        question_segment = parts[0]
        options = _extract_options(parts[1] if len(parts) > 1 else "")

        if not options:
            # No blank-line separator: options follow the first line directly
            head, _, tail = question_segment.partition("\n")
            question_segment = head
            options = _extract_options(tail or head)

        return StructuredQuestion(
            question_text=_QUESTION_LABEL_RE.sub("", question_segment).strip(),
            options=options,
            correct_answer=correct_answer,
            raw_text=raw_text,
            topic=topic,
            level=level,
        )
    except Exception:  # pragma: no cover
        logger.exception("parse_question failed; returning raw text as question")
        return StructuredQuestion(
            question_text=raw_text, raw_text=raw_text, topic=topic, level=level
        )


def render_question(question: StructuredQuestion) -> str:
    """Render a question back into the reply template."""
    lines = [f"Pregunta: {question.question_text}", ""]
    lines += [f"{o.letter}) {o.text}" for o in question.options]
    if question.correct_answer:
        lines += ["", f"Respuesta correcta: {question.correct_answer}"]
    return "\n".join(lines)
