"""
Prompt construction for the question generator.

Design principles:
- The model is asked for ONE question in a fixed line-by-line template that
  ``question_parser`` understands.  The template wording is a constant so the
  parser, the dummy oracle and the tests all agree on it.
- Recently seen questions are fed back as a negative context block so the
  model does not repeat or paraphrase them.
- The notes variant scopes the model to facts present in the user's notes.
"""

from __future__ import annotations

import logging
import textwrap
from collections.abc import Sequence

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Public constants
# Tests import these directly so the wording is never duplicated.
# ---------------------------------------------------------------------------

# Maximum number of previous questions embedded in a prompt.
MAX_PREVIOUS_QUESTIONS: int = 15

AVOID_REPETITION_HEADER: str = (
    "RECENT QUESTIONS TO AVOID (DO NOT REPEAT OR PARAPHRASE THESE):"
)

NOTES_ONLY_RULE: str = (
    "USE ONLY INFORMATION PRESENT IN THE NOTES. DO NOT INVENT EXTERNAL FACTS."
)

QUESTION_SYSTEM_PROMPT: str = (
    "You are a rigorous professional examiner. You write exactly one "
    "multiple-choice question per request and follow the requested reply "
    "format line by line, with no commentary."
)

REPLY_TEMPLATE: str = textwrap.dedent("""\
    Pregunta: [your question here]

    A) [option A]
    B) [option B]
    C) [option C]
    D) [option D]

    Respuesta correcta: [letter]""")

_FORMAT_RULES: str = textwrap.dedent("""\
    ABSOLUTE RULES:
    1. Never omit options A-D.
    2. Always include the "Respuesta correcta:" line.
    3. Exactly 4 options.
    4. No extra explanations.
    5. Keep the line-by-line format.
    6. Generate ONLY ONE question.""")

_ANTI_HALLUCINATION_RULES: str = textwrap.dedent("""\
    ANTI-HALLUCINATION (MANDATORY):
    1. Use only fundamental, verifiable knowledge of the requested topic.
    2. If you mention titles, works or names, use only the most famous and
       well documented ones.
    3. If you have the slightest doubt about a fact, replace it with one you
       know for certain, or ask about the general concept instead.
    4. Never invent titles, names or dates.

    VARIETY:
    - Explore different aspects of the topic: history, people, concepts,
      use cases, basic and advanced material.
    - Do not repeat the approach of the recent questions listed above.""")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _avoid_repetition_block(previous_questions: Sequence[str]) -> str:
    recent = [q.strip() for q in previous_questions if q and q.strip()]
    recent = recent[-MAX_PREVIOUS_QUESTIONS:]
    if not recent:
        return ""
    numbered = "\n".join(f"{i}. {q}" for i, q in enumerate(recent, start=1))
    return f"{AVOID_REPETITION_HEADER}\n{numbered}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_question_prompt(
    topic: str,
    level: str,
    previous_questions: Sequence[str] = (),
) -> str:
    """Build the instruction text for one topic question.

    Args:
        topic:              Subject of the question, e.g. "Linux".
        level:              Difficulty label passed through verbatim.
        previous_questions: Recently generated question texts, oldest first.
                            Only the last ``MAX_PREVIOUS_QUESTIONS`` are kept.
    """
    if not topic or not topic.strip():
        raise ValueError("topic must not be empty or whitespace-only")

    sections = [
        "GENERATE EXCLUSIVELY ONE MULTIPLE-CHOICE QUESTION WITH 4 OPTIONS (A-D) "
        "AND 1 CORRECT ANSWER.",
        f"TOPIC: {topic.strip()}\nLEVEL: {level.strip()}",
    ]
    avoid = _avoid_repetition_block(previous_questions)
    if avoid:
        sections.append(avoid)
    sections += [
        f"MANDATORY FORMAT (COPY THIS STRUCTURE):\n\n{REPLY_TEMPLATE}",
        _FORMAT_RULES,
        _ANTI_HALLUCINATION_RULES,
    ]
    prompt = "\n\n".join(sections)

    logger.debug(
        "build_question_prompt: topic=%r previous=%d prompt_len=%d",
        topic[:40], len(previous_questions), len(prompt),
    )
    return prompt


def build_notes_prompt(notes: str, topic: str, level: str) -> str:
    """Build the instruction text for a question grounded in the user's notes."""
    if not notes or not notes.strip():
        raise ValueError("notes must not be empty or whitespace-only")
    if not topic or not topic.strip():
        raise ValueError("topic must not be empty or whitespace-only")

    return "\n\n".join([
        "YOU ARE AN EXPERT IN EDUCATIONAL ASSESSMENT. ANALYSE THE NOTES BELOW "
        "AND WRITE ONE TEST QUESTION THAT CHECKS UNDERSTANDING OF A KEY "
        "CONCEPT PRESENT IN THEM.",
        f"TOPIC: {topic.strip()}\nLEVEL: {level.strip()}",
        f'USER NOTES:\n"""\n{notes.strip()}\n"""',
        "- The question must require understanding, not just memorisation.\n"
        "- Distractors must be plausible but definitely wrong.\n"
        "- The correct answer must come directly from the notes.",
        f"MANDATORY FORMAT (COPY THIS STRUCTURE):\n\n{REPLY_TEMPLATE}",
        _FORMAT_RULES,
        NOTES_ONLY_RULE,
    ])
