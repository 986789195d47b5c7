"""
quizloop: stored challenge quality audit
========================================

Re-runs the quality validator over challenges already in the database and
writes a JSON report.  Useful after changing validation rules, or to find
rows stored before validation gated persistence.

Metrics
-------
valid_rate
    Fraction of audited challenges that pass every structural check.

average_score
    Mean quality score in [0, 100].

warning_rate
    Fraction of audited challenges with at least one hallucination warning.

How to run
----------

    cd backend
    python -m quizloop.eval.quality_audit

Optional env vars:

    AUDIT_TOPIC        only audit challenges whose topic contains this text
    AUDIT_LIMIT        maximum number of challenges      (default: 500)
    AUDIT_REPORT_DIR   directory for output              (default: audit_reports/)
    DATABASE_URL       same as the main app
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.core.config import settings
from quizloop.core.logging import configure_logging
from quizloop.db.models import Challenge
from quizloop.db.session import AsyncSessionLocal
from quizloop.services.question_parser import QuestionOption, StructuredQuestion
from quizloop.services.question_validator import validate_batch

logger = logging.getLogger(__name__)

_DEFAULT_REPORT_DIR = Path("audit_reports")
_DEFAULT_LIMIT = 500


def question_from_challenge(challenge: Challenge) -> StructuredQuestion:
    """Rebuild the in-memory question from a stored row.

    Malformed options JSON yields a question with no options, which the
    validator then reports as an error.
    """
    try:
        raw_options = json.loads(challenge.options or "[]")
    except json.JSONDecodeError:
        raw_options = []
    options = tuple(
        QuestionOption(letter=str(o.get("letter", "")), text=str(o.get("text", "")))
        for o in raw_options
        if isinstance(o, dict)
    )
    return StructuredQuestion(
        question_text=challenge.question_text or "",
        options=options,
        correct_answer=challenge.correct_answer,
        raw_text=challenge.raw_response or "",
        topic=challenge.topic or "",
        level=challenge.level or "",
    )


async def load_challenges(
    db: AsyncSession,
    *,
    topic: str | None = None,
    limit: int = _DEFAULT_LIMIT,
) -> list[Challenge]:
    stmt = select(Challenge)
    if topic:
        stmt = stmt.where(Challenge.topic.icontains(topic, autoescape=True))
    result = await db.execute(stmt.order_by(Challenge.id).limit(limit))
    return list(result.scalars().all())


def audit(challenges: list[Challenge]) -> dict:
    """Validate *challenges* and return the summary plus per-row results."""
    report = validate_batch([question_from_challenge(c) for c in challenges])

    error_counts: Counter[str] = Counter()
    warning_counts: Counter[str] = Counter()
    rows: list[dict] = []
    for challenge, result in zip(challenges, report.results):
        error_counts.update(result.errors)
        warning_counts.update(result.warnings)
        rows.append({
            "challenge_id":  challenge.id,
            "topic":         challenge.topic,
            "question":      (challenge.question_text or "")[:120],
            **result.as_dict(),
        })

    with_warnings = sum(1 for r in report.results if r.warnings)
    summary = {
        "num_challenges": report.total,
        "valid":          report.valid,
        "invalid":        report.invalid,
        "valid_rate":     round(report.valid / report.total, 4) if report.total else 0.0,
        "average_score":  round(report.average_score, 2),
        "warning_rate":   round(with_warnings / report.total, 4) if report.total else 0.0,
        "top_errors":     error_counts.most_common(5),
        "top_warnings":   warning_counts.most_common(5),
    }
    return {"summary": summary, "results": rows}


async def run_audit(
    db: AsyncSession | None = None,
    *,
    topic: str | None = None,
    limit: int | None = None,
    report_dir: Path | None = None,
) -> dict:
    """Load stored challenges, validate them, write the JSON report and return it."""
    topic = topic if topic is not None else os.environ.get("AUDIT_TOPIC") or None
    limit = limit or int(os.environ.get("AUDIT_LIMIT", str(_DEFAULT_LIMIT)))
    report_dir = report_dir or Path(
        os.environ.get("AUDIT_REPORT_DIR", str(_DEFAULT_REPORT_DIR))
    )

    if db is None:
        async with AsyncSessionLocal() as own_session:
            challenges = await load_challenges(own_session, topic=topic, limit=limit)
    else:
        challenges = await load_challenges(db, topic=topic, limit=limit)

    logger.info("Auditing %d challenges (topic=%r)", len(challenges), topic)
    report = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "topic_filter": topic,
        **audit(challenges),
    }

    report_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    for path in (report_dir / "audit.json", report_dir / f"audit_{ts}.json"):
        with path.open("w") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        logger.info("Report written → %s", path)

    for k, v in report["summary"].items():
        logger.info("  %-20s %s", k, v)

    return report


if __name__ == "__main__":
    configure_logging(settings.log_level)
    asyncio.run(run_audit())
