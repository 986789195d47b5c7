from __future__ import annotations

import json
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import quizloop.db.models_session  # noqa: F401
from quizloop.db.base import Base
from quizloop.db.models import Challenge
from quizloop.eval.quality_audit import audit, load_challenges, question_from_challenge, run_audit


def _options(*texts: str) -> str:
    return json.dumps([{"letter": l, "text": t} for l, t in zip("ABCD", texts)])


def _good(topic: str = "Linux") -> Challenge:
    return Challenge(
        topic=topic,
        question_text="Which command prints the working directory?",
        options=_options("pwd -P", "ls -la", "cd ~/x", "rm -rf"),
        correct_answer="A",
        owner_user_id=1,
    )


def _bad() -> Challenge:
    return Challenge(
        topic="Linux",
        question_text="Huh?",
        options=_options("same", "same"),
        correct_answer="D",
        owner_user_id=1,
    )


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with factory() as s:
        yield s
    await engine.dispose()


def test_question_from_challenge_restores_fields() -> None:
    q = question_from_challenge(_good())
    assert q.question_text == "Which command prints the working directory?"
    assert [o.letter for o in q.options] == ["A", "B", "C", "D"]
    assert q.correct_answer == "A"
    assert q.topic == "Linux"


def test_question_from_challenge_tolerates_bad_json() -> None:
    row = _good()
    row.options = "{not json"
    assert question_from_challenge(row).options == ()


def test_audit_summary_counts() -> None:
    report = audit([_good(), _good(), _bad()])
    summary = report["summary"]
    assert summary["num_challenges"] == 3
    assert summary["valid"] == 2
    assert summary["invalid"] == 1
    assert summary["valid_rate"] == pytest.approx(0.6667, abs=1e-4)
    assert summary["top_errors"]
    assert len(report["results"]) == 3


def test_audit_empty() -> None:
    summary = audit([])["summary"]
    assert summary["num_challenges"] == 0
    assert summary["valid_rate"] == 0.0
    assert summary["average_score"] == 0.0


@pytest.mark.asyncio
async def test_load_challenges_filters_topic(db_session: AsyncSession) -> None:
    db_session.add_all([_good("Linux"), _good("SQL"), _good("Linux kernel")])
    await db_session.commit()

    rows = await load_challenges(db_session, topic="linux")
    assert {r.topic for r in rows} == {"Linux", "Linux kernel"}


@pytest.mark.asyncio
async def test_run_audit_writes_reports(db_session: AsyncSession, tmp_path: Path) -> None:
    db_session.add_all([_good(), _bad()])
    await db_session.commit()

    report = await run_audit(db_session, report_dir=tmp_path)

    assert report["summary"]["num_challenges"] == 2
    latest = tmp_path / "audit.json"
    assert latest.exists()
    assert json.loads(latest.read_text())["summary"]["invalid"] == 1
    assert len(list(tmp_path.glob("audit_*.json"))) == 1
