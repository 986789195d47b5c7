from typing import Annotated

from fastapi import APIRouter, Body, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.api.schemas import (
    ChallengeOut,
    ChallengeResponseOut,
    ChallengeResponseRequest,
    DeliveredChallengeOut,
    GenerateChallengeRequest,
)
from quizloop.db.models import Challenge
from quizloop.db.session import get_session
from quizloop.services.backfill_service import generate_one_challenge
from quizloop.services.challenges_service import (
    challenge_payload,
    list_pending,
    mark_started,
    record_response,
)
from quizloop.services.llm_client import LLMClient, get_llm_client


router = APIRouter(prefix="/challenges", tags=["challenges"])
user_router = APIRouter(prefix="/users/{user_id}/challenges", tags=["challenges"])

ChallengeId = Annotated[int, Path(gt=0)]


def _get_llm() -> LLMClient:
    return get_llm_client()


def _delivered(challenge: Challenge) -> DeliveredChallengeOut:
    return DeliveredChallengeOut.model_validate({
        **challenge_payload(challenge),
        "display_status": challenge.display_status.value,
        "frequency":      challenge.frequency,
        "created_at":     challenge.created_at,
    })


@router.post(
    "/generate",
    response_model=ChallengeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Generate, validate and store one challenge",
)
async def generate_challenge_endpoint(
    request: Annotated[GenerateChallengeRequest, Body()],
    db: Annotated[AsyncSession, Depends(get_session)],
    llm_client: Annotated[LLMClient, Depends(_get_llm)],
) -> ChallengeOut:
    challenge = await generate_one_challenge(
        db,
        user_id=request.user_id,
        topic=request.topic,
        level=request.level,
        llm_client=llm_client,
        previous_questions=request.previous_questions,
        notes=request.notes,
    )
    return ChallengeOut.model_validate(challenge_payload(challenge))


@router.post(
    "/{challenge_id}/start",
    response_model=DeliveredChallengeOut,
    summary="Mark a delivered challenge as started",
)
async def start_challenge_endpoint(
    challenge_id: ChallengeId,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> DeliveredChallengeOut:
    return _delivered(await mark_started(db, challenge_id))


@router.post(
    "/{challenge_id}/responses",
    response_model=ChallengeResponseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record and grade one answer",
)
async def record_response_endpoint(
    challenge_id: ChallengeId,
    request: Annotated[ChallengeResponseRequest, Body()],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> ChallengeResponseOut:
    result = await record_response(
        db,
        challenge_id=challenge_id,
        user_id=request.user_id,
        selected_answer=request.selected_answer,
        response_time=request.response_time,
    )
    return ChallengeResponseOut.model_validate(result)


@user_router.get(
    "/pending",
    response_model=list[DeliveredChallengeOut],
    summary="Delivered challenges not yet started, newest first",
)
async def pending_challenges_endpoint(
    user_id: Annotated[int, Path(gt=0)],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> list[DeliveredChallengeOut]:
    return [_delivered(c) for c in await list_pending(db, user_id)]
