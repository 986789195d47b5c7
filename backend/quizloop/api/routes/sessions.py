from typing import Annotated

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.api.schemas import (
    ChallengeBatch,
    ContinueSurvivalRequest,
    SaveResultsRequest,
    SaveResultsResponse,
    StartSessionRequest,
    StartSessionResponse,
)
from quizloop.db.session import get_session
from quizloop.services.llm_client import LLMClient, get_llm_client
from quizloop.services.session_service import (
    continue_survival,
    save_results,
    start_session,
)


router = APIRouter(prefix="/sessions", tags=["sessions"])


def _get_llm() -> LLMClient:
    return get_llm_client()


@router.post(
    "/start",
    response_model=StartSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a timed or survival session, generating challenges if short",
)
async def start_session_endpoint(
    request: Annotated[StartSessionRequest, Body()],
    db: Annotated[AsyncSession, Depends(get_session)],
    llm_client: Annotated[LLMClient, Depends(_get_llm)],
) -> StartSessionResponse:
    result = await start_session(
        db,
        user_id=request.user_id,
        topic=request.topic,
        game_mode=request.game_mode,
        llm_client=llm_client,
    )
    return StartSessionResponse.model_validate(result)


@router.post(
    "/continue-survival",
    response_model=ChallengeBatch,
    summary="Serve the next batch of a survival run",
)
async def continue_survival_endpoint(
    request: Annotated[ContinueSurvivalRequest, Body()],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> ChallengeBatch:
    result = await continue_survival(
        db,
        session_id=request.session_id,
        user_id=request.user_id,
        topic=request.topic,
        used_challenge_ids=request.used_challenge_ids,
    )
    return ChallengeBatch.model_validate(result)


@router.post(
    "/save-results",
    response_model=SaveResultsResponse,
    summary="Score and finalise a session",
)
async def save_results_endpoint(
    request: Annotated[SaveResultsRequest, Body()],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> SaveResultsResponse:
    result = await save_results(
        db,
        session_id=request.session_id,
        correct_ids=request.correct_answers,
        incorrect_ids=request.incorrect_answers,
        game_mode=request.game_mode,
        time_used=request.time_used,
        topic=request.topic,
    )
    return SaveResultsResponse.model_validate(result)
