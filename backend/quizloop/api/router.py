from fastapi import APIRouter

from quizloop.api.routes.challenges import router as challenges_router
from quizloop.api.routes.challenges import user_router as user_challenges_router
from quizloop.api.routes.metrics import router as metrics_router
from quizloop.api.routes.sessions import router as sessions_router

router = APIRouter(prefix="/api/v1")

router.include_router(sessions_router)
router.include_router(challenges_router)
router.include_router(user_challenges_router)
router.include_router(metrics_router)
