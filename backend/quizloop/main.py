import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from quizloop.api.router import router
from quizloop.core.config import settings
from quizloop.core.errors import (
    NotFoundError,
    QuizEngineError,
    UpstreamError,
    ValidationError,
)
from quizloop.core.logging import configure_logging
from quizloop.db.init_db import init_db
from quizloop.db.session import engine

configure_logging(settings.log_level)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Could not complete the operation"
UPSTREAM_ERROR_MESSAGE = "The question generator is unavailable, try again later"


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    await init_db(engine)
    yield
    await engine.dispose()


app = FastAPI(
    title="quizloop",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(router)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    content: dict = {"detail": str(exc)}
    if exc.result is not None:
        content["validation"] = exc.result.as_dict()
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)


@app.exception_handler(UpstreamError)
async def upstream_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("Oracle failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": UPSTREAM_ERROR_MESSAGE}
    )


@app.exception_handler(QuizEngineError)
async def engine_error_handler(request: Request, exc: QuizEngineError) -> JSONResponse:
    logger.error("Unhandled engine error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": GENERIC_ERROR_MESSAGE},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unexpected error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": GENERIC_ERROR_MESSAGE},
    )


@app.get("/health", tags=["meta"])
async def health() -> dict[str, str]:
    return {"status": "ok", "env": settings.env}
