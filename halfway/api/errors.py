from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from halfway.core.errors import (
    CandidateNotFound,
    InvalidCoordinate,
    InvalidMatchRequest,
    InvalidStateTransition,
    MatchEngineError,
    MatchExpired,
    MatchNotFound,
    TargetUnavailable,
    Unauthorized,
)

# most specific first; lookup walks this in order
STATUS_BY_ERROR = (
    (InvalidCoordinate, 400),
    (InvalidMatchRequest, 400),
    (Unauthorized, 403),
    (MatchNotFound, 404),
    (CandidateNotFound, 404),
    (MatchExpired, 410),
    (InvalidStateTransition, 409),
    (TargetUnavailable, 409),
)


def status_for(error: MatchEngineError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 400


async def match_engine_error_handler(request: Request, exc: MatchEngineError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(f"{request.method} {request.url.path} rejected: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MatchEngineError, match_engine_error_handler)
