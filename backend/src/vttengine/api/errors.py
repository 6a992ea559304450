"""EngineError -> JSON response mapping."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vttengine.core.errors import (
    EngineError,
    IllegalStateError,
    NotFoundError,
    RuleValidationError,
)

logger = logging.getLogger(__name__)


def status_for(exc: EngineError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, IllegalStateError):
        return 409
    if isinstance(exc, RuleValidationError):
        return 422
    return 400


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status = status_for(exc)
    logger.warning(
        "%s %s rejected: %s %s", request.method, request.url.path, exc.code, exc.message
    )
    return JSONResponse(status_code=status, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)  # type: ignore[arg-type]
