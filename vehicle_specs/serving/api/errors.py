"""
Engine error to HTTP response mapping.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vehicle_specs.errors import NotFoundError, SpecEngineError, ValidationError

logger = structlog.get_logger(__name__)

_STATUS = {
    NotFoundError: 404,
    ValidationError: 400,
}


def _body(exc: SpecEngineError) -> dict:
    body = {"error": exc.message}
    if exc.code is not None:
        body["code"] = exc.code
    return body


async def engine_error_handler(request: Request, exc: SpecEngineError) -> JSONResponse:
    status_code = next((status for cls, status in _STATUS.items() if isinstance(exc, cls)), 500)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return JSONResponse(status_code=status_code, content=_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SpecEngineError, engine_error_handler)
