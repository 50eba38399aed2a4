"""
Exception handlers turning service errors into response envelopes.

- GridStorError subclasses keep their own status code (400/404/409)
- request validation failures become 400 with one reason per field
- unexpected SQLAlchemy errors become 500 with the driver message
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import GridStorError

logger = logging.getLogger(__name__)


def _describe_validation_errors(errors: List[Dict[str, Any]]) -> List[str]:
    reasons = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ())]
        if len(location) > 1 and location[0] in ("body", "query", "path"):
            location = location[1:]
        field = ".".join(location) or "request"
        reasons.append(f"{field}: {error.get('msg', 'invalid value')}")
    return reasons


async def gridstor_error_handler(request: Request, exc: GridStorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    reasons = _describe_validation_errors(exc.errors())
    logger.warning("%s %s invalid payload: %s", request.method, request.url.path, "; ".join(reasons))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": reasons[0] if len(reasons) == 1 else "Invalid request",
            "details": {"validationErrors": reasons},
        },
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("%s %s database error", request.method, request.url.path)
    original = getattr(exc, "orig", None)
    message = str(original) if original is not None else str(exc)
    return JSONResponse(status_code=500, content={"success": False, "error": message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GridStorError, gridstor_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
