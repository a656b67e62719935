"""
Error envelope for the Lead Lifecycle Engine API.

Every failure is rendered as ``{"ok": false, "error", "reason", "details"?}``.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from utils.exceptions import LeadEngineError

logger = logging.getLogger(__name__)


def error_body(message: str, reason: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"ok": False, "error": message, "reason": reason}
    if details:
        body["details"] = details
    return body


def field_errors(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Group pydantic/FastAPI validation errors by dotted field path."""
    grouped: Dict[str, List[str]] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        grouped.setdefault(".".join(loc) or "body", []).append(error.get("msg", "Invalid value"))
    return grouped


async def lead_engine_error_handler(request: Request, exc: LeadEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", extra={"reason": exc.reason})
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}", extra={"reason": exc.reason})
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.reason, exc.details))


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body(
            "Invalid request payload",
            "invalid_payload",
            {"fieldErrors": field_errors(exc.errors())},
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=error_body("Internal server error", "internal_error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LeadEngineError, lead_engine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
