"""
Exception handlers mapping core errors onto HTTP responses.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import contextvault.config as config
from contextvault.errors import (
    ExtractionParseError,
    ProviderError,
    UnconfiguredCapability,
    ValidationIssue,
)

logger = config.logger


def _error_payload(error_type: str, message: str, field: str | None = None) -> dict:
    payload = {"status": "error", "error_type": error_type, "message": message}
    if field is not None:
        payload["field"] = field
    return payload


async def _validation_issue_handler(request: Request, exc: ValidationIssue) -> JSONResponse:
    logger.info(
        "request_validation_error",
        extra={"path": request.url.path, "field": exc.field, "error_type": exc.error_type},
    )
    return JSONResponse(status_code=400, content=_error_payload("validation_error", str(exc), exc.field))


async def _provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.warning("provider_error", extra={"path": request.url.path, "detail": str(exc)})
    return JSONResponse(status_code=503, content=_error_payload("provider_unavailable", str(exc)))


async def _unconfigured_handler(request: Request, exc: UnconfiguredCapability) -> JSONResponse:
    return JSONResponse(status_code=501, content=_error_payload("not_configured", str(exc)))


async def _extraction_parse_handler(request: Request, exc: ExtractionParseError) -> JSONResponse:
    logger.warning("extraction_parse_error", extra={"path": request.url.path, "detail": str(exc)})
    return JSONResponse(status_code=502, content=_error_payload("extraction_parse_error", str(exc)))


def configure_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationIssue, _validation_issue_handler)
    app.add_exception_handler(ProviderError, _provider_error_handler)
    app.add_exception_handler(UnconfiguredCapability, _unconfigured_handler)
    app.add_exception_handler(ExtractionParseError, _extraction_parse_handler)
