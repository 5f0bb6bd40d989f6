"""
Error Handlers

Every failure leaves the API as {"error": {"code", "message", "details"}}.
Expected workflow failures keep their DomainError code; database outages
and unexpected bugs get a generic message and the details stay in the logs.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...domain.errors import DomainError, ConcurrencyError
from ...utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


def envelope(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details or {}}}


def _respond(status_code: int, content: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(content),
        headers={"X-Correlation-Id": get_correlation_id() or ""}
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    # Version conflicts are routine under concurrent approvals
    log = logger.info if isinstance(exc, ConcurrencyError) else logger.warning
    log(
        f"{request.method} {request.url.path}: {exc.error_code} {exc.message}",
        extra={"error_code": exc.error_code, "path": request.url.path}
    )
    return _respond(exc.http_status, exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routes re-raise DomainErrors as HTTPException(detail=e.to_dict()); pass those through"""
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    else:
        content = envelope("HTTP_ERROR", str(exc.detail))
    return _respond(exc.status_code, content)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.warning(
        f"Rejected {request.method} {request.url.path}: {len(errors)} invalid field(s)",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path}
    )
    return _respond(
        status.HTTP_400_BAD_REQUEST,
        envelope("VALIDATION_ERROR", "Request validation failed", {"errors": errors})
    )


async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error(f"Database error on {request.url.path}: {exc}", exc_info=True, extra={"path": request.url.path})
    return _respond(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        envelope("SERVICE_UNAVAILABLE", "The service is temporarily unavailable. Please retry.")
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Stack trace to error.log only, never to the client"""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True, extra={"path": request.url.path})
    return _respond(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        envelope("INTERNAL_ERROR", "Something went wrong. Please retry.")
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PyMongoError, database_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
