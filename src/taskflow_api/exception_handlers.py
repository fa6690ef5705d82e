"""
Global exception handlers for FastAPI.

The idea of centralising this is to:
1. Handle logging of exceptions all in one place.
2. Control what the users sees (not too much info and no accidental leakage)
3. Less work/duplication in the routes themselves, just raise the exception and the handler makes it pretty.

All responses have the same JSON body: {"detail": <message>, "type": <kind of error>}
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskflow_api.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    BusinessLogicError,
    DuplicateError,
    NotFoundError,
    TaskFlowAPIException,
    TokenError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_response(exc: TaskFlowAPIException, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": error_type},
        headers=exc.headers or None,
    )


async def not_found_error_handler(request: Request, exc: NotFoundError):
    logger.info(f"Resource not found for {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc, "not_found_error")


async def duplicate_error_handler(request: Request, exc: DuplicateError):
    logger.info(f"Duplicate resource for {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc, "duplicate_error")


async def authentication_error_handler(request: Request, exc: AuthenticationError):
    logger.info(f"Authentication failed for {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc, "authentication_error")


async def token_error_handler(request: Request, exc: TokenError):
    logger.info(f"Token rejected for {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc, "token_error")


async def access_denied_error_handler(request: Request, exc: AccessDeniedError):
    logger.warning(f"Access denied for {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc, "access_denied_error")


async def business_logic_error_handler(request: Request, exc: BusinessLogicError):
    logger.info(f"Business rule violated for {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc, "business_logic_error")


async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info(f"Validation failed for {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc, "validation_error")


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Pydantic validation of the request body/params, returned as field -> message."""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        errors[field or "request"] = error["msg"]

    logger.info(f"Request validation failed for {request.method} {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "type": "validation_error", "errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception for {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred", "type": "internal_error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Type errors ignored (https://github.com/fastapi/fastapi/discussions/11741)
    """
    app.add_exception_handler(NotFoundError, not_found_error_handler)  # type: ignore
    app.add_exception_handler(DuplicateError, duplicate_error_handler)  # type: ignore
    app.add_exception_handler(AuthenticationError, authentication_error_handler)  # type: ignore
    app.add_exception_handler(TokenError, token_error_handler)  # type: ignore
    app.add_exception_handler(AccessDeniedError, access_denied_error_handler)  # type: ignore
    app.add_exception_handler(BusinessLogicError, business_logic_error_handler)  # type: ignore
    app.add_exception_handler(ValidationError, validation_error_handler)  # type: ignore
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)  # type: ignore
    app.add_exception_handler(Exception, unhandled_exception_handler)
