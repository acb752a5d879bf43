"""
Exception handlers mapping proxy and storage errors onto HTTP responses.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from utils.errors import (
    ChatProxyError,
    ConfigurationError,
    DataInconsistencyError,
    PersistenceError,
    UnsupportedProviderError,
    UpstreamError,
    UpstreamStreamError,
)
from utils.logger import app_logger


def status_for(exc: ChatProxyError) -> int:
    """HTTP status for a proxy error raised outside a stream."""
    if isinstance(exc, UnsupportedProviderError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ConfigurationError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, UpstreamError):
        return exc.status if exc.status is not None else status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, UpstreamStreamError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with user-friendly messages"""
    errors = exc.errors()
    app_logger.error(f"Validation error for {request.url}")
    app_logger.error(f"Errors: {errors}")

    if errors:
        first_error = errors[0]
        error_type = first_error.get('type', '')
        field = first_error.get('loc', [])[-1] if first_error.get('loc') else 'field'

        if error_type == 'string_too_long':
            max_length = first_error.get('ctx', {}).get('max_length', 'unknown')
            current_length = len(first_error.get('input', ''))
            message = f"Field '{field}' exceeds maximum length of {max_length} characters (current: {current_length})"
        else:
            message = first_error.get('msg', 'Validation error')
            message = f"{field}: {message}"

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": [{
                    "msg": message,
                    "type": error_type,
                    "loc": list(first_error.get('loc', []))
                }]
            },
        )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


async def chat_proxy_exception_handler(request: Request, exc: ChatProxyError):
    code = status_for(exc)
    app_logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=code, content=exc.to_dict())


async def persistence_exception_handler(request: Request, exc: PersistenceError):
    if isinstance(exc, DataInconsistencyError):
        message = "Internal server error: Data inconsistency."
    elif request.url.path.startswith("/v1/"):
        message = "Failed to initialize conversation context."
    else:
        message = "Database operation failed"

    app_logger.error(f"Persistence error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"message": message, "type": "persistence_error"}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ChatProxyError, chat_proxy_exception_handler)
    app.add_exception_handler(PersistenceError, persistence_exception_handler)
