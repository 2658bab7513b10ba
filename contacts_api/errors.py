"""Error types and the handlers that turn them into response envelopes.

Route handlers report expected failures by raising :class:`ApiError`,
which carries the full envelope. Anything unexpected is converted by
:func:`tag_errors` into an :class:`OperationError` that records which
operation failed. The handlers registered by :func:`register_error_handlers`
log the failure and answer with a generic 500 envelope.
"""

import functools
import inspect
import logging
from typing import Any, Callable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .schemas import Envelope

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An expected failure that maps directly onto an envelope response."""

    def __init__(
        self,
        status_code: int,
        errors: list[str],
        message: str,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors
        self.message = message
        self.data = data
        self.headers = headers


class OperationError(Exception):
    """An unexpected failure tagged with the operation it escaped from."""

    def __init__(self, origin: str, detail: str):
        super().__init__(f"{origin} - {detail}")
        self.origin = origin
        self.detail = detail


def envelope(
    status_code: int,
    message: str,
    data: Any = None,
    errors: list[str] | None = None,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    """Build a JSON response in the uniform ``{errors, message, data}`` shape."""
    body = Envelope(errors=errors, message=message, data=data).model_dump(mode="json")
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def describe(exc: Exception) -> str:
    """Client-safe detail for an unexpected exception."""
    if isinstance(exc, SQLAlchemyError):
        return "Database error"
    if isinstance(exc, ValidationError):
        return "Invalid data"
    return str(exc)


def tag_errors(origin: str) -> Callable:
    """
    Wrap a route handler so unexpected exceptions carry ``origin``.

    ``ApiError`` and ``HTTPException`` pass through untouched. Every other
    exception is re-raised as ``OperationError(origin, describe(exc))``
    chained to the original. Database and schema errors get a generic
    detail; their full text is only logged.

    Args:
        origin (str): Tag identifying the operation, e.g. ``"users:register"``.
    """

    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except (ApiError, StarletteHTTPException):
                    raise
                except Exception as exc:
                    raise OperationError(origin, describe(exc)) from exc

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (ApiError, StarletteHTTPException):
                raise
            except Exception as exc:
                raise OperationError(origin, describe(exc)) from exc

        return wrapper

    return decorator


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return envelope(
        exc.status_code,
        exc.message,
        data=exc.data,
        errors=exc.errors,
        headers=exc.headers,
    )


async def operation_error_handler(
    request: Request, exc: OperationError
) -> JSONResponse:
    """Log the full failure and surface only its detail to the client."""
    logger.error(
        "%s %s failed in %s: %s",
        request.method,
        request.url.path,
        exc.origin,
        exc.detail,
        exc_info=exc.__cause__ or exc,
    )
    return envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        errors=[exc.detail or "Unknown error"],
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "%s %s failed with an untagged error", request.method, request.url.path,
        exc_info=exc,
    )
    return envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        errors=["Unknown error"],
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return envelope(
        exc.status_code,
        "Request Failed",
        errors=[str(exc.detail)],
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    return envelope(status.HTTP_400_BAD_REQUEST, "Invalid Request", errors=errors)


def register_error_handlers(app: FastAPI) -> None:
    """Install the envelope-producing exception handlers on ``app``."""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(OperationError, operation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
