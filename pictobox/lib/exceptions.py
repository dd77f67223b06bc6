"""JSON exception handlers for the API."""

import logging

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from pictobox.lib.errors import ImageError, ValidationFailure

logger = logging.getLogger(__name__)


def image_error_handler(request: Request, exc: ImageError) -> Response:
    """Log the full failure server-side and return only a generic message."""
    status_code = HTTP_400_BAD_REQUEST if isinstance(exc, ValidationFailure) else HTTP_502_BAD_GATEWAY
    logger.error(
        "%s on %s %s: %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc,
        exc.detail,
    )
    return Response(
        content={"status_code": status_code, "detail": exc.user_message},
        status_code=status_code,
        media_type="application/json",
    )


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    status_code = exc.status_code
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return Response(
        content={"status_code": status_code, "detail": detail},
        status_code=status_code,
        media_type="application/json",
    )


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Handle unexpected exceptions with a generic JSON body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    return Response(
        content={"status_code": status_code, "detail": "Internal Server Error"},
        status_code=status_code,
        media_type="application/json",
    )
