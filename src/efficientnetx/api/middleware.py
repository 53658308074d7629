"""Middleware: API key authentication and error translation."""

from __future__ import annotations

import logging
import secrets
from http import HTTPStatus
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from efficientnetx.errors import (
    EfficientNetError,
    ImageDecodeError,
    InvalidCheckpointError,
    InvalidImageDimensionsError,
    InvalidTopKError,
    ModelLoadError,
    ModelNotLoadedError,
    UnsupportedLocaleError,
)

if TYPE_CHECKING:
    from efficientnetx.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

_UNPROCESSABLE = int(HTTPStatus.UNPROCESSABLE_ENTITY)

_ERROR_STATUS: dict[type[EfficientNetError], int] = {
    InvalidCheckpointError: _UNPROCESSABLE,
    InvalidTopKError: _UNPROCESSABLE,
    UnsupportedLocaleError: _UNPROCESSABLE,
    InvalidImageDimensionsError: _UNPROCESSABLE,
    ImageDecodeError: status.HTTP_400_BAD_REQUEST,
    ModelLoadError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ModelNotLoadedError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (EFFICIENTNETX_API_KEY not set), all requests pass.
    """
    settings: Settings = request.app.state.settings
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def _efficientnet_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def _timeout_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Inference queue is full, try again later"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Translate library errors into JSON error responses."""
    app.add_exception_handler(EfficientNetError, _efficientnet_error_handler)
    app.add_exception_handler(TimeoutError, _timeout_handler)
