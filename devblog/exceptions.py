"""
Service-layer exceptions and their HTTP rendering.

Services raise these instead of returning sentinel values so that routers
stay thin; ``register_exception_handlers`` turns them into the same
``{"detail": ...}`` envelope FastAPI uses for ``HTTPException``.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors a service reports back to the caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class BadRequestError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class PasswordValidationError(BadRequestError):
    """Weak password; the detail lists every rule the password broke."""

    def __init__(
        self,
        errors: list[str],
        strength: str,
        suggestion: str,
        message: str = "Password validation failed",
    ) -> None:
        super().__init__(
            {
                "message": message,
                "errors": errors,
                "strength": strength,
                "suggestion": suggestion,
            }
        )
        self.errors = errors


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def _integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # A uniqueness race lost between a service's check and its flush.
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Resource conflicts with an existing record"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
