"""Base error type for service-layer failures and its HTTP rendering."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base exception for errors a service reports to its caller.

    Subclasses set ``status_code``; ``extra`` entries are added to the JSON
    body next to ``error``.
    """

    status_code: int = 500

    def __init__(self, message: str, extra: Optional[dict[str, Any]] = None):
        self.message = message
        self.extra = extra or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a ServiceError as ``{"error": ...}`` with its status code."""
    if exc.status_code >= 500:
        logger.error(
            "Service error",
            extra={"path": request.url.path, "error": exc.message},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Attach service error rendering to the application."""
    app.add_exception_handler(ServiceError, service_error_handler)
