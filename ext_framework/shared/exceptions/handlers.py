"""
Exception handlers for the FastAPI application.

Renders framework errors in the standard error response format with
request tracking ids.
"""

import logging
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .framework_exceptions import FrameworkError, FrameworkErrors

logger = logging.getLogger(__name__)


def _generate_request_id() -> str:
    """Generate a unique request ID for error tracking."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"req_{timestamp}_{uuid4().hex[:8]}"


def _status_for(exc: FrameworkError) -> int:
    if exc.code == FrameworkErrors.MANIFEST_NOT_FOUND:
        return 404
    return 500


async def framework_exception_handler(request: Request, exc: FrameworkError) -> JSONResponse:
    """
    Handle FrameworkError raised while serving a request.

    Args:
        request: FastAPI request object
        exc: FrameworkError instance

    Returns:
        JSONResponse with the structured error
    """
    request_id = _generate_request_id()
    status_code = _status_for(exc)

    logger.error(
        f"Framework error [{request_id}]: {exc}",
        extra={
            "request_id": request_id,
            "plugin_id": exc.plugin_id,
            "error_code": exc.code.value,
            "path": request.url.path,
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": exc.to_dict(),
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the framework exception handlers to an application"""
    app.add_exception_handler(FrameworkError, framework_exception_handler)
