"""Exception handlers mapping domain errors to HTTP responses."""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from docscan.utils.errors import DocScanError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)


async def domain_error_handler(request: Request, exc: DocScanError) -> JSONResponse:
    """Answer a domain error with its status code and message."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s rejected (%d): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unexpected failure and answer with a reference id."""
    error_id = uuid.uuid4().hex[:12]
    logger.error(
        "Unhandled exception [%s] in %s %s: %s",
        error_id,
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_id": error_id},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DocScanError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
