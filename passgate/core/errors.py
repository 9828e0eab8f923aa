# passgate/core/errors.py
"""
Error taxonomy and the FastAPI handlers that turn it into
``{"success": false, "message": ...}`` bodies.

Register on an app via ``register_exception_handlers(app)``.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PassGateError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class UpstreamError(PassGateError):
    """Non-2xx answer, network failure or timeout talking to issuer/verifier."""

    status_code = 502

    def __init__(self, message: str, status: int | None = None, body: str | None = None, **extra):
        super().__init__(message, **extra)
        self.status = status
        self.body = body


class UpstreamTimeout(UpstreamError):
    status_code = 504


class NotFound(PassGateError):
    # Soft failure: callers get {success: false} with a 200
    status_code = 200


class InvalidRequest(PassGateError):
    status_code = 400


class StorageError(PassGateError):
    """Whitelist file could not be read or written. Never leaves the store."""


async def passgate_error_handler(request: Request, exc: PassGateError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, **exc.extra},
    )


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid request"


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=InvalidRequest.status_code,
        content={"success": False, "message": f"Invalid request: {_describe_validation(exc)}"},
    )


async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PassGateError, passgate_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
