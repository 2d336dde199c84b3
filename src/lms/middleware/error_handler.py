"""Global error handlers: every failure leaves as ``{"detail", "code"}`` JSON."""

import traceback

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from lms.config import Settings
from lms.errors import AppError

logger = structlog.get_logger()

_STATUS_CODES = {
    400: "ValidationError",
    401: "AuthError",
    403: "ForbiddenError",
    404: "NotFoundError",
    405: "MethodNotAllowed",
    409: "ConflictError",
}


def setup_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Render domain errors with their own status and code."""
        if exc.status_code >= 500:
            logger.error("app_error", code=exc.code, path=request.url.path, exc_info=exc)
        else:
            logger.info("request_rejected", code=exc.code, status=exc.status_code, path=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "code": _STATUS_CODES.get(exc.status_code, "HTTPError")},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed or missing input is a 400 ValidationError."""
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Validation error",
                "code": "ValidationError",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        """A unique key lost a race after the application-level check passed."""
        logger.warning("integrity_conflict", path=request.url.path, error=str(exc.orig))
        return JSONResponse(
            status_code=409,
            content={"detail": "Resource already exists", "code": "ConflictError"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Anything unexpected is an InternalError; tracebacks stay out of production."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        content: dict[str, object] = {"detail": "Internal server error", "code": "InternalError"}
        if not settings.is_production:
            content["traceback"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return JSONResponse(status_code=500, content=content)
