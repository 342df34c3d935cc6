from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.core.exceptions import BackendError, CommunityError
from app.schemas.response import ErrorResponse

logger = logging.getLogger(__name__)


def error_response(status_code: int, error: str, code: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=error, code=code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def add_exception_handlers(app: FastAPI):
    """Renders every failure as an ErrorResponse with the matching status."""

    @app.exception_handler(CommunityError)
    async def community_error(request: Request, exc: CommunityError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
        return error_response(exc.status_code, exc.message, exc.code, exc.details)

    # A backend failure that no service mapped to a domain error
    @app.exception_handler(BackendError)
    async def backend_error(request: Request, exc: BackendError):
        logger.error(f"Unmapped backend error on {request.method} {request.url.path}: {exc.message}")
        return error_response(
            502,
            "The community backend could not complete the request",
            "BACKEND_UNAVAILABLE" if exc.retryable else "BACKEND_ERROR",
            {"code": exc.code},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return error_response(422, "Input validation failed", "VALIDATION_ERROR", jsonable_encoder(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return error_response(500, "Something went wrong on the community server", "INTERNAL_ERROR")
