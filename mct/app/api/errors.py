"""Render every failure as `{"error": message}`."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mct.app.core.config import ConfigurationError
from mct.app.services.concepts import ConceptNotFound
from mct.app.services.identity import AuthError

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error"


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return error_response(exc.status_code, exc.message, code=exc.error)


async def concept_not_found_handler(request: Request, exc: ConceptNotFound) -> JSONResponse:
    return error_response(status.HTTP_404_NOT_FOUND, str(exc))


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.critical("Configuration error on %s: %s", request.url.path, exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        fields[".".join(loc) or "body"] = err.get("msg", "Invalid value").removeprefix("Value error, ")
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request payload", fields=fields)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, message)


async def internal_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s", request.url.path, exc_info=exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(ConceptNotFound, concept_not_found_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, internal_exception_handler)
