import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from phoneauth.errors import AuthServiceError, InfrastructureError, NotFoundError
from phoneauth.schemas.errors import ErrorDetail, ErrorResponse

LOGGER = logging.getLogger(__name__)

_STATUS_TO_CODE = {
    400: "INVALID_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    500: "INTERNAL_ERROR",
}


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        # Absent records are reported as authentication failures so callers
        # cannot probe which tokens or phones exist.
        LOGGER.warning("Record not found path=%s: %s", request.url.path, exc.message)
        return error_response(401, "INVALID_TOKEN", "Invalid or expired token")

    @app.exception_handler(InfrastructureError)
    async def handle_infrastructure_error(request: Request, exc: InfrastructureError):
        LOGGER.error(
            "Infrastructure error path=%s code=%s: %s",
            request.url.path,
            exc.code,
            exc.message,
            exc_info=exc,
        )
        message = exc.message if exc.code != "INTERNAL_ERROR" else "Internal server error"
        return error_response(exc.status_code, exc.code, message)

    @app.exception_handler(AuthServiceError)
    async def handle_service_error(request: Request, exc: AuthServiceError):
        LOGGER.warning(
            "Request rejected path=%s status=%d code=%s: %s",
            request.url.path,
            exc.status_code,
            exc.code,
            exc.message,
        )
        return error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        LOGGER.warning("Invalid request body path=%s errors=%s", request.url.path, exc.errors())
        return error_response(400, "INVALID_REQUEST", "Invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _STATUS_TO_CODE.get(exc.status_code, "HTTP_ERROR")
        return error_response(exc.status_code, code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        LOGGER.error("Unhandled error path=%s", request.url.path, exc_info=exc)
        return error_response(500, "INTERNAL_ERROR", "Internal server error")
