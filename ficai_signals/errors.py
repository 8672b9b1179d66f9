"""
Error taxonomy shared by every operation, and the one place that turns
those errors into HTTP responses.

Operations raise a ServiceError subclass; route handlers never build error
responses themselves.
"""
import enum
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

log = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    BAD_REQUEST = "bad_request"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"
    BATCH_FAILED = "batch_failed"


STATUS_CODES = {
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.BATCH_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ServiceError(Exception):
    kind = ErrorKind.INTERNAL
    default_message = "internal error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(ServiceError):
    kind = ErrorKind.BAD_REQUEST
    default_message = "bad request"


class Forbidden(ServiceError):
    kind = ErrorKind.FORBIDDEN
    default_message = "forbidden"


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND
    default_message = "not found"


class AccountAlreadyExists(ServiceError):
    kind = ErrorKind.CONFLICT
    default_message = "account already exists"


class InternalError(ServiceError):
    kind = ErrorKind.INTERNAL
    default_message = "internal error"


class BatchFailed(ServiceError):
    """
    A patch batch stopped part way. The message names the operation and
    tag that failed and is shown to the client; the store error behind it
    is not.
    """
    kind = ErrorKind.BATCH_FAILED
    default_message = "batch failed"

    def __init__(self, op: str, tag: str):
        self.op = op
        self.tag = tag
        super().__init__(f"failed to {op} signal {tag!r}")


def error_response(kind: ErrorKind, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_CODES[kind],
        content={"code": kind.value, "message": message},
    )


def kind_for_status(status_code: int) -> ErrorKind:
    for kind, code in STATUS_CODES.items():
        if code == status_code:
            return kind
    if status_code >= 500:
        return ErrorKind.INTERNAL
    return ErrorKind.BAD_REQUEST


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if STATUS_CODES[exc.kind] >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message,
                  exc_info=exc.__cause__ or exc)
    if exc.kind is ErrorKind.INTERNAL:
        # Cause stays server side; the client only gets the generic message
        return error_response(exc.kind, InternalError.default_message)
    return error_response(exc.kind, exc.message)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = kind_for_status(exc.status_code)
    message = exc.detail if isinstance(exc.detail, str) else kind.value.replace("_", " ")
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": kind.value, "message": message},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        "{}: {}".format(".".join(str(p) for p in err["loc"]), err["msg"])
        for err in exc.errors()
    )
    return error_response(ErrorKind.BAD_REQUEST, problems or BadRequest.default_message)


async def _store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.error("%s %s failed in the store", request.method, request.url.path, exc_info=exc)
    return error_response(ErrorKind.INTERNAL, InternalError.default_message)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
    return error_response(ErrorKind.INTERNAL, InternalError.default_message)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, _store_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
