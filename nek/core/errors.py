import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = logging.getLogger(__name__)

DATABASE_CONNECTION_ERROR = "DATABASE_CONNECTION_ERROR"

# Driver errors that may mean the server is unreachable; see is_unreachable.
DATASTORE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)

# lower-cased driver messages for refused, dropped or timed-out connections
CONNECTION_FAILURE_MARKERS = (
    "could not connect",
    "connection refused",
    "connection reset",
    "connection timed out",
    "timeout expired",
    "server closed the connection",
    "terminating connection",
    "could not translate host name",
    "name or service not known",
    "can't connect",
    "lost connection",
    "gone away",
    "unable to open database file",
)


def is_unreachable(exc: BaseException) -> bool:
    """True when ``exc`` means the datastore could not be reached at all.

    Schema errors, lock waits and statement timeouts are also raised as
    OperationalError but are not connection failures.
    """
    if isinstance(exc, PoolTimeoutError):
        return True
    if not isinstance(exc, (OperationalError, InterfaceError)):
        return False
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    message = str(exc.orig if getattr(exc, "orig", None) is not None else exc).lower()
    return any(marker in message for marker in CONNECTION_FAILURE_MARKERS)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class BusinessRuleError(HTTPException):
    """A request that is well-formed but not allowed in the current state."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ServiceUnavailableError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


async def datastore_error_handler(request: Request, exc: Exception):
    if not is_unreachable(exc):
        return await unhandled_exception_handler(request, exc)
    logger.error("Datastore unreachable during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "Database connection failed",
            "message": "Cannot reach database server. Please try again.",
            "code": DATABASE_CONNECTION_ERROR,
            "retryable": True,
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error during %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI):
    for exc_type in DATASTORE_ERRORS:
        app.add_exception_handler(exc_type, datastore_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
