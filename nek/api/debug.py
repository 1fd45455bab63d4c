import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from nek.core.config import DATABASE_URL, DB_HEALTH_TIMEOUT_SECONDS
from nek.core.errors import DATABASE_CONNECTION_ERROR, DATASTORE_ERRORS, is_unreachable
from nek.db import session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/db-connection")
def db_connection():
    """Probe the datastore with SELECT 1, retrying with backoff before giving up."""
    try:
        session.check_connection()
    except DATASTORE_ERRORS as e:
        if not is_unreachable(e):
            raise
        logger.error("Database health check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "database": session.mask_url(DATABASE_URL),
                "error": "Database connection failed",
                "code": DATABASE_CONNECTION_ERROR,
                "retryable": True,
            },
        )
    return {
        "status": "ok",
        "database": session.mask_url(DATABASE_URL),
        "timeout_seconds": DB_HEALTH_TIMEOUT_SECONDS,
    }
