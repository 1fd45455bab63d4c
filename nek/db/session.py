import logging
import time
from functools import wraps

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

from nek.core.config import (
    DATABASE_URL,
    DB_HEALTH_TIMEOUT_SECONDS,
    DB_RETRY_ATTEMPTS,
    DB_RETRY_DELAY_SECONDS,
)
from nek.core.errors import DATASTORE_ERRORS, is_unreachable

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str = DATABASE_URL, **kwargs):
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    elif url.startswith("postgresql"):
        connect_args.setdefault("connect_timeout", DB_HEALTH_TIMEOUT_SECONDS)
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args, **kwargs)


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    # importing registers the tables on Base.metadata
    from nek.db import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def with_retry(attempts: int = DB_RETRY_ATTEMPTS, delay: float = DB_RETRY_DELAY_SECONDS):
    """Retry an idempotent datastore call on connection errors.

    Backoff doubles after every failed attempt. Only wrap reads and health
    checks with this; multi-step writes must fail fast.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except DATASTORE_ERRORS as e:
                    if attempt == attempts or not is_unreachable(e):
                        raise
                    wait = delay * 2 ** (attempt - 1)
                    logger.warning(
                        "Database connection attempt %s/%s failed, retrying in %.1fs: %s",
                        attempt, attempts, wait, e,
                    )
                    time.sleep(wait)

        return wrapper

    return decorator


def mask_url(url: str) -> str:
    if "@" not in url:
        return url
    head, tail = url.rsplit("@", 1)
    scheme, _, creds = head.partition("://")
    user = creds.split(":", 1)[0]
    return f"{scheme}://{user}:****@{tail}"


@with_retry()
def check_connection(bind=None):
    with (bind or engine).connect() as conn:
        conn.execute(text("SELECT 1"))
    return True
