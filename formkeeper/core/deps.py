"""FastAPI dependencies for database access and operator authentication."""

import hmac
from functools import lru_cache
from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from formkeeper.core.config import settings
from formkeeper.db.session import SessionLocal, build_engine, build_sessionmaker

OPERATOR_SECRET_HEADER = "X-Operator-Secret"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a session on the live store and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def _snapshot_sessionmaker(database_url: str) -> sessionmaker:
    return build_sessionmaker(build_engine(database_url))


def get_snapshot_db() -> Generator[Session, None, None]:
    """Session on the point-in-time copy used as the recovery source."""
    if not settings.SNAPSHOT_DATABASE_URL:
        raise HTTPException(status_code=501, detail="SNAPSHOT_DATABASE_URL not configured")
    if settings.SNAPSHOT_DATABASE_URL == settings.DATABASE_URL:
        raise HTTPException(status_code=400, detail="Snapshot store must differ from the live store")
    db = _snapshot_sessionmaker(settings.SNAPSHOT_DATABASE_URL)()
    try:
        yield db
    finally:
        db.close()


def require_operator_secret(x_operator_secret: str | None = Header(None)) -> None:
    """Verify the operator secret header for admin and maintenance routes."""
    expected = settings.OPERATOR_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="OPERATOR_SECRET not configured")
    if not x_operator_secret or not hmac.compare_digest(x_operator_secret, expected):
        raise HTTPException(status_code=403, detail="Invalid operator secret")
