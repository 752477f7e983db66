"""
Test configuration and fixtures.

Provides:
- In-memory SQLite live store, recreated for each test
- A second, independent store acting as the recovery snapshot
- HTTPX AsyncClient with and without the operator secret header
"""
import os
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SNAPSHOT_DATABASE_URL"] = ""
os.environ["OPERATOR_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_SUBMIT"] = "0"

from formkeeper.core.deps import OPERATOR_SECRET_HEADER, get_db
from formkeeper.db.base import Base
from formkeeper.db.session import SessionLocal, build_engine, build_sessionmaker, engine
from formkeeper.main import app
from formkeeper.schemas.forms import FormCreate
from formkeeper.services import form_service

OPERATOR_SECRET = "test-secret"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code may commit freely."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def snapshot_db() -> Generator[Session, None, None]:
    """A separate store holding a point-in-time copy of the data."""
    snapshot_engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(snapshot_engine)
    session = build_sessionmaker(snapshot_engine)()
    yield session
    session.close()
    snapshot_engine.dispose()


# =============================================================================
# Form Fixtures
# =============================================================================

CONTACT_FIELDS = [
    {"id": "f-name", "kind": "text", "label": "Name", "required": True},
    {"id": "f-email", "kind": "email", "label": "Email", "required": True},
    {"id": "f-phone", "kind": "phone", "label": "Phone"},
    {
        "id": "f-topics",
        "kind": "checkbox",
        "label": "Topics",
        "options": ["Pricing", "Support", "Other"],
    },
]


def _make_form(
    db: Session,
    slug: str = "contact",
    fields: list[dict] | None = None,
    status: str = "published",
):
    data = FormCreate(
        slug=slug,
        title="Contact us",
        status=status,
        fields=fields if fields is not None else CONTACT_FIELDS,
    )
    return form_service.create_form(db, data)


@pytest.fixture(scope="function")
def form_factory(db: Session):
    """Create a form in the live store: form_factory(slug=..., fields=[...])."""
    def factory(**kwargs):
        return _make_form(db, **kwargs)

    return factory


@pytest.fixture(scope="function")
def contact_form(db: Session):
    return _make_form(db)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def operator_client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient carrying the operator secret for admin and maintenance routes."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={OPERATOR_SECRET_HEADER: OPERATOR_SECRET},
    ) as c:
        yield c

    app.dependency_overrides.clear()
