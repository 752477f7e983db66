from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from formkeeper.core.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine for a submission store (live or snapshot)."""
    url = make_url(database_url)
    backend = url.get_backend_name()
    connect_args = {}
    engine_kwargs = {}
    if backend.startswith("postgresql"):
        connect_args["options"] = "-c timezone=utc"
        engine_kwargs["pool_pre_ping"] = True
    elif backend == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)

    if backend == "sqlite":
        # SQLite leaves FK enforcement (and ON DELETE SET NULL) off by default
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = build_sessionmaker(engine)
