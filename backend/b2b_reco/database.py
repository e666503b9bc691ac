from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from b2b_reco.core.config import settings
import logging
import time

logger = logging.getLogger(__name__)

logger.info("B2B_RECO DATABASE_URL = %s", settings.get_masked_database_url())

_connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # The batch scheduler thread and request threads share the same file
    _connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using them
    echo=False,
    connect_args=_connect_args,
)

# Slow query logging (DEBUG mode only)
if settings.DEBUG:
    SLOW_QUERY_THRESHOLD_MS = 200.0

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if hasattr(context, "_query_start_time"):
            elapsed_ms = (time.perf_counter() - context._query_start_time) * 1000
            if elapsed_ms >= SLOW_QUERY_THRESHOLD_MS:
                statement_first_line = statement.split("\n")[0].strip()[:100]
                logger.warning(
                    f"SLOW_QUERY: {elapsed_ms:.2f}ms - {statement_first_line}"
                )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Dev convenience: create the tables when no Alembic migration is present.

    create_all() never alters existing tables, so once migrations exist they
    are the source of truth and this is a no-op.
    """
    import os
    alembic_versions_path = os.path.join(os.path.dirname(__file__), "..", "alembic", "versions")
    if os.path.exists(alembic_versions_path) and any(
        name.endswith(".py") for name in os.listdir(alembic_versions_path)
    ):
        logger.info("Alembic migrations detected; skipping create_all(). Run 'alembic upgrade head'.")
        return

    from b2b_reco import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
