import logging
import time

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import Settings

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD = 1.0

Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """
    Build the SQLAlchemy engine for the relational store.
    Owned by the process entry point; never created at import time.
    """
    if settings.database_url.startswith("sqlite"):
        engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False, "timeout": settings.outbound_timeout_seconds},
        )
    else:
        engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,  # Test connections before using
            pool_recycle=settings.db_pool_recycle,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            connect_args={
                "connect_timeout": int(settings.outbound_timeout_seconds),
                "options": f"-c statement_timeout={int(settings.outbound_timeout_seconds * 1000)}",
            },
        )
        logger.info(
            f"Connection pool: size={settings.db_pool_size}, max_overflow={settings.db_max_overflow}, "
            f"timeout={settings.db_pool_timeout}s"
        )

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"Slow query ({total:.2f}s): {statement[:200]}...")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
