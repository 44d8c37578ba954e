from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import Settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Owns the engine (and so the connection pool) for the whole process.

    Lifecycle: construct, ``init()`` once at startup, hand out sessions per
    request through ``get_db``, ``dispose()`` once at shutdown.
    """

    def __init__(self, url: str, *, pool_size: int = 20, max_overflow: int = 10, pool_timeout: int = 5):
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )

    def init(self, create_tables: bool = False) -> None:
        if self.engine is not None:
            return

        url = make_url(self.url)
        if url.get_backend_name() == "sqlite":
            if url.database and url.database != ":memory:":
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            # only for sqlite3
            engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False, "timeout": 5},
            )
        else:
            engine = create_engine(
                self.url,
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
                pool_pre_ping=True,
            )

        self.engine = engine
        self._sessionmaker = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        if create_tables:
            from . import models  # noqa: F401

            Base.metadata.create_all(bind=engine)

        logger.info("Database pool initialised (%s)", url.get_backend_name())

    def dispose(self) -> None:
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        self._sessionmaker = None
        logger.info("Database pool closed")

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise RuntimeError("Database.init() has not been called")
        return self._sessionmaker()

    def sessions(self) -> Iterator[Session]:
        db = self.session()
        try:
            yield db
        finally:
            db.close()


def get_db(request: Request):
    database: Database = request.app.state.database
    yield from database.sessions()


def begin_write(db: Session) -> None:
    """
    Take the write lock before a read-modify-write transaction.

    SQLite ignores ``SELECT ... FOR UPDATE``, so the lock is taken up front with
    ``BEGIN IMMEDIATE``: concurrent writers queue on the busy timeout instead of
    overwriting each other. Other backends rely on row locks.
    """
    if db.get_bind().dialect.name != "sqlite":
        return
    raw = db.connection().connection.dbapi_connection
    # a connection that already wrote in this transaction holds the lock
    if not raw.in_transaction:
        db.execute(text("BEGIN IMMEDIATE"))
