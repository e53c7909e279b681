import logging
import threading

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns the engine (and its connection pool) for one process.

    The engine is created on first use. A disconnect-class error reported by
    the driver marks the handle stale; the next access disposes the old pool
    and builds a fresh one.
    """

    def __init__(self, url: str, echo: bool = False, pool_pre_ping: bool = True):
        self.url = url
        self.echo = echo
        self.pool_pre_ping = pool_pre_ping
        self._engine = None
        self._sessionmaker = None
        self._stale = False
        self._lock = threading.Lock()

    @property
    def engine(self):
        with self._lock:
            if self._engine is not None and self._stale:
                logger.warning("Recreating stale database pool")
                self._engine.dispose()
                self._engine = None
            if self._engine is None:
                self._engine = self._create_engine()
                self._sessionmaker = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
                self._stale = False
            return self._engine

    @property
    def is_stale(self) -> bool:
        return self._stale

    def _create_engine(self):
        is_sqlite = self.url.startswith("sqlite")
        connect_args = {"check_same_thread": False} if is_sqlite else {}
        engine = create_engine(
            self.url,
            echo=self.echo,
            pool_pre_ping=self.pool_pre_ping,
            connect_args=connect_args,
        )
        if is_sqlite:
            event.listen(engine, "connect", _set_sqlite_pragma)
        event.listen(engine, "handle_error", self._on_error)
        return engine

    def _on_error(self, context):
        if context.is_disconnect:
            logger.warning("Database connection lost; pool marked stale",
                           extra={"error": str(context.original_exception)})
            self.invalidate()

    def invalidate(self) -> None:
        self._stale = True

    def session(self):
        self.engine
        return self._sessionmaker()

    def dispose(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._sessionmaker = None


# ensure ON DELETE CASCADE is respected at DB level
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
