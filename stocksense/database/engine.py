import logging
import sqlite3

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from stocksense.config import Settings, get_settings


app_settings: Settings = get_settings()
logger = logging.getLogger(__name__)

_SQLITE_BUSY_TIMEOUT_SECONDS = 30
_SQLITE_BUSY_TIMEOUT_MS = _SQLITE_BUSY_TIMEOUT_SECONDS * 1000
_PG_CONNECT_TIMEOUT_SECONDS = 10


def _is_sqlite_memory(url) -> bool:
    sqlite_db = url.database
    if sqlite_db in (None, "", ":memory:"):
        return True
    return url.query.get("mode") == "memory"


def create_database_engine(database_url: str, *, settings: Settings | None = None) -> Engine:
    settings = settings or app_settings
    url = make_url(database_url)
    backend = url.get_backend_name()
    is_sqlite = backend == "sqlite"
    is_memory = is_sqlite and _is_sqlite_memory(url)

    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = dict(pool_pre_ping=True)
    if is_sqlite:
        connect_args = {"check_same_thread": False, "timeout": _SQLITE_BUSY_TIMEOUT_SECONDS}
        if is_memory:
            engine_kwargs.update(poolclass=StaticPool)
    else:
        engine_kwargs.update(pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS)
        if backend == "postgresql":
            connect_args = {
                "connect_timeout": _PG_CONNECT_TIMEOUT_SECONDS,
                "options": "-c statement_timeout={}".format(settings.DB_STATEMENT_TIMEOUT_MS),
            }

    new_engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record):
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute(f"PRAGMA busy_timeout={_SQLITE_BUSY_TIMEOUT_MS}")
                if not is_memory:
                    try:
                        cursor.execute("PRAGMA journal_mode=WAL")
                        cursor.execute("PRAGMA synchronous=NORMAL")
                    except sqlite3.DatabaseError:
                        logger.warning("Unable to enable WAL mode for %s", url.database)
            finally:
                cursor.close()

    return new_engine


engine = create_database_engine(app_settings.DATABASE_URL)

__all__ = ["create_database_engine", "engine"]
