"""
Database initialization and migration helpers.
"""

from __future__ import annotations

import os
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker

import kb.config as config
from kb.errors import StorageUnavailable
from kb.models import Base


class Store:
    """Shared handle on the knowledge base database.

    One instance is created per process and passed to every service
    function. It owns the engine (and therefore the connection pool) and
    the session factory; services open a short-lived session per call.
    """

    def __init__(self, database_url: str, engine: Optional[Engine] = None):
        self.database_url = database_url
        self.engine = engine or _create_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except DBAPIError as exc:
            raise StorageUnavailable(f"database unreachable: {type(exc.orig).__name__}") from exc

    def dispose(self) -> None:
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"Store({self.engine.url.render_as_string(hide_password=True)!r})"


class DB:
    """Process-wide store holder for the HTTP app."""

    store: Optional[Store] = None


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(config.SQLITE_BUSY_TIMEOUT_SECONDS * 1000)}")
    cursor.close()


def _create_engine(database_url: str) -> Engine:
    engine_kwargs = {"pool_pre_ping": True}
    is_sqlite = database_url.lower().startswith("sqlite")
    if is_sqlite:
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": config.SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    engine = create_engine(database_url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def _ensure_sqlite_directory(database_url: str) -> None:
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return
    path = database_url[len(prefix):]
    if not path or path == ":memory:":
        return
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)


def _get_alembic_config(database_url: str):
    try:
        from alembic.config import Config
    except ImportError as exc:
        raise RuntimeError("Alembic is required for migrations") from exc

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    alembic_cfg = Config(os.path.join(base_dir, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(base_dir, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    alembic_cfg.attributes["skip_logging_config"] = True
    return alembic_cfg


def _alembic_available() -> bool:
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.isdir(os.path.join(base_dir, "alembic", "versions"))


def get_schema_revisions(store: Store) -> tuple[Optional[str], Optional[str]]:
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    if not _alembic_available():
        return None, None
    alembic_cfg = _get_alembic_config(store.database_url)
    script = ScriptDirectory.from_config(alembic_cfg)
    head_revision = script.get_current_head()
    with store.engine.connect() as conn:
        context = MigrationContext.configure(conn)
        current_revision = context.get_current_revision()
    return current_revision, head_revision


def _ensure_schema_up_to_date(store: Store) -> None:
    from alembic import command

    if not _alembic_available():
        config.logger.warning("Alembic scripts not found; creating tables from models")
        Base.metadata.create_all(store.engine)
        return

    current_rev, head_rev = get_schema_revisions(store)
    if current_rev == head_rev:
        return

    if config.AUTO_MIGRATE_ON_STARTUP:
        alembic_cfg = _get_alembic_config(store.database_url)
        command.upgrade(alembic_cfg, "head")
        new_current, _ = get_schema_revisions(store)
        if new_current != head_rev:
            raise RuntimeError("Database migration did not reach expected revision")
    else:
        raise RuntimeError(
            f"Database schema out of date (current={current_rev}, expected={head_rev}). "
            "Run 'alembic upgrade head' or set AUTO_MIGRATE_ON_STARTUP=true."
        )


def open_store(database_url: Optional[str] = None, migrate: bool = True) -> Store:
    """Open the store, creating the database file and schema when needed."""
    if database_url is None:
        config.validate_and_prepare_config()
        database_url = config.DATABASE_URL

    config.logger.info("Connecting to database...")
    _ensure_sqlite_directory(database_url)
    store = Store(database_url)
    if migrate:
        _ensure_schema_up_to_date(store)
    config.logger.info("Database initialized")
    return store


def init_db(database_url: Optional[str] = None) -> Store:
    """Initialize the process-wide store used by the HTTP app."""
    DB.store = open_store(database_url)
    return DB.store
