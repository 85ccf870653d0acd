"""
Catalog handle.

A ``Catalog`` owns one SQLAlchemy engine for one SQLite file. It creates the
schema on open, enables foreign keys on every connection and hands out
transaction scopes to the rest of the package::

    with Catalog("recipes.db") as catalog:
        recipe_id = crud.add_recipe(catalog, data)
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Settings, get_settings
from .exceptions import CatalogNotOpenError, ConstraintViolationError, StorageError
from . import search_index

logger = logging.getLogger(__name__)

Base = declarative_base()

MEMORY_PATH = ":memory:"


def _make_engine(path: str, echo: bool) -> Engine:
    if path == MEMORY_PATH:
        # Use StaticPool so the same in-memory database is shared across connections
        engine = create_engine(
            "sqlite://",
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(f"sqlite:///{path}", echo=echo)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite must not issue its own BEGIN/COMMIT; SQLAlchemy does it below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into catalog errors."""
    try:
        yield
    except IntegrityError as exc:
        logger.error("%s violated a constraint: %s", operation, exc.orig)
        raise ConstraintViolationError(f"{operation}: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        logger.error("%s failed: %s", operation, exc)
        raise StorageError(f"{operation}: {exc}") from exc


class Catalog:
    """One open (or closed) recipe catalog."""

    def __init__(self, path: Optional[str] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.path = str(path) if path is not None else self.settings.database_path
        self._engine: Optional[Engine] = None
        self._session_factory = None

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Catalog {self.path!r} {state}>"

    def __enter__(self) -> "Catalog":
        if not self.open():
            raise StorageError(f"Cannot open catalog {self.path}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise CatalogNotOpenError("engine access")
        return self._engine

    def open(self) -> bool:
        """Open the catalog file, creating the schema when needed."""
        if self.is_open:
            return True
        from . import models  # noqa: F401  register tables on Base.metadata

        engine = _make_engine(self.path, self.settings.echo_sql)
        try:
            with engine.begin() as conn:
                Base.metadata.create_all(conn)
                search_index.create_table(conn, self.settings.fts_tokenizer)
                if search_index.needs_backfill(conn):
                    logger.info("Back-filling search index for %s", self.path)
                    search_index.rebuild(conn)
        except SQLAlchemyError as exc:
            logger.error("Cannot open catalog %s: %s", self.path, exc)
            engine.dispose()
            return False

        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autoflush=False, expire_on_commit=False
        )
        logger.debug("Opened catalog %s", self.path)
        return True

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.debug("Closed catalog %s", self.path)

    def load(self, path: str) -> bool:
        """Close the current catalog and open another one."""
        self.close()
        self.path = str(path)
        return self.open()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session whose work commits together or not at all."""
        if self._session_factory is None:
            raise CatalogNotOpenError("transaction")
        db = self._session_factory()
        try:
            with db.begin():
                yield db
        finally:
            db.close()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        if self._engine is None:
            raise CatalogNotOpenError("connect")
        with self._engine.connect() as conn:
            yield conn
