"""Database helpers and explicit transaction boundaries."""
from __future__ import annotations

import enum
import logging
import os
from typing import Dict, Optional, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import TransactionStateError, translate_storage_error
from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DB_URL = os.environ.get("FLIGHT_SERVICE_DB_URL", "sqlite+pysqlite:///flights.db")
SERIALIZABLE = "SERIALIZABLE"


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Let the engine, not pysqlite, decide where transactions start.

    pysqlite defers BEGIN until the first INSERT/UPDATE/DELETE, which would leave
    the capacity and day checks outside the transaction. A serializable
    connection takes the write lock up front with BEGIN IMMEDIATE.

    SQLAlchemy puts pysqlite's ``isolation_level`` back to ``""`` whenever an
    isolation level is applied or reset on a pooled connection, so the driver's
    implicit BEGIN is switched off again at the start of every transaction.
    """

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.connection.dbapi_connection.isolation_level = None
        level = conn.get_execution_options().get("isolation_level")
        if level == "AUTOCOMMIT":
            return
        conn.exec_driver_sql("BEGIN IMMEDIATE" if level == SERIALIZABLE else "BEGIN")


def create_session_factory(
    db_url: Optional[str] = None,
    *,
    echo: bool = False,
    connect_args: Dict[str, object] | None = None,
) -> Tuple[Engine, sessionmaker[Session]]:
    """Return an engine/session factory pair configured for SQLite by default."""

    db_url = db_url or DEFAULT_DB_URL
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        final_connect_args = {"check_same_thread": False}
        if connect_args:
            final_connect_args.update(connect_args)
    else:
        final_connect_args = connect_args or {}

    if db_url.endswith(":memory:"):
        engine = create_engine(
            db_url,
            echo=echo,
            connect_args=final_connect_args,
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            db_url,
            echo=echo,
            connect_args=final_connect_args,
        )
    if is_sqlite:
        _install_sqlite_transaction_hooks(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return engine, session_factory


def init_db(db_url: Optional[str] = None, *, echo: bool = False) -> sessionmaker[Session]:
    """Create all tables and return a session factory."""

    engine, session_factory = create_session_factory(db_url, echo=echo)
    Base.metadata.create_all(engine)
    return session_factory


class TransactionState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    ABORTED = "aborted"


class Transaction:
    """One explicit read-check-write transaction on its own session.

    ``begin`` pins a pooled connection with ``isolation_level`` applied before
    any statement runs. ``commit`` and ``rollback`` release the connection,
    which returns it to the engine's default mode. Used as a context manager,
    leaving the block while still ACTIVE rolls back, and engine errors raised
    inside the block are re-raised as :class:`~flight_service.exceptions.StorageError`.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        isolation_level: Optional[str] = SERIALIZABLE,
    ) -> None:
        self._session_factory = session_factory
        self.isolation_level = isolation_level
        self.state = TransactionState.IDLE
        self._session: Optional[Session] = None

    @property
    def session(self) -> Session:
        if self.state is not TransactionState.ACTIVE or self._session is None:
            raise TransactionStateError(f"transaction is {self.state.value}, not active")
        return self._session

    def begin(self) -> Session:
        if self.state is not TransactionState.IDLE:
            raise TransactionStateError(f"cannot begin a {self.state.value} transaction")
        session = self._session_factory()
        options = {"isolation_level": self.isolation_level} if self.isolation_level else None
        try:
            session.connection(execution_options=options)
        except DBAPIError as exc:
            session.close()
            self.state = TransactionState.ABORTED
            raise translate_storage_error(exc, write=True) from exc
        self._session = session
        self.state = TransactionState.ACTIVE
        logger.debug("transaction begun (isolation=%s)", self.isolation_level or "default")
        return session

    def commit(self) -> None:
        session = self.session
        try:
            session.commit()
        except DBAPIError as exc:
            self._abort(session)
            raise translate_storage_error(exc, write=True) from exc
        self._finish(session, TransactionState.COMMITTED)

    def rollback(self) -> None:
        session = self.session
        try:
            session.rollback()
        except DBAPIError as exc:
            self._finish(session, TransactionState.ABORTED)
            raise translate_storage_error(exc, write=True) from exc
        self._finish(session, TransactionState.ABORTED)

    def _abort(self, session: Session) -> None:
        try:
            session.rollback()
        finally:
            self._finish(session, TransactionState.ABORTED)

    def _finish(self, session: Session, state: TransactionState) -> None:
        session.close()
        self._session = None
        self.state = state
        logger.debug("transaction %s", state.value)

    def __enter__(self) -> "Transaction":
        self.begin()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.state is TransactionState.ACTIVE:
            if exc_val is not None:
                logger.warning("rolling back transaction after %s", exc_type.__name__)
            self.rollback()
        if isinstance(exc_val, DBAPIError):
            raise translate_storage_error(exc_val, write=True) from exc_val
        return False
