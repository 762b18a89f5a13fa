"""SQLite-backed record store.

Handles database connection, session management, and generic CRUD over the
marketplace collections, with the same contract as the hosted backend.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, Mapping, Optional

from sqlalchemy import create_engine, func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..api.records import (
    ListResult,
    RecordConflictError,
    RecordNotFoundError,
    RecordQuery,
    RecordStoreError,
)
from ..config import get_config
from ..logger import logger
from ..realtime.channel import LocalRealtimeHub, RealtimeAction, RealtimeEvent
from .models import TABLES, Base


class Database:
    """Database connection and session manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:". If None,
                     uses the configured BORROWKIT_DB_PATH.
        """
        if db_path is None:
            db_path = str(get_config().db_path)

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        # In-memory databases need StaticPool so every session shares one connection
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _row_to_dict(row: Base) -> dict:
    return {attr.key: getattr(row, attr.key) for attr in inspect(row).mapper.column_attrs}


class SqliteRecordStore:
    """RecordStore over a local ``Database``.

    Mutations are published to ``hub`` (if given) after they commit, so
    observers subscribed to the hub see the same events the hosted backend
    would push.
    """

    def __init__(self, db: Database, hub: Optional[LocalRealtimeHub] = None):
        self.db = db
        self.hub = hub

    def _model(self, table: str) -> type[Base]:
        try:
            return TABLES[table]
        except KeyError:
            raise RecordStoreError(f"Unknown collection: {table}", 404)

    def _publish(self, action: RealtimeAction, table: str, record: dict) -> None:
        if self.hub is not None:
            self.hub.publish(RealtimeEvent(action=action, table=table, record=record))

    def _columns(self, model: type[Base], body: Mapping[str, Any]) -> dict:
        columns = {attr.key for attr in inspect(model).column_attrs}
        unknown = set(body) - columns
        if unknown:
            raise RecordStoreError(f"Unknown fields for {model.__tablename__}: {sorted(unknown)}", 400)
        return dict(body)

    def get(self, table: str, record_id: str) -> dict:
        model = self._model(table)
        with self.db.get_session() as session:
            row = session.get(model, record_id)
            if row is None:
                raise RecordNotFoundError(f"{table} record {record_id} not found", 404)
            return _row_to_dict(row)

    def list(self, table: str, query: Optional[RecordQuery] = None) -> ListResult:
        model = self._model(table)
        query = query or RecordQuery()

        stmt = select(model)
        for name, value in query.filter.items():
            column = getattr(model, name, None)
            if column is None:
                raise RecordStoreError(f"Unknown filter field for {table}: {name}", 400)
            if value is None:
                stmt = stmt.where(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)

        with self.db.get_session() as session:
            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar() or 0

            if query.sort:
                for key in query.sort.split(","):
                    key = key.strip()
                    descending = key.startswith("-")
                    column = getattr(model, key.lstrip("-+"), None)
                    if column is None:
                        raise RecordStoreError(f"Unknown sort field for {table}: {key}", 400)
                    stmt = stmt.order_by(column.desc() if descending else column.asc())

            stmt = stmt.limit(query.per_page).offset((query.page - 1) * query.per_page)
            rows = session.execute(stmt).scalars().all()
            return ListResult(
                items=[_row_to_dict(row) for row in rows],
                page=query.page,
                per_page=query.per_page,
                total_items=total,
            )

    def create(self, table: str, body: Mapping[str, Any]) -> dict:
        model = self._model(table)
        values = self._columns(model, body)
        try:
            with self.db.get_session() as session:
                row = model(**values)
                session.add(row)
                session.flush()
                session.refresh(row)
                record = _row_to_dict(row)
        except IntegrityError as e:
            raise _integrity_error(table, e)

        self._publish(RealtimeAction.CREATE, table, record)
        return record

    def update(self, table: str, record_id: str, patch: Mapping[str, Any]) -> dict:
        model = self._model(table)
        values = self._columns(model, patch)
        try:
            with self.db.get_session() as session:
                row = session.get(model, record_id)
                if row is None:
                    raise RecordNotFoundError(f"{table} record {record_id} not found", 404)
                for name, value in values.items():
                    setattr(row, name, value)
                row.updated_at = datetime.now(timezone.utc).isoformat()
                session.flush()
                session.refresh(row)
                record = _row_to_dict(row)
        except IntegrityError as e:
            raise _integrity_error(table, e)

        self._publish(RealtimeAction.UPDATE, table, record)
        return record

    def delete(self, table: str, record_id: str) -> None:
        model = self._model(table)
        with self.db.get_session() as session:
            row = session.get(model, record_id)
            if row is None:
                raise RecordNotFoundError(f"{table} record {record_id} not found", 404)
            record = _row_to_dict(row)
            session.delete(row)

        self._publish(RealtimeAction.DELETE, table, record)


def _integrity_error(table: str, error: IntegrityError) -> RecordStoreError:
    detail = str(error.orig)
    logger.debug(f"Integrity error on {table}: {detail}")
    if "UNIQUE" in detail.upper():
        return RecordConflictError(f"unique constraint violated on {table}: {detail}", 409)
    return RecordStoreError(f"{table} write rejected: {detail}", 400)
