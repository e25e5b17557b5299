"""SQLite database operations.

Handles database connection, session management, and the SQL-backed record
store.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Union

from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import StoreUnavailable
from ..records import RecordModel
from .base import RecordKind, RecordStore
from .models import Base, StoredRecord, User


class Database:
    """Database connection and session manager."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:". If None,
                     uses the configured database path.
        """
        if db_path is None:
            from ..config import get_config

            db_path = get_config().db_path

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # so all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

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

    def dispose(self) -> None:
        self.engine.dispose()


class SQLRecordStore(RecordStore):
    """Record store persisting each record as JSON in SQLite."""

    def __init__(self, db: Database):
        """Initialize store.

        Args:
            db: Database instance; tables are created if missing
        """
        self.db = db
        with self._guard("connect"):
            self.db.create_tables()

    @contextmanager
    def _guard(self, operation: str) -> Generator[None, None, None]:
        """Re-raise storage failures as StoreUnavailable."""
        try:
            yield
        except OperationalError as e:
            raise StoreUnavailable(operation, e) from e

    # ========================================================================
    # Users
    # ========================================================================

    def add_user(self, user_id: str) -> None:
        with self._guard("add_user"), self.db.get_session() as session:
            if session.get(User, user_id) is None:
                session.add(User(id=user_id))

    def user_exists(self, user_id: str) -> bool:
        with self._guard("user_exists"), self.db.get_session() as session:
            return session.get(User, user_id) is not None

    # ========================================================================
    # Records
    # ========================================================================

    def _find(self, session: Session, kind: RecordKind, record_id: str) -> Optional[StoredRecord]:
        stmt = select(StoredRecord).where(
            StoredRecord.kind == kind.value,
            StoredRecord.record_id == record_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    def get(self, kind: RecordKind, record_id: str) -> Optional[RecordModel]:
        with self._guard("read"), self.db.get_session() as session:
            row = self._find(session, kind, record_id)
            if row is None:
                return None
            return kind.model.model_validate_json(row.payload)

    def put(self, kind: RecordKind, record: RecordModel, owner_id: Optional[str]) -> None:
        payload = record.model_dump_json()
        with self._guard("write"), self.db.get_session() as session:
            row = self._find(session, kind, record.id)
            if row is None:
                session.add(
                    StoredRecord(
                        kind=kind.value,
                        record_id=record.id,
                        owner_id=owner_id,
                        payload=payload,
                    )
                )
            else:
                row.owner_id = owner_id
                row.payload = payload

            if kind == RecordKind.PROFILE and session.get(User, record.id) is None:
                session.add(User(id=record.id))

    def list_kind(self, kind: RecordKind, owner_id: Optional[str] = None) -> list[RecordModel]:
        stmt = select(StoredRecord).where(StoredRecord.kind == kind.value)
        if owner_id is not None:
            stmt = stmt.where(StoredRecord.owner_id == owner_id)
        stmt = stmt.order_by(StoredRecord.seq)

        with self._guard("read"), self.db.get_session() as session:
            rows = session.execute(stmt).scalars().all()
            return [kind.model.model_validate_json(row.payload) for row in rows]

    def delete(self, kind: RecordKind, record_id: str) -> bool:
        with self._guard("delete"), self.db.get_session() as session:
            row = self._find(session, kind, record_id)
            if row is None:
                return False
            session.delete(row)
            return True


# Global database instance
_db: Optional[Database] = None


def get_db() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.dispose()
    _db = None
