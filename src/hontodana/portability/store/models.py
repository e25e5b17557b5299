"""SQLAlchemy ORM models for the SQLite-backed stores.

Tables:
- users: Known user identities
- records: Every canonical record, as a JSON payload with key columns
- import_jobs: Import job snapshots
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class User(Base):
    """A user known to the store."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)


class StoredRecord(Base):
    """One canonical record of any kind."""

    __tablename__ = "records"
    __table_args__ = (UniqueConstraint("kind", "record_id", name="uq_records_kind_id"),)

    # Surrogate key keeps insertion order
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)

    # Record serialized with model_dump_json()
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        return f"<StoredRecord(kind={self.kind!r}, id={self.record_id!r})>"


class ImportJobRow(Base):
    """Persisted import job."""

    __tablename__ = "import_jobs"

    job_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        return f"<ImportJobRow(id={self.job_id!r}, status={self.status!r})>"
