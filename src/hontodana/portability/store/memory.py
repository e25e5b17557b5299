"""In-memory record store."""

import threading
from typing import Iterable, Optional

from ..errors import StoreUnavailable
from ..records import RecordModel, UserProfileRecord
from .base import RecordKind, RecordStore


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed store, used in tests and for dry runs.

    ``fail_after_writes`` makes the store raise ``StoreUnavailable`` once
    that many writes have succeeded, to simulate an outage mid-import.
    """

    def __init__(
        self,
        users: Iterable[str] = (),
        fail_after_writes: Optional[int] = None,
    ):
        self._records: dict[RecordKind, dict[str, tuple[Optional[str], RecordModel]]] = {
            kind: {} for kind in RecordKind
        }
        self._users = set(users)
        self._lock = threading.Lock()
        self.fail_after_writes = fail_after_writes
        self.writes = 0

    def add_user(self, user_id: str, name: Optional[str] = None) -> None:
        """Register a user, optionally with a profile."""
        with self._lock:
            self._users.add(user_id)
        if name is not None:
            self.save_user_profile(UserProfileRecord(id=user_id, name=name))

    def user_exists(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._users

    def get(self, kind: RecordKind, record_id: str) -> Optional[RecordModel]:
        with self._lock:
            entry = self._records[kind].get(record_id)
        return entry[1].model_copy(deep=True) if entry else None

    def put(self, kind: RecordKind, record: RecordModel, owner_id: Optional[str]) -> None:
        with self._lock:
            self._check_write()
            self._records[kind][record.id] = (owner_id, record.model_copy(deep=True))
            if kind == RecordKind.PROFILE:
                self._users.add(record.id)

    def list_kind(self, kind: RecordKind, owner_id: Optional[str] = None) -> list[RecordModel]:
        with self._lock:
            entries = list(self._records[kind].values())
        return [
            record.model_copy(deep=True)
            for owner, record in entries
            if owner_id is None or owner == owner_id
        ]

    def delete(self, kind: RecordKind, record_id: str) -> bool:
        with self._lock:
            self._check_write()
            return self._records[kind].pop(record_id, None) is not None

    def _check_write(self) -> None:
        if self.fail_after_writes is not None and self.writes >= self.fail_after_writes:
            raise StoreUnavailable("write")
        self.writes += 1

    def count(self, kind: RecordKind) -> int:
        with self._lock:
            return len(self._records[kind])
