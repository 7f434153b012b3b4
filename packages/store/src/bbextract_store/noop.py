"""NoOpStore: discards all writes.

Used by `bbextract sync --dry-run` so a full extraction can be exercised
against a live server without touching any database.
"""

from __future__ import annotations

from bbextract_store.base import BaseStore, PersistenceError
from bbextract_store.models import TABLES, VersionInfo


class NoOpStore(BaseStore):
    """Counts what would have been written and keeps nothing."""

    def __init__(self):
        self._last = 0
        self._active: int | None = None
        self._pending: int | None = None
        self.saved: dict[str, int] = {}

    def begin(self) -> int:
        if self._pending is not None:
            raise PersistenceError(f"version {self._pending} is still being written")
        self._last += 1
        self._pending = self._last
        return self._pending

    def _save(self, table: str, record) -> None:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table!r}")
        self.saved[table] = self.saved.get(table, 0) + 1

    def commit(self) -> None:
        self._pending = None

    def set_active_version(self, version: int) -> None:
        self._active = version

    def active_version(self) -> int | None:
        return self._active

    def list_versions(self) -> list[VersionInfo]:
        return []

    def list_rows(self, table: str, version: int | None = None) -> list:
        return []
