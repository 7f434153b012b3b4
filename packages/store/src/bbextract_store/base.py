"""Abstract snapshot store interface.

Every row written during one extraction run is tagged with that run's
version number. Readers only ever look at the version named by the
`active_version` marker, which moves in a single step after the whole run has
been committed:

    v = store.begin()          # allocate v > every known version
    store.save_*(record) ...   # staged, tagged v
    store.commit()             # flush, mark v loaded
    store.set_active_version(v)

A run that fails before set_active_version() leaves v orphaned and the
previous version served. Orphaned versions are not reclaimed here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bbextract_store.models import (
        CommentRecord,
        DiffCommentRecord,
        DiffStatRecord,
        ProjectRecord,
        PullRequestRecord,
        RepositoryRecord,
        ReviewRecord,
        UserRecord,
        VersionInfo,
    )


class PersistenceError(Exception):
    """A store operation failed; the run must abort."""


class BaseStore(ABC):
    """Pluggable versioned persistence for extracted entities.

    Single writer: begin(), commit() and set_active_version() are never
    called concurrently.
    """

    @abstractmethod
    def begin(self) -> int:
        """Allocate a new version strictly greater than every known one and open a write scope."""

    @abstractmethod
    def _save(self, table: str, record) -> None:
        """Stage one row in `table`, tagged with the pending version."""

    @abstractmethod
    def commit(self) -> None:
        """Flush every staged row and mark the pending version as loaded."""

    @abstractmethod
    def set_active_version(self, version: int) -> None:
        """Atomically point readers at `version`. Only loaded versions may be activated."""

    @abstractmethod
    def active_version(self) -> int | None:
        """Return the active version, or None before the first successful run."""

    @abstractmethod
    def list_versions(self) -> list[VersionInfo]:
        """Return every allocated version, newest first."""

    @abstractmethod
    def list_rows(self, table: str, version: int | None = None) -> list:
        """Return the records of `table` for `version` (default: the active version).

        Returns an empty list when no version is active, never raises for that.
        """

    def save_project(self, record: ProjectRecord) -> None:
        self._save("projects", record)

    def save_repository(self, record: RepositoryRecord) -> None:
        self._save("repositories", record)

    def save_pull_request(self, record: PullRequestRecord) -> None:
        self._save("pull_requests", record)

    def save_comment(self, record: CommentRecord) -> None:
        self._save("pull_request_comments", record)

    def save_diff_comment(self, record: DiffCommentRecord) -> None:
        self._save("pull_request_review_comments", record)

    def save_review(self, record: ReviewRecord) -> None:
        self._save("pull_request_reviews", record)

    def save_diff_stat(self, record: DiffStatRecord) -> None:
        self._save("diff_stats", record)

    def save_user(self, record: UserRecord) -> None:
        self._save("users", record)

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional: subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
