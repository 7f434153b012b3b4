"""SQLStore: DB-API implementation shared by the SQLite and PostgreSQL backends.

Backends differ only in how they connect, which parameter placeholder their
driver uses, which exception class their driver raises, and how a
multi-statement schema script is executed.

Schema:
  <entity tables>    one row per extracted entity, every row tagged `version`
  snapshot_versions  one row per allocated version, "loading" until committed, then "loaded"
  active_version     singleton row (id = 1) naming the version readers see
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime, timezone

from bbextract_store.base import BaseStore, PersistenceError
from bbextract_store.models import TABLES, VersionInfo

logger = logging.getLogger(__name__)

LOADING = "loading"
LOADED = "loaded"

SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshot_versions (
    version      BIGINT PRIMARY KEY,
    state        TEXT NOT NULL,
    started_at   TEXT NOT NULL,
    finished_at  TEXT
);
CREATE TABLE IF NOT EXISTS active_version (
    id       INTEGER PRIMARY KEY CHECK (id = 1),
    version  BIGINT NOT NULL
);
CREATE TABLE IF NOT EXISTS projects (
    version      BIGINT NOT NULL,
    key          TEXT NOT NULL,
    name         TEXT,
    description  TEXT,
    PRIMARY KEY (version, key)
);
CREATE TABLE IF NOT EXISTS repositories (
    version      BIGINT NOT NULL,
    project_key  TEXT NOT NULL,
    slug         TEXT NOT NULL,
    name         TEXT,
    description  TEXT,
    is_public    BOOLEAN,
    has_issues   BOOLEAN,
    scm          TEXT,
    PRIMARY KEY (version, project_key, slug)
);
CREATE TABLE IF NOT EXISTS pull_requests (
    version             BIGINT NOT NULL,
    project_key         TEXT NOT NULL,
    repo_slug           TEXT NOT NULL,
    id                  BIGINT NOT NULL,
    title               TEXT,
    state               TEXT NOT NULL,
    description         TEXT,
    author              TEXT,
    source_branch       TEXT,
    source_commit       TEXT,
    destination_branch  TEXT,
    destination_commit  TEXT,
    created_at          TEXT,
    updated_at          TEXT,
    commits             INTEGER DEFAULT 0,
    changed_files       INTEGER DEFAULT 0,
    additions           INTEGER DEFAULT 0,
    deletions           INTEGER DEFAULT 0,
    comments            INTEGER DEFAULT 0,
    review_comments     INTEGER DEFAULT 0,
    reviews             INTEGER DEFAULT 0,
    merged_at           TEXT,
    merged_by           TEXT,
    closed_at           TEXT,
    closed_by           TEXT,
    PRIMARY KEY (version, project_key, repo_slug, id)
);
CREATE TABLE IF NOT EXISTS pull_request_comments (
    version          BIGINT NOT NULL,
    project_key      TEXT NOT NULL,
    repo_slug        TEXT NOT NULL,
    pull_request_id  BIGINT NOT NULL,
    id               BIGINT NOT NULL,
    text             TEXT,
    author           TEXT,
    parent_id        BIGINT,
    created_at       TEXT,
    updated_at       TEXT,
    PRIMARY KEY (version, project_key, repo_slug, pull_request_id, id)
);
CREATE TABLE IF NOT EXISTS pull_request_review_comments (
    version          BIGINT NOT NULL,
    project_key      TEXT NOT NULL,
    repo_slug        TEXT NOT NULL,
    pull_request_id  BIGINT NOT NULL,
    id               BIGINT NOT NULL,
    text             TEXT,
    path             TEXT,
    author           TEXT,
    parent_id        BIGINT,
    created_at       TEXT,
    updated_at       TEXT,
    src_path         TEXT,
    src_line         INTEGER,
    dst_line         INTEGER,
    line_type        TEXT,
    file_type        TEXT,
    from_hash        TEXT,
    to_hash          TEXT,
    PRIMARY KEY (version, project_key, repo_slug, pull_request_id, id)
);
CREATE TABLE IF NOT EXISTS pull_request_reviews (
    version          BIGINT NOT NULL,
    project_key      TEXT NOT NULL,
    repo_slug        TEXT NOT NULL,
    pull_request_id  BIGINT NOT NULL,
    id               BIGINT NOT NULL,
    state            TEXT NOT NULL,
    author           TEXT,
    created_at       TEXT,
    PRIMARY KEY (version, project_key, repo_slug, pull_request_id, id)
);
CREATE TABLE IF NOT EXISTS diff_stats (
    version          BIGINT NOT NULL,
    project_key      TEXT NOT NULL,
    repo_slug        TEXT NOT NULL,
    pull_request_id  BIGINT NOT NULL,
    added            INTEGER DEFAULT 0,
    removed          INTEGER DEFAULT 0,
    PRIMARY KEY (version, project_key, repo_slug, pull_request_id)
);
CREATE TABLE IF NOT EXISTS users (
    version       BIGINT NOT NULL,
    username      TEXT NOT NULL,
    display_name  TEXT,
    user_id       TEXT NOT NULL,
    email         TEXT,
    PRIMARY KEY (version, user_id)
);
"""

# Deterministic read order per table (the natural key minus `version`).
_ORDER_BY = {
    "projects": "key",
    "repositories": "project_key, slug",
    "pull_requests": "project_key, repo_slug, id",
    "pull_request_comments": "project_key, repo_slug, pull_request_id, id",
    "pull_request_review_comments": "project_key, repo_slug, pull_request_id, id",
    "pull_request_reviews": "project_key, repo_slug, pull_request_id, id",
    "diff_stats": "project_key, repo_slug, pull_request_id",
    "users": "username, user_id",
}

_BOOL_COLUMNS = {"is_public", "has_issues"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLStore(BaseStore):
    """Versioned store over a single DB-API connection.

    Subclasses set `_conn`, `PLACEHOLDER` and `DB_ERRORS`, and implement
    `_create_schema()`.
    """

    PLACEHOLDER = "?"
    DB_ERRORS: tuple[type[BaseException], ...] = ()

    def __init__(self):
        self._pending: int | None = None

    @abstractmethod
    def _create_schema(self) -> None:
        """Create every table of SCHEMA that does not exist yet."""

    @contextmanager
    def _db(self, what: str):
        try:
            yield
        except self.DB_ERRORS as e:
            self._rollback()
            raise PersistenceError(f"{what} failed: {e}") from e

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except self.DB_ERRORS as e:
            logger.warning("Rollback failed: %s", e)

    def _sql(self, statement: str) -> str:
        return statement.replace("?", self.PLACEHOLDER)

    def _execute(self, statement: str, params: tuple = ()):
        cur = self._conn.cursor()
        cur.execute(self._sql(statement), params)
        return cur

    # ------------------------------------------------------------------ #
    # Write path                                                           #
    # ------------------------------------------------------------------ #

    def begin(self) -> int:
        if self._pending is not None:
            raise PersistenceError(f"version {self._pending} is still being written")
        with self._db("begin"):
            highest = self._execute("SELECT MAX(version) FROM snapshot_versions").fetchone()[0] or 0
            version = max(highest, self.active_version() or 0) + 1
            self._execute(
                "INSERT INTO snapshot_versions (version, state, started_at) VALUES (?, ?, ?)",
                (version, LOADING, _now()),
            )
            # The allocation is durable even if the run never commits.
            self._conn.commit()
        self._pending = version
        logger.info("Began snapshot version %d", version)
        return version

    def _save(self, table: str, record) -> None:
        if self._pending is None:
            raise PersistenceError(f"cannot save to {table}: no version is being written (call begin() first)")
        names = [f.name for f in fields(record)]
        columns = ", ".join(["version", *names])
        marks = ", ".join("?" * (len(names) + 1))
        values = (self._pending, *(getattr(record, n) for n in names))
        with self._db(f"insert into {table}"):
            self._execute(f"INSERT INTO {table} ({columns}) VALUES ({marks})", values)

    def commit(self) -> None:
        if self._pending is None:
            raise PersistenceError("commit() called without begin()")
        version, self._pending = self._pending, None
        with self._db(f"commit of version {version}"):
            self._execute(
                "UPDATE snapshot_versions SET state = ?, finished_at = ? WHERE version = ?",
                (LOADED, _now(), version),
            )
            self._conn.commit()
        logger.info("Committed snapshot version %d", version)

    def set_active_version(self, version: int) -> None:
        if self._pending is not None:
            raise PersistenceError(f"version {self._pending} is still being written; commit it first")
        with self._db(f"activation of version {version}"):
            row = self._execute("SELECT state FROM snapshot_versions WHERE version = ?", (version,)).fetchone()
            if row is None or row[0] != LOADED:
                state = "unknown" if row is None else row[0]
                raise PersistenceError(f"version {version} cannot be activated (state: {state})")
            self._execute(
                "INSERT INTO active_version (id, version) VALUES (1, ?) "
                "ON CONFLICT (id) DO UPDATE SET version = excluded.version",
                (version,),
            )
            self._conn.commit()
        logger.info("Active snapshot version is now %d", version)

    # ------------------------------------------------------------------ #
    # Read path                                                            #
    # ------------------------------------------------------------------ #

    def active_version(self) -> int | None:
        row = self._execute("SELECT version FROM active_version WHERE id = 1").fetchone()
        return None if row is None else int(row[0])

    def list_versions(self) -> list[VersionInfo]:
        with self._db("listing versions"):
            active = self.active_version()
            counts: dict[int, int] = {}
            for table in TABLES:
                for version, n in self._execute(f"SELECT version, COUNT(*) FROM {table} GROUP BY version"):
                    counts[version] = counts.get(version, 0) + n
            rows = self._execute(
                "SELECT version, state, started_at, finished_at FROM snapshot_versions ORDER BY version DESC"
            ).fetchall()
        return [
            VersionInfo(
                version=v,
                state=state,
                started_at=started_at,
                finished_at=finished_at,
                rows=counts.get(v, 0),
                active=v == active,
            )
            for v, state, started_at, finished_at in rows
        ]

    def list_rows(self, table: str, version: int | None = None) -> list:
        record_cls = TABLES.get(table)
        if record_cls is None:
            raise ValueError(f"Unknown table: {table!r}")
        with self._db(f"reading {table}"):
            if version is None:
                version = self.active_version()
                if version is None:
                    return []
            names = [f.name for f in fields(record_cls)]
            rows = self._execute(
                f"SELECT {', '.join(names)} FROM {table} WHERE version = ? ORDER BY {_ORDER_BY[table]}",
                (version,),
            ).fetchall()
        return [self._row_to_record(record_cls, names, row) for row in rows]

    @staticmethod
    def _row_to_record(record_cls: type, names: list[str], row) -> object:
        values = {n: (bool(v) if n in _BOOL_COLUMNS and v is not None else v) for n, v in zip(names, row)}
        return record_cls(**values)

    def close(self) -> None:
        self._conn.close()
