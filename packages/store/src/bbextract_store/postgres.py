"""PostgresStore: shared snapshot store for teams and scheduled runs.

Readers (dashboards, ad-hoc SQL) connect to the same database and select
rows `WHERE version = (SELECT version FROM active_version)`; they never see
a half-written run.
"""

from __future__ import annotations

import logging

from bbextract_store.base import PersistenceError
from bbextract_store.sql import SCHEMA, SQLStore

logger = logging.getLogger(__name__)


class PostgresStore(SQLStore):
    """Stores snapshots in PostgreSQL via psycopg 3.

    The DSN comes from `database_url` in .bbextract.yml or the DATABASE_URL
    environment variable.
    """

    PLACEHOLDER = "%s"

    def __init__(self, dsn: str):
        try:
            import psycopg
        except ImportError:
            raise ImportError("psycopg is required for PostgresStore. Install bbextract[postgres].")
        super().__init__()
        self.DB_ERRORS = (psycopg.Error,)
        try:
            self._conn = psycopg.connect(dsn)
        except psycopg.Error as e:
            raise PersistenceError(f"could not connect to PostgreSQL: {e}") from e
        self._create_schema()

    def _create_schema(self) -> None:
        with self._db("schema creation"):
            with self._conn.cursor() as cur:
                for statement in SCHEMA.split(";"):
                    if statement.strip():
                        cur.execute(statement)
            self._conn.commit()
