"""SQLiteStore: local file-based snapshot store.

Ships with Python, so a fresh checkout can extract without provisioning a
database. One file holds every version; old versions stay queryable with
`bbextract stats --version N`.
"""

from __future__ import annotations

import logging
import sqlite3

from bbextract_store.sql import SCHEMA, SQLStore

logger = logging.getLogger(__name__)


class SQLiteStore(SQLStore):
    """Stores snapshots in a local SQLite database file.

    The database file path defaults to `.bbextract.db` in the current working
    directory. Configure via .bbextract.yml: `store_path: /path/to/bbextract.db`.
    """

    PLACEHOLDER = "?"
    DB_ERRORS = (sqlite3.Error,)

    def __init__(self, db_path: str = ".bbextract.db"):
        super().__init__()
        self._conn = sqlite3.connect(db_path)
        self._create_schema()

    def _create_schema(self) -> None:
        self._conn.executescript(SCHEMA)
        self._conn.commit()
