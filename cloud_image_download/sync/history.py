"""
Download history for cid.

A SQLite database recording every image that was downloaded (or checked in
place) and whose checksum matched. A (name, checksum) pair present in the
history is "owned" and is never downloaded again.

Records are only ever added: a new checksum for an existing name is a new
record, older ones stay for auditing.
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional, Union

from ..core.checksums import Algorithm, Checksum
from ..core.files import expand_path
from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS cid_history (
    name TEXT NOT NULL,
    checksum_algorithm TEXT NOT NULL,
    checksum_digest TEXT NOT NULL,
    committed_date TEXT NOT NULL,
    PRIMARY KEY (name, checksum_algorithm, checksum_digest)
)
"""


@dataclass(frozen=True)
class HistoryRecord:
    """One verified download."""
    name: str
    checksum: Checksum
    committed_date: date


class HistoryStore:
    """
    Thread-safe SQLite history of verified downloads.

    Usage:
        with HistoryStore.open("~/.cache/cid.sqlite") as store:
            if not store.exists(name, checksum):
                ...
                store.commit(name, checksum)
    """

    def __init__(self, conn: sqlite3.Connection, path: Union[str, Path]):
        self.conn = conn
        self.path = path
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: Union[str, Path]) -> "HistoryStore":
        """
        Open (creating it if needed) the history database at path.

        Raises:
            StoreUnavailable: If the database cannot be created or opened
        """
        in_memory = str(path) == MEMORY
        if not in_memory:
            path = expand_path(path)
        try:
            if not in_memory:
                path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), check_same_thread=False, timeout=30.0)
            conn.execute(SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"cannot open history database {path}: {e}") from e

        logger.debug("Opened history database %s", path)
        return cls(conn, path)

    def exists(self, name: str, checksum: Checksum) -> bool:
        """Tell whether name with this exact checksum was already verified."""
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT 1 FROM cid_history WHERE name = ? AND checksum_algorithm = ? AND checksum_digest = ?",
                    (name, checksum.algorithm.value, checksum.digest),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreUnavailable(f"cannot read history database {self.path}: {e}") from e
        return row is not None

    def commit(self, name: str, checksum: Checksum, committed: Optional[date] = None) -> bool:
        """
        Record a verified download. Committing the same pair again is a no-op.

        Returns:
            True if a new record was written

        Raises:
            StoreUnavailable: If the database cannot be written
        """
        committed = committed or date.today()
        with self._lock:
            try:
                cursor = self.conn.execute(
                    "INSERT OR IGNORE INTO cid_history "
                    "(name, checksum_algorithm, checksum_digest, committed_date) VALUES (?, ?, ?, ?)",
                    (name, checksum.algorithm.value, checksum.digest, committed.isoformat()),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                raise StoreUnavailable(f"cannot write history database {self.path}: {e}") from e

        added = cursor.rowcount == 1
        if added:
            logger.debug("Committed %s %s", name, checksum)
        return added

    def records(self, name: Optional[str] = None) -> List[HistoryRecord]:
        """All records, or those for one image name, oldest first."""
        query = "SELECT name, checksum_algorithm, checksum_digest, committed_date FROM cid_history"
        params = ()
        if name is not None:
            query += " WHERE name = ?"
            params = (name,)
        query += " ORDER BY committed_date, name, rowid"

        with self._lock:
            try:
                rows = self.conn.execute(query, params).fetchall()
            except sqlite3.Error as e:
                raise StoreUnavailable(f"cannot read history database {self.path}: {e}") from e

        return [
            HistoryRecord(
                name=row[0],
                checksum=Checksum(Algorithm(row[1]), row[2]),
                committed_date=date.fromisoformat(row[3]),
            )
            for row in rows
        ]

    def close(self):
        with self._lock:
            self.conn.close()

    def __enter__(self) -> "HistoryStore":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
