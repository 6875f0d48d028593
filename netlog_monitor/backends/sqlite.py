# backends/sqlite.py
import logging
import re
import sqlite3
import threading
from typing import List, Tuple

from .base import BaseBucketStore, BucketStoreError

logger = logging.getLogger(__name__)

BUCKET_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")


class SqliteBucketStore(BaseBucketStore):
    """Implementation of BaseBucketStore on a single SQLite file, one table per bucket."""

    def __init__(self, path: str):
        self.path = path
        self.lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            self.conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as e:
            raise BucketStoreError(f"Unable to open store at {path}: {e}") from e
        logger.info(f"Opened store {path}")

    def _table(self, bucket: str) -> str:
        if not BUCKET_NAME.match(bucket):
            raise BucketStoreError(f"Invalid bucket name: {bucket!r}")
        return f"bucket_{bucket}"

    def _write(self, sql: str, params: tuple = ()) -> None:
        with self.lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
                try:
                    self.conn.execute(sql, params)
                except sqlite3.Error:
                    self.conn.execute("ROLLBACK")
                    raise
                self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                raise BucketStoreError(str(e)) from e

    def create_bucket(self, name: str) -> None:
        table = self._table(name)
        self._write(f"CREATE TABLE IF NOT EXISTS {table} (key TEXT PRIMARY KEY, value BLOB NOT NULL)")

    def put(self, bucket: str, key: str, value: bytes) -> None:
        table = self._table(bucket)
        self._write(f"INSERT OR REPLACE INTO {table} (key, value) VALUES (?, ?)", (key, value))

    def delete(self, bucket: str, key: str) -> None:
        table = self._table(bucket)
        self._write(f"DELETE FROM {table} WHERE key = ?", (key,))

    def items(self, bucket: str) -> List[Tuple[str, bytes]]:
        table = self._table(bucket)
        with self.lock:
            try:
                rows = self.conn.execute(f"SELECT key, value FROM {table}").fetchall()
            except sqlite3.Error as e:
                raise BucketStoreError(str(e)) from e
        return [(key, bytes(value)) for key, value in rows]

    def close(self) -> None:
        with self.lock:
            try:
                self.conn.close()
            except sqlite3.Error as e:
                logger.error(f"Error closing store {self.path}: {e}")
