"""
Local key-value store backing the offline replica.

All local state is kept as JSON strings under a handful of fixed keys. The
production store is a single-table SQLite database in the application data
directory; an in-memory store with the same interface is used in tests.
"""

import enum
import logging
import pathlib
import sqlite3
import time
from typing import Dict, Optional

from ..status import status


class StorageKey(enum.StrEnum):
    """Fixed keys of the persisted local state."""
    Expenses = 'expenses'
    PendingSync = 'pendingSync'
    LastSync = 'lastSync'
    OfflineMode = 'offlineMode'


class KeyValueStore:
    """Interface of a durable string-keyed store.

    Each call is a complete unit: a value is read or written whole, never partially.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Volatile store, used for tests and as a throwaway replica."""

    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class SqliteStore(KeyValueStore):
    """SQLite-backed key-value store. Handles schema creation, recovery and access."""

    table: str = 'kvstore'

    def __init__(self, db_path: pathlib.Path) -> None:
        self.db_path = pathlib.Path(db_path)
        self._initialize_schema_if_needed()

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the store database.

        Returns:
            sqlite3.Connection: Database connection object.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=2.0)
        conn.set_progress_handler(lambda: logging.debug('Waiting on DB lock…'), 1000)
        return conn

    def _initialize_schema_if_needed(self) -> None:
        """
        Ensures the database file and the key-value table exist.
        A database that cannot be opened is deleted and recreated.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f'CREATE TABLE IF NOT EXISTS {self.table} '
                '("key" TEXT PRIMARY KEY, "value" TEXT NOT NULL)'
            )
            conn.commit()
            logging.debug(f'Local store ready at {self.db_path}.')
        except sqlite3.Error as e:
            logging.error(f'SQLite error during schema initialization: {e}. Attempting recovery.', exc_info=True)
            if conn:
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
                conn = None

            try:
                self.delete()
                conn = self.connection()
                conn.execute(
                    f'CREATE TABLE {self.table} ("key" TEXT PRIMARY KEY, "value" TEXT NOT NULL)'
                )
                conn.commit()
                logging.info('Local store recreated after an error.')
            except Exception as final_e:
                logging.critical(f'Failed to recover the local store: {final_e}', exc_info=True)
                raise status.CacheInvalidException(f'Unrecoverable local store error: {final_e}') from final_e
        finally:
            if conn:
                conn.close()

    def get(self, key: str) -> Optional[str]:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            row = conn.execute(f'SELECT "value" FROM {self.table} WHERE "key" = ?', (key,)).fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            raise status.CacheInvalidException(f'Failed to read "{key}": {e}') from e
        finally:
            if conn:
                conn.close()

    def set(self, key: str, value: str) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f'INSERT INTO {self.table} ("key", "value") VALUES (?, ?) '
                'ON CONFLICT("key") DO UPDATE SET "value" = excluded."value"',
                (key, value)
            )
            conn.commit()
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise status.CacheInvalidException(f'Failed to write "{key}": {e}') from e
        finally:
            if conn:
                conn.close()

    def remove(self, key: str) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(f'DELETE FROM {self.table} WHERE "key" = ?', (key,))
            conn.commit()
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise status.CacheInvalidException(f'Failed to remove "{key}": {e}') from e
        finally:
            if conn:
                conn.close()

    def clear(self) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(f'DELETE FROM {self.table}')
            conn.commit()
            logging.info('Local store cleared.')
        finally:
            if conn:
                conn.close()

    def delete(self) -> None:
        """Delete the database file, retrying on failure.

        Raises:
            status.CacheInvalidException: If unable to remove the database file after retries.
        """
        if not self.db_path.exists():
            logging.debug('No local store database found to delete.')
            return

        max_attempts = 5
        attempt = 0
        wait_seconds = 1.0

        while attempt < max_attempts:
            attempt += 1
            try:
                self.db_path.unlink()
                logging.info(f'Local store database removed: {self.db_path}')
                return
            except OSError as ex:
                logging.error(f'Error removing local store (attempt {attempt}/{max_attempts}): {ex}')
                if attempt < max_attempts:
                    time.sleep(wait_seconds)
                    wait_seconds *= 1.5
                else:
                    raise status.CacheInvalidException(
                        f'Failed to remove {self.db_path} after {max_attempts} attempts: {ex}'
                    ) from ex
