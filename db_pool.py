"""SQLite connection pool shared by the record repositories.

Report fan-out reads run in worker threads, so every connection is opened
with ``check_same_thread=False`` and handed to one thread at a time.
"""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator, List

logger = logging.getLogger(__name__)


class SQLiteConnectionPool:
    """Thread-safe pool of read-mostly SQLite connections."""

    def __init__(self, database: str, max_connections: int = 10, timeout: float = 30.0):
        self.database = database
        self.max_connections = max(1, int(max_connections))
        self.timeout = timeout
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=self.max_connections)
        self._lock = threading.Lock()
        self._opened: List[sqlite3.Connection] = []

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database, timeout=self.timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self._pool.get(block=False)
        except Empty:
            pass
        with self._lock:
            if len(self._opened) < self.max_connections:
                connection = self._create_connection()
                self._opened.append(connection)
                logger.debug("Opened SQLite connection %d/%d for %s",
                             len(self._opened), self.max_connections, self.database)
                return connection
        return self._pool.get(block=True, timeout=self.timeout)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection; it is rolled back and returned to the pool afterwards."""
        connection = self._acquire()
        try:
            yield connection
        finally:
            try:
                connection.rollback()
                self._pool.put(connection)
            except sqlite3.Error as exc:
                logger.error("Discarding broken SQLite connection: %s", exc)
                self._discard(connection)

    def _discard(self, connection: sqlite3.Connection) -> None:
        with self._lock:
            if connection in self._opened:
                self._opened.remove(connection)
        try:
            connection.close()
        except sqlite3.Error:
            logger.debug("Close failed for discarded connection", exc_info=True)

    def close_all(self) -> None:
        """Close every pooled connection; the pool can be reused afterwards."""
        with self._lock:
            opened, self._opened = self._opened, []
        while True:
            try:
                self._pool.get(block=False)
            except Empty:
                break
        for connection in opened:
            try:
                connection.close()
            except sqlite3.Error:
                logger.debug("Close failed during pool shutdown", exc_info=True)
