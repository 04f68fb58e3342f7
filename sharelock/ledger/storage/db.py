import sqlite3
import threading
from typing import Optional, Dict, List, Tuple

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # State table: Key-Value store for the whole ledger state
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            # Operations journal: every applied operation, in order
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS operations (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    hash TEXT UNIQUE,
                    op_type TEXT,
                    sender TEXT,
                    timestamp INTEGER,
                    data TEXT
                )
            ''')
            self.conn.commit()

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self.conn.commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def replace_state(self, entries: Dict[str, str], operation: Optional[Tuple[str, str, str, int, str]] = None):
        """
        Swaps the whole state table in one transaction.

        If `operation` (hash, op_type, sender, timestamp, data) is given it is
        journaled in the same transaction.
        """
        with self._lock:
            try:
                self.cursor.execute('DELETE FROM state')
                self.cursor.executemany(
                    'INSERT INTO state (key, value) VALUES (?, ?)',
                    sorted(entries.items())
                )
                if operation is not None:
                    self.cursor.execute(
                        'INSERT INTO operations (hash, op_type, sender, timestamp, data) VALUES (?, ?, ?, ?, ?)',
                        operation
                    )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    def write_state(self, changes: Dict[str, Optional[str]], operation: Optional[Tuple[str, str, str, int, str]] = None):
        """
        Upserts (value) or deletes (None) the given keys in one transaction,
        together with the optional journal entry.
        Returns the journal sequence number of the entry, if one was written.
        """
        upserts = [(k, v) for k, v in sorted(changes.items()) if v is not None]
        deletes = [(k,) for k, v in sorted(changes.items()) if v is None]
        with self._lock:
            try:
                self.cursor.executemany('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', upserts)
                self.cursor.executemany('DELETE FROM state WHERE key = ?', deletes)
                if operation is not None:
                    self.cursor.execute(
                        'INSERT INTO operations (hash, op_type, sender, timestamp, data) VALUES (?, ?, ?, ?, ?)',
                        operation
                    )
                self.conn.commit()
                return self.cursor.lastrowid if operation is not None else None
            except sqlite3.Error:
                self.conn.rollback()
                raise

    # --- Journal Methods ---
    def get_operation(self, op_hash: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT data FROM operations WHERE hash = ?', (op_hash,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def get_operations(self, offset: int = 0, limit: int = 100) -> List[Tuple[int, str]]:
        """Returns (seq, data) in application order."""
        with self._lock:
            self.cursor.execute('SELECT seq, data FROM operations ORDER BY seq LIMIT ? OFFSET ?', (limit, offset))
            return self.cursor.fetchall()

    def count_operations(self) -> int:
        with self._lock:
            self.cursor.execute('SELECT COUNT(*) FROM operations')
            return self.cursor.fetchone()[0]

    def close(self):
        with self._lock:
            self.conn.close()
