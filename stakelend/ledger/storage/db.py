# MIT License
# Copyright (c) 2025 Hashborn

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
            # State table: Key-Value store for accounts, treasury and capabilities
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            # Append-only log of committed operations
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS operations (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    op_hash TEXT UNIQUE,
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

    def set_state_batch(self, items: Dict[str, str]):
        """Writes several keys in one sqlite transaction."""
        with self._lock:
            self.cursor.executemany(
                'INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)',
                list(items.items())
            )
            self.conn.commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    # --- Operation log ---
    def append_operation(self, op_hash: str, op_type: str, sender: str, timestamp: int, data: str):
        with self._lock:
            self.cursor.execute(
                'INSERT OR IGNORE INTO operations (op_hash, op_type, sender, timestamp, data) VALUES (?, ?, ?, ?, ?)',
                (op_hash, op_type, sender, timestamp, data)
            )
            self.conn.commit()

    def get_operations(self, sender: Optional[str] = None, limit: int = 100) -> List[Tuple[int, str, str, str, int, str]]:
        """Returns (seq, op_hash, op_type, sender, timestamp, data), newest first."""
        with self._lock:
            if sender:
                self.cursor.execute(
                    'SELECT seq, op_hash, op_type, sender, timestamp, data FROM operations '
                    'WHERE sender = ? ORDER BY seq DESC LIMIT ?', (sender, limit)
                )
            else:
                self.cursor.execute(
                    'SELECT seq, op_hash, op_type, sender, timestamp, data FROM operations '
                    'ORDER BY seq DESC LIMIT ?', (limit,)
                )
            return self.cursor.fetchall()

    def close(self):
        with self._lock:
            self.conn.close()
