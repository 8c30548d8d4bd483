"""
Base Repository - shared SQLite access for the record repositories

Repositories never commit. Every write runs inside the caller's
`with transaction(conn):` block, so one stage's writes land together.
"""

import sqlite3
from typing import Optional

from exceptions import DatabaseConnectionError, DatabaseError, DataIntegrityError


class BaseRepository:
    """Holds the connection shared by all repositories of one UnifiedDatabase"""

    def __init__(self, conn: Optional[sqlite3.Connection] = None):
        self.conn = conn

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """
        Run one statement and hand back its cursor

        Raises:
            DatabaseConnectionError: No connection attached
            DataIntegrityError: A UNIQUE/FK/CHECK constraint rejected the write
            DatabaseError: Any other sqlite failure
        """
        if self.conn is None:
            raise DatabaseConnectionError("Database connection not established")

        try:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            return cursor
        except sqlite3.IntegrityError as e:
            raise DataIntegrityError(f"Constraint violation: {e}", constraint=str(e))
        except sqlite3.Error as e:
            raise DatabaseError(f"Query execution failed: {e}", context={'query': query[:100]})

    def _fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self._execute(query, params).fetchone()

    def _fetch_all(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self._execute(query, params).fetchall()

    def _update(self, query: str, params: tuple = ()) -> int:
        """
        Run a write and return the number of rows it touched

        Guarded writes (WHERE status = 'proposed', WHERE outcome_verified = 0)
        read 0 as "the guard said no". Keep these statements plain UPDATEs:
        a CTE-led UPDATE reports -1 here.
        """
        return self._execute(query, params).rowcount
