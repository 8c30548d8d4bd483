"""
Database transaction management

Context managers for explicit, short transaction boundaries. Reconciliation
stages open one transaction per write batch and commit it before the next
external call; no transaction is held across a fetch.
"""

import itertools
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from config import get_logger

logger = get_logger(__name__).bind(component="transaction")

_savepoint_counter = itertools.count(1)


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Commit on clean exit, roll back and re-raise otherwise

    Example:
        with transaction(db.conn):
            db.resolutions.apply_vote_outcome(resolution.id, "adopted", meeting.date)
            db.ordinances.set_link_action(ordinance.id, meeting.id, "adopted")
    """
    try:
        yield conn
    except Exception as e:
        conn.rollback()
        logger.warning("transaction rolled back", error=str(e), error_type=type(e).__name__)
        raise
    conn.commit()


@contextmanager
def savepoint(conn: sqlite3.Connection, name: Optional[str] = None) -> Iterator[str]:
    """Nested rollback scope inside a larger transaction

    Lets one step of a batch fail without discarding the rest, e.g. a
    single ordinance auto-create during meeting ingestion. The failure
    still propagates; the caller decides whether to swallow it.
    """
    savepoint_name = name or f"sp_{next(_savepoint_counter)}"

    conn.execute(f"SAVEPOINT {savepoint_name}")
    try:
        yield savepoint_name
    except Exception as e:
        conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint_name}")
        conn.execute(f"RELEASE SAVEPOINT {savepoint_name}")
        logger.warning("savepoint rolled back", name=savepoint_name, error=str(e))
        raise
    conn.execute(f"RELEASE SAVEPOINT {savepoint_name}")
