"""
Unified Database for civicledger - Repository Pattern

One SQLite file holds a municipality's meetings, agenda items, ordinances,
ordinance-meeting links and resolutions. The facade owns the connection and
exposes focused repositories:
- MeetingRepository: Meeting storage, status refresh, vote backlog
- ItemRepository: Agenda item storage and candidate selection
- OrdinanceRepository: Ordinance merge upserts and links
- ResolutionRepository: Resolution merge upserts, vote outcomes, corrections

Every reconciliation component receives this object explicitly.
"""

import sqlite3
from typing import Any, Dict, List, Optional, Tuple
from datetime import date
from pathlib import Path
from importlib.resources import files

from config import get_logger
from database.models import Meeting, AgendaItem, Ordinance, Resolution
from exceptions import DatabaseConnectionError
from database.repositories.meetings import MeetingRepository
from database.repositories.items import ItemRepository
from database.repositories.ordinances import OrdinanceRepository
from database.repositories.resolutions import ResolutionRepository
from database.services.meeting_ingestion import MeetingIngestionService

logger = get_logger(__name__).bind(component="database")


class UnifiedDatabase:
    """
    Single database interface for all civicledger data.
    Delegates to focused repositories for cleaner separation of concerns.

    Threading Model:
    - Each instance creates its own SQLite connection
    - Reconciliation runs are single-threaded cooperative (asyncio);
      one instance per run is enough
    """

    conn: sqlite3.Connection

    def __init__(self, db_path: str):
        """Open the database and initialize schema and repositories

        Raises:
            DatabaseConnectionError: If the file cannot be opened or initialized
        """
        self.db_path = db_path
        self._connect()
        self._init_schema()

        # Initialize repositories with shared connection
        self.meetings = MeetingRepository(self.conn)
        self.items = ItemRepository(self.conn)
        self.ordinances = OrdinanceRepository(self.conn)
        self.resolutions = ResolutionRepository(self.conn)

        # Initialize services
        self.ingestion = MeetingIngestionService(self)

        logger.info("initialized unified database", db_path=db_path)

    def _connect(self):
        """Create database connection with optimizations"""
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row

            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA synchronous=NORMAL")
            self.conn.execute("PRAGMA foreign_keys=ON")
        except (sqlite3.Error, OSError) as e:
            raise DatabaseConnectionError(
                f"Failed to open database: {e}", context={"db_path": self.db_path}
            ) from e

    def _init_schema(self):
        """Initialize schema from the packaged schema.sql

        Uses importlib.resources so it works from the source tree and from
        an installed package.
        """
        schema = files("database").joinpath("schema.sql").read_text()

        try:
            self.conn.executescript(schema)
            self._add_missing_columns()
            self.conn.commit()
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to initialize schema: {e}", context={"db_path": self.db_path}
            ) from e

    # Columns added after the first release; CREATE TABLE IF NOT EXISTS skips existing files
    _ADDED_COLUMNS = [
        ("resolutions", "status_date", "TEXT"),
    ]

    def _column_exists(self, table: str, column: str) -> bool:
        rows = self.conn.execute(f"PRAGMA table_info({table})").fetchall()
        return any(row["name"] == column for row in rows)

    def _add_missing_columns(self):
        for table, column, column_type in self._ADDED_COLUMNS:
            if not self._column_exists(table, column):
                self.conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
                logger.info("added column", table=table, column=column)

    # ========== Meeting Operations ==========

    def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        """Get a single meeting by ID - delegates to MeetingRepository"""
        return self.meetings.get_meeting(meeting_id)

    def get_agenda_items(self, meeting_id: str) -> List[AgendaItem]:
        """Get agenda items for a meeting - delegates to ItemRepository"""
        return self.items.get_agenda_items(meeting_id)

    def ingest_meeting(
        self,
        meeting_data: Dict[str, Any],
        items_data: Optional[List[Dict[str, Any]]] = None,
        today: Optional[date] = None,
    ) -> Tuple[Optional[Meeting], Dict[str, Any]]:
        """Validate and store a meeting with its agenda items

        Delegates to MeetingIngestionService.
        """
        return self.ingestion.ingest_meeting(meeting_data, items_data, today=today)

    # ========== Ordinance / Resolution lookups ==========

    def get_ordinance_by_number(self, number: str) -> Optional[Ordinance]:
        """Exact ordinance lookup - delegates to OrdinanceRepository"""
        return self.ordinances.get_by_number(number)

    def get_resolution_by_number(self, number: str) -> Optional[Resolution]:
        """Exact resolution lookup - delegates to ResolutionRepository"""
        return self.resolutions.get_by_number(number)

    def get_stats(self) -> Dict[str, Any]:
        """Row counts and reconciliation backlog"""
        counts = {}
        for table in ("meetings", "agenda_items", "ordinances", "ordinance_meetings", "resolutions"):
            row = self.conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()
            counts[table] = row["n"]

        unverified = self.conn.execute(
            "SELECT COUNT(*) AS n FROM resolutions WHERE outcome_verified = 0"
        ).fetchone()["n"]
        proposed = self.conn.execute(
            "SELECT COUNT(*) AS n FROM ordinances WHERE status = 'proposed'"
        ).fetchone()["n"]

        counts["unverified_resolutions"] = unverified
        counts["proposed_ordinances"] = proposed
        return counts

    # ========== Utilities ==========

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()
            logger.info("database connection closed")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures connection cleanup"""
        self.close()
        return False
