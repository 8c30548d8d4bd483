"""
Agenda Item Repository - Item operations

Handles agenda item storage and the item selections the reconciliation
stages read (ordinance candidates, resolution items).

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
Use `with transaction(conn):` context manager to group operations.
"""

from typing import List, Optional, Tuple
from datetime import date

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import AgendaItem, parse_iso_date
from exceptions import DataIntegrityError

logger = get_logger(__name__).bind(component="database")


class ItemRepository(BaseRepository):
    """Repository for agenda item operations"""

    def store_agenda_items(self, meeting_id: str, items: List[AgendaItem]) -> int:
        """
        Store agenda items for a meeting.

        Structural fields are replaced on conflict; an existing outcome is
        kept when the new payload has none.

        NOTE: Does not commit - caller must manage transaction.

        Args:
            meeting_id: The meeting ID these items belong to
            items: List of AgendaItem objects

        Returns:
            Number of items stored
        """
        stored_count = 0

        for item in items:
            try:
                self._execute(
                    """
                    INSERT INTO agenda_items (id, meeting_id, order_num, title, type,
                                              reference_number, outcome)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        order_num = excluded.order_num,
                        title = excluded.title,
                        type = excluded.type,
                        reference_number = excluded.reference_number,
                        outcome = COALESCE(excluded.outcome, agenda_items.outcome)
                """,
                    (
                        item.id,
                        meeting_id,
                        item.order_num,
                        item.title,
                        item.type,
                        item.reference_number,
                        item.outcome,
                    ),
                )
                stored_count += 1
            except DataIntegrityError as e:
                logger.error(
                    "FK constraint failed for item",
                    item_id=item.id,
                    meeting_id=meeting_id,
                    error=str(e)
                )
                raise

        return stored_count

    def get_agenda_items(self, meeting_id: str) -> List[AgendaItem]:
        """Get all agenda items for a meeting in agenda order"""
        rows = self._fetch_all(
            "SELECT * FROM agenda_items WHERE meeting_id = ? ORDER BY order_num, id",
            (meeting_id,),
        )
        return [AgendaItem.from_db_row(row) for row in rows]

    def get_ordinance_candidates(self) -> List[AgendaItem]:
        """Items that may reference an ordinance

        Typed ordinance items plus any item whose title mentions an
        ordinance (public hearings, new business), in meeting-date order.
        """
        rows = self._fetch_all(
            """
            SELECT ai.* FROM agenda_items ai
            JOIN meetings m ON m.id = ai.meeting_id
            WHERE ai.type = 'ordinance' OR ai.title LIKE '%ordinance%'
            ORDER BY m.date, m.id, ai.order_num, ai.id
        """
        )
        return [AgendaItem.from_db_row(row) for row in rows]

    def get_resolution_items(
        self, meeting_id: Optional[str] = None
    ) -> List[Tuple[AgendaItem, date]]:
        """Resolution items carrying a reference number, with their meeting date

        Ordered by meeting date ascending so callers see occurrences of the
        same resolution oldest first.
        """
        query = """
            SELECT ai.*, m.date AS meeting_date FROM agenda_items ai
            JOIN meetings m ON m.id = ai.meeting_id
            WHERE ai.type = 'resolution'
            AND ai.reference_number IS NOT NULL
            AND TRIM(ai.reference_number) != ''
        """
        params: tuple = ()
        if meeting_id:
            query += " AND ai.meeting_id = ?"
            params = (meeting_id,)
        query += " ORDER BY m.date, m.id, ai.order_num, ai.id"

        rows = self._fetch_all(query, params)
        return [
            (AgendaItem.from_db_row(row), parse_iso_date(row["meeting_date"]))
            for row in rows
        ]
