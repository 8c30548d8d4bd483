"""
Ordinance Repository - Ordinance and ordinance-meeting link operations

Ordinances are keyed by their canonical number. Writes are field-level
merges: status only advances in rank, terminal statuses are kept, and
adoption facts are never cleared once recorded.

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
Use `with transaction(conn):` context manager to group operations.
"""

import re
from typing import List, Optional
from datetime import date

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import (
    Ordinance,
    OrdinanceMeetingLink,
    ORDINANCE_STATUS_RANK,
    TERMINAL_ORDINANCE_STATUSES,
    format_iso_date,
)
from exceptions import DatabaseConnectionError

logger = get_logger(__name__).bind(component="database")


def merge_ordinance_status(current: str, incoming: str) -> str:
    """Combine a stored status with a newly observed one

    Terminal statuses win and are never replaced; otherwise the higher
    rank wins (proposed < first_reading < second_reading < terminal).
    """
    if current in TERMINAL_ORDINANCE_STATUSES:
        return current
    if ORDINANCE_STATUS_RANK[incoming] > ORDINANCE_STATUS_RANK[current]:
        return incoming
    return current


def _earliest(first: Optional[date], second: Optional[date]) -> Optional[date]:
    if first and second:
        return min(first, second)
    return first or second


def generate_ordinance_id(number: str) -> str:
    return f"ordinance-{number}"


def is_placeholder_title(title: str, number: str) -> bool:
    """Titles minted before any agenda wording was seen ("Ordinance No. 2024-15")"""
    pattern = rf"^ordinance\s+(no\.?\s*)?#?\s*{re.escape(number)}$"
    return re.match(pattern, title.strip(), re.IGNORECASE) is not None


class OrdinanceRepository(BaseRepository):
    """Repository for ordinances and their meeting links"""

    # ========== Ordinance lookups ==========

    def get_ordinance(self, ordinance_id: str) -> Optional[Ordinance]:
        row = self._fetch_one("SELECT * FROM ordinances WHERE id = ?", (ordinance_id,))
        return Ordinance.from_db_row(row) if row else None

    def get_by_number(self, number: str) -> Optional[Ordinance]:
        """Exact lookup by canonical number"""
        row = self._fetch_one("SELECT * FROM ordinances WHERE number = ?", (number,))
        return Ordinance.from_db_row(row) if row else None

    def find_first_containing(self, fragment: str) -> Optional[Ordinance]:
        """First ordinance (by number) whose number contains the fragment

        Used as the last resolution step for bare references. Deterministic
        for a fixed snapshot, but can pick "173" for "73".
        """
        row = self._fetch_one(
            """
            SELECT * FROM ordinances
            WHERE instr(number, ?) > 0
            ORDER BY number
            LIMIT 1
        """,
            (fragment,),
        )
        return Ordinance.from_db_row(row) if row else None

    def get_ordinances(self, status: Optional[str] = None) -> List[Ordinance]:
        """All ordinances ordered by number, optionally filtered by status"""
        if status:
            rows = self._fetch_all(
                "SELECT * FROM ordinances WHERE status = ? ORDER BY number", (status,)
            )
        else:
            rows = self._fetch_all("SELECT * FROM ordinances ORDER BY number")
        return [Ordinance.from_db_row(row) for row in rows]

    def get_linked_to_meeting(self, meeting_id: str) -> List[Ordinance]:
        """Ordinances linked to a meeting, ordered by number"""
        rows = self._fetch_all(
            """
            SELECT o.* FROM ordinances o
            JOIN ordinance_meetings om ON om.ordinance_id = o.id
            WHERE om.meeting_id = ?
            ORDER BY o.number
        """,
            (meeting_id,),
        )
        return [Ordinance.from_db_row(row) for row in rows]

    def get_discussed_only(self, number: Optional[str] = None) -> List[Ordinance]:
        """Ordinances that have links and every link is still 'discussed'"""
        query = """
            SELECT o.* FROM ordinances o
            WHERE EXISTS (
                SELECT 1 FROM ordinance_meetings om WHERE om.ordinance_id = o.id
            )
            AND NOT EXISTS (
                SELECT 1 FROM ordinance_meetings om
                WHERE om.ordinance_id = o.id AND om.action != 'discussed'
            )
        """
        params: tuple = ()
        if number:
            query += " AND o.number = ?"
            params = (number,)
        query += " ORDER BY o.number"

        rows = self._fetch_all(query, params)
        return [Ordinance.from_db_row(row) for row in rows]

    # ========== Ordinance writes ==========

    def store_ordinance(self, ordinance: Ordinance) -> Ordinance:
        """Merge-upsert an ordinance keyed by number

        New number: inserted as given.
        Existing number:
        - status merged by rank, terminal statuses kept
        - adopted_date, municode_url, summary, disposition kept once set
        - introduced_date becomes the earliest known
        - title replaced only while it is still a placeholder
        - existing id kept

        NOTE: Does not commit - caller must manage transaction.
        """
        existing = self.get_by_number(ordinance.number)

        if existing is None:
            ordinance_id = ordinance.id or generate_ordinance_id(ordinance.number)
            self._execute(
                """
                INSERT INTO ordinances (id, number, title, status, introduced_date,
                                        adopted_date, municode_url, summary, disposition)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    ordinance_id,
                    ordinance.number,
                    ordinance.title,
                    ordinance.status,
                    format_iso_date(ordinance.introduced_date),
                    format_iso_date(ordinance.adopted_date),
                    ordinance.municode_url,
                    ordinance.summary,
                    ordinance.disposition,
                ),
            )
            logger.debug("inserted ordinance", number=ordinance.number, status=ordinance.status)
        else:
            ordinance_id = existing.id
            title = existing.title
            if ordinance.title and is_placeholder_title(existing.title, existing.number):
                title = ordinance.title

            self._execute(
                """
                UPDATE ordinances
                SET title = ?,
                    status = ?,
                    introduced_date = ?,
                    adopted_date = ?,
                    municode_url = ?,
                    summary = ?,
                    disposition = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """,
                (
                    title,
                    merge_ordinance_status(existing.status, ordinance.status),
                    format_iso_date(_earliest(existing.introduced_date, ordinance.introduced_date)),
                    format_iso_date(existing.adopted_date or ordinance.adopted_date),
                    existing.municode_url or ordinance.municode_url,
                    existing.summary or ordinance.summary,
                    existing.disposition or ordinance.disposition,
                    ordinance_id,
                ),
            )

        result = self.get_ordinance(ordinance_id)
        if result is None:
            raise DatabaseConnectionError(
                f"Failed to retrieve newly stored ordinance: {ordinance.number}"
            )
        return result

    def apply_vote_status(
        self, ordinance_id: str, status: str, adopted_date: Optional[date] = None
    ) -> bool:
        """Record a vote-derived status, only while the ordinance is still proposed

        An adopted status also records adopted_date.

        Returns:
            True if the guard accepted the write
        """
        changed = self._update(
            """
            UPDATE ordinances
            SET status = ?,
                adopted_date = CASE WHEN ? = 'adopted' THEN ? ELSE adopted_date END,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = 'proposed'
        """,
            (status, status, format_iso_date(adopted_date), ordinance_id),
        )
        return changed > 0

    def apply_codification(
        self, ordinance_id: str, disposition: str, adopted_date: Optional[date]
    ) -> bool:
        """Mark an ordinance adopted from the codification supplement history

        Applies when the ordinance is not adopted yet or has no disposition.
        A stored adopted_date is kept.

        Returns:
            True if the row was updated
        """
        changed = self._update(
            """
            UPDATE ordinances
            SET status = 'adopted',
                disposition = ?,
                adopted_date = COALESCE(adopted_date, ?),
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND (status != 'adopted' OR disposition IS NULL)
        """,
            (disposition, format_iso_date(adopted_date), ordinance_id),
        )
        return changed > 0

    def rollup_adopted_dates(self) -> int:
        """Set adopted_date to the latest adopting/second-reading meeting date

        Only rows whose value actually changes are written.

        Returns:
            Number of ordinances updated
        """
        latest_date = """
            SELECT MAX(m.date) FROM ordinance_meetings om
            JOIN meetings m ON m.id = om.meeting_id
            WHERE om.ordinance_id = ordinances.id
            AND om.action IN ('adopted', 'second_reading')
        """
        return self._update(
            f"""
            UPDATE ordinances
            SET adopted_date = ({latest_date}),
                updated_at = CURRENT_TIMESTAMP
            WHERE ({latest_date}) IS NOT NULL
            AND (adopted_date IS NULL OR adopted_date != ({latest_date}))
        """
        )

    # ========== Link operations ==========

    def get_link(self, ordinance_id: str, meeting_id: str) -> Optional[OrdinanceMeetingLink]:
        row = self._fetch_one(
            """
            SELECT om.*, m.date AS meeting_date FROM ordinance_meetings om
            JOIN meetings m ON m.id = om.meeting_id
            WHERE om.ordinance_id = ? AND om.meeting_id = ?
        """,
            (ordinance_id, meeting_id),
        )
        return OrdinanceMeetingLink.from_db_row(row) if row else None

    def get_links(self, ordinance_id: str) -> List[OrdinanceMeetingLink]:
        """Links for an ordinance ordered by meeting date"""
        rows = self._fetch_all(
            """
            SELECT om.*, m.date AS meeting_date FROM ordinance_meetings om
            JOIN meetings m ON m.id = om.meeting_id
            WHERE om.ordinance_id = ?
            ORDER BY m.date, m.id
        """,
            (ordinance_id,),
        )
        return [OrdinanceMeetingLink.from_db_row(row) for row in rows]

    def upsert_link(self, ordinance_id: str, meeting_id: str, action: str) -> None:
        """Create or merge the link for (ordinance, meeting)

        A new link takes the given action. An existing link's action is only
        replaced while it is still 'discussed', so explicit, inferred and
        vote-derived actions survive re-linking.

        NOTE: Does not commit - caller must manage transaction.
        """
        self._execute(
            """
            INSERT INTO ordinance_meetings (ordinance_id, meeting_id, action)
            VALUES (?, ?, ?)
            ON CONFLICT(ordinance_id, meeting_id) DO UPDATE SET
                action = excluded.action,
                updated_at = CURRENT_TIMESTAMP
            WHERE ordinance_meetings.action = 'discussed'
            AND excluded.action != 'discussed'
        """,
            (ordinance_id, meeting_id, action),
        )

    def set_link_action(self, ordinance_id: str, meeting_id: str, action: str) -> bool:
        """Overwrite the action of an existing link (vote-derived writes)"""
        changed = self._update(
            """
            UPDATE ordinance_meetings
            SET action = ?, updated_at = CURRENT_TIMESTAMP
            WHERE ordinance_id = ? AND meeting_id = ?
        """,
            (action, ordinance_id, meeting_id),
        )
        return changed > 0

    def update_link_action_if(
        self, ordinance_id: str, meeting_id: str, action: str, expected: str
    ) -> bool:
        """Set a link's action only if its current action is `expected`"""
        changed = self._update(
            """
            UPDATE ordinance_meetings
            SET action = ?, updated_at = CURRENT_TIMESTAMP
            WHERE ordinance_id = ? AND meeting_id = ? AND action = ?
        """,
            (action, ordinance_id, meeting_id, expected),
        )
        return changed > 0
