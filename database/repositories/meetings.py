"""
Meeting Repository - meetings, their upcoming/past status, and the vote backlog

Nothing here commits; callers wrap writes in `with transaction(conn):`.
"""

from typing import List, Optional
from datetime import date

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import Meeting, format_iso_date
from pipeline.matching import canonical_resolution_reference
from exceptions import DatabaseError

logger = get_logger(__name__).bind(component="database")


class MeetingRepository(BaseRepository):
    """Repository for meeting operations"""

    def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        """Get a single meeting by ID"""
        row = self._fetch_one("SELECT * FROM meetings WHERE id = ?", (meeting_id,))
        return Meeting.from_db_row(row) if row else None

    def store_meeting(self, meeting: Meeting) -> Meeting:
        """Upsert a meeting, keeping known document URLs the payload omits"""
        self._execute(
            """
            INSERT INTO meetings (id, date, title, status, agenda_url, minutes_url, packet_url)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                date = excluded.date,
                title = excluded.title,
                status = excluded.status,
                -- PRESERVE existing document URLs if new values are NULL
                agenda_url = COALESCE(excluded.agenda_url, meetings.agenda_url),
                minutes_url = COALESCE(excluded.minutes_url, meetings.minutes_url),
                packet_url = COALESCE(excluded.packet_url, meetings.packet_url),
                updated_at = CURRENT_TIMESTAMP
        """,
            (
                meeting.id,
                meeting.date.isoformat(),
                meeting.title,
                meeting.status,
                meeting.agenda_url,
                meeting.minutes_url,
                meeting.packet_url,
            ),
        )

        result = self.get_meeting(meeting.id)
        if result is None:
            raise DatabaseError(f"Meeting {meeting.id} missing after upsert")
        return result

    def refresh_statuses(self, today: Optional[date] = None) -> int:
        """Recompute upcoming/past for every meeting relative to today

        NOTE: Does not commit - caller must manage transaction.

        Returns:
            Number of meetings whose status changed
        """
        today_iso = (today or date.today()).isoformat()
        changed = self._update(
            """
            UPDATE meetings
            SET status = CASE WHEN date < ? THEN 'past' ELSE 'upcoming' END,
                updated_at = CURRENT_TIMESTAMP
            WHERE status != CASE WHEN date < ? THEN 'past' ELSE 'upcoming' END
        """,
            (today_iso, today_iso),
        )
        if changed:
            logger.info("refreshed meeting statuses", changed=changed, today=today_iso)
        return changed

    def get_meetings_pending_votes(
        self, today: Optional[date] = None, limit: Optional[int] = None
    ) -> List[Meeting]:
        """Past meetings that still have outcomes to reconcile, newest first

        A meeting qualifies when it introduced or lists an unverified
        resolution, or is linked to an ordinance still marked proposed.
        Agenda references are compared by canonical number, so "Res. 25–012"
        on an agenda matches resolution 25-012.
        """
        today_iso = format_iso_date(today or date.today())
        rows = self._fetch_all(
            """
            SELECT m.* FROM meetings m
            WHERE m.date < ?
            AND (
                EXISTS (
                    SELECT 1 FROM resolutions r
                    WHERE r.meeting_id = m.id AND r.outcome_verified = 0
                )
                OR EXISTS (
                    SELECT 1 FROM ordinance_meetings om
                    JOIN ordinances o ON o.id = om.ordinance_id
                    WHERE om.meeting_id = m.id AND o.status = 'proposed'
                )
            )
        """,
            (today_iso,),
        )
        pending = {row["id"]: Meeting.from_db_row(row) for row in rows}

        for meeting in self._meetings_listing_unverified_resolutions(today_iso):
            pending.setdefault(meeting.id, meeting)

        meetings = sorted(pending.values(), key=lambda m: m.id)
        meetings.sort(key=lambda m: m.date, reverse=True)
        if limit is not None:
            meetings = meetings[:limit]
        return meetings

    def _meetings_listing_unverified_resolutions(self, today_iso: str) -> List[Meeting]:
        unverified = {
            row["number"]
            for row in self._fetch_all("SELECT number FROM resolutions WHERE outcome_verified = 0")
        }
        if not unverified:
            return []

        rows = self._fetch_all(
            """
            SELECT m.*, ai.reference_number AS item_reference FROM meetings m
            JOIN agenda_items ai ON ai.meeting_id = m.id
            WHERE m.date < ?
            AND ai.type = 'resolution'
            AND ai.reference_number IS NOT NULL
        """,
            (today_iso,),
        )
        return [
            Meeting.from_db_row(row)
            for row in rows
            if canonical_resolution_reference(row["item_reference"]) in unverified
        ]
