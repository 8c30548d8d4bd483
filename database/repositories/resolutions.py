"""
Resolution Repository - Resolution operations

Resolutions are keyed by their canonical number. Once outcome_verified is
set, ordinary writes leave the row alone; correct_outcome() is the only
way to change a verified resolution.

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
Use `with transaction(conn):` context manager to group operations.
"""

from typing import List, Optional
from datetime import date

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import Resolution, RESOLUTION_STATUSES, format_iso_date
from exceptions import DatabaseConnectionError, ValidationError

logger = get_logger(__name__).bind(component="database")


def generate_resolution_id(number: str) -> str:
    return f"resolution-{number}"


def _is_at_least_as_recent(incoming: Optional[date], stored: Optional[date]) -> bool:
    """Undated evidence on either side falls back to last-write-wins"""
    if incoming is None or stored is None:
        return True
    return incoming >= stored


class ResolutionRepository(BaseRepository):
    """Repository for resolution operations"""

    def get_resolution(self, resolution_id: str) -> Optional[Resolution]:
        row = self._fetch_one("SELECT * FROM resolutions WHERE id = ?", (resolution_id,))
        return Resolution.from_db_row(row) if row else None

    def get_by_number(self, number: str) -> Optional[Resolution]:
        row = self._fetch_one("SELECT * FROM resolutions WHERE number = ?", (number,))
        return Resolution.from_db_row(row) if row else None

    def get_resolutions(self, status: Optional[str] = None) -> List[Resolution]:
        """All resolutions ordered by number, optionally filtered by status"""
        if status:
            rows = self._fetch_all(
                "SELECT * FROM resolutions WHERE status = ? ORDER BY number", (status,)
            )
        else:
            rows = self._fetch_all("SELECT * FROM resolutions ORDER BY number")
        return [Resolution.from_db_row(row) for row in rows]

    def get_unverified_candidates(
        self, meeting_id: str, numbers: Optional[List[str]] = None
    ) -> List[Resolution]:
        """Unverified resolutions introduced at a meeting or listed on its agenda

        Args:
            meeting_id: Meeting whose outcomes are being reconciled
            numbers: Canonical numbers referenced by the meeting's resolution items
        """
        numbers = numbers or []
        conditions = ["meeting_id = ?"]
        params: list = [meeting_id]
        if numbers:
            placeholders = ",".join("?" * len(numbers))
            conditions.append(f"number IN ({placeholders})")
            params.extend(numbers)

        rows = self._fetch_all(
            f"""
            SELECT * FROM resolutions
            WHERE outcome_verified = 0
            AND ({' OR '.join(conditions)})
            ORDER BY number
        """,
            tuple(params),
        )
        return [Resolution.from_db_row(row) for row in rows]

    def store_resolution(self, resolution: Resolution) -> bool:
        """Merge-upsert a resolution keyed by number

        - verified row: no write at all
        - stored adopted status and its adopted_date are kept
        - status (with adopted_date and status_date) is replaced only by
          evidence at least as recent as the stored status_date
        - introduced_date becomes the earliest known; meeting_id and title
          follow the earliest occurrence
        - outcome_verified is never written here

        NOTE: Does not commit - caller must manage transaction.

        Returns:
            True if a row was written, False if the stored row is verified
        """
        existing = self.get_by_number(resolution.number)

        if existing is None:
            self._execute(
                """
                INSERT INTO resolutions (id, number, title, status, introduced_date,
                                         adopted_date, meeting_id, packet_url, summary,
                                         status_date)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    resolution.id or generate_resolution_id(resolution.number),
                    resolution.number,
                    resolution.title,
                    resolution.status,
                    format_iso_date(resolution.introduced_date),
                    format_iso_date(resolution.adopted_date),
                    resolution.meeting_id,
                    resolution.packet_url,
                    resolution.summary,
                    format_iso_date(resolution.status_date),
                ),
            )
            return True

        if existing.outcome_verified:
            logger.debug("skipping verified resolution", number=existing.number)
            return False

        status, adopted_date, status_date = existing.status, existing.adopted_date, existing.status_date
        if existing.status == "adopted":
            adopted_date = existing.adopted_date or resolution.adopted_date
        elif _is_at_least_as_recent(resolution.status_date, existing.status_date):
            status = resolution.status
            adopted_date = resolution.adopted_date if status == "adopted" else None
            status_date = resolution.status_date or existing.status_date
        else:
            logger.debug(
                "kept status from newer evidence",
                number=existing.number,
                stored_status=existing.status,
                stored_status_date=format_iso_date(existing.status_date),
                incoming_status_date=format_iso_date(resolution.status_date),
            )

        introduced_date = existing.introduced_date
        meeting_id = existing.meeting_id or resolution.meeting_id
        title = existing.title or resolution.title
        if resolution.introduced_date and (
            introduced_date is None or resolution.introduced_date < introduced_date
        ):
            introduced_date = resolution.introduced_date
            meeting_id = resolution.meeting_id or meeting_id
            title = resolution.title or title

        self._execute(
            """
            UPDATE resolutions
            SET title = ?,
                status = ?,
                introduced_date = ?,
                adopted_date = ?,
                meeting_id = ?,
                status_date = ?,
                packet_url = COALESCE(packet_url, ?),
                summary = COALESCE(summary, ?),
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND outcome_verified = 0
        """,
            (
                title,
                status,
                format_iso_date(introduced_date),
                format_iso_date(adopted_date),
                meeting_id,
                format_iso_date(status_date),
                resolution.packet_url,
                resolution.summary,
                existing.id,
            ),
        )
        return True

    def apply_vote_outcome(
        self, resolution_id: str, status: str, meeting_date: date
    ) -> bool:
        """Record an authoritative vote outcome and latch outcome_verified

        adopted_date becomes the meeting date when adopted and NULL otherwise.
        Guarded by outcome_verified = 0, so a verified row is never rewritten.

        Returns:
            True if the guard accepted the write
        """
        changed = self._update(
            """
            UPDATE resolutions
            SET status = ?,
                adopted_date = CASE WHEN ? = 'adopted' THEN ? ELSE NULL END,
                outcome_verified = 1,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND outcome_verified = 0
        """,
            (status, status, meeting_date.isoformat(), resolution_id),
        )
        return changed > 0

    def correct_outcome(
        self,
        number: str,
        status: str,
        adopted_date: Optional[date] = None,
        reason: str = "",
    ) -> Resolution:
        """Administrative correction of a resolution outcome

        The only write allowed on a verified resolution. The row stays
        verified afterwards. Every correction is logged with its reason.

        NOTE: Does not commit - caller must manage transaction.

        Raises:
            ValidationError: Unknown resolution, bad status, missing reason,
                or an adopted status without a date
        """
        if status not in RESOLUTION_STATUSES:
            raise ValidationError(
                f"Invalid status: {status}. Must be one of: {sorted(RESOLUTION_STATUSES)}",
                field="status",
                value=status
            )
        if not reason or not reason.strip():
            raise ValidationError("A correction requires a reason", field="reason")

        existing = self.get_by_number(number)
        if existing is None:
            raise ValidationError(f"Unknown resolution: {number}", field="number", value=number)

        if status == "adopted":
            adopted_date = adopted_date or existing.adopted_date
            if adopted_date is None:
                raise ValidationError(
                    "Adopted resolutions need an adopted_date",
                    field="adopted_date"
                )
        else:
            adopted_date = None

        self._execute(
            """
            UPDATE resolutions
            SET status = ?,
                adopted_date = ?,
                outcome_verified = 1,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """,
            (status, format_iso_date(adopted_date), existing.id),
        )

        logger.warning(
            "resolution outcome corrected",
            number=number,
            previous_status=existing.status,
            status=status,
            adopted_date=format_iso_date(adopted_date),
            was_verified=existing.outcome_verified,
            reason=reason,
        )

        corrected = self.get_by_number(number)
        if corrected is None:
            raise DatabaseConnectionError(f"Failed to retrieve corrected resolution: {number}")
        return corrected
