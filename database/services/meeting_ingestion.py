"""
Meeting Ingestion Service

The only writer of meetings and agenda items. Handles:
1. Payload validation (vendors.schemas) at the boundary
2. Meeting status derivation (upcoming/past relative to today)
3. Agenda item storage in one transaction with the meeting
4. Auto-creation of ordinances first seen on an agenda, so they can be
   linked before the codification library knows about them
"""

from typing import Dict, Any, List, Optional, Tuple
from datetime import date

from pydantic import ValidationError

from config import get_logger
from database.models import Meeting, AgendaItem, Ordinance
from database.repositories.ordinances import generate_ordinance_id, is_placeholder_title
from database.transaction import transaction, savepoint
from exceptions import CivicLedgerError
from pipeline.matching import (
    canonical_ordinance_reference,
    detect_status_from_agenda,
    extract_ordinance_title,
)
from vendors.schemas import AgendaItemSchema, validate_item_input, validate_meeting_input

logger = get_logger(__name__).bind(component="ingestion")


class MeetingIngestionService:
    """
    Service for ingesting meetings and their agenda items into the database.

    Invalid payloads are skipped and reported in stats, never raised.
    """

    def __init__(self, db):
        """
        Args:
            db: UnifiedDatabase instance for repository access
        """
        self.db = db

    def ingest_meeting(
        self,
        meeting_data: Dict[str, Any],
        items_data: Optional[List[Dict[str, Any]]] = None,
        today: Optional[date] = None,
    ) -> Tuple[Optional[Meeting], Dict[str, Any]]:
        """
        Main entry point: validate → store meeting + items → auto-create ordinances.

        Args:
            meeting_data: Raw meeting payload
            items_data: Raw agenda item payloads (may also be under meeting_data["items"])
            today: Reference date for upcoming/past (defaults to today)

        Returns:
            Tuple of (stored Meeting object or None, stats dict)
        """
        stats = self._init_stats()
        today = today or date.today()

        if items_data is None:
            items_data = meeting_data.get("items") or []

        # VALIDATION BOUNDARY
        try:
            schema = validate_meeting_input(meeting_data)
        except ValidationError as e:
            logger.error(
                "meeting payload validation failed",
                title=meeting_data.get("title", "Unknown"),
                error=str(e),
            )
            stats['meetings_skipped'] = 1
            stats['skip_reason'] = "schema_validation_failed"
            stats['skipped_title'] = meeting_data.get("title", "Unknown")
            return None, stats

        meeting_obj = Meeting(
            id=schema.meeting_id,
            date=schema.date,
            title=schema.title,
            status="past" if schema.date < today else "upcoming",
            agenda_url=schema.agenda_url,
            minutes_url=schema.minutes_url,
            packet_url=schema.packet_url,
        )

        item_schemas = self._validate_items(items_data, stats)
        agenda_items = [
            AgendaItem(
                id=f"{meeting_obj.id}_{item.item_id}",
                meeting_id=meeting_obj.id,
                title=item.title,
                order_num=item.order_num,
                type=item.type,
                reference_number=item.reference_number,
                outcome=item.outcome,
            )
            for item in item_schemas
        ]

        try:
            with transaction(self.db.conn):
                stored_meeting = self.db.meetings.store_meeting(meeting_obj)
                if agenda_items:
                    stats['items_stored'] = self.db.items.store_agenda_items(
                        stored_meeting.id, agenda_items
                    )
                self._create_referenced_ordinances(stored_meeting, agenda_items, stats)
        except CivicLedgerError as e:
            logger.error(
                "meeting ingestion failed",
                meeting_id=meeting_obj.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            stats['meetings_skipped'] = 1
            stats['skip_reason'] = "storage_failed"
            stats['skipped_title'] = meeting_obj.title
            return None, stats

        logger.info(
            "ingested meeting",
            meeting_id=stored_meeting.id,
            date=stored_meeting.date.isoformat(),
            status=stored_meeting.status,
            items_stored=stats['items_stored'],
            items_skipped=stats['items_skipped'],
            ordinances_created=stats['ordinances_created'],
        )
        return stored_meeting, stats

    def _init_stats(self) -> Dict[str, Any]:
        """Initialize stats tracking"""
        return {
            'items_stored': 0,
            'items_skipped': 0,
            'ordinances_created': 0,
            'meetings_skipped': 0,
            'skip_reason': None,
            'skipped_title': None,
        }

    def _validate_items(
        self, items_data: List[Dict[str, Any]], stats: Dict[str, Any]
    ) -> List[AgendaItemSchema]:
        """Validate each item, dropping (and counting) invalid ones"""
        valid = []
        for item_data in items_data:
            try:
                valid.append(validate_item_input(item_data))
            except ValidationError as e:
                stats['items_skipped'] += 1
                logger.warning(
                    "agenda item payload validation failed",
                    title=str(item_data.get("title", "Unknown"))[:80],
                    error=str(e),
                )
        return valid

    def _create_referenced_ordinances(
        self,
        meeting: Meeting,
        agenda_items: List[AgendaItem],
        stats: Dict[str, Any],
    ):
        """Create ordinances referenced by this agenda that the store lacks

        Ordinance items, and public hearings that mention an ordinance, with a
        reference number. Title comes from the agenda wording, status from
        "second reading/adopt" vs anything else, introduced_date is the
        meeting date. Each create runs in its own savepoint.

        Ordinances created from the codification history carry a placeholder
        title ("Ordinance No. 2024-15"); the first agenda mention merges its
        wording into them.
        """
        for item in agenda_items:
            if not item.reference_number:
                continue
            if not (
                item.type == "ordinance"
                or (item.type == "public_hearing" and "ordinance" in item.title.lower())
            ):
                continue

            number = canonical_ordinance_reference(item.reference_number)
            if not number:
                continue

            # Known ordinances are only revisited to replace a placeholder title
            existing = self.db.ordinances.get_by_number(number)
            if existing and not is_placeholder_title(existing.title, number):
                continue

            title = extract_ordinance_title(item.title, number) or f"Ordinance {number}"
            status = detect_status_from_agenda(item.title)

            try:
                with savepoint(self.db.conn):
                    self.db.ordinances.store_ordinance(
                        Ordinance(
                            id=generate_ordinance_id(number),
                            number=number,
                            title=title,
                            status=status,
                            introduced_date=meeting.date,
                        )
                    )
            except CivicLedgerError as e:
                logger.error(
                    "ordinance auto-create failed",
                    number=number,
                    meeting_id=meeting.id,
                    error=str(e),
                )
                continue

            if existing:
                logger.info("replaced placeholder ordinance title", number=number, title=title[:80])
                continue

            stats['ordinances_created'] += 1
            logger.info(
                "auto-created ordinance",
                number=number,
                title=title[:80],
                status=status,
                meeting_id=meeting.id,
            )
