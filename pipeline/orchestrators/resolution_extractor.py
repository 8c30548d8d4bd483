"""Resolution Extractor - Canonical resolutions from agenda item mentions

A resolution usually appears on several agendas (consent listing, public
hearing, final vote). Occurrences are grouped by normalized number and
walked oldest first:

- introduced_date / meeting_id: the earliest occurrence
- title: the earliest occurrence's title with the "Consider Resolution
  NN-NNN to" lead-in stripped
- status: future meeting -> proposed; outcome text -> classified;
  otherwise pending_minutes. Later occurrences replace the running status,
  but an adopted status is kept for the rest of the run.
- adopted_date: meeting date of the first occurrence that yields adopted

Results go through ResolutionRepository.store_resolution, which skips
verified rows and protects a stored adoption.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from config import get_logger
from database.models import AgendaItem, Resolution
from database.repositories.resolutions import generate_resolution_id
from database.transaction import transaction
from exceptions import CivicLedgerError
from pipeline.matching import (
    canonical_resolution_reference,
    classify_outcome_text,
    clean_resolution_title,
)
from pipeline.models import ResolutionText
from pipeline.protocols import DocumentExtractor, NullDocumentExtractor

logger = get_logger(__name__).bind(component="resolution_extractor")


class ResolutionExtractor:
    """Groups resolution agenda items into canonical resolution records"""

    def __init__(
        self,
        db,
        extractor: Optional[DocumentExtractor] = None,
        today: Optional[date] = None,
    ):
        """
        Args:
            db: UnifiedDatabase instance
            extractor: Document extractor for resolution full text
            today: Reference date for "future meeting" (defaults to today)
        """
        self.db = db
        self.extractor = extractor or NullDocumentExtractor()
        self.today = today

    def _occurrence_status(self, item: AgendaItem, meeting_date: date, today: date) -> str:
        if meeting_date > today:
            return "proposed"
        if item.outcome:
            return classify_outcome_text(item.outcome)
        return "pending_minutes"

    def _group_occurrences(
        self, occurrences: List[Tuple[AgendaItem, date]]
    ) -> Dict[str, List[Tuple[AgendaItem, date]]]:
        """Occurrences by normalized number, each list oldest first"""
        groups: Dict[str, List[Tuple[AgendaItem, date]]] = {}
        for item, meeting_date in occurrences:
            number = canonical_resolution_reference(item.reference_number or "")
            if not number:
                continue
            groups.setdefault(number, []).append((item, meeting_date))
        for group in groups.values():
            group.sort(key=lambda occurrence: occurrence[1])
        return groups

    def _merge_group(
        self, number: str, occurrences: List[Tuple[AgendaItem, date]], today: date
    ) -> Resolution:
        first_item, first_date = occurrences[0]

        status = None
        adopted_date = None
        status_date = None
        for item, meeting_date in occurrences:
            if status == "adopted":
                break
            status = self._occurrence_status(item, meeting_date, today)
            status_date = meeting_date
            if status == "adopted":
                adopted_date = meeting_date

        meeting = self.db.meetings.get_meeting(first_item.meeting_id)

        return Resolution(
            id=generate_resolution_id(number),
            number=number,
            title=clean_resolution_title(first_item.title),
            status=status,
            introduced_date=first_date,
            adopted_date=adopted_date,
            meeting_id=first_item.meeting_id,
            packet_url=meeting.packet_url if meeting else None,
            status_date=status_date,
        )

    def extract_resolutions_from_agenda_items(self, meeting_id: Optional[str] = None) -> int:
        """Upsert one canonical resolution per referenced number

        Args:
            meeting_id: Limit the pass to one meeting's resolution items

        Returns:
            Number of resolutions written (verified resolutions are skipped
            and not counted)
        """
        today = self.today or date.today()
        groups = self._group_occurrences(self.db.items.get_resolution_items(meeting_id))
        logger.info(
            "extracting resolutions",
            meeting_id=meeting_id,
            resolution_numbers=len(groups),
        )

        count = 0
        for number, occurrences in groups.items():
            try:
                resolution = self._merge_group(number, occurrences, today)
                with transaction(self.db.conn):
                    written = self.db.resolutions.store_resolution(resolution)
            except CivicLedgerError as e:
                logger.error(
                    "failed to store resolution",
                    number=number,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if written:
                count += 1
                logger.debug(
                    "stored resolution",
                    number=number,
                    status=resolution.status,
                    introduced_date=resolution.introduced_date.isoformat(),
                    occurrences=len(occurrences),
                )

        logger.info("resolution extraction complete", meeting_id=meeting_id, stored=count)
        return count

    async def fetch_resolution_text(self, number: str, document: bytes) -> Optional[ResolutionText]:
        """Full text of one resolution from its agenda/packet document

        The extractor response is untrusted: only {"found": true,
        "raw_text": "<non-empty>"} is accepted. Extractor failures are
        logged and reported as None.
        """
        try:
            response: Dict[str, Any] = await self.extractor.extract_resolution_text(document, number)
        except CivicLedgerError as e:
            logger.warning(
                "resolution text extraction failed",
                number=number,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if not isinstance(response, dict) or not response.get("found"):
            logger.debug("resolution text not found", number=number)
            return None

        raw_text = response.get("raw_text") or response.get("rawText")
        if not isinstance(raw_text, str) or not raw_text.strip():
            logger.warning("extractor returned empty resolution text", number=number)
            return None

        return ResolutionText(number=number, raw_text=raw_text.strip())
