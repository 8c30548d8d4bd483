"""Identity Resolver - Free-text ordinance references to canonical records

Resolution order, first hit wins:
1. Canonical token from the reference (year form first, then bare number)
2. Exact lookup by number
3. Bare numbers retried as {year}-{NNN} for the current year and the years
   before it, most recent first
4. First ordinance (by number) whose number contains the token

Step 4 is accepted but flagged: it can pick "173" for "73". The returned
OrdinanceRef carries match_kind so callers and tests can see which step won.
"""

from datetime import date
from typing import Optional, Set, Tuple

from config import config, get_logger
from database.models import AgendaItem
from database.transaction import transaction
from exceptions import CivicLedgerError
from pipeline.matching import (
    canonical_ordinance_reference,
    detect_ordinance_action,
    extract_ordinance_number,
    has_year_prefix,
    normalize_dashes,
)
from pipeline.models import LinkResult, OrdinanceRef

logger = get_logger(__name__).bind(component="identity_resolver")


class IdentityResolver:
    """Resolves ordinance references and links ordinances to meetings"""

    def __init__(
        self,
        db,
        today: Optional[date] = None,
        year_window: Optional[int] = None,
    ):
        """
        Args:
            db: UnifiedDatabase instance
            today: Reference date for the year fallback (defaults to today)
            year_window: Number of years tried for bare numbers
        """
        self.db = db
        self.today = today
        self.year_window = year_window or config.YEAR_FALLBACK_WINDOW

    def _current_year(self) -> int:
        return (self.today or date.today()).year

    def resolve_ordinance(self, raw_reference: str) -> Optional[OrdinanceRef]:
        """Resolve a raw reference ("Ordinance No. 773", "773", "2024–773")

        Returns:
            OrdinanceRef with match provenance, or None when nothing matches
        """
        number = extract_ordinance_number(raw_reference) or canonical_ordinance_reference(
            raw_reference
        )
        if not number:
            return None
        return self._resolve_number(number, raw_reference)

    def _resolve_number(self, number: str, raw_reference: str) -> Optional[OrdinanceRef]:
        number = normalize_dashes(number)

        ordinance = self.db.ordinances.get_by_number(number)
        if ordinance:
            return OrdinanceRef(ordinance=ordinance, match_kind="exact", raw_reference=raw_reference)

        if not has_year_prefix(number):
            current_year = self._current_year()
            for year in range(current_year, current_year - self.year_window, -1):
                ordinance = self.db.ordinances.get_by_number(f"{year}-{number.zfill(3)}")
                if ordinance:
                    return OrdinanceRef(
                        ordinance=ordinance, match_kind="year_prefix", raw_reference=raw_reference
                    )

        ordinance = self.db.ordinances.find_first_containing(number)
        if ordinance:
            logger.warning(
                "ambiguous ordinance match",
                reference=raw_reference,
                token=number,
                matched_number=ordinance.number,
            )
            return OrdinanceRef(ordinance=ordinance, match_kind="substring", raw_reference=raw_reference)

        return None

    def _item_number(self, item: AgendaItem) -> Optional[str]:
        """Ordinance number from the reference field, else from the title"""
        number = None
        if item.reference_number:
            number = canonical_ordinance_reference(item.reference_number)
        if not number:
            number = extract_ordinance_number(item.title)
        return number

    def link_ordinances_to_meetings(self) -> LinkResult:
        """Create or merge ordinance-meeting links from agenda items

        Each (meeting, number) pair is handled once per run. A new link gets
        the action read from the item title; an existing link only changes
        while it is still 'discussed'. Re-running on unchanged input reports
        the same linked count and creates no duplicate links.
        """
        result = LinkResult()
        processed: Set[Tuple[str, str]] = set()

        candidates = self.db.items.get_ordinance_candidates()
        logger.info("linking ordinances to meetings", candidate_items=len(candidates))

        for item in candidates:
            try:
                number = self._item_number(item)
                if not number:
                    continue

                key = (item.meeting_id, number)
                if key in processed:
                    continue
                processed.add(key)

                ref = self._resolve_number(number, item.reference_number or item.title)
                if ref is None:
                    result.not_found.append(f"Ordinance {number} (from meeting {item.meeting_id})")
                    continue

                if ref.is_ambiguous:
                    result.ambiguous.append(
                        f"Ordinance {number} -> {ref.ordinance.number} (from meeting {item.meeting_id})"
                    )

                action = detect_ordinance_action(item.title)
                with transaction(self.db.conn):
                    self.db.ordinances.upsert_link(ref.ordinance.id, item.meeting_id, action)

                result.linked += 1
                logger.debug(
                    "linked ordinance",
                    number=ref.ordinance.number,
                    meeting_id=item.meeting_id,
                    action=action,
                    match_kind=ref.match_kind,
                )
            except CivicLedgerError as e:
                logger.error(
                    "failed to link agenda item",
                    item_id=item.id,
                    meeting_id=item.meeting_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.errors.append(f"Error processing agenda item {item.id}: {e}")

        logger.info(
            "linking complete",
            linked=result.linked,
            not_found=len(result.not_found),
            ambiguous=len(result.ambiguous),
            errors=len(result.errors),
        )
        return result
