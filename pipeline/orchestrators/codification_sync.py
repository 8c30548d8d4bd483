"""Codification Sync - Supplement history from the code library

The codification library lists, per supplement, each ordinance it
codified or omitted together with its adoption date. That is the
independent confirmation action inference relies on:

- known ordinance not yet adopted (or without a disposition): marked
  adopted, disposition recorded, adopted_date filled if missing
- unknown ordinance: created as adopted with a placeholder title that the
  next agenda mention replaces
"""

from typing import Any, Dict, Iterable, Union

from pydantic import ValidationError as PydanticValidationError

from config import get_logger
from database.models import Ordinance
from database.repositories.ordinances import generate_ordinance_id
from database.transaction import transaction
from exceptions import CivicLedgerError
from pipeline.matching import canonical_ordinance_reference
from pipeline.models import CodificationEntry, CodificationSyncResult

logger = get_logger(__name__).bind(component="codification_sync")


class CodificationSync:
    """Applies codification supplement entries to the ordinance store"""

    def __init__(self, db):
        self.db = db

    def sync_codification_supplements(
        self, entries: Iterable[Union[CodificationEntry, Dict[str, Any]]]
    ) -> CodificationSyncResult:
        """Apply supplement history entries

        Args:
            entries: CodificationEntry objects or raw dicts

        Returns:
            CodificationSyncResult with created/updated/skipped counts
        """
        result = CodificationSyncResult()

        for raw in entries:
            try:
                entry = raw if isinstance(raw, CodificationEntry) else CodificationEntry.model_validate(raw)
            except PydanticValidationError as e:
                result.errors.append(f"Invalid supplement entry {str(raw)[:80]}: {e.error_count()} errors")
                logger.warning("dropped invalid supplement entry", entry=str(raw)[:200])
                continue

            number = canonical_ordinance_reference(entry.ordinance_number) or entry.ordinance_number

            try:
                with transaction(self.db.conn):
                    outcome = self._apply_entry(number, entry)
            except CivicLedgerError as e:
                logger.error(
                    "supplement entry failed",
                    number=number,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.errors.append(f"Ordinance {number}: {e}")
                continue

            if outcome == "created":
                result.created += 1
            elif outcome == "updated":
                result.updated += 1
            else:
                result.skipped += 1
                continue

            if entry.disposition == "codified":
                result.codified += 1
            else:
                result.omitted += 1

        logger.info(
            "codification sync complete",
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result

    def _apply_entry(self, number: str, entry: CodificationEntry) -> str:
        existing = self.db.ordinances.get_by_number(number)

        if existing is None:
            self.db.ordinances.store_ordinance(
                Ordinance(
                    id=generate_ordinance_id(number),
                    number=number,
                    title=f"Ordinance No. {number}",
                    status="adopted",
                    adopted_date=entry.adopted_date,
                    disposition=entry.disposition,
                )
            )
            logger.info("created ordinance from supplement", number=number, disposition=entry.disposition)
            return "created"

        if self.db.ordinances.apply_codification(existing.id, entry.disposition, entry.adopted_date):
            logger.info(
                "ordinance confirmed by supplement",
                number=number,
                previous_status=existing.status,
                disposition=entry.disposition,
            )
            return "updated"

        return "skipped"
