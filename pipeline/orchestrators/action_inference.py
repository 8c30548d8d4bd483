"""Action Inference Engine - Fill in reading stages for 'discussed'-only ordinances

Agendas often say "Consider Ordinance 800" with no reading keyword, so the
link is recorded as 'discussed'. For an ordinance whose every link is still
'discussed', the chronology implies the stages:

- one meeting: it was the first reading
- two or more meetings: the first was the first reading; the second is the
  adoption only when the ordinance is independently confirmed adopted and
  the adoption date is within the tolerance of that meeting

Ordinance status is never changed here. An ordinance with any explicit
action is skipped, so a second run finds nothing to do.
"""

from typing import Optional

from config import config, get_logger
from database.models import Ordinance
from database.transaction import transaction
from exceptions import CivicLedgerError
from pipeline.models import DateMismatch, InferenceResult

logger = get_logger(__name__).bind(component="action_inference")


class ActionInferenceEngine:
    """Derives link actions from the order of an ordinance's meetings"""

    def __init__(self, db, tolerance_days: Optional[int] = None):
        """
        Args:
            db: UnifiedDatabase instance
            tolerance_days: Max days between the second meeting and a
                confirmed adoption date (defaults to config)
        """
        self.db = db
        self.tolerance_days = (
            config.ADOPTION_TOLERANCE_DAYS if tolerance_days is None else tolerance_days
        )

    def infer_readings_from_discussed(
        self, ordinance_number: Optional[str] = None
    ) -> InferenceResult:
        """Infer first_reading/adopted links for 'discussed'-only ordinances

        Args:
            ordinance_number: Limit the pass to one ordinance

        Returns:
            InferenceResult with the number of links changed, the ordinances
            touched and any adoption-date mismatches
        """
        result = InferenceResult()

        candidates = self.db.ordinances.get_discussed_only(ordinance_number)
        logger.info(
            "inferring readings",
            candidates=len(candidates),
            ordinance_number=ordinance_number,
        )

        for ordinance in candidates:
            try:
                with transaction(self.db.conn):
                    updated = self._infer_for_ordinance(ordinance, result)
            except CivicLedgerError as e:
                logger.error(
                    "inference failed for ordinance",
                    number=ordinance.number,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.errors.append(f"Ordinance {ordinance.number}: {e}")
                continue

            if updated:
                result.updated += updated
                result.ordinances.append(ordinance.number)

        logger.info(
            "inference complete",
            updated=result.updated,
            ordinances=len(result.ordinances),
            date_mismatches=len(result.date_mismatches),
        )
        return result

    def _mark(self, ordinance: Ordinance, meeting_id: str, action: str) -> int:
        """Guarded write: only a link that is still 'discussed' changes"""
        changed = self.db.ordinances.update_link_action_if(
            ordinance.id, meeting_id, action, expected="discussed"
        )
        return 1 if changed else 0

    def _infer_for_ordinance(self, ordinance: Ordinance, result: InferenceResult) -> int:
        links = self.db.ordinances.get_links(ordinance.id)
        if not links:
            return 0

        first = links[0]
        updated = self._mark(ordinance, first.meeting_id, "first_reading")

        if len(links) == 1:
            logger.debug("inferred first reading", number=ordinance.number, reason="single_meeting")
            return updated

        if ordinance.status != "adopted" or ordinance.adopted_date is None:
            logger.debug("inferred first reading", number=ordinance.number, reason="not_confirmed_adopted")
            return updated

        second = links[1]
        days_apart = abs((second.meeting_date - ordinance.adopted_date).days)

        if days_apart <= self.tolerance_days:
            updated += self._mark(ordinance, second.meeting_id, "adopted")
            logger.debug(
                "inferred first reading and adoption",
                number=ordinance.number,
                adopted_meeting_id=second.meeting_id,
            )
            return updated

        result.date_mismatches.append(
            DateMismatch(
                ordinance_number=ordinance.number,
                meeting_id=second.meeting_id,
                meeting_date=second.meeting_date,
                adopted_date=ordinance.adopted_date,
                days_apart=days_apart,
            )
        )
        logger.info(
            "adoption date mismatch",
            number=ordinance.number,
            meeting_id=second.meeting_id,
            meeting_date=second.meeting_date.isoformat(),
            adopted_date=ordinance.adopted_date.isoformat(),
            days_apart=days_apart,
        )
        return updated
