"""Vote Outcome Reconciler - Recorded votes into resolutions and ordinances

Per meeting:
1. Fetch vote outcomes from the vote source (authoritative)
2. Nothing there: fetch the minutes document and ask the document
   extractor for outcomes keyed against the meeting's agenda items
3. Validate every row as a VoteOutcome; invalid rows are dropped and counted
4. Match each outcome to at most one resolution and at most one ordinance
   and apply the motion x result tables

Writes are conditional updates:
- resolutions: only while outcome_verified = 0, and the write latches it
- ordinance status: only while the ordinance is still 'proposed'
- link action: the (ordinance, meeting) link records what the vote did

Each write batch commits before the next external call.
"""

import time
from datetime import date
from typing import Any, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from config import get_logger
from database.models import Meeting, Ordinance, Resolution
from database.transaction import transaction
from exceptions import CivicLedgerError, SourceUnavailableError
from pipeline.matching import (
    canonical_resolution_reference,
    extract_ordinance_number,
    mentions_resolution,
    ordinance_number_matches,
    ordinance_outcome_for_vote,
    resolution_status_for_vote,
)
from pipeline.models import VoteBackfillResult, VoteOutcome, VoteReconcileResult
from pipeline.protocols import (
    DocumentExtractor,
    MinutesSource,
    NullDocumentExtractor,
    NullMinutesSource,
    NullVoteSource,
    VoteSource,
)

logger = get_logger(__name__).bind(component="vote_reconciler")


def match_resolution(
    item_title: str, candidates: Iterable[Resolution]
) -> Optional[Resolution]:
    """First explicit "Resolution {n}" mention, else first bare mention"""
    bare_match = None
    for resolution in candidates:
        explicit, bare = mentions_resolution(item_title, resolution.number)
        if explicit:
            return resolution
        if bare and bare_match is None:
            bare_match = resolution
    return bare_match


def match_ordinance(item_title: str, candidates: Iterable[Ordinance]) -> Optional[Ordinance]:
    """Ordinance named by an "Ordinance {n}" token in the vote text"""
    if "ordinance" not in (item_title or "").lower():
        return None
    extracted = extract_ordinance_number(item_title)
    if not extracted:
        return None
    for ordinance in candidates:
        if ordinance_number_matches(ordinance.number, extracted):
            return ordinance
    return None


class VoteReconciler:
    """Merges recorded votes into resolution and ordinance records"""

    def __init__(
        self,
        db,
        vote_source: Optional[VoteSource] = None,
        minutes_source: Optional[MinutesSource] = None,
        extractor: Optional[DocumentExtractor] = None,
        today: Optional[date] = None,
    ):
        """
        Args:
            db: UnifiedDatabase instance
            vote_source: Authoritative vote source (portal)
            minutes_source: Minutes documents for the fallback path
            extractor: Document extractor for the fallback path
            today: Reference date for "past meeting" (defaults to today)
        """
        self.db = db
        self.vote_source = vote_source or NullVoteSource()
        self.minutes_source = minutes_source or NullMinutesSource()
        self.extractor = extractor or NullDocumentExtractor()
        self.today = today

    # ========== Fetching ==========

    def _validate_outcomes(
        self, rows: List[Any], meeting_id: str, result: VoteReconcileResult
    ) -> List[VoteOutcome]:
        """VoteOutcome objects for valid rows; invalid rows are counted and dropped"""
        if rows is None:
            return []
        if not isinstance(rows, (list, tuple)):
            logger.warning(
                "vote outcomes were not a list",
                meeting_id=meeting_id,
                payload_type=type(rows).__name__,
            )
            result.errors.append(f"unexpected outcome payload: {type(rows).__name__}")
            return []

        outcomes = []
        for row in rows:
            if isinstance(row, VoteOutcome):
                outcomes.append(row)
                continue
            try:
                outcomes.append(VoteOutcome.model_validate(row))
            except PydanticValidationError as e:
                result.invalid_outcomes += 1
                logger.warning(
                    "dropped invalid vote outcome",
                    meeting_id=meeting_id,
                    row=str(row)[:200],
                    error_count=e.error_count(),
                )
        return outcomes

    async def _fetch_outcomes(
        self, meeting: Meeting, result: VoteReconcileResult
    ) -> List[VoteOutcome]:
        """Vote source first; minutes document + extractor when it has nothing"""
        try:
            rows = await self.vote_source.fetch_vote_outcomes(meeting)
            outcomes = self._validate_outcomes(rows, meeting.id, result)
            if outcomes:
                result.source = "vote_source"
                return outcomes
        except SourceUnavailableError as e:
            logger.warning(
                "vote source unavailable, trying document fallback",
                meeting_id=meeting.id,
                error=str(e),
                retryable=e.is_retryable,
            )
            result.errors.append(f"vote source: {e}")
        except Exception as e:  # Intentionally broad: a broken source must not stop the run
            logger.error(
                "vote source crashed, trying document fallback",
                meeting_id=meeting.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result.errors.append(f"vote source: {type(e).__name__}: {e}")

        try:
            document = await self.minutes_source.fetch_minutes_document(meeting)
            if not document:
                logger.debug("no minutes document for fallback", meeting_id=meeting.id)
                return []

            agenda_items = self.db.items.get_agenda_items(meeting.id)
            rows = await self.extractor.extract_outcomes_from_document(document, agenda_items)
        except CivicLedgerError as e:
            logger.warning(
                "document fallback failed",
                meeting_id=meeting.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result.errors.append(f"document fallback: {e}")
            return []
        except Exception as e:  # Intentionally broad: extractor output is untrusted
            logger.error(
                "document fallback crashed",
                meeting_id=meeting.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result.errors.append(f"document fallback: {type(e).__name__}: {e}")
            return []

        outcomes = self._validate_outcomes(rows, meeting.id, result)
        if outcomes:
            result.source = "document"
        return outcomes

    # ========== Applying ==========

    def _resolution_candidates(self, meeting: Meeting) -> List[Resolution]:
        numbers = []
        for item in self.db.items.get_agenda_items(meeting.id):
            if item.type != "resolution" or not item.reference_number:
                continue
            number = canonical_resolution_reference(item.reference_number)
            if number and number not in numbers:
                numbers.append(number)
        return self.db.resolutions.get_unverified_candidates(meeting.id, numbers)

    def _apply_resolution(
        self,
        outcome: VoteOutcome,
        meeting: Meeting,
        candidates: List[Resolution],
        result: VoteReconcileResult,
    ):
        resolution = match_resolution(outcome.item_title, candidates)
        if resolution is None:
            return

        status = resolution_status_for_vote(outcome.motion, outcome.result)
        if self.db.resolutions.apply_vote_outcome(resolution.id, status, meeting.date):
            result.resolutions_updated += 1
            candidates.remove(resolution)
            logger.info(
                "resolution outcome verified",
                number=resolution.number,
                meeting_id=meeting.id,
                motion=outcome.motion,
                vote_result=outcome.result,
                status=status,
            )
        else:
            logger.debug("resolution already verified", number=resolution.number)

    def _apply_ordinance(
        self,
        outcome: VoteOutcome,
        meeting: Meeting,
        candidates: List[Ordinance],
        result: VoteReconcileResult,
    ):
        ordinance = match_ordinance(outcome.item_title, candidates)
        if ordinance is None:
            return

        action, status = ordinance_outcome_for_vote(outcome.motion, outcome.result, outcome.item_title)

        if self.db.ordinances.set_link_action(ordinance.id, meeting.id, action):
            result.links_updated += 1

        if status is None:
            logger.debug(
                "ordinance vote recorded on link",
                number=ordinance.number,
                meeting_id=meeting.id,
                action=action,
            )
            return

        adopted_date = meeting.date if status == "adopted" else None
        if self.db.ordinances.apply_vote_status(ordinance.id, status, adopted_date):
            result.ordinances_updated += 1
            logger.info(
                "ordinance status from vote",
                number=ordinance.number,
                meeting_id=meeting.id,
                motion=outcome.motion,
                vote_result=outcome.result,
                status=status,
            )
        else:
            logger.debug(
                "ordinance no longer proposed, status kept",
                number=ordinance.number,
                vote_status=status,
            )

    def _resolve_meeting(self, meeting_ref: Union[str, Meeting]) -> Optional[Meeting]:
        if isinstance(meeting_ref, Meeting):
            return meeting_ref
        return self.db.meetings.get_meeting(meeting_ref)

    async def reconcile_vote_outcomes(
        self, meeting_ref: Union[str, Meeting]
    ) -> VoteReconcileResult:
        """Fetch and apply recorded votes for one meeting

        Args:
            meeting_ref: Meeting id or Meeting

        Returns:
            VoteReconcileResult; source failures are reported in errors
        """
        meeting = self._resolve_meeting(meeting_ref)
        meeting_id = meeting.id if meeting else str(meeting_ref)
        result = VoteReconcileResult(meeting_id=meeting_id)

        if meeting is None:
            result.errors.append(f"Meeting not found: {meeting_id}")
            return result

        if meeting.date > (self.today or date.today()):
            result.errors.append(f"Meeting {meeting_id} has not happened yet")
            return result

        outcomes = await self._fetch_outcomes(meeting, result)
        result.outcomes_found = len(outcomes)
        if not outcomes:
            logger.info("no vote outcomes found", meeting_id=meeting_id)
            return result

        resolution_candidates = self._resolution_candidates(meeting)
        ordinance_candidates = self.db.ordinances.get_linked_to_meeting(meeting.id)

        for outcome in outcomes:
            try:
                with transaction(self.db.conn):
                    self._apply_resolution(outcome, meeting, resolution_candidates, result)
                    self._apply_ordinance(outcome, meeting, ordinance_candidates, result)
            except CivicLedgerError as e:
                logger.error(
                    "failed to apply vote outcome",
                    meeting_id=meeting_id,
                    item_title=outcome.item_title[:80],
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.errors.append(f"{outcome.item_title[:80]}: {e}")

        logger.info(
            "reconciled meeting votes",
            meeting_id=meeting_id,
            source=result.source,
            outcomes_found=result.outcomes_found,
            invalid_outcomes=result.invalid_outcomes,
            resolutions_updated=result.resolutions_updated,
            ordinances_updated=result.ordinances_updated,
            links_updated=result.links_updated,
        )
        return result

    async def reconcile_pending_meetings(
        self, limit: Optional[int] = None, deadline: Optional[float] = None
    ) -> VoteBackfillResult:
        """Reconcile every past meeting that still has outcomes to verify

        Meetings are processed newest first, one at a time. Once the
        deadline (a time.monotonic() value) passes, no further meeting is
        started; the meeting in progress finishes its writes.

        Args:
            limit: Maximum number of meetings to process
            deadline: Monotonic clock value after which no new fetch starts
        """
        backfill = VoteBackfillResult()
        meetings = self.db.meetings.get_meetings_pending_votes(today=self.today, limit=limit)
        logger.info("reconciling pending meetings", meetings=len(meetings), limit=limit)

        for index, meeting in enumerate(meetings):
            if deadline is not None and time.monotonic() >= deadline:
                backfill.deadline_reached = True
                backfill.meetings_remaining = len(meetings) - index
                logger.warning(
                    "deadline reached, stopping vote backfill",
                    processed=backfill.meetings_processed,
                    remaining=backfill.meetings_remaining,
                )
                break

            try:
                result = await self.reconcile_vote_outcomes(meeting)
            except Exception as e:  # Intentionally broad: one meeting never blocks the next
                logger.error(
                    "meeting vote reconciliation failed",
                    meeting_id=meeting.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                backfill.meetings_processed += 1
                backfill.errors.append(f"{meeting.id}: {e}")
                continue

            backfill.add(result)

        logger.info(
            "vote backfill complete",
            meetings_processed=backfill.meetings_processed,
            meetings_remaining=backfill.meetings_remaining,
            resolutions_updated=backfill.resolutions_updated,
            ordinances_updated=backfill.ordinances_updated,
            errors=len(backfill.errors),
        )
        return backfill
