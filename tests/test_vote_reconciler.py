"""
Vote outcome reconciliation

Uses in-memory vote/minutes sources; every meeting is seeded in the past
relative to the pinned TODAY unless a test says otherwise.
"""

import asyncio
import time
from datetime import date

import pytest

from database.models import Resolution
from fakes import FakeExtractor, FakeMinutesSource, FakeVoteSource, MisbehavingExtractor
from pipeline.orchestrators.vote_reconciler import VoteReconciler, match_resolution


def _vote(title, motion="approve", result="passed", **extra):
    row = {"itemTitle": title, "motion": motion, "result": result}
    row.update(extra)
    return row


class TestMatchResolution:
    def _candidates(self, *numbers):
        return [Resolution(id=f"resolution-{n}", number=n, title="t") for n in numbers]

    def test_explicit_mention_beats_earlier_bare_mention(self):
        candidates = self._candidates("25-041", "25-040")
        matched = match_resolution("Consent items 25-041; Resolution 25-040 approved", candidates)
        assert matched.number == "25-040"

    def test_bare_mention_used_when_nothing_explicit(self):
        candidates = self._candidates("25-040", "25-041")
        assert match_resolution("Consent item 25-041", candidates).number == "25-041"

    def test_no_mention(self):
        assert match_resolution("Approve the minutes", self._candidates("25-040")) is None


class TestReconcileVoteOutcomes:
    def test_denial_of_second_reading(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        seed.ordinance("773")
        seed.link("773", "m1")
        source = FakeVoteSource({"m1": [_vote("Motion to deny Ordinance 773 Second Reading", motion="deny")]})

        result = asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_vote_outcomes("m1"))
        ordinance = db.get_ordinance_by_number("773")

        assert result.source == "vote_source"
        assert result.ordinances_updated == 1
        assert result.links_updated == 1
        assert ordinance.status == "denied"
        assert db.ordinances.get_link(ordinance.id, "m1").action == "denied"

    def test_second_reading_approval_adopts_with_meeting_date(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        seed.ordinance("2024-15")
        seed.link("2024-15", "m1")
        source = FakeVoteSource({"m1": [_vote("Ordinance 15 second reading")]})

        asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_vote_outcomes("m1"))
        ordinance = db.get_ordinance_by_number("2024-15")

        assert ordinance.status == "adopted"
        assert ordinance.adopted_date == date(2025, 3, 4)

    def test_first_reading_recorded_on_link_only(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        seed.ordinance("800")
        seed.link("800", "m1")
        source = FakeVoteSource({"m1": [_vote("Ordinance 800 first reading")]})

        result = asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_vote_outcomes("m1"))
        ordinance = db.get_ordinance_by_number("800")

        assert result.ordinances_updated == 0
        assert ordinance.status == "proposed"
        assert db.ordinances.get_link(ordinance.id, "m1").action == "first_reading_passed"

    def test_terminal_ordinance_status_kept(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        seed.ordinance("773", status="adopted", adopted_date=date(2025, 2, 18))
        seed.link("773", "m1")
        source = FakeVoteSource({"m1": [_vote("Ordinance 773 Second Reading", motion="deny")]})

        asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_vote_outcomes("m1"))
        ordinance = db.get_ordinance_by_number("773")

        assert ordinance.status == "adopted"
        assert ordinance.adopted_date == date(2025, 2, 18)

    def test_resolution_outcome_latches(self, db, seed, today, make_resolution_item):
        seed.meeting("m1", "2025-03-04", items=[make_resolution_item("1", "25-040")])
        seed.resolution("25-040", meeting_id="m1")
        source = FakeVoteSource({"m1": [
            _vote("Resolution 25-040 budget"),
            _vote("Resolution 25-040 budget reconsidered", motion="deny"),
        ]})
        reconciler = VoteReconciler(db, vote_source=source, today=today)

        first = asyncio.run(reconciler.reconcile_vote_outcomes("m1"))
        second = asyncio.run(reconciler.reconcile_vote_outcomes("m1"))
        resolution = db.get_resolution_by_number("25-040")

        assert first.resolutions_updated == 1
        assert second.resolutions_updated == 0
        assert resolution.status == "adopted"
        assert resolution.adopted_date == date(2025, 3, 4)
        assert resolution.outcome_verified is True

    def test_resolution_listed_on_agenda_is_candidate(self, db, seed, today, make_resolution_item):
        seed.meeting("m0", "2025-02-18")
        seed.meeting("m1", "2025-03-04", items=[make_resolution_item("1", "25-040")])
        seed.resolution("25-040", meeting_id="m0")
        source = FakeVoteSource({"m1": [_vote("Resolution 25-040", motion="table")]})

        asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_vote_outcomes("m1"))

        resolution = db.get_resolution_by_number("25-040")
        assert resolution.status == "tabled"
        assert resolution.adopted_date is None

    def test_document_fallback(self, db, seed, today, make_resolution_item):
        seed.meeting("m1", "2025-03-04", items=[make_resolution_item("1", "25-040")])
        seed.resolution("25-040", meeting_id="m1")
        minutes = FakeMinutesSource({"m1": b"minutes-m1"})
        extractor = FakeExtractor(outcomes={b"minutes-m1": [_vote("Resolution 25-040", result="failed")]})

        result = asyncio.run(
            VoteReconciler(
                db, vote_source=FakeVoteSource(), minutes_source=minutes, extractor=extractor, today=today
            ).reconcile_vote_outcomes("m1")
        )

        assert result.source == "document"
        assert result.resolutions_updated == 1
        assert db.get_resolution_by_number("25-040").status == "rejected"
        assert [item.id for item in extractor.seen_items[0]] == ["m1_1"]

    def test_vote_source_rows_skip_fallback(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        minutes = FakeMinutesSource({"m1": b"minutes-m1"})
        source = FakeVoteSource({"m1": [_vote("Approve the minutes")]})

        asyncio.run(
            VoteReconciler(db, vote_source=source, minutes_source=minutes, today=today).reconcile_vote_outcomes("m1")
        )

        assert minutes.calls == []

    def test_invalid_rows_dropped(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        seed.ordinance("773")
        seed.link("773", "m1")
        source = FakeVoteSource({"m1": [
            {"itemTitle": "   ", "result": "passed"},
            {"itemTitle": "Ordinance 773", "result": "maybe"},
            {"itemTitle": "Ordinance 773", "result": "passed", "yesCount": -1},
            _vote("Ordinance 773 second reading", motion="Approved"),
        ]})

        result = asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_vote_outcomes("m1"))

        assert result.invalid_outcomes == 3
        assert result.outcomes_found == 1
        assert db.get_ordinance_by_number("773").status == "adopted"

    def test_source_failure_reported(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        source = FakeVoteSource(failing=["m1"])

        result = asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_vote_outcomes("m1"))

        assert result.source == "none"
        assert len(result.errors) == 1
        assert result.errors[0].startswith("vote source:")

    def test_extractor_failure_reported(self, db, seed, today):
        seed.meeting("m1", "2025-03-04")
        minutes = FakeMinutesSource({"m1": b"minutes-m1"})

        result = asyncio.run(
            VoteReconciler(
                db, minutes_source=minutes, extractor=FakeExtractor(fail=True), today=today
            ).reconcile_vote_outcomes("m1")
        )

        assert len(result.errors) == 1
        assert result.errors[0].startswith("document fallback: extractor unavailable")

    def test_unknown_and_future_meetings(self, db, seed, today):
        seed.meeting("m9", "2025-06-17")
        source = FakeVoteSource()
        reconciler = VoteReconciler(db, vote_source=source, today=today)

        missing = asyncio.run(reconciler.reconcile_vote_outcomes("nope"))
        future = asyncio.run(reconciler.reconcile_vote_outcomes("m9"))

        assert missing.errors == ["Meeting not found: nope"]
        assert future.errors == ["Meeting m9 has not happened yet"]
        assert source.calls == []


class TestReconcilePendingMeetings:
    def _seed_backlog(self, seed):
        for meeting_id, meeting_date, number in [
            ("m1", "2025-03-04", "25-040"),
            ("m2", "2025-04-01", "25-041"),
            ("m3", "2025-05-06", "25-042"),
        ]:
            seed.meeting(meeting_id, meeting_date)
            seed.resolution(number, meeting_id=meeting_id)

    def test_failure_isolated_per_meeting(self, db, seed, today):
        self._seed_backlog(seed)
        source = FakeVoteSource(
            {"m1": [_vote("Resolution 25-040")], "m3": [_vote("Resolution 25-042")]},
            failing=["m2"],
        )

        backfill = asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_pending_meetings())

        assert source.calls == ["m3", "m2", "m1"]
        assert backfill.meetings_processed == 3
        assert backfill.resolutions_updated == 2
        assert len(backfill.errors) == 1
        assert backfill.errors[0].startswith("m2: vote source:")

    def test_limit(self, db, seed, today):
        self._seed_backlog(seed)
        source = FakeVoteSource()

        backfill = asyncio.run(VoteReconciler(db, vote_source=source, today=today).reconcile_pending_meetings(limit=2))

        assert source.calls == ["m3", "m2"]
        assert backfill.meetings_processed == 2

    def test_deadline_stops_before_next_meeting(self, db, seed, today):
        self._seed_backlog(seed)
        source = FakeVoteSource()

        backfill = asyncio.run(
            VoteReconciler(db, vote_source=source, today=today).reconcile_pending_meetings(
                deadline=time.monotonic() - 1
            )
        )

        assert backfill.deadline_reached is True
        assert backfill.meetings_processed == 0
        assert backfill.meetings_remaining == 3
        assert source.calls == []

    def test_verified_meetings_leave_backlog(self, db, seed, today):
        self._seed_backlog(seed)
        source = FakeVoteSource({"m3": [_vote("Resolution 25-042")]})
        reconciler = VoteReconciler(db, vote_source=source, today=today)

        asyncio.run(reconciler.reconcile_pending_meetings())

        pending = db.meetings.get_meetings_pending_votes(today)
        assert [m.id for m in pending] == ["m2", "m1"]


class TestUnreliableExtractor:
    def _seed_two_meetings(self, seed):
        for meeting_id, meeting_date, number in [("m1", "2025-03-04", "801"), ("m2", "2025-04-01", "802")]:
            seed.meeting(meeting_id, meeting_date)
            seed.ordinance(number)
            seed.link(number, meeting_id)
        return FakeMinutesSource({"m1": b"minutes-m1", "m2": b"minutes-m2"})

    @pytest.mark.parametrize(
        "extractor,message",
        [
            (MisbehavingExtractor(error=ValueError("model returned prose")), "document fallback: ValueError"),
            (MisbehavingExtractor(error=KeyError("outcomes")), "document fallback: KeyError"),
            (MisbehavingExtractor(payload=42), "unexpected outcome payload: int"),
        ],
    )
    def test_every_meeting_still_processed(self, db, seed, today, extractor, message):
        minutes = self._seed_two_meetings(seed)
        reconciler = VoteReconciler(db, minutes_source=minutes, extractor=extractor, today=today)

        backfill = asyncio.run(reconciler.reconcile_pending_meetings())

        assert backfill.meetings_processed == 2
        assert minutes.calls == ["m2", "m1"]
        assert len(backfill.errors) == 2
        assert all(message in error for error in backfill.errors)
        assert db.get_ordinance_by_number("801").status == "proposed"

    def test_vote_source_crash_falls_back_to_document(self, db, seed, today):
        class CrashingSource:
            async def fetch_vote_outcomes(self, meeting):
                raise RuntimeError("portal client bug")

        seed.meeting("m1", "2025-03-04")
        seed.resolution("25-040", meeting_id="m1")
        minutes = FakeMinutesSource({"m1": b"minutes-m1"})
        extractor = FakeExtractor(outcomes={b"minutes-m1": [_vote("Resolution 25-040")]})

        result = asyncio.run(
            VoteReconciler(
                db, vote_source=CrashingSource(), minutes_source=minutes, extractor=extractor, today=today
            ).reconcile_vote_outcomes("m1")
        )

        assert result.source == "document"
        assert result.resolutions_updated == 1
        assert result.errors == ["vote source: RuntimeError: portal client bug"]
