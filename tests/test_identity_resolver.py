"""
Ordinance reference resolution and ordinance-meeting linking
"""

from pipeline.orchestrators.identity_resolver import IdentityResolver


class TestResolveOrdinance:
    def test_exact_match(self, db, seed, today):
        seed.ordinance("2024-15")
        ref = IdentityResolver(db, today=today).resolve_ordinance("Second Reading of Ordinance 2024–15")

        assert ref.ordinance.number == "2024-15"
        assert ref.match_kind == "exact"
        assert not ref.is_ambiguous

    def test_bare_number_resolved_by_year_prefix(self, db, seed, today):
        seed.ordinance("2024-773")
        ref = IdentityResolver(db, today=today).resolve_ordinance("Ordinance No. 773")

        assert ref.ordinance.number == "2024-773"
        assert ref.match_kind == "year_prefix"

    def test_year_prefix_pads_sequence(self, db, seed, today):
        seed.ordinance("2023-015")
        ref = IdentityResolver(db, today=today).resolve_ordinance("15")
        assert ref.ordinance.number == "2023-015"

    def test_most_recent_year_first(self, db, seed, today):
        seed.ordinance("2022-101")
        seed.ordinance("2025-101")
        ref = IdentityResolver(db, today=today).resolve_ordinance("Ordinance 101")
        assert ref.ordinance.number == "2025-101"

    def test_year_window_bounds_fallback(self, db, seed, today):
        seed.ordinance("2019-120")
        ref = IdentityResolver(db, today=today, year_window=3).resolve_ordinance("Ordinance 120")

        assert ref.ordinance.number == "2019-120"
        assert ref.match_kind == "substring"

    def test_substring_match_is_flagged(self, db, seed, today):
        """'73' lands on '173' and must be reported as ambiguous"""
        seed.ordinance("173")
        ref = IdentityResolver(db, today=today).resolve_ordinance("Ordinance 73")

        assert ref.ordinance.number == "173"
        assert ref.match_kind == "substring"
        assert ref.is_ambiguous

    def test_no_match(self, db, seed, today):
        seed.ordinance("800")
        resolver = IdentityResolver(db, today=today)

        assert resolver.resolve_ordinance("Ordinance 999") is None
        assert resolver.resolve_ordinance("Mayor's report") is None


class TestLinkOrdinancesToMeetings:
    def test_links_with_title_actions(self, db, seed, today, make_ordinance_item):
        seed.ordinance("2024-15")
        seed.meeting("m1", "2025-01-14", items=[
            make_ordinance_item("1", "First Reading of Ordinance 2024-15"),
        ])
        seed.meeting("m2", "2025-01-28", items=[
            make_ordinance_item("1", "Second Reading of Ordinance 2024–15"),
            {"item_id": "2", "title": "Public hearing on Ordinance 2024-15", "type": "public_hearing"},
        ])

        result = IdentityResolver(db, today=today).link_ordinances_to_meetings()
        ordinance = db.get_ordinance_by_number("2024-15")
        links = db.ordinances.get_links(ordinance.id)

        assert result.linked == 2
        assert result.errors == []
        assert [(link.meeting_id, link.action) for link in links] == [
            ("m1", "first_reading"),
            ("m2", "second_reading"),
        ]

    def test_rerun_is_idempotent(self, db, seed, today, make_ordinance_item):
        seed.ordinance("800")
        seed.meeting("m1", "2025-01-14", items=[make_ordinance_item("1", "Consider Ordinance 800")])
        resolver = IdentityResolver(db, today=today)

        first = resolver.link_ordinances_to_meetings()
        second = resolver.link_ordinances_to_meetings()

        assert first.linked == second.linked == 1
        assert db.get_stats()["ordinance_meetings"] == 1

    def test_discussed_item_does_not_downgrade_existing_link(self, db, seed, today, make_ordinance_item):
        seed.ordinance("800")
        seed.meeting("m1", "2025-01-14", items=[make_ordinance_item("1", "Consider Ordinance 800")])
        seed.link("800", "m1", "tabled")

        IdentityResolver(db, today=today).link_ordinances_to_meetings()

        ordinance = db.get_ordinance_by_number("800")
        assert db.ordinances.get_link(ordinance.id, "m1").action == "tabled"

    def test_not_found_and_ambiguous_reported(self, db, seed, today, make_ordinance_item):
        seed.ordinance("173")
        seed.meeting("m1", "2025-01-14", items=[
            make_ordinance_item("1", "Consider Ordinance 999"),
            make_ordinance_item("2", "Consider Ordinance 73", order_num=2),
        ])

        result = IdentityResolver(db, today=today).link_ordinances_to_meetings()

        assert result.linked == 1
        assert result.not_found == ["Ordinance 999 (from meeting m1)"]
        assert result.ambiguous == ["Ordinance 73 -> 173 (from meeting m1)"]
