"""
Fixture tables for the pattern matchers

Each matcher is pure, so every case is a single input/expected pair.
"""

import pytest

from pipeline.matching import (
    canonical_ordinance_reference,
    canonical_resolution_reference,
    classify_outcome_text,
    clean_resolution_title,
    detect_ordinance_action,
    detect_status_from_agenda,
    extract_ordinance_number,
    extract_ordinance_title,
    extract_resolution_number,
    mentions_resolution,
    mentions_second_reading,
    normalize_dashes,
    ordinance_number_matches,
    ordinance_outcome_for_vote,
    parse_reference_tokens,
    resolution_status_for_vote,
)
from pipeline.models import ReferenceToken


class TestNormalizeDashes:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2024–15", "2024-15"),  # en dash
            ("2024—15", "2024-15"),  # em dash
            ("2024-15", "2024-15"),
            ("no dashes", "no dashes"),
        ],
    )
    def test_dash_variants(self, text, expected):
        assert normalize_dashes(text) == expected


class TestExtractOrdinanceNumber:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Second Reading of Ordinance 2024-15", "2024-15"),
            ("Second Reading of Ordinance 2024–15", "2024-15"),
            ("Ordinance #724 to Consider a Variance", "724"),
            ("Ordinance No. 773", "773"),
            ("ORDINANCE 800 first reading", "800"),
            ("Rezoning request per 2023-8", "2023-8"),
            ("Consider Resolution 25-040", None),
            ("", None),
        ],
    )
    def test_table(self, text, expected):
        assert extract_ordinance_number(text) == expected

    def test_year_form_preferred_over_bare(self):
        """'Ordinance 2024-15' must not be read as bare 2024"""
        assert extract_ordinance_number("Ordinance 2024-15 amending 12") == "2024-15"

    @pytest.mark.parametrize(
        "reference,expected",
        [
            ("724", "724"),
            ("#2024-15", "2024-15"),
            ("No. 773", "773"),
            ("Ordinance 2024–773", "2024-773"),
            ("", None),
            ("pending", None),
        ],
    )
    def test_reference_field(self, reference, expected):
        assert canonical_ordinance_reference(reference) == expected


class TestExtractResolutionNumber:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Consider Resolution 25-040 to approve", "25-040"),
            ("Resolution No. 2024-112", "2024-112"),
            ("Resolution 25–012", "25-012"),
            ("25-012", "25-012"),
            ("Ordinance 800", None),
        ],
    )
    def test_table(self, text, expected):
        assert extract_resolution_number(text) == expected

    def test_reference_falls_back_to_trimmed_text(self):
        assert canonical_resolution_reference(" R-7 ") == "R-7"
        assert canonical_resolution_reference("  ") is None


class TestParseReferenceTokens:
    def test_resolution_item(self):
        tokens = parse_reference_tokens("Consider Resolution 25-040", "25-040", "resolution")
        assert tokens == [ReferenceToken(kind="resolution", number="25-040")]

    def test_ordinance_item_reference_preferred(self):
        tokens = parse_reference_tokens("Ordinance 999 first reading", "2024-15", "ordinance")
        assert tokens == [ReferenceToken(kind="ordinance", number="2024-15")]

    def test_ordinance_item_title_fallback(self):
        tokens = parse_reference_tokens("Second Reading of Ordinance 724", None, "ordinance")
        assert tokens == [ReferenceToken(kind="ordinance", number="724")]

    def test_public_hearing_mentioning_ordinance(self):
        tokens = parse_reference_tokens("Public Hearing on Ordinance 2024-9", None, "public_hearing")
        assert tokens == [ReferenceToken(kind="ordinance", number="2024-9")]

    def test_other_item_without_reference(self):
        assert parse_reference_tokens("Mayor's report", None, "report") == []


class TestDetectOrdinanceAction:
    @pytest.mark.parametrize(
        "title,expected",
        [
            ("First Reading of Ordinance 800", "first_reading"),
            ("Second Reading of Ordinance 800", "second_reading"),
            ("Second Reading and Adoption of Ordinance 800", "second_reading"),
            ("Adopt Ordinance 800", "adopted"),
            ("Introduction of Ordinance 800", "introduced"),
            ("Amend Ordinance 800", "amended"),
            ("Motion to table Ordinance 800", "tabled"),
            ("Deny Ordinance 800", "denied"),
            ("Ordinance 800 denied", "denied"),
            ("Withdraw Ordinance 800", "withdrawn"),
            ("Consider Ordinance 800", "discussed"),
        ],
    )
    def test_table(self, title, expected):
        assert detect_ordinance_action(title) == expected


class TestClassifyOutcomeText:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("approved 4-1", "adopted"),
            ("Adopted unanimously", "adopted"),
            ("PASSED", "adopted"),
            ("Rejected", "rejected"),
            ("denied 2-3", "rejected"),
            ("Tabled to next meeting", "tabled"),
            ("Discussion only", "pending_minutes"),
            ("", "pending_minutes"),
        ],
    )
    def test_table(self, text, expected):
        assert classify_outcome_text(text) == expected


class TestCleanResolutionTitle:
    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Consider Resolution 25-040 to approve the budget", "Approve the budget"),
            ("Consider Resolution 25–040 to approve the budget", "Approve the budget"),
            ("consider resolution 25-040 authorizing a grant", "Authorizing a grant"),
            ("Appointment to the planning board", "Appointment to the planning board"),
            ("Consider Resolution 25-040", "Consider Resolution 25-040"),
        ],
    )
    def test_table(self, title, expected):
        assert clean_resolution_title(title) == expected


class TestOrdinanceTitles:
    @pytest.mark.parametrize(
        "agenda_title,expected",
        [
            (
                "Public Hearing and Second Reading of Ordinance 724 to Consider a Variance Request at 4627 Atlanta Highway",
                "A Variance Request at 4627 Atlanta Highway",
            ),
            ("Consider Ordinance 2024-15: Amending the sign code", "Amending the sign code"),
            ("Ordinance 800 - Parking fees", "Parking fees"),
        ],
    )
    def test_extract_title(self, agenda_title, expected):
        assert extract_ordinance_title(agenda_title) == expected

    def test_empty_title_uses_number(self):
        assert extract_ordinance_title("", "800") == "Ordinance 800"

    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Second Reading of Ordinance 724", "adopted"),
            ("Adopt Ordinance 724", "adopted"),
            ("First Reading of Ordinance 724", "proposed"),
            ("Introduction of Ordinance 724", "proposed"),
        ],
    )
    def test_status_from_agenda(self, title, expected):
        assert detect_status_from_agenda(title) == expected

    def test_mentions_second_reading(self):
        assert mentions_second_reading("Ordinance 773 SECOND READING")
        assert not mentions_second_reading("Ordinance 773 first reading")


class TestVoteTables:
    @pytest.mark.parametrize(
        "motion,result,expected",
        [
            ("table", "passed", "tabled"),
            ("deny", "passed", "rejected"),
            ("approve", "passed", "adopted"),
            ("unknown", "passed", "adopted"),
            ("approve", "failed", "rejected"),
            ("deny", "failed", "rejected"),
            ("approve", "tabled", "tabled"),
        ],
    )
    def test_resolution_status(self, motion, result, expected):
        assert resolution_status_for_vote(motion, result) == expected

    @pytest.mark.parametrize(
        "motion,result,title,expected",
        [
            ("deny", "passed", "Motion to deny Ordinance 773 Second Reading", ("denied", "denied")),
            ("approve", "passed", "Ordinance 773 Second Reading", ("adopted", "adopted")),
            ("approve", "passed", "Ordinance 773 First Reading", ("first_reading_passed", None)),
            ("approve", "failed", "Ordinance 773", ("failed", None)),
            ("unknown", "tabled", "Ordinance 773", ("tabled", "tabled")),
            ("table", "passed", "Ordinance 773", ("voted", None)),
        ],
    )
    def test_ordinance_outcome(self, motion, result, title, expected):
        assert ordinance_outcome_for_vote(motion, result, title) == expected


class TestVoteTextMatching:
    def test_explicit_resolution_mention(self):
        assert mentions_resolution("Resolution No. 25-040 approving", "25-040") == (True, True)
        assert mentions_resolution("Resolution 25–040", "25-040") == (True, True)

    def test_bare_resolution_mention(self):
        assert mentions_resolution("Item 25-040 consent", "25-040") == (False, True)

    def test_longer_number_is_not_explicit(self):
        explicit, _ = mentions_resolution("Resolution 25-0401", "25-040")
        assert not explicit

    @pytest.mark.parametrize(
        "candidate,extracted,expected",
        [
            ("773", "773", True),
            ("2024-15", "15", True),
            ("2024-015", "15", True),
            ("2024-115", "15", False),
            ("2024-15", "2024-15", True),
            ("2023-15", "2024-15", False),
            ("173", "73", False),
        ],
    )
    def test_ordinance_number_matches(self, candidate, extracted, expected):
        assert ordinance_number_matches(candidate, extracted) is expected
