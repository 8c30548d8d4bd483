"""
Reading-stage inference for ordinances whose links are all 'discussed'
"""

from datetime import date

from pipeline.orchestrators.action_inference import ActionInferenceEngine


def _actions(db, number):
    ordinance = db.get_ordinance_by_number(number)
    return {link.meeting_id: link.action for link in db.ordinances.get_links(ordinance.id)}


class TestInferReadingsFromDiscussed:
    def test_single_meeting_becomes_first_reading(self, db, seed):
        seed.meeting("m1", "2024-01-04")
        seed.ordinance("800")
        seed.link("800", "m1")

        result = ActionInferenceEngine(db, tolerance_days=7).infer_readings_from_discussed()

        assert result.updated == 1
        assert result.ordinances == ["800"]
        assert _actions(db, "800") == {"m1": "first_reading"}
        assert db.get_ordinance_by_number("800").status == "proposed"

    def test_confirmed_adoption_within_tolerance(self, db, seed):
        seed.meeting("m1", "2024-01-04")
        seed.meeting("m2", "2024-02-01")
        seed.ordinance("800", status="adopted", adopted_date=date(2024, 2, 3))
        seed.link("800", "m1")
        seed.link("800", "m2")

        result = ActionInferenceEngine(db, tolerance_days=7).infer_readings_from_discussed()

        assert result.updated == 2
        assert result.date_mismatches == []
        assert _actions(db, "800") == {"m1": "first_reading", "m2": "adopted"}

    def test_adoption_date_outside_tolerance_is_reported(self, db, seed):
        seed.meeting("m1", "2024-01-04")
        seed.meeting("m2", "2024-02-01")
        seed.ordinance("800", status="adopted", adopted_date=date(2024, 3, 15))
        seed.link("800", "m1")
        seed.link("800", "m2")

        result = ActionInferenceEngine(db, tolerance_days=7).infer_readings_from_discussed()

        assert _actions(db, "800") == {"m1": "first_reading", "m2": "discussed"}
        assert len(result.date_mismatches) == 1
        mismatch = result.date_mismatches[0]
        assert mismatch.meeting_id == "m2"
        assert mismatch.days_apart == 43

    def test_unconfirmed_ordinance_only_gets_first_reading(self, db, seed):
        seed.meeting("m1", "2024-01-04")
        seed.meeting("m2", "2024-02-01")
        seed.ordinance("800")
        seed.link("800", "m1")
        seed.link("800", "m2")

        ActionInferenceEngine(db, tolerance_days=7).infer_readings_from_discussed()

        assert _actions(db, "800") == {"m1": "first_reading", "m2": "discussed"}

    def test_rerun_is_noop(self, db, seed):
        seed.meeting("m1", "2024-01-04")
        seed.ordinance("800")
        seed.link("800", "m1")
        engine = ActionInferenceEngine(db, tolerance_days=7)

        engine.infer_readings_from_discussed()
        second = engine.infer_readings_from_discussed()

        assert second.updated == 0
        assert second.ordinances == []

    def test_explicit_action_excludes_ordinance(self, db, seed):
        seed.meeting("m1", "2024-01-04")
        seed.meeting("m2", "2024-02-01")
        seed.ordinance("800")
        seed.link("800", "m1")
        seed.link("800", "m2", "second_reading")

        result = ActionInferenceEngine(db, tolerance_days=7).infer_readings_from_discussed()

        assert result.updated == 0
        assert _actions(db, "800") == {"m1": "discussed", "m2": "second_reading"}

    def test_single_ordinance_filter(self, db, seed):
        seed.meeting("m1", "2024-01-04")
        seed.ordinance("800")
        seed.ordinance("801")
        seed.link("800", "m1")
        seed.link("801", "m1")

        result = ActionInferenceEngine(db, tolerance_days=7).infer_readings_from_discussed("801")

        assert result.ordinances == ["801"]
        assert _actions(db, "800") == {"m1": "discussed"}
