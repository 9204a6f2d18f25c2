"""Tests for the red-flag rule engine."""

import pytest

from conftest import NOW, visits
from dashboard import SalesDashboard
from errors import ValidationError
from metrics import SalesmanMetrics, SalesmanReport
from red_flags import (
    RED_FLAG_RULES,
    RULE_DEFINITIONS,
    count_red_flags_by_severity,
    detect_red_flags,
    get_all_red_flags_for_date,
    red_flag_history,
)


def _metrics(visit_count: int, amount: float = 0.0, day: str = "2024-06-03", sid: str = "s1") -> SalesmanMetrics:
    return SalesmanMetrics(
        salesman_id=sid, salesman_code=sid.upper(), salesman_name=f"Sales {sid}", date=day,
        visit_count=visit_count, total_sales_amount=amount,
    )


def _codes(flags) -> list[str]:
    return [f.code for f in flags]


class TestLowEffectiveness:
    def test_six_visits_no_sales(self):
        flags = detect_red_flags(_metrics(6, 0.0))
        assert _codes(flags) == ["RF_LOW_EFFECTIVENESS"]
        assert flags[0].severity == "high"
        assert flags[0].title == RULE_DEFINITIONS["RF_LOW_EFFECTIVENESS"]["title"]

    @pytest.mark.parametrize("amount", [0.0, 10_000.0])
    def test_four_visits_never_flags(self, amount):
        assert "RF_LOW_EFFECTIVENESS" not in _codes(detect_red_flags(_metrics(4, amount)))

    def test_any_sale_clears_flag(self):
        assert detect_red_flags(_metrics(8, 1.0)) == []


class TestTooConsistent:
    def test_seven_identical_days(self):
        flags = detect_red_flags(_metrics(5, 50_000), [5] * 7)
        assert _codes(flags) == ["RF_TOO_CONSISTENT_7D"]
        assert flags[0].severity == "medium"

    def test_one_different_day_clears(self):
        assert detect_red_flags(_metrics(6, 50_000), [5, 5, 5, 5, 5, 5, 6]) == []

    def test_below_threshold(self):
        assert detect_red_flags(_metrics(4, 50_000), [4] * 7) == []

    def test_incomplete_window(self):
        assert detect_red_flags(_metrics(5, 50_000), [5] * 6) == []

    def test_both_rules_can_fire(self):
        flags = detect_red_flags(_metrics(5, 0.0), [5] * 7)
        assert set(_codes(flags)) == {"RF_LOW_EFFECTIVENESS", "RF_TOO_CONSISTENT_7D"}


class TestBatch:
    def test_only_flagged_salesmen_returned(self):
        rows = [_metrics(6, 0.0, sid="s1"), _metrics(3, 0.0, sid="s2")]
        result = get_all_red_flags_for_date("2024-06-03", rows, {"s1": [], "s2": []})
        assert [r.salesman_id for r in result] == ["s1"]

    def test_severity_counts(self):
        rows = [_metrics(6, 0.0, sid="s1"), _metrics(5, 100.0, sid="s2")]
        result = get_all_red_flags_for_date("2024-06-03", rows, {"s2": [5] * 7})
        assert count_red_flags_by_severity(result) == {"high": 1, "medium": 1, "low": 0}

    def test_custom_rule_registry(self):
        def always(metrics, history):
            return None

        assert detect_red_flags(_metrics(6, 0.0), rules=(always,)) == []
        assert len(RED_FLAG_RULES) == 2

    def test_history_per_day(self):
        report = SalesmanReport(salesman=None, daily_metrics=[_metrics(6, 0.0, "2024-06-03"), _metrics(2, 0.0, "2024-06-04")])
        history = red_flag_history(report, {})
        assert [d["date"] for d in history] == ["2024-06-03"]
        assert history[0]["flags"][0]["code"] == "RF_LOW_EFFECTIVENESS"


class TestEndToEnd:
    def test_six_checkins_no_sales_on_date(self, make_store, settings):
        dashboard = SalesDashboard(make_store(checkins=visits("s1", "2024-06-03", 6)), settings)
        flagged = dashboard.red_flags_for_date("2024-06-03", now=NOW)
        assert [sr.salesman_id for sr in flagged] == ["s1"]
        assert flagged[0].red_flags[0].code == "RF_LOW_EFFECTIVENESS"
        assert flagged[0].red_flags[0].severity == "high"

    def test_five_visits_for_seven_days(self, make_store, settings):
        days = [f"2024-06-0{d}" for d in range(3, 10)]
        checkins = [c for day in days for c in visits("s2", day, 5)]
        dashboard = SalesDashboard(make_store(checkins=checkins), settings)
        flagged = dashboard.red_flags_for_date("2024-06-09", now=NOW)
        codes = {f.code for sr in flagged if sr.salesman_id == "s2" for f in sr.red_flags}
        assert "RF_TOO_CONSISTENT_7D" in codes

    def test_last_day_six_visits_breaks_pattern(self, make_store, settings):
        days = [f"2024-06-0{d}" for d in range(3, 9)]
        checkins = [c for day in days for c in visits("s2", day, 5)] + visits("s2", "2024-06-09", 6)
        dashboard = SalesDashboard(make_store(checkins=checkins), settings)
        flagged = dashboard.red_flags_for_date("2024-06-09", now=NOW)
        codes = {f.code for sr in flagged for f in sr.red_flags}
        assert "RF_TOO_CONSISTENT_7D" not in codes

    def test_metrics_for_another_day_are_rejected(self, make_store, settings):
        dashboard = SalesDashboard(make_store(checkins=visits("s1", "2024-06-03", 6)), settings)
        metrics = dashboard.compute_daily("2024-06-03")
        with pytest.raises(ValidationError) as exc:
            dashboard.red_flags_for_date("2024-06-04", metrics=metrics, now=NOW)
        assert exc.value.field == "date"
