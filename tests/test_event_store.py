"""Tests for the pandas-backed event store gateway."""

import pandas as pd
import pytest

from conftest import checkin, sale, sold, visits
from errors import UpstreamUnavailable, ValidationError
from event_store import FrameEventStore, load_event_store, missing_metric_columns
from time_windows import get_date_range, get_range_timestamps

DAY = "2024-06-03"


class TestCoercion:
    def test_missing_amount_and_qty_become_zero(self, make_store):
        rows = [sale("s1", "o1", f"{DAY}T10:00:00+07:00", None, None, "l1", "r1")]
        store = make_store(sales=rows)
        stats = store.sales_stats(get_date_range(DAY))
        assert stats.amount == 0.0
        assert stats.qty == 0.0
        assert stats.outlets_with_sale == 0
        assert stats.sales_count == 1

    def test_unparseable_timestamps_are_dropped(self, make_store):
        rows = visits("s1", DAY, 2) + [checkin("s1", "o3", "not-a-time")]
        store = make_store(checkins=rows)
        assert store.visit_stats(get_date_range(DAY)).visit_count == 2

    def test_column_aliases(self, salesmen_df):
        checkins = pd.DataFrame([{"id": "c1", "salesman_id": "s1", "outlet_id": "o1", "timestamp": f"{DAY}T09:00:00+07:00"}])
        store = FrameEventStore(salesmen=salesmen_df, checkins=checkins)
        assert store.visit_stats(get_date_range(DAY)).visit_count == 1


class TestQueries:
    def test_active_salesmen_only(self, make_store):
        store = make_store()
        assert [s.code for s in store.list_active_salesmen()] == ["S001", "S002"]
        assert store.get_salesman("s3").active is False
        assert store.get_salesman("nope") is None

    def test_outlets_with_sale_counts_distinct_positive_amount_outlets(self, make_store):
        sales = [
            sold("s1", "o1", DAY, 100_000, hour=9),
            sold("s1", "o1", DAY, 50_000, hour=11),
            sold("s1", "o2", DAY, 0),
        ]
        store = make_store(sales=sales)
        stats = store.sales_stats(get_date_range(DAY), salesman_id="s1")
        assert stats.outlets_with_sale == 1
        assert stats.amount == 150_000
        assert stats.sales_count == 3

    def test_grouped_stats_by_salesman_and_region(self, make_store):
        store = make_store(checkins=visits("s1", DAY, 3) + visits("s2", DAY, 2), sales=[sold("s2", "o1", DAY, 10_000)])
        window = get_date_range(DAY)
        by_salesman = store.grouped_visit_stats(window, "salesman_id")
        assert by_salesman["s1"].visit_count == 3
        assert by_salesman["s2"].unique_outlet_count == 2
        by_region = store.grouped_sales_stats(window, "region_id")
        assert by_region["r2"].amount == 10_000
        assert "r1" not in by_region

    def test_bad_group_key(self, make_store):
        with pytest.raises(ValidationError):
            make_store().grouped_visit_stats(get_date_range(DAY), "invoice_no")

    def test_events_outside_window_are_ignored(self, make_store):
        store = make_store(checkins=visits("s1", "2024-06-04", 4))
        assert store.visit_stats(get_date_range(DAY)).visit_count == 0

    def test_daily_visit_counts_bucket_by_local_date(self, make_store):
        # 23:30 local on the 3rd is 16:30 UTC, still the 3rd in business time
        rows = [checkin("s1", "o1", "2024-06-03T16:30:00+00:00", "l1", "r1")] + visits("s1", "2024-06-04", 2)
        store = make_store(checkins=rows)
        window = get_range_timestamps("2024-06-03", "2024-06-04")
        assert store.daily_visit_counts(window, ["s1", "s2"], "+07:00") == {
            "s1": {"2024-06-03": 1, "2024-06-04": 2},
            "s2": {},
        }

    def test_checkins_for_are_ordered_and_carry_outlet(self, make_store):
        rows = list(reversed(visits("s1", DAY, 3)))
        records = make_store(checkins=rows).checkins_for("s1", get_date_range(DAY))
        assert [r.ts for r in records] == sorted(r.ts for r in records)
        assert records[0].outlet_name == "Toko 1"

    def test_daypart_success(self, make_store):
        store = make_store(checkins=visits("s1", DAY, 2), sales=[sold("s1", "o1", DAY, 5_000, hour=15)])
        parts = {p.daypart: p for p in store.daypart_visits(get_date_range(DAY))}
        assert parts["Pagi"].visit_count == 2
        assert parts["Pagi"].success_count == 1

    def test_query_failure_is_upstream_unavailable(self, make_store):
        store = make_store()
        store.checkins = None
        with pytest.raises(UpstreamUnavailable):
            store.visit_stats(get_date_range(DAY))


class TestIngestion:
    def test_ingest_creates_salesman_and_outlet(self, make_store):
        store = make_store()
        result = store.ingest_checkin("S999", "OUT999", f"{DAY}T09:00:00+07:00", salesman_name="Dewi", outlet_name="Toko Baru")
        assert store.get_salesman(result["salesman_id"]).name == "Dewi"
        assert store.visit_stats(get_date_range(DAY), salesman_id=result["salesman_id"]).visit_count == 1

    def test_ingest_existing_codes_denormalises_org(self, make_store):
        store = make_store()
        store.ingest_sale("S001", "OUT001", f"{DAY}T09:00:00+07:00", amount=25_000, qty=2)
        assert store.grouped_sales_stats(get_date_range(DAY), "leader_id")["l1"].amount == 25_000

    def test_new_code_without_name_is_rejected(self, make_store):
        with pytest.raises(ValidationError) as exc:
            make_store().ingest_checkin("S999", "OUT001", f"{DAY}T09:00:00+07:00")
        assert exc.value.field == "salesman_name"

    def test_naive_timestamp_is_rejected(self, make_store):
        with pytest.raises(ValidationError) as exc:
            make_store().ingest_checkin("S001", "OUT001", f"{DAY}T09:00:00")
        assert exc.value.field == "ts"

    def test_negative_amount_is_rejected(self, make_store):
        with pytest.raises(ValidationError) as exc:
            make_store().ingest_sale("S001", "OUT001", f"{DAY}T09:00:00+07:00", amount=-1, qty=1)
        assert exc.value.field == "amount"


class TestLoading:
    def test_load_from_csv(self, tmp_path, salesmen_df):
        salesmen_df.to_csv(tmp_path / "salesmen.csv", index=False)
        pd.DataFrame(visits("s1", DAY, 2)).to_csv(tmp_path / "checkins.csv", index=False)
        store = load_event_store(str(tmp_path))
        assert len(store.list_active_salesmen()) == 2
        assert store.visit_stats(get_date_range(DAY)).visit_count == 2

    def test_mixed_precision_timestamps_are_all_kept(self, tmp_path, salesmen_df):
        salesmen_df.to_csv(tmp_path / "salesmen.csv", index=False)
        rows = [
            checkin("s1", "o1", "2026-01-05T09:00:00+07:00", "l1", "r1"),
            checkin("s1", "o2", "2026-01-05T10:00:00.250+07:00", "l1", "r1"),
            checkin("s1", "o3", "2026-01-05T03:00:00Z", "l1", "r1"),
        ]
        pd.DataFrame(rows).to_csv(tmp_path / "checkins.csv", index=False)
        store = load_event_store(str(tmp_path))
        assert store.visit_stats(get_date_range("2026-01-05"), salesman_id="s1").visit_count == 3

    def test_missing_metric_columns(self):
        frames = {"sales": pd.DataFrame(columns=["id", "salesman_id", "ts", "amount"]), "checkins": None}
        assert "sales.outlet_id" in missing_metric_columns(frames)
        assert "sales.qty" in missing_metric_columns(frames)
        assert not any(c.startswith("checkins.") for c in missing_metric_columns(frames))
