"""Tests for template narratives and prompt payloads."""

import json

from conftest import NOW
from insight_inputs import SalesPerformanceInput, build_weekly_input
from metric_definitions import METRIC_DEFINITIONS, metric_glossary
from metrics import AggregatedMetrics, MetricsAggregator, SalesmanMetrics, aggregate_salesmen
from prompts import build_daily_prompt_data, build_weekly_user_prompt
from red_flags import SalesmanRedFlags, detect_red_flags
from template_report import generate_daily_fallback, generate_sales_performance_fallback
from time_windows import Period

DAY = "2024-06-03"


def _row(sid, name, visits, amount, outlets) -> SalesmanMetrics:
    return SalesmanMetrics(
        salesman_id=sid, salesman_code=sid, salesman_name=name, date=DAY, visit_count=visits,
        total_sales_amount=amount, total_sales_qty=outlets, outlet_with_sales_count=outlets,
        conversion_rate=outlets / visits if visits else 0.0,
    )


class TestDailyFallback:
    def test_quiet_day(self):
        out = generate_daily_fallback(AggregatedMetrics(date=DAY), [])
        assert out["highlights"] == ["Tidak ada aktivitas signifikan pada tanggal ini"]
        assert out["risks"] == ["Tidak ada risiko signifikan yang teridentifikasi"]
        assert out["actions"] == ["Lanjutkan pemantauan tren performa"]
        assert out["notes"] == "Ringkasan otomatis. 0 sales memiliki pola yang ditandai."

    def test_strong_day(self):
        metrics = aggregate_salesmen(DAY, [_row("s1", "Andi", 4, 1_250_000, 3)])
        out = generate_daily_fallback(metrics, [])
        assert out["highlights"] == [
            "Total 4 kunjungan tercatat oleh 1 sales",
            "Total penjualan sebesar Rp 1.250.000 (3 unit)",
            "Rata-rata konversi 75.0% melebihi 50%",
        ]

    def test_flagged_day(self):
        bela = _row("s2", "Bela", 6, 0, 0)
        metrics = aggregate_salesmen(DAY, [bela])
        flagged = [SalesmanRedFlags("s2", "s2", "Bela", detect_red_flags(bela))]
        out = generate_daily_fallback(metrics, flagged)
        assert out["risks"] == [
            "1 pola dengan tingkat tinggi terdeteksi dan perlu ditinjau segera",
            "Rata-rata konversi rendah: 0.0%",
        ]
        assert out["actions"] == [
            "Tinjau pola aktivitas untuk: Bela",
            "Investigasi outlet dengan konversi rendah dan berikan pelatihan sales",
            "Tindak lanjuti 1 sales yang memiliki kunjungan tetapi tanpa penjualan",
        ]


class TestSalesPerformanceFallback:
    def test_all_patterns(self):
        performance = SalesPerformanceInput(
            period=Period(DAY, DAY),
            totals={},
            top_by_conversion=[{"name": "Andi", "conversion_rate": 0.6, "visits": 10}],
            outlet_type_share=[{"salesman_name": "Bela", "outlet_type": "Grosir", "visit_count": 8, "share": 0.8}],
            time_of_day=[{"salesman_name": "Citra", "daypart": "Siang", "visit_count": 6, "success_rate": 0.1}],
            visit_per_day_bins=[
                {"label": "0-2", "salesmen_count": 1, "conversion_rate": 0.2},
                {"label": "3-5", "salesmen_count": 2, "conversion_rate": 0.45},
            ],
        )
        assert generate_sales_performance_fallback(performance) == [
            "Andi memimpin konversi 60.0% dari 10 kunjungan.",
            "Bela dominan di Grosir (80.0% kunjungan).",
            "Citra rendah di Siang (10.0%), pertimbangkan ganti jadwal.",
            "Pola 3-5 kunjungan/hari menunjukkan konversi tertinggi (45.0%).",
        ]


class TestPrompts:
    def test_daily_payload_has_no_rows(self):
        metrics = aggregate_salesmen(DAY, [_row("s1", "Andi", 4, 100, 2), _row("s2", "Bela", 6, 0, 0), _row("s3", "Citra", 5, 50, 1)])
        data = build_daily_prompt_data(metrics, [])
        assert [r["name"] for r in data["top_by_conversion"]] == ["Andi", "Citra"]
        assert len(data["bottom_by_conversion"]) == 2
        assert "salesmen_metrics" not in data
        assert data["red_flags"]["total_count"] == 0

    def test_glossary_lists_every_metric(self):
        glossary = metric_glossary()
        assert len(glossary.splitlines()) == len(METRIC_DEFINITIONS)
        assert "conversion_rate" in metric_glossary(["conversion_rate"])

    def test_weekly_prompt_embeds_input(self, make_store, settings):
        weekly = build_weekly_input(MetricsAggregator(make_store(), settings), Period("2024-06-03", "2024-06-09"), now=NOW)
        prompt = build_weekly_user_prompt(weekly)
        payload = prompt[prompt.index("{"): prompt.rindex("}") + 1]
        assert json.loads(payload)["period"] == {"from": "2024-06-03", "to": "2024-06-09"}
