"""
Template-based narratives used whenever the narrative service is unavailable or its answer is unusable.
"""

from typing import Any

from formatting import format_currency, format_percentage, format_quantity
from insight_inputs import SalesPerformanceInput, WeeklyInsightInput
from metrics import AggregatedMetrics
from normalizer import normalize_weekly_insight
from red_flags import SalesmanRedFlags, count_red_flags_by_severity

HIGH_CONVERSION = 0.5
LOW_CONVERSION = 0.3
MAX_FLAGGED_NAMES = 2
MAX_PERFORMANCE_INSIGHTS = 5

WEEKLY_DETAIL = (
    "Secara umum performa minggu ini stabil dengan kontribusi utama dari beberapa sales teratas. "
    "Rata-rata konversi dan volume kunjungan bergerak sejalan dengan distribusi aktivitas sales selama periode ini."
)
WEEKLY_NOTES = "Laporan ini dihasilkan otomatis dari data mingguan."


def generate_daily_fallback(metrics: AggregatedMetrics, red_flags: list[SalesmanRedFlags]) -> dict[str, Any]:
    counts = count_red_flags_by_severity(red_flags)
    low_conversion = metrics.total_visits > 0 and metrics.avg_conversion_rate < LOW_CONVERSION

    highlights = []
    if metrics.total_visits > 0:
        highlights.append(f"Total {metrics.total_visits} kunjungan tercatat oleh {metrics.total_salesmen} sales")
    if metrics.total_sales_amount > 0:
        highlights.append(
            f"Total penjualan sebesar {format_currency(metrics.total_sales_amount)} "
            f"({format_quantity(metrics.total_sales_qty)} unit)"
        )
    if metrics.avg_conversion_rate > HIGH_CONVERSION:
        highlights.append(f"Rata-rata konversi {format_percentage(metrics.avg_conversion_rate)} melebihi 50%")
    if not highlights:
        highlights.append("Tidak ada aktivitas signifikan pada tanggal ini")

    risks = []
    if counts["high"] > 0:
        risks.append(f"{counts['high']} pola dengan tingkat tinggi terdeteksi dan perlu ditinjau segera")
    if counts["medium"] > 0:
        risks.append(f"{counts['medium']} pola tingkat sedang perlu perhatian")
    if low_conversion:
        risks.append(f"Rata-rata konversi rendah: {format_percentage(metrics.avg_conversion_rate)}")
    if not risks:
        risks.append("Tidak ada risiko signifikan yang teridentifikasi")

    actions = []
    if red_flags:
        names = ", ".join(sr.salesman_name for sr in red_flags[:MAX_FLAGGED_NAMES])
        actions.append(f"Tinjau pola aktivitas untuk: {names}")
    if low_conversion:
        actions.append("Investigasi outlet dengan konversi rendah dan berikan pelatihan sales")
    zero_sales = [m for m in metrics.salesmen_metrics if m.visit_count > 0 and m.total_sales_amount == 0]
    if zero_sales:
        actions.append(f"Tindak lanjuti {len(zero_sales)} sales yang memiliki kunjungan tetapi tanpa penjualan")
    if not actions:
        actions.append("Lanjutkan pemantauan tren performa")

    return {
        "date": metrics.date,
        "highlights": highlights,
        "risks": risks,
        "actions": actions,
        "notes": f"Ringkasan otomatis. {len(red_flags)} sales memiliki pola yang ditandai.",
    }


def generate_weekly_fallback(weekly: WeeklyInsightInput) -> dict[str, Any]:
    base = {
        "period": weekly.period.to_dict(),
        "summary": {"highlights": [], "risks": [], "actions": []},
        "detail": WEEKLY_DETAIL,
        "notes": WEEKLY_NOTES,
    }
    return normalize_weekly_insight(base, weekly)


def generate_sales_performance_fallback(performance: SalesPerformanceInput) -> list[str]:
    insights = []

    if performance.top_by_conversion:
        top = performance.top_by_conversion[0]
        insights.append(
            f"{top['name']} memimpin konversi {format_percentage(top['conversion_rate'])} dari {top['visits']} kunjungan."
        )

    dominant = sorted(
        (o for o in performance.outlet_type_share if o["share"] >= 0.5), key=lambda o: o["share"], reverse=True
    )
    if dominant:
        o = dominant[0]
        insights.append(
            f"{o['salesman_name']} dominan di {o['outlet_type']} ({format_percentage(o['share'])} kunjungan)."
        )

    busy = sorted((t for t in performance.time_of_day if t["visit_count"] >= 5), key=lambda t: t["success_rate"])
    if busy and busy[0]["success_rate"] < 0.2:
        t = busy[0]
        insights.append(
            f"{t['salesman_name']} rendah di {t['daypart']} ({format_percentage(t['success_rate'])}), "
            "pertimbangkan ganti jadwal."
        )

    bins = sorted(
        (b for b in performance.visit_per_day_bins if b["salesmen_count"] > 0),
        key=lambda b: b["conversion_rate"],
        reverse=True,
    )
    if bins:
        b = bins[0]
        insights.append(
            f"Pola {b['label']} kunjungan/hari menunjukkan konversi tertinggi ({format_percentage(b['conversion_rate'])})."
        )

    if not insights:
        insights.append("Data belum cukup untuk insight spesifik minggu ini.")
    return insights[:MAX_PERFORMANCE_INSIGHTS]
