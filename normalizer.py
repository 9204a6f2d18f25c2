"""
Normalization of generated narratives.

Weekly output is reshaped no matter where it came from: highlights are rebuilt
from the weekly input, risks are rebuilt by a fixed cascade over the same
aggregates and filtered for opportunity vocabulary, and actions survive only
when they point at an enumerated risk. Daily output is only type-checked.
"""

import logging
import re
from typing import Any

from errors import MalformedResponse
from formatting import format_currency, format_percentage, format_quantity
from insight_inputs import WeeklyInsightInput

logger = logging.getLogger(__name__)

NO_RISK_SENTENCE = "Tidak ada risiko kritis minggu ini."

FORBIDDEN_RISK_KEYWORDS = (
    "peluang",
    "opportunity",
    "optimasi",
    "optimalisasi",
    "growth",
    "pertumbuhan",
    "eksplorasi",
    "potensi",
)

ACTION_PATTERN = re.compile(r"(?:risiko|risk)\s*[1-3](?!\d)", re.IGNORECASE)
MAX_ACTIONS = 3

LOW_CONVERSION_THRESHOLD = 0.3
LOW_CONVERSION_SALESMEN_LIMIT = 3
ZERO_SALES_LIMIT = 2
LOW_CONVERSION_REGION_LIMIT = 2
REGION_DROP_THRESHOLD_PCT = 20.0
DECLINING_REGION_LIMIT = 2
CONVERSION_DROP_MIN_PP = 1.0


def trend_label(current: float, previous: float) -> str:
    if current > previous:
        return "naik"
    if current < previous:
        return "turun"
    return "stabil"


def build_weekly_highlights(weekly: WeeklyInsightInput) -> list[str]:
    """The fixed five highlights, in order."""
    cur, prev = weekly.totals, weekly.prev_totals

    sales = (
        f"Total penjualan {format_currency(cur.total_sales_amount)} dengan "
        f"{format_quantity(cur.total_sales_qty)} unit terjual, "
        f"{trend_label(cur.total_sales_amount, prev.total_sales_amount)} dibanding minggu lalu "
        f"({format_currency(prev.total_sales_amount)} dan {format_quantity(prev.total_sales_qty)} unit)."
    )
    conversion = (
        f"Rata-rata konversi {format_percentage(cur.avg_conversion_rate)}, "
        f"{trend_label(cur.avg_conversion_rate, prev.avg_conversion_rate)} dibanding minggu lalu "
        f"({format_percentage(prev.avg_conversion_rate)})."
    )
    if weekly.top_leaders_by_sales:
        leader_names = " dan ".join(l.name for l in weekly.top_leaders_by_sales)
    else:
        leader_names = "Belum ada leader dengan kontribusi penjualan signifikan"
    leader = f"Performa leader terbaik minggu ini: {leader_names}."

    if weekly.top_salesman_by_sales:
        salesman = f"Sales dengan performa terbaik: {weekly.top_salesman_by_sales.name}."
    else:
        salesman = "Belum ada sales dengan performa penjualan menonjol minggu ini."

    if weekly.top_region_by_visits:
        region = f"Daerah paling ramai minggu ini: {weekly.top_region_by_visits.name}."
    else:
        region = "Belum ada data kunjungan region yang dominan minggu ini."

    return [sales, conversion, leader, salesman, region]


def _salesman_risk(weekly: WeeklyInsightInput) -> str | None:
    visited = [s for s in weekly.sales_performance if s.visit_count > 0]
    low_conversion = sorted(
        (s for s in visited if s.conversion_rate < LOW_CONVERSION_THRESHOLD), key=lambda s: s.conversion_rate
    )[:LOW_CONVERSION_SALESMEN_LIMIT]
    zero_sales = [s for s in visited if s.total_sales_amount == 0][:ZERO_SALES_LIMIT]
    if not low_conversion and not zero_sales:
        return None

    parts = []
    if len(zero_sales) == 1:
        s = zero_sales[0]
        parts.append(
            f"{s.salesman_name} perlu perhatian khusus karena dari {s.visit_count} kunjungan belum ada yang berhasil closing"
        )
    elif zero_sales:
        names = " dan ".join(s.salesman_name for s in zero_sales)
        parts.append(f"{names} belum menghasilkan deal sama sekali meski sudah melakukan banyak kunjungan")

    zero_ids = {s.salesman_id for s in zero_sales}
    others = [s for s in low_conversion if s.salesman_id not in zero_ids]
    if others:
        parts.append(
            ", ".join(
                f"{s.salesman_name} hanya {s.outlet_with_sales_count} deal dari {s.visit_count} kunjungan" for s in others
            )
        )
    return ". ".join(parts) + "."


def _low_conversion_region_risk(weekly: WeeklyInsightInput) -> str | None:
    low = sorted(
        (r for r in weekly.regions if r.visit_count > 0 and r.conversion_rate < LOW_CONVERSION_THRESHOLD),
        key=lambda r: r.conversion_rate,
    )[:LOW_CONVERSION_REGION_LIMIT]
    if not low:
        return None
    if len(low) == 1:
        r = low[0]
        return (
            f"Wilayah {r.name} masih jadi tantangan dengan tingkat closing hanya {format_percentage(r.conversion_rate)} "
            f"({r.outlet_with_sales_count} deal dari {r.visit_count} kunjungan)."
        )
    names = " dan ".join(f"{r.name} ({format_percentage(r.conversion_rate)})" for r in low)
    return f"{names} masih perlu perbaikan strategi karena tingkat closing-nya di bawah 30%."


def _declining_region_risk(weekly: WeeklyInsightInput) -> str | None:
    previous = {r.id: r for r in weekly.prev_regions}
    declining = []
    for r in weekly.regions:
        prev = previous.get(r.id)
        if prev is None or prev.total_sales_amount <= 0:
            continue
        drop_pct = (prev.total_sales_amount - r.total_sales_amount) / prev.total_sales_amount * 100
        if drop_pct >= REGION_DROP_THRESHOLD_PCT:
            declining.append((r, prev, drop_pct))
    declining.sort(key=lambda d: d[2], reverse=True)
    declining = declining[:DECLINING_REGION_LIMIT]
    if not declining:
        return None
    if len(declining) == 1:
        r, prev, drop_pct = declining[0]
        return (
            f"Penjualan di {r.name} turun {drop_pct:.0f}% dibanding minggu lalu, dari "
            f"{format_currency(prev.total_sales_amount)} menjadi {format_currency(r.total_sales_amount)}."
        )
    texts = " dan ".join(f"{r.name} turun {drop_pct:.0f}%" for r, _, drop_pct in declining)
    return f"Beberapa wilayah mengalami penurunan penjualan yang cukup signifikan: {texts}."


def _visit_decline_risk(weekly: WeeklyInsightInput) -> str | None:
    cur, prev = weekly.totals.total_visits, weekly.prev_totals.total_visits
    if prev <= 0 or cur >= prev:
        return None
    drop = (prev - cur) / prev * 100
    return (
        f"Aktivitas kunjungan menurun {drop:.0f}% dari minggu sebelumnya ({prev} → {cur} kunjungan), "
        "ini bisa berdampak pada pipeline penjualan."
    )


def _conversion_decline_risk(weekly: WeeklyInsightInput) -> str | None:
    cur, prev = weekly.totals.avg_conversion_rate, weekly.prev_totals.avg_conversion_rate
    drop_pp = (prev - cur) * 100
    if drop_pp < CONVERSION_DROP_MIN_PP:
        return None
    return (
        f"Rata-rata closing rate turun {drop_pp:.1f} poin dari {format_percentage(prev)} "
        f"menjadi {format_percentage(cur)}."
    )


def _sales_decline_risk(weekly: WeeklyInsightInput) -> str | None:
    cur, prev = weekly.totals.total_sales_amount, weekly.prev_totals.total_sales_amount
    if cur >= prev:
        return None
    drop = prev - cur
    return (
        f"Total penjualan minggu ini lebih rendah {format_currency(drop)} "
        f"({drop / prev * 100:.1f}%) dibanding minggu lalu."
    )


RISK_CASCADE = (
    _salesman_risk,
    _low_conversion_region_risk,
    _declining_region_risk,
    _visit_decline_risk,
    _conversion_decline_risk,
    _sales_decline_risk,
)


def is_valid_risk(text: str) -> bool:
    lowered = text.lower()
    return not any(keyword in lowered for keyword in FORBIDDEN_RISK_KEYWORDS)


def build_weekly_risks(weekly: WeeklyInsightInput) -> list[str]:
    risks = []
    for check in RISK_CASCADE:
        text = check(weekly)
        if text is not None:
            risks.append(text)
    kept = [r for r in risks if is_valid_risk(r)]
    if len(kept) < len(risks):
        logger.info("Dropped %d risk(s) with opportunity wording", len(risks) - len(kept))
    return kept or [NO_RISK_SENTENCE]


def filter_actions(actions: list[Any], risks: list[str]) -> list[str]:
    if risks == [NO_RISK_SENTENCE]:
        return []
    return [a for a in actions if isinstance(a, str) and ACTION_PATTERN.search(a)][:MAX_ACTIONS]


def _string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def validate_weekly_structure(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedResponse("Weekly insight is not an object")
    summary = raw.get("summary")
    if not isinstance(raw.get("period"), dict) or not isinstance(summary, dict):
        raise MalformedResponse("Weekly insight is missing period or summary")
    for key in ("highlights", "risks", "actions"):
        if not isinstance(summary.get(key), list):
            raise MalformedResponse(f"Weekly insight summary.{key} is not a list")
    for key in ("detail", "notes"):
        if not isinstance(raw.get(key), str):
            raise MalformedResponse(f"Weekly insight {key} is not a string")
    return raw


def normalize_weekly_insight(raw: dict[str, Any], weekly: WeeklyInsightInput) -> dict[str, Any]:
    """Force highlights, risks and actions into shape. Period always comes from the input."""
    risks = build_weekly_risks(weekly)
    actions = raw.get("summary", {}).get("actions", [])
    return {
        "period": weekly.period.to_dict(),
        "summary": {
            "highlights": build_weekly_highlights(weekly),
            "risks": risks,
            "actions": filter_actions(actions, risks),
        },
        "detail": raw.get("detail", ""),
        "notes": raw.get("notes", ""),
    }


def validate_daily_insight(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedResponse("Daily insight is not an object")
    if not isinstance(raw.get("date"), str) or not raw["date"]:
        raise MalformedResponse("Daily insight date is missing")
    for key in ("highlights", "risks", "actions"):
        if not _string_list(raw.get(key)):
            raise MalformedResponse(f"Daily insight {key} is not a list of strings")
    if not isinstance(raw.get("notes"), str):
        raise MalformedResponse("Daily insight notes is not a string")
    return {key: raw[key] for key in ("date", "highlights", "risks", "actions", "notes")}


def validate_sales_performance(raw: Any) -> list[str]:
    if not isinstance(raw, dict) or not isinstance(raw.get("period"), dict):
        raise MalformedResponse("Sales performance insight is missing period")
    insights = raw.get("insights")
    if not _string_list(insights) or not insights:
        raise MalformedResponse("Sales performance insights are empty")
    return insights
