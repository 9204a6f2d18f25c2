"""
Input payloads for the narrative layer.

WeeklyInsightInput and SalesPerformanceInput are the single value types shared
by the prompt builders, the deterministic templates and the weekly normalizer.
They are assembled here from aggregator output so every consumer sees the same
numbers.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from metrics import AggregatedMetrics, EntityMetrics, MetricsAggregator, SalesmanMetrics, visit_per_day_bins
from red_flags import SEVERITIES, get_all_red_flags_for_date
from time_windows import (
    Period,
    business_today,
    get_dates_between,
    get_previous_period,
    get_range_timestamps,
    resolve_period,
)

logger = logging.getLogger(__name__)

TOP_LIMIT = 3
PERFORMANCE_TOP_LIMIT = 5
OUTLET_TYPE_SHARE_LIMIT = 10
TIME_OF_DAY_LIMIT = 15


@dataclass
class PeriodTotals:
    total_visits: int = 0
    total_sales_amount: float = 0.0
    total_sales_qty: float = 0.0
    avg_conversion_rate: float = 0.0
    total_salesmen: int = 0

    @classmethod
    def from_metrics(cls, metrics: AggregatedMetrics) -> "PeriodTotals":
        return cls(
            total_visits=metrics.total_visits,
            total_sales_amount=metrics.total_sales_amount,
            total_sales_qty=metrics.total_sales_qty,
            avg_conversion_rate=metrics.avg_conversion_rate,
            total_salesmen=metrics.total_salesmen,
        )


@dataclass
class NamedAmount:
    name: str
    amount: float


@dataclass
class NamedRate:
    name: str
    rate: float


@dataclass
class RegionVisits:
    name: str
    visit_count: int


@dataclass
class FlaggedSalesman:
    name: str
    flag_count: int
    visit_count_week: int
    total_sales_amount: float
    outlet_with_sales_count: int
    conversion_rate: float


@dataclass
class WeeklyInsightInput:
    period: Period
    previous_period: Period
    totals: PeriodTotals
    prev_totals: PeriodTotals
    top_by_sales: list[NamedAmount] = field(default_factory=list)
    top_by_conversion: list[NamedRate] = field(default_factory=list)
    top_leaders_by_sales: list[NamedAmount] = field(default_factory=list)
    top_salesman_by_sales: NamedAmount | None = None
    top_region_by_visits: RegionVisits | None = None
    low_conversion_region: EntityMetrics | None = None
    poor_performers: list[FlaggedSalesman] = field(default_factory=list)
    sales_performance: list[SalesmanMetrics] = field(default_factory=list)
    regions: list[EntityMetrics] = field(default_factory=list)
    prev_regions: list[EntityMetrics] = field(default_factory=list)
    red_flag_counts: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SEVERITIES})

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["period"] = self.period.to_dict()
        out["previous_period"] = self.previous_period.to_dict()
        return out


@dataclass
class SalesPerformanceInput:
    period: Period
    totals: dict[str, float]
    top_by_conversion: list[dict[str, Any]] = field(default_factory=list)
    top_by_sales: list[dict[str, Any]] = field(default_factory=list)
    outlet_type_share: list[dict[str, Any]] = field(default_factory=list)
    time_of_day: list[dict[str, Any]] = field(default_factory=list)
    visit_per_day_bins: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["period"] = self.period.to_dict()
        return out


def _top_leaders(leaders: list[EntityMetrics]) -> list[NamedAmount]:
    """Every leader tied for the highest sales amount, when that amount is positive."""
    best = max((l.total_sales_amount for l in leaders), default=0.0)
    if best <= 0:
        return []
    return [NamedAmount(l.name, l.total_sales_amount) for l in leaders if l.total_sales_amount == best]


def _top_salesman(rows: list[SalesmanMetrics]) -> NamedAmount | None:
    selling = [m for m in rows if m.total_sales_amount > 0]
    if not selling:
        return None
    best = max(selling, key=lambda m: m.total_sales_amount)
    return NamedAmount(best.salesman_name, best.total_sales_amount)


def _top_region_by_visits(regions: list[EntityMetrics]) -> RegionVisits | None:
    visited = [r for r in regions if r.visit_count > 0]
    if not visited:
        return None
    best = max(visited, key=lambda r: r.visit_count)
    return RegionVisits(best.name, best.visit_count)


def _low_conversion_region(regions: list[EntityMetrics]) -> EntityMetrics | None:
    visited = [r for r in regions if r.visit_count > 0]
    return min(visited, key=lambda r: r.conversion_rate) if visited else None


def _weekly_red_flags(
    aggregator: MetricsAggregator, period: Period, now: datetime | None
) -> tuple[dict[str, int], dict[str, int]]:
    """Severity counts and per-salesman flag counts over the days of the period up to business today."""
    today = business_today(now, aggregator.tz_offset)
    counts = {severity: 0 for severity in SEVERITIES}
    per_salesman: dict[str, int] = {}
    for day in get_dates_between(period.from_date, period.to_date):
        if day > today:
            break
        daily = aggregator.daily_metrics_for_date(day)
        ids = [m.salesman_id for m in daily.salesmen_metrics]
        history = aggregator.visit_history(ids, day, now=now)
        for sr in get_all_red_flags_for_date(day, daily.salesmen_metrics, history):
            per_salesman[sr.salesman_id] = per_salesman.get(sr.salesman_id, 0) + len(sr.red_flags)
            for flag in sr.red_flags:
                counts[flag.severity] = counts.get(flag.severity, 0) + 1
    return counts, per_salesman


def build_weekly_input(
    aggregator: MetricsAggregator,
    period: Period,
    now: datetime | None = None,
) -> WeeklyInsightInput:
    previous = get_previous_period(period)
    current = aggregator.metrics_for_range(period.from_date, period.to_date)
    prev = aggregator.metrics_for_range(previous.from_date, previous.to_date)

    tz = aggregator.tz_offset
    rollups = aggregator.leader_region_metrics(get_range_timestamps(period.from_date, period.to_date, tz))
    prev_rollups = aggregator.leader_region_metrics(get_range_timestamps(previous.from_date, previous.to_date, tz))

    salesmen = current.salesmen_metrics
    by_sales = sorted(salesmen, key=lambda m: m.total_sales_amount, reverse=True)
    by_conversion = sorted(
        (m for m in salesmen if m.visit_count > 0), key=lambda m: m.conversion_rate, reverse=True
    )

    flag_counts, flags_per_salesman = _weekly_red_flags(aggregator, period, now)
    poor = [
        FlaggedSalesman(
            name=m.salesman_name,
            flag_count=flags_per_salesman[m.salesman_id],
            visit_count_week=m.visit_count,
            total_sales_amount=m.total_sales_amount,
            outlet_with_sales_count=m.outlet_with_sales_count,
            conversion_rate=m.conversion_rate,
        )
        for m in salesmen
        if flags_per_salesman.get(m.salesman_id)
    ]
    poor.sort(key=lambda p: p.flag_count, reverse=True)

    logger.debug("Weekly input for %s..%s: %d salesmen, %d flagged", period.from_date, period.to_date, len(salesmen), len(poor))
    return WeeklyInsightInput(
        period=period,
        previous_period=previous,
        totals=PeriodTotals.from_metrics(current),
        prev_totals=PeriodTotals.from_metrics(prev),
        top_by_sales=[NamedAmount(m.salesman_name, m.total_sales_amount) for m in by_sales[:TOP_LIMIT]],
        top_by_conversion=[NamedRate(m.salesman_name, m.conversion_rate) for m in by_conversion[:TOP_LIMIT]],
        top_leaders_by_sales=_top_leaders(rollups["leaders"]),
        top_salesman_by_sales=_top_salesman(salesmen),
        top_region_by_visits=_top_region_by_visits(rollups["regions"]),
        low_conversion_region=_low_conversion_region(rollups["regions"]),
        poor_performers=poor,
        sales_performance=salesmen,
        regions=rollups["regions"],
        prev_regions=prev_rollups["regions"],
        red_flag_counts=flag_counts,
    )


def _outlet_type_share(rows) -> list[dict[str, Any]]:
    totals: dict[str, int] = {}
    for r in rows:
        totals[r.salesman_name] = totals.get(r.salesman_name, 0) + r.visit_count
    shares = [
        {
            "salesman_name": r.salesman_name,
            "outlet_type": r.outlet_type,
            "visit_count": r.visit_count,
            "share": r.visit_count / totals[r.salesman_name] if totals[r.salesman_name] else 0.0,
        }
        for r in rows
    ]
    shares.sort(key=lambda s: s["share"], reverse=True)
    return shares[:OUTLET_TYPE_SHARE_LIMIT]


def _time_of_day(rows) -> list[dict[str, Any]]:
    out = [
        {
            "salesman_name": r.salesman_name,
            "daypart": r.daypart,
            "visit_count": r.visit_count,
            "success_rate": r.success_count / r.visit_count,
        }
        for r in rows
        if r.visit_count > 0
    ]
    out.sort(key=lambda t: t["visit_count"], reverse=True)
    return out[:TIME_OF_DAY_LIMIT]


def build_sales_performance_input(aggregator: MetricsAggregator, day: str, mode: str = "daily") -> SalesPerformanceInput:
    period = resolve_period(day, mode)
    if mode == "daily":
        metrics = aggregator.daily_metrics_for_date(day)
    else:
        metrics = aggregator.metrics_for_range(period.from_date, period.to_date)
    window = get_range_timestamps(period.from_date, period.to_date, aggregator.tz_offset)
    store = aggregator.store

    rows = metrics.salesmen_metrics
    by_conversion = sorted((m for m in rows if m.visit_count > 0), key=lambda m: m.conversion_rate, reverse=True)
    by_sales = sorted(rows, key=lambda m: m.total_sales_amount, reverse=True)

    return SalesPerformanceInput(
        period=period,
        totals={
            "total_visits": metrics.total_visits,
            "total_sales_amount": metrics.total_sales_amount,
            "total_sales_qty": metrics.total_sales_qty,
        },
        top_by_conversion=[
            {"name": m.salesman_name, "conversion_rate": m.conversion_rate, "visits": m.visit_count}
            for m in by_conversion[:PERFORMANCE_TOP_LIMIT]
        ],
        top_by_sales=[
            {"name": m.salesman_name, "total_sales_amount": m.total_sales_amount}
            for m in by_sales[:PERFORMANCE_TOP_LIMIT]
        ],
        outlet_type_share=_outlet_type_share(store.outlet_type_visits(window)),
        time_of_day=_time_of_day(store.daypart_visits(window, aggregator.tz_offset)),
        visit_per_day_bins=visit_per_day_bins(rows, period.days),
    )
