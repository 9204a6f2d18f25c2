"""
Metrics aggregation: per-salesman, per-leader, per-region and per-outlet
visit/sales statistics for a day, a date range, or one salesman across days.

Conversion rate is always outlets-with-sale / visits (0 when there are no
visits). Period averages are visit-weighted: total outlets with sale divided
by total visits.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

import pandas as pd

from config import Settings
from event_store import EventStore, SalesStats, Salesman, VisitStats
from time_windows import (
    Period,
    TimeWindow,
    business_today,
    format_date,
    get_date_range,
    get_dates_between,
    get_range_timestamps,
    local_date_of,
    parse_date,
    validate_date,
)

logger = logging.getLogger(__name__)

VISIT_PER_DAY_BINS = (
    ("0-2", 0.0, 3.0),
    ("3-5", 3.0, 6.0),
    ("6-8", 6.0, 9.0),
    ("9+", 9.0, float("inf")),
)


def conversion_rate(outlets_with_sales: int, visits: int) -> float:
    return outlets_with_sales / visits if visits > 0 else 0.0


@dataclass
class SalesmanMetrics:
    salesman_id: str
    salesman_code: str
    salesman_name: str
    date: str
    visit_count: int = 0
    unique_outlet_count: int = 0
    total_sales_amount: float = 0.0
    total_sales_qty: float = 0.0
    outlet_with_sales_count: int = 0
    conversion_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AggregatedMetrics:
    date: str
    total_visits: int = 0
    total_salesmen: int = 0
    total_sales_amount: float = 0.0
    total_sales_qty: float = 0.0
    total_outlets_with_sales: int = 0
    avg_conversion_rate: float = 0.0
    salesmen_metrics: list[SalesmanMetrics] = field(default_factory=list)
    period: Period | None = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["period"] = self.period.to_dict() if self.period else None
        return out


@dataclass
class SalesmanTotals:
    total_visits: int = 0
    # max of the per-day unique counts, not distinct over the whole range
    total_unique_outlets: int = 0
    total_sales_amount: float = 0.0
    total_sales_qty: float = 0.0
    total_outlets_with_sales: int = 0
    avg_conversion_rate: float = 0.0


@dataclass
class SalesmanReport:
    salesman: Salesman | None
    daily_metrics: list[SalesmanMetrics] = field(default_factory=list)
    totals: SalesmanTotals = field(default_factory=SalesmanTotals)

    @property
    def found(self) -> bool:
        return self.salesman is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "salesman": self.salesman.to_dict() if self.salesman else None,
            "daily_metrics": [m.to_dict() for m in self.daily_metrics],
            "totals": asdict(self.totals),
        }


@dataclass
class EntityMetrics:
    """Rollup row for a leader, region or outlet."""
    id: str
    code: str
    name: str
    visit_count: int = 0
    unique_outlet_count: int = 0
    total_sales_amount: float = 0.0
    total_sales_qty: float = 0.0
    outlet_with_sales_count: int = 0
    sales_count: int = 0
    conversion_rate: float = 0.0
    leader_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _period_label(period: Period) -> str:
    if period.from_date == period.to_date:
        return period.from_date
    return f"{period.from_date}..{period.to_date}"


def _salesman_metrics(salesman: Salesman, label: str, visits: VisitStats, sales: SalesStats) -> SalesmanMetrics:
    return SalesmanMetrics(
        salesman_id=salesman.id,
        salesman_code=salesman.code,
        salesman_name=salesman.name,
        date=label,
        visit_count=visits.visit_count,
        unique_outlet_count=visits.unique_outlet_count,
        total_sales_amount=sales.amount,
        total_sales_qty=sales.qty,
        outlet_with_sales_count=sales.outlets_with_sale,
        conversion_rate=conversion_rate(sales.outlets_with_sale, visits.visit_count),
    )


def aggregate_salesmen(
    label: str,
    salesmen_metrics: list[SalesmanMetrics],
    period: Period | None = None,
) -> AggregatedMetrics:
    total_visits = sum(m.visit_count for m in salesmen_metrics)
    total_outlets = sum(m.outlet_with_sales_count for m in salesmen_metrics)
    return AggregatedMetrics(
        date=label,
        total_visits=total_visits,
        total_salesmen=len(salesmen_metrics),
        total_sales_amount=sum(m.total_sales_amount for m in salesmen_metrics),
        total_sales_qty=sum(m.total_sales_qty for m in salesmen_metrics),
        total_outlets_with_sales=total_outlets,
        avg_conversion_rate=conversion_rate(total_outlets, total_visits),
        salesmen_metrics=salesmen_metrics,
        period=period,
    )


def _entity_metrics(entity_id: str, code: str, name: str, visits: VisitStats, sales: SalesStats, leader_id=None) -> EntityMetrics:
    return EntityMetrics(
        id=entity_id,
        code=code,
        name=name,
        visit_count=visits.visit_count,
        unique_outlet_count=visits.unique_outlet_count,
        total_sales_amount=sales.amount,
        total_sales_qty=sales.qty,
        outlet_with_sales_count=sales.outlets_with_sale,
        sales_count=sales.sales_count,
        conversion_rate=conversion_rate(sales.outlets_with_sale, visits.visit_count),
        leader_id=leader_id,
    )


def _by_sales_then_visits(rows: list[EntityMetrics]) -> list[EntityMetrics]:
    return sorted(rows, key=lambda r: (-r.total_sales_amount, -r.visit_count))


class MetricsAggregator:
    """Turns event-store queries into metrics. Holds no per-request state."""

    def __init__(self, store: EventStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or Settings()

    @property
    def tz_offset(self) -> str:
        return self.settings.business_tz_offset

    def _metrics_for_window(self, window: TimeWindow, label: str, period: Period | None) -> AggregatedMetrics:
        salesmen = self.store.list_active_salesmen()
        if not salesmen:
            return AggregatedMetrics(date=label, period=period)
        visits = self.store.grouped_visit_stats(window, "salesman_id")
        sales = self.store.grouped_sales_stats(window, "salesman_id")
        rows = [
            _salesman_metrics(s, label, visits.get(s.id, VisitStats()), sales.get(s.id, SalesStats()))
            for s in salesmen
        ]
        return aggregate_salesmen(label, rows, period)

    def daily_metrics_for_date(self, day: str) -> AggregatedMetrics:
        window = get_date_range(validate_date(day), self.tz_offset)
        return self._metrics_for_window(window, day, None)

    def metrics_for_range(self, from_date: str, to_date: str) -> AggregatedMetrics:
        """One pass over the whole range; distinct outlets are counted across the range."""
        validate_date(from_date, "from")
        validate_date(to_date, "to")
        window = get_range_timestamps(from_date, to_date, self.tz_offset)
        period = Period(from_date, to_date)
        return self._metrics_for_window(window, _period_label(period), period)

    def _bucket_by_day(self, salesman_id: str, window: TimeWindow) -> tuple[dict[str, VisitStats], dict[str, SalesStats]]:
        checkins = pd.DataFrame(
            [{"outlet_id": c.outlet_id, "day": local_date_of(c.ts, self.tz_offset)}
             for c in self.store.checkins_for(salesman_id, window)],
            columns=["outlet_id", "day"],
        )
        sales = pd.DataFrame(
            [{"outlet_id": s.outlet_id, "amount": s.amount, "qty": s.qty, "day": local_date_of(s.ts, self.tz_offset)}
             for s in self.store.sales_for(salesman_id, window)],
            columns=["outlet_id", "amount", "qty", "day"],
        )

        visits: dict[str, VisitStats] = {}
        if not checkins.empty:
            grouped = checkins.groupby("day").agg(
                visit_count=("outlet_id", "size"), unique_outlet_count=("outlet_id", "nunique")
            )
            visits = {
                str(day): VisitStats(int(r["visit_count"]), int(r["unique_outlet_count"]))
                for day, r in grouped.iterrows()
            }

        sold: dict[str, SalesStats] = {}
        if not sales.empty:
            sales[["amount", "qty"]] = sales[["amount", "qty"]].fillna(0.0)
            grouped = sales.groupby("day").agg(amount=("amount", "sum"), qty=("qty", "sum"), sales_count=("amount", "size"))
            with_sale = sales[sales["amount"] > 0].groupby("day")["outlet_id"].nunique()
            sold = {
                str(day): SalesStats(float(r["amount"]), float(r["qty"]), int(with_sale.get(day, 0)), int(r["sales_count"]))
                for day, r in grouped.iterrows()
            }
        return visits, sold

    def metrics_for_salesman(self, salesman_id: str, from_date: str, to_date: str) -> SalesmanReport:
        validate_date(from_date, "from")
        validate_date(to_date, "to")
        window = get_range_timestamps(from_date, to_date, self.tz_offset)

        salesman = self.store.get_salesman(salesman_id)
        if salesman is None:
            return SalesmanReport(salesman=None)

        visits, sales = self._bucket_by_day(salesman.id, window)
        daily = [
            _salesman_metrics(salesman, day, visits.get(day, VisitStats()), sales.get(day, SalesStats()))
            for day in get_dates_between(from_date, to_date)
        ]

        total_visits = sum(m.visit_count for m in daily)
        total_outlets = sum(m.outlet_with_sales_count for m in daily)
        totals = SalesmanTotals(
            total_visits=total_visits,
            total_unique_outlets=max((m.unique_outlet_count for m in daily), default=0),
            total_sales_amount=sum(m.total_sales_amount for m in daily),
            total_sales_qty=sum(m.total_sales_qty for m in daily),
            total_outlets_with_sales=total_outlets,
            avg_conversion_rate=conversion_rate(total_outlets, total_visits),
        )
        return SalesmanReport(salesman=salesman, daily_metrics=daily, totals=totals)

    def visit_history(
        self,
        salesman_ids: list[str],
        end_date: str,
        days: int = 7,
        now: datetime | None = None,
    ) -> dict[str, list[int]]:
        """
        Trailing daily visit counts (oldest first) for each salesman, ending on
        end_date. Days after end_date or after business today are not available
        and are left out, so the list can be shorter than `days`.
        """
        end = parse_date(end_date)
        today = parse_date(business_today(now, self.tz_offset))
        available = [
            format_date(end - timedelta(days=offset))
            for offset in range(days - 1, -1, -1)
            if end - timedelta(days=offset) <= today
        ]
        if not salesman_ids or not available:
            return {sid: [] for sid in salesman_ids}
        window = get_range_timestamps(available[0], available[-1], self.tz_offset)
        counts = self.store.daily_visit_counts(window, list(salesman_ids), self.tz_offset)
        return {sid: [counts.get(sid, {}).get(day, 0) for day in available] for sid in salesman_ids}

    def visit_history_by_date(
        self,
        salesman_id: str,
        dates: list[str],
        days: int = 7,
        now: datetime | None = None,
    ) -> dict[str, list[int]]:
        """visit_history for one salesman evaluated on each of `dates`, from a single store query."""
        if not dates:
            return {}
        today = parse_date(business_today(now, self.tz_offset))
        first = parse_date(dates[0]) - timedelta(days=days - 1)
        last = min(parse_date(dates[-1]), today)
        if last < first:
            return {day: [] for day in dates}
        window = get_range_timestamps(format_date(first), format_date(last), self.tz_offset)
        counts = self.store.daily_visit_counts(window, [salesman_id], self.tz_offset).get(salesman_id, {})

        result = {}
        for day in dates:
            end = parse_date(day)
            trailing = [end - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
            result[day] = [counts.get(format_date(d), 0) for d in trailing if d <= today]
        return result

    def leader_region_metrics(self, window: TimeWindow) -> dict[str, list[EntityMetrics]]:
        leader_visits = self.store.grouped_visit_stats(window, "leader_id")
        leader_sales = self.store.grouped_sales_stats(window, "leader_id")
        region_visits = self.store.grouped_visit_stats(window, "region_id")
        region_sales = self.store.grouped_sales_stats(window, "region_id")

        leaders = [
            _entity_metrics(l.id, l.code, l.name, leader_visits.get(l.id, VisitStats()), leader_sales.get(l.id, SalesStats()))
            for l in self.store.list_leaders()
        ]
        regions = [
            _entity_metrics(
                r.id, r.code, r.name,
                region_visits.get(r.id, VisitStats()),
                region_sales.get(r.id, SalesStats()),
                leader_id=r.leader_id,
            )
            for r in self.store.list_regions()
        ]
        return {"leaders": _by_sales_then_visits(leaders), "regions": _by_sales_then_visits(regions)}

    def outlet_metrics(self, window: TimeWindow) -> list[EntityMetrics]:
        visits = self.store.grouped_visit_stats(window, "outlet_id")
        sales = self.store.grouped_sales_stats(window, "outlet_id")
        rows = [
            _entity_metrics(o.id, o.code, o.name, visits.get(o.id, VisitStats()), sales.get(o.id, SalesStats()))
            for o in self.store.list_outlets()
        ]
        return _by_sales_then_visits(rows)


def _ranking_entry(m: SalesmanMetrics, metric: str) -> dict[str, Any]:
    return {"salesman_id": m.salesman_id, "salesman_name": m.salesman_name, metric: getattr(m, metric)}


def compute_rankings(metrics: AggregatedMetrics, limit: int = 3) -> dict[str, list[dict[str, Any]]]:
    rows = metrics.salesmen_metrics
    by_conversion = sorted(
        (m for m in rows if m.visit_count > 0), key=lambda m: m.conversion_rate, reverse=True
    )
    by_sales = sorted(rows, key=lambda m: m.total_sales_amount, reverse=True)
    by_visits = sorted(rows, key=lambda m: m.visit_count, reverse=True)
    return {
        "top_by_conversion": [_ranking_entry(m, "conversion_rate") for m in by_conversion[:limit]],
        "bottom_by_conversion": [_ranking_entry(m, "conversion_rate") for m in reversed(by_conversion[-limit:])],
        "top_by_sales": [_ranking_entry(m, "total_sales_amount") for m in by_sales[:limit]],
        "bottom_by_sales": [_ranking_entry(m, "total_sales_amount") for m in reversed(by_sales[-limit:])],
        "top_by_visits": [_ranking_entry(m, "visit_count") for m in by_visits[:limit]],
    }


def visit_per_day_bins(salesmen_metrics: list[SalesmanMetrics], days_count: int) -> list[dict[str, Any]]:
    """Bucket salesmen by average visits per day; conversion per bin is visit-weighted."""
    bins = {label: {"salesmen_count": 0, "visits": 0, "outlets": 0} for label, _, _ in VISIT_PER_DAY_BINS}
    for m in salesmen_metrics:
        avg_visits = m.visit_count / days_count if days_count > 0 else 0.0
        for label, low, high in VISIT_PER_DAY_BINS:
            if low <= avg_visits < high:
                bins[label]["salesmen_count"] += 1
                bins[label]["visits"] += m.visit_count
                bins[label]["outlets"] += m.outlet_with_sales_count
                break
    return [
        {
            "label": label,
            "salesmen_count": b["salesmen_count"],
            "conversion_rate": conversion_rate(b["outlets"], b["visits"]),
        }
        for label, b in bins.items()
    ]
