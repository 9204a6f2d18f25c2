"""
Caller-facing operations of the sales monitor.

`SalesDashboard` wires the aggregator, rule engine and insight builder
together and returns JSON-ready dictionaries for the analytics views. It holds
no per-request state; every call resolves its own window and queries the store.
"""

import logging
from datetime import datetime
from typing import Any

from config import Settings, load_settings
from errors import NotFoundError, ValidationError
from event_store import EventStore, load_event_store
from insight_cache import InsightCache, JsonFileInsightCache
from insights import InsightBuilder, InsightResult
from llm_client import NarrativeClient
from metrics import AggregatedMetrics, MetricsAggregator, SalesmanReport, compute_rankings
from red_flags import SalesmanRedFlags, red_flag_history
from time_windows import (
    Period,
    get_date_range,
    get_last_complete_week_range,
    get_range_timestamps,
    resolve_period,
    resolve_rolling_range,
    validate_date,
)

logger = logging.getLogger(__name__)


class SalesDashboard:
    def __init__(
        self,
        store: EventStore,
        settings: Settings | None = None,
        cache: InsightCache | None = None,
        client: NarrativeClient | None = None,
    ):
        self.settings = settings or Settings()
        self.store = store
        self.aggregator = MetricsAggregator(store, self.settings)
        self.insights = InsightBuilder(self.aggregator, cache, client, self.settings)

    # ----- core operations --------------------------------------------------

    def compute_daily(self, date: str) -> AggregatedMetrics:
        return self.aggregator.daily_metrics_for_date(date)

    def compute_range(self, from_date: str, to_date: str) -> AggregatedMetrics:
        return self.aggregator.metrics_for_range(from_date, to_date)

    def compute_for_salesman(self, salesman_id: str, from_date: str, to_date: str) -> SalesmanReport:
        return self.aggregator.metrics_for_salesman(salesman_id, from_date, to_date)

    def red_flags_for_date(
        self, date: str, metrics: AggregatedMetrics | None = None, now: datetime | None = None
    ) -> list[SalesmanRedFlags]:
        validate_date(date)
        if metrics is None:
            metrics = self.compute_daily(date)
        elif metrics.date != date:
            raise ValidationError("date", f"Metrics are for {metrics.date}, not {date}")
        return self.insights.red_flags_for(metrics, now)

    def daily_insight(self, date: str, now: datetime | None = None) -> InsightResult:
        return self.insights.daily_insight(date, now=now)

    def weekly_insight(
        self, period: Period | None = None, refresh: bool = False, now: datetime | None = None
    ) -> InsightResult:
        return self.insights.weekly_insight(period, refresh=refresh, now=now)

    def sales_performance_insights(self, date: str, mode: str = "daily") -> InsightResult:
        return self.insights.sales_performance_insights(date, mode)

    # ----- analytics views --------------------------------------------------

    def daily_analytics(self, date: str, mode: str = "daily", now: datetime | None = None) -> dict[str, Any]:
        """Metrics for the day/week/month containing `date`, with rankings. Red flags only in daily mode."""
        period = resolve_period(date, mode)
        if mode == "daily":
            metrics = self.compute_daily(date)
            red_flags = self.red_flags_for_date(date, metrics, now)
        else:
            metrics = self.compute_range(period.from_date, period.to_date)
            red_flags = []
        return {
            "metrics": metrics.to_dict(),
            "red_flags": [sr.to_dict() for sr in red_flags],
            "rankings": compute_rankings(metrics),
            "period": period.to_dict(),
        }

    def leader_region_analytics(
        self,
        date: str | None = None,
        range_code: str | None = None,
        from_date: str | None = None,
        to_date: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Leader and region rollups. Window precedence: explicit from/to (must
        be given together), then a rolling range (7d / 30d), then a single
        date, then the last complete week.
        """
        tz = self.settings.business_tz_offset
        period = None
        if from_date or to_date:
            if not from_date or not to_date:
                raise ValidationError("from", "Parameter from dan to harus diisi bersamaan")
            validate_date(from_date, "from")
            validate_date(to_date, "to")
            period = Period(from_date, to_date)
        elif range_code:
            period = resolve_rolling_range(range_code, now, tz)
        elif date:
            validate_date(date)
        else:
            period = get_last_complete_week_range(now, tz)

        if period is not None:
            window = get_range_timestamps(period.from_date, period.to_date, tz)
        else:
            window = get_date_range(date, tz)
        rollups = self.aggregator.leader_region_metrics(window)
        return {
            "date": date,
            "period": period.to_dict() if period else None,
            "leaders": [l.to_dict() for l in rollups["leaders"]],
            "regions": [r.to_dict() for r in rollups["regions"]],
        }

    def outlet_analytics(self, date: str, mode: str = "daily") -> dict[str, Any]:
        period = resolve_period(date, mode)
        window = get_range_timestamps(period.from_date, period.to_date, self.settings.business_tz_offset)
        return {
            "date": date,
            "period": period.to_dict(),
            "outlets": [o.to_dict() for o in self.aggregator.outlet_metrics(window)],
        }

    def salesman_detail(
        self, salesman_id: str, from_date: str, to_date: str, now: datetime | None = None
    ) -> dict[str, Any]:
        report = self.compute_for_salesman(salesman_id, from_date, to_date)
        if not report.found:
            raise NotFoundError("Sales", salesman_id)
        dates = [m.date for m in report.daily_metrics]
        history = self.aggregator.visit_history_by_date(salesman_id, dates, now=now)
        out = report.to_dict()
        out["red_flag_history"] = red_flag_history(report, history)
        return out

    def salesman_day(self, salesman_id: str, date: str) -> dict[str, Any]:
        """Raw check-ins and sales of one salesman on one day."""
        validate_date(date)
        salesman = self.store.get_salesman(salesman_id)
        if salesman is None:
            raise NotFoundError("Sales", salesman_id)
        window = get_date_range(date, self.settings.business_tz_offset)
        checkins = self.store.checkins_for(salesman_id, window)
        sales = self.store.sales_for(salesman_id, window)
        return {
            "date": date,
            "salesman": salesman.to_dict(),
            "totals": {
                "total_checkins": len(checkins),
                "total_sales": len(sales),
                "total_sales_amount": sum(s.amount for s in sales),
                "total_sales_qty": sum(s.qty for s in sales),
            },
            "checkins": [
                {
                    "id": c.id,
                    "ts": c.ts.isoformat(),
                    "lat": c.lat,
                    "lng": c.lng,
                    "notes": c.notes,
                    "outlet_id": c.outlet_id,
                    "outlet_code": c.outlet_code,
                    "outlet_name": c.outlet_name,
                }
                for c in checkins
            ],
            "sales": [
                {
                    "id": s.id,
                    "ts": s.ts.isoformat(),
                    "amount": s.amount,
                    "qty": s.qty,
                    "invoice_no": s.invoice_no,
                    "outlet_id": s.outlet_id,
                    "outlet_code": s.outlet_code,
                    "outlet_name": s.outlet_name,
                }
                for s in sales
            ],
        }


def build_dashboard(env_dir: str = ".", data_dir: str | None = None) -> SalesDashboard:
    settings = load_settings(env_dir)
    store = load_event_store(data_dir or settings.data_dir)
    client = NarrativeClient(settings) if settings.has_llm_credential else None
    if client is None:
        logger.info("No narrative credential configured; insights use templates")
    return SalesDashboard(
        store,
        settings=settings,
        cache=JsonFileInsightCache(settings.insight_cache_dir),
        client=client,
    )
