"""
Insight narrative builder.

REQUEST -> CACHE_CHECK -> (HIT: return) | (MISS: COMPUTE -> GENERATE -> NORMALIZE -> CACHE_WRITE -> return)

GENERATE uses the narrative service when a credential is configured and the
deterministic templates otherwise, or whenever the service fails. Neither a
generation failure nor a cache write failure ever reaches the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from config import Settings
from errors import CacheWriteFailure
from insight_cache import InsightCache, MemoryInsightCache
from insight_inputs import build_sales_performance_input, build_weekly_input
from llm_client import NarrativeClient
from metrics import AggregatedMetrics, MetricsAggregator
from normalizer import normalize_weekly_insight, validate_daily_insight, validate_sales_performance, validate_weekly_structure
from prompts import (
    DAILY_SYSTEM_PROMPT,
    SALES_PERFORMANCE_SYSTEM_PROMPT,
    WEEKLY_SYSTEM_PROMPT,
    build_daily_user_prompt,
    build_sales_performance_user_prompt,
    build_weekly_user_prompt,
)
from red_flags import SalesmanRedFlags, get_all_red_flags_for_date
from template_report import (
    MAX_PERFORMANCE_INSIGHTS,
    generate_daily_fallback,
    generate_sales_performance_fallback,
    generate_weekly_fallback,
)
from time_windows import Period, get_last_complete_week_range, validate_date

logger = logging.getLogger(__name__)

SOURCE_CACHE = "cache"
SOURCE_LLM = "llm"
SOURCE_TEMPLATE = "template"


@dataclass
class InsightResult:
    payload: dict[str, Any]
    source: str

    @property
    def cached(self) -> bool:
        return self.source == SOURCE_CACHE

    @property
    def from_llm(self) -> bool:
        return self.source == SOURCE_LLM

    def to_dict(self) -> dict[str, Any]:
        return {"cached": self.cached, "from_llm": self.from_llm, "data": self.payload}


class InsightBuilder:
    def __init__(
        self,
        aggregator: MetricsAggregator,
        cache: InsightCache | None = None,
        client: NarrativeClient | None = None,
        settings: Settings | None = None,
    ):
        self.aggregator = aggregator
        self.cache = cache if cache is not None else MemoryInsightCache()
        self.client = client
        self.settings = settings or aggregator.settings

    @property
    def _can_generate(self) -> bool:
        return self.client is not None and self.client.available

    def red_flags_for(self, metrics: AggregatedMetrics, now: datetime | None = None) -> list[SalesmanRedFlags]:
        ids = [m.salesman_id for m in metrics.salesmen_metrics]
        history = self.aggregator.visit_history(ids, metrics.date, now=now)
        return get_all_red_flags_for_date(metrics.date, metrics.salesmen_metrics, history)

    def _write_cache(self, write, key: str) -> None:
        try:
            write()
        except CacheWriteFailure as e:
            logger.warning("Could not cache %s insight: %s", key, e)

    # ----- daily ----------------------------------------------------------

    def _generate_daily(self, metrics: AggregatedMetrics, red_flags: list[SalesmanRedFlags]) -> tuple[dict[str, Any], str]:
        if self._can_generate:
            try:
                raw = self.client.complete_json(DAILY_SYSTEM_PROMPT, build_daily_user_prompt(metrics, red_flags))
                return validate_daily_insight(raw), SOURCE_LLM
            except Exception as e:
                logger.warning("Daily narrative for %s failed, using template: %s", metrics.date, e)
        return generate_daily_fallback(metrics, red_flags), SOURCE_TEMPLATE

    def daily_insight(self, date: str, now: datetime | None = None) -> InsightResult:
        validate_date(date)
        cached = self.cache.get_daily(date)
        if cached is not None:
            logger.info("Daily insight cache hit for %s", date)
            return InsightResult(cached, SOURCE_CACHE)

        metrics = self.aggregator.daily_metrics_for_date(date)
        red_flags = self.red_flags_for(metrics, now)
        payload, source = self._generate_daily(metrics, red_flags)
        self._write_cache(lambda: self.cache.put_daily(date, payload), f"daily {date}")
        return InsightResult(payload, source)

    # ----- weekly ---------------------------------------------------------

    def weekly_insight(
        self,
        period: Period | None = None,
        refresh: bool = False,
        now: datetime | None = None,
    ) -> InsightResult:
        if period is None:
            period = get_last_complete_week_range(now, self.aggregator.tz_offset)
        else:
            validate_date(period.from_date, "from")
            validate_date(period.to_date, "to")
        key = f"weekly {period.from_date}..{period.to_date}"

        if not refresh:
            cached = self.cache.get_weekly(period)
            if cached is not None:
                logger.info("Weekly insight cache hit for %s..%s", period.from_date, period.to_date)
                return InsightResult(cached, SOURCE_CACHE)

        weekly_input = build_weekly_input(self.aggregator, period, now=now)
        payload, source = None, SOURCE_TEMPLATE
        if self._can_generate:
            try:
                raw = self.client.complete_json(WEEKLY_SYSTEM_PROMPT, build_weekly_user_prompt(weekly_input))
                payload = normalize_weekly_insight(validate_weekly_structure(raw), weekly_input)
                source = SOURCE_LLM
            except Exception as e:
                logger.warning("Weekly narrative for %s failed, using template: %s", key, e)
        if payload is None:
            payload = generate_weekly_fallback(weekly_input)

        self._write_cache(lambda: self.cache.put_weekly(period, payload), key)
        return InsightResult(payload, source)

    # ----- sales performance ------------------------------------------------

    def sales_performance_insights(self, date: str, mode: str = "daily") -> InsightResult:
        """Short per-period performance observations. Not cached."""
        validate_date(date)
        performance = build_sales_performance_input(self.aggregator, date, mode)
        period = performance.period.to_dict()
        if self._can_generate:
            try:
                raw = self.client.complete_json(
                    SALES_PERFORMANCE_SYSTEM_PROMPT, build_sales_performance_user_prompt(performance)
                )
                insights = validate_sales_performance(raw)
                return InsightResult({"period": period, "insights": insights[:MAX_PERFORMANCE_INSIGHTS]}, SOURCE_LLM)
            except Exception as e:
                logger.warning("Sales performance narrative for %s failed, using template: %s", date, e)
        return InsightResult(
            {"period": period, "insights": generate_sales_performance_fallback(performance)}, SOURCE_TEMPLATE
        )
