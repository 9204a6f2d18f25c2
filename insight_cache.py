"""
Insight cache keyed by date (daily) or by period (weekly).

Writes are upserts: the last write for a key wins. A corrupt or unreadable
entry is reported as a miss so the insight is rebuilt.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any

from errors import CacheWriteFailure
from time_windows import Period

logger = logging.getLogger(__name__)


class InsightCache(ABC):
    @abstractmethod
    def get_daily(self, date: str) -> dict[str, Any] | None: ...

    @abstractmethod
    def put_daily(self, date: str, payload: dict[str, Any]) -> None: ...

    @abstractmethod
    def get_weekly(self, period: Period) -> dict[str, Any] | None: ...

    @abstractmethod
    def put_weekly(self, period: Period, payload: dict[str, Any]) -> None: ...


class MemoryInsightCache(InsightCache):
    def __init__(self):
        self.daily: dict[str, dict[str, Any]] = {}
        self.weekly: dict[tuple[str, str], dict[str, Any]] = {}

    def get_daily(self, date):
        return self.daily.get(date)

    def put_daily(self, date, payload):
        self.daily[date] = payload

    def get_weekly(self, period):
        return self.weekly.get((period.from_date, period.to_date))

    def put_weekly(self, period, payload):
        self.weekly[(period.from_date, period.to_date)] = payload


class JsonFileInsightCache(InsightCache):
    """One JSON file per key under cache_dir/daily and cache_dir/weekly."""

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir

    def _daily_path(self, date: str) -> str:
        return os.path.join(self.cache_dir, "daily", f"daily_{date}.json")

    def _weekly_path(self, period: Period) -> str:
        return os.path.join(self.cache_dir, "weekly", f"weekly_{period.from_date}_{period.to_date}.json")

    def _read(self, path: str) -> dict[str, Any] | None:
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (ValueError, OSError) as e:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, e)
            return None
        if not isinstance(payload, dict):
            logger.warning("Ignoring cache entry %s: not a JSON object", path)
            return None
        return payload

    def _write(self, path: str, payload: dict[str, Any]) -> None:
        tmp_path = f"{path}.tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise CacheWriteFailure(f"Cannot write {path}: {e}") from e

    def get_daily(self, date):
        return self._read(self._daily_path(date))

    def put_daily(self, date, payload):
        self._write(self._daily_path(date), payload)

    def get_weekly(self, period):
        return self._read(self._weekly_path(period))

    def put_weekly(self, period, payload):
        self._write(self._weekly_path(period), payload)
