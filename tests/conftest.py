"""
Pytest fixtures for the sales monitor.

Builds small in-memory event stores; nothing touches the network or a database.
All timestamps are written in business-local time (+07:00).
"""

from datetime import datetime, timezone

import pandas as pd
import pytest

from config import Settings
from event_store import FrameEventStore
from insight_cache import MemoryInsightCache

# Monday 2024-06-10 12:00 local; the last complete week is 2024-06-03..2024-06-09.
NOW = datetime(2024, 6, 10, 5, 0, tzinfo=timezone.utc)


# =============================================================================
# ORGANISATION FIXTURES
# =============================================================================

@pytest.fixture
def salesmen_df() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"id": "s1", "code": "S001", "name": "Andi", "active": True, "leader_id": "l1", "region_id": "r1"},
            {"id": "s2", "code": "S002", "name": "Bela", "active": True, "leader_id": "l2", "region_id": "r2"},
            {"id": "s3", "code": "S003", "name": "Citra", "active": False, "leader_id": "l1", "region_id": "r1"},
        ]
    )


@pytest.fixture
def leaders_df() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"id": "l1", "code": "L001", "name": "Budi", "active": True},
            {"id": "l2", "code": "L002", "name": "Sari", "active": True},
        ]
    )


@pytest.fixture
def regions_df() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"id": "r1", "code": "JKT", "name": "Jakarta", "leader_id": "l1"},
            {"id": "r2", "code": "BDG", "name": "Bandung", "leader_id": "l2"},
        ]
    )


@pytest.fixture
def outlets_df() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"id": f"o{i}", "code": f"OUT{i:03d}", "name": f"Toko {i}", "lat": None, "lng": None,
             "outlet_type": "Grosir" if i <= 5 else "Retail"}
            for i in range(1, 11)
        ]
    )


# =============================================================================
# EVENT HELPERS
# =============================================================================

def checkin(salesman_id: str, outlet_id: str, ts: str, leader_id=None, region_id=None) -> dict:
    return {
        "id": f"c-{salesman_id}-{outlet_id}-{ts}",
        "salesman_id": salesman_id,
        "leader_id": leader_id,
        "region_id": region_id,
        "outlet_id": outlet_id,
        "ts": ts,
    }


def sale(salesman_id: str, outlet_id: str, ts: str, amount: float, qty: float = 1, leader_id=None, region_id=None) -> dict:
    return {
        "id": f"x-{salesman_id}-{outlet_id}-{ts}",
        "salesman_id": salesman_id,
        "leader_id": leader_id,
        "region_id": region_id,
        "outlet_id": outlet_id,
        "ts": ts,
        "amount": amount,
        "qty": qty,
    }


ORG = {"s1": ("l1", "r1"), "s2": ("l2", "r2"), "s3": ("l1", "r1")}


def visits(salesman_id: str, day: str, count: int, start_outlet: int = 1) -> list[dict]:
    """`count` check-ins on `day`, one per hour from 08:00 local, cycling over outlets o1..o10."""
    leader_id, region_id = ORG[salesman_id]
    return [
        checkin(
            salesman_id,
            f"o{(start_outlet - 1 + i) % 10 + 1}",
            f"{day}T{8 + i % 12:02d}:{i // 12:02d}:00+07:00",
            leader_id,
            region_id,
        )
        for i in range(count)
    ]


def sold(salesman_id: str, outlet_id: str, day: str, amount: float, qty: float = 1, hour: int = 10) -> dict:
    leader_id, region_id = ORG[salesman_id]
    return sale(salesman_id, outlet_id, f"{day}T{hour:02d}:30:00+07:00", amount, qty, leader_id, region_id)


@pytest.fixture
def make_store(salesmen_df, leaders_df, regions_df, outlets_df):
    """Factory: FrameEventStore over the fixture organisation plus the given events."""

    def _make(checkins: list[dict] | None = None, sales: list[dict] | None = None, salesmen=None) -> FrameEventStore:
        return FrameEventStore(
            salesmen=salesmen if salesmen is not None else salesmen_df,
            leaders=leaders_df,
            regions=regions_df,
            outlets=outlets_df,
            checkins=pd.DataFrame(checkins) if checkins else None,
            sales=pd.DataFrame(sales) if sales else None,
        )

    return _make


@pytest.fixture
def settings() -> Settings:
    return Settings(insight_cache_dir="unused", llm_retry_backoff_seconds=0.0)


@pytest.fixture
def memory_cache() -> MemoryInsightCache:
    return MemoryInsightCache()


# =============================================================================
# NARRATIVE SERVICE FAKES
# =============================================================================

class FakeNarrativeClient:
    """Stands in for NarrativeClient: returns canned JSON or raises a given error."""

    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple[str, str]] = []

    @property
    def available(self) -> bool:
        return True

    def complete_json(self, system_prompt: str, user_prompt: str) -> dict:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_client_factory():
    return FakeNarrativeClient
