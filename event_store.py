"""
Event store gateway.

`EventStore` is the query contract the aggregation engine consumes: active
salesmen, range-filtered visit/sales statistics and their grouped variants.
`FrameEventStore` answers it from pandas DataFrames (loaded from CSV exports
by `load_event_store`). Raw rows are coerced once here: missing amounts and
quantities become 0, missing ids become None, timestamps become UTC.
"""

import functools
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np
import pandas as pd

from errors import SalesMonitorError, UpstreamUnavailable, ValidationError
from metric_definitions import get_all_required_columns
from time_windows import DEFAULT_TZ_OFFSET, TimeWindow, parse_tz_offset

logger = logging.getLogger(__name__)

GROUP_KEYS = ("salesman_id", "leader_id", "region_id", "outlet_id")
OUTLET_TYPE_COLUMNS = ("outlet_type", "type", "category", "segment", "channel")

FRAME_COLUMNS = {
    "salesmen": ["id", "code", "name", "active", "leader_id", "region_id"],
    "leaders": ["id", "code", "name", "active"],
    "regions": ["id", "code", "name", "leader_id"],
    "outlets": ["id", "code", "name", "lat", "lng", "outlet_type"],
    "checkins": ["id", "salesman_id", "leader_id", "region_id", "outlet_id", "ts", "lat", "lng", "notes"],
    "sales": ["id", "salesman_id", "leader_id", "region_id", "outlet_id", "ts", "amount", "qty", "invoice_no"],
}

COLUMN_ALIASES = {
    "timestamp": "ts",
    "quantity": "qty",
    "latitude": "lat",
    "longitude": "lng",
    "invoice_number": "invoice_no",
}


@dataclass(frozen=True)
class Salesman:
    id: str
    code: str
    name: str
    active: bool = True
    leader_id: str | None = None
    region_id: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "code": self.code, "name": self.name}


@dataclass(frozen=True)
class Leader:
    id: str
    code: str
    name: str
    active: bool = True


@dataclass(frozen=True)
class Region:
    id: str
    code: str
    name: str
    leader_id: str | None = None


@dataclass(frozen=True)
class Outlet:
    id: str
    code: str
    name: str
    lat: float | None = None
    lng: float | None = None
    outlet_type: str | None = None


@dataclass(frozen=True)
class CheckinRecord:
    id: str
    salesman_id: str
    outlet_id: str | None
    ts: datetime
    lat: float | None = None
    lng: float | None = None
    notes: str | None = None
    outlet_code: str | None = None
    outlet_name: str | None = None


@dataclass(frozen=True)
class SaleRecord:
    id: str
    salesman_id: str
    outlet_id: str | None
    ts: datetime
    amount: float = 0.0
    qty: float = 0.0
    invoice_no: str | None = None
    outlet_code: str | None = None
    outlet_name: str | None = None


@dataclass(frozen=True)
class VisitStats:
    visit_count: int = 0
    unique_outlet_count: int = 0


@dataclass(frozen=True)
class SalesStats:
    amount: float = 0.0
    qty: float = 0.0
    outlets_with_sale: int = 0
    sales_count: int = 0


@dataclass(frozen=True)
class OutletTypeVisits:
    salesman_id: str
    salesman_name: str
    outlet_type: str
    visit_count: int


@dataclass(frozen=True)
class DaypartVisits:
    salesman_id: str
    salesman_name: str
    daypart: str
    visit_count: int
    success_count: int


class EventStore(ABC):
    """Read contract for salesmen, organisation and check-in/sale events."""

    @abstractmethod
    def list_active_salesmen(self) -> list[Salesman]: ...

    @abstractmethod
    def get_salesman(self, salesman_id: str) -> Salesman | None: ...

    @abstractmethod
    def list_leaders(self) -> list[Leader]: ...

    @abstractmethod
    def list_regions(self) -> list[Region]: ...

    @abstractmethod
    def list_outlets(self) -> list[Outlet]: ...

    @abstractmethod
    def visit_stats(
        self,
        window: TimeWindow,
        salesman_id: str | None = None,
        leader_id: str | None = None,
        region_id: str | None = None,
    ) -> VisitStats: ...

    @abstractmethod
    def sales_stats(
        self,
        window: TimeWindow,
        salesman_id: str | None = None,
        leader_id: str | None = None,
        region_id: str | None = None,
    ) -> SalesStats: ...

    @abstractmethod
    def grouped_visit_stats(self, window: TimeWindow, by: str) -> dict[str, VisitStats]: ...

    @abstractmethod
    def grouped_sales_stats(self, window: TimeWindow, by: str) -> dict[str, SalesStats]: ...

    @abstractmethod
    def checkins_for(self, salesman_id: str, window: TimeWindow) -> list[CheckinRecord]: ...

    @abstractmethod
    def sales_for(self, salesman_id: str, window: TimeWindow) -> list[SaleRecord]: ...

    @abstractmethod
    def daily_visit_counts(
        self, window: TimeWindow, salesman_ids: list[str], tz_offset: str = DEFAULT_TZ_OFFSET
    ) -> dict[str, dict[str, int]]: ...

    @abstractmethod
    def outlet_type_visits(self, window: TimeWindow) -> list[OutletTypeVisits]: ...

    @abstractmethod
    def daypart_visits(self, window: TimeWindow, tz_offset: str = DEFAULT_TZ_OFFSET) -> list[DaypartVisits]: ...


def _store_query(fn):
    """Surface any non-domain failure inside a query as UpstreamUnavailable."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SalesMonitorError:
            raise
        except Exception as e:
            logger.error("Event store query %s failed: %s", fn.__name__, e)
            raise UpstreamUnavailable(f"{fn.__name__} failed: {e}") from e

    return wrapper


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = df.columns.str.strip()
    for old, new in COLUMN_ALIASES.items():
        if old in df.columns and new not in df.columns:
            df = df.rename(columns={old: new})
    return df


def _optional(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def _optional_str(value: Any) -> str | None:
    value = _optional(value)
    return None if value is None else str(value)


def _optional_float(value: Any) -> float | None:
    value = _optional(value)
    return None if value is None else float(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "t")
    value = _optional(value)
    return True if value is None else bool(value)


def _prepare_frame(name: str, df: pd.DataFrame | None) -> pd.DataFrame:
    columns = FRAME_COLUMNS[name]
    df = _normalize_columns(df) if df is not None else pd.DataFrame(columns=columns)
    for col in columns:
        if col not in df.columns:
            df[col] = None
    id_cols = [c for c in columns if c == "id" or c.endswith("_id")]
    for col in id_cols:
        df[col] = df[col].map(_optional_str).astype(object)
    if "ts" in df.columns:
        df["ts"] = pd.to_datetime(df["ts"], utc=True, errors="coerce", format="ISO8601")
        dropped = int(df["ts"].isna().sum())
        if dropped:
            logger.warning("Dropping %d %s rows with unparseable timestamps", dropped, name)
            df = df.dropna(subset=["ts"])
    for col in ("amount", "qty"):
        if col in columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0).astype(float)
    if "active" in columns:
        df["active"] = df["active"].map(_as_bool).astype(bool)
    return df.reset_index(drop=True)


class FrameEventStore(EventStore):
    """In-process event store backed by pandas DataFrames."""

    def __init__(
        self,
        salesmen: pd.DataFrame | None = None,
        leaders: pd.DataFrame | None = None,
        regions: pd.DataFrame | None = None,
        outlets: pd.DataFrame | None = None,
        checkins: pd.DataFrame | None = None,
        sales: pd.DataFrame | None = None,
    ):
        self.salesmen = _prepare_frame("salesmen", salesmen)
        self.leaders = _prepare_frame("leaders", leaders)
        self.regions = _prepare_frame("regions", regions)
        self.outlets = _prepare_frame("outlets", outlets)
        self.checkins = _prepare_frame("checkins", checkins)
        self.sales = _prepare_frame("sales", sales)

    # ----- organisation -------------------------------------------------

    @staticmethod
    def _to_salesman(row: dict[str, Any]) -> Salesman:
        return Salesman(
            id=str(row["id"]),
            code=str(row["code"]),
            name=str(row["name"]),
            active=_as_bool(row.get("active")),
            leader_id=_optional_str(row.get("leader_id")),
            region_id=_optional_str(row.get("region_id")),
        )

    @_store_query
    def list_active_salesmen(self) -> list[Salesman]:
        active = self.salesmen[self.salesmen["active"].astype(bool)]
        return [self._to_salesman(row) for row in active.to_dict("records")]

    @_store_query
    def get_salesman(self, salesman_id: str) -> Salesman | None:
        match = self.salesmen[self.salesmen["id"] == salesman_id]
        if match.empty:
            return None
        return self._to_salesman(match.iloc[0].to_dict())

    @_store_query
    def list_leaders(self) -> list[Leader]:
        return [
            Leader(id=str(r["id"]), code=str(r["code"]), name=str(r["name"]), active=_as_bool(r["active"]))
            for r in self.leaders.to_dict("records")
        ]

    @_store_query
    def list_regions(self) -> list[Region]:
        return [
            Region(id=str(r["id"]), code=str(r["code"]), name=str(r["name"]), leader_id=_optional_str(r["leader_id"]))
            for r in self.regions.to_dict("records")
        ]

    @_store_query
    def list_outlets(self) -> list[Outlet]:
        return [
            Outlet(
                id=str(r["id"]),
                code=str(r["code"]),
                name=str(r["name"]),
                lat=_optional_float(r["lat"]),
                lng=_optional_float(r["lng"]),
                outlet_type=self._outlet_type(r),
            )
            for r in self.outlets.to_dict("records")
        ]

    @staticmethod
    def _outlet_type(row: dict[str, Any]) -> str | None:
        for col in OUTLET_TYPE_COLUMNS:
            value = _optional_str(row.get(col))
            if value and value.strip():
                return value.strip()
        return None

    # ----- event filters --------------------------------------------------

    @staticmethod
    def _in_window(df: pd.DataFrame, window: TimeWindow) -> pd.DataFrame:
        start = pd.Timestamp(window.start)
        end = pd.Timestamp(window.end)
        return df[(df["ts"] >= start) & (df["ts"] <= end)]

    def _filtered(self, df: pd.DataFrame, window: TimeWindow, **filters: str | None) -> pd.DataFrame:
        rows = self._in_window(df, window)
        for col, value in filters.items():
            if value is not None:
                rows = rows[rows[col] == value]
        return rows

    @staticmethod
    def _check_group_key(by: str) -> None:
        if by not in GROUP_KEYS:
            raise ValidationError("by", f"Grouping key must be one of {', '.join(GROUP_KEYS)}")

    # ----- aggregate queries ----------------------------------------------

    @_store_query
    def visit_stats(self, window, salesman_id=None, leader_id=None, region_id=None) -> VisitStats:
        rows = self._filtered(
            self.checkins, window, salesman_id=salesman_id, leader_id=leader_id, region_id=region_id
        )
        return VisitStats(
            visit_count=int(len(rows)),
            unique_outlet_count=int(rows["outlet_id"].dropna().nunique()),
        )

    @_store_query
    def sales_stats(self, window, salesman_id=None, leader_id=None, region_id=None) -> SalesStats:
        rows = self._filtered(
            self.sales, window, salesman_id=salesman_id, leader_id=leader_id, region_id=region_id
        )
        return SalesStats(
            amount=float(rows["amount"].sum()),
            qty=float(rows["qty"].sum()),
            outlets_with_sale=int(rows.loc[rows["amount"] > 0, "outlet_id"].dropna().nunique()),
            sales_count=int(len(rows)),
        )

    @_store_query
    def grouped_visit_stats(self, window: TimeWindow, by: str) -> dict[str, VisitStats]:
        self._check_group_key(by)
        rows = self._in_window(self.checkins, window).dropna(subset=[by])
        if rows.empty:
            return {}
        grouped = rows.groupby(by).agg(
            visit_count=("ts", "size"),
            unique_outlet_count=("outlet_id", "nunique"),
        )
        return {
            str(key): VisitStats(int(r["visit_count"]), int(r["unique_outlet_count"]))
            for key, r in grouped.iterrows()
        }

    @_store_query
    def grouped_sales_stats(self, window: TimeWindow, by: str) -> dict[str, SalesStats]:
        self._check_group_key(by)
        rows = self._in_window(self.sales, window).dropna(subset=[by])
        if rows.empty:
            return {}
        grouped = rows.groupby(by).agg(
            amount=("amount", "sum"),
            qty=("qty", "sum"),
            sales_count=("ts", "size"),
        )
        with_sale = rows[rows["amount"] > 0].groupby(by)["outlet_id"].nunique()
        return {
            str(key): SalesStats(
                amount=float(r["amount"]),
                qty=float(r["qty"]),
                outlets_with_sale=int(with_sale.get(key, 0)),
                sales_count=int(r["sales_count"]),
            )
            for key, r in grouped.iterrows()
        }

    # ----- row queries ------------------------------------------------------

    def _outlet_lookup(self) -> dict[str, dict[str, Any]]:
        return {str(r["id"]): r for r in self.outlets.to_dict("records")}

    @_store_query
    def checkins_for(self, salesman_id: str, window: TimeWindow) -> list[CheckinRecord]:
        rows = self._filtered(self.checkins, window, salesman_id=salesman_id).sort_values("ts")
        outlets = self._outlet_lookup()
        records = []
        for r in rows.to_dict("records"):
            outlet = outlets.get(r["outlet_id"] or "", {})
            records.append(
                CheckinRecord(
                    id=str(r["id"]),
                    salesman_id=str(r["salesman_id"]),
                    outlet_id=r["outlet_id"],
                    ts=r["ts"].to_pydatetime(),
                    lat=_optional_float(r["lat"]),
                    lng=_optional_float(r["lng"]),
                    notes=_optional_str(r["notes"]),
                    outlet_code=_optional_str(outlet.get("code")),
                    outlet_name=_optional_str(outlet.get("name")),
                )
            )
        return records

    @_store_query
    def sales_for(self, salesman_id: str, window: TimeWindow) -> list[SaleRecord]:
        rows = self._filtered(self.sales, window, salesman_id=salesman_id).sort_values("ts")
        outlets = self._outlet_lookup()
        records = []
        for r in rows.to_dict("records"):
            outlet = outlets.get(r["outlet_id"] or "", {})
            records.append(
                SaleRecord(
                    id=str(r["id"]),
                    salesman_id=str(r["salesman_id"]),
                    outlet_id=r["outlet_id"],
                    ts=r["ts"].to_pydatetime(),
                    amount=float(r["amount"]),
                    qty=float(r["qty"]),
                    invoice_no=_optional_str(r["invoice_no"]),
                    outlet_code=_optional_str(outlet.get("code")),
                    outlet_name=_optional_str(outlet.get("name")),
                )
            )
        return records

    @staticmethod
    def _local_dates(ts: pd.Series, tz_offset: str) -> pd.Series:
        shifted = ts + pd.Timedelta(minutes=parse_tz_offset(tz_offset))
        return shifted.dt.strftime("%Y-%m-%d")

    @_store_query
    def daily_visit_counts(self, window, salesman_ids, tz_offset=DEFAULT_TZ_OFFSET) -> dict[str, dict[str, int]]:
        rows = self._in_window(self.checkins, window)
        rows = rows[rows["salesman_id"].isin(list(salesman_ids))]
        result: dict[str, dict[str, int]] = {sid: {} for sid in salesman_ids}
        if rows.empty:
            return result
        rows = rows.assign(local_date=self._local_dates(rows["ts"], tz_offset))
        counts = rows.groupby(["salesman_id", "local_date"]).size()
        for (sid, day), count in counts.items():
            result.setdefault(str(sid), {})[str(day)] = int(count)
        return result

    def _with_salesman_names(self, rows: pd.DataFrame) -> pd.DataFrame:
        names = self.salesmen[["id", "name"]].rename(columns={"id": "salesman_id", "name": "salesman_name"})
        return rows.merge(names, on="salesman_id", how="inner")

    @_store_query
    def outlet_type_visits(self, window: TimeWindow) -> list[OutletTypeVisits]:
        rows = self._with_salesman_names(self._in_window(self.checkins, window))
        if rows.empty:
            return []
        types = {oid: self._outlet_type(o) for oid, o in self._outlet_lookup().items()}
        rows = rows.assign(outlet_type=rows["outlet_id"].map(lambda oid: types.get(oid) if oid else None))
        rows = rows.dropna(subset=["outlet_type"])
        if rows.empty:
            return []
        counts = rows.groupby(["salesman_id", "salesman_name", "outlet_type"]).size()
        return [
            OutletTypeVisits(str(sid), str(name), str(otype), int(count))
            for (sid, name, otype), count in counts.items()
        ]

    @_store_query
    def daypart_visits(self, window: TimeWindow, tz_offset: str = DEFAULT_TZ_OFFSET) -> list[DaypartVisits]:
        rows = self._with_salesman_names(self._in_window(self.checkins, window))
        if rows.empty:
            return []
        offset = pd.Timedelta(minutes=parse_tz_offset(tz_offset))
        local = rows["ts"] + offset
        rows = rows.assign(
            local_date=local.dt.strftime("%Y-%m-%d"),
            daypart=local.dt.hour.map(_daypart),
        )
        sales = self._in_window(self.sales, window)
        sold = set(zip(sales["salesman_id"], sales["outlet_id"], self._local_dates(sales["ts"], tz_offset)))
        rows = rows.assign(
            success=[
                (sid, oid, day) in sold if oid is not None else False
                for sid, oid, day in zip(rows["salesman_id"], rows["outlet_id"], rows["local_date"])
            ]
        )
        grouped = rows.groupby(["salesman_id", "salesman_name", "daypart"]).agg(
            visit_count=("ts", "size"), success_count=("success", "sum")
        )
        return [
            DaypartVisits(str(sid), str(name), str(part), int(r["visit_count"]), int(r["success_count"]))
            for (sid, name, part), r in grouped.iterrows()
        ]

    # ----- ingestion ------------------------------------------------------

    def _upsert_salesman(self, code: str, name: str | None) -> Salesman:
        match = self.salesmen[self.salesmen["code"] == code]
        if not match.empty:
            return self._to_salesman(match.iloc[0].to_dict())
        if not name:
            raise ValidationError("salesman_name", "salesman_name wajib diisi untuk sales baru")
        row = {"id": str(uuid.uuid4()), "code": code, "name": name, "active": True, "leader_id": None, "region_id": None}
        self.salesmen = pd.concat([self.salesmen, pd.DataFrame([row])], ignore_index=True)
        logger.info("Created salesman %s (%s)", code, row["id"])
        return self._to_salesman(row)

    def _upsert_outlet(self, code: str, name: str | None, lat: float | None, lng: float | None) -> str:
        match = self.outlets[self.outlets["code"] == code]
        if not match.empty:
            return str(match.iloc[0]["id"])
        if not name:
            raise ValidationError("outlet_name", "outlet_name wajib diisi untuk outlet baru")
        row = {"id": str(uuid.uuid4()), "code": code, "name": name, "lat": lat, "lng": lng, "outlet_type": None}
        self.outlets = pd.concat([self.outlets, pd.DataFrame([row])], ignore_index=True)
        logger.info("Created outlet %s (%s)", code, row["id"])
        return row["id"]

    @staticmethod
    def _parse_ts(ts: str | datetime) -> pd.Timestamp:
        try:
            parsed = pd.Timestamp(ts)
        except (ValueError, TypeError) as e:
            raise ValidationError("ts", f"Timestamp tidak valid: {ts!r}") from e
        if pd.isna(parsed):
            raise ValidationError("ts", f"Timestamp tidak valid: {ts!r}")
        if parsed.tzinfo is None:
            raise ValidationError("ts", "Timestamp wajib menyertakan zona waktu")
        return parsed.tz_convert("UTC")

    @staticmethod
    def _require_code(value: str | None, field: str) -> str:
        if not value or not str(value).strip():
            raise ValidationError(field, f"{field} wajib diisi")
        return str(value).strip()

    def ingest_checkin(
        self,
        salesman_code: str,
        outlet_code: str,
        ts: str | datetime,
        salesman_name: str | None = None,
        outlet_name: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
        notes: str | None = None,
    ) -> dict[str, str]:
        salesman_code = self._require_code(salesman_code, "salesman_code")
        outlet_code = self._require_code(outlet_code, "outlet_code")
        parsed_ts = self._parse_ts(ts)
        salesman = self._upsert_salesman(salesman_code, salesman_name)
        outlet_id = self._upsert_outlet(outlet_code, outlet_name, lat, lng)
        row = {
            "id": str(uuid.uuid4()),
            "salesman_id": salesman.id,
            "leader_id": salesman.leader_id,
            "region_id": salesman.region_id,
            "outlet_id": outlet_id,
            "ts": parsed_ts,
            "lat": lat,
            "lng": lng,
            "notes": notes,
        }
        self.checkins = pd.concat([self.checkins, _event_frame(row)], ignore_index=True)
        return {"checkin_id": row["id"], "salesman_id": salesman.id, "outlet_id": outlet_id}

    def ingest_sale(
        self,
        salesman_code: str,
        outlet_code: str,
        ts: str | datetime,
        amount: float,
        qty: float,
        salesman_name: str | None = None,
        outlet_name: str | None = None,
        invoice_no: str | None = None,
    ) -> dict[str, str]:
        salesman_code = self._require_code(salesman_code, "salesman_code")
        outlet_code = self._require_code(outlet_code, "outlet_code")
        if amount is None or amount < 0:
            raise ValidationError("amount", "amount harus >= 0")
        if qty is None or qty < 0:
            raise ValidationError("qty", "qty harus >= 0")
        parsed_ts = self._parse_ts(ts)
        salesman = self._upsert_salesman(salesman_code, salesman_name)
        outlet_id = self._upsert_outlet(outlet_code, outlet_name, None, None)
        row = {
            "id": str(uuid.uuid4()),
            "salesman_id": salesman.id,
            "leader_id": salesman.leader_id,
            "region_id": salesman.region_id,
            "outlet_id": outlet_id,
            "ts": parsed_ts,
            "amount": float(amount),
            "qty": float(qty),
            "invoice_no": invoice_no,
        }
        self.sales = pd.concat([self.sales, _event_frame(row)], ignore_index=True)
        return {"sale_id": row["id"], "salesman_id": salesman.id, "outlet_id": outlet_id}


def _event_frame(row: dict[str, Any]) -> pd.DataFrame:
    frame = pd.DataFrame([row])
    frame["ts"] = pd.to_datetime(frame["ts"], utc=True)
    return frame.astype({c: object for c in frame.columns if c == "id" or c.endswith("_id")})


def _daypart(hour: int) -> str:
    if 6 <= hour <= 11:
        return "Pagi"
    if 12 <= hour <= 17:
        return "Siang"
    if 18 <= hour <= 21:
        return "Malam"
    return "Larut"


def load_event_store(data_dir: str) -> FrameEventStore:
    """Build a store from `<name>.csv` exports in data_dir. Missing files mean empty tables."""
    frames: dict[str, pd.DataFrame | None] = {}
    for name in FRAME_COLUMNS:
        path = os.path.join(data_dir, f"{name}.csv")
        if os.path.isfile(path):
            id_dtypes = {c: str for c in FRAME_COLUMNS[name] if c == "id" or c.endswith("_id")}
            try:
                frames[name] = pd.read_csv(path, dtype=id_dtypes)
            except (OSError, pd.errors.ParserError) as e:
                raise UpstreamUnavailable(f"Cannot read {path}: {e}") from e
            logger.info("Loaded %d %s rows from %s", len(frames[name]), name, path)
        else:
            frames[name] = None
    for missing in missing_metric_columns(frames):
        logger.warning("Column %s is missing; metrics that need it will read as zero", missing)
    return FrameEventStore(**frames)


def missing_metric_columns(frames: dict[str, pd.DataFrame | None]) -> list[str]:
    """Required metric columns absent from loaded frames. Tables that were not loaded at all are skipped."""
    missing = []
    for qualified in get_all_required_columns():
        table, column = qualified.split(".", 1)
        df = frames.get(table)
        if df is not None and column not in _normalize_columns(df).columns:
            missing.append(qualified)
    return missing
