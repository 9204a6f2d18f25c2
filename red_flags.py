"""
Red-flag rule engine.

Each rule is a pure function over one salesman's metrics and the trailing
daily visit counts of that salesman (oldest first, ending on the evaluation
date). Rules are independent: a salesman can collect several flags for the
same day. New rules are added by appending to RED_FLAG_RULES and describing
them in RULE_DEFINITIONS; existing rules are not touched.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from metrics import SalesmanMetrics, SalesmanReport

SEVERITIES = ("high", "medium", "low")

RULE_DEFINITIONS = {
    "RF_LOW_EFFECTIVENESS": {
        "code": "RF_LOW_EFFECTIVENESS",
        "title": "Efektivitas Rendah",
        "severity": "high",
        "condition": "visit_count >= 5 AND total_sales_amount == 0 for the day",
        "min_visits": 5,
    },
    "RF_TOO_CONSISTENT_7D": {
        "code": "RF_TOO_CONSISTENT_7D",
        "title": "Kunjungan Tidak Variatif",
        "severity": "medium",
        "condition": "last 7 available days (up to the evaluation date) have the identical visit count, and it is >= 5",
        "min_visits": 5,
        "window_days": 7,
    },
}

LOW_EFFECTIVENESS_MIN_VISITS = RULE_DEFINITIONS["RF_LOW_EFFECTIVENESS"]["min_visits"]
TOO_CONSISTENT_MIN_VISITS = RULE_DEFINITIONS["RF_TOO_CONSISTENT_7D"]["min_visits"]
TOO_CONSISTENT_WINDOW_DAYS = RULE_DEFINITIONS["RF_TOO_CONSISTENT_7D"]["window_days"]


@dataclass
class RedFlag:
    code: str
    title: str
    severity: str  # "low" | "medium" | "high"
    reason: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class SalesmanRedFlags:
    salesman_id: str
    salesman_code: str
    salesman_name: str
    red_flags: list[RedFlag] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


RedFlagRule = Callable[[SalesmanMetrics, list[int]], "RedFlag | None"]


def _flag(code: str, reason: str) -> RedFlag:
    defn = RULE_DEFINITIONS[code]
    return RedFlag(code=code, title=defn["title"], severity=defn["severity"], reason=reason)


def low_effectiveness_rule(metrics: SalesmanMetrics, history: list[int]) -> RedFlag | None:
    if metrics.visit_count >= LOW_EFFECTIVENESS_MIN_VISITS and metrics.total_sales_amount == 0:
        return _flag(
            "RF_LOW_EFFECTIVENESS",
            f"Melakukan {metrics.visit_count} kunjungan tetapi tidak ada penjualan. Pola ini perlu ditinjau.",
        )
    return None


def too_consistent_rule(metrics: SalesmanMetrics, history: list[int]) -> RedFlag | None:
    # an incomplete trailing window never flags
    if len(history) < TOO_CONSISTENT_WINDOW_DAYS:
        return None
    window = history[-TOO_CONSISTENT_WINDOW_DAYS:]
    first = window[0]
    if first >= TOO_CONSISTENT_MIN_VISITS and all(count == first for count in window):
        return _flag(
            "RF_TOO_CONSISTENT_7D",
            f"Tepat {first} kunjungan setiap hari selama 7 hari terakhir. "
            "Pola kunjungan tidak variatif dan perlu ditinjau.",
        )
    return None


RED_FLAG_RULES: tuple[RedFlagRule, ...] = (
    low_effectiveness_rule,
    too_consistent_rule,
)


def detect_red_flags(
    metrics: SalesmanMetrics,
    history: list[int] | None = None,
    rules: Iterable[RedFlagRule] = RED_FLAG_RULES,
) -> list[RedFlag]:
    history = history or []
    flags = []
    for rule in rules:
        flag = rule(metrics, history)
        if flag is not None:
            flags.append(flag)
    return flags


def detect_red_flags_for_metrics(metrics: SalesmanMetrics) -> list[RedFlag]:
    """Rules that need only the day's own metrics."""
    return detect_red_flags(metrics, [], rules=(low_effectiveness_rule,))


def get_all_red_flags_for_date(
    date: str,
    salesmen_metrics: list[SalesmanMetrics],
    visit_history: Mapping[str, list[int]],
    rules: Iterable[RedFlagRule] = RED_FLAG_RULES,
) -> list[SalesmanRedFlags]:
    """Run every rule for every salesman on `date`; keep only salesmen with at least one flag."""
    rules = tuple(rules)
    results = []
    for m in salesmen_metrics:
        flags = detect_red_flags(m, list(visit_history.get(m.salesman_id, [])), rules)
        if flags:
            results.append(
                SalesmanRedFlags(
                    salesman_id=m.salesman_id,
                    salesman_code=m.salesman_code,
                    salesman_name=m.salesman_name,
                    red_flags=flags,
                )
            )
    return results


def count_red_flags_by_severity(red_flags: Iterable[SalesmanRedFlags]) -> dict[str, int]:
    counts = {severity: 0 for severity in SEVERITIES}
    for sr in red_flags:
        for flag in sr.red_flags:
            counts[flag.severity] = counts.get(flag.severity, 0) + 1
    return counts


def red_flag_history(
    report: SalesmanReport,
    history_by_date: Mapping[str, list[int]],
    rules: Iterable[RedFlagRule] = RED_FLAG_RULES,
) -> list[dict[str, Any]]:
    """Per-day flags for one salesman's report, only days that raised something."""
    rules = tuple(rules)
    days = []
    for m in report.daily_metrics:
        flags = detect_red_flags(m, list(history_by_date.get(m.date, [])), rules)
        if flags:
            days.append({"date": m.date, "flags": [f.to_dict() for f in flags]})
    return days
