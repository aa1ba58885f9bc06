"""
Dashboard metric types and the pure calculations behind them
=============================================================
Everything here is a pure function of its arguments. The engine fetches
totals from the record store and hands them to these helpers, which keeps
the guards (divide-by-zero, empty sets) testable without a store.

Windows are half-open [start, end). For a window length of N days:
  current  = [now - N, now)
  previous = [now - 2N, now - N)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Any, Optional

DEFAULT_WINDOW_DAYS = 30

# Timeframe preset → window length in days
TIMEFRAME_DAYS: dict[str, int] = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "365d": 365,
}

# stress ratio strictly above these moves up a tier
BURNOUT_HIGH_RATIO = 5
BURNOUT_MEDIUM_RATIO = 2

# slow-moving stock: more than this many units on hand and fewer than this many sales
SLOW_MOVING_MIN_INVENTORY = 100
SLOW_MOVING_MAX_SALES = 10

NO_PLATFORM = "N/A"

# Python 3.10 fromisoformat only accepts 3 or 6 fractional digits; PostgREST trims trailing zeros
_FRACTION = re.compile(r"\.(\d+)(?=[+-]\d{2}:\d{2}$|$)")


class TaskStatus:
    TODO = "TODO"
    INPROGRESS = "INPROGRESS"
    DONE = "DONE"

    ALL = frozenset({TODO, INPROGRESS, DONE})


class TaskPriority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = frozenset({LOW, MEDIUM, HIGH})


class BurnoutRisk:
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    ALL = frozenset({LOW, MEDIUM, HIGH})


# ---------------------------------------------------------------------------
# Time windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Window:
    """Half-open time interval [start, end)."""
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ensure_utc(ts) < self.end


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes or ISO-8601 strings (with or without 'Z'). Returns None if unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    s = str(value).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    s = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s)
    try:
        return ensure_utc(datetime.fromisoformat(s))
    except ValueError:
        return None


def trailing_windows(now: datetime, days: int = DEFAULT_WINDOW_DAYS) -> tuple[Window, Window]:
    """Return (current, previous) windows of equal length ending at now."""
    if days <= 0:
        raise ValueError(f"window length must be positive, got {days}")
    now = ensure_utc(now)
    span = timedelta(days=days)
    current = Window(start=now - span, end=now)
    previous = Window(start=now - 2 * span, end=now - span)
    return current, previous


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------

def change_pct(current: float, previous: float) -> float:
    """
    Period-over-period change in percent.

    A zero baseline yields 100 when there is new activity and 0 otherwise.
    The result is not clamped.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; 12.5 must become 13
    return int(math.floor(value + 0.5))


def completion_rate(done: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(done / total * 100)


def engagement_rate(clicks: float, reach: float) -> float:
    if reach <= 0:
        return 0.0
    return clicks / reach * 100


def net_profit_margin(revenue: float, spend: float) -> float:
    if revenue == 0:
        return 0.0
    return (revenue - spend) / revenue * 100


def unit_profit_margin(sale_price: float, cost_per_unit: float) -> float:
    if sale_price <= 0:
        return 0.0
    return (sale_price - cost_per_unit) / sale_price * 100


def count_stressful_tasks(tasks: list[dict], now: datetime) -> int:
    """
    High-priority open tasks plus overdue open tasks.

    A task that is both high priority and overdue counts twice.
    """
    now = ensure_utc(now)
    high_priority = 0
    overdue = 0
    for task in tasks:
        if task.get("status") == TaskStatus.DONE:
            continue
        if task.get("priority") == TaskPriority.HIGH:
            high_priority += 1
        due = parse_timestamp(task.get("due_date"))
        if due is not None and due < now:
            overdue += 1
    return high_priority + overdue


def stress_ratio(stressful_count: int, team_size: int) -> float:
    return stressful_count / max(1, team_size)


def classify_burnout(ratio: float) -> str:
    if ratio > BURNOUT_HIGH_RATIO:
        return BurnoutRisk.HIGH
    if ratio > BURNOUT_MEDIUM_RATIO:
        return BurnoutRisk.MEDIUM
    return BurnoutRisk.LOW


def top_awareness_platform(journeys: list[dict], touchpoints: list[dict]) -> str:
    """
    Most common first-touch platform across converting multi-touch journeys.

    Only journeys that converted and have more than one touchpoint count.
    Touchpoints are ordered by their timestamp. On a tie the platform seen
    last wins. Returns NO_PLATFORM when no journey qualifies.
    """
    by_journey: dict[str, list[dict]] = {}
    for tp in touchpoints:
        by_journey.setdefault(tp.get("journey_id"), []).append(tp)

    counts: dict[str, int] = {}
    for journey in journeys:
        if not journey.get("conversion"):
            continue
        path = by_journey.get(journey.get("id"), [])
        if len(path) <= 1:
            continue
        first = min(path, key=_touch_order)
        platform = first.get("platform")
        if not platform:
            continue
        counts[platform] = counts.get(platform, 0) + 1

    best = None
    for platform, n in counts.items():
        if best is None or n >= counts[best]:
            best = platform
    return best if best is not None else NO_PLATFORM


def _touch_order(tp: dict):
    ts = parse_timestamp(tp.get("timestamp")) or parse_timestamp(tp.get("created_at"))
    return ts or datetime.max.replace(tzinfo=timezone.utc)


def slow_moving_product(products: list[dict], sales_per_product: dict[str, int]) -> Optional[dict]:
    """Highest-inventory product holding over 100 units with fewer than 10 sales, or None."""
    candidates = [
        p for p in products
        if (p.get("inventory_level") or 0) > SLOW_MOVING_MIN_INVENTORY
        and sales_per_product.get(p.get("id"), 0) < SLOW_MOVING_MAX_SALES
    ]
    if not candidates:
        return None
    return sorted(candidates, key=lambda p: -(p.get("inventory_level") or 0))[0]


def report_date(now: datetime) -> str:
    """'October 19, 2026'"""
    return f"{now.strftime('%B')} {now.day}, {now.year}"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class TeamPerformance:
    completion_rate: int = 0
    burnout_risk: str = BurnoutRisk.LOW


@dataclass
class Financials:
    net_profit_margin: float = 0.0


@dataclass
class DashboardMetrics:
    """KPI card values for one tenant, computed per request and never persisted."""
    total_revenue: float = 0.0
    revenue_change: float = 0.0
    total_reach: int = 0
    reach_change: float = 0.0
    engagement_rate: float = 0.0
    engagement_rate_change: float = 0.0
    total_conversions: int = 0
    total_conversions_change: float = 0.0
    team_performance: TeamPerformance = field(default_factory=TeamPerformance)
    financials: Financials = field(default_factory=Financials)

    def to_dict(self) -> dict:
        """JSON shape served by GET /api/dashboard/stats."""
        return {
            "totalRevenue": self.total_revenue,
            "revenueChange": self.revenue_change,
            "totalReach": self.total_reach,
            "reachChange": self.reach_change,
            "engagementRate": self.engagement_rate,
            "engagementRateChange": self.engagement_rate_change,
            "totalConversions": self.total_conversions,
            "totalConversionsChange": self.total_conversions_change,
            "teamPerformance": {
                "completionRate": self.team_performance.completion_rate,
                "burnoutRisk": self.team_performance.burnout_risk,
            },
            "financials": {
                "netProfitMargin": self.financials.net_profit_margin,
            },
        }


@dataclass
class RevenuePoint:
    date: str       # YYYY-MM-DD (UTC)
    label: str      # "Oct 19"
    revenue: float

    def to_dict(self) -> dict:
        return {"date": self.date, "label": self.label, "revenue": self.revenue}


@dataclass
class ProductPerformance:
    id: str
    name: str
    sale_price: float
    cost_per_unit: float
    inventory_level: int
    total_sales_count: int
    profit_margin: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "salePrice": self.sale_price,
            "costPerUnit": self.cost_per_unit,
            "inventoryLevel": self.inventory_level,
            "totalSalesCount": self.total_sales_count,
            "profitMargin": self.profit_margin,
        }


@dataclass
class InsightReport:
    """Plain-language findings for the InSight panel."""
    top_awareness_platform: str
    slow_moving_product: Optional[dict]
    generated_date: str

    @property
    def attribution_text(self) -> str:
        return (
            f"While some channels drive direct sales, {self.top_awareness_platform} appears to be "
            "critical for initial customer awareness in multi-touch conversion paths."
        )

    @property
    def inventory_text(self) -> str:
        p = self.slow_moving_product
        if p is None:
            return "Your inventory levels are well-managed."
        return (
            f'You have a high inventory ({p.get("inventory_level")} units) of "{p.get("name")}", '
            "which has low sales volume. Consider a clearance campaign."
        )

    def to_dict(self) -> dict:
        """JSON shape served by GET /api/insight/report."""
        p = self.slow_moving_product
        return {
            "attributionInsight": {
                "text": self.attribution_text,
                "platform": self.top_awareness_platform,
            },
            "inventoryInsight": {
                "text": self.inventory_text,
                "productId": p.get("id") if p else None,
                "inventoryLevel": p.get("inventory_level") if p else None,
            },
            "generatedDate": self.generated_date,
        }
