"""
Dashboard Aggregation Engine
============================
compute_dashboard_metrics(): KPI cards for one tenant over a trailing window.
revenue_chart():             daily revenue series over the current window.
product_performance():       per-product sales count and unit margin.
insight_report():            top awareness channel and slow-moving stock.

The engine is stateless: it holds a record store and a clock, reads fresh
rows on every call and writes nothing. Store queries within one call run
concurrently; a failure in any of them (StoreUnavailable) propagates and no
partial result is returned.

Window-scoped metrics (revenue, reach, clicks, conversions, spend) compare the
current window [now-N, now) with the previous one [now-2N, now-N). Task
completion rate and burnout risk are snapshots over all of the tenant's tasks.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from models import utc_now
from .errors import InvalidTenant
from .metrics import (
    DEFAULT_WINDOW_DAYS,
    DashboardMetrics,
    Financials,
    InsightReport,
    ProductPerformance,
    RevenuePoint,
    TaskStatus,
    TeamPerformance,
    change_pct,
    classify_burnout,
    completion_rate,
    count_stressful_tasks,
    engagement_rate,
    ensure_utc,
    net_profit_margin,
    parse_timestamp,
    report_date,
    slow_moving_product,
    stress_ratio,
    top_awareness_platform,
    trailing_windows,
    unit_profit_margin,
)
from .store import Entity, RecordStore, normalize_total

logger = logging.getLogger(__name__)


def _require_tenant(tenant_id) -> str:
    if tenant_id is None or not str(tenant_id).strip():
        raise InvalidTenant(tenant_id)
    return tenant_id


class DashboardEngine:
    """Computes derived dashboard metrics from a RecordStore."""

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], datetime] = utc_now,
        window_days: int = DEFAULT_WINDOW_DAYS,
    ):
        self.store = store
        self.clock = clock
        self.window_days = window_days

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now if now is not None else self.clock())

    def _windows(self, now: datetime, window_days: Optional[int]):
        return trailing_windows(now, window_days if window_days is not None else self.window_days)

    async def compute_dashboard_metrics(
        self,
        tenant_id: str,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
    ) -> DashboardMetrics:
        tenant_id = _require_tenant(tenant_id)
        now = self._now(now)
        current, previous = self._windows(now, window_days)
        store = self.store

        (
            revenue_cur, revenue_prev,
            reach_cur, reach_prev,
            clicks_cur, clicks_prev,
            conversions_cur, conversions_prev,
            spend_cur,
            total_tasks, done_tasks,
            tasks, team_size,
        ) = await asyncio.gather(
            store.sum(Entity.SALE, "revenue", tenant_id, current),
            store.sum(Entity.SALE, "revenue", tenant_id, previous),
            store.sum(Entity.CAMPAIGN, "reach", tenant_id, current),
            store.sum(Entity.CAMPAIGN, "reach", tenant_id, previous),
            store.sum(Entity.CAMPAIGN, "clicks", tenant_id, current),
            store.sum(Entity.CAMPAIGN, "clicks", tenant_id, previous),
            store.sum(Entity.CAMPAIGN, "conversions", tenant_id, current),
            store.sum(Entity.CAMPAIGN, "conversions", tenant_id, previous),
            store.sum(Entity.CAMPAIGN, "spend", tenant_id, current),
            store.count(Entity.TASK, tenant_id),
            store.count(Entity.TASK, tenant_id, {"status": TaskStatus.DONE}),
            store.list(Entity.TASK, tenant_id),
            store.count(Entity.TEAM_MEMBER, tenant_id, distinct="user_id"),
        )

        ratio = stress_ratio(count_stressful_tasks(tasks, now), team_size)

        metrics = DashboardMetrics(
            total_revenue=revenue_cur,
            revenue_change=change_pct(revenue_cur, revenue_prev),
            total_reach=reach_cur,
            reach_change=change_pct(reach_cur, reach_prev),
            engagement_rate=engagement_rate(clicks_cur, reach_cur),
            # change is measured on raw clicks, not on the rate
            engagement_rate_change=change_pct(clicks_cur, clicks_prev),
            total_conversions=conversions_cur,
            total_conversions_change=change_pct(conversions_cur, conversions_prev),
            team_performance=TeamPerformance(
                completion_rate=completion_rate(done_tasks, total_tasks),
                burnout_risk=classify_burnout(ratio),
            ),
            financials=Financials(
                net_profit_margin=net_profit_margin(revenue_cur, spend_cur),
            ),
        )
        logger.debug(
            "dashboard metrics tenant=%s window=[%s, %s) revenue=%s ratio=%.2f",
            tenant_id, current.start.isoformat(), current.end.isoformat(), revenue_cur, ratio,
        )
        return metrics

    async def revenue_chart(
        self,
        tenant_id: str,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
    ) -> list[RevenuePoint]:
        """Revenue per UTC calendar day over the current window. Days without sales are omitted."""
        tenant_id = _require_tenant(tenant_id)
        current, _ = self._windows(self._now(now), window_days)
        sales = await self.store.list(Entity.SALE, tenant_id, window=current)

        daily: dict = defaultdict(float)
        for sale in sales:
            created = parse_timestamp(sale.get("created_at"))
            if created is None:
                continue
            daily[created.date()] += normalize_total("revenue", sale.get("revenue"))

        return [
            RevenuePoint(
                date=day.isoformat(),
                label=f"{day.strftime('%b')} {day.day}",
                revenue=round(daily[day], 2),
            )
            for day in sorted(daily)
        ]

    async def product_performance(self, tenant_id: str) -> list[ProductPerformance]:
        tenant_id = _require_tenant(tenant_id)
        products, sales = await asyncio.gather(
            self.store.list(Entity.PRODUCT, tenant_id),
            self.store.list(Entity.SALE, tenant_id),
        )

        sales_per_product = _sales_per_product(sales)
        result = []
        for p in products:
            sale_price = normalize_total("sale_price", p.get("sale_price"))
            cost = normalize_total("cost_per_unit", p.get("cost_per_unit"))
            result.append(ProductPerformance(
                id=p["id"],
                name=p.get("name") or "",
                sale_price=sale_price,
                cost_per_unit=cost,
                inventory_level=normalize_total("inventory_level", p.get("inventory_level")),
                total_sales_count=sales_per_product.get(p["id"], 0),
                profit_margin=unit_profit_margin(sale_price, cost),
            ))
        result.sort(key=lambda r: r.name.lower())
        return result

    async def insight_report(self, tenant_id: str, now: Optional[datetime] = None) -> InsightReport:
        tenant_id = _require_tenant(tenant_id)
        now = self._now(now)
        journeys, touchpoints, products, sales = await asyncio.gather(
            self.store.list(Entity.JOURNEY, tenant_id),
            self.store.list(Entity.TOUCHPOINT, tenant_id),
            self.store.list(Entity.PRODUCT, tenant_id),
            self.store.list(Entity.SALE, tenant_id),
        )

        report = InsightReport(
            top_awareness_platform=top_awareness_platform(journeys, touchpoints),
            slow_moving_product=slow_moving_product(products, _sales_per_product(sales)),
            generated_date=report_date(now),
        )
        logger.debug(
            "insight report tenant=%s platform=%s slow_moving=%s",
            tenant_id, report.top_awareness_platform,
            report.slow_moving_product.get("id") if report.slow_moving_product else None,
        )
        return report


def _sales_per_product(sales: list[dict]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for sale in sales:
        if sale.get("product_id"):
            counts[sale["product_id"]] += 1
    return counts


async def compute_dashboard_metrics(
    store: RecordStore,
    tenant_id: str,
    now: Optional[datetime] = None,
    clock: Callable[[], datetime] = utc_now,
) -> DashboardMetrics:
    """Convenience wrapper: one-off computation without keeping an engine around."""
    return await DashboardEngine(store, clock=clock).compute_dashboard_metrics(tenant_id, now=now)
