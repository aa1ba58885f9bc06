"""
Tests for SqlRecordStore (backend/dashboard/store.py)
======================================================
Runs the SQLAlchemy adapter against a throwaway SQLite file via aiosqlite,
then drives the full engine through it.
"""

from __future__ import annotations

from datetime import datetime, timezone, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from models import User, TeamMember, Sale, Campaign, Task, Product, CustomerJourney, Touchpoint
from dashboard import DashboardEngine, SqlRecordStore, StoreUnavailable
from dashboard.metrics import BurnoutRisk, trailing_windows
from dashboard.store import Entity

TENANT_ID = "tenant-sql-a"
OTHER_TENANT = "tenant-sql-b"
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """SQLite file DB with all tables; one file per test."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dashboard.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


@pytest_asyncio.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        session.add_all([
            User(id=TENANT_ID, email="a@inpulse.test", name="Tenant A"),
            User(id=OTHER_TENANT, email="b@inpulse.test", name="Tenant B"),
            TeamMember(tenant_id=TENANT_ID, user_id=TENANT_ID, role="Owner", created_at=_ago(200)),
            Product(id="prod-1", tenant_id=TENANT_ID, name="Widget", sale_price=40.0,
                    cost_per_unit=30.0, inventory_level=150, created_at=_ago(200)),
            Sale(tenant_id=TENANT_ID, product_id="prod-1", revenue=100.0, created_at=_ago(25)),
            Sale(tenant_id=TENANT_ID, product_id="prod-1", revenue=50.0, created_at=_ago(40)),
            Sale(tenant_id=TENANT_ID, revenue=7.0, created_at=_ago(30)),
            Sale(tenant_id=TENANT_ID, revenue=900.0, created_at=NOW),
            Sale(tenant_id=OTHER_TENANT, revenue=5000.0, created_at=_ago(5)),
            Campaign(tenant_id=TENANT_ID, campaign_name="Fall", platform="facebook",
                     reach=1000, clicks=50, conversions=8, spend=27.0, created_at=_ago(5)),
            Campaign(tenant_id=TENANT_ID, campaign_name="Summer", platform="instagram",
                     reach=500, clicks=25, conversions=4, spend=10.0, created_at=_ago(45)),
            Task(tenant_id=TENANT_ID, content="Launch", status="TODO", priority="high"),
            Task(tenant_id=TENANT_ID, content="Review", status="INPROGRESS", priority="high"),
            Task(tenant_id=TENANT_ID, content="Report", status="TODO", priority="low", due_date=_ago(2)),
            Task(tenant_id=TENANT_ID, content="Ship", status="DONE", priority="high", due_date=_ago(2)),
            Task(tenant_id=OTHER_TENANT, content="Elsewhere", status="DONE", priority="low"),
        ])
        await session.commit()
    return session_factory


class TestSqlRecordStore:
    @pytest.mark.asyncio
    async def test_sum_respects_half_open_window(self, seeded):
        store = SqlRecordStore(seeded)
        current, previous = trailing_windows(NOW)
        assert await store.sum(Entity.SALE, "revenue", TENANT_ID, current) == 107.0
        assert await store.sum(Entity.SALE, "revenue", TENANT_ID, previous) == 50.0

    @pytest.mark.asyncio
    async def test_sum_empty_is_zero(self, seeded):
        store = SqlRecordStore(seeded)
        current, _ = trailing_windows(NOW)
        total = await store.sum(Entity.CAMPAIGN, "reach", "nobody", current)
        assert total == 0
        assert isinstance(total, int)

    @pytest.mark.asyncio
    async def test_count_with_filter(self, seeded):
        store = SqlRecordStore(seeded)
        assert await store.count(Entity.TASK, TENANT_ID) == 4
        assert await store.count(Entity.TASK, TENANT_ID, {"status": "DONE"}) == 1
        assert await store.count(Entity.TEAM_MEMBER, OTHER_TENANT) == 0

    @pytest.mark.asyncio
    async def test_distinct_count(self, seeded):
        async with seeded() as session:
            session.add(TeamMember(tenant_id=TENANT_ID, user_id=OTHER_TENANT, role="Member"))
            await session.commit()
        store = SqlRecordStore(seeded)
        assert await store.count(Entity.TEAM_MEMBER, TENANT_ID, distinct="user_id") == 2
        # nulls are not counted
        assert await store.count(Entity.SALE, TENANT_ID, distinct="product_id") == 1

    @pytest.mark.asyncio
    async def test_team_membership_is_unique(self, seeded):
        async with seeded() as session:
            session.add(TeamMember(tenant_id=TENANT_ID, user_id=TENANT_ID, role="Member"))
            with pytest.raises(IntegrityError):
                await session.commit()

    @pytest.mark.asyncio
    async def test_list_returns_column_dicts(self, seeded):
        store = SqlRecordStore(seeded)
        rows = await store.list(Entity.PRODUCT, TENANT_ID)
        assert len(rows) == 1
        assert rows[0]["name"] == "Widget"
        assert rows[0]["tenant_id"] == TENANT_ID

    @pytest.mark.asyncio
    async def test_unknown_entity(self, seeded):
        with pytest.raises(ValueError):
            await SqlRecordStore(seeded).count("invoice", TENANT_ID)

    @pytest.mark.asyncio
    async def test_unknown_column(self, seeded):
        current, _ = trailing_windows(NOW)
        with pytest.raises(ValueError):
            await SqlRecordStore(seeded).sum(Entity.SALE, "profit", TENANT_ID, current)

    @pytest.mark.asyncio
    async def test_missing_tables_raise_store_unavailable(self, tmp_path):
        eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
        try:
            with pytest.raises(StoreUnavailable) as exc:
                await SqlRecordStore(factory).count(Entity.TASK, TENANT_ID)
            assert exc.value.entity == Entity.TASK
        finally:
            await eng.dispose()


class TestEngineOverSql:
    @pytest.mark.asyncio
    async def test_dashboard_metrics(self, seeded):
        engine = DashboardEngine(SqlRecordStore(seeded), clock=lambda: NOW)
        m = await engine.compute_dashboard_metrics(TENANT_ID)
        assert m.total_revenue == 107.0
        assert m.revenue_change == pytest.approx(114.0)
        assert m.total_reach == 1000
        assert m.engagement_rate == pytest.approx(5.0)
        assert m.total_conversions == 8
        assert m.financials.net_profit_margin == pytest.approx(80 / 107 * 100)
        assert m.team_performance.completion_rate == 25
        # 2 high open + 1 overdue open, team of 1
        assert m.team_performance.burnout_risk == BurnoutRisk.MEDIUM

    @pytest.mark.asyncio
    async def test_revenue_chart(self, seeded):
        engine = DashboardEngine(SqlRecordStore(seeded), clock=lambda: NOW)
        points = await engine.revenue_chart(TENANT_ID)
        assert [(p.date, p.revenue) for p in points] == [("2026-09-19", 7.0), ("2026-09-24", 100.0)]

    @pytest.mark.asyncio
    async def test_product_performance(self, seeded):
        engine = DashboardEngine(SqlRecordStore(seeded), clock=lambda: NOW)
        products = await engine.product_performance(TENANT_ID)
        assert len(products) == 1
        assert products[0].total_sales_count == 2
        assert products[0].profit_margin == pytest.approx(25.0)

    @pytest.mark.asyncio
    async def test_insight_report(self, seeded):
        async with seeded() as session:
            session.add_all([
                CustomerJourney(id="j1", tenant_id=TENANT_ID, customer_id="c1", conversion=True,
                                conversion_value=80.0, created_at=_ago(12)),
                CustomerJourney(id="j2", tenant_id=TENANT_ID, customer_id="c2", conversion=True,
                                conversion_value=40.0, created_at=_ago(11)),
                Touchpoint(tenant_id=TENANT_ID, journey_id="j1", platform="instagram",
                           action="view", timestamp=_ago(12)),
                Touchpoint(tenant_id=TENANT_ID, journey_id="j1", platform="google",
                           action="purchase", timestamp=_ago(11)),
                # single-touch journey is not attributed
                Touchpoint(tenant_id=TENANT_ID, journey_id="j2", platform="facebook",
                           action="purchase", timestamp=_ago(11)),
            ])
            await session.commit()

        engine = DashboardEngine(SqlRecordStore(seeded), clock=lambda: NOW)
        d = (await engine.insight_report(TENANT_ID)).to_dict()
        assert d["attributionInsight"]["platform"] == "instagram"
        assert d["inventoryInsight"]["productId"] == "prod-1"
        assert d["inventoryInsight"]["inventoryLevel"] == 150
        assert d["generatedDate"] == "October 19, 2026"
