"""
Record Store
============
Read-only access to tenant-scoped dashboard rows.

RecordStore is the contract the engine depends on; two adapters implement it:

  SqlRecordStore       SQLAlchemy async ORM (server default)
  SupabaseRecordStore  supabase-py REST client

Every query is scoped to exactly one tenant. Window filters are half-open:
created_at >= start AND created_at < end. Any data-fetch failure surfaces
as StoreUnavailable; unknown entities or columns raise ValueError.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError

from models import Sale, Campaign, Task, TeamMember, Product, CustomerJourney, Touchpoint
from .errors import StoreUnavailable
from .metrics import Window

logger = logging.getLogger(__name__)


class Entity:
    SALE = "sale"
    CAMPAIGN = "campaign"
    TASK = "task"
    TEAM_MEMBER = "team_member"
    PRODUCT = "product"
    JOURNEY = "customer_journey"
    TOUCHPOINT = "touchpoint"

    ALL = frozenset({SALE, CAMPAIGN, TASK, TEAM_MEMBER, PRODUCT, JOURNEY, TOUCHPOINT})


ENTITY_MODELS = {
    Entity.SALE: Sale,
    Entity.CAMPAIGN: Campaign,
    Entity.TASK: Task,
    Entity.TEAM_MEMBER: TeamMember,
    Entity.PRODUCT: Product,
    Entity.JOURNEY: CustomerJourney,
    Entity.TOUCHPOINT: Touchpoint,
}

# Counters are summed as ints; everything else (money) as floats
INTEGER_FIELDS = frozenset({"reach", "clicks", "conversions", "inventory_level"})


def table_name(entity: str) -> str:
    return _model_for(entity).__tablename__


def _model_for(entity: str):
    try:
        return ENTITY_MODELS[entity]
    except KeyError:
        raise ValueError(f"Unknown entity: {entity}") from None


def _check_columns(entity: str, names) -> None:
    columns = _model_for(entity).__table__.columns
    for name in names:
        if name not in columns:
            raise ValueError(f"Unknown column '{name}' for {entity}")


def _to_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_total(field: str, value: Any):
    """Coerce an aggregate (possibly None or Decimal) into 0-defaulted int/float."""
    number = _to_number(value) or 0
    if field in INTEGER_FIELDS:
        return int(number)
    return float(number)


class RecordStore(ABC):
    """Tenant-scoped aggregate queries over dashboard entities."""

    @abstractmethod
    async def sum(self, entity: str, field: str, tenant_id: str, window: Window):
        """Sum of `field` over rows created inside `window`. 0 on an empty set."""

    @abstractmethod
    async def count(
        self,
        entity: str,
        tenant_id: str,
        filters: Optional[dict] = None,
        window: Optional[Window] = None,
        distinct: Optional[str] = None,
    ) -> int:
        """
        Number of rows matching the equality `filters` (and `window` if given).

        With `distinct`, counts distinct non-null values of that column instead.
        """

    @abstractmethod
    async def list(
        self,
        entity: str,
        tenant_id: str,
        filters: Optional[dict] = None,
        window: Optional[Window] = None,
    ) -> list[dict]:
        """Rows as plain dicts keyed by column name, oldest first."""


# ---------------------------------------------------------------------------
# SQLAlchemy adapter
# ---------------------------------------------------------------------------

class SqlRecordStore(RecordStore):
    """
    Record store over an async SQLAlchemy session factory.

    Each query opens its own short-lived session, so the engine may issue
    queries concurrently (an AsyncSession does not allow concurrent use).
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _conditions(self, entity, tenant_id, filters, window):
        model = _model_for(entity)
        _check_columns(entity, (filters or {}).keys())
        conditions = [model.tenant_id == tenant_id]
        for name, value in (filters or {}).items():
            conditions.append(model.__table__.columns[name] == value)
        if window is not None:
            conditions.append(model.created_at >= window.start)
            conditions.append(model.created_at < window.end)
        return conditions

    async def _execute(self, entity: str, stmt):
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.all()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("SqlRecordStore: %s query failed: %s", entity, e)
            raise StoreUnavailable(entity, str(e)) from e

    async def sum(self, entity, field, tenant_id, window):
        model = _model_for(entity)
        _check_columns(entity, [field])
        stmt = select(func.coalesce(func.sum(model.__table__.columns[field]), 0)).where(
            and_(*self._conditions(entity, tenant_id, None, window))
        )
        rows = await self._execute(entity, stmt)
        return normalize_total(field, rows[0][0] if rows else 0)

    async def count(self, entity, tenant_id, filters=None, window=None, distinct=None):
        model = _model_for(entity)
        if distinct is not None:
            _check_columns(entity, [distinct])
            counted = func.count(func.distinct(model.__table__.columns[distinct]))
        else:
            counted = func.count(model.id)
        stmt = select(counted).where(
            and_(*self._conditions(entity, tenant_id, filters, window))
        )
        rows = await self._execute(entity, stmt)
        return int(rows[0][0] or 0) if rows else 0

    async def list(self, entity, tenant_id, filters=None, window=None):
        model = _model_for(entity)
        columns = list(model.__table__.columns)
        stmt = (
            select(*columns)
            .where(and_(*self._conditions(entity, tenant_id, filters, window)))
            .order_by(model.created_at)
        )
        rows = await self._execute(entity, stmt)
        return [dict(row._mapping) for row in rows]


# ---------------------------------------------------------------------------
# Supabase adapter
# ---------------------------------------------------------------------------

class SupabaseRecordStore(RecordStore):
    """
    Record store over a supabase-py client.

    The supabase-py client is synchronous, so every .execute() runs in a worker
    thread via asyncio.to_thread() and never blocks the event loop. PostgREST
    caps responses (1000 rows by default), so row fetches are paged with
    .range(). Sums and distinct counts are computed client-side, skipping nulls.
    """

    def __init__(self, supabase, page_size: int = 1000):
        self._supabase = supabase
        self._page_size = page_size

    def _query(self, entity, columns, tenant_id, filters, window, count=None):
        _check_columns(entity, (filters or {}).keys())
        table = self._supabase.table(table_name(entity))
        query = table.select(columns, count=count) if count else table.select(columns)
        query = query.eq("tenant_id", tenant_id)
        for name, value in (filters or {}).items():
            query = query.eq(name, value)
        if window is not None:
            query = query.gte("created_at", window.start.isoformat()).lt("created_at", window.end.isoformat())
        return query

    async def _execute(self, entity, query):
        try:
            return await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.warning("SupabaseRecordStore: %s query failed: %s", entity, e)
            raise StoreUnavailable(entity, str(e)) from e

    async def _fetch_all(self, entity, columns, tenant_id, filters, window) -> list[dict]:
        rows: list[dict] = []
        offset = 0
        while True:
            query = (
                self._query(entity, columns, tenant_id, filters, window)
                .order("created_at")
                .range(offset, offset + self._page_size - 1)
            )
            page = (await self._execute(entity, query)).data or []
            rows.extend(page)
            if len(page) < self._page_size:
                return rows
            offset += self._page_size

    async def sum(self, entity, field, tenant_id, window):
        _check_columns(entity, [field])
        rows = await self._fetch_all(entity, field, tenant_id, None, window)
        total = 0
        for r in rows:
            value = _to_number(r.get(field))
            if value is not None:
                total += value
        return normalize_total(field, total)

    async def count(self, entity, tenant_id, filters=None, window=None, distinct=None):
        if distinct is not None:
            # PostgREST has no count(distinct); fetch the column and dedupe here
            _check_columns(entity, [distinct])
            rows = await self._fetch_all(entity, distinct, tenant_id, filters, window)
            return len({r.get(distinct) for r in rows if r.get(distinct) is not None})
        query = self._query(entity, "id", tenant_id, filters, window, count="exact").limit(1)
        result = await self._execute(entity, query)
        return int(result.count or 0)

    async def list(self, entity, tenant_id, filters=None, window=None):
        return await self._fetch_all(entity, "*", tenant_id, filters, window)
