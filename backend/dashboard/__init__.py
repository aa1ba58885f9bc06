# Dashboard aggregation package
# Exposes the engine, its record store adapters and the error taxonomy as the public surface.

from .engine import DashboardEngine, compute_dashboard_metrics  # noqa: F401
from .errors import DashboardError, InvalidTenant, StoreUnavailable  # noqa: F401
from .metrics import (  # noqa: F401
    TIMEFRAME_DAYS,
    BurnoutRisk,
    DashboardMetrics,
    InsightReport,
    ProductPerformance,
    RevenuePoint,
    Window,
    change_pct,
    classify_burnout,
    trailing_windows,
)
from .store import Entity, RecordStore, SqlRecordStore, SupabaseRecordStore  # noqa: F401
