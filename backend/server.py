"""InPulse Dashboard API - Main Server"""
from fastapi import FastAPI, APIRouter, HTTPException, Depends, Header
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime, timezone

from database import engine, async_session, Base
import models  # noqa: F401 - registers tables on Base.metadata
from auth_service import verify_token, TokenData
from dashboard import (
    DashboardEngine, RecordStore, SqlRecordStore, SupabaseRecordStore,
    InvalidTenant, StoreUnavailable, TIMEFRAME_DAYS,
)

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

RECORD_STORE = os.environ.get('RECORD_STORE', 'sql').strip().lower()
DASHBOARD_WINDOW_DAYS = int(os.environ.get('DASHBOARD_WINDOW_DAYS', '30'))

app = FastAPI(title="InPulse - Marketing & Sales Dashboard")
api_router = APIRouter(prefix="/api")


# ============ Pydantic Models ============

class TeamPerformanceResponse(BaseModel):
    completionRate: int
    burnoutRisk: str

class FinancialsResponse(BaseModel):
    netProfitMargin: float

class DashboardStats(BaseModel):
    totalRevenue: float
    revenueChange: float
    totalReach: int
    reachChange: float
    engagementRate: float
    engagementRateChange: float
    totalConversions: int
    totalConversionsChange: float
    teamPerformance: TeamPerformanceResponse
    financials: FinancialsResponse

class RevenueChartPoint(BaseModel):
    date: str
    label: str
    revenue: float

class ProductResponse(BaseModel):
    id: str
    name: str
    salePrice: float
    costPerUnit: float
    inventoryLevel: int
    totalSalesCount: int
    profitMargin: float


class AttributionInsightResponse(BaseModel):
    text: str
    platform: str


class InventoryInsightResponse(BaseModel):
    text: str
    productId: Optional[str] = None
    inventoryLevel: Optional[int] = None


class InsightReportResponse(BaseModel):
    attributionInsight: AttributionInsightResponse
    inventoryInsight: InventoryInsightResponse
    generatedDate: str


# ============ Dependencies ============

_record_store: Optional[RecordStore] = None


def get_record_store() -> RecordStore:
    """Process-wide record store, built lazily from RECORD_STORE"""
    global _record_store
    if _record_store is None:
        if RECORD_STORE == 'supabase':
            from supabase import create_client
            _record_store = SupabaseRecordStore(create_client(
                os.environ['SUPABASE_URL'],
                os.environ['SUPABASE_SERVICE_KEY'],
            ))
        else:
            _record_store = SqlRecordStore(async_session)
        logger.info(f"Record store initialized: {RECORD_STORE}")
    return _record_store


def get_dashboard_engine(store: RecordStore = Depends(get_record_store)) -> DashboardEngine:
    return DashboardEngine(store, window_days=DASHBOARD_WINDOW_DAYS)


async def get_current_user(authorization: Optional[str] = Header(None)) -> TokenData:
    """Verify JWT token and return current user data"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise HTTPException(status_code=401, detail="Invalid authentication scheme")
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    token_data = verify_token(token)
    if not token_data:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return token_data


# ============ Dashboard Endpoints ============

@api_router.get("/dashboard/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    timeframe: Optional[str] = None,
    current_user: TokenData = Depends(get_current_user),
    dashboard: DashboardEngine = Depends(get_dashboard_engine),
):
    """KPI cards: current window totals and change vs the previous window"""
    window_days = None
    if timeframe is not None:
        if timeframe not in TIMEFRAME_DAYS:
            raise HTTPException(
                status_code=400,
                detail=f"Unknown timeframe '{timeframe}'. Use one of: {', '.join(TIMEFRAME_DAYS)}",
            )
        window_days = TIMEFRAME_DAYS[timeframe]

    try:
        metrics = await dashboard.compute_dashboard_metrics(
            current_user.tenant_id, window_days=window_days
        )
    except InvalidTenant as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreUnavailable as e:
        logger.error(f"Dashboard stats error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard data.")

    return metrics.to_dict()


@api_router.get("/dashboard/revenue-chart", response_model=List[RevenueChartPoint])
async def get_revenue_chart(
    current_user: TokenData = Depends(get_current_user),
    dashboard: DashboardEngine = Depends(get_dashboard_engine),
):
    """Daily revenue over the current window"""
    try:
        points = await dashboard.revenue_chart(current_user.tenant_id)
    except InvalidTenant as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreUnavailable as e:
        logger.error(f"Revenue chart data error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch revenue data.")

    return [p.to_dict() for p in points]


# ============ Product Endpoints ============

@api_router.get("/products", response_model=List[ProductResponse])
async def get_products(
    current_user: TokenData = Depends(get_current_user),
    dashboard: DashboardEngine = Depends(get_dashboard_engine),
):
    """Products with sales count and unit profit margin"""
    try:
        products = await dashboard.product_performance(current_user.tenant_id)
    except InvalidTenant as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreUnavailable as e:
        logger.error(f"Error fetching products: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch product data.")

    return [p.to_dict() for p in products]


# ============ InSight Report ============

@api_router.get("/insight/report", response_model=InsightReportResponse)
async def get_insight_report(
    current_user: TokenData = Depends(get_current_user),
    dashboard: DashboardEngine = Depends(get_dashboard_engine),
):
    try:
        report = await dashboard.insight_report(current_user.tenant_id)
    except InvalidTenant as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreUnavailable as e:
        logger.error(f"InSight report generation error: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate InSight report.")

    return report.to_dict()


# ============ Health Check ============

@api_router.get("/")
async def root():
    return {"message": "InPulse API - Marketing & Sales Dashboard"}


@api_router.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)


# Create tables on startup
@app.on_event("startup")
async def startup():
    if RECORD_STORE == 'sql':
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")


@app.on_event("shutdown")
async def shutdown():
    await engine.dispose()
