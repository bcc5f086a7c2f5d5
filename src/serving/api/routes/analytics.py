"""
Analytics API Endpoints

Pull-based report surface: each request computes a fresh report from the
event store. Store or ledger failures surface as 503; there is no partial
response.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
import structlog

from src.analytics.engine import ReportEngine
from src.analytics.models import AnalyticsReport, ReportPeriod
from src.config import get_settings
from src.database.connection import get_engine
from src.exceptions import FetchError
from src.ingestion.sql_store import SqlEventStore, SqlPurchaseLedger

router = APIRouter()
logger = structlog.get_logger(__name__)


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class WindowResponse(_FromAttributes):
    """Current and prior fetch windows"""
    current_start: datetime
    current_end: datetime
    prior_start: datetime
    prior_end: datetime


class MetricsResponse(_FromAttributes):
    """Headline metrics with change against the prior window"""
    total_visitors: int
    visitors_change_pct: float
    total_revenue: float
    revenue_change_pct: float
    total_new_users: int
    new_users_change_pct: float
    total_page_views: int
    page_views_change_pct: float


class SeriesPointResponse(_FromAttributes):
    """Per-bucket data point"""
    label: str
    start: datetime
    page_views: int
    unique_visitors: int
    order_count: int
    revenue: float
    new_users: int
    inquiry_count: int
    download_count: int


class BreakdownEntryResponse(_FromAttributes):
    """Ranked dimension group"""
    dimension_value: str
    display_label: str
    unique_visitors: int
    event_count: int
    percentage_of_total: float


class ConversionResponse(_FromAttributes):
    """Free-to-paid conversion"""
    distinct_identified_users: int
    converted_user_count: int
    conversion_rate_pct: float
    anonymous_event_count: int


class FlaggedSessionResponse(_FromAttributes):
    """Excluded session with the signals that flagged it"""
    identity_key: str
    total_views: int
    avg_interval_ms: float
    min_interval_ms: float
    max_views_per_minute_window: int
    max_consecutive_fast_views: int
    reasons: List[str]


class FilteringResponse(_FromAttributes):
    """Bot and abuse filtering metadata"""
    bot_events_removed: Dict[str, int]
    sessions_analyzed: int
    excluded_sessions: int
    excluded_events: int
    abuse_detection_enabled: bool
    flagged_sessions: List[FlaggedSessionResponse]


class ReportResponse(BaseModel):
    """Analytics report"""
    granularity: ReportPeriod
    generated_at: datetime
    content_id: Optional[str]
    window: WindowResponse
    metrics: MetricsResponse
    series: List[SeriesPointResponse]
    breakdowns: Dict[str, List[BreakdownEntryResponse]]
    unavailable_dimensions: List[str]
    conversion: ConversionResponse
    filtering: FilteringResponse

    @classmethod
    def from_report(cls, report: AnalyticsReport) -> "ReportResponse":
        return cls(
            granularity=report.period,
            generated_at=report.generated_at,
            content_id=report.content_id,
            window=WindowResponse.model_validate(report.window),
            metrics=MetricsResponse.model_validate(report.metrics),
            series=[SeriesPointResponse.model_validate(p) for p in report.series],
            breakdowns={
                dimension: [BreakdownEntryResponse.model_validate(e) for e in entries]
                for dimension, entries in report.breakdowns.items()
            },
            unavailable_dimensions=report.unavailable_dimensions,
            conversion=ConversionResponse.model_validate(report.conversion),
            filtering=FilteringResponse.model_validate(report.filtering),
        )


class DownloadActivityResponse(_FromAttributes):
    """Recent download counts"""
    generated_at: datetime
    content_id: Optional[str]
    total_downloads: int
    today_downloads: int
    week_downloads: int
    month_downloads: int
    week_growth_pct: float
    month_growth_pct: float


def get_report_engine() -> ReportEngine:
    """FastAPI dependency building a report engine over the SQL store"""
    settings = get_settings()
    engine = get_engine()
    return ReportEngine.from_settings(
        settings,
        store=SqlEventStore(engine),
        ledger=SqlPurchaseLedger(engine, max_batch_size=settings.analytics.ledger_batch_size),
    )


@router.get("/report", response_model=ReportResponse)
async def get_report(
    granularity: ReportPeriod = Query(ReportPeriod.DAILY),
    content_id: Optional[str] = Query(None, min_length=1, max_length=36),
    engine: ReportEngine = Depends(get_report_engine),
) -> ReportResponse:
    """
    Compute the analytics report for a granularity.

    content_id scopes the download stream (funnel, download breakdowns and
    counts) to a single content item.
    """
    logger.info("get_report called", granularity=granularity.value, content_id=content_id)

    try:
        report = await engine.build_report(granularity, content_id=content_id)
    except FetchError as e:
        logger.error("Report unavailable", granularity=granularity.value, source=e.source, error=str(e))
        raise HTTPException(status_code=503, detail=f"Analytics data unavailable: {e}")

    return ReportResponse.from_report(report)


@router.get("/downloads/activity", response_model=DownloadActivityResponse)
async def get_download_activity(
    content_id: Optional[str] = Query(None, min_length=1, max_length=36),
    engine: ReportEngine = Depends(get_report_engine),
) -> DownloadActivityResponse:
    """Downloads today, in the last 7 and 30 days, with growth"""
    try:
        activity = await engine.download_activity(content_id=content_id)
    except FetchError as e:
        logger.error("Download activity unavailable", source=e.source, error=str(e))
        raise HTTPException(status_code=503, detail=f"Analytics data unavailable: {e}")

    return DownloadActivityResponse.model_validate(activity)
