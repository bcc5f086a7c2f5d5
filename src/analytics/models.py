"""
Analytics Domain Models

Raw events read from the event store and the transient values built from
them during one report computation. Nothing here is persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


# =============================================================================
# ENUMERATIONS
# =============================================================================

class EventKind(str, Enum):
    """Raw event streams known to the engine"""
    PAGE_VIEW = "page_view"
    ORDER = "order"
    SIGNUP = "signup"
    INQUIRY = "inquiry"
    DOWNLOAD = "download"


class Granularity(str, Enum):
    """Calendar period used for time buckets"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ReportPeriod(str, Enum):
    """Period names accepted by the report surface"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def granularity(self) -> Granularity:
        return {
            ReportPeriod.DAILY: Granularity.DAY,
            ReportPeriod.WEEKLY: Granularity.WEEK,
            ReportPeriod.MONTHLY: Granularity.MONTH,
        }[self]


class Dimension(str, Enum):
    """Breakdown dimensions"""
    COUNTRY = "country"
    REFERRER = "referrer"
    DOWNLOAD_SOURCE = "download_source"
    SUB_CATEGORY = "sub_category"
    CONTENT = "content"


# =============================================================================
# RAW EVENTS
# =============================================================================

@dataclass(frozen=True)
class RawEvent:
    """
    A single logged event.

    Optional dimension fields are None when the store did not project them
    or the row had no value; None always means unknown.
    """
    kind: EventKind
    timestamp: datetime
    event_id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    country: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    download_source: Optional[str] = None
    amount: Optional[float] = None
    sub_categories: Optional[Tuple[str, ...]] = None
    content_id: Optional[str] = None


def _non_empty(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def identity_key(event: RawEvent) -> str:
    """
    Resolve the visitor identity of an event.

    Precedence: session id, then user id, then a synthetic key built from
    the record id (or kind and timestamp when the record has no id).
    """
    session_id = _non_empty(event.session_id)
    if session_id:
        return session_id
    user_id = _non_empty(event.user_id)
    if user_id:
        return user_id
    if event.event_id:
        return f"anon:{event.event_id}"
    return f"anon:{event.kind.value}:{event.timestamp.isoformat()}"


def known_user_id(event: RawEvent) -> Optional[str]:
    """User id of an event, or None when the event is anonymous"""
    return _non_empty(event.user_id)


# =============================================================================
# TIME SERIES
# =============================================================================

@dataclass(frozen=True)
class TimeBucket:
    """Half-open interval [start, end)"""
    label: str
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass
class SeriesPoint:
    """Per-bucket metrics"""
    label: str
    start: datetime
    page_views: int = 0
    unique_visitors: int = 0
    order_count: int = 0
    revenue: float = 0.0
    new_users: int = 0
    inquiry_count: int = 0
    download_count: int = 0


@dataclass
class PeriodTotals:
    """Aggregate totals of one window, used for growth comparison"""
    visitors: int = 0
    page_views: int = 0
    revenue: float = 0.0
    new_users: int = 0
    order_count: int = 0
    inquiry_count: int = 0
    download_count: int = 0


@dataclass(frozen=True)
class ReportWindow:
    """Current and equal-length prior fetch windows"""
    current_start: datetime
    current_end: datetime
    prior_start: datetime
    prior_end: datetime


# =============================================================================
# SESSIONS
# =============================================================================

@dataclass
class SessionProfile:
    """Access pattern of one identity within the analysis window"""
    identity_key: str
    ordered_view_timestamps: List[datetime]
    total_views: int
    avg_interval_ms: float = 0.0
    min_interval_ms: float = 0.0
    max_views_per_minute_window: int = 0
    max_consecutive_fast_views: int = 0
    is_abusive: bool = False
    reasons: List[str] = field(default_factory=list)


@dataclass
class AbuseAnalysis:
    """Result of the abuse stage for one event stream"""
    events: List[RawEvent]
    sessions_total: int = 0
    sessions_analyzed: int = 0
    excluded_sessions: int = 0
    excluded_events: int = 0
    flagged: List[SessionProfile] = field(default_factory=list)
    enabled: bool = True


# =============================================================================
# REPORT VALUES
# =============================================================================

@dataclass
class MetricsSnapshot:
    """Headline totals with change against the prior window"""
    total_visitors: int
    visitors_change_pct: float
    total_revenue: float
    revenue_change_pct: float
    total_new_users: int
    new_users_change_pct: float
    total_page_views: int
    page_views_change_pct: float


@dataclass
class BreakdownEntry:
    """One ranked group of a dimension breakdown"""
    dimension_value: str
    display_label: str
    unique_visitors: int
    event_count: int
    percentage_of_total: float


@dataclass
class ConversionSnapshot:
    """Free-to-paid conversion of identified users"""
    distinct_identified_users: int
    converted_user_count: int
    conversion_rate_pct: float
    anonymous_event_count: int


@dataclass
class FilteringSummary:
    """Operational metadata of the bot and abuse stages"""
    bot_events_removed: Dict[str, int] = field(default_factory=dict)
    sessions_analyzed: int = 0
    excluded_sessions: int = 0
    excluded_events: int = 0
    abuse_detection_enabled: bool = True
    flagged_sessions: List[SessionProfile] = field(default_factory=list)


@dataclass
class AnalyticsReport:
    """Complete, internally consistent report for one request"""
    period: ReportPeriod
    generated_at: datetime
    window: ReportWindow
    metrics: MetricsSnapshot
    series: List[SeriesPoint]
    breakdowns: Dict[str, List[BreakdownEntry]]
    unavailable_dimensions: List[str]
    conversion: ConversionSnapshot
    filtering: FilteringSummary
    content_id: Optional[str] = None


@dataclass
class DownloadActivity:
    """Recent download counts with growth against the preceding windows"""
    generated_at: datetime
    total_downloads: int
    today_downloads: int
    week_downloads: int
    month_downloads: int
    week_growth_pct: float
    month_growth_pct: float
    content_id: Optional[str] = None
