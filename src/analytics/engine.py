"""
Report Engine

Orchestrates one report computation:

1. Bucket grid and current/prior windows from the period bucketizer
2. Concurrent fetch of every event kind for both windows (fan-out/fan-in)
3. Bot and abuse filtering of the session streams (page views, downloads)
4. Series, totals and growth
5. Dimension breakdowns and the conversion funnel over the current window

The engine holds only immutable configuration; every computation builds
its own fetcher and intermediate values, so concurrent requests share no
mutable state.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import structlog
from prometheus_client import Counter, Histogram

from src.analytics.abuse import AbuseSessionAnalyzer, AbuseThresholds
from src.analytics.aggregator import MetricsAggregator, totals_by_kind
from src.analytics.bot_filter import BotFilter
from src.analytics.breakdown import BreakdownAggregator
from src.analytics.funnel import ConversionFunnelAnalyzer, PurchaseLedger
from src.analytics.growth import GrowthCalculator, change_pct, trailing_window
from src.analytics.models import (
    AnalyticsReport,
    BreakdownEntry,
    Dimension,
    DownloadActivity,
    EventKind,
    FilteringSummary,
    RawEvent,
    ReportPeriod,
)
from src.analytics.periods import PeriodBucketizer
from src.ingestion.event_fetcher import EventFetcher, EventStore, FetchResult, SchemaCapability

if TYPE_CHECKING:
    from src.config.settings import Settings

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

REPORTS_GENERATED = Counter(
    "analytics_reports_generated_total",
    "Total number of reports computed",
    ["granularity", "status"],
)

REPORT_DURATION = Histogram(
    "analytics_report_duration_seconds",
    "Time spent computing a report",
    ["granularity"],
)

BOT_EVENTS_FILTERED = Counter(
    "analytics_bot_events_filtered_total",
    "Events removed by the bot filter",
    ["kind"],
)

ABUSIVE_SESSIONS_EXCLUDED = Counter(
    "analytics_abusive_sessions_excluded_total",
    "Sessions excluded by the abuse heuristics",
    ["kind"],
)

ABUSIVE_EVENTS_EXCLUDED = Counter(
    "analytics_abusive_events_excluded_total",
    "Events excluded with abusive sessions",
    ["kind"],
)


# Streams carrying visitor sessions; the rest are counted unfiltered
SESSION_KINDS: Tuple[EventKind, ...] = (EventKind.PAGE_VIEW, EventKind.DOWNLOAD)

# Source stream of each breakdown, and whether it needs optional columns
DIMENSION_SOURCES: Dict[Dimension, Tuple[EventKind, bool]] = {
    Dimension.COUNTRY: (EventKind.PAGE_VIEW, True),
    Dimension.REFERRER: (EventKind.PAGE_VIEW, True),
    Dimension.DOWNLOAD_SOURCE: (EventKind.DOWNLOAD, True),
    Dimension.SUB_CATEGORY: (EventKind.DOWNLOAD, True),
    Dimension.CONTENT: (EventKind.DOWNLOAD, False),
}

DEFAULT_BUCKET_COUNTS: Dict[ReportPeriod, int] = {
    ReportPeriod.DAILY: 7,
    ReportPeriod.WEEKLY: 8,
    ReportPeriod.MONTHLY: 6,
}

ACTIVITY_WEEK = timedelta(days=7)
ACTIVITY_MONTH = timedelta(days=30)
HISTORY_START = datetime(1970, 1, 1, tzinfo=timezone.utc)

EventsByKind = Dict[EventKind, List[RawEvent]]


class ReportEngine:
    """
    Parameterized analytics engine.

    Example:
        engine = ReportEngine.from_settings(get_settings(), store, ledger)
        report = await engine.build_report(ReportPeriod.DAILY)
    """

    def __init__(
        self,
        store: EventStore,
        ledger: PurchaseLedger,
        thresholds: Optional[AbuseThresholds] = None,
        tz: Optional[tzinfo] = None,
        page_size: int = 1000,
        ledger_batch_size: int = 100,
        ledger_concurrency: int = 4,
        top_n: int = 10,
        bucket_counts: Optional[Dict[ReportPeriod, int]] = None,
        boundary_margin: timedelta = timedelta(seconds=1),
        main_category: Optional[str] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.page_size = page_size
        self.bucket_counts = {**DEFAULT_BUCKET_COUNTS, **(bucket_counts or {})}

        self.bucketizer = PeriodBucketizer(tz=tz, boundary_margin=boundary_margin)
        self.bot_filter = BotFilter()
        self.abuse_analyzer = AbuseSessionAnalyzer(thresholds or AbuseThresholds())
        self.aggregator = MetricsAggregator()
        self.growth = GrowthCalculator()
        self.breakdowns = BreakdownAggregator(top_n=top_n, main_category=main_category)
        self.funnel = ConversionFunnelAnalyzer(
            ledger,
            batch_size=ledger_batch_size,
            concurrency=ledger_concurrency,
        )

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        store: EventStore,
        ledger: PurchaseLedger,
    ) -> "ReportEngine":
        """Build an engine from validated settings"""
        abuse = settings.abuse
        analytics = settings.analytics
        thresholds = AbuseThresholds(
            max_views_per_minute=abuse.max_views_per_minute,
            max_views_per_session=abuse.max_views_per_session,
            min_avg_interval_ms=abuse.min_avg_interval_ms,
            consecutive_fast_views=abuse.consecutive_fast_views,
            fast_view_threshold_ms=abuse.fast_view_threshold_ms,
            min_views_for_analysis=abuse.min_views_for_analysis,
            enabled=abuse.abuse_detection_enabled,
        )
        return cls(
            store,
            ledger,
            thresholds=thresholds,
            tz=analytics.tzinfo,
            page_size=analytics.page_size,
            ledger_batch_size=analytics.ledger_batch_size,
            ledger_concurrency=analytics.ledger_concurrency,
            top_n=analytics.breakdown_top_n,
            bucket_counts={
                ReportPeriod.DAILY: analytics.daily_buckets,
                ReportPeriod.WEEKLY: analytics.weekly_buckets,
                ReportPeriod.MONTHLY: analytics.monthly_buckets,
            },
            boundary_margin=timedelta(seconds=analytics.boundary_margin_seconds),
            main_category=analytics.main_category,
        )

    # =========================================================================
    # FETCH AND FILTER
    # =========================================================================

    async def _fetch_windows(
        self,
        fetcher: EventFetcher,
        windows: List[Tuple[datetime, datetime]],
        kinds: Tuple[EventKind, ...],
        content_id: Optional[str],
    ) -> List[Dict[EventKind, FetchResult]]:
        """Fetch every kind of every window concurrently, then join"""
        await asyncio.gather(*(fetcher.capability_for(kind) for kind in kinds))

        jobs = [(index, kind) for index in range(len(windows)) for kind in kinds]
        results = await asyncio.gather(*(
            fetcher.fetch(
                kind,
                windows[index][0],
                windows[index][1],
                content_id=content_id if kind == EventKind.DOWNLOAD else None,
            )
            for index, kind in jobs
        ))

        per_window: List[Dict[EventKind, FetchResult]] = [{} for _ in windows]
        for (index, kind), result in zip(jobs, results):
            per_window[index][kind] = result
        return per_window

    def _filter(
        self,
        fetched: Dict[EventKind, FetchResult],
        summary: Optional[FilteringSummary] = None,
    ) -> EventsByKind:
        """Apply the bot and abuse stages to the session streams"""
        filtered: EventsByKind = {kind: result.events for kind, result in fetched.items()}

        for kind in SESSION_KINDS:
            if kind not in filtered:
                continue
            events = filtered[kind]
            humans = self.bot_filter.filter(events)
            analysis = self.abuse_analyzer.analyze(humans)
            filtered[kind] = analysis.events

            if summary is not None:
                removed = len(events) - len(humans)
                summary.bot_events_removed[kind.value] = removed
                summary.sessions_analyzed += analysis.sessions_analyzed
                summary.excluded_sessions += analysis.excluded_sessions
                summary.excluded_events += analysis.excluded_events
                summary.abuse_detection_enabled = analysis.enabled
                summary.flagged_sessions.extend(analysis.flagged)

                BOT_EVENTS_FILTERED.labels(kind=kind.value).inc(removed)
                ABUSIVE_SESSIONS_EXCLUDED.labels(kind=kind.value).inc(analysis.excluded_sessions)
                ABUSIVE_EVENTS_EXCLUDED.labels(kind=kind.value).inc(analysis.excluded_events)

        return filtered

    def _breakdowns(
        self,
        events: EventsByKind,
        fetched: Dict[EventKind, FetchResult],
    ) -> Tuple[Dict[str, List[BreakdownEntry]], List[str]]:
        breakdowns: Dict[str, List[BreakdownEntry]] = {}
        unavailable: List[str] = []

        for dimension, (kind, needs_optional) in DIMENSION_SOURCES.items():
            if needs_optional and fetched[kind].capability == SchemaCapability.REDUCED:
                unavailable.append(dimension.value)
                continue
            breakdowns[dimension.value] = self.breakdowns.aggregate(events[kind], dimension)

        return breakdowns, unavailable

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def build_report(
        self,
        period: ReportPeriod,
        now: Optional[datetime] = None,
        content_id: Optional[str] = None,
    ) -> AnalyticsReport:
        """
        Compute a complete report for a period.

        Args:
            period: daily, weekly or monthly
            now: Reference instant (defaults to the current time)
            content_id: Scope the download stream to one content item

        Returns:
            AnalyticsReport

        Raises:
            FetchError: Any store or ledger failure; no partial report is produced
        """
        started = time.perf_counter()
        now = now or datetime.now(timezone.utc)
        granularity = period.granularity

        try:
            buckets = self.bucketizer.create(granularity, self.bucket_counts[period], now)
            window = trailing_window(
                buckets[0].start,
                buckets[-1].end,
                self.bucketizer.nominal_length(granularity, buckets),
            )

            fetcher = EventFetcher(self.store, page_size=self.page_size)
            current_fetch, prior_fetch = await self._fetch_windows(
                fetcher,
                [
                    (window.current_start, window.current_end),
                    (window.prior_start, window.prior_end),
                ],
                tuple(EventKind),
                content_id,
            )

            filtering = FilteringSummary(abuse_detection_enabled=self.abuse_analyzer.thresholds.enabled)
            current = self._filter(current_fetch, filtering)
            prior = self._filter(prior_fetch)

            series = self.aggregator.build_series(buckets, current)
            metrics = self.growth.compare(
                self.aggregator.totals(current),
                self.aggregator.totals(prior),
            )
            breakdowns, unavailable = self._breakdowns(current, current_fetch)
            conversion = await self.funnel.analyze(current[EventKind.DOWNLOAD])
        except Exception:
            REPORTS_GENERATED.labels(granularity=period.value, status="error").inc()
            logger.error(
                "Report computation failed",
                granularity=period.value,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        elapsed = time.perf_counter() - started
        REPORTS_GENERATED.labels(granularity=period.value, status="success").inc()
        REPORT_DURATION.labels(granularity=period.value).observe(elapsed)

        logger.info(
            "Report computed",
            granularity=period.value,
            buckets=len(buckets),
            events=totals_by_kind(current),
            visitors=metrics.total_visitors,
            revenue=metrics.total_revenue,
            conversion_rate_pct=conversion.conversion_rate_pct,
            excluded_sessions=filtering.excluded_sessions,
            elapsed_ms=round(elapsed * 1000, 2),
        )

        return AnalyticsReport(
            period=period,
            generated_at=now,
            window=window,
            metrics=metrics,
            series=series,
            breakdowns=breakdowns,
            unavailable_dimensions=unavailable,
            conversion=conversion,
            filtering=filtering,
            content_id=content_id,
        )

    async def download_activity(
        self,
        now: Optional[datetime] = None,
        content_id: Optional[str] = None,
    ) -> DownloadActivity:
        """
        Recent download counts with growth.

        Today runs from local midnight; the week and month are the trailing
        7 and 30 days, each compared with the equal-length window before it.
        The all-time total reads the whole download history.
        """
        now = now or datetime.now(timezone.utc)
        local_now = self.bucketizer.localize(now)
        utc_now = local_now.astimezone(timezone.utc)
        end = utc_now + self.bucketizer.boundary_margin
        today_start = self.bucketizer.local_midnight(local_now.date())

        fetcher = EventFetcher(self.store, page_size=self.page_size)
        (fetched,) = await self._fetch_windows(
            fetcher,
            [(HISTORY_START, end)],
            (EventKind.DOWNLOAD,),
            content_id,
        )
        downloads = self._filter(fetched)[EventKind.DOWNLOAD]

        def count(start: datetime, stop: datetime) -> int:
            return sum(1 for event in downloads if start <= event.timestamp < stop)

        week = count(utc_now - ACTIVITY_WEEK, end)
        prior_week = count(utc_now - 2 * ACTIVITY_WEEK, utc_now - ACTIVITY_WEEK)
        month = count(utc_now - ACTIVITY_MONTH, end)
        prior_month = count(utc_now - 2 * ACTIVITY_MONTH, utc_now - ACTIVITY_MONTH)

        activity = DownloadActivity(
            generated_at=now,
            total_downloads=len(downloads),
            today_downloads=count(today_start, end),
            week_downloads=week,
            month_downloads=month,
            week_growth_pct=change_pct(week, prior_week),
            month_growth_pct=change_pct(month, prior_month),
            content_id=content_id,
        )
        logger.info(
            "Download activity computed",
            total=activity.total_downloads,
            today=activity.today_downloads,
            week=week,
            month=month,
            content_id=content_id,
        )
        return activity
