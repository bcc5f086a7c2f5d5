"""
Analytics Module

Report computation over the raw event log: bucketing, bot and abuse
filtering, aggregation, growth, breakdowns and the conversion funnel.
"""
from .models import (
    AnalyticsReport,
    Dimension,
    DownloadActivity,
    EventKind,
    Granularity,
    RawEvent,
    ReportPeriod,
)
from .abuse import AbuseSessionAnalyzer, AbuseThresholds
from .bot_filter import BotFilter
from .periods import PeriodBucketizer

__all__ = [
    "AnalyticsReport",
    "Dimension",
    "DownloadActivity",
    "EventKind",
    "Granularity",
    "RawEvent",
    "ReportPeriod",
    "AbuseSessionAnalyzer",
    "AbuseThresholds",
    "BotFilter",
    "PeriodBucketizer",
]
