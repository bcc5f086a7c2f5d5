"""
Breakdown Aggregator

Groups filtered events by a dimension into ranked top-N shares.

Missing values map to a canonical group per dimension instead of being
dropped. Referrer URLs are normalized to human labels.
"""

from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import polars as pl
import structlog

from src.analytics.models import BreakdownEntry, Dimension, RawEvent, identity_key

logger = structlog.get_logger(__name__)


# =============================================================================
# CANONICAL VALUES AND LABELS
# =============================================================================

MISSING_VALUE: Dict[Dimension, str] = {
    Dimension.COUNTRY: "Unknown",
    Dimension.REFERRER: "Direct",
    Dimension.DOWNLOAD_SOURCE: "unknown",
    Dimension.SUB_CATEGORY: "Uncategorized",
    Dimension.CONTENT: "Unknown",
}

COUNTRY_NAMES: Dict[str, str] = {
    "ko": "South Korea",
    "ko-KR": "South Korea",
    "en": "US / English-speaking",
    "en-US": "United States",
    "en-GB": "United Kingdom",
    "ja": "Japan",
    "ja-JP": "Japan",
    "zh": "China",
    "zh-CN": "China",
    "zh-TW": "Taiwan",
    "es": "Spain / Latin America",
    "fr": "France",
    "de": "Germany",
    "ru": "Russia",
    "pt": "Portugal / Brazil",
    "it": "Italy",
    "ar": "Arabic-speaking",
    "hi": "India",
    "id": "Indonesia",
    "th": "Thailand",
    "vi": "Vietnam",
    "tr": "Turkey",
    "pl": "Poland",
    "nl": "Netherlands",
    "Unknown": "Unknown",
}

DOWNLOAD_SOURCE_LABELS: Dict[str, str] = {
    "free-sheets-page": "Free sheets page",
    "home-page": "Home page",
    "sheet-detail": "Sheet detail page",
    "unknown": "Unknown",
}

DIRECT_VISIT_LABEL = "Direct visit"

# (label, brand substrings, exact domains)
REFERRER_CATALOGUE: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    ("Google Search", ("google",), ()),
    ("Naver Search", ("naver",), ()),
    ("Daum Search", ("daum",), ()),
    ("Bing Search", ("bing",), ()),
    ("Yahoo Search", ("yahoo",), ()),
    ("DuckDuckGo", ("duckduckgo",), ()),
    ("YouTube", ("youtube",), ("youtu.be",)),
    ("Facebook", ("facebook",), ("fb.com",)),
    ("Instagram", ("instagram",), ()),
    ("X (Twitter)", ("twitter",), ("x.com", "t.co")),
    ("KakaoTalk", ("kakao",), ()),
    ("TikTok", ("tiktok",), ()),
    ("LinkedIn", ("linkedin",), ("lnkd.in",)),
    ("Reddit", ("reddit",), ()),
)

MAX_RAW_REFERRER_LENGTH = 50


def _matches_domain(hostname: str, domain: str) -> bool:
    return hostname == domain or hostname.endswith("." + domain)


def referrer_label(referrer: Optional[str]) -> str:
    """
    Human label for a raw referrer URL.

    Known search engines, social platforms and messaging apps map to their
    name; anything else falls back to the bare hostname.
    """
    if not referrer or referrer == MISSING_VALUE[Dimension.REFERRER]:
        return DIRECT_VISIT_LABEL

    try:
        hostname = urlparse(referrer).hostname
    except ValueError:
        hostname = None
    if not hostname:
        return referrer[:MAX_RAW_REFERRER_LENGTH]

    if hostname.startswith("www."):
        hostname = hostname[4:]

    for label, brands, domains in REFERRER_CATALOGUE:
        if any(brand in hostname for brand in brands):
            return label
        if any(_matches_domain(hostname, domain) for domain in domains):
            return label
    return hostname


def country_label(code: str) -> str:
    return COUNTRY_NAMES.get(code, code)


def display_label(dimension: Dimension, value: str) -> str:
    """Display label of a grouped dimension value"""
    if dimension == Dimension.COUNTRY:
        return country_label(value)
    elif dimension == Dimension.REFERRER:
        return referrer_label(value)
    elif dimension == Dimension.DOWNLOAD_SOURCE:
        return DOWNLOAD_SOURCE_LABELS.get(value, value)
    return value


# =============================================================================
# AGGREGATION
# =============================================================================

class BreakdownAggregator:
    """
    Ranks dimension groups by unique visitors.

    Example:
        aggregator = BreakdownAggregator(top_n=10)
        countries = aggregator.aggregate(page_views, Dimension.COUNTRY)
    """

    def __init__(self, top_n: int = 10, main_category: Optional[str] = None):
        self.top_n = top_n
        self.main_category = main_category

    def values_for(self, event: RawEvent, dimension: Dimension) -> List[str]:
        """Group values an event contributes to (sub-categories may yield several)"""
        missing = MISSING_VALUE[dimension]

        if dimension == Dimension.SUB_CATEGORY:
            categories = [c.strip() for c in (event.sub_categories or ()) if c and c.strip()]
            if not categories:
                return [missing]
            return [c for c in categories if c != self.main_category]

        raw = {
            Dimension.COUNTRY: event.country,
            Dimension.REFERRER: event.referrer,
            Dimension.DOWNLOAD_SOURCE: event.download_source,
            Dimension.CONTENT: event.content_id,
        }[dimension]
        value = raw.strip() if raw else ""
        return [value or missing]

    def aggregate(
        self,
        events: Iterable[RawEvent],
        dimension: Dimension,
    ) -> List[BreakdownEntry]:
        """
        Group events by a dimension.

        Args:
            events: Filtered current-window events
            dimension: Dimension to group by

        Returns:
            Top-N entries sorted by unique visitors, descending
        """
        values: List[str] = []
        identities: List[str] = []
        for event in events:
            key = identity_key(event)
            for value in self.values_for(event, dimension):
                values.append(value)
                identities.append(key)

        if not values:
            return []

        df = pl.DataFrame({"value": values, "identity": identities})
        grouped = (
            df.group_by("value")
            .agg(
                pl.col("identity").n_unique().alias("unique_visitors"),
                pl.len().alias("event_count"),
            )
            .sort(
                ["unique_visitors", "event_count", "value"],
                descending=[True, True, False],
            )
        )

        total_events = int(grouped["event_count"].sum())
        entries = [
            BreakdownEntry(
                dimension_value=row["value"],
                display_label=display_label(dimension, row["value"]),
                unique_visitors=int(row["unique_visitors"]),
                event_count=int(row["event_count"]),
                percentage_of_total=round(row["event_count"] / total_events * 100, 1),
            )
            for row in grouped.head(self.top_n).iter_rows(named=True)
        ]

        logger.debug(
            "Breakdown computed",
            dimension=dimension.value,
            groups=grouped.height,
            returned=len(entries),
        )
        return entries
