"""
Unit Tests - Breakdown Aggregator
"""
from datetime import datetime, timezone

import pytest

from src.analytics.breakdown import (
    DIRECT_VISIT_LABEL,
    BreakdownAggregator,
    country_label,
    referrer_label,
)
from src.analytics.models import Dimension, EventKind, RawEvent


TS = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def view(session_id, **fields):
    return RawEvent(kind=EventKind.PAGE_VIEW, timestamp=TS, session_id=session_id, **fields)


def download(session_id, **fields):
    return RawEvent(kind=EventKind.DOWNLOAD, timestamp=TS, session_id=session_id, **fields)


class TestReferrerLabel:
    """Tests for referrer normalization"""

    @pytest.mark.parametrize("referrer,label", [
        ("https://www.google.com/search?q=piano", "Google Search"),
        ("https://m.search.naver.com/search.naver", "Naver Search"),
        ("https://m.facebook.com/story", "Facebook"),
        ("https://l.instagram.com/", "Instagram"),
        ("https://x.com/someone/status/1", "X (Twitter)"),
        ("https://t.co/abc", "X (Twitter)"),
        ("https://youtu.be/xyz", "YouTube"),
        ("https://www.netflix.com/title", "netflix.com"),
        ("https://blog.example.org/post", "blog.example.org"),
    ])
    def test_known_and_unknown_hosts(self, referrer, label):
        """Test catalogue matches and hostname fallback"""
        assert referrer_label(referrer) == label

    @pytest.mark.parametrize("referrer", [None, "", "Direct"])
    def test_direct_visit(self, referrer):
        """Test empty and Direct map to the direct-visit label"""
        assert referrer_label(referrer) == DIRECT_VISIT_LABEL

    def test_unparseable_referrer_truncated(self):
        """Test a value without a hostname is truncated"""
        raw = "android-app-intent " * 10
        assert referrer_label(raw) == raw[:50]


class TestCountryLabel:
    """Tests for country display names"""

    def test_known_and_unknown_codes(self):
        """Test known codes map to names and unknown codes pass through"""
        assert country_label("ko") == "South Korea"
        assert country_label("ja-JP") == "Japan"
        assert country_label("xx") == "xx"


class TestBreakdownAggregator:
    """Tests for BreakdownAggregator"""

    def test_groups_ranked_by_unique_visitors(self):
        """Test ranking uses unique visitors, not event counts"""
        events = [view("a", country="ko")] * 5 + [
            view("b", country="ja"),
            view("c", country="ja"),
        ]

        entries = BreakdownAggregator().aggregate(events, Dimension.COUNTRY)

        assert [e.dimension_value for e in entries] == ["ja", "ko"]
        assert entries[0].unique_visitors == 2
        assert entries[0].display_label == "Japan"
        assert entries[1].event_count == 5
        assert entries[1].percentage_of_total == pytest.approx(71.4)

    def test_missing_values_grouped(self):
        """Test missing dimension values fall into the canonical group"""
        events = [view("a"), view("b", country="  "), view("c", referrer=None)]

        countries = BreakdownAggregator().aggregate(events, Dimension.COUNTRY)
        referrers = BreakdownAggregator().aggregate(events, Dimension.REFERRER)

        assert countries[0].dimension_value == "Unknown"
        assert countries[0].unique_visitors == 3
        assert referrers[0].dimension_value == "Direct"
        assert referrers[0].display_label == DIRECT_VISIT_LABEL

    def test_percentages_sum_to_100_without_truncation(self):
        """Test full coverage when every group is returned"""
        events = [view(f"s{i}", country=c) for i, c in enumerate(["ko", "ja", "de", "fr"])]

        entries = BreakdownAggregator().aggregate(events, Dimension.COUNTRY)

        assert len(entries) == 4
        assert sum(e.percentage_of_total for e in entries) == pytest.approx(100.0)

    def test_top_n_truncation(self):
        """Test only the top ten groups are returned"""
        events = [view(f"s{i}", country=f"c{i:02d}") for i in range(12)]

        entries = BreakdownAggregator(top_n=10).aggregate(events, Dimension.COUNTRY)

        assert len(entries) == 10
        assert sum(e.percentage_of_total for e in entries) < 100.0
        # Ties fall back to value order
        assert entries[0].dimension_value == "c00"

    def test_download_source_labels(self):
        """Test download sources use readable labels"""
        events = [download("a", download_source="home-page"), download("b")]

        entries = BreakdownAggregator().aggregate(events, Dimension.DOWNLOAD_SOURCE)

        labels = {e.dimension_value: e.display_label for e in entries}
        assert labels == {"home-page": "Home page", "unknown": "Unknown"}

    def test_sub_categories_exclude_main_category(self):
        """Test a download counts toward each sub-category except the main one"""
        events = [
            download("a", sub_categories=("Sheet Music", "Piano", "Jazz")),
            download("b", sub_categories=("Sheet Music", "Piano")),
            download("c", sub_categories=()),
        ]

        entries = BreakdownAggregator(main_category="Sheet Music").aggregate(
            events, Dimension.SUB_CATEGORY
        )

        values = [e.dimension_value for e in entries]
        assert values == ["Piano", "Jazz", "Uncategorized"]
        assert entries[0].percentage_of_total == pytest.approx(50.0)

    def test_content_dimension(self):
        """Test content items rank by unique downloaders"""
        events = [
            download("a", content_id="sheet-1"),
            download("b", content_id="sheet-1"),
            download("a", content_id="sheet-2"),
        ]

        entries = BreakdownAggregator().aggregate(events, Dimension.CONTENT)

        assert entries[0].dimension_value == "sheet-1"
        assert entries[0].unique_visitors == 2

    def test_empty_events(self):
        """Test no events yields no entries"""
        assert BreakdownAggregator().aggregate([], Dimension.COUNTRY) == []
