"""
Unit Tests - Conversion Funnel Analyzer
"""
from datetime import datetime, timezone

import pytest

from src.analytics.funnel import ConversionFunnelAnalyzer, chunked
from src.analytics.models import EventKind, RawEvent
from src.exceptions import FetchError


TS = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def download(user_id=None, session_id=None):
    return RawEvent(kind=EventKind.DOWNLOAD, timestamp=TS, user_id=user_id, session_id=session_id)


def test_chunked():
    """Test batches respect the size limit"""
    assert chunked(["a", "b", "c"], 2) == [["a", "b"], ["c"]]
    assert chunked([], 2) == []


class TestConversionFunnelAnalyzer:
    """Tests for ConversionFunnelAnalyzer"""

    @pytest.mark.asyncio
    async def test_forty_of_hundred_converted(self, ledger):
        """Test 40 paying users out of 100 downloaders gives 40.0"""
        ledger.paying = {f"user-{i}" for i in range(40)}
        events = [download(f"user-{i}") for i in range(100)]
        events += [download(f"user-{i}") for i in range(10)]

        snapshot = await ConversionFunnelAnalyzer(ledger).analyze(events)

        assert snapshot.distinct_identified_users == 100
        assert snapshot.converted_user_count == 40
        assert snapshot.conversion_rate_pct == 40.0
        assert snapshot.anonymous_event_count == 0

    @pytest.mark.asyncio
    async def test_batches_bounded(self, ledger):
        """Test lookups are split into bounded batches covering every user"""
        ledger.max_batch_size = 30
        ledger.paying = {"user-5", "user-95"}
        events = [download(f"user-{i}") for i in range(100)]

        snapshot = await ConversionFunnelAnalyzer(ledger, batch_size=30, concurrency=2).analyze(events)

        assert sorted(len(b) for b in ledger.batches) == [10, 30, 30, 30]
        assert len({u for b in ledger.batches for u in b}) == 100
        assert snapshot.converted_user_count == 2

    @pytest.mark.asyncio
    async def test_anonymous_events_reported_separately(self, ledger):
        """Test events without a user id stay out of the funnel"""
        ledger.paying = {"user-1"}
        events = [download("user-1"), download(session_id="s-1"), download(user_id="  ")]

        snapshot = await ConversionFunnelAnalyzer(ledger).analyze(events)

        assert snapshot.distinct_identified_users == 1
        assert snapshot.anonymous_event_count == 2
        assert snapshot.conversion_rate_pct == 100.0

    @pytest.mark.asyncio
    async def test_no_identified_users(self, ledger):
        """Test an empty funnel has a zero rate and no lookups"""
        snapshot = await ConversionFunnelAnalyzer(ledger).analyze([download(session_id="s")])

        assert snapshot.conversion_rate_pct == 0.0
        assert ledger.batches == []

    @pytest.mark.asyncio
    async def test_rate_rounded(self, ledger):
        """Test the rate is rounded to one decimal"""
        ledger.paying = {"user-0"}
        events = [download(f"user-{i}") for i in range(3)]

        snapshot = await ConversionFunnelAnalyzer(ledger).analyze(events)

        assert snapshot.conversion_rate_pct == 33.3

    @pytest.mark.asyncio
    async def test_failed_batch_fails_funnel(self, ledger):
        """Test one failed batch fails the whole computation"""
        ledger.fail_on_batch = 1
        events = [download(f"user-{i}") for i in range(50)]

        with pytest.raises(FetchError):
            await ConversionFunnelAnalyzer(ledger, batch_size=10).analyze(events)

    def test_invalid_batch_size(self, ledger):
        """Test a zero batch size is rejected"""
        with pytest.raises(ValueError):
            ConversionFunnelAnalyzer(ledger, batch_size=0)
