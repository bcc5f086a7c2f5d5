"""
Unit Tests - Event Fetcher
"""
from datetime import datetime, timedelta, timezone

import pytest

from src.analytics.models import EventKind, RawEvent
from src.exceptions import FetchError
from src.ingestion.event_fetcher import EventFetcher, SchemaCapability


START = datetime(2024, 3, 1, tzinfo=timezone.utc)
END = datetime(2024, 3, 2, tzinfo=timezone.utc)


def views(count, **fields):
    return [
        RawEvent(
            kind=EventKind.PAGE_VIEW,
            timestamp=START + timedelta(seconds=count - i),
            session_id=f"s{i}",
            **fields,
        )
        for i in range(count)
    ]


class TestEventFetcher:
    """Tests for EventFetcher"""

    @pytest.mark.asyncio
    async def test_reads_every_page(self, store):
        """Test ranges larger than one page are read completely"""
        store.add(*views(2500))

        result = await EventFetcher(store, page_size=1000).fetch(EventKind.PAGE_VIEW, START, END)

        assert len(result.events) == 2500
        assert result.pages == 3
        assert [offset for _, _, offset, _ in store.page_calls] == [0, 1000, 2000]

    @pytest.mark.asyncio
    async def test_exact_page_multiple(self, store):
        """Test an exact multiple of the page size stops without an empty page"""
        store.add(*views(20))

        result = await EventFetcher(store, page_size=10).fetch(EventKind.PAGE_VIEW, START, END)

        assert len(result.events) == 20
        assert result.pages == 2

    @pytest.mark.asyncio
    async def test_empty_range(self, store):
        """Test an empty range is a single empty page"""
        result = await EventFetcher(store).fetch(EventKind.ORDER, START, END)

        assert result.events == []
        assert result.pages == 1

    @pytest.mark.asyncio
    async def test_events_ascending_and_half_open(self, store):
        """Test results are sorted and exclude the end instant"""
        store.add(*views(5))
        store.add(RawEvent(kind=EventKind.PAGE_VIEW, timestamp=END, session_id="late"))

        result = await EventFetcher(store, page_size=2).fetch(EventKind.PAGE_VIEW, START, END)

        timestamps = [e.timestamp for e in result.events]
        assert timestamps == sorted(timestamps)
        assert "late" not in {e.session_id for e in result.events}

    @pytest.mark.asyncio
    async def test_reduced_capability_up_front(self, store):
        """Test a reduced store is read with the reduced projection"""
        store.reduced_kinds.add(EventKind.PAGE_VIEW)
        store.add(*views(3, country="ko"))

        result = await EventFetcher(store).fetch(EventKind.PAGE_VIEW, START, END)

        assert result.capability == SchemaCapability.REDUCED
        assert all(e.country is None for e in result.events)

    @pytest.mark.asyncio
    async def test_degrades_on_schema_mismatch(self, store):
        """Test a missing optional column degrades and repeats the read"""
        store.mismatch_kinds.add(EventKind.DOWNLOAD)
        store.add(RawEvent(kind=EventKind.DOWNLOAD, timestamp=START, download_source="home-page"))

        fetcher = EventFetcher(store)
        result = await fetcher.fetch(EventKind.DOWNLOAD, START, END)

        assert result.capability == SchemaCapability.REDUCED
        assert len(result.events) == 1
        assert result.events[0].download_source is None
        assert await fetcher.capability_for(EventKind.DOWNLOAD) == SchemaCapability.REDUCED

    @pytest.mark.asyncio
    async def test_capability_decided_once(self, store):
        """Test the store is asked for a kind's capability only once"""
        fetcher = EventFetcher(store)

        await fetcher.fetch(EventKind.SIGNUP, START, END)
        await fetcher.fetch(EventKind.SIGNUP, START, END)

        assert store.capability_calls == [EventKind.SIGNUP]

    @pytest.mark.asyncio
    async def test_content_scope(self, store):
        """Test downloads can be scoped to one content item"""
        store.add(
            RawEvent(kind=EventKind.DOWNLOAD, timestamp=START, content_id="a"),
            RawEvent(kind=EventKind.DOWNLOAD, timestamp=START, content_id="b"),
        )

        result = await EventFetcher(store).fetch(EventKind.DOWNLOAD, START, END, content_id="b")

        assert [e.content_id for e in result.events] == ["b"]

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, store):
        """Test a store failure aborts the fetch"""
        store.fail_kinds.add(EventKind.ORDER)

        with pytest.raises(FetchError):
            await EventFetcher(store).fetch(EventKind.ORDER, START, END)

    def test_invalid_page_size(self, store):
        """Test a zero page size is rejected"""
        with pytest.raises(ValueError):
            EventFetcher(store, page_size=0)
