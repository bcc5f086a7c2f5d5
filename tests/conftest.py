"""
Test Suite Configuration
"""
import asyncio
import dataclasses
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Sequence, Set, Tuple

import pytest

from src.analytics.models import EventKind, RawEvent
from src.config import Settings
from src.exceptions import FetchError, SchemaMismatchError
from src.ingestion.event_fetcher import EventPage, EventQuery, SchemaCapability


REFERENCE_NOW = datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)


class InMemoryEventStore:
    """
    Event store fake with the paging contract of the SQL adapter.

    reduced_kinds report REDUCED up front; mismatch_kinds report FULL but
    raise SchemaMismatchError on the full projection.
    """

    def __init__(self):
        self.events: Dict[EventKind, List[RawEvent]] = defaultdict(list)
        self.reduced_kinds: Set[EventKind] = set()
        self.mismatch_kinds: Set[EventKind] = set()
        self.fail_kinds: Set[EventKind] = set()
        self.page_calls: List[Tuple[EventKind, SchemaCapability, int, int]] = []
        self.capability_calls: List[EventKind] = []

    def add(self, *events: RawEvent) -> None:
        for event in events:
            self.events[event.kind].append(event)

    async def schema_capability(self, kind: EventKind) -> SchemaCapability:
        self.capability_calls.append(kind)
        if kind in self.reduced_kinds:
            return SchemaCapability.REDUCED
        return SchemaCapability.FULL

    async def fetch_page(
        self,
        query: EventQuery,
        capability: SchemaCapability,
        offset: int,
        limit: int,
    ) -> EventPage:
        self.page_calls.append((query.kind, capability, offset, limit))
        await asyncio.sleep(0)

        if query.kind in self.fail_kinds:
            raise FetchError(f"{query.kind.value} unavailable", source=query.kind.value)
        if capability == SchemaCapability.FULL and query.kind in self.mismatch_kinds:
            raise SchemaMismatchError("column does not exist", table=query.kind.value)

        matching = sorted(
            (
                event for event in self.events[query.kind]
                if query.start <= event.timestamp < query.end
                and (query.content_id is None or event.content_id == query.content_id)
            ),
            key=lambda event: event.timestamp,
        )
        window = matching[offset:offset + limit + 1]
        events = window[:limit]
        if capability == SchemaCapability.REDUCED:
            events = [
                dataclasses.replace(
                    event,
                    country=None,
                    referrer=None,
                    user_agent=None,
                    download_source=None,
                    sub_categories=None,
                )
                for event in events
            ]
        return EventPage(events=events, has_more=len(window) > limit)


class FakePurchaseLedger:
    """Purchase ledger fake recording every batch it receives"""

    def __init__(self, max_batch_size: int = 100):
        self.paying: Set[str] = set()
        self.max_batch_size = max_batch_size
        self.batches: List[List[str]] = []
        self.fail_on_batch: int = -1

    async def find_paying_users(self, user_ids: Sequence[str]) -> Set[str]:
        if len(user_ids) > self.max_batch_size:
            raise ValueError("batch too large")
        batch_number = len(self.batches)
        self.batches.append(list(user_ids))
        await asyncio.sleep(0)
        if batch_number == self.fail_on_batch:
            raise FetchError("ledger unavailable", source="orders")
        return {user_id for user_id in user_ids if user_id in self.paying}


def make_event(
    kind: EventKind = EventKind.PAGE_VIEW,
    timestamp: datetime = REFERENCE_NOW,
    **fields,
) -> RawEvent:
    """Build a raw event with sensible defaults"""
    return RawEvent(kind=kind, timestamp=timestamp, **fields)


@pytest.fixture
def reference_now() -> datetime:
    """Fixed reference instant: 2024-03-10 15:00 UTC (a Sunday)"""
    return REFERENCE_NOW


@pytest.fixture
def event_factory():
    """Factory for raw events"""
    return make_event


@pytest.fixture
def store() -> InMemoryEventStore:
    """Empty in-memory event store"""
    return InMemoryEventStore()


@pytest.fixture
def ledger() -> FakePurchaseLedger:
    """Purchase ledger with no paying users"""
    return FakePurchaseLedger()


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    """Create test settings"""
    monkeypatch.setenv("ANALYTICS_TIMEZONE", "UTC")
    return Settings(
        app_env="testing",
        debug=True,
    )
