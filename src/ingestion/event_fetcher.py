"""
Event Fetcher

Paginated, schema-tolerant retrieval of raw events for one kind and time
range. Pages are read strictly in sequence until the store reports there
is nothing more, so no range is ever silently truncated by an implicit
page cap.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

import structlog

from src.analytics.models import EventKind, RawEvent
from src.exceptions import FetchError, SchemaMismatchError

logger = structlog.get_logger(__name__)


class SchemaCapability(str, Enum):
    """Projection the store can serve for an event kind"""
    FULL = "full"  # Base and optional dimension columns
    REDUCED = "reduced"  # Base columns only


@dataclass(frozen=True)
class EventQuery:
    """Range query for one event kind, [start, end)"""
    kind: EventKind
    start: datetime
    end: datetime
    content_id: Optional[str] = None


@dataclass
class EventPage:
    """One page of results with an explicit continuation flag"""
    events: List[RawEvent]
    has_more: bool


@dataclass
class FetchResult:
    """All events of a query, ascending by timestamp"""
    query: EventQuery
    events: List[RawEvent]
    capability: SchemaCapability
    pages: int


class EventStore(Protocol):
    """Event store collaborator"""

    async def schema_capability(self, kind: EventKind) -> SchemaCapability:
        """Decide which projection the store can serve for a kind"""
        ...

    async def fetch_page(
        self,
        query: EventQuery,
        capability: SchemaCapability,
        offset: int,
        limit: int,
    ) -> EventPage:
        """
        Read one page ordered by timestamp.

        Raises:
            SchemaMismatchError: An optional column of the projection is absent
            FetchError: Any other store failure
        """
        ...


class EventFetcher:
    """
    Complete range reads over an EventStore.

    The schema capability of each kind is decided once per fetcher (one
    store connection) and downgraded at most once if the store reports a
    missing optional column mid-read.

    Example:
        fetcher = EventFetcher(store, page_size=1000)
        result = await fetcher.fetch(EventKind.PAGE_VIEW, start, end)
    """

    def __init__(self, store: EventStore, page_size: int = 1000):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.store = store
        self.page_size = page_size
        self._capabilities: Dict[EventKind, SchemaCapability] = {}

    async def capability_for(self, kind: EventKind) -> SchemaCapability:
        if kind not in self._capabilities:
            capability = await self.store.schema_capability(kind)
            self._capabilities[kind] = capability
            if capability == SchemaCapability.REDUCED:
                logger.warning(
                    "Optional columns unavailable, using reduced projection",
                    kind=kind.value,
                )
        return self._capabilities[kind]

    async def _page_through(
        self,
        query: EventQuery,
        capability: SchemaCapability,
    ) -> Tuple[List[RawEvent], int]:
        events: List[RawEvent] = []
        pages = 0
        offset = 0

        while True:
            page = await self.store.fetch_page(query, capability, offset, self.page_size)
            pages += 1
            events.extend(page.events)
            if not page.has_more:
                break
            offset += self.page_size

        return events, pages

    async def fetch(
        self,
        kind: EventKind,
        start: datetime,
        end: datetime,
        content_id: Optional[str] = None,
    ) -> FetchResult:
        """
        Fetch every event of a kind in [start, end).

        Args:
            kind: Event stream to read
            start: Inclusive lower bound
            end: Exclusive upper bound
            content_id: Restrict to one content item (download stream only)

        Returns:
            FetchResult with events ascending by timestamp

        Raises:
            FetchError: The store failed; no partial result is returned
        """
        query = EventQuery(kind=kind, start=start, end=end, content_id=content_id)
        capability = await self.capability_for(kind)

        try:
            events, pages = await self._page_through(query, capability)
        except SchemaMismatchError as e:
            if capability == SchemaCapability.REDUCED:
                raise FetchError(
                    f"Base columns missing for {kind.value}: {e}",
                    source=kind.value,
                ) from e
            logger.warning(
                "Optional column missing, retrying with reduced projection",
                kind=kind.value,
                error=str(e),
            )
            capability = SchemaCapability.REDUCED
            self._capabilities[kind] = capability
            try:
                events, pages = await self._page_through(query, capability)
            except SchemaMismatchError as retry_error:
                raise FetchError(
                    f"Base columns missing for {kind.value}: {retry_error}",
                    source=kind.value,
                ) from retry_error

        events.sort(key=lambda event: event.timestamp)

        logger.debug(
            "Events fetched",
            kind=kind.value,
            start=start.isoformat(),
            end=end.isoformat(),
            events=len(events),
            pages=pages,
            capability=capability.value,
        )
        return FetchResult(query=query, events=events, capability=capability, pages=pages)
