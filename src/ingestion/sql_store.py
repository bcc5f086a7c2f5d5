"""
SQL Event Store and Purchase Ledger

SQLAlchemy-backed collaborators for the analytics engine. Every page and
every ledger batch runs on its own pooled connection, so independent
fetches can proceed concurrently.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import structlog
from sqlalchemy import Table, inspect, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from src.analytics.models import EventKind, RawEvent
from src.database.models import (
    ContentCategory,
    ContentDownload,
    CustomerInquiry,
    Order,
    OrderStatus,
    PageView,
    PaymentStatus,
    Profile,
)
from src.exceptions import FetchError, SchemaMismatchError
from src.ingestion.event_fetcher import EventPage, EventQuery, SchemaCapability

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class KindMapping:
    """Table and projections backing one event kind"""
    table: Table
    base_columns: Tuple[str, ...]
    optional_columns: Tuple[str, ...] = ()
    completed_only: bool = False


KIND_MAPPINGS: Dict[EventKind, KindMapping] = {
    EventKind.PAGE_VIEW: KindMapping(
        table=PageView.__table__,
        base_columns=("id", "created_at", "user_id", "session_id"),
        optional_columns=("country", "referrer", "user_agent"),
    ),
    EventKind.ORDER: KindMapping(
        table=Order.__table__,
        base_columns=("id", "created_at", "user_id", "total_amount"),
        completed_only=True,
    ),
    EventKind.SIGNUP: KindMapping(
        table=Profile.__table__,
        base_columns=("id", "created_at"),
    ),
    EventKind.INQUIRY: KindMapping(
        table=CustomerInquiry.__table__,
        base_columns=("id", "created_at", "user_id"),
    ),
    EventKind.DOWNLOAD: KindMapping(
        table=ContentDownload.__table__,
        base_columns=("id", "created_at", "user_id", "session_id", "content_id"),
        optional_columns=("download_source",),
    ),
}

_MISSING_COLUMN_MARKERS = ("does not exist", "no such column", "unknown column", "undefinedcolumn")


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_missing_column(error: DBAPIError) -> bool:
    message = str(error.orig or error).lower()
    return "column" in message and any(marker in message for marker in _MISSING_COLUMN_MARKERS)


def _column_names(sync_conn, table_name: str) -> Set[str]:
    return {column["name"] for column in inspect(sync_conn).get_columns(table_name)}


def _has_table(sync_conn, table_name: str) -> bool:
    return inspect(sync_conn).has_table(table_name)


class SqlEventStore:
    """
    Event store over the storefront database.

    Example:
        store = SqlEventStore(get_engine())
        fetcher = EventFetcher(store)
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._has_category_table: Optional[bool] = None

    async def schema_capability(self, kind: EventKind) -> SchemaCapability:
        """Inspect the table and report which projection it supports"""
        mapping = KIND_MAPPINGS[kind]
        try:
            async with self.engine.connect() as conn:
                present = await conn.run_sync(_column_names, mapping.table.name)
                if kind == EventKind.DOWNLOAD and self._has_category_table is None:
                    self._has_category_table = await conn.run_sync(
                        _has_table, ContentCategory.__tablename__
                    )
        except SQLAlchemyError as e:
            raise FetchError(
                f"Failed to inspect {mapping.table.name}: {e}",
                source=mapping.table.name,
            ) from e

        missing_base = [c for c in mapping.base_columns if c not in present]
        if missing_base:
            raise FetchError(
                f"{mapping.table.name} is missing required columns: {missing_base}",
                source=mapping.table.name,
            )

        missing = [c for c in mapping.optional_columns if c not in present]
        if missing:
            logger.info(
                "Optional columns absent",
                table=mapping.table.name,
                missing=missing,
            )
            return SchemaCapability.REDUCED
        return SchemaCapability.FULL

    async def fetch_page(
        self,
        query: EventQuery,
        capability: SchemaCapability,
        offset: int,
        limit: int,
    ) -> EventPage:
        """Read one page; one extra row is read to decide has_more"""
        mapping = KIND_MAPPINGS[query.kind]
        table = mapping.table
        names = mapping.base_columns
        if capability == SchemaCapability.FULL:
            names = names + mapping.optional_columns

        stmt = (
            select(*[table.c[name] for name in names])
            .where(
                table.c.created_at >= _to_utc(query.start),
                table.c.created_at < _to_utc(query.end),
            )
            .order_by(table.c.created_at, table.c.id)
            .offset(offset)
            .limit(limit + 1)
        )
        if mapping.completed_only:
            stmt = stmt.where(table.c.status == OrderStatus.COMPLETED.value)
        if query.content_id is not None and "content_id" in table.c:
            stmt = stmt.where(table.c.content_id == query.content_id)

        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
                categories = None
                if query.kind == EventKind.DOWNLOAD and capability == SchemaCapability.FULL:
                    categories = await self._categories_for(conn, rows[:limit])
        except DBAPIError as e:
            if _is_missing_column(e):
                raise SchemaMismatchError(str(e.orig), table=table.name) from e
            raise FetchError(f"Query on {table.name} failed: {e}", source=table.name) from e
        except SQLAlchemyError as e:
            raise FetchError(f"Query on {table.name} failed: {e}", source=table.name) from e

        events = [self._to_event(query.kind, row, categories) for row in rows[:limit]]
        return EventPage(events=events, has_more=len(rows) > limit)

    async def _categories_for(
        self,
        conn: AsyncConnection,
        rows: Sequence[Mapping[str, Any]],
    ) -> Optional[Dict[str, Tuple[str, ...]]]:
        if self._has_category_table is False:
            return None
        content_ids = {row["content_id"] for row in rows if row.get("content_id")}
        if not content_ids:
            return {}

        table = ContentCategory.__table__
        result = await conn.execute(
            select(table.c.content_id, table.c.category_name)
            .where(table.c.content_id.in_(sorted(content_ids)))
            .order_by(table.c.content_id, table.c.category_name)
        )
        grouped: Dict[str, List[str]] = defaultdict(list)
        for content_id, category_name in result.all():
            grouped[content_id].append(category_name)
        return {content_id: tuple(names) for content_id, names in grouped.items()}

    @staticmethod
    def _to_event(
        kind: EventKind,
        row: Mapping[str, Any],
        categories: Optional[Dict[str, Tuple[str, ...]]],
    ) -> RawEvent:
        amount = row.get("total_amount")
        content_id = row.get("content_id")
        sub_categories = None
        if categories is not None and content_id is not None:
            sub_categories = categories.get(content_id, ())

        return RawEvent(
            kind=kind,
            timestamp=_to_utc(row["created_at"]),
            event_id=str(row["id"]) if row.get("id") is not None else None,
            user_id=row.get("user_id"),
            session_id=row.get("session_id"),
            country=row.get("country"),
            referrer=row.get("referrer"),
            user_agent=row.get("user_agent"),
            download_source=row.get("download_source"),
            amount=float(amount) if amount is not None else None,
            sub_categories=sub_categories,
            content_id=content_id,
        )


class SqlPurchaseLedger:
    """Paid-order lookup over the orders table"""

    def __init__(self, engine: AsyncEngine, max_batch_size: int = 100):
        self.engine = engine
        self.max_batch_size = max_batch_size

    async def find_paying_users(self, user_ids: Sequence[str]) -> Set[str]:
        """Users with at least one completed payment of amount > 0"""
        if len(user_ids) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(user_ids)} exceeds ledger limit {self.max_batch_size}"
            )
        if not user_ids:
            return set()

        table = Order.__table__
        stmt = (
            select(table.c.user_id)
            .distinct()
            .where(
                table.c.user_id.in_(list(user_ids)),
                table.c.payment_status == PaymentStatus.COMPLETED.value,
                table.c.total_amount > 0,
            )
        )
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return {row[0] for row in result.all() if row[0]}
        except SQLAlchemyError as e:
            raise FetchError(f"Purchase ledger lookup failed: {e}", source="orders") from e
