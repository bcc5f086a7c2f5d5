"""
Event Ingestion Module
"""
from .event_fetcher import EventFetcher, EventPage, EventQuery, EventStore, SchemaCapability
from .sql_store import SqlEventStore, SqlPurchaseLedger

__all__ = [
    "EventFetcher",
    "EventPage",
    "EventQuery",
    "EventStore",
    "SchemaCapability",
    "SqlEventStore",
    "SqlPurchaseLedger",
]
