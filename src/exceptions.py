"""
Error Taxonomy

Errors raised by the analytics engine and its collaborators.
"""

from typing import Optional


class AnalyticsError(Exception):
    """Base class for all analytics engine errors"""


class FetchError(AnalyticsError):
    """
    Transport or query failure against the event store or purchase ledger.

    Aborts the whole report; callers never receive partial metrics.
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class SchemaMismatchError(AnalyticsError):
    """An optional dimension column is absent from the event store"""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


class ConfigurationError(AnalyticsError):
    """Missing or invalid configuration, raised at process start"""
