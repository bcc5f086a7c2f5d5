"""
Metrics Aggregator

Folds filtered events into per-bucket counts, sums and visitor counts.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Set

from src.analytics.models import (
    EventKind,
    PeriodTotals,
    RawEvent,
    SeriesPoint,
    TimeBucket,
    identity_key,
)

EventsByKind = Mapping[EventKind, Iterable[RawEvent]]


def locate_bucket(buckets: List[TimeBucket], instant) -> Optional[int]:
    """Index of the bucket containing an instant, or None when out of range"""
    for index, bucket in enumerate(buckets):
        if bucket.contains(instant):
            return index
    return None


class MetricsAggregator:
    """
    Builds the time series and window totals for a report.

    Unique visitors are counted per bucket: a visitor seen in two buckets
    counts once in each.
    """

    def build_series(
        self,
        buckets: List[TimeBucket],
        events_by_kind: EventsByKind,
    ) -> List[SeriesPoint]:
        """
        Assign every event to exactly one bucket.

        Events outside [first.start, last.end) are dropped.
        """
        series = [SeriesPoint(label=b.label, start=b.start) for b in buckets]
        visitors_per_bucket: List[Set[str]] = [set() for _ in buckets]

        for event in events_by_kind.get(EventKind.PAGE_VIEW, ()):
            index = locate_bucket(buckets, event.timestamp)
            if index is None:
                continue
            series[index].page_views += 1
            visitors_per_bucket[index].add(identity_key(event))

        for event in events_by_kind.get(EventKind.ORDER, ()):
            index = locate_bucket(buckets, event.timestamp)
            if index is None:
                continue
            series[index].order_count += 1
            series[index].revenue += event.amount or 0.0

        counters = {
            EventKind.SIGNUP: "new_users",
            EventKind.INQUIRY: "inquiry_count",
            EventKind.DOWNLOAD: "download_count",
        }
        for kind, attribute in counters.items():
            for event in events_by_kind.get(kind, ()):
                index = locate_bucket(buckets, event.timestamp)
                if index is not None:
                    point = series[index]
                    setattr(point, attribute, getattr(point, attribute) + 1)

        for point, visitors in zip(series, visitors_per_bucket):
            point.unique_visitors = len(visitors)

        return series

    def totals(self, events_by_kind: EventsByKind) -> PeriodTotals:
        """Aggregate totals of one window; visitors are distinct across the window"""
        page_views = list(events_by_kind.get(EventKind.PAGE_VIEW, ()))
        orders = list(events_by_kind.get(EventKind.ORDER, ()))

        return PeriodTotals(
            visitors=len({identity_key(event) for event in page_views}),
            page_views=len(page_views),
            revenue=sum(event.amount or 0.0 for event in orders),
            new_users=len(list(events_by_kind.get(EventKind.SIGNUP, ()))),
            order_count=len(orders),
            inquiry_count=len(list(events_by_kind.get(EventKind.INQUIRY, ()))),
            download_count=len(list(events_by_kind.get(EventKind.DOWNLOAD, ()))),
        )


def totals_by_kind(events_by_kind: Dict[EventKind, List[RawEvent]]) -> Dict[str, int]:
    """Event counts per kind, for logging"""
    return {kind.value: len(events) for kind, events in events_by_kind.items()}
