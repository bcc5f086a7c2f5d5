"""
Abuse Session Analyzer

Groups events by visitor identity and excludes sessions whose access
pattern looks scripted, independent of the user agent.

Signals (any one flags the session):
- Volume: more views than a session may plausibly produce
- Sustained pace: mean interval between views too short
- Burst streak: a long run of consecutive fast intervals
- Density: too many views inside any 60-second window
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List

import numpy as np
import structlog

from src.analytics.models import (
    AbuseAnalysis,
    RawEvent,
    SessionProfile,
    identity_key,
)

logger = structlog.get_logger(__name__)

DENSITY_WINDOW_MS = 60_000


@dataclass(frozen=True)
class AbuseThresholds:
    """Heuristic thresholds, fixed for the lifetime of the process"""
    max_views_per_minute: int = 30
    max_views_per_session: int = 500
    min_avg_interval_ms: int = 2000
    consecutive_fast_views: int = 5
    fast_view_threshold_ms: int = 1000
    min_views_for_analysis: int = 10
    enabled: bool = True


def longest_fast_streak(intervals_ms: np.ndarray, threshold_ms: float) -> int:
    """Longest run of consecutive intervals each below the threshold"""
    longest = 0
    current = 0
    for is_fast in intervals_ms < threshold_ms:
        current = current + 1 if is_fast else 0
        longest = max(longest, current)
    return longest


def max_events_in_window(timestamps_ms: np.ndarray, window_ms: float = DENSITY_WINDOW_MS) -> int:
    """
    Maximum number of events inside any window starting at an event.

    For each event, counts the events at or after it that fall strictly
    less than `window_ms` later. Timestamps must be sorted.
    """
    if timestamps_ms.size == 0:
        return 0
    window_ends = np.searchsorted(timestamps_ms, timestamps_ms + window_ms, side="left")
    counts = window_ends - np.arange(timestamps_ms.size)
    return int(counts.max())


class AbuseSessionAnalyzer:
    """
    Rate and interval heuristics over identity-grouped sessions.

    Sessions below the minimum-evidence threshold are never flagged.
    Detection is single-pass: excluded counts are reported, never fed back.

    Example:
        analyzer = AbuseSessionAnalyzer(AbuseThresholds(max_views_per_minute=20))
        analysis = analyzer.analyze(page_views)
        clean = analysis.events
    """

    def __init__(self, thresholds: AbuseThresholds = AbuseThresholds()):
        self.thresholds = thresholds

    @staticmethod
    def group_sessions(events: Iterable[RawEvent]) -> Dict[str, List[RawEvent]]:
        """Group events by identity key"""
        sessions: Dict[str, List[RawEvent]] = defaultdict(list)
        for event in events:
            sessions[identity_key(event)].append(event)
        return dict(sessions)

    def profile(self, key: str, events: List[RawEvent]) -> SessionProfile:
        """Compute the access profile of one session"""
        ordered = sorted(event.timestamp for event in events)
        total = len(ordered)
        profile = SessionProfile(
            identity_key=key,
            ordered_view_timestamps=ordered,
            total_views=total,
        )

        if total < self.thresholds.min_views_for_analysis:
            return profile

        t = self.thresholds
        timestamps_ms = np.array([ts.timestamp() * 1000.0 for ts in ordered])
        intervals_ms = np.diff(timestamps_ms)

        if intervals_ms.size:
            profile.avg_interval_ms = float(intervals_ms.mean())
            profile.min_interval_ms = float(intervals_ms.min())
        profile.max_consecutive_fast_views = longest_fast_streak(intervals_ms, t.fast_view_threshold_ms)
        profile.max_views_per_minute_window = max_events_in_window(timestamps_ms)

        if total > t.max_views_per_session:
            profile.reasons.append(
                f"Too many views in session: {total} > {t.max_views_per_session}"
            )
        if intervals_ms.size and profile.avg_interval_ms < t.min_avg_interval_ms:
            profile.reasons.append(
                f"Average interval too short: {profile.avg_interval_ms:.0f}ms < {t.min_avg_interval_ms}ms"
            )
        if profile.max_consecutive_fast_views >= t.consecutive_fast_views:
            profile.reasons.append(
                f"Consecutive fast views: {profile.max_consecutive_fast_views} intervals "
                f"under {t.fast_view_threshold_ms}ms (limit {t.consecutive_fast_views})"
            )
        if profile.max_views_per_minute_window > t.max_views_per_minute:
            profile.reasons.append(
                f"Too many views per minute: {profile.max_views_per_minute_window} > {t.max_views_per_minute}"
            )

        profile.is_abusive = bool(profile.reasons)
        return profile

    def analyze(self, events: Iterable[RawEvent]) -> AbuseAnalysis:
        """
        Exclude abusive sessions from an event stream.

        Args:
            events: Bot-filtered events of one stream and window

        Returns:
            AbuseAnalysis with the surviving events in their original order
        """
        events = list(events)
        if not self.thresholds.enabled:
            return AbuseAnalysis(events=events, enabled=False)

        sessions = self.group_sessions(events)
        analysis = AbuseAnalysis(events=[], sessions_total=len(sessions))
        excluded_keys = set()

        for key, session_events in sessions.items():
            if len(session_events) < self.thresholds.min_views_for_analysis:
                continue

            analysis.sessions_analyzed += 1
            profile = self.profile(key, session_events)
            if profile.is_abusive:
                excluded_keys.add(key)
                analysis.flagged.append(profile)
                analysis.excluded_events += profile.total_views
                logger.warning(
                    "Abusive session excluded",
                    identity=key,
                    views=profile.total_views,
                    reasons=profile.reasons,
                )

        analysis.excluded_sessions = len(excluded_keys)
        analysis.events = [
            event for event in events
            if identity_key(event) not in excluded_keys
        ]

        logger.info(
            "Abuse analysis complete",
            sessions=analysis.sessions_total,
            analyzed=analysis.sessions_analyzed,
            excluded_sessions=analysis.excluded_sessions,
            excluded_events=analysis.excluded_events,
        )
        return analysis
