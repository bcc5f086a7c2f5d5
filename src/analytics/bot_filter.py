"""
Bot Filter

Removes events whose user agent matches a known crawler or bot signature.
"""

from typing import Iterable, List, Optional, Tuple

import structlog

from src.analytics.models import RawEvent

logger = structlog.get_logger(__name__)


# Search engines, link-preview bots, SEO crawlers and archive bots
BOT_SIGNATURES: Tuple[str, ...] = (
    "bot",
    "crawl",
    "spider",
    "slurp",
    "scrape",
    "googlebot",
    "bingbot",
    "yandexbot",
    "duckduckbot",
    "baiduspider",
    "facebookexternalhit",
    "linkedinbot",
    "whatsapp",
    "telegram",
    "slack",
    "discord",
    "ahrefsbot",
    "semrushbot",
    "mj12bot",
    "dotbot",
    "archive.org_bot",
    "seekportbot",
    "ia_archiver",
)


def is_bot_user_agent(
    user_agent: Optional[str],
    signatures: Tuple[str, ...] = BOT_SIGNATURES,
) -> bool:
    """
    Check a user agent against the bot catalogue.

    An absent user agent is not a bot.
    """
    if not user_agent:
        return False
    lowered = user_agent.lower()
    return any(signature in lowered for signature in signatures)


class BotFilter:
    """
    Stateless user-agent filter over a batch of events.

    Example:
        bot_filter = BotFilter()
        humans = bot_filter.filter(page_views)
    """

    def __init__(self, signatures: Iterable[str] = BOT_SIGNATURES):
        self.signatures = tuple(s.lower() for s in signatures)

    def is_bot(self, event: RawEvent) -> bool:
        return is_bot_user_agent(event.user_agent, self.signatures)

    def filter(self, events: Iterable[RawEvent]) -> List[RawEvent]:
        """Return the events not attributed to a bot, preserving order"""
        events = list(events)
        kept = [event for event in events if not self.is_bot(event)]

        if events:
            logger.debug(
                "Bot filter applied",
                total=len(events),
                kept=len(kept),
                removed=len(events) - len(kept),
            )
        return kept
