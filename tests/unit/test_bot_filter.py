"""
Unit Tests - Bot Filter
"""
from datetime import datetime, timezone

import pytest

from src.analytics.bot_filter import BotFilter, is_bot_user_agent
from src.analytics.models import EventKind, RawEvent


CHROME = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


def view(user_agent, second=0):
    return RawEvent(
        kind=EventKind.PAGE_VIEW,
        timestamp=datetime(2024, 3, 10, 12, 0, second, tzinfo=timezone.utc),
        session_id=f"s{second}",
        user_agent=user_agent,
    )


class TestBotUserAgent:
    """Tests for the user-agent predicate"""

    @pytest.mark.parametrize("user_agent", [
        "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
        "facebookexternalhit/1.1",
        "Mozilla/5.0 (compatible; AhrefsBot/7.0)",
        "Slackbot-LinkExpanding 1.0",
        "TelegramBot (like TwitterBot)",
        "ia_archiver",
        "SPIDER-X",
    ])
    def test_known_bots(self, user_agent):
        """Test catalogue signatures match case-insensitively"""
        assert is_bot_user_agent(user_agent)

    def test_browser_is_not_bot(self):
        """Test an ordinary browser is kept"""
        assert not is_bot_user_agent(CHROME)

    @pytest.mark.parametrize("user_agent", [None, ""])
    def test_absent_user_agent_is_not_bot(self, user_agent):
        """Test absent user agents are treated as humans"""
        assert not is_bot_user_agent(user_agent)


class TestBotFilter:
    """Tests for BotFilter"""

    def test_filter_removes_bots_preserving_order(self):
        """Test bots are dropped and order kept"""
        events = [view(CHROME, 0), view("Googlebot", 1), view(None, 2), view("bingbot/2.0", 3)]

        kept = BotFilter().filter(events)

        assert [e.session_id for e in kept] == ["s0", "s2"]

    def test_filter_is_idempotent(self):
        """Test filtering twice equals filtering once"""
        events = [view(CHROME, 0), view("YandexBot", 1), view("curl-crawler", 2), view(None, 3)]
        bot_filter = BotFilter()

        once = bot_filter.filter(events)
        twice = bot_filter.filter(once)

        assert once == twice

    def test_custom_signatures(self):
        """Test a custom catalogue replaces the default"""
        bot_filter = BotFilter(signatures=["HeadlessChrome"])

        assert bot_filter.is_bot(view("Mozilla/5.0 headlesschrome/119"))
        assert not bot_filter.is_bot(view("Googlebot"))
