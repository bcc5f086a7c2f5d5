"""
Conversion Funnel Analyzer

Cross-references the distinct users of a free-access stream against the
purchase ledger to compute a free-to-paid conversion rate.
"""

import asyncio
from typing import Iterable, List, Protocol, Sequence, Set

import structlog

from src.analytics.models import ConversionSnapshot, RawEvent, known_user_id

logger = structlog.get_logger(__name__)


class PurchaseLedger(Protocol):
    """Purchase ledger collaborator"""

    async def find_paying_users(self, user_ids: Sequence[str]) -> Set[str]:
        """Subset of user_ids with at least one completed order of amount > 0"""
        ...


def chunked(items: Sequence[str], size: int) -> List[Sequence[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class ConversionFunnelAnalyzer:
    """
    Batched, concurrent ledger lookup.

    The result is only produced once every batch has returned; a failed
    batch fails the whole funnel and cancels the batches still running.

    Example:
        funnel = ConversionFunnelAnalyzer(ledger, batch_size=100)
        snapshot = await funnel.analyze(downloads)
    """

    def __init__(
        self,
        ledger: PurchaseLedger,
        batch_size: int = 100,
        concurrency: int = 4,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.ledger = ledger
        self.batch_size = batch_size
        self.concurrency = max(1, concurrency)

    async def _converted_users(self, user_ids: List[str]) -> Set[str]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def lookup(batch: Sequence[str]) -> Set[str]:
            async with semaphore:
                return set(await self.ledger.find_paying_users(batch))

        tasks = [
            asyncio.ensure_future(lookup(batch))
            for batch in chunked(user_ids, self.batch_size)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            logger.error("Conversion lookup failed", batches=len(tasks))
            raise

        converted: Set[str] = set()
        for result in results:
            converted |= result
        # Ignore anything the ledger returned that was not asked for
        return converted & set(user_ids)

    async def analyze(self, events: Iterable[RawEvent]) -> ConversionSnapshot:
        """
        Compute the conversion snapshot of a filtered download stream.

        Args:
            events: Filtered download/free-access events of the window

        Returns:
            ConversionSnapshot with the rate rounded to one decimal
        """
        identified: Set[str] = set()
        anonymous = 0
        for event in events:
            user_id = known_user_id(event)
            if user_id:
                identified.add(user_id)
            else:
                anonymous += 1

        converted: Set[str] = set()
        if identified:
            converted = await self._converted_users(sorted(identified))

        rate = round(len(converted) / len(identified) * 100, 1) if identified else 0.0

        logger.info(
            "Conversion funnel computed",
            identified_users=len(identified),
            converted_users=len(converted),
            anonymous_events=anonymous,
            conversion_rate_pct=rate,
        )
        return ConversionSnapshot(
            distinct_identified_users=len(identified),
            converted_user_count=len(converted),
            conversion_rate_pct=rate,
            anonymous_event_count=anonymous,
        )
