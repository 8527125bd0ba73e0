"""Bounded-concurrency expansion of many feeds - icsfeed_lite."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Union

from .config_loader import Config
from .lite_logging import feed_context
from .lite_models import ExpansionWindow, OutputEvent
from .pipeline import expand_feed

logger = logging.getLogger(__name__)


class FeedExpansionPool:
    """Expands several feeds concurrently without blocking the event loop.

    Expansion is CPU-bound, so each feed runs in a worker thread via
    ``asyncio.to_thread`` while an ``asyncio.Semaphore`` caps how many run at
    once. A feed that fails or exceeds its timeout yields an empty list; the
    rest of the batch is unaffected.
    """

    def __init__(
        self,
        concurrency: int | None = None,
        timeout: float | None = None,
        config: Config | None = None,
    ):
        """Initialize pool.

        Args:
            concurrency: Maximum feeds expanded at once (default from config)
            timeout: Per-feed timeout in seconds (default from config)
            config: Engine configuration passed to every expansion
        """
        self.config = config or Config()
        self.concurrency = max(1, concurrency or self.config.worker_concurrency)
        self.timeout = timeout or self.config.feed_timeout_seconds
        self._semaphore = asyncio.Semaphore(self.concurrency)

    async def expand_one(
        self, feed_id: str, ics_text: Union[str, bytes], window: ExpansionWindow
    ) -> list[OutputEvent]:
        """Expand a single feed under the pool's concurrency and timeout limits.

        Args:
            feed_id: Identifier used to tag log records
            ics_text: Raw ICS feed
            window: Expansion window

        Returns:
            Events for the feed, or an empty list if it failed or timed out
        """
        async with self._semaphore:
            with feed_context(feed_id):
                try:
                    return await asyncio.wait_for(
                        asyncio.to_thread(expand_feed, ics_text, window, self.config),
                        timeout=self.timeout,
                    )
                except asyncio.TimeoutError:
                    logger.warning("Feed %s expansion timed out after %.1fs", feed_id, self.timeout)
                except Exception:
                    logger.exception("Feed %s expansion failed", feed_id)
                return []

    async def expand_many(
        self, feeds: Mapping[str, Union[str, bytes]], window: ExpansionWindow
    ) -> dict[str, list[OutputEvent]]:
        """Expand every feed concurrently.

        Args:
            feeds: Mapping of feed id to raw ICS content
            window: Expansion window shared by all feeds

        Returns:
            Mapping of feed id to its events, in the input order
        """
        if not feeds:
            return {}

        feed_ids = list(feeds)
        results = await asyncio.gather(
            *(self.expand_one(feed_id, feeds[feed_id], window) for feed_id in feed_ids)
        )

        total = sum(len(events) for events in results)
        logger.debug("Expanded %d feeds into %d events", len(feed_ids), total)
        return dict(zip(feed_ids, results))
