"""Scroll the search results until every job card has been rendered."""

from __future__ import annotations

import asyncio
import logging

from bosspilot.browser.base import BrowserSurface
from bosspilot.control import CancellationToken
from bosspilot.selectors import FOOTER, JOB_CARDS

logger = logging.getLogger(__name__)

_MAX_ITERATIONS = 120
_STABLE_THRESHOLD = 3
_SCROLL_FACTOR = 1.5
_PAUSE_S = 0.5


class CandidateDiscovery:
    """Loads the lazily rendered card list of the current search page.

    Stops when the footer becomes visible, when the token is cancelled, or
    after ``max_iterations`` passes. When the card count has not moved for
    ``stable_threshold`` passes in a row it jumps straight to the bottom of
    the page to kick the lazy loader.
    """

    def __init__(
        self,
        surface: BrowserSurface,
        token: CancellationToken | None = None,
        *,
        max_iterations: int = _MAX_ITERATIONS,
        stable_threshold: int = _STABLE_THRESHOLD,
        card_selector: str = JOB_CARDS,
        end_marker: str = FOOTER,
    ) -> None:
        self._surface = surface
        self._token = token
        self._max_iterations = max_iterations
        self._stable_threshold = stable_threshold
        self._card_selector = card_selector
        self._end_marker = end_marker

    async def count_cards(self) -> int:
        return await self._surface.locate(self._card_selector).count()

    async def load_all(self) -> int:
        """Scroll until the list is complete and return the card count."""
        last_count = -1
        stable = 0

        for _ in range(self._max_iterations):
            if self._token is not None and self._token.cancelled:
                break

            if await self._end_reached():
                break

            try:
                height = await self._surface.viewport_height()
                await self._surface.scroll_by(0, int(height * _SCROLL_FACTOR))
            except Exception as exc:
                logger.warning("Scrolling the job list failed: %s", exc)

            try:
                current = await self.count_cards()
            except Exception as exc:
                logger.warning("Counting job cards failed: %s", exc)
                continue

            stable = stable + 1 if current == last_count else 0
            last_count = current

            if stable >= self._stable_threshold:
                try:
                    await self._surface.scroll_to_bottom()
                except Exception as exc:
                    logger.warning("Forced scroll to bottom failed: %s", exc)

            await asyncio.sleep(_PAUSE_S)

        total = await self.count_cards()
        logger.debug("Job list loaded with %d card(s).", total)
        return total

    async def _end_reached(self) -> bool:
        try:
            footer = self._surface.locate(self._end_marker).first()
            return await footer.count() > 0 and await footer.is_visible()
        except Exception as exc:
            logger.warning("Checking the end-of-list marker failed: %s", exc)
            return False
