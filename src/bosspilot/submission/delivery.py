"""Greet the recruiter of an accepted candidate from the job detail page."""

from __future__ import annotations

import asyncio
import logging

from bosspilot.browser.base import BrowserSurface, ElementHandle
from bosspilot.exceptions import TransientUIError
from bosspilot.models import CandidateRecord, DeliveryOutcome, DeliveryStatus, SearchConfig
from bosspilot.retry import retry_until
from bosspilot.selectors import (
    BASE_URL,
    CHAT_BUTTON,
    CHAT_BUTTON_TEXT,
    CHAT_INPUT,
    CHAT_URL_FRAGMENT,
    JOB_DETAIL_PATH_PREFIX,
    MORE_INFO_LINK,
    POPUP_CLOSE,
    SEND_BUTTON,
)
from bosspilot.submission.greeting import Greeter, compose_greeting
from bosspilot.submission.resume_picker import attach_resume_image, resolve_resume_image_path

logger = logging.getLogger(__name__)

CHAT_BUTTON_ATTEMPTS = 5
CHAT_INPUT_ATTEMPTS = 10
RETRY_INTERVAL_S = 1.0
CHAT_PAGE_TIMEOUT_MS = 15_000

_SET_CONTENTEDITABLE = """(el, msg) => {
    el.innerText = msg;
    el.dispatchEvent(new Event('input'));
}"""


class DeliveryEngine:
    """Runs the contact sequence for one candidate at a time.

    The detail page is opened in its own tab and always closed again, so
    the search results page stays where it was.
    """

    def __init__(
        self,
        surface: BrowserSurface,
        config: SearchConfig,
        greeter: Greeter | None = None,
    ) -> None:
        self._surface = surface
        self._config = config
        self._greeter = greeter

    async def deliver(self, candidate: CandidateRecord, keyword: str) -> DeliveryOutcome:
        """Greet the recruiter and return the outcome; never raises for UI failures."""
        if self._config.debug:
            logger.info("Debug mode, not delivering: %s", candidate.label())
            return DeliveryOutcome(
                candidate.identity, DeliveryStatus.NOT_DELIVERED, reason="debug mode"
            )

        try:
            detail = await self._open_detail_page()
        except Exception as exc:
            logger.warning("Opening the detail page failed for %s: %s", candidate.label(), exc)
            return DeliveryOutcome(candidate.identity, DeliveryStatus.FAILED, reason=str(exc))

        try:
            await self._click_chat_button(detail)
            chat_input = await self._wait_for_input(detail)
            message = await compose_greeting(
                self._greeter, self._config, keyword, candidate.title, candidate.description
            )
            await self._send_message(detail, chat_input, message)
            attached = False
            if self._config.send_img_resume:
                attached = await self._attach_resume(detail)
        except Exception as exc:
            logger.warning(
                "Delivery failed | company: %s | job: %s | %s",
                candidate.company, candidate.title, exc,
            )
            return DeliveryOutcome(candidate.identity, DeliveryStatus.FAILED, reason=str(exc))
        finally:
            try:
                await detail.close()
            except Exception as exc:
                logger.debug("Closing the detail page failed: %s", exc)

        logger.info(
            "Delivered | company: %s | job: %s | salary: %s | image resume: %s",
            candidate.company, candidate.title, candidate.salary_text, attached,
        )
        return DeliveryOutcome(
            candidate.identity, DeliveryStatus.DELIVERED, message=message, attachment_sent=attached
        )

    # ---- steps ----

    async def _open_detail_page(self) -> BrowserSurface:
        link = self._surface.locate(MORE_INFO_LINK).first()
        if await link.count() == 0:
            raise TransientUIError("'more info' link not found")
        href = await link.get_attribute("href") or ""
        if not href.startswith(JOB_DETAIL_PATH_PREFIX):
            raise TransientUIError(f"unexpected detail link: {href!r}")
        page = await self._surface.open_page(BASE_URL + href)
        await asyncio.sleep(RETRY_INTERVAL_S)
        return page

    async def _click_chat_button(self, page: BrowserSurface) -> None:
        async def _try_click() -> bool:
            button = page.locate(CHAT_BUTTON).first()
            if await button.count() == 0:
                return False
            text = await button.text_content() or ""
            if CHAT_BUTTON_TEXT not in text:
                return False
            await button.click()
            return True

        await retry_until(
            _try_click,
            attempts=CHAT_BUTTON_ATTEMPTS,
            interval=RETRY_INTERVAL_S,
            description="chat button",
        )

    async def _wait_for_input(self, page: BrowserSurface) -> ElementHandle:
        chat_input = page.locate(CHAT_INPUT).first()

        async def _ready() -> bool:
            return await chat_input.count() > 0 and await chat_input.is_visible()

        await retry_until(
            _ready,
            attempts=CHAT_INPUT_ATTEMPTS,
            interval=RETRY_INTERVAL_S,
            description="chat input",
        )
        return chat_input

    async def _send_message(self, page: BrowserSurface, chat_input: ElementHandle, message: str) -> None:
        await chat_input.click()
        tag = await chat_input.evaluate("el => el.tagName.toLowerCase()")
        if tag == "textarea":
            await chat_input.fill(message)
        else:
            await chat_input.evaluate(_SET_CONTENTEDITABLE, message)

        send = page.locate(SEND_BUTTON).first()
        if await send.count() == 0:
            raise TransientUIError("send button not found")
        await send.click()
        await asyncio.sleep(RETRY_INTERVAL_S)

        try:
            popup_close = page.locate(POPUP_CLOSE).first()
            if await popup_close.count() > 0:
                await popup_close.click()
        except Exception as exc:
            logger.debug("Dismissing the popup failed: %s", exc)

    async def _attach_resume(self, page: BrowserSurface) -> bool:
        image = resolve_resume_image_path(self._config.resume_image_paths)
        if image is None:
            logger.warning("No image resume found in %s.", ", ".join(self._config.resume_image_paths))
            return False
        if CHAT_URL_FRAGMENT not in page.url() and not await self._enter_chat_page(page):
            return False
        return await attach_resume_image(page, image)

    async def _enter_chat_page(self, page: BrowserSurface) -> bool:
        try:
            button = page.locate(CHAT_BUTTON).first()
            if await button.count() == 0:
                logger.warning("Chat button not found; cannot open the chat page.")
                return False
            await button.click()
        except Exception as exc:
            logger.warning("Opening the chat page failed: %s", exc)
            return False
        if not await page.wait_for_url(CHAT_URL_FRAGMENT, timeout=CHAT_PAGE_TIMEOUT_MS):
            logger.warning("Timed out waiting for the chat page.")
            return False
        return True
