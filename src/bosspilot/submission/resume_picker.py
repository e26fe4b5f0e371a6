"""Image-resume lookup and upload in the chat window."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from bosspilot.browser.base import BrowserSurface
from bosspilot.selectors import IMAGE_FILE_INPUT, IMAGE_UPLOAD_CONTAINER

logger = logging.getLogger(__name__)

_CHOOSER_TIMEOUT_S = 3.0
_UPLOAD_SETTLE_S = 2.0


def resolve_resume_image_path(paths: Iterable[str]) -> Path | None:
    """Return the first existing file among *paths*, made absolute."""
    for candidate in paths:
        if not candidate:
            continue
        path = Path(candidate).expanduser()
        if path.is_file():
            resolved = path.resolve()
            logger.info("Found image resume: %s", resolved)
            return resolved
    return None


async def attach_resume_image(
    page: BrowserSurface,
    image_path: str | Path,
    *,
    chooser_timeout: float = _CHOOSER_TIMEOUT_S,
) -> bool:
    """Upload *image_path* through the chat window's image button.

    Sets the hidden file input directly when it is already in the DOM.
    Otherwise clicks the button and takes whichever shows up first: a
    native file chooser, or (after *chooser_timeout*) a freshly rendered
    file input. Returns ``False`` instead of raising on failure.
    """
    image = str(image_path)
    try:
        container = page.locate(IMAGE_UPLOAD_CONTAINER)
        if await container.count() == 0:
            logger.warning("Image upload button not found.")
            return False

        file_input = container.locate(IMAGE_FILE_INPUT).first()
        if await file_input.count() > 0:
            await file_input.set_input_files(image)
            logger.info("Image resume set on the upload input.")
        elif not await _upload_via_chooser(page, container, image, chooser_timeout):
            return False
    except Exception as exc:
        logger.warning("Sending the image resume failed: %s", exc)
        return False

    await asyncio.sleep(_UPLOAD_SETTLE_S)
    return True


async def _upload_via_chooser(page: BrowserSurface, container, image: str, timeout: float) -> bool:
    chooser_future = page.on_file_chooser()
    try:
        await container.first().click()
        try:
            chooser = await asyncio.wait_for(chooser_future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.info("No file chooser appeared; looking for the upload input again.")
            file_input = container.locate(IMAGE_FILE_INPUT).first()
            if await file_input.count() == 0:
                logger.warning("No way to upload the image resume was found.")
                return False
            await file_input.set_input_files(image)
            logger.info("Image resume set on the re-rendered upload input.")
            return True
        await chooser.set_files(image)
        logger.info("Image resume set through the file chooser.")
        return True
    finally:
        if not chooser_future.done():
            chooser_future.cancel()
