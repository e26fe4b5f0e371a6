"""Click a job card and capture the detail API response it triggers."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from bosspilot.browser.base import BrowserSurface
from bosspilot.exceptions import NetworkCorrelationTimeout, ResponseParseError
from bosspilot.models import CandidateRecord
from bosspilot.selectors import BASE_URL, JOB_CARDS, JOB_DETAIL_API

logger = logging.getLogger(__name__)

_RESPONSE_TIMEOUT_S = 5.0
_SETTLE_S = 1.0


def is_detail_response(url: str, method: str) -> bool:
    return JOB_DETAIL_API in url and method.upper() == "GET"


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return str(value).strip() if value is not None else ""


def parse_job_detail(body: str) -> CandidateRecord:
    """Map the detail API payload onto a :class:`CandidateRecord`.

    The payload looks like ``{"code": 0, "zpData": {"jobInfo": {...},
    "bossInfo": {...}, "brandComInfo": {...}}}``.
    """
    try:
        payload = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise ResponseParseError(f"Detail response is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ResponseParseError("Detail response is not a JSON object.")
    if payload.get("code", 0) != 0:
        raise ResponseParseError(
            f"Detail API returned code {payload.get('code')}: {payload.get('message', '')}"
        )

    data = payload.get("zpData") or {}
    job = data.get("jobInfo") or {}
    boss = data.get("bossInfo") or {}
    brand = data.get("brandComInfo") or {}

    job_id = _text(job, "encryptId")
    if not job_id:
        raise ResponseParseError("Detail response has no encryptId.")
    recruiter_id = _text(job, "encryptUserId") or _text(boss, "encryptBossId")

    return CandidateRecord(
        encrypt_job_id=job_id,
        encrypt_recruiter_id=recruiter_id,
        title=_text(job, "jobName"),
        company=_text(brand, "brandName") or _text(boss, "brandName"),
        salary_text=_text(job, "salaryDesc"),
        location=_text(job, "locationName"),
        experience=_text(job, "experienceName"),
        degree=_text(job, "degreeName"),
        recruiter_name=_text(boss, "name"),
        recruiter_title=_text(boss, "title"),
        recruiter_activity=_text(boss, "activeTimeDesc"),
        description=_text(job, "postDescription"),
        job_url=f"{BASE_URL}/job_detail/{job_id}.html",
        industry=_text(brand, "industryName"),
        scale=_text(brand, "scaleName"),
        stage=_text(brand, "stageName"),
    )


class DetailExtractor:
    """Correlates a card click with the job-detail response it produces.

    Clicking changes the shared page, so callers must not run extraction
    alongside any other step that touches the surface.
    """

    def __init__(
        self,
        surface: BrowserSurface,
        *,
        first_card_double_click: bool = True,
        timeout_s: float = _RESPONSE_TIMEOUT_S,
        card_selector: str = JOB_CARDS,
    ) -> None:
        self._surface = surface
        self._double_click_first = first_card_double_click
        self._timeout = timeout_s
        self._card_selector = card_selector

    async def extract(self, index: int) -> CandidateRecord:
        """Click card *index* and return the parsed record.

        Raises :class:`NetworkCorrelationTimeout` if no detail response
        arrives in time, :class:`ResponseParseError` if it is unusable.
        """
        cards = self._surface.locate(self._card_selector)
        if index == 0 and self._double_click_first and await cards.count() > 1:
            # A card that is already selected on load does not fetch its
            # detail when clicked; select another card first.
            await cards.nth(1).click()
            await asyncio.sleep(_SETTLE_S)

        waiter = self._surface.on_response(is_detail_response)
        try:
            await cards.nth(index).click()
            response = await asyncio.wait_for(waiter, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise NetworkCorrelationTimeout(
                f"No job detail response within {self._timeout:.0f}s for card #{index + 1}"
            ) from exc
        finally:
            if not waiter.done():
                waiter.cancel()

        body = await response.text()
        record = parse_job_detail(body)
        await asyncio.sleep(_SETTLE_S)
        return record
