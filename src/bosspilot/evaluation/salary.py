"""Parse the salary strings shown on job cards."""

from __future__ import annotations

import re

from bosspilot.models import SalaryRange

NEGOTIABLE = "面议"
WORKING_DAYS_PER_MONTH = 21.75

_MONTHS_RE = re.compile(r"[·.\-]?(\d+)薪")
_RANGE_K_RE = re.compile(r"^(\d+)-(\d+)[Kk]$")
_SINGLE_K_RE = re.compile(r"^(\d+)[Kk]$")
_DAILY_RE = re.compile(r"^(\d+)(?:-(\d+))?元/天$")
_STRAY_RE = re.compile(r"[^0-9Kk\-]")


def _daily_to_monthly_k(amount: int) -> float:
    return amount * WORKING_DAYS_PER_MONTH / 1000


def _match_k(text: str) -> tuple[int, int] | None:
    match = _RANGE_K_RE.match(text)
    if match:
        return int(match.group(1)), int(match.group(2))
    match = _SINGLE_K_RE.match(text)
    if match:
        value = int(match.group(1))
        return value, value
    return None


def parse_salary(text: str | None) -> SalaryRange | None:
    """Turn ``"15-25K·14薪"``-style text into a :class:`SalaryRange`.

    Returns ``None`` for blank or negotiable salaries and for anything that
    matches none of the known forms. Daily rates are converted to monthly K.
    """
    if not text or not text.strip():
        return None
    raw = text.strip()
    if NEGOTIABLE in raw:
        return None
    raw = raw.replace(" ", "")

    months = 12
    match = _MONTHS_RE.search(raw)
    if match:
        months = int(match.group(1))
        raw = raw[: match.start()]

    daily = _DAILY_RE.match(raw)
    if daily:
        low = int(daily.group(1))
        high = int(daily.group(2)) if daily.group(2) else low
        return SalaryRange(
            _daily_to_monthly_k(low), _daily_to_monthly_k(high), months, daily=True
        )

    bounds = _match_k(raw) or _match_k(_STRAY_RE.sub("", raw))
    if bounds is None:
        return None
    return SalaryRange(float(bounds[0]), float(bounds[1]), months)
