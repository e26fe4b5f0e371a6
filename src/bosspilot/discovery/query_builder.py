"""Pure-function URL builder for the job search page."""

from __future__ import annotations

from urllib.parse import quote, urlencode

from bosspilot.models import SearchConfig
from bosspilot.selectors import SEARCH_URL

# The site's code for "no restriction" on any filter dimension.
UNLIMITED_CODE = "0"


def _encode_multi(codes: tuple[str, ...]) -> str:
    """Join codes with commas; empty if unset or the unlimited code is present."""
    cleaned = [c.strip() for c in codes if c.strip()]
    if not cleaned or UNLIMITED_CODE in cleaned:
        return ""
    return ",".join(cleaned)


def build_search_url(city: str, keyword: str, config: SearchConfig) -> str:
    """Convert one city/keyword pair plus the run's filters into a search URL."""
    params: dict[str, str] = {"city": city, "query": keyword}

    if config.job_type and config.job_type != UNLIMITED_CODE:
        params["jobType"] = config.job_type

    for name, values in (
        ("salary", config.salary),
        ("experience", config.experience),
        ("degree", config.degree),
        ("scale", config.scale),
        ("stage", config.stage),
        ("industry", config.industry),
    ):
        encoded = _encode_multi(values)
        if encoded:
            params[name] = encoded

    return f"{SEARCH_URL}?{urlencode(params, quote_via=quote, safe=',')}"


def build_search_urls(config: SearchConfig) -> list[tuple[str, str, str]]:
    """Expand every city × keyword pair, cities outermost, in configured order.

    Returns ``(city, keyword, url)`` triples.
    """
    return [
        (city, kw, build_search_url(city, kw, config))
        for city in config.cities
        for kw in config.keywords
    ]
