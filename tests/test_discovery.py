"""Tests for lazy-list discovery and detail extraction."""

from __future__ import annotations

import asyncio

import pytest
from conftest import detail_payload

from bosspilot.control import CancellationToken
from bosspilot.discovery.candidate_discovery import CandidateDiscovery
from bosspilot.discovery.detail_extractor import DetailExtractor, parse_job_detail
from bosspilot.exceptions import NetworkCorrelationTimeout, ResponseParseError
from bosspilot.selectors import FOOTER, JOB_CARDS, JOB_DETAIL_API

DETAIL_URL = f"https://www.zhipin.com{JOB_DETAIL_API}?securityId=abc"


def _growing_list(surface, start: int, step: int, cap: int):
    cards = surface.node(JOB_CARDS, count=start)

    def _grow():
        cards.count = min(cap, cards.count + step)

    surface.on_scroll = _grow
    return cards


async def test_stops_at_footer(surface, no_sleep):
    surface.node(JOB_CARDS, count=15)
    surface.node(FOOTER)
    assert await CandidateDiscovery(surface).load_all() == 15
    assert surface.scrolls == []


async def test_scrolls_one_and_a_half_viewports(surface, no_sleep):
    _growing_list(surface, 15, 15, 30)
    surface.height = 800
    await CandidateDiscovery(surface, max_iterations=1).load_all()
    assert surface.scrolls == [(0, 1200)]


async def test_bounded_when_list_never_settles(surface, no_sleep):
    _growing_list(surface, 0, 1, 10_000)
    total = await CandidateDiscovery(surface, max_iterations=7).load_all()
    assert len(surface.scrolls) == 7
    assert total == await CandidateDiscovery(surface).count_cards()


async def test_stable_count_forces_bottom_scroll(surface, no_sleep):
    _growing_list(surface, 15, 15, 30)
    total = await CandidateDiscovery(surface, max_iterations=10, stable_threshold=3).load_all()
    assert total == 30
    assert surface.bottom_scrolls > 0
    assert len(surface.scrolls) == 10


async def test_footer_appearing_ends_scrolling(surface, no_sleep):
    cards = surface.node(JOB_CARDS, count=15)

    def _grow():
        cards.count += 15
        if cards.count >= 45:
            surface.node(FOOTER)

    surface.on_scroll = _grow
    assert await CandidateDiscovery(surface).load_all() == 45
    assert len(surface.scrolls) == 2


async def test_cancelled_token_stops_immediately(surface, no_sleep):
    _growing_list(surface, 15, 15, 300)
    token = CancellationToken()
    token.cancel()
    assert await CandidateDiscovery(surface, token).load_all() == 15
    assert surface.scrolls == []


# ---- detail extraction ----


def test_parse_job_detail():
    record = parse_job_detail(
        '{"code":0,"zpData":{"jobInfo":{"encryptId":"j1","encryptUserId":"u1",'
        '"jobName":"Go Dev","salaryDesc":"20-30K·14薪","postDescription":"desc"},'
        '"bossInfo":{"name":"Wang","title":"CTO","activeTimeDesc":"本周活跃"},'
        '"brandComInfo":{"brandName":"Foo","scaleName":"1000-9999人"}}}'
    )
    assert record.identity == ("j1", "u1")
    assert record.title == "Go Dev"
    assert record.company == "Foo"
    assert record.recruiter_title == "CTO"
    assert record.recruiter_activity == "本周活跃"
    assert record.scale == "1000-9999人"
    assert record.job_url == "https://www.zhipin.com/job_detail/j1.html"


@pytest.mark.parametrize(
    "body",
    [
        "<html>blocked</html>",
        '{"code": 37, "message": "访问异常"}',
        '{"code": 0, "zpData": {"jobInfo": {}}}',
        "[]",
    ],
)
def test_parse_job_detail_rejects_bad_bodies(body):
    with pytest.raises(ResponseParseError):
        parse_job_detail(body)


def _cards_answering(surface, count: int = 3):
    """Cards whose clicks make the page fetch the matching detail JSON."""

    def _on_click(index: int):
        surface.emit_response(DETAIL_URL, detail_payload(job_id=f"job-{index}"))

    return surface.node(JOB_CARDS, count=count, on_click=_on_click)


async def test_extract_correlates_click_with_response(surface, no_sleep):
    cards = _cards_answering(surface)
    record = await DetailExtractor(surface).extract(2)
    assert record.encrypt_job_id == "job-2"
    assert cards.clicks == [2]
    assert surface.pending_response_waiters == 0


async def test_first_card_clicks_second_card_first(surface, no_sleep):
    cards = _cards_answering(surface)
    record = await DetailExtractor(surface).extract(0)
    assert cards.clicks == [1, 0]
    assert record.encrypt_job_id == "job-0"


async def test_first_card_workaround_can_be_disabled(surface, no_sleep):
    cards = _cards_answering(surface)
    record = await DetailExtractor(surface, first_card_double_click=False).extract(0)
    assert cards.clicks == [0]
    assert record.encrypt_job_id == "job-0"


async def test_ignores_post_and_unrelated_responses(surface, no_sleep):
    def _on_click(index: int):
        surface.emit_response(DETAIL_URL, detail_payload(job_id="wrong"), method="POST")
        surface.emit_response("https://www.zhipin.com/wapi/other.json", {"code": 0})
        surface.emit_response(DETAIL_URL, detail_payload(job_id="right"))

    surface.node(JOB_CARDS, count=2, on_click=_on_click)
    record = await DetailExtractor(surface).extract(1)
    assert record.encrypt_job_id == "right"


async def test_missing_response_times_out(surface):
    surface.node(JOB_CARDS, count=2)
    with pytest.raises(NetworkCorrelationTimeout):
        await DetailExtractor(surface, timeout_s=0.05).extract(1)
    assert surface.pending_response_waiters == 0
