"""Tests for URL generation."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from bosspilot.discovery.query_builder import build_search_url, build_search_urls
from bosspilot.models import SearchConfig


def _parse(url: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(url).query)


def test_basic_url():
    url = build_search_url("101010100", "python", SearchConfig())
    assert url.startswith("https://www.zhipin.com/web/geek/job?")
    params = _parse(url)
    assert params["city"] == ["101010100"]
    assert params["query"] == ["python"]
    assert "experience" not in params


def test_keyword_is_encoded_once():
    url = build_search_url("101010100", "后端 开发", SearchConfig())
    assert "%E5%90%8E%E7%AB%AF%20%E5%BC%80%E5%8F%91" in url
    assert _parse(url)["query"] == ["后端 开发"]


def test_multi_value_codes_joined_with_commas():
    config = SearchConfig(experience=("104", "105"), degree=("203",), scale=("303", "304"))
    url = build_search_url("101020100", "go", config)
    assert "experience=104,105" in url
    params = _parse(url)
    assert params["degree"] == ["203"]
    assert params["scale"] == ["303,304"]


def test_unlimited_code_omits_dimension():
    config = SearchConfig(salary=("0", "405"), job_type="0", industry=("100020",))
    params = _parse(build_search_url("101010100", "java", config))
    assert "salary" not in params
    assert "jobType" not in params
    assert params["industry"] == ["100020"]


def test_job_type_included():
    params = _parse(build_search_url("101010100", "java", SearchConfig(job_type="1901")))
    assert params["jobType"] == ["1901"]


def test_cities_outermost_in_configured_order():
    config = SearchConfig(keywords=("a", "b"), cities=("c1", "c2"))
    triples = build_search_urls(config)
    assert [(city, kw) for city, kw, _ in triples] == [
        ("c1", "a"),
        ("c1", "b"),
        ("c2", "a"),
        ("c2", "b"),
    ]
