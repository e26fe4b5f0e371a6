"""Shared test fixtures and an in-memory stand-in for the browser surface."""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Callable

import pytest

from bosspilot.storage.store import CandidateStore


class FakeResponse:
    def __init__(self, url: str, body: str) -> None:
        self.url = url
        self._body = body

    async def text(self) -> str:
        return self._body


class FakeChooser:
    def __init__(self) -> None:
        self.files: list[Any] = []

    async def set_files(self, files) -> None:
        self.files.append(files)


class FakeNode:
    """State of every element matching one selector."""

    def __init__(
        self,
        count: int = 1,
        visible: bool = True,
        text: str = "",
        attrs: dict[str, str] | None = None,
        tag: str = "div",
        on_click: Callable[[int], Any] | None = None,
    ) -> None:
        self.count = count
        self.visible = visible
        self.text = text
        self.attrs = attrs or {}
        self.tag = tag
        self.on_click = on_click
        self.fail_click = False
        self.clicks: list[int] = []
        self.filled: list[str] = []
        self.evaluated: list[tuple[str, Any]] = []
        self.files: list[Any] = []


class FakeElement:
    """Handle into :class:`FakeSurface`; scoped selectors are joined with ``>>``."""

    def __init__(self, surface: "FakeSurface", key: str, index: int | None = None) -> None:
        self._surface = surface
        self._key = key
        self._index = index

    @property
    def node(self) -> FakeNode:
        return self._surface.nodes.get(self._key) or FakeNode(count=0, visible=False)

    async def count(self) -> int:
        total = self.node.count
        if self._index is None:
            return total
        return 1 if total > self._index else 0

    async def is_visible(self) -> bool:
        return await self.count() > 0 and self.node.visible

    async def click(self, *, timeout: float = 5_000) -> None:
        node = self.node
        if await self.count() == 0 or node.fail_click:
            raise RuntimeError(f"cannot click {self._key}")
        index = self._index or 0
        node.clicks.append(index)
        if node.on_click is not None:
            result = node.on_click(index)
            if inspect.isawaitable(result):
                await result

    async def fill(self, value: str) -> None:
        self.node.filled.append(value)

    async def text_content(self) -> str | None:
        return self.node.text

    async def get_attribute(self, name: str) -> str | None:
        return self.node.attrs.get(name)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.node.evaluated.append((expression, arg))
        if "tagName" in expression:
            return self.node.tag
        return None

    async def set_input_files(self, files) -> None:
        self.node.files.append(files)

    def nth(self, index: int) -> "FakeElement":
        return FakeElement(self._surface, self._key, index)

    def first(self) -> "FakeElement":
        return self.nth(0)

    def locate(self, selector: str) -> "FakeElement":
        return FakeElement(self._surface, f"{self._key} >> {selector}")


class FakeSurface:
    """A scripted page: selectors map to :class:`FakeNode` objects."""

    def __init__(self, url: str = "https://www.zhipin.com/") -> None:
        self.nodes: dict[str, FakeNode] = {}
        self.current_url = url
        self.navigations: list[str] = []
        self.scrolls: list[tuple[int, int]] = []
        self.bottom_scrolls = 0
        self.height = 900
        self.on_scroll: Callable[[], None] | None = None
        self.page_factory: Callable[[str], "FakeSurface"] | None = None
        self.opened_pages: list[FakeSurface] = []
        self.closed = False
        self.cookie_jar: list[dict[str, Any]] = []
        self.navigation_callbacks: list[Callable[[str], None]] = []
        self._response_waiters: list[tuple[Callable[[str, str], bool], asyncio.Future]] = []
        self._chooser_waiters: list[asyncio.Future] = []

    # ---- scripting helpers ----

    def node(self, selector: str, **kwargs) -> FakeNode:
        node = FakeNode(**kwargs)
        self.nodes[selector] = node
        return node

    def remove(self, selector: str) -> None:
        self.nodes.pop(selector, None)

    def emit_response(self, url: str, body: str | dict, method: str = "GET") -> bool:
        if isinstance(body, dict):
            body = json.dumps(body, ensure_ascii=False)
        for predicate, future in list(self._response_waiters):
            if future.done():
                self._response_waiters.remove((predicate, future))
                continue
            if predicate(url, method):
                future.set_result(FakeResponse(url, body))
                self._response_waiters.remove((predicate, future))
                return True
        return False

    def emit_file_chooser(self, chooser: FakeChooser) -> bool:
        for future in list(self._chooser_waiters):
            self._chooser_waiters.remove(future)
            if not future.done():
                future.set_result(chooser)
                return True
        return False

    @property
    def pending_response_waiters(self) -> int:
        return sum(1 for _, f in self._response_waiters if not f.done())

    # ---- BrowserSurface ----

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        self.navigations.append(url)
        self.current_url = url
        for callback in list(self.navigation_callbacks):
            callback(url)

    def url(self) -> str:
        return self.current_url

    def locate(self, selector: str) -> FakeElement:
        return FakeElement(self, selector)

    async def wait_for_selector(self, selector: str, *, timeout: float = 10_000) -> bool:
        node = self.nodes.get(selector)
        return node is not None and node.count > 0 and node.visible

    async def wait_for_url(self, fragment: str, *, timeout: float = 15_000) -> bool:
        return fragment in self.current_url

    def on_response(self, predicate) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._response_waiters.append((predicate, future))
        return future

    def on_file_chooser(self) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._chooser_waiters.append(future)
        return future

    def on_navigation(self, callback: Callable[[str], None]) -> None:
        self.navigation_callbacks.append(callback)

    async def scroll_by(self, dx: int, dy: int) -> None:
        self.scrolls.append((dx, dy))
        if self.on_scroll is not None:
            self.on_scroll()

    async def scroll_to_bottom(self) -> None:
        self.bottom_scrolls += 1
        if self.on_scroll is not None:
            self.on_scroll()

    async def viewport_height(self) -> int:
        return self.height

    async def open_page(self, url: str) -> "FakeSurface":
        page = self.page_factory(url) if self.page_factory else FakeSurface(url)
        page.current_url = url
        self.opened_pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True

    async def cookies(self) -> list[dict[str, Any]]:
        return list(self.cookie_jar)

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        self.cookie_jar.extend(cookies)


def detail_payload(
    job_id: str = "job-1",
    recruiter_id: str = "boss-1",
    title: str = "Python Engineer",
    company: str = "Acme",
    salary: str = "15-25K",
    recruiter_title: str = "HR",
    activity: str = "刚刚活跃",
    description: str = "Build backend services.",
) -> dict[str, Any]:
    """A job detail API body shaped like the site's."""
    return {
        "code": 0,
        "message": "Success",
        "zpData": {
            "jobInfo": {
                "encryptId": job_id,
                "encryptUserId": recruiter_id,
                "jobName": title,
                "salaryDesc": salary,
                "locationName": "北京",
                "experienceName": "3-5年",
                "degreeName": "本科",
                "postDescription": description,
            },
            "bossInfo": {"name": "Li", "title": recruiter_title, "activeTimeDesc": activity},
            "brandComInfo": {
                "brandName": company,
                "scaleName": "100-499人",
                "stageName": "A轮",
                "industryName": "互联网",
            },
        },
    }


@pytest.fixture()
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture()
def store():
    s = CandidateStore(":memory:")
    yield s
    s.close()


@pytest.fixture()
def no_sleep(monkeypatch):
    """Make ``asyncio.sleep`` yield once instead of waiting; returns the requested delays."""
    real_sleep = asyncio.sleep
    delays: list[float] = []

    async def _fast_sleep(delay, result=None):
        delays.append(delay)
        await real_sleep(0)
        return result

    monkeypatch.setattr(asyncio, "sleep", _fast_sleep)
    return delays


@pytest.fixture()
def tmp_settings_yaml(tmp_path):
    """Write a minimal settings.yaml and return its path."""
    content = """\
headless: true
keywords:
  - "python"
cities:
  - "101010100"
experience:
  - "104"
  - " "
expected_salary_min: 15
expected_salary_max: 30
filter_dead_hr: true
blocked_companies:
  - "外包"
blocked_jobs:
  - "实习"
say_hi: "你好"
debug: true
state_dir: "{state}"
""".format(state=str(tmp_path / ".state"))
    p = tmp_path / "settings.yaml"
    p.write_text(content, encoding="utf-8")
    return p
