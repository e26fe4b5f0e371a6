"""Tests for the delivery engine, greeting composition and image-resume upload."""

from __future__ import annotations

import pytest
from conftest import FakeChooser, FakeSurface

from bosspilot.exceptions import ConfigurationError
from bosspilot.models import CandidateRecord, DeliveryStatus, SearchConfig
from bosspilot.selectors import (
    CHAT_BUTTON,
    CHAT_INPUT,
    IMAGE_FILE_INPUT,
    IMAGE_UPLOAD_CONTAINER,
    MORE_INFO_LINK,
    POPUP_CLOSE,
    SEND_BUTTON,
)
from bosspilot.submission.delivery import DeliveryEngine
from bosspilot.submission.greeting import (
    GreetingGenerator,
    build_endpoint,
    build_prompt,
    compose_greeting,
)
from bosspilot.submission.resume_picker import attach_resume_image, resolve_resume_image_path

SAY_HI = "您好，我对这个职位很感兴趣"
CHAT_URL = "https://www.zhipin.com/web/geek/chat?id=1"
UPLOAD_INPUT = f"{IMAGE_UPLOAD_CONTAINER} >> {IMAGE_FILE_INPUT}"


class FakeGreeter:
    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple] = []

    async def generate(self, introduction, keyword, title, description, fallback):
        self.calls.append((introduction, keyword, title, description, fallback))
        if self.error is not None:
            raise self.error
        return self.reply


def _candidate(description: str = "Build APIs in Python.") -> CandidateRecord:
    return CandidateRecord(
        encrypt_job_id="job-1",
        encrypt_recruiter_id="boss-1",
        title="Python Engineer",
        company="Acme",
        salary_text="15-25K",
        description=description,
    )


def _detail_page(chat_text: str = "立即沟通", input_tag: str = "textarea", send: bool = True) -> FakeSurface:
    page = FakeSurface()
    page.node(CHAT_BUTTON, text=chat_text)
    page.node(CHAT_INPUT, tag=input_tag)
    if send:
        page.node(SEND_BUTTON)
    return page


def _search_page(surface: FakeSurface, page: FakeSurface, href: str = "/job_detail/abc.html") -> None:
    surface.node(MORE_INFO_LINK, attrs={"href": href})
    surface.page_factory = lambda url: page


async def test_delivers_through_textarea(surface, no_sleep):
    page = _detail_page()
    _search_page(surface, page)
    outcome = await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")

    assert outcome.status is DeliveryStatus.DELIVERED
    assert outcome.identity == ("job-1", "boss-1")
    assert outcome.message == SAY_HI
    assert surface.opened_pages[0].current_url == "https://www.zhipin.com/job_detail/abc.html"
    assert page.nodes[CHAT_BUTTON].clicks == [0]
    assert page.nodes[CHAT_INPUT].filled == [SAY_HI]
    assert page.nodes[SEND_BUTTON].clicks == [0]
    assert page.closed


async def test_delivers_through_contenteditable(surface, no_sleep):
    page = _detail_page(input_tag="div")
    _search_page(surface, page)
    await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")

    chat_input = page.nodes[CHAT_INPUT]
    assert chat_input.filled == []
    assert chat_input.evaluated[-1][1] == SAY_HI
    assert "innerText" in chat_input.evaluated[-1][0]


async def test_popup_dismissed_after_send(surface, no_sleep):
    page = _detail_page()
    popup = page.node(POPUP_CLOSE)
    _search_page(surface, page)
    await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")
    assert popup.clicks == [0]


async def test_popup_failure_is_ignored(surface, no_sleep):
    page = _detail_page()
    page.node(POPUP_CLOSE).fail_click = True
    _search_page(surface, page)
    outcome = await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")
    assert outcome.status is DeliveryStatus.DELIVERED


async def test_rejection_sentinel_falls_back_to_template(surface, no_sleep):
    page = _detail_page()
    _search_page(surface, page)
    greeter = FakeGreeter(reply="False")
    config = SearchConfig(say_hi=SAY_HI, enable_ai=True)
    outcome = await DeliveryEngine(surface, config, greeter).deliver(_candidate(), "python")

    assert greeter.calls
    assert page.nodes[CHAT_INPUT].filled == [SAY_HI]
    assert outcome.message == SAY_HI


async def test_ai_greeting_sent_when_usable(surface, no_sleep):
    page = _detail_page()
    _search_page(surface, page)
    greeter = FakeGreeter(reply=" 您好，我有五年Python后端经验。 ")
    config = SearchConfig(say_hi=SAY_HI, enable_ai=True, ai_introduction="五年后端")
    await DeliveryEngine(surface, config, greeter).deliver(_candidate(), "python")

    assert page.nodes[CHAT_INPUT].filled == ["您好，我有五年Python后端经验。"]
    assert greeter.calls[0] == ("五年后端", "python", "Python Engineer", "Build APIs in Python.", SAY_HI)


async def test_missing_chat_button_fails_after_five_attempts(surface, no_sleep):
    page = _detail_page()
    page.remove(CHAT_BUTTON)
    _search_page(surface, page)
    outcome = await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")

    assert outcome.status is DeliveryStatus.FAILED
    assert "chat button" in outcome.reason
    assert no_sleep.count(1.0) >= 5
    assert page.closed


async def test_chat_button_with_other_text_is_not_clicked(surface, no_sleep):
    page = _detail_page(chat_text="继续沟通")
    _search_page(surface, page)
    outcome = await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")
    assert outcome.status is DeliveryStatus.FAILED
    assert page.nodes[CHAT_BUTTON].clicks == []


async def test_hidden_input_fails(surface, no_sleep):
    page = _detail_page()
    page.nodes[CHAT_INPUT].visible = False
    _search_page(surface, page)
    outcome = await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")
    assert outcome.status is DeliveryStatus.FAILED
    assert "chat input" in outcome.reason


async def test_missing_send_button_fails(surface, no_sleep):
    page = _detail_page(send=False)
    _search_page(surface, page)
    outcome = await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")
    assert outcome.status is DeliveryStatus.FAILED
    assert "send button" in outcome.reason


async def test_invalid_detail_link_fails_without_opening(surface, no_sleep):
    _search_page(surface, _detail_page(), href="https://evil.example/job")
    outcome = await DeliveryEngine(surface, SearchConfig(say_hi=SAY_HI)).deliver(_candidate(), "python")
    assert outcome.status is DeliveryStatus.FAILED
    assert surface.opened_pages == []


async def test_debug_mode_touches_nothing(surface, no_sleep):
    _search_page(surface, _detail_page())
    config = SearchConfig(say_hi=SAY_HI, debug=True)
    outcome = await DeliveryEngine(surface, config).deliver(_candidate(), "python")
    assert outcome.status is DeliveryStatus.NOT_DELIVERED
    assert surface.opened_pages == []


async def test_image_resume_sent_from_chat_page(surface, no_sleep, tmp_path):
    image = tmp_path / "resume.jpg"
    image.write_bytes(b"\xff\xd8")
    page = _detail_page()
    page.nodes[CHAT_BUTTON].on_click = lambda _i: setattr(page, "current_url", CHAT_URL)
    page.node(IMAGE_UPLOAD_CONTAINER)
    upload = page.node(UPLOAD_INPUT)
    _search_page(surface, page)

    config = SearchConfig(say_hi=SAY_HI, send_img_resume=True, resume_image_paths=(str(image),))
    outcome = await DeliveryEngine(surface, config).deliver(_candidate(), "python")

    assert outcome.status is DeliveryStatus.DELIVERED
    assert outcome.attachment_sent
    assert upload.files == [str(image.resolve())]


async def test_image_resume_failure_keeps_delivery(surface, no_sleep, tmp_path):
    image = tmp_path / "resume.jpg"
    image.write_bytes(b"\xff\xd8")
    page = _detail_page()  # chat click never reaches the chat page
    _search_page(surface, page)

    config = SearchConfig(say_hi=SAY_HI, send_img_resume=True, resume_image_paths=(str(image),))
    outcome = await DeliveryEngine(surface, config).deliver(_candidate(), "python")

    assert outcome.status is DeliveryStatus.DELIVERED
    assert not outcome.attachment_sent
    assert page.nodes[CHAT_BUTTON].clicks == [0, 0]


# ---- greeting ----


async def test_compose_uses_template_when_ai_disabled():
    greeter = FakeGreeter(reply="AI text")
    text = await compose_greeting(greeter, SearchConfig(say_hi=SAY_HI), "kw", "t", "d")
    assert text == SAY_HI
    assert greeter.calls == []


async def test_compose_skips_ai_without_description():
    greeter = FakeGreeter(reply="AI text")
    config = SearchConfig(say_hi=SAY_HI, enable_ai=True)
    assert await compose_greeting(greeter, config, "kw", "t", "  ") == SAY_HI
    assert greeter.calls == []


@pytest.mark.parametrize(
    "greeter",
    [FakeGreeter(reply=""), FakeGreeter(reply="false"), FakeGreeter(error=RuntimeError("503"))],
)
async def test_compose_falls_back(greeter):
    config = SearchConfig(say_hi=SAY_HI, enable_ai=True)
    assert await compose_greeting(greeter, config, "kw", "t", "desc") == SAY_HI


async def test_custom_rejection_sentinel():
    config = SearchConfig(say_hi=SAY_HI, enable_ai=True, greeting_rejection_sentinel="无法")
    assert await compose_greeting(FakeGreeter(reply="false positive"), config, "k", "t", "d") == "false positive"
    assert await compose_greeting(FakeGreeter(reply="无法生成"), config, "k", "t", "d") == SAY_HI


def test_prompt_contains_job_context():
    prompt = build_prompt("", "python", "后端工程师", "负责API", SAY_HI)
    assert "不超过60字" in prompt
    assert "具备相关技能和经验" in prompt
    assert "后端工程师" in prompt and "负责API" in prompt and SAY_HI in prompt


def test_endpoint_selection():
    assert build_endpoint("https://api.example.com/v1/", "deepseek-chat") == (
        "https://api.example.com/v1/chat/completions"
    )
    assert build_endpoint("https://api.example.com", "deepseek-chat") == (
        "https://api.example.com/v1/chat/completions"
    )
    assert build_endpoint("https://api.example.com/v1", "o3-mini") == "https://api.example.com/v1/responses"


def test_payload_shape_follows_endpoint():
    chat = GreetingGenerator("https://api.example.com/v1", "sk", "deepseek-chat")
    assert chat.build_payload("hi")["messages"] == [{"role": "user", "content": "hi"}]
    assert chat.build_payload("hi")["temperature"] == 0.5
    responses = GreetingGenerator("https://api.example.com/v1", "sk", "o1-preview")
    assert responses.build_payload("hi")["input"] == "hi"


async def test_generate_reads_choices_and_output_text(monkeypatch):
    generator = GreetingGenerator("https://api.example.com/v1", "sk", "deepseek-chat")
    sent = {}

    async def _fake_post(url, payload):
        sent["url"] = url
        return {"choices": [{"message": {"content": " 你好 "}}]}

    monkeypatch.setattr(generator, "_post", _fake_post)
    assert await generator.generate("", "kw", "t", "d", SAY_HI) == "你好"
    assert sent["url"].endswith("/chat/completions")

    async def _responses_post(url, payload):
        return {"output_text": "您好"}

    monkeypatch.setattr(generator, "_post", _responses_post)
    assert await generator.generate("", "kw", "t", "d", SAY_HI) == "您好"


def test_generator_requires_credentials():
    with pytest.raises(ConfigurationError):
        GreetingGenerator("https://api.example.com/v1", "", "deepseek-chat")


# ---- image resume ----


def test_resolve_resume_image_path(tmp_path):
    image = tmp_path / "images" / "resume.jpg"
    image.parent.mkdir()
    image.write_bytes(b"x")
    found = resolve_resume_image_path([str(tmp_path / "resume.jpg"), "", str(image)])
    assert found == image.resolve()
    assert resolve_resume_image_path([str(tmp_path / "missing.jpg")]) is None


async def test_attach_via_file_chooser(surface, no_sleep):
    chooser = FakeChooser()
    surface.node(IMAGE_UPLOAD_CONTAINER, on_click=lambda _i: surface.emit_file_chooser(chooser))
    assert await attach_resume_image(surface, "/tmp/resume.jpg") is True
    assert chooser.files == ["/tmp/resume.jpg"]


async def test_attach_falls_back_to_rendered_input(surface, no_sleep):
    rendered = {}

    def _render_input(_index):
        rendered["node"] = surface.node(UPLOAD_INPUT)

    surface.node(IMAGE_UPLOAD_CONTAINER, on_click=_render_input)
    assert await attach_resume_image(surface, "/tmp/resume.jpg", chooser_timeout=0.01) is True
    assert rendered["node"].files == ["/tmp/resume.jpg"]


async def test_attach_gives_up_without_upload_surface(surface, no_sleep):
    assert await attach_resume_image(surface, "/tmp/resume.jpg") is False
    surface.node(IMAGE_UPLOAD_CONTAINER)
    assert await attach_resume_image(surface, "/tmp/resume.jpg", chooser_timeout=0.01) is False
