"""Page locators and URLs for www.zhipin.com.

Kept in one place because the site's markup changes often.
"""

from __future__ import annotations

from dataclasses import dataclass

BASE_URL = "https://www.zhipin.com"
SEARCH_URL = f"{BASE_URL}/web/geek/job"
CHAT_URL_FRAGMENT = "/web/geek/chat"
JOB_DETAIL_PATH_PREFIX = "/job_detail/"
JOB_DETAIL_API = "/wapi/zpgeek/job/detail.json"

# ---- search results ----
JOB_LIST = "ul.rec-job-list"
JOB_CARDS = "ul.rec-job-list li.job-card-box"
FOOTER = "div#footer, #footer"
MORE_INFO_LINK = "a.more-job-btn"

# ---- detail page / chat ----
CHAT_BUTTON = "a.btn-startchat, a.op-btn-chat"
CHAT_BUTTON_TEXT = "立即沟通"
CHAT_INPUT = "div#chat-input.chat-input[contenteditable='true'], textarea.input-area"
SEND_BUTTON = "div.send-message, button[type='send'].btn-send, button.btn-send"
POPUP_CLOSE = "i.icon-close"
IMAGE_UPLOAD_CONTAINER = (
    "div.btn-sendimg[aria-label='发送图片'], div[aria-label='发送图片'].btn-sendimg"
)
IMAGE_FILE_INPUT = "input[type='file'][accept*='image']"


@dataclass(frozen=True)
class PlatformProfile:
    """Everything the session monitor needs to know about one site."""

    key: str
    home_url: str
    login_url: str
    user_label: str
    avatar: str
    login_entry: str
    login_text: str
    scan_switches: tuple[str, ...]


BOSS_PLATFORM = PlatformProfile(
    key="boss",
    home_url=BASE_URL,
    login_url=f"{BASE_URL}/web/user/?ka=header-login",
    user_label="li.nav-figure span.label-text",
    avatar="li.nav-figure",
    login_entry="li.nav-sign a, .btns",
    login_text="登录",
    scan_switches=(
        "div.btn-sign-switch.ewm-switch",
        ".ewm-switch",
        "div.btn-sign-switch",
        "text=扫码登录",
    ),
)

PLATFORMS: dict[str, PlatformProfile] = {BOSS_PLATFORM.key: BOSS_PLATFORM}
