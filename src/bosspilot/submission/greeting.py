"""AI-written greeting messages via an OpenAI-compatible API."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import aiohttp

from bosspilot.exceptions import ConfigurationError
from bosspilot.models import SearchConfig

logger = logging.getLogger(__name__)

DEFAULT_INTRODUCTION = "具备相关技能和经验"

_PROMPT_TEMPLATE = """请基于以下信息生成简洁友好的中文打招呼语，不超过60字：

个人介绍：{introduction}
关键词：{keyword}
职位名称：{title}
职位描述：{description}
参考语：{fallback}

请生成专业、简洁的打招呼语，突出个人优势与职位匹配度。"""

# Model name fragments served only by the Responses API.
_RESPONSES_MODEL_HINTS = ("o1", "o3", "o4", "4.1", "reasoner", "4o-mini")


class Greeter(Protocol):
    async def generate(
        self, introduction: str, keyword: str, title: str, description: str, fallback: str
    ) -> str:
        ...


def build_prompt(introduction: str, keyword: str, title: str, description: str, fallback: str) -> str:
    return _PROMPT_TEMPLATE.format(
        introduction=introduction or DEFAULT_INTRODUCTION,
        keyword=keyword,
        title=title,
        description=description,
        fallback=fallback,
    )


def uses_responses_api(model: str) -> bool:
    lowered = model.lower()
    return any(hint in lowered for hint in _RESPONSES_MODEL_HINTS)


def build_endpoint(base_url: str, model: str) -> str:
    base = base_url.rstrip("/")
    if "/v1" not in base:
        base += "/v1"
    return f"{base}/responses" if uses_responses_api(model) else f"{base}/chat/completions"


class GreetingGenerator:
    """Client for a chat-completions (or Responses) endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        temperature: float = 0.5,
    ) -> None:
        if not base_url or not api_key or not model:
            raise ConfigurationError("AI greeting needs a base URL, an API key and a model.")
        self.base_url = base_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.temperature = temperature

    @property
    def endpoint(self) -> str:
        return build_endpoint(self.base_url, self.model)

    def build_payload(self, prompt: str) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "temperature": self.temperature}
        if self.endpoint.endswith("/responses"):
            payload["input"] = prompt
        else:
            payload["messages"] = [{"role": "user", "content": prompt}]
        return payload

    async def generate(
        self, introduction: str, keyword: str, title: str, description: str, fallback: str
    ) -> str:
        """Return the model's greeting text. Raises on transport or API errors."""
        prompt = build_prompt(introduction, keyword, title, description, fallback)
        data = await self._post(self.endpoint, self.build_payload(prompt))
        return self._extract_text(data).strip()

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "api-key": self.api_key,
                    "Accept": "application/json",
                },
                json=payload,
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise RuntimeError(f"AI request failed ({resp.status}): {body[:200]}")
                data = await resp.json()
        usage = data.get("usage") or {}
        logger.debug(
            "AI response: model=%s total_tokens=%s", data.get("model"), usage.get("total_tokens")
        )
        return data

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        if data.get("output_text"):
            return str(data["output_text"])
        choices = data.get("choices") or []
        if choices:
            return str(choices[0].get("message", {}).get("content") or "")
        raise RuntimeError("AI response carries no text.")


async def compose_greeting(
    generator: Greeter | None,
    config: SearchConfig,
    keyword: str,
    title: str,
    description: str,
) -> str:
    """Pick the message to send: the AI greeting when usable, else ``say_hi``.

    The configured template is used when AI is off, the description is
    empty, the call fails, or the reply is empty or contains the rejection
    sentinel.
    """
    fallback = config.say_hi
    if not config.enable_ai or generator is None or not description.strip():
        return fallback
    try:
        text = await generator.generate(
            config.ai_introduction, keyword, title, description, fallback
        )
    except Exception as exc:
        logger.warning("AI greeting failed, using the default message: %s", exc)
        return fallback
    sentinel = config.greeting_rejection_sentinel.lower()
    if not text or not text.strip() or (sentinel and sentinel in text.lower()):
        logger.info("AI greeting rejected, using the default message.")
        return fallback
    return text.strip()
