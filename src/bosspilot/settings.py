"""Pydantic-based settings loaded from YAML with env-var overrides."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from bosspilot.models import SearchConfig
from bosspilot.selectors import PLATFORMS

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_DEFAULT_RESUME_IMAGES = [
    "./resume.jpg",
    "./resources/resume.jpg",
    "./static/resume.jpg",
    "./images/resume.jpg",
]


class AppSettings(BaseSettings):
    """Application configuration with YAML + env var support.

    Env vars are prefixed with ``BOSSPILOT_``.
    Example: ``BOSSPILOT_AI_API_KEY=sk-...``
    """

    model_config = {"env_prefix": "BOSSPILOT_"}

    platform: str = "boss"

    # --- browser ---
    headless: bool = False
    slow_mo: int = 0  # ms between Playwright actions

    # --- search ---
    keywords: list[str] = Field(default_factory=list)
    cities: list[str] = Field(default_factory=list)  # city codes, e.g. 101010100
    experience: list[str] = Field(default_factory=list)
    degree: list[str] = Field(default_factory=list)
    salary: list[str] = Field(default_factory=list)
    scale: list[str] = Field(default_factory=list)
    stage: list[str] = Field(default_factory=list)
    industry: list[str] = Field(default_factory=list)
    job_type: str = ""

    # --- filtering ---
    expected_salary_min: int = 0  # monthly K, 0 = no lower bound
    expected_salary_max: int = 0  # monthly K, 0 = no upper bound
    filter_dead_hr: bool = False
    dead_status: list[str] = Field(default_factory=lambda: ["年"])
    blacklist_match: Literal["substring", "exact"] = "substring"
    blocked_companies: list[str] = Field(default_factory=list)
    blocked_recruiters: list[str] = Field(default_factory=list)
    blocked_jobs: list[str] = Field(default_factory=list)

    # --- delivery ---
    say_hi: str = "您好，我对这个职位很感兴趣，希望能进一步沟通"
    enable_ai: bool = False
    send_img_resume: bool = False
    resume_image_paths: list[str] = Field(
        default_factory=lambda: list(_DEFAULT_RESUME_IMAGES)
    )
    first_card_double_click: bool = True
    debug: bool = False  # discover and filter only, never deliver

    # --- AI greeting service ---
    ai_base_url: str = "https://api.openai.com/v1"
    ai_api_key: str = ""
    ai_model: str = "gpt-4o-mini"
    ai_introduction: str = ""
    greeting_rejection_sentinel: str = "false"

    # --- timing ---
    monitor_interval_s: float = 3.0
    login_timeout_s: float = 180.0

    # --- paths ---
    state_dir: str = ".state"

    @field_validator("platform")
    @classmethod
    def _known_platform(cls, v: str) -> str:
        if v not in PLATFORMS:
            raise ValueError(f"unknown platform {v!r}, expected one of {sorted(PLATFORMS)}")
        return v

    @field_validator(
        "keywords",
        "cities",
        "experience",
        "degree",
        "salary",
        "scale",
        "stage",
        "industry",
        "dead_status",
        "blocked_companies",
        "blocked_recruiters",
        "blocked_jobs",
    )
    @classmethod
    def _strip_blanks(cls, v: list[str]) -> list[str]:
        return [str(item).strip() for item in v if str(item).strip()]

    @model_validator(mode="after")
    def _check_salary_range(self) -> "AppSettings":
        low, high = self.expected_salary_min, self.expected_salary_max
        if low < 0 or high < 0:
            raise ValueError("expected salary bounds must not be negative")
        if high and high < low:
            raise ValueError(
                f"expected_salary_max ({high}) is below expected_salary_min ({low})"
            )
        return self

    # ---- factory ----

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "AppSettings":
        """Load settings from a YAML file, then overlay env vars.

        Env vars (``BOSSPILOT_*``) take priority over YAML values.
        """
        import os

        if path is None:
            path = _PROJECT_ROOT / "settings.yaml"
        path = Path(path)
        raw: dict[str, Any] = {}
        if path.exists():
            with open(path, encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}

        prefix = "BOSSPILOT_"
        for key in list(raw.keys()):
            env_key = f"{prefix}{key.upper()}"
            if env_key in os.environ:
                del raw[key]

        return cls(**raw)

    def to_search_config(self) -> SearchConfig:
        """Freeze the search-related fields for one run."""
        return SearchConfig(
            keywords=tuple(self.keywords),
            cities=tuple(self.cities),
            experience=tuple(self.experience),
            degree=tuple(self.degree),
            salary=tuple(self.salary),
            scale=tuple(self.scale),
            stage=tuple(self.stage),
            industry=tuple(self.industry),
            job_type=self.job_type.strip(),
            expected_salary=(self.expected_salary_min, self.expected_salary_max),
            say_hi=self.say_hi,
            enable_ai=self.enable_ai,
            send_img_resume=self.send_img_resume,
            filter_dead_hr=self.filter_dead_hr,
            debug=self.debug,
            dead_status=tuple(self.dead_status),
            first_card_double_click=self.first_card_double_click,
            blacklist_match=self.blacklist_match,
            greeting_rejection_sentinel=self.greeting_rejection_sentinel,
            resume_image_paths=tuple(self.resume_image_paths),
            ai_introduction=self.ai_introduction,
        )
