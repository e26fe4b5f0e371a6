"""Domain models for BossPilot."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from bosspilot.exceptions import InvalidStatusTransition


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class DeliveryStatus(str, Enum):
    NOT_DELIVERED = "NotDelivered"
    DELIVERED = "Delivered"
    FILTERED = "Filtered"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DeliveryStatus.NOT_DELIVERED


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    PROGRESS = "progress"
    SUCCESS = "success"


class LoginPhase(str, Enum):
    LOGGED_OUT = "LoggedOut"
    AWAITING_SCAN = "AwaitingScan"
    LOGGED_IN = "LoggedIn"


@dataclass(frozen=True)
class SearchConfig:
    """Immutable search and delivery parameters for a single run."""

    keywords: tuple[str, ...] = ()
    cities: tuple[str, ...] = ()
    experience: tuple[str, ...] = ()
    degree: tuple[str, ...] = ()
    salary: tuple[str, ...] = ()
    scale: tuple[str, ...] = ()
    stage: tuple[str, ...] = ()
    industry: tuple[str, ...] = ()
    job_type: str = ""
    expected_salary: tuple[int, int] = (0, 0)  # monthly K, 0 = unset
    say_hi: str = ""
    enable_ai: bool = False
    send_img_resume: bool = False
    filter_dead_hr: bool = False
    debug: bool = False
    dead_status: tuple[str, ...] = ("年",)
    first_card_double_click: bool = True
    blacklist_match: str = "substring"
    greeting_rejection_sentinel: str = "false"
    resume_image_paths: tuple[str, ...] = ()
    ai_introduction: str = ""

    @property
    def has_salary_range(self) -> bool:
        low, high = self.expected_salary
        return low > 0 or high > 0


@dataclass
class CandidateRecord:
    """One job listing extracted from the detail API.

    Only ``delivery_status`` changes after creation, and only through
    :meth:`advance`.
    """

    encrypt_job_id: str
    encrypt_recruiter_id: str
    title: str = ""
    company: str = ""
    salary_text: str = ""
    location: str = ""
    experience: str = ""
    degree: str = ""
    recruiter_name: str = ""
    recruiter_title: str = ""
    recruiter_activity: str = ""
    description: str = ""
    job_url: str = ""
    industry: str = ""
    scale: str = ""
    stage: str = ""
    delivery_status: DeliveryStatus = DeliveryStatus.NOT_DELIVERED

    @property
    def identity(self) -> tuple[str, str]:
        return (self.encrypt_job_id, self.encrypt_recruiter_id)

    def advance(self, status: DeliveryStatus) -> None:
        """Move the record to *status*; terminal states are final."""
        if status == self.delivery_status:
            return
        if self.delivery_status.is_terminal or not status.is_terminal:
            raise InvalidStatusTransition(
                f"{self.encrypt_job_id}: {self.delivery_status.value} -> {status.value}"
            )
        self.delivery_status = status

    def label(self) -> str:
        return f"{self.company or '(unknown)'} | {self.title or '(untitled)'}"


@dataclass(frozen=True)
class Blacklist:
    """Substring blacklists for companies, recruiter titles and job titles."""

    companies: frozenset[str] = frozenset()
    recruiters: frozenset[str] = frozenset()
    jobs: frozenset[str] = frozenset()

    @classmethod
    def of(
        cls,
        companies: list[str] | tuple[str, ...] = (),
        recruiters: list[str] | tuple[str, ...] = (),
        jobs: list[str] | tuple[str, ...] = (),
    ) -> "Blacklist":
        def _clean(values) -> frozenset[str]:
            return frozenset(v.strip() for v in values if v and v.strip())

        return cls(_clean(companies), _clean(recruiters), _clean(jobs))

    def merged(self, other: "Blacklist") -> "Blacklist":
        return Blacklist(
            self.companies | other.companies,
            self.recruiters | other.recruiters,
            self.jobs | other.jobs,
        )


@dataclass(frozen=True)
class LoginState:
    is_logged_in: bool = False
    last_changed: int = 0


@dataclass(frozen=True)
class LoginStatusChange:
    platform: str
    is_logged_in: bool
    timestamp: int


@dataclass(frozen=True)
class SalaryRange:
    """A parsed salary in monthly thousands (K)."""

    min_k: float
    max_k: float
    months: int = 12
    daily: bool = False

    @property
    def median_k(self) -> float:
        return (self.min_k + self.max_k) / 2.0

    @property
    def annual_total(self) -> int:
        return int(self.median_k * 1000 * self.months)


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one delivery attempt (or filter decision) for a candidate."""

    identity: tuple[str, str]
    status: DeliveryStatus
    message: str = ""
    attachment_sent: bool = False
    reason: str = ""
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class ProgressMessage:
    platform: str
    severity: Severity
    message: str
    current: int | None = None
    total: int | None = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "platform": self.platform,
            "type": self.severity.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.current is not None:
            data["current"] = self.current
        if self.total is not None:
            data["total"] = self.total
        return data


@dataclass
class RunSummary:
    """Aggregated counters for one delivery run."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    ended_at: str = ""
    total_inspected: int = 0
    total_delivered: int = 0
    total_filtered: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    aborted: str = ""

    def finalize(self) -> None:
        self.ended_at = datetime.now(timezone.utc).isoformat()

    def describe(self) -> str:
        return (
            f"delivered {self.total_delivered}, filtered {self.total_filtered}, "
            f"failed {self.total_failed}, skipped {self.total_skipped} "
            f"of {self.total_inspected} inspected"
        )
