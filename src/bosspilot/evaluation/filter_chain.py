"""Chain of Responsibility filtering for job candidates."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from bosspilot.evaluation.salary import parse_salary
from bosspilot.models import Blacklist, CandidateRecord, SearchConfig

logger = logging.getLogger(__name__)


class FilterReason(str, Enum):
    JOB_BLACKLIST = "job blacklist"
    COMPANY_BLACKLIST = "company blacklist"
    RECRUITER_BLACKLIST = "recruiter blacklist"
    INACTIVE_RECRUITER = "inactive recruiter"
    SALARY_UNPARSEABLE = "salary unparseable"
    SALARY_OUT_OF_RANGE = "salary out of range"


@dataclass(frozen=True)
class FilterDecision:
    accepted: bool
    reason: FilterReason | None = None
    detail: str = ""


ACCEPTED = FilterDecision(True)


class CandidateFilter(ABC):
    """Abstract base for a single filter in the chain."""

    def __init__(self) -> None:
        self._next: CandidateFilter | None = None

    def set_next(self, handler: CandidateFilter) -> CandidateFilter:
        self._next = handler
        return handler

    def evaluate(self, candidate: CandidateRecord) -> FilterDecision:
        """Return the first rejection in the chain, or :data:`ACCEPTED`."""
        decision = self._check(candidate)
        if decision is not None:
            return decision
        if self._next:
            return self._next.evaluate(candidate)
        return ACCEPTED

    @abstractmethod
    def _check(self, candidate: CandidateRecord) -> FilterDecision | None:
        ...


class _BlacklistFilter(CandidateFilter):
    """Reject when a candidate field matches any blacklist term."""

    reason: FilterReason
    field_name: str

    def __init__(self, terms: Iterable[str], exact: bool = False) -> None:
        super().__init__()
        self._terms = [t.strip().lower() for t in terms if t and t.strip()]
        self._exact = exact

    def _matches(self, value: str, term: str) -> bool:
        return value == term if self._exact else term in value

    def _check(self, candidate: CandidateRecord) -> FilterDecision | None:
        raw = getattr(candidate, self.field_name)
        value = raw.strip().lower()
        if not value:
            return None
        for term in self._terms:
            if self._matches(value, term):
                logger.info(
                    "Filtered (%s): %s matched '%s'.", self.reason.value, candidate.label(), term
                )
                return FilterDecision(False, self.reason, f"{raw} ~ {term}")
        return None


class JobTitleBlacklistFilter(_BlacklistFilter):
    reason = FilterReason.JOB_BLACKLIST
    field_name = "title"


class CompanyBlacklistFilter(_BlacklistFilter):
    reason = FilterReason.COMPANY_BLACKLIST
    field_name = "company"


class RecruiterTitleBlacklistFilter(_BlacklistFilter):
    reason = FilterReason.RECRUITER_BLACKLIST
    field_name = "recruiter_title"


class InactiveRecruiterFilter(CandidateFilter):
    """Reject recruiters whose activity text carries an inactivity marker (e.g. "年")."""

    def __init__(self, markers: Iterable[str]) -> None:
        super().__init__()
        self._markers = [m for m in markers if m]

    def _check(self, candidate: CandidateRecord) -> FilterDecision | None:
        activity = candidate.recruiter_activity
        for marker in self._markers:
            if marker in activity:
                logger.info(
                    "Filtered (inactive recruiter): %s, active %s.", candidate.label(), activity
                )
                return FilterDecision(False, FilterReason.INACTIVE_RECRUITER, activity)
        return None


class SalaryRangeFilter(CandidateFilter):
    """Compare the parsed salary against the expected monthly-K range.

    ``max_k`` of 0 means no upper bound. An unparseable salary is rejected.
    """

    def __init__(self, min_k: int, max_k: int) -> None:
        super().__init__()
        self._min = min_k
        self._max = max_k

    def _check(self, candidate: CandidateRecord) -> FilterDecision | None:
        parsed = parse_salary(candidate.salary_text)
        if parsed is None:
            logger.info(
                "Filtered (salary unparseable): %s, salary %r.",
                candidate.label(), candidate.salary_text,
            )
            return FilterDecision(False, FilterReason.SALARY_UNPARSEABLE, candidate.salary_text)
        too_low = self._min > 0 and parsed.max_k < self._min
        too_high = self._max > 0 and parsed.min_k > self._max
        if too_low or too_high:
            logger.info(
                "Filtered (salary out of range): %s, salary %s, expected %d-%dK.",
                candidate.label(), candidate.salary_text, self._min, self._max,
            )
            return FilterDecision(False, FilterReason.SALARY_OUT_OF_RANGE, candidate.salary_text)
        return None


def build_filter_chain(config: SearchConfig, blacklist: Blacklist) -> CandidateFilter:
    """Assemble the chain in its fixed order and return its head."""
    exact = config.blacklist_match == "exact"
    filters: list[CandidateFilter] = [
        JobTitleBlacklistFilter(blacklist.jobs, exact),
        CompanyBlacklistFilter(blacklist.companies, exact),
        RecruiterTitleBlacklistFilter(blacklist.recruiters, exact),
    ]
    if config.filter_dead_hr:
        filters.append(InactiveRecruiterFilter(config.dead_status))
    if config.has_salary_range:
        filters.append(SalaryRangeFilter(*config.expected_salary))

    for i in range(len(filters) - 1):
        filters[i].set_next(filters[i + 1])

    return filters[0]


def accept(candidate: CandidateRecord, config: SearchConfig, blacklist: Blacklist) -> FilterDecision:
    return build_filter_chain(config, blacklist).evaluate(candidate)
