"""Pipeline coordinator: Search → Discover → Extract → Filter → Deliver → Record."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from bosspilot.auth.session_monitor import SessionMonitor
from bosspilot.browser.base import BrowserSurface
from bosspilot.control import ProgressBus, ProgressCallback, RunState
from bosspilot.discovery.candidate_discovery import CandidateDiscovery
from bosspilot.discovery.detail_extractor import DetailExtractor
from bosspilot.discovery.query_builder import build_search_urls
from bosspilot.evaluation.filter_chain import CandidateFilter, build_filter_chain
from bosspilot.exceptions import (
    ConfigurationError,
    PersistenceError,
    SessionExpiredError,
)
from bosspilot.models import (
    Blacklist,
    CandidateRecord,
    DeliveryOutcome,
    DeliveryStatus,
    RunSummary,
    SearchConfig,
    Severity,
)
from bosspilot.selectors import JOB_LIST
from bosspilot.settings import AppSettings
from bosspilot.storage.store import CandidateStore
from bosspilot.submission.delivery import DeliveryEngine
from bosspilot.submission.greeting import Greeter, GreetingGenerator

logger = logging.getLogger(__name__)

JOB_LIST_TIMEOUT_MS = 60_000
NUDGE_AFTER_INDEX = 5
NUDGE_PX = 140
NUDGE_PAUSE_S = 1.0


def check_configuration(settings: AppSettings, need_ai_credentials: bool = True) -> None:
    """Raise :class:`ConfigurationError` if a run could not work with *settings*."""
    if not settings.keywords:
        raise ConfigurationError("At least one keyword is required.")
    if not settings.cities:
        raise ConfigurationError("At least one city code is required.")
    if need_ai_credentials and settings.enable_ai and not (
        settings.ai_base_url and settings.ai_api_key and settings.ai_model
    ):
        raise ConfigurationError(
            "enable_ai needs ai_base_url, ai_api_key and ai_model (BOSSPILOT_AI_API_KEY)."
        )


class DeliveryPipeline:
    """Drives one delivery run at a time over the shared browser surface.

    ``start`` is rejected while a run is in progress. ``stop`` is honoured
    before each city, keyword and candidate, and before delivery begins.
    """

    def __init__(
        self,
        settings: AppSettings,
        surface: BrowserSurface,
        store: CandidateStore,
        monitor: SessionMonitor,
        greeter: Greeter | None = None,
        run_state: RunState | None = None,
    ) -> None:
        self._settings = settings
        self._surface = surface
        self._store = store
        self._monitor = monitor
        self._greeter = greeter
        self._state = run_state or RunState()
        self._platform = settings.platform

    # ---- control surface ----

    def stop(self) -> None:
        if self._state.running:
            logger.info("Stop requested.")
        self._state.cancel_token.cancel()

    def status(self) -> dict[str, Any]:
        return {
            "platform": self._platform,
            "isRunning": self._state.running,
            "isLoggedIn": self._monitor.is_logged_in(self._platform),
        }

    async def start(self, progress_callback: ProgressCallback | None = None) -> RunSummary | None:
        """Run every city × keyword search once.

        Returns the run summary, or ``None`` if another run is active.
        Raises :class:`ConfigurationError` before touching the browser
        when the configuration cannot work.
        """
        if not self._state.try_begin():
            logger.warning("A delivery run is already in progress; ignoring start().")
            return None

        bus = ProgressBus(self._platform)
        pump = (
            asyncio.get_running_loop().create_task(bus.pump(progress_callback))
            if progress_callback is not None
            else None
        )
        try:
            config = self._settings.to_search_config()
            greeter = self._prepare(config)
            return await self._run(config, greeter, bus)
        except ConfigurationError as exc:
            bus.publish(Severity.ERROR, f"Configuration error: {exc}")
            raise
        finally:
            self._state.finish()
            bus.close()
            if pump is not None:
                await pump

    # ---- run ----

    def _prepare(self, config: SearchConfig) -> Greeter | None:
        check_configuration(self._settings, need_ai_credentials=self._greeter is None)
        if config.enable_ai and self._greeter is None:
            return GreetingGenerator(
                self._settings.ai_base_url, self._settings.ai_api_key, self._settings.ai_model
            )
        return self._greeter

    async def _run(self, config: SearchConfig, greeter: Greeter | None, bus: ProgressBus) -> RunSummary:
        summary = RunSummary()
        token = self._state.cancel_token

        if not await self._ensure_logged_in(bus):
            summary.aborted = "not logged in"
            summary.finalize()
            bus.publish(Severity.ERROR, "Login was not completed; delivery not started.")
            return summary

        self._persist(
            self._store.start_run,
            summary.run_id, list(config.keywords), list(config.cities), config.debug,
        )
        blacklist = self._load_blacklist()
        chain = build_filter_chain(config, blacklist)
        delivery = self._make_delivery_engine(config, greeter)

        bus.publish(Severity.INFO, f"Delivery started for {len(config.keywords)} keyword(s).")
        self._monitor.pause()
        try:
            async with self._state.surface_lock:
                for city, keyword, url in build_search_urls(config):
                    if token.cancelled:
                        break
                    await self._process_keyword(
                        city, keyword, url, config, chain, delivery, summary, bus
                    )
        except SessionExpiredError as exc:
            summary.aborted = "session expired"
            logger.error("Run aborted: %s", exc)
            bus.publish(Severity.ERROR, f"Session expired, run aborted: {exc}")
        finally:
            self._monitor.resume()

        if token.cancelled and not summary.aborted:
            summary.aborted = "stopped"
        summary.finalize()
        self._persist(self._store.end_run, summary)

        if summary.aborted:
            severity = Severity.WARNING if summary.aborted == "stopped" else Severity.ERROR
            bus.publish(severity, f"Run ended early ({summary.aborted}): {summary.describe()}")
        else:
            bus.publish(Severity.SUCCESS, f"Run finished: {summary.describe()}")
        logger.info("Run %s finished: %s", summary.run_id, summary.describe())
        return summary

    def _make_delivery_engine(self, config: SearchConfig, greeter: Greeter | None) -> DeliveryEngine:
        return DeliveryEngine(self._surface, config, greeter)

    async def _ensure_logged_in(self, bus: ProgressBus) -> bool:
        platform = self._platform
        if self._monitor.is_logged_in(platform):
            return True
        if await self._monitor.check_login_state(platform):
            return True
        bus.publish(Severity.WARNING, "Not logged in; scan the QR code in the browser window.")
        await self._monitor.guide_to_login(platform)
        return await self._monitor.wait_for_login(
            platform, self._settings.login_timeout_s, self._state.cancel_token
        )

    def _load_blacklist(self) -> Blacklist:
        configured = Blacklist.of(
            self._settings.blocked_companies,
            self._settings.blocked_recruiters,
            self._settings.blocked_jobs,
        )
        try:
            return self._store.load_blacklist().merged(configured)
        except PersistenceError as exc:
            logger.warning("Loading the stored blacklist failed, using settings only: %s", exc)
            return configured

    # ---- per keyword ----

    async def _process_keyword(
        self,
        city: str,
        keyword: str,
        url: str,
        config: SearchConfig,
        chain: CandidateFilter,
        delivery: DeliveryEngine,
        summary: RunSummary,
        bus: ProgressBus,
    ) -> None:
        token = self._state.cancel_token
        logger.info("Searching '%s' in city %s: %s", keyword, city, url)
        try:
            await self._surface.navigate(url)
        except Exception as exc:
            logger.warning("Opening the search page failed: %s", exc)
            bus.publish(Severity.WARNING, f"Search for '{keyword}' could not be opened.")
            return
        if not await self._surface.wait_for_selector(JOB_LIST, timeout=JOB_LIST_TIMEOUT_MS):
            bus.publish(Severity.WARNING, f"No job list appeared for '{keyword}'.")
            return
        await self._require_session(keyword)

        total = await CandidateDiscovery(self._surface, token).load_all()
        logger.info("All jobs for '%s' loaded: %d.", keyword, total)
        bus.publish(Severity.PROGRESS, f"Jobs loaded: {keyword}", 0, total)

        extractor = DetailExtractor(
            self._surface, first_card_double_click=config.first_card_double_click
        )
        for index in range(total):
            if token.cancelled:
                return
            if index > 0:
                await self._require_session(keyword)
            await self._process_candidate(
                index, total, keyword, extractor, chain, delivery, summary, bus
            )
            if index >= NUDGE_AFTER_INDEX:
                try:
                    await self._surface.scroll_by(0, NUDGE_PX)
                except Exception as exc:
                    logger.debug("Nudging the job list failed: %s", exc)
                await asyncio.sleep(NUDGE_PAUSE_S)

    async def _require_session(self, keyword: str) -> None:
        if not await self._monitor.check_login_state(self._platform):
            raise SessionExpiredError(f"logged out while searching '{keyword}'")

    async def _process_candidate(
        self,
        index: int,
        total: int,
        keyword: str,
        extractor: DetailExtractor,
        chain: CandidateFilter,
        delivery: DeliveryEngine,
        summary: RunSummary,
        bus: ProgressBus,
    ) -> None:
        try:
            record = await extractor.extract(index)
        except Exception as exc:
            summary.total_skipped += 1
            logger.warning("Skipping card #%d: %s", index + 1, exc)
            bus.publish(Severity.WARNING, f"Skipped card #{index + 1}: {exc}", index + 1, total)
            return

        summary.total_inspected += 1
        self._persist(self._store.upsert_candidate, record)

        stored = self._persist(self._store.get_candidate, record.identity)
        if stored and stored["delivery_status"] != DeliveryStatus.NOT_DELIVERED.value:
            # statuses never move back, so a decided candidate is left as it is
            summary.total_skipped += 1
            bus.publish(
                Severity.INFO,
                f"Already {stored['delivery_status']}: {record.label()}",
                index + 1,
                total,
            )
            return

        decision = chain.evaluate(record)
        if not decision.accepted:
            reason = decision.reason.value if decision.reason else "filtered"
            summary.total_filtered += 1
            self._finish(
                record,
                DeliveryOutcome(record.identity, DeliveryStatus.FILTERED, reason=reason),
                summary,
            )
            bus.publish(Severity.INFO, f"Filtered ({reason}): {record.label()}", index + 1, total)
            return

        if self._state.cancel_token.cancelled:
            return

        bus.publish(Severity.PROGRESS, f"Delivering: {record.label()}", index + 1, total)
        outcome = await delivery.deliver(record, keyword)
        if outcome.status is DeliveryStatus.DELIVERED:
            summary.total_delivered += 1
            bus.publish(Severity.SUCCESS, f"Delivered: {record.label()}", index + 1, total)
        elif outcome.status is DeliveryStatus.FAILED:
            summary.total_failed += 1
            bus.publish(
                Severity.ERROR,
                f"Delivery failed: {record.label()} [{record.encrypt_job_id}]: {outcome.reason}",
                index + 1,
                total,
            )
        else:
            summary.total_skipped += 1
        self._finish(record, outcome, summary)

    def _finish(self, record: CandidateRecord, outcome: DeliveryOutcome, summary: RunSummary) -> None:
        if outcome.status.is_terminal:
            record.advance(outcome.status)
            self._persist(self._store.update_delivery_status, record.identity, outcome.status)
        self._persist(self._store.record_outcome, outcome, summary.run_id)

    def _persist(self, write: Callable[..., Any], *args: Any) -> Any:
        try:
            return write(*args)
        except PersistenceError as exc:
            logger.warning("Store call failed (%s), continuing: %s", write.__name__, exc)
            return None
