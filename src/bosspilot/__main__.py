"""Entry point: ``python -m bosspilot``."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from bosspilot.auth.session_monitor import SessionMonitor
from bosspilot.browser.playwright_adapter import PlaywrightBrowser
from bosspilot.control import RunState
from bosspilot.exceptions import BossPilotError, ConfigurationError
from bosspilot.orchestrator import DeliveryPipeline, check_configuration
from bosspilot.reporting.console import print_banner, print_progress, print_run_report
from bosspilot.settings import AppSettings
from bosspilot.storage.store import CandidateStore


def _configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


async def _async_main(settings: AppSettings) -> int:
    print_banner()
    check_configuration(settings)
    store = CandidateStore(Path(settings.state_dir) / "bosspilot.db")
    browser = PlaywrightBrowser()
    run_state = RunState()
    try:
        surface = await browser.launch(headless=settings.headless, slow_mo=settings.slow_mo)
        monitor = SessionMonitor(
            surface,
            store,
            interval_s=settings.monitor_interval_s,
            surface_lock=run_state.surface_lock,
        )
        try:
            await monitor.bootstrap(settings.platform)
            pipeline = DeliveryPipeline(settings, surface, store, monitor, run_state=run_state)
            summary = await pipeline.start(print_progress)
        finally:
            await monitor.stop()
    finally:
        await browser.close()
        store.close()

    if summary is None:
        return 1
    print_run_report(summary)
    return 1 if summary.aborted and summary.aborted != "stopped" else 0


def main() -> None:
    try:
        settings = AppSettings.from_yaml()
    except ValidationError as exc:
        _configure_logging()
        logging.error("Invalid settings:\n%s", exc)
        sys.exit(2)
    _configure_logging(settings.debug)
    try:
        sys.exit(asyncio.run(_async_main(settings)))
    except ConfigurationError as exc:
        logging.error("Invalid configuration: %s", exc)
        sys.exit(2)
    except BossPilotError as exc:
        logging.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
