"""Background login-state tracking for the shared browser session.

The monitor reacts to main-frame navigations and to a fixed timer. Both
triggers are ignored while the monitor is paused (the pipeline pauses it for
the duration of a delivery run) or while another task holds the surface
lock. A state change seen while paused is recorded but its listeners and
side effects run only on resume. Detection never infers a state from the mere absence of elements: when
no signal is visible the previous state is kept.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import threading
from typing import Any, Callable

from bosspilot.browser.base import BrowserSurface
from bosspilot.control import CancellationToken
from bosspilot.models import LoginPhase, LoginState, LoginStatusChange, now_ms
from bosspilot.selectors import PLATFORMS, PlatformProfile
from bosspilot.storage.store import CandidateStore

logger = logging.getLogger(__name__)

LoginListener = Callable[[LoginStatusChange], Any]

_CHECK_TIMEOUT_S = 1.0
_LOGIN_POLL_S = 0.6


class SessionMonitor:
    """Tracks logged-in state per platform and guides the user to QR login."""

    def __init__(
        self,
        surface: BrowserSurface,
        store: CandidateStore | None = None,
        *,
        interval_s: float = 3.0,
        surface_lock: asyncio.Lock | None = None,
        platforms: dict[str, PlatformProfile] | None = None,
    ) -> None:
        self._surface = surface
        self._store = store
        self._interval = interval_s
        self._surface_lock = surface_lock or asyncio.Lock()
        self._platforms = platforms or PLATFORMS

        self._state_lock = threading.Lock()
        self._states: dict[str, LoginState] = {}
        self._phases: dict[str, LoginPhase] = {}
        self._listeners: tuple[LoginListener, ...] = ()
        self._paused = False
        self._deferred: dict[str, tuple[bool, LoginStatusChange]] = {}

        self._timer_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    # ---- state ----

    def is_logged_in(self, platform: str) -> bool:
        return self.state(platform).is_logged_in

    def state(self, platform: str) -> LoginState:
        with self._state_lock:
            return self._states.get(platform, LoginState())

    def phase(self, platform: str) -> LoginPhase:
        with self._state_lock:
            return self._phases.get(platform, LoginPhase.LOGGED_OUT)

    def set_login_state(self, platform: str, is_logged_in: bool) -> bool:
        """Record a new value; returns ``True`` only if it actually changed.

        Listeners and transition side effects fire on change only. While
        paused the new value is recorded at once, but notification waits
        for :meth:`resume`.
        """
        with self._state_lock:
            previous = self._states.get(platform, LoginState())
            if previous.is_logged_in == is_logged_in:
                return False
            timestamp = max(now_ms(), previous.last_changed + 1)
            self._states[platform] = LoginState(is_logged_in, timestamp)
            self._phases[platform] = (
                LoginPhase.LOGGED_IN if is_logged_in else LoginPhase.LOGGED_OUT
            )
            change = LoginStatusChange(platform, is_logged_in, timestamp)
            if self._paused:
                before = self._deferred.get(platform, (previous.is_logged_in, change))[0]
                self._deferred[platform] = (before, change)
                logger.info(
                    "Login state changed while paused: platform=%s logged_in=%s",
                    platform, is_logged_in,
                )
                return True

        logger.info("Login state changed: platform=%s logged_in=%s", platform, is_logged_in)
        self._notify(change)
        return True

    def _notify(self, change: LoginStatusChange) -> None:
        with self._state_lock:
            listeners = self._listeners
        for listener in listeners:
            self._spawn(self._invoke_listener(listener, change))
        if change.is_logged_in:
            self._spawn(self._persist_session(change.platform))
        else:
            self._spawn(self._guide_when_free(change.platform))

    # ---- listeners ----

    def add_listener(self, listener: LoginListener) -> None:
        with self._state_lock:
            self._listeners = self._listeners + (listener,)

    def remove_listener(self, listener: LoginListener) -> None:
        with self._state_lock:
            self._listeners = tuple(l for l in self._listeners if l != listener)

    async def _invoke_listener(self, listener: LoginListener, change: LoginStatusChange) -> None:
        try:
            result = listener(change)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Login listener %r failed.", listener)

    # ---- pause / resume ----

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        with self._state_lock:
            self._paused = True
        logger.info("Login monitoring paused.")

    def resume(self) -> None:
        """Unpause and deliver the net change recorded while paused, if any."""
        with self._state_lock:
            self._paused = False
            deferred, self._deferred = self._deferred, {}
        logger.info("Login monitoring resumed.")
        for before, change in deferred.values():
            # a state that flipped back while paused is no change
            if change.is_logged_in != before:
                self._notify(change)

    # ---- detection ----

    async def detect(self, platform: str) -> bool | None:
        """Evaluate the login heuristic; ``None`` means no signal either way."""
        profile = self._platforms[platform]
        if await self._visible(profile.user_label):
            return True
        if await self._visible(profile.avatar):
            return True
        if await self._visible(profile.login_entry):
            text = await asyncio.wait_for(
                self._surface.locate(profile.login_entry).first().text_content(),
                timeout=_CHECK_TIMEOUT_S,
            )
            if text and profile.login_text in text:
                return False
        return None

    async def check_login_state(self, platform: str) -> bool:
        """Run detection now and return the (possibly updated) state.

        Detection errors are logged and treated as "no change".
        """
        try:
            detected = await self.detect(platform)
        except Exception as exc:
            logger.warning("Login detection failed for %s: %s", platform, exc)
            detected = None
        if detected is not None:
            self.set_login_state(platform, detected)
        return self.is_logged_in(platform)

    async def _visible(self, selector: str) -> bool:
        handle = self._surface.locate(selector).first()
        return bool(await asyncio.wait_for(handle.is_visible(), timeout=_CHECK_TIMEOUT_S))

    # ---- side effects ----

    async def guide_to_login(self, platform: str) -> bool:
        """Open the login page and switch it to QR-scan mode.

        Returns ``True`` if a scan switch was clicked.
        """
        profile = self._platforms[platform]
        try:
            if not self._surface.url().startswith(profile.login_url.split("?")[0]):
                await self._surface.navigate(profile.login_url)
            for idx, selector in enumerate(profile.scan_switches, start=1):
                handle = self._surface.locate(selector).first()
                try:
                    if await handle.count() == 0 or not await handle.is_visible():
                        continue
                    await handle.click(timeout=2_000)
                except Exception as exc:
                    logger.debug("Scan switch %s failed: %s", selector, exc)
                    continue
                logger.info(
                    "Switched %s login to QR scan via fallback #%d (%s).",
                    platform, idx, selector,
                )
                with self._state_lock:
                    if not self._states.get(platform, LoginState()).is_logged_in:
                        self._phases[platform] = LoginPhase.AWAITING_SCAN
                return True
            logger.warning("No QR-scan switch found on the %s login page.", platform)
        except Exception as exc:
            logger.warning("Login guidance for %s failed: %s", platform, exc)
        return False

    async def _guide_when_free(self, platform: str) -> None:
        async with self._surface_lock:
            await self.guide_to_login(platform)

    async def _persist_session(self, platform: str) -> None:
        if self._store is None:
            return
        try:
            cookies = await self._surface.cookies()
            self._store.save_session_artifact(
                platform, json.dumps(cookies, ensure_ascii=False), "login success"
            )
            logger.info("Saved %s session cookies (%d).", platform, len(cookies))
        except Exception as exc:
            logger.warning("Saving %s session cookies failed: %s", platform, exc)

    async def restore_session(self, platform: str) -> int:
        """Load the stored cookie artifact into the browser context."""
        if self._store is None:
            return 0
        try:
            raw = self._store.load_session_artifact(platform)
            if not raw:
                logger.info("No stored %s cookies, skipping restore.", platform)
                return 0
            cookies = json.loads(raw)
            if not isinstance(cookies, list):
                logger.warning("Stored %s cookies are not a list, ignoring.", platform)
                return 0
            if cookies:
                await self._surface.add_cookies(cookies)
            logger.info("Restored %d %s cookie(s).", len(cookies), platform)
            return len(cookies)
        except Exception as exc:
            logger.warning("Restoring %s cookies failed: %s", platform, exc)
            return 0

    # ---- triggers ----

    async def bootstrap(self, platform: str) -> bool:
        """Restore cookies, open the home page, check once and start watching."""
        profile = self._platforms[platform]
        await self.restore_session(platform)
        try:
            await self._surface.navigate(profile.home_url)
        except Exception as exc:
            logger.warning("Opening %s failed: %s", profile.home_url, exc)
        logged_in = await self.check_login_state(platform)
        if not logged_in:
            await self.guide_to_login(platform)
        self._surface.on_navigation(lambda _url: self._on_navigation(platform))
        self.start(platform)
        return logged_in

    def start(self, platform: str) -> None:
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.get_running_loop().create_task(self._tick(platform))

    async def stop(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
        for task in list(self._tasks):
            task.cancel()

    async def _tick(self, platform: str) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self._background_check(platform)

    def _on_navigation(self, platform: str) -> None:
        if self._paused:
            return
        self._spawn(self._background_check(platform))

    async def _background_check(self, platform: str) -> None:
        if self._paused or self._surface_lock.locked():
            return
        async with self._surface_lock:
            if self._paused:
                return
            await self.check_login_state(platform)

    async def wait_for_login(
        self,
        platform: str,
        timeout_s: float,
        token: CancellationToken | None = None,
    ) -> bool:
        """Poll until logged in, the timeout passes or *token* is cancelled."""
        polls = max(1, int(timeout_s / _LOGIN_POLL_S))
        for _ in range(polls):
            if token is not None and token.cancelled:
                return False
            if self.is_logged_in(platform):
                return True
            await asyncio.sleep(_LOGIN_POLL_S)
        return self.is_logged_in(platform)

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running loop, skipped background task.")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
