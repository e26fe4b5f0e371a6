"""Protocol definitions for the shared browser surface."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol, runtime_checkable

ResponsePredicate = Callable[[str, str], bool]  # (url, method) -> match


@runtime_checkable
class ResponseHandle(Protocol):
    """An intercepted network response."""

    @property
    def url(self) -> str: ...

    async def text(self) -> str: ...


@runtime_checkable
class FileChooserHandle(Protocol):
    """A native file-selection dialog intercepted by the browser."""

    async def set_files(self, files: str | list[str]) -> None: ...


@runtime_checkable
class ElementHandle(Protocol):
    """A lazy reference to zero or more elements matching a selector.

    Mirrors the subset of Playwright's ``Locator`` the pipeline relies on.
    """

    async def count(self) -> int:
        """Return how many elements currently match."""
        ...

    async def is_visible(self) -> bool:
        """Return ``True`` if the first match is rendered and visible."""
        ...

    async def click(self, *, timeout: float = 5_000) -> None:
        ...

    async def fill(self, value: str) -> None:
        ...

    async def text_content(self) -> str | None:
        ...

    async def get_attribute(self, name: str) -> str | None:
        ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run *expression* with the element as its first argument."""
        ...

    async def set_input_files(self, files: str | list[str]) -> None:
        ...

    def nth(self, index: int) -> "ElementHandle":
        ...

    def first(self) -> "ElementHandle":
        ...

    def locate(self, selector: str) -> "ElementHandle":
        """Return a handle for *selector* scoped to this element."""
        ...


@runtime_checkable
class BrowserSurface(Protocol):
    """One page of the single logical browser session.

    Every method is async so the pipeline can ``await`` each interaction.
    The surface is not safe for concurrent multi-step use; callers
    serialise mutating sequences.
    """

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        """Navigate to *url* and wait for the specified load event."""
        ...

    def url(self) -> str:
        """Return the current page URL."""
        ...

    def locate(self, selector: str) -> ElementHandle:
        """Return a lazy handle for *selector*."""
        ...

    async def wait_for_selector(self, selector: str, *, timeout: float = 10_000) -> bool:
        """Wait until *selector* is visible; ``False`` on timeout."""
        ...

    async def wait_for_url(self, fragment: str, *, timeout: float = 15_000) -> bool:
        """Wait until the page URL contains *fragment*; ``False`` on timeout."""
        ...

    def on_response(self, predicate: ResponsePredicate) -> asyncio.Future:
        """Return a future resolved by the first response matching *predicate*.

        Cancelling the future unregisters the listener.
        """
        ...

    def on_file_chooser(self) -> asyncio.Future:
        """Return a future resolved by the next file-chooser dialog."""
        ...

    def on_navigation(self, callback: Callable[[str], None]) -> None:
        """Invoke *callback(url)* after each main-frame navigation."""
        ...

    async def scroll_by(self, dx: int, dy: int) -> None:
        ...

    async def scroll_to_bottom(self) -> None:
        ...

    async def viewport_height(self) -> int:
        ...

    async def open_page(self, url: str) -> "BrowserSurface":
        """Open *url* in a new page of the same session."""
        ...

    async def close(self) -> None:
        """Close this page."""
        ...

    async def cookies(self) -> list[dict[str, Any]]:
        ...

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        ...
