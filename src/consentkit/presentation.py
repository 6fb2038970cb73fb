"""
Presentation collaborator: banner and notice visibility, control bindings.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

ActionHandler = Callable[[], Awaitable[None]]

VISIBLE_CLASS = "visible"


class Element(Enum):
    BANNER = "banner"
    NOTICE = "notice"


class Presenter(ABC):
    @abstractmethod
    async def missing_elements(self) -> list[str]:
        """Names of required containers or controls that cannot be found."""

    @abstractmethod
    async def bind(
        self,
        on_reject: ActionHandler,
        on_accept: ActionHandler,
        on_reopen: ActionHandler,
    ) -> None:
        """Route activation of the reject, accept and reopen controls."""

    @abstractmethod
    async def show(self, element: Element, duration: float) -> None: ...

    @abstractmethod
    async def hide(self, element: Element, duration: float) -> None: ...

    @abstractmethod
    async def reload(self) -> None: ...


class MemoryPresenter(Presenter):
    """In-process presenter recording visibility, for tests and headless use."""

    def __init__(self, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        self.visible: dict[Element, bool] = {Element.BANNER: False, Element.NOTICE: False}
        self.history: list[tuple[str, Element]] = []
        self.reloads = 0
        self._handlers: dict[str, ActionHandler] = {}

    async def missing_elements(self) -> list[str]:
        return list(self.missing)

    async def bind(
        self,
        on_reject: ActionHandler,
        on_accept: ActionHandler,
        on_reopen: ActionHandler,
    ) -> None:
        self._handlers = {"reject": on_reject, "accept": on_accept, "notice": on_reopen}

    async def show(self, element: Element, duration: float) -> None:
        self.visible[element] = True
        self.history.append(("show", element))

    async def hide(self, element: Element, duration: float) -> None:
        self.visible[element] = False
        self.history.append(("hide", element))

    async def reload(self) -> None:
        self.reloads += 1

    @property
    def bound(self) -> bool:
        return bool(self._handlers)

    async def click(self, control: str) -> None:
        """Simulate activation of "reject", "accept" or "notice"."""
        handler = self._handlers.get(control)
        if handler is None:
            raise KeyError(f"No handler bound for control {control!r}")
        await handler()


# Fade an element in or out, then toggle the visible class. Falls back to an
# immediate toggle without the Web Animations API or with reduced motion.
_TOGGLE_JS = """
([el, show, duration, cls]) => new Promise(resolve => {
    const reduce = window.matchMedia
        && window.matchMedia('(prefers-reduced-motion: reduce)').matches;
    const done = () => {
        el.classList.toggle(cls, show);
        resolve(true);
    };
    if (!('animate' in el) || reduce || duration <= 0) {
        done();
        return;
    }
    const frames = show ? [{opacity: 0}, {opacity: 1}] : [{opacity: 1}, {opacity: 0}];
    el.animate(frames, {duration: duration * 1000, iterations: 1})
        .addEventListener('finish', done);
})
"""

_BIND_JS = """
([banner, notice, names]) => {
    const root = document.querySelector(banner);
    root.querySelector('.reject').addEventListener('click', () => window[names.reject]());
    root.querySelector('.accept').addEventListener('click', () => window[names.accept]());
    document.querySelector(notice).addEventListener('click', () => window[names.reopen]());
}
"""


class PlaywrightPresenter(Presenter):
    """Banner and notice elements of a live page."""

    def __init__(self, page: Page, banner_selector: str, notice_selector: str) -> None:
        self._page = page
        self._banner = banner_selector
        self._notice = notice_selector
        self._binding_prefix = f"__consentkit_{uuid.uuid4().hex[:8]}"

    def _selector(self, element: Element) -> str:
        return self._banner if element is Element.BANNER else self._notice

    async def missing_elements(self) -> list[str]:
        required = {
            "banner": self._banner,
            "notice": self._notice,
            "reject button": f"{self._banner} .reject",
            "accept button": f"{self._banner} .accept",
        }
        missing = []
        for label, selector in required.items():
            if await self._page.locator(selector).count() == 0:
                missing.append(label)
        return missing

    async def bind(
        self,
        on_reject: ActionHandler,
        on_accept: ActionHandler,
        on_reopen: ActionHandler,
    ) -> None:
        names = {}
        for action, handler in (
            ("reject", on_reject),
            ("accept", on_accept),
            ("reopen", on_reopen),
        ):
            name = f"{self._binding_prefix}_{action}"
            await self._page.expose_function(name, _ignore_args(handler))
            names[action] = name

        await self._page.evaluate(_BIND_JS, [self._banner, self._notice, names])
        logger.debug("Bound consent controls: %s", names)

    async def _toggle(self, element: Element, show: bool, duration: float) -> None:
        locator = self._page.locator(self._selector(element)).first
        await locator.evaluate(
            "(el, args) => (" + _TOGGLE_JS + ")([el, ...args])",
            [show, duration, VISIBLE_CLASS],
        )

    async def show(self, element: Element, duration: float) -> None:
        await self._toggle(element, True, duration)

    async def hide(self, element: Element, duration: float) -> None:
        await self._toggle(element, False, duration)

    async def reload(self) -> None:
        await self._page.reload()


def _ignore_args(handler: ActionHandler) -> Callable[..., Awaitable[None]]:
    async def call(*args: Any) -> None:
        await handler()

    return call
