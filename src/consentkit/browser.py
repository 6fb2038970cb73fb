"""
Wiring of the consent engine to a live Playwright page.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .config import ConsentConfig
from .engine import ConsentEngine
from .form import PlaywrightFormBinding
from .presentation import PlaywrightPresenter
from .store import PlaywrightCookieStore

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


async def attach_to_page(
    page: Page,
    config: ConsentConfig | None = None,
    url: str | None = None,
) -> ConsentEngine:
    """
    Build and initialize an engine backed by a Playwright page.

    Args:
        page: Page showing the banner and notice
        config: Engine configuration (defaults when None)
        url: Cookie URL scope; defaults to the page's current URL

    Returns:
        The initialized engine, READY or DEGRADED
    """
    config = config or ConsentConfig()
    engine = ConsentEngine(
        config,
        form=PlaywrightFormBinding(page, config.banner),
        presenter=PlaywrightPresenter(page, config.banner, config.notice),
        kv=PlaywrightCookieStore(page.context, url=url or page.url),
    )
    state = await engine.initialize()
    logger.debug("Consent engine attached to %s: %s", page.url, state.value)
    return engine
