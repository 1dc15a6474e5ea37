"""Playwright browser lifecycle.

Either connects to a Playwright server over WebSocket (``PLAYWRIGHT_WS_URL``,
e.g. ``npx playwright run-server --port 3000`` in Docker) or launches a local
headless Chromium when no server is configured.
"""

from __future__ import annotations

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from provider_scout.config import settings
from provider_scout.utils.logging import get_logger

log = get_logger()


async def connect_browser(ws_url: str | None = None) -> tuple[Playwright, Browser]:
    """Start Playwright and return it together with a connected browser.

    ``ws_url`` defaults to ``settings.playwright_ws_url``.

    The caller owns both and must close the browser and stop Playwright.
    """
    ws_url = settings.playwright_ws_url if ws_url is None else ws_url
    playwright = await async_playwright().start()
    try:
        if ws_url:
            browser = await playwright.chromium.connect(ws_url, timeout=15000)
        else:
            browser = await playwright.chromium.launch(headless=True)
    except Exception:
        await playwright.stop()
        raise
    return playwright, browser


async def create_context(browser: Browser) -> BrowserContext:
    """Create a browser context with a Chrome-like user agent.

    One context per render so cookies and storage never leak between
    providers. Heavy resources (images, fonts, media) are blocked.
    """
    context = await browser.new_context(
        user_agent=settings.user_agent,
        viewport={"width": 1366, "height": 900},
        locale="en-US",
    )
    await context.route("**/*", _block_heavy_resources)
    return context


async def _block_heavy_resources(route) -> None:
    if route.request.resource_type in ("image", "font", "media"):
        await route.abort()
    else:
        await route.continue_()
