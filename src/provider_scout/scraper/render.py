"""Render a provider page into text, links and metadata using Playwright.

A single ``page.evaluate()`` call collects everything the extractors need:
meta and og: tags, JSON-LD blocks, absolute links with their text, and the
visible body text with scripts and styles removed.
"""

from __future__ import annotations

import asyncio

from playwright.async_api import Browser, Playwright

from provider_scout.config import settings
from provider_scout.models import PageLink, RenderedPage
from provider_scout.scraper.browser import connect_browser, create_context
from provider_scout.utils.logging import DIM, RESET, get_logger

log = get_logger()

_MAX_LINKS = 400

_EXTRACT_JS = """
() => {
    const metas = {};
    document.querySelectorAll('meta').forEach((m) => {
        const name = (m.getAttribute('property') || m.getAttribute('name') || '').toLowerCase();
        const content = m.getAttribute('content') || '';
        if (name && content && !(name in metas)) metas[name] = content;
    });

    const structuredData = [];
    document.querySelectorAll("script[type='application/ld+json']").forEach((s) => {
        try {
            const parsed = JSON.parse(s.textContent || '');
            if (parsed) structuredData.push(parsed);
        } catch (e) {
            // malformed block, skip
        }
    });

    const links = [];
    document.querySelectorAll('a[href]').forEach((a) => {
        links.push({ href: a.href || a.getAttribute('href') || '', text: (a.textContent || '').trim() });
    });

    const clone = document.body ? document.body.cloneNode(true) : null;
    let text = '';
    if (clone) {
        clone.querySelectorAll('script, style, noscript, iframe, svg, template').forEach((n) => n.remove());
        document.body.appendChild(clone);
        clone.style.display = 'block';
        text = clone.innerText || clone.textContent || '';
        clone.remove();
    }

    return {
        title: document.title || '',
        description: metas['description'] || '',
        keywords: metas['keywords'] || '',
        socialTitle: metas['og:title'] || '',
        socialDescription: metas['og:description'] || '',
        structuredData,
        links,
        text,
    };
}
"""


class RenderError(Exception):
    """The page could not be rendered (network error, timeout, non-success status)."""

    def __init__(self, url: str, reason: str, status: int | None = None):
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason
        self.status = status


class PageRenderer:
    """Owns one browser for the process and renders pages in fresh contexts."""

    def __init__(
        self,
        ws_url: str | None = None,
        text_limit: int | None = None,
        timeout_ms: int | None = None,
    ):
        self._ws_url = ws_url
        self._text_limit = text_limit or settings.render_text_limit
        self._timeout_ms = timeout_ms or settings.render_timeout_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _get_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                self._playwright, self._browser = await connect_browser(self._ws_url)
                log.info(f"  {DIM}Playwright browser ready{RESET}")
            return self._browser

    async def render(self, url: str, wait_for_selector: str | None = None) -> RenderedPage:
        browser = await self._get_browser()
        context = await create_context(browser)
        try:
            page = await context.new_page()
            try:
                response = await page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
            except Exception as e:
                raise RenderError(url, f"navigation failed: {e}") from e
            if response is None:
                raise RenderError(url, "no response")
            if response.status >= 400:
                raise RenderError(url, f"HTTP {response.status}", status=response.status)

            if wait_for_selector:
                try:
                    await page.wait_for_selector(wait_for_selector, timeout=self._timeout_ms)
                except Exception as e:
                    log.debug(f"  {DIM}selector {wait_for_selector!r} not found on {url}: {e}{RESET}")

            result = await page.evaluate(_EXTRACT_JS)
            text = result.get("text") or ""
            truncated = len(text) > self._text_limit
            if truncated:
                text = text[: self._text_limit]

            return RenderedPage(
                url=url,
                final_url=page.url or url,
                http_status=response.status,
                text=text,
                links=[
                    PageLink(href=link.get("href") or "", text=link.get("text") or "")
                    for link in (result.get("links") or [])[:_MAX_LINKS]
                ],
                title=result.get("title") or "",
                description=result.get("description") or "",
                keywords=result.get("keywords") or "",
                social_title=result.get("socialTitle") or "",
                social_description=result.get("socialDescription") or "",
                structured_data=result.get("structuredData") or [],
                truncated=truncated,
            )
        finally:
            await context.close()

    async def close(self) -> None:
        async with self._lock:
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
