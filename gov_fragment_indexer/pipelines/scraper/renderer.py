"""Headless Chromium rendering via Playwright."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from gov_fragment_indexer.core.errors import PageFetchError, RendererLaunchError
from gov_fragment_indexer.pipelines.scraper.selectors import STYLED_COMPONENTS

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]
# Retried with these when the first launch fails (constrained containers)
CONSERVATIVE_LAUNCH_ARGS = LAUNCH_ARGS + ["--no-zygote", "--single-process"]

_BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})

CONTENT_WAIT_SELECTOR = "main, #main-content, .main-content, article"

_COMPUTED_STYLES_JS = """
(selectors) => {
    const props = ['display', 'color', 'background-color', 'border', 'padding',
                   'margin', 'font-size', 'font-weight'];
    const out = {};
    for (const selector of selectors) {
        const styles = [];
        document.querySelectorAll(selector).forEach((el) => {
            const computed = window.getComputedStyle(el);
            const entry = {};
            props.forEach((p) => { entry[p] = computed.getPropertyValue(p); });
            styles.push(entry);
        });
        if (styles.length) out[selector] = styles;
    }
    return out;
}
"""


@dataclass
class RenderedPage:
    """DOM snapshot of a page after client-side rendering."""

    url: str
    final_url: str
    html: str
    computed_styles: Dict[str, Any] = field(default_factory=dict)


class BrowserRenderer:
    """One shared browser; every render gets its own page, closed afterwards.

    Usage:
        async with BrowserRenderer(navigation_timeout=30) as renderer:
            page = await renderer.render(url)
    """

    def __init__(
        self,
        executable_path: Optional[str] = None,
        headless: bool = True,
        user_agent: Optional[str] = None,
        launch_timeout: float = 30.0,
        navigation_timeout: float = 30.0,
        content_wait_timeout: float = 5.0,
    ):
        self.executable_path = executable_path
        self.headless = headless
        self.user_agent = user_agent
        self.launch_timeout = launch_timeout
        self.navigation_timeout = navigation_timeout
        self.content_wait_timeout = content_wait_timeout

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _launch(self, args: List[str], timeout: float) -> Browser:
        kwargs: Dict[str, Any] = {
            "headless": self.headless,
            "args": args,
            "timeout": timeout * 1000,
        }
        if self.executable_path:
            kwargs["executable_path"] = self.executable_path
        return await self._playwright.chromium.launch(**kwargs)

    async def start(self) -> None:
        """Launch the browser, retrying once with conservative flags.

        Raises:
            RendererLaunchError: if both launch attempts fail.
        """
        if self._playwright is None:
            self._playwright = await async_playwright().start()

        try:
            self._browser = await self._launch(LAUNCH_ARGS, self.launch_timeout)
        except Exception as e:
            self.logger.warning(f"Browser launch failed ({e}); retrying with conservative flags")
            try:
                self._browser = await self._launch(
                    CONSERVATIVE_LAUNCH_ARGS, self.launch_timeout * 1.5
                )
            except Exception as retry_error:
                await self.close()
                raise RendererLaunchError(
                    f"Could not launch browser: {retry_error}"
                ) from retry_error

        context_kwargs: Dict[str, Any] = {}
        if self.user_agent:
            context_kwargs["user_agent"] = self.user_agent
        self._context = await self._browser.new_context(**context_kwargs)
        await self._context.route("**/*", self._route_handler)
        self.logger.info("Browser started")

    async def _route_handler(self, route) -> None:
        if route.request.resource_type in _BLOCKED_RESOURCE_TYPES:
            await route.abort()
            return
        await route.continue_()

    async def render(self, url: str) -> RenderedPage:
        """Navigate to ``url`` and return the rendered DOM.

        Raises:
            PageFetchError: on navigation errors or timeouts.
        """
        if self._context is None:
            raise RendererLaunchError("Renderer used before start()")

        page = await self._context.new_page()
        try:
            try:
                await page.goto(
                    url, wait_until="domcontentloaded", timeout=self.navigation_timeout * 1000
                )
            except PlaywrightTimeout as e:
                raise PageFetchError(url, f"navigation timeout: {e}") from e
            except PlaywrightError as e:
                raise PageFetchError(url, f"navigation failed: {e}") from e

            try:
                await page.wait_for_selector(
                    CONTENT_WAIT_SELECTOR, timeout=self.content_wait_timeout * 1000
                )
            except PlaywrightTimeout:
                # Pages without a main landmark still get extracted from <body>
                self.logger.debug(f"No main content selector on {url}")

            html = await page.content()
            try:
                computed = await page.evaluate(_COMPUTED_STYLES_JS, list(STYLED_COMPONENTS))
            except PlaywrightError as e:
                self.logger.debug(f"Computed style snapshot failed on {url}: {e}")
                computed = {}
            return RenderedPage(url=url, final_url=page.url, html=html, computed_styles=computed)
        finally:
            await page.close()

    async def close(self) -> None:
        for name in ("_context", "_browser"):
            resource = getattr(self, name)
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as e:
                self.logger.debug(f"Error closing {name.strip('_')}: {e}")
            setattr(self, name, None)
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


async def render_once(url: str, **kwargs) -> RenderedPage:
    """Render a single URL with a throwaway browser."""
    async with BrowserRenderer(**kwargs) as renderer:
        return await asyncio.wait_for(renderer.render(url), timeout=renderer.navigation_timeout * 2)
