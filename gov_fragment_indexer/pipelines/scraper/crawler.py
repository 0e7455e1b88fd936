"""Bounded concurrent crawl that turns pages into enriched fragments."""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import aiohttp
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from gov_fragment_indexer.core.errors import RendererLaunchError
from gov_fragment_indexer.models.documents import CrawlStatus, Fragment
from gov_fragment_indexer.pipelines.enrichment.taxonomy_enricher import TaxonomyEnricher
from gov_fragment_indexer.pipelines.monitor import CrawlMonitor
from gov_fragment_indexer.pipelines.scraper.extractor import FragmentExtractor
from gov_fragment_indexer.pipelines.scraper.renderer import RenderedPage
from gov_fragment_indexer.pipelines.scraper.robots import RobotsPolicy, discover_sitemap_urls
from gov_fragment_indexer.pipelines.scraper.selectors import parse_html, text_of
from gov_fragment_indexer.pipelines.scraper.throttle import RequestRateMonitor
from gov_fragment_indexer.pipelines.scraper.urls import (
    host_of,
    is_binary_document,
    normalize_url,
    resolve_link,
    same_origin,
)

logger = logging.getLogger(__name__)

LINK_KEYWORDS = ["service", "eligibility", "apply", "benefit", "support", "help", "information"]


class CrawlConfig(BaseModel):
    """Bounds and politeness settings for one crawl."""

    max_pages: int = 500
    max_depth: int = 3
    max_links_per_page: int = 20
    concurrency: int = 3
    crawl_delay: float = 1.0
    max_requests_per_second: float = 5.0
    exclude_patterns: List[str] = Field(default_factory=list)
    priority_patterns: List[str] = Field(default_factory=list)
    priority_keywords: List[str] = Field(default_factory=lambda: list(LINK_KEYWORDS))
    page_retries: int = 3
    retry_backoff: float = 1.0
    use_sitemap: bool = True
    respect_robots: bool = True
    user_agent: str = "Mozilla/5.0 (compatible; GovFragmentIndexer/1.0)"
    robots_timeout: float = 10.0

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "CrawlConfig":
        values = {
            "max_pages": settings.max_pages,
            "max_depth": settings.max_depth,
            "max_links_per_page": settings.max_links_per_page,
            "concurrency": settings.concurrency,
            "crawl_delay": settings.crawl_delay,
            "max_requests_per_second": settings.max_requests_per_second,
            "exclude_patterns": list(settings.exclude_patterns),
            "priority_patterns": list(settings.priority_patterns),
            "page_retries": settings.page_retries,
            "retry_backoff": settings.retry_backoff,
            "use_sitemap": settings.use_sitemap,
            "respect_robots": settings.respect_robots,
            "user_agent": settings.user_agent,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class PageRenderer(Protocol):
    async def render(self, url: str) -> RenderedPage: ...


@dataclass
class FrontierEntry:
    url: str
    depth: int
    status: CrawlStatus = CrawlStatus.PENDING
    attempts: int = 0
    error: Optional[str] = None
    fragment_count: int = 0


@dataclass
class CrawlResult:
    fragments: List[Fragment]
    frontier: Dict[str, FrontierEntry]
    target_hosts: List[str]
    report: Dict[str, Any] = field(default_factory=dict)

    def urls_with_status(self, status: CrawlStatus) -> List[str]:
        return sorted(url for url, entry in self.frontier.items() if entry.status == status)


class CrawlScheduler:
    """Crawl from seeds with a bounded worker pool.

    The frontier is a table keyed by normalized URL; a URL is never scheduled
    twice. Each scheduled URL becomes a task that waits on the pool semaphore,
    renders, extracts, enriches and then schedules its children as new tasks
    without awaiting them. ``crawl`` keeps gathering the pending task list
    until no new tasks appeared, so a child never waits on its parent's slot.

    All frontier and buffer mutation happens on the event loop thread between
    awaits.
    """

    def __init__(
        self,
        config: CrawlConfig,
        renderer: PageRenderer,
        enricher: TaxonomyEnricher,
        extractor: Optional[FragmentExtractor] = None,
        robots: Optional[RobotsPolicy] = None,
        rate_monitor: Optional[RequestRateMonitor] = None,
    ):
        self.config = config
        self.renderer = renderer
        self.enricher = enricher
        self.extractor = extractor or FragmentExtractor()
        self.robots = robots or RobotsPolicy(config.user_agent, timeout=config.robots_timeout)
        self.rate_monitor = rate_monitor or RequestRateMonitor(config.max_requests_per_second)
        self._exclude = [re.compile(p) for p in config.exclude_patterns]
        self._priority = [re.compile(p) for p in config.priority_patterns]
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._reset()

    def _reset(self) -> None:
        self._frontier: Dict[str, FrontierEntry] = {}
        self._pending: List[asyncio.Task] = []
        self._fragments: List[Fragment] = []
        self._scheduled = 0
        self._semaphore = asyncio.Semaphore(self.config.concurrency)
        self.monitor = CrawlMonitor()

    async def crawl(self, seeds: List[str]) -> CrawlResult:
        """Crawl from ``seeds`` until the frontier is exhausted or bounds are hit.

        Raises:
            RendererLaunchError: if the renderer becomes unusable.
        """
        self._reset()
        seeds = list(dict.fromkeys(normalize_url(s) for s in seeds))
        target_hosts = sorted({host_of(s) for s in seeds if host_of(s)})

        sitemap_urls = await self._prepare(seeds)
        for url in sitemap_urls:
            self._schedule(url, depth=0)
        for seed in seeds:
            self._schedule(seed, depth=0)

        self.logger.info(
            f"Crawling {len(seeds)} seeds ({len(sitemap_urls)} sitemap URLs) "
            f"with concurrency={self.config.concurrency}"
        )
        await self._drain()

        self.monitor.finish()
        report = self.monitor.get_report()
        report["throttled"] = self.rate_monitor.throttled
        self.logger.info(
            f"Crawl finished: {report['pages_succeeded']} pages, "
            f"{report['fragments_extracted']} fragments, {report['pages_failed']} failures"
        )
        return CrawlResult(
            fragments=list(self._fragments),
            frontier=dict(self._frontier),
            target_hosts=target_hosts,
            report=report,
        )

    async def _prepare(self, seeds: List[str]) -> List[str]:
        """Load robots policies and sitemap URLs for every seed origin."""
        if not (self.config.respect_robots or self.config.use_sitemap):
            return []

        sitemap_urls: List[str] = []
        # Leave room for the seeds themselves
        budget = max(self.config.max_pages - len(seeds), 0)
        async with aiohttp.ClientSession(headers={"User-Agent": self.config.user_agent}) as session:
            for seed in seeds:
                await self.robots.load(session, seed)
            for warning in self.robots.warnings:
                self.monitor.warn(warning)

            if self.config.use_sitemap and budget:
                for seed in seeds:
                    found = await discover_sitemap_urls(
                        session,
                        seed,
                        declared=self.robots.sitemaps(seed),
                        limit=budget - len(sitemap_urls),
                        timeout=self.config.robots_timeout,
                    )
                    sitemap_urls.extend(found)
                    if len(sitemap_urls) >= budget:
                        break
        return sitemap_urls

    def _excluded(self, url: str) -> bool:
        return any(p.search(url) for p in self._exclude)

    def _schedule(self, url: str, depth: int) -> bool:
        """Add ``url`` to the frontier and start its task; False when refused."""
        key = normalize_url(url)
        if key in self._frontier:
            return False
        if depth > self.config.max_depth or self._scheduled >= self.config.max_pages:
            return False
        if self._excluded(key):
            return False

        entry = FrontierEntry(url=key, depth=depth)
        self._frontier[key] = entry
        if self.config.respect_robots and not self.robots.allowed(key):
            entry.status = CrawlStatus.SKIPPED
            entry.error = "disallowed by robots.txt"
            self.monitor.record_skip(key, "robots")
            self.logger.debug(f"robots.txt disallows {key}")
            return False

        self._scheduled += 1
        self._pending.append(asyncio.create_task(self._process(entry)))
        return True

    async def _drain(self) -> None:
        """Wait for every task, including ones scheduled while waiting."""
        waited = 0
        while waited < len(self._pending):
            batch = self._pending[waited:]
            waited = len(self._pending)
            results = await asyncio.gather(*batch, return_exceptions=True)
            for result in results:
                if isinstance(result, RendererLaunchError):
                    for task in self._pending:
                        task.cancel()
                    raise result
                if isinstance(result, Exception):
                    self.logger.error(f"Unexpected crawl task error: {result}")

    async def _process(self, entry: FrontierEntry) -> None:
        async with self._semaphore:
            entry.status = CrawlStatus.RUNNING
            self.monitor.pages_attempted += 1
            started = time.monotonic()

            rendered = await self._fetch(entry)
            if rendered is None:
                return

            try:
                soup = parse_html(rendered.html)
                extraction = self.extractor.extract_from_soup(
                    soup, entry.url, rendered.computed_styles
                )
                fragments = self.enricher.enrich_all(extraction.fragments)
            except Exception as e:
                self.logger.error(f"Error extracting {entry.url}: {e}")
                entry.status = CrawlStatus.FAILED
                entry.error = str(e)
                self.monitor.record_failure(entry.url, e)
                return

            self._fragments.extend(fragments)
            entry.fragment_count = len(fragments)
            entry.status = CrawlStatus.DONE
            self.monitor.extraction_errors += len(extraction.errors)
            self.monitor.record_success(entry.url, len(fragments), time.monotonic() - started)
            self.logger.info(f"Crawled {entry.url} (depth {entry.depth}): {len(fragments)} fragments")

            if entry.depth < self.config.max_depth:
                base = rendered.final_url or entry.url
                for link in self.select_links(soup, base):
                    self._schedule(link, entry.depth + 1)

            if self.config.crawl_delay > 0:
                await asyncio.sleep(self.config.crawl_delay)

    async def _fetch(self, entry: FrontierEntry) -> Optional[RenderedPage]:
        """Render with fixed-delay retries; records the failure when exhausted."""
        last_error: Optional[Exception] = None
        for attempt in range(1, self.config.page_retries + 1):
            entry.attempts = attempt
            await self.rate_monitor.throttle()
            try:
                return await self.renderer.render(entry.url)
            except RendererLaunchError:
                raise
            except Exception as e:
                last_error = e
                self.logger.warning(
                    f"Attempt {attempt}/{self.config.page_retries} failed for {entry.url}: {e}"
                )
                if attempt < self.config.page_retries:
                    await asyncio.sleep(self.config.retry_backoff)

        entry.status = CrawlStatus.FAILED
        entry.error = str(last_error)
        self.monitor.record_failure(entry.url, last_error or Exception("no attempts"))
        self.logger.error(f"Giving up on {entry.url} after {entry.attempts} attempts")
        return None

    def score_link(self, url: str, anchor_text: str) -> int:
        haystack = f"{anchor_text} {url}".lower()
        score = sum(1 for kw in self.config.priority_keywords if kw in haystack)
        score += sum(1 for p in self._priority if p.search(url))
        return score

    def select_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Same-origin, non-binary, non-excluded links; top-N by score, stable."""
        page_key = normalize_url(base_url)
        seen = set()
        candidates = []
        for position, anchor in enumerate(soup.find_all("a", href=True)):
            absolute = resolve_link(base_url, anchor["href"])
            if absolute is None:
                continue
            if not same_origin(absolute, base_url) or is_binary_document(absolute):
                continue
            key = normalize_url(absolute)
            if key == page_key or key in seen or self._excluded(key):
                continue
            seen.add(key)
            candidates.append((self.score_link(key, text_of(anchor)), position, key))

        candidates.sort(key=lambda c: (-c[0], c[1]))
        return [key for _, _, key in candidates[: self.config.max_links_per_page]]
