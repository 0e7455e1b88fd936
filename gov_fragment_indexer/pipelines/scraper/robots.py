"""robots.txt policy and sitemap discovery."""

import logging
from typing import Dict, List, Optional
from urllib.robotparser import RobotFileParser

import aiohttp
from bs4 import BeautifulSoup

from gov_fragment_indexer.core.errors import PageFetchError
from gov_fragment_indexer.pipelines.scraper.urls import normalize_url, origin_of, same_origin

logger = logging.getLogger(__name__)


class RobotsPolicy:
    """Per-run robots.txt cache keyed by origin.

    A robots.txt that cannot be fetched (network error, 5xx) yields a
    permissive policy and a recorded warning. A 404 is permissive as well,
    which is what the robots convention prescribes.
    """

    def __init__(self, user_agent: str, timeout: float = 10.0):
        self.user_agent = user_agent
        self.timeout = timeout
        self._parsers: Dict[str, Optional[RobotFileParser]] = {}
        self.warnings: List[str] = []

    async def load(self, session: aiohttp.ClientSession, url: str) -> None:
        """Fetch and cache robots.txt for the origin of ``url`` (once per run)."""
        origin = origin_of(url)
        if origin in self._parsers:
            return
        robots_url = f"{origin}/robots.txt"

        try:
            async with session.get(
                robots_url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status == 200:
                    content = await response.text(errors="ignore")
                    parser = RobotFileParser(robots_url)
                    parser.parse(content.splitlines())
                    self._parsers[origin] = parser
                    logger.info(f"Loaded robots.txt for {origin}")
                    return
                if response.status >= 500:
                    raise PageFetchError(robots_url, f"HTTP {response.status}")
                logger.debug(f"No robots.txt at {robots_url} ({response.status})")
        except Exception as e:
            warning = f"robots.txt unavailable for {origin} ({e}); crawling permissively"
            logger.warning(warning)
            self.warnings.append(warning)
        self._parsers[origin] = None

    def allowed(self, url: str) -> bool:
        parser = self._parsers.get(origin_of(url))
        if parser is None:
            return True
        return parser.can_fetch(self.user_agent, url)

    def sitemaps(self, url: str) -> List[str]:
        parser = self._parsers.get(origin_of(url))
        if parser is None:
            return []
        return list(parser.site_maps() or [])


async def _fetch_text(session: aiohttp.ClientSession, url: str, timeout: float) -> Optional[str]:
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status != 200:
                logger.debug(f"Sitemap {url} returned {response.status}")
                return None
            return await response.text(errors="ignore")
    except Exception as e:
        logger.warning(f"Failed to fetch sitemap {url}: {e}")
        return None


def parse_sitemap(xml: str) -> List[str]:
    """All ``<loc>`` values, for both url sets and sitemap indexes."""
    soup = BeautifulSoup(xml, "html.parser")
    return [loc.get_text(strip=True) for loc in soup.find_all("loc") if loc.get_text(strip=True)]


async def discover_sitemap_urls(
    session: aiohttp.ClientSession,
    seed: str,
    declared: Optional[List[str]] = None,
    limit: int = 500,
    timeout: float = 10.0,
) -> List[str]:
    """Same-origin page URLs from the seed's sitemaps.

    Looks at the sitemaps declared in robots.txt, falling back to
    ``/sitemap.xml``. Sitemap indexes are followed one level deep.
    """
    sitemap_urls = declared or [f"{origin_of(seed)}/sitemap.xml"]
    pages: List[str] = []
    seen = set()

    for sitemap_url in sitemap_urls:
        xml = await _fetch_text(session, sitemap_url, timeout)
        if not xml:
            continue
        entries = parse_sitemap(xml)
        if "<sitemapindex" in xml:
            nested: List[str] = []
            for child in entries:
                child_xml = await _fetch_text(session, child, timeout)
                if child_xml:
                    nested.extend(parse_sitemap(child_xml))
            entries = nested

        for entry in entries:
            if not same_origin(entry, seed):
                continue
            normalized = normalize_url(entry)
            if normalized not in seen:
                seen.add(normalized)
                pages.append(normalized)
            if len(pages) >= limit:
                return pages

    logger.info(f"Discovered {len(pages)} sitemap URLs for {origin_of(seed)}")
    return pages
