"""Roll fragments up into one document per canonical page."""

import logging
import math
import re
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Set

from bs4 import BeautifulSoup

from gov_fragment_indexer.models.documents import Fragment, PageDocument
from gov_fragment_indexer.pipelines.enrichment.taxonomy_enricher import classify_life_event
from gov_fragment_indexer.pipelines.scraper.urls import canonical_url, resolve_link
from gov_fragment_indexer.taxonomy.models import TaxonomyReference

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 40_000
MAX_FRAGMENT_CHARS = 4_000
MAX_OUT_LINKS = 500
MAX_OUT_LINK_TOKENS = 1_000

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193

_TOKEN_CLEAN_RE = re.compile(r"[^a-z0-9\s]")


def fnv1a_32(token: str) -> int:
    """32-bit FNV-1a; stable across processes unlike ``hash()``."""
    h = FNV_OFFSET_BASIS
    for byte in token.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def hashed_embedding(text: str, dim: int = 256) -> List[float]:
    """Bag-of-words feature hashing into ``dim`` buckets, L2-normalised."""
    vector = [0.0] * dim
    for token in _TOKEN_CLEAN_RE.sub(" ", text.lower()).split():
        vector[fnv1a_32(token) % dim] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


def collect_out_links(page_url: str, html_fragments: Iterable[str]):
    """Absolute http(s) links and their host/first-path-segment tokens."""
    links: Set[str] = set()
    tokens: Set[str] = set()
    for html in html_fragments:
        if not html:
            continue
        soup = BeautifulSoup(html, "html.parser")
        for anchor in soup.find_all("a", href=True):
            absolute = resolve_link(page_url, anchor["href"])
            if absolute is None:
                continue
            link = canonical_url(absolute)
            links.add(link)
            host, _, path = link.split("://", 1)[1].partition("/")
            tokens.add(host.lower())
            first_segment = path.split("/", 1)[0]
            if first_segment:
                tokens.add(f"{host}/{first_segment}".lower())
    return sorted(links)[:MAX_OUT_LINKS], sorted(tokens)[:MAX_OUT_LINK_TOKENS]


def _ordered(fragments: Iterable[Fragment]) -> List[Fragment]:
    return sorted(fragments, key=lambda f: (f.position, f.id))


def _dedupe(fragments: Iterable[Fragment]) -> List[Fragment]:
    """One fragment per id; the copy that sorts first by position wins.

    Query-string variants of a page share a canonical URL and can yield the
    same fragment id at different positions.
    """
    chosen: Dict[str, Fragment] = {}
    for fragment in fragments:
        current = chosen.get(fragment.id)
        if current is None or _copy_key(fragment) < _copy_key(current):
            chosen[fragment.id] = fragment
    return list(chosen.values())


def _copy_key(fragment: Fragment):
    return (fragment.position, fragment.url, fragment.anchor, fragment.content_html)


def _union(fragments: List[Fragment], attr: str) -> List[str]:
    values: Set[str] = set()
    for fragment in fragments:
        value = getattr(fragment, attr)
        if isinstance(value, list):
            values.update(v for v in value if v)
        elif value:
            values.add(value)
    return sorted(values)


class PageAggregator:
    """Build page documents from the fragments of a crawl.

    Output depends only on the set of fragments, never on the order they
    arrive in: fragments are re-ordered by document position (then id) and
    every set-valued field is sorted.
    """

    def __init__(self, taxonomy: TaxonomyReference, embedding_dim: int = 256):
        self.taxonomy = taxonomy
        self.embedding_dim = embedding_dim
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def build_pages(self, fragments: Iterable[Fragment]) -> List[PageDocument]:
        groups: Dict[str, List[Fragment]] = defaultdict(list)
        for fragment in fragments:
            groups[fragment.page_url].append(fragment)

        pages = []
        for url in sorted(groups):
            page = self.build_page(url, _ordered(_dedupe(groups[url])))
            pages.append(page)

        self.logger.info(f"Aggregated {len(pages)} pages from {len(groups)} page groups")
        return pages

    def build_page(self, url: str, fragments: List[Fragment]) -> PageDocument:
        page = self._base_page(url, fragments)
        try:
            self._enrich(page)
        except Exception as e:
            self.logger.error(f"Error enriching page {url}: {e}")
            return self._base_page(url, fragments)
        return page

    def _base_page(self, url: str, fragments: List[Fragment]) -> PageDocument:
        title = self._title(fragments)
        content_text = self._content_text(fragments)
        keywords = _union(fragments, "search_keywords")
        out_links, out_link_tokens = collect_out_links(
            url, (f.content_html for f in fragments)
        )
        return PageDocument(
            id=PageDocument.make_id(url),
            url=url,
            host=fragments[0].host if fragments else "",
            title=title,
            fragment_ids=[f.id for f in fragments],
            fragment_count=len(fragments),
            content_text=content_text,
            keywords=keywords,
            life_events=_union(fragments, "life_events"),
            categories=_union(fragments, "categories"),
            states=_union(fragments, "states"),
            providers=_union(fragments, "provider"),
            governance=_union(fragments, "governance"),
            out_links=out_links,
            out_link_tokens=out_link_tokens,
            embedding=hashed_embedding(
                f"{title} {content_text}", self.embedding_dim
            ),
        )

    @staticmethod
    def _title(fragments: List[Fragment]) -> str:
        """Most frequent lvl0; ties go to the one seen first in document order."""
        counts = Counter(f.lvl0 for f in fragments if f.lvl0)
        if not counts:
            return ""
        best = max(counts.values())
        for fragment in fragments:
            if counts.get(fragment.lvl0) == best:
                return fragment.lvl0
        return ""

    @staticmethod
    def _content_text(fragments: List[Fragment]) -> str:
        parts: List[str] = []
        total = 0
        for fragment in fragments:
            if total >= MAX_CONTENT_CHARS:
                break
            piece = fragment.content_text[:MAX_FRAGMENT_CHARS]
            if not piece:
                continue
            parts.append(piece)
            total += len(piece) + 1
        return "\n".join(parts)

    def _enrich(self, page: PageDocument) -> None:
        text = " ".join([page.title, page.content_text, " ".join(page.keywords)])
        match = classify_life_event(self.taxonomy, text)
        if match.life_event is None:
            return

        page.primary_life_event = match.life_event
        page.stage = match.stage
        page.stage_variant = match.stage_variant
        page.srrs_score = match.srrs_score
        if match.life_event not in page.life_events:
            page.life_events = sorted([*page.life_events, match.life_event])

        node = self.taxonomy.graph_node(match.life_event)
        if node is None:
            return
        page.eligibility_statuses = sorted(node.eligibility_status)
        page.typical_age_range = node.typical_age_range
        page.typical_duration_days = node.typical_duration_days
