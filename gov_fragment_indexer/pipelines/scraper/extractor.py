"""Heading-based fragment extraction from rendered pages."""

import hashlib
import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import textstat
from bs4 import BeautifulSoup, Tag

from gov_fragment_indexer.models.documents import ComponentType, Fragment
from gov_fragment_indexer.pipelines.scraper import selectors as q
from gov_fragment_indexer.pipelines.scraper.urls import canonical_url, host_of

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    """
    about above after again against also been before being below between both
    cannot could does doing down during each from further have having here hers
    herself himself into itself just more most myself once only other ours
    ourselves over same should some such than that their theirs them themselves
    then there these they this those through under until very were what when
    where which while whom with would your yours yourself yourselves will more
    must need like well back even many much information
    """.split()
)

HIERARCHY_FALLBACKS = ("Content", "Section", "Subsection", "Item")
STANDALONE_FALLBACK_TITLE = "Important Information"

_WORD_RE = re.compile(r"[a-z]+")
_SENTENCE_RE = re.compile(r"[.!?]+")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


@dataclass
class PageExtraction:
    """Fragments extracted from one page plus the per-element failures."""

    url: str
    fragments: List[Fragment] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class _PageContext:
    page_url: str
    host: str
    page_title: str
    breadcrumbs: List[str]
    site_hierarchy: List[str]
    styles: Dict[str, Any]


def count_syllables(word: str) -> int:
    # Punctuation-only tokens still count as one
    return max(1, textstat.syllable_count(word))


def reading_level(text: str) -> int:
    """Flesch-Kincaid grade level clamped to 1-12; 12 when text has no words."""
    words = text.split()
    sentences = [s for s in _SENTENCE_RE.split(text) if s.strip()]
    if not words or not sentences:
        return 12
    syllables = sum(count_syllables(w) for w in words)
    grade = 0.39 * (len(words) / len(sentences)) + 11.8 * (syllables / len(words)) - 15.59
    return max(1, min(12, math.floor(grade + 0.5)))


def content_hash(text: str) -> Optional[str]:
    """Hash of the normalised text, shared by near-identical fragments."""
    normalized = _SPACE_RE.sub(" ", _NON_WORD_RE.sub(" ", text.lower())).strip()
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def search_keywords(text: str, limit: int = 10) -> List[str]:
    words = [w for w in _WORD_RE.findall(text.lower()) if len(w) > 3 and w not in STOP_WORDS]
    return [word for word, _ in Counter(words).most_common(limit)]


def popularity_score(
    level: int, word_count: int, has_form: bool, has_warning: bool, has_list: bool, has_table: bool
) -> int:
    score = 100 - max(level - 1, 0) * 10
    if has_form:
        score += 20
    if has_warning:
        score += 15
    if has_list:
        score += 10
    if has_table:
        score += 10
    if 50 < word_count < 500:
        score += 10
    return max(0, min(100, score))


def _any(elements: Sequence[Tag], queries) -> bool:
    return any(q.contains_any(el, queries) for el in elements)


def component_type(elements: Sequence[Tag]) -> ComponentType:
    """Classify by the first matching component, in precedence order."""
    for queries, kind in (
        (q.FORM, ComponentType.FORM),
        (q.TABLE, ComponentType.TABLE),
        (q.CHECKLIST, ComponentType.CHECKLIST),
        (q.ALERT, ComponentType.ALERT),
        (q.CARD, ComponentType.CARD),
        (q.VIDEO, ComponentType.VIDEO),
    ):
        if _any(elements, queries):
            return kind
    return ComponentType.CONTENT


def _classes(elements: Sequence[Tag]) -> List[str]:
    found = set()
    for el in elements:
        for node in [el, *el.find_all(True)]:
            found.update(node.get("class") or [])
    return sorted(found)


class FragmentExtractor:
    """Slice a rendered page into heading-delimited and standalone fragments.

    Each h1-h4 under the main content root becomes one fragment holding the
    sibling content up to the next heading. Self-contained components such as
    alerts and checklists become fragments of their own. A failure on one
    heading or component is logged and skipped; the rest of the page is kept.
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def extract(
        self, html: str, page_url: str, computed_styles: Optional[Dict[str, Any]] = None
    ) -> PageExtraction:
        return self.extract_from_soup(q.parse_html(html), page_url, computed_styles)

    def extract_from_soup(
        self,
        soup: BeautifulSoup,
        page_url: str,
        computed_styles: Optional[Dict[str, Any]] = None,
    ) -> PageExtraction:
        canonical = canonical_url(page_url)
        ctx = self._page_context(soup, canonical, computed_styles)
        root = q.first_by_priority(soup, q.MAIN_CONTENT) or soup.body or soup
        result = PageExtraction(url=canonical)

        # Most recent heading text per level, in document order
        current: Dict[int, Optional[str]] = {1: None, 2: None, 3: None, 4: None}

        for heading in root.find_all(q.HEADING_TAGS):
            # Components such as alerts title themselves from their own heading
            if q.within_any(heading, q.STANDALONE, stop=root):
                continue
            text = q.text_of(heading)
            if not text:
                continue
            level = q.heading_level(heading)
            current[level] = text
            for deeper in range(level + 1, 5):
                current[deeper] = None

            try:
                fragment = self._heading_fragment(
                    heading, level, text, current, ctx, len(result.fragments)
                )
            except Exception as e:
                self.logger.error(f"Error extracting heading '{text}' on {canonical}: {e}")
                result.errors.append(f"heading '{text}': {e}")
                continue
            if fragment is not None:
                result.fragments.append(fragment)

        for element in q.find_all_any(root, q.STANDALONE):
            try:
                fragment = self._standalone_fragment(element, ctx, len(result.fragments))
            except Exception as e:
                self.logger.error(f"Error extracting component on {canonical}: {e}")
                result.errors.append(f"component: {e}")
                continue
            if fragment is not None:
                result.fragments.append(fragment)

        self.logger.debug(f"Extracted {len(result.fragments)} fragments from {canonical}")
        return result

    def _page_context(
        self, soup: BeautifulSoup, canonical: str, computed_styles: Optional[Dict[str, Any]]
    ) -> _PageContext:
        host = host_of(canonical)
        path_parts = [p for p in urlparse(canonical).path.split("/") if p]
        page_title = q.text_of(soup.title) if soup.title else ""
        return _PageContext(
            page_url=canonical,
            host=host,
            page_title=page_title,
            breadcrumbs=self._breadcrumbs(soup),
            site_hierarchy=[host, *path_parts],
            styles={
                "inline": [style.get_text() for style in soup.find_all("style")],
                "computed": computed_styles or {},
            },
        )

    def _breadcrumbs(self, soup: BeautifulSoup) -> List[str]:
        container = q.first_by_priority(soup, q.BREADCRUMB_CONTAINERS)
        if container is None:
            return []
        if container.name == "li" and container.parent is not None:
            container = container.parent
        crumbs = []
        for item in container.find_all("li"):
            text = q.text_of(item)
            if text and text not in q.BREADCRUMB_SEPARATORS:
                crumbs.append(text)
        return crumbs

    def _section_content(self, heading: Tag) -> List[Tag]:
        content: List[Tag] = []
        for sibling in heading.find_next_siblings():
            if q.is_heading(sibling) or sibling.find(q.HEADING_TAGS) is not None:
                break
            if q.matches_any(sibling, q.SECTION_CONTENT):
                content.append(sibling)

        parent = heading.parent
        if not content and parent is not None and parent.name in q.SECTION_CONTAINERS:
            content = [
                child
                for child in parent.find_all(recursive=False)
                if child is not heading
                and not q.is_heading(child)
                and child.find(q.HEADING_TAGS) is None
            ]
        return content

    def _lvl0(self, ctx: _PageContext, nearest_h1: Optional[str]) -> str:
        if nearest_h1:
            return nearest_h1
        if ctx.breadcrumbs:
            return ctx.breadcrumbs[-1]
        return ctx.page_title or HIERARCHY_FALLBACKS[0]

    def _hierarchy(
        self, level: int, text: str, current: Dict[int, Optional[str]], ctx: _PageContext
    ) -> List[Optional[str]]:
        if level == 1:
            lvl0 = text or ctx.page_title or HIERARCHY_FALLBACKS[0]
        else:
            lvl0 = self._lvl0(ctx, current[1])
        levels: List[Optional[str]] = [lvl0, None, None, None]
        for depth in range(2, level + 1):
            levels[depth - 1] = current[depth] or HIERARCHY_FALLBACKS[depth - 1]
        return levels

    def _heading_fragment(
        self,
        heading: Tag,
        level: int,
        text: str,
        current: Dict[int, Optional[str]],
        ctx: _PageContext,
        position: int,
    ) -> Optional[Fragment]:
        content = self._section_content(heading)
        if not content and level != 1:
            return None

        content_text = " ".join(t for t in (q.text_of(el) for el in content) if t)
        elements = [heading, *content]
        html = "".join(str(el) for el in elements)
        lvl0, lvl1, lvl2, lvl3 = self._hierarchy(level, text, current, ctx)

        return self._build(
            ctx=ctx,
            title=text,
            anchor=heading.get("id"),
            content_text=content_text,
            content_html=f'<div class="content-fragment">{html}</div>',
            elements=elements,
            level=level,
            position=position,
            hierarchy=(lvl0, lvl1, lvl2, lvl3),
        )

    def _standalone_fragment(
        self, element: Tag, ctx: _PageContext, position: int
    ) -> Optional[Fragment]:
        content_text = q.text_of(element)
        if not content_text:
            return None

        title = None
        embedded = element.find(q.HEADING_TAGS)
        if embedded is not None:
            title = q.text_of(embedded) or None
        title = title or element.get("aria-label") or STANDALONE_FALLBACK_TITLE

        nearest_h1 = element.find_previous("h1")
        lvl0 = self._lvl0(ctx, q.text_of(nearest_h1) if nearest_h1 is not None else None)

        return self._build(
            ctx=ctx,
            title=title,
            anchor=element.get("id"),
            content_text=content_text,
            content_html=str(element),
            elements=[element],
            level=0,
            position=position,
            hierarchy=(lvl0, title, None, None),
        )

    def _build(
        self,
        ctx: _PageContext,
        title: str,
        anchor: Optional[str],
        content_text: str,
        content_html: str,
        elements: List[Tag],
        level: int,
        position: int,
        hierarchy,
    ) -> Fragment:
        fragment_id = Fragment.make_id(ctx.page_url, title, content_text)
        anchor = anchor or f"fragment-{fragment_id[:12]}"
        has_form = _any(elements, q.FORM)
        word_count = len(content_text.split())
        lvl0, lvl1, lvl2, lvl3 = hierarchy

        return Fragment(
            id=fragment_id,
            url=f"{ctx.page_url}#{anchor}",
            page_url=ctx.page_url,
            host=ctx.host,
            anchor=anchor,
            title=title,
            content_text=content_text,
            content_html=content_html,
            position=position,
            heading_level=level,
            lvl0=lvl0,
            lvl1=lvl1,
            lvl2=lvl2,
            lvl3=lvl3,
            site_hierarchy=list(ctx.site_hierarchy),
            page_hierarchy=[*ctx.breadcrumbs, title],
            component_type=component_type(elements),
            has_form=has_form,
            has_checklist=_any(elements, q.CHECKLIST_FLAG),
            reading_level=reading_level(content_text),
            content_hash=content_hash(content_text),
            popularity_score=popularity_score(
                level,
                word_count,
                has_form=has_form,
                has_warning=_any(elements, q.WARNING),
                has_list=_any(elements, q.LISTS),
                has_table=_any(elements, q.TABLE),
            ),
            search_keywords=search_keywords(content_text),
            classes=_classes(elements),
            styles=ctx.styles,
        )
