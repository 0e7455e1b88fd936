"""Typed DOM queries.

Selector intent is expressed as small predicate objects over BeautifulSoup
tags instead of CSS strings, so every query used by the extractor is a
plain value that can be tested on its own.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

HEADING_TAGS = ("h1", "h2", "h3", "h4")


@dataclass(frozen=True)
class ElementQuery:
    """Match an element by tag name, class, and one attribute predicate."""

    tag: Optional[str] = None
    class_name: Optional[str] = None
    attr: Optional[str] = None
    attr_equals: Optional[str] = None
    attr_contains: Optional[str] = None

    def matches(self, el) -> bool:
        if not isinstance(el, Tag):
            return False
        if self.tag and el.name != self.tag:
            return False
        if self.class_name and self.class_name not in (el.get("class") or []):
            return False
        if self.attr:
            value = el.get(self.attr)
            if value is None:
                return False
            if isinstance(value, list):
                value = " ".join(value)
            if self.attr_equals is not None and value != self.attr_equals:
                return False
            if self.attr_contains is not None and self.attr_contains not in value:
                return False
        return True

    def first(self, root: Tag) -> Optional[Tag]:
        return root.find(self.matches)

    def all(self, root: Tag) -> List[Tag]:
        return root.find_all(self.matches)


def matches_any(el, queries: Iterable[ElementQuery]) -> bool:
    return any(q.matches(el) for q in queries)


def find_all_any(root: Tag, queries: Sequence[ElementQuery]) -> List[Tag]:
    """All descendants matching any query, in document order, each once."""
    return root.find_all(lambda el: matches_any(el, queries))


def contains_any(root: Tag, queries: Sequence[ElementQuery]) -> bool:
    """True when ``root`` itself or a descendant matches any query."""
    if matches_any(root, queries):
        return True
    return root.find(lambda el: matches_any(el, queries)) is not None


def within_any(el: Tag, queries: Sequence[ElementQuery], stop: Optional[Tag] = None) -> bool:
    """True when an ancestor of ``el`` below ``stop`` matches any query."""
    for parent in el.parents:
        if parent is stop:
            return False
        if matches_any(parent, queries):
            return True
    return False


def first_by_priority(root: Tag, queries: Sequence[ElementQuery]) -> Optional[Tag]:
    """First element matching the highest-priority query that matches at all."""
    for query in queries:
        found = query.first(root)
        if found is not None:
            return found
    return None


def is_heading(el) -> bool:
    return isinstance(el, Tag) and el.name in HEADING_TAGS


def heading_level(el: Tag) -> int:
    return int(el.name[1])


def text_of(el: Tag) -> str:
    return " ".join(el.get_text(" ", strip=True).split())


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# Main content root, highest priority first
MAIN_CONTENT = (
    ElementQuery(tag="main"),
    ElementQuery(attr="id", attr_equals="main-content"),
    ElementQuery(class_name="main-content"),
    ElementQuery(tag="article"),
)

# Elements that carry the body of a heading section
SECTION_CONTENT = (
    ElementQuery(tag="p"),
    ElementQuery(tag="ul"),
    ElementQuery(tag="ol"),
    ElementQuery(tag="div", class_name="content"),
    ElementQuery(class_name="info-box"),
    ElementQuery(class_name="info-panel"),
    ElementQuery(tag="table"),
    ElementQuery(tag="form"),
)

# Containers whose non-heading children stand in for missing sibling content
SECTION_CONTAINERS = ("div", "section", "article")

# Self-contained components emitted as their own fragments
STANDALONE = (
    ElementQuery(class_name="alert"),
    ElementQuery(class_name="warning-box"),
    ElementQuery(class_name="info-panel"),
    ElementQuery(attr="role", attr_equals="alert"),
    ElementQuery(class_name="checklist"),
    ElementQuery(class_name="step-list"),
)

BREADCRUMB_CONTAINERS = (
    ElementQuery(class_name="breadcrumb"),
    ElementQuery(tag="nav", attr="aria-label", attr_equals="breadcrumb"),
    ElementQuery(class_name="breadcrumbs"),
    ElementQuery(attr="class", attr_contains="breadcrumb"),
)

BREADCRUMB_SEPARATORS = (">", "/", "›", "»")

# Component detection, in precedence order
FORM = (ElementQuery(tag="form"),)
TABLE = (ElementQuery(tag="table"),)
CHECKLIST = (ElementQuery(class_name="checklist"), ElementQuery(tag="ol", class_name="steps"))
ALERT = (ElementQuery(class_name="alert"), ElementQuery(attr="role", attr_equals="alert"))
CARD = (ElementQuery(class_name="card"), ElementQuery(class_name="info-box"))
VIDEO = (ElementQuery(tag="video"), ElementQuery(tag="iframe", attr="src", attr_contains="youtube"))

WARNING = (ElementQuery(class_name="alert"), ElementQuery(class_name="warning"))
LISTS = (ElementQuery(tag="ul"), ElementQuery(tag="ol"))
CHECKLIST_FLAG = (ElementQuery(tag="ol"), ElementQuery(tag="ul", class_name="checklist"))

# Components whose computed styles are snapshotted by the renderer
STYLED_COMPONENTS = (
    ".medicare-card",
    ".info-box",
    ".step-list",
    ".alert",
    ".warning",
    ".checklist",
)
