"""Fragment and page document models.

Both models know how to flatten themselves into the hash layout used by the
RediSearch indices (see ``core/redis.py``): list fields are joined with
``|``, booleans become ``"true"``/``"false"`` tags and ``None`` values are
omitted.
"""

import hashlib
import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field

from gov_fragment_indexer.core.redis import LIST_SEPARATOR


class ComponentType(str, Enum):
    """Structural component a fragment represents, in detection precedence order."""

    FORM = "form"
    TABLE = "table"
    CHECKLIST = "checklist"
    ALERT = "alert"
    CARD = "card"
    VIDEO = "video"
    CONTENT = "content"


class CrawlStatus(str, Enum):
    """Lifecycle of a frontier entry."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


def stable_hash(*parts: str, length: int = 32) -> str:
    """Deterministic identity hash over the given parts."""
    content_str = "||".join(parts)
    return hashlib.sha256(content_str.encode("utf-8")).hexdigest()[:length]


def _join(values: List[str]) -> str:
    return LIST_SEPARATOR.join(v.replace(LIST_SEPARATOR, " ") for v in values if v)


def _bool_tag(value: bool) -> str:
    return "true" if value else "false"


class EligibilityHints(BaseModel):
    """Advisory eligibility hints. Every field is optional; unknown stays unset."""

    min_age: Optional[int] = None
    max_age: Optional[int] = None
    min_income: Optional[int] = None
    max_income: Optional[int] = None
    required_citizenship: List[str] = Field(default_factory=list)
    required_residency: List[str] = Field(default_factory=list)
    required_employment_status: List[str] = Field(default_factory=list)
    required_disabilities: List[str] = Field(default_factory=list)
    required_caring_status: Optional[bool] = None
    required_children: Optional[bool] = None

    def to_index_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for name in ("min_age", "max_age", "min_income", "max_income"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = value
        for name in (
            "required_citizenship",
            "required_residency",
            "required_employment_status",
            "required_disabilities",
        ):
            values = getattr(self, name)
            if values:
                fields[name] = _join(values)
        for name in ("required_caring_status", "required_children"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = _bool_tag(value)
        return fields


class Fragment(BaseModel):
    """A heading-delimited (or standalone) slice of a rendered page."""

    id: str
    url: str
    page_url: str
    host: str
    anchor: str
    title: str
    content_text: str = ""
    content_html: str = ""
    position: int = 0
    heading_level: int = 0

    # Hierarchy
    lvl0: str = "Content"
    lvl1: Optional[str] = None
    lvl2: Optional[str] = None
    lvl3: Optional[str] = None
    site_hierarchy: List[str] = Field(default_factory=list)
    page_hierarchy: List[str] = Field(default_factory=list)

    # Taxonomy
    life_events: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    states: List[str] = Field(default_factory=lambda: ["National"])
    provider: str = ""
    governance: str = ""
    stage: Optional[str] = None
    stage_variant: Optional[str] = None
    srrs_score: Optional[int] = None
    eligibility: EligibilityHints = Field(default_factory=EligibilityHints)

    # Structure and derived signals
    component_type: ComponentType = ComponentType.CONTENT
    has_form: bool = False
    has_checklist: bool = False
    reading_level: int = 12
    content_hash: Optional[str] = None
    popularity_score: int = 0
    search_keywords: List[str] = Field(default_factory=list)

    # Presentation
    classes: List[str] = Field(default_factory=list)
    styles: Dict[str, Any] = Field(default_factory=dict)

    # Versioning, stamped at sync time
    crawl_generation: Optional[int] = None
    last_seen_at: Optional[float] = None

    @staticmethod
    def make_id(page_url: str, heading: str, content_text: str) -> str:
        """Identity of a fragment: same page, heading and text give the same id."""
        return stable_hash(page_url, heading, content_text)

    @property
    def popularity_sort(self) -> int:
        """Ascending sort key for popularity (most popular first)."""
        return 100 - self.popularity_score

    def to_index_document(self) -> Dict[str, Any]:
        """Flatten into a RediSearch hash mapping."""
        doc: Dict[str, Any] = {
            "fragment_id": self.id,
            "url": self.url,
            "page_url": self.page_url,
            "host": self.host,
            "anchor": self.anchor,
            "title": self.title,
            "content_text": self.content_text,
            "content_html": self.content_html,
            "position": self.position,
            "heading_level": self.heading_level,
            "lvl0": self.lvl0,
            "site_hierarchy": _join(self.site_hierarchy),
            "page_hierarchy": _join(self.page_hierarchy),
            "life_events": _join(self.life_events),
            "categories": _join(self.categories),
            "states": _join(self.states),
            "provider": self.provider,
            "governance": self.governance,
            "component_type": self.component_type.value,
            "has_form": _bool_tag(self.has_form),
            "has_checklist": _bool_tag(self.has_checklist),
            "reading_level": self.reading_level,
            "popularity_score": self.popularity_score,
            "popularity_sort": self.popularity_sort,
            "search_keywords": _join(self.search_keywords),
            "classes": _join(self.classes),
            "styles": json.dumps(self.styles, sort_keys=True),
        }
        optional = {
            "lvl1": self.lvl1,
            "lvl2": self.lvl2,
            "lvl3": self.lvl3,
            "stage": self.stage,
            "stage_variant": self.stage_variant,
            "srrs_score": self.srrs_score,
            "content_hash": self.content_hash,
            "crawl_generation": self.crawl_generation,
            "last_seen_at": self.last_seen_at,
        }
        doc.update({k: v for k, v in optional.items() if v is not None})
        doc.update(self.eligibility.to_index_fields())
        return doc


class PageDocument(BaseModel):
    """Roll-up of every fragment sharing a canonical URL."""

    id: str
    url: str
    host: str
    title: str
    fragment_ids: List[str] = Field(default_factory=list)
    fragment_count: int = 0
    content_text: str = ""
    keywords: List[str] = Field(default_factory=list)

    life_events: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    states: List[str] = Field(default_factory=list)
    providers: List[str] = Field(default_factory=list)
    governance: List[str] = Field(default_factory=list)

    primary_life_event: Optional[str] = None
    stage: Optional[str] = None
    stage_variant: Optional[str] = None
    srrs_score: Optional[int] = None
    eligibility_statuses: List[str] = Field(default_factory=list)
    typical_age_range: Optional[Tuple[int, int]] = None
    typical_duration_days: Optional[int] = None

    out_links: List[str] = Field(default_factory=list)
    out_link_tokens: List[str] = Field(default_factory=list)
    embedding: List[float] = Field(default_factory=list)

    crawl_generation: Optional[int] = None
    last_seen_at: Optional[float] = None

    @staticmethod
    def make_id(url: str) -> str:
        return stable_hash(url)

    def to_index_document(self) -> Dict[str, Any]:
        """Flatten into a RediSearch hash mapping (embedding as float32 bytes)."""
        doc: Dict[str, Any] = {
            "page_id": self.id,
            "url": self.url,
            "host": self.host,
            "title": self.title,
            "fragment_ids": _join(self.fragment_ids),
            "fragment_count": self.fragment_count,
            "content_text": self.content_text,
            "keywords": _join(self.keywords),
            "life_events": _join(self.life_events),
            "categories": _join(self.categories),
            "states": _join(self.states),
            "providers": _join(self.providers),
            "governance": _join(self.governance),
            "eligibility_statuses": _join(self.eligibility_statuses),
            "out_links": _join(self.out_links),
            "out_link_tokens": _join(self.out_link_tokens),
        }
        if self.embedding:
            doc["embedding"] = np.asarray(self.embedding, dtype=np.float32).tobytes()
        if self.typical_age_range is not None:
            doc["typical_age_min"], doc["typical_age_max"] = self.typical_age_range
        optional = {
            "primary_life_event": self.primary_life_event,
            "stage": self.stage,
            "stage_variant": self.stage_variant,
            "srrs_score": self.srrs_score,
            "typical_duration_days": self.typical_duration_days,
            "crawl_generation": self.crawl_generation,
            "last_seen_at": self.last_seen_at,
        }
        doc.update({k: v for k, v in optional.items() if v is not None})
        return doc
