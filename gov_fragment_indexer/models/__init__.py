"""Document models shared across the pipeline stages."""

from .documents import (
    ComponentType,
    CrawlStatus,
    EligibilityHints,
    Fragment,
    PageDocument,
)

__all__ = [
    "ComponentType",
    "CrawlStatus",
    "EligibilityHints",
    "Fragment",
    "PageDocument",
]
