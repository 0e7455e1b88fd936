"""URL helpers for crawling and canonicalisation."""

from typing import Optional
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

BINARY_EXTENSIONS = (
    ".pdf",
    ".doc",
    ".docx",
    ".xls",
    ".xlsx",
    ".ppt",
    ".pptx",
    ".zip",
    ".rtf",
    ".csv",
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".svg",
    ".mp3",
    ".mp4",
)


def normalize_url(url: str) -> str:
    """Frontier key: fragment stripped, query kept, scheme and host lower-cased."""
    url, _ = urldefrag(url.strip())
    parsed = urlparse(url)
    path = parsed.path or "/"
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, "")
    )


def canonical_url(url: str) -> str:
    """Page identity: normalized URL without query string or fragment."""
    parsed = urlparse(normalize_url(url))
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))


def host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def same_origin(url: str, other: str) -> bool:
    return origin_of(url) == origin_of(other)


def is_binary_document(url: str) -> bool:
    path = urlparse(url).path.lower()
    return path.endswith(BINARY_EXTENSIONS)


def resolve_link(base_url: str, href: Optional[str]) -> Optional[str]:
    """Resolve an href against the page; None for anchors and non-web schemes."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    absolute = urljoin(base_url, href)
    if urlparse(absolute).scheme not in ("http", "https"):
        return None
    return absolute
