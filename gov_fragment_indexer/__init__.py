"""Government content fragment indexer - crawl, slice, classify and index service pages."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gov-fragment-indexer")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for development without install
