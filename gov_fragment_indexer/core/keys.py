"""
Redis key construction utilities.

Centralizes all Redis key construction to maintain consistency across the codebase.
"""


class IndexKeys:
    """Utility class for constructing Redis keys with consistent naming conventions."""

    # Prefixes
    PREFIX = "gfi"
    PREFIX_FRAGMENTS = "content_fragments"
    PREFIX_PAGES = "content_pages"

    @staticmethod
    def fragment(fragment_id: str) -> str:
        """Key for a fragment hash."""
        return f"{IndexKeys.PREFIX_FRAGMENTS}:{fragment_id}"

    @staticmethod
    def page(page_id: str) -> str:
        """Key for a page document hash."""
        return f"{IndexKeys.PREFIX_PAGES}:{page_id}"

    @staticmethod
    def crawl_generation() -> str:
        """Counter key that hands out monotonically increasing run generations."""
        return f"{IndexKeys.PREFIX}:crawl_generation"

    @staticmethod
    def last_run_summary() -> str:
        """Key for the JSON summary of the most recent run."""
        return f"{IndexKeys.PREFIX}:last_run_summary"
