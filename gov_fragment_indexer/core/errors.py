"""Exception types raised across the pipeline."""


class GovIndexerError(Exception):
    """Base error for the indexer."""


class RendererLaunchError(GovIndexerError):
    """The headless browser could not be started, even with conservative flags.

    This is the only error that aborts a whole run.
    """


class PageFetchError(GovIndexerError):
    """Navigation or render of a single page failed."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url


class StoreWriteError(GovIndexerError):
    """A write to the document store failed."""


class TaxonomyError(GovIndexerError):
    """Taxonomy data is missing or malformed."""
