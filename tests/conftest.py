"""
Test configuration and fixtures for the Gov Fragment Indexer.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

import pytest

from gov_fragment_indexer.core.errors import PageFetchError, StoreWriteError
from gov_fragment_indexer.pipelines.ingestion.store import ID_FIELDS, Collection, DocumentStore
from gov_fragment_indexer.pipelines.scraper.crawler import CrawlConfig
from gov_fragment_indexer.pipelines.scraper.renderer import RenderedPage
from gov_fragment_indexer.taxonomy import load_taxonomy

CARER_PAYMENT_HTML = """
<html>
<head><title>Carer Payment - Services Australia</title></head>
<body>
  <nav class="breadcrumb">
    <ol><li>Home</li><li>&gt;</li><li>Caring for someone</li></ol>
  </nav>
  <main>
    <h1 id="carer-payment">Carer Payment</h1>
    <h2 id="eligibility">Eligibility</h2>
    <p>You may get Carer Payment if you give constant care to someone with a disability.
    You must be an Australian resident.</p>
    <h2 id="how-to-apply">How to apply</h2>
    <p>Apply online using your Centrelink online account through myGov.</p>
    <div class="alert" role="alert"><p>You must tell us about changes within 14 days.</p></div>
  </main>
</body>
</html>
"""


def page_html(title: str, body: str, links: Optional[List[str]] = None) -> str:
    """Minimal page with an h1, one paragraph and optional links."""
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links or [])
    return (
        f"<html><head><title>{title}</title></head><body><main>"
        f"<h1>{title}</h1><h2>Overview</h2><p>{body} {anchors}</p>"
        f"</main></body></html>"
    )


class FakeRenderer:
    """In-memory renderer serving canned HTML keyed by URL."""

    def __init__(self, pages: Dict[str, str], failures: Optional[Dict[str, int]] = None):
        self.pages = pages
        self.failures = dict(failures or {})
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def render(self, url: str) -> RenderedPage:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if self.failures.get(url, 0) > 0:
                self.failures[url] -= 1
                raise PageFetchError(url, "navigation timeout")
            if url not in self.pages:
                raise PageFetchError(url, "HTTP 404")
            return RenderedPage(url=url, final_url=url, html=self.pages[url])
        finally:
            self.active -= 1


class FakeStore(DocumentStore):
    """Dict-backed store with the same generation and prune semantics as Redis."""

    def __init__(self):
        self.docs: Dict[Collection, Dict[str, Dict[str, Any]]] = {
            Collection.FRAGMENTS: {},
            Collection.PAGES: {},
        }
        self.generation = 0
        self.fail_batches = False
        self.fail_ids: Set[str] = set()
        self.fail_prune = False
        self.runs: List[Dict[str, Any]] = []

    async def next_generation(self) -> int:
        self.generation += 1
        return self.generation

    async def upsert_many(self, collection: Collection, docs: List[Dict[str, Any]]) -> None:
        if self.fail_batches and len(docs) > 1:
            raise StoreWriteError("batch rejected")
        for doc in docs:
            await self.upsert(collection, doc)

    async def upsert(self, collection: Collection, doc: Dict[str, Any]) -> None:
        doc_id = doc[ID_FIELDS[collection]]
        if doc_id in self.fail_ids:
            raise StoreWriteError(f"write of {doc_id} rejected")
        self.docs[collection][doc_id] = dict(doc)

    async def delete_stale(self, collection: Collection, host: str, generation: int) -> int:
        if self.fail_prune:
            raise StoreWriteError("prune unavailable")
        stale = [
            doc_id
            for doc_id, doc in self.docs[collection].items()
            if doc["host"] == host and doc.get("crawl_generation", 0) < generation
        ]
        for doc_id in stale:
            del self.docs[collection][doc_id]
        return len(stale)

    async def record_run(self, summary: Dict[str, Any]) -> None:
        self.runs.append(summary)

    async def last_run(self) -> Optional[Dict[str, Any]]:
        return self.runs[-1] if self.runs else None

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {c.value: {k: dict(v) for k, v in d.items()} for c, d in self.docs.items()}


@pytest.fixture(scope="session")
def taxonomy():
    """Bundled taxonomy reference."""
    return load_taxonomy()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def crawl_config():
    """Crawl config with network lookups and delays disabled."""
    return CrawlConfig(
        max_pages=50,
        max_depth=3,
        max_links_per_page=20,
        concurrency=2,
        crawl_delay=0,
        retry_backoff=0,
        use_sitemap=False,
        respect_robots=False,
    )


@pytest.fixture
def carer_payment_html():
    return CARER_PAYMENT_HTML


@pytest.fixture
def make_renderer():
    """Factory for FakeRenderer instances."""
    return FakeRenderer


@pytest.fixture
def make_page():
    """Factory for minimal fixture pages."""
    return page_html
