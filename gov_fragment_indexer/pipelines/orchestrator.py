"""Pipeline orchestrator: crawl, aggregate, then synchronise into the store."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from gov_fragment_indexer.core.config import Settings, settings as default_settings
from gov_fragment_indexer.models.documents import CrawlStatus
from gov_fragment_indexer.taxonomy import TaxonomyReference, default_taxonomy

from .aggregation.page_aggregator import PageAggregator
from .enrichment.taxonomy_enricher import TaxonomyEnricher
from .ingestion.store import DocumentStore, RedisDocumentStore
from .ingestion.sync import SyncManager
from .scraper.crawler import CrawlConfig, CrawlResult, CrawlScheduler
from .scraper.renderer import BrowserRenderer
from .scraper.urls import host_of

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs one crawl-to-index pass.

    The taxonomy, store and renderer are injected so each stage can be
    exercised on its own; defaults come from settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        taxonomy: Optional[TaxonomyReference] = None,
        store: Optional[DocumentStore] = None,
        renderer_factory: Optional[Callable[[], Any]] = None,
        crawl_config: Optional[CrawlConfig] = None,
    ):
        self.settings = settings or default_settings
        self.taxonomy = taxonomy or default_taxonomy()
        self._owns_store = store is None
        self.store = store or RedisDocumentStore(write_timeout=self.settings.store_write_timeout)
        self.renderer_factory = renderer_factory or self._default_renderer
        self.crawl_config = crawl_config or CrawlConfig.from_settings(self.settings)

        self.enricher = TaxonomyEnricher(self.taxonomy)
        self.aggregator = PageAggregator(self.taxonomy, embedding_dim=self.settings.embedding_dim)
        self.sync_manager = SyncManager(self.store, batch_size=self.settings.sync_batch_size)

    def _default_renderer(self) -> BrowserRenderer:
        return BrowserRenderer(
            executable_path=self.settings.browser_executable_path,
            headless=self.settings.browser_headless,
            user_agent=self.settings.user_agent,
            launch_timeout=self.settings.launch_timeout,
            navigation_timeout=self.settings.navigation_timeout,
            content_wait_timeout=self.settings.content_wait_timeout,
        )

    async def run_crawl(self, seeds: List[str]) -> CrawlResult:
        """Crawl and enrich; no store access."""
        async with self.renderer_factory() as renderer:
            scheduler = CrawlScheduler(self.crawl_config, renderer, self.enricher)
            return await scheduler.crawl(seeds)

    @staticmethod
    def hosts_to_prune(crawl: CrawlResult) -> List[str]:
        """Target hosts with at least one successfully crawled page.

        A host whose every page failed keeps its previous documents.
        """
        crawled = {
            host_of(url)
            for url, entry in crawl.frontier.items()
            if entry.status == CrawlStatus.DONE
        }
        return [host for host in crawl.target_hosts if host in crawled]

    async def run_full_pipeline(self, seeds: List[str], prune: bool = True) -> Dict[str, Any]:
        """Run a complete pass: crawl, aggregate, write under a new generation, prune."""
        logger.info(f"Starting full pipeline for {len(seeds)} seeds")

        results: Dict[str, Any] = {
            "pipeline_type": "full",
            "started_at": datetime.now(timezone.utc).isoformat(),
            "seeds": list(seeds),
            "success": False,
        }

        try:
            if self._owns_store:
                from gov_fragment_indexer.core.redis import create_indices

                await create_indices()

            generation = await self.sync_manager.allocate_generation()
            results["generation"] = generation

            # Stage 1: Crawl
            logger.info("Stage 1: Crawling and extracting fragments")
            crawl = await self.run_crawl(seeds)
            results["crawl"] = crawl.report

            # Stage 2: Aggregate
            logger.info("Stage 2: Aggregating page documents")
            pages = self.aggregator.build_pages(crawl.fragments)
            results["fragments"] = len(crawl.fragments)
            results["pages"] = len(pages)

            # Stage 3: Sync
            logger.info(f"Stage 3: Syncing generation {generation}")
            prune_hosts = self.hosts_to_prune(crawl)
            skipped = sorted(set(crawl.target_hosts) - set(prune_hosts))
            if prune and skipped:
                logger.warning(f"Not pruning hosts without successful pages: {skipped}")
            results["sync"] = await self.sync_manager.sync(
                crawl.fragments,
                pages,
                target_hosts=prune_hosts,
                generation=generation,
                prune=prune,
            )

            results["success"] = True
            results["completed_at"] = datetime.now(timezone.utc).isoformat()
            logger.info(
                f"Full pipeline completed: generation={generation}, "
                f"fragments={results['fragments']}, pages={results['pages']}"
            )

        except Exception as e:
            logger.error(f"Full pipeline failed: {e}")
            results["error"] = str(e)
            results["completed_at"] = datetime.now(timezone.utc).isoformat()
            raise
        finally:
            await self._record(results)

        return results

    async def _record(self, results: Dict[str, Any]) -> None:
        try:
            await self.store.record_run(results)
        except Exception as e:
            logger.warning(f"Could not record run summary: {e}")

    async def prune_host(self, host: str, generation: int) -> Dict[str, Any]:
        """Manually retire documents of ``host`` older than ``generation``."""
        return await self.sync_manager.prune(host, generation)

    async def get_pipeline_status(self) -> Dict[str, Any]:
        """Last recorded run plus the active crawl configuration."""
        status: Dict[str, Any] = {
            "crawl_config": self.crawl_config.model_dump(),
            "taxonomy": self.taxonomy.summary(),
        }
        try:
            status["last_run"] = await self.store.last_run()
        except Exception as e:
            status["last_run_error"] = str(e)
        return status

    async def close(self) -> None:
        await self.store.close()


# Convenience functions for CLI usage


async def run_full_pipeline(seeds: List[str], prune: bool = True, **overrides: Any):
    """Run the complete pipeline with settings-derived defaults."""
    crawl_config = CrawlConfig.from_settings(default_settings, **overrides)
    orchestrator = PipelineOrchestrator(crawl_config=crawl_config)
    try:
        return await orchestrator.run_full_pipeline(seeds, prune=prune)
    finally:
        await orchestrator.close()
