"""Generation-stamped synchronisation of fragments and pages into the store."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from gov_fragment_indexer.models.documents import Fragment, PageDocument
from gov_fragment_indexer.pipelines.ingestion.store import Collection, DocumentStore

logger = logging.getLogger(__name__)

Document = Union[Fragment, PageDocument]


class SyncManager:
    """Write a crawl's documents under one generation, then retire older ones.

    Every document written by a run carries that run's generation. Once all
    writes for a host are done, documents of that host with a lower
    generation are deleted. Writes are at-least-once; identical ids simply
    overwrite. A failed prune leaves stale documents behind until the next
    successful run and never fails the run itself.
    """

    def __init__(self, store: DocumentStore, batch_size: int = 100):
        self.store = store
        self.batch_size = batch_size
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def allocate_generation(self) -> int:
        generation = await self.store.next_generation()
        self.logger.info(f"Allocated crawl generation {generation}")
        return generation

    @staticmethod
    def stamp(docs: Iterable[Document], generation: int, now: Optional[float] = None) -> None:
        seen_at = now if now is not None else time.time()
        for doc in docs:
            doc.crawl_generation = generation
            doc.last_seen_at = seen_at

    async def write(self, collection: Collection, docs: Sequence[Document]) -> Dict[str, Any]:
        """Batch upsert with per-document fallback when a batch fails."""
        stats: Dict[str, Any] = {"written": 0, "failed": 0, "errors": [], "failed_hosts": []}
        payload = [doc.to_index_document() for doc in docs]

        for start in range(0, len(payload), self.batch_size):
            batch = payload[start : start + self.batch_size]
            try:
                await self.store.upsert_many(collection, batch)
                stats["written"] += len(batch)
                continue
            except Exception as e:
                self.logger.warning(
                    f"Batch write of {len(batch)} {collection.value} failed ({e}); "
                    "retrying one by one"
                )

            for doc in batch:
                try:
                    await self.store.upsert(collection, doc)
                    stats["written"] += 1
                except Exception as e:
                    doc_id = doc.get("fragment_id") or doc.get("page_id")
                    self.logger.error(f"Failed to write {collection.value} document {doc_id}: {e}")
                    stats["failed"] += 1
                    stats["errors"].append(f"{doc_id}: {e}")
                    if doc.get("host") and doc["host"] not in stats["failed_hosts"]:
                        stats["failed_hosts"].append(doc["host"])

        self.logger.info(
            f"Wrote {stats['written']}/{len(payload)} {collection.value} "
            f"({stats['failed']} failed)"
        )
        return stats

    async def prune(self, host: str, generation: int) -> Dict[str, Any]:
        """Delete documents of ``host`` from generations before ``generation``."""
        result: Dict[str, Any] = {"host": host, "fragments": 0, "pages": 0, "errors": []}
        if not host:
            self.logger.warning("Skipping prune: no host scope")
            result["errors"].append("skipped: empty host")
            return result

        for collection in (Collection.FRAGMENTS, Collection.PAGES):
            try:
                deleted = await self.store.delete_stale(collection, host, generation)
                result[collection.value] = deleted
                self.logger.info(
                    f"Pruned {deleted} stale {collection.value} for {host} "
                    f"(generation < {generation})"
                )
            except Exception as e:
                self.logger.error(f"Prune of {collection.value} for {host} failed: {e}")
                result["errors"].append(f"{collection.value}: {e}")
        return result

    async def sync(
        self,
        fragments: List[Fragment],
        pages: List[PageDocument],
        target_hosts: Sequence[str],
        generation: Optional[int] = None,
        prune: bool = True,
    ) -> Dict[str, Any]:
        """Stamp, write and prune one crawl's output.

        Args:
            fragments: Enriched fragments of the crawl.
            pages: Page documents built from those fragments.
            target_hosts: Hosts the crawl was seeded with; pruning is scoped to them.
            generation: Pre-allocated generation; one is allocated when omitted.
            prune: Set False to only write.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        if generation is None:
            generation = await self.allocate_generation()

        now = time.time()
        self.stamp(fragments, generation, now)
        self.stamp(pages, generation, now)

        fragment_stats = await self.write(Collection.FRAGMENTS, fragments)
        page_stats = await self.write(Collection.PAGES, pages)

        # A document that failed to write still carries its old generation
        failed_hosts = set(fragment_stats["failed_hosts"]) | set(page_stats["failed_hosts"])
        prune_results = []
        if prune:
            for host in sorted(set(target_hosts)):
                if host in failed_hosts:
                    self.logger.warning(f"Skipping prune of {host}: some writes failed")
                    prune_results.append(
                        {
                            "host": host,
                            "fragments": 0,
                            "pages": 0,
                            "errors": ["skipped: writes failed for this host"],
                        }
                    )
                    continue
                prune_results.append(await self.prune(host, generation))

        return {
            "generation": generation,
            "started_at": started_at,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "fragments": fragment_stats,
            "pages": page_stats,
            "prune": prune_results,
        }
