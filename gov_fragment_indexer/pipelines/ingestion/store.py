"""Document store abstraction and its Redis/RediSearch implementation."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

from redisvl.index.index import AsyncSearchIndex
from redisvl.query import FilterQuery
from redisvl.query.filter import FilterExpression, Num, Tag

from gov_fragment_indexer.core.errors import StoreWriteError
from gov_fragment_indexer.core.keys import IndexKeys

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    FRAGMENTS = "fragments"
    PAGES = "pages"


ID_FIELDS = {
    Collection.FRAGMENTS: "fragment_id",
    Collection.PAGES: "page_id",
}


def stale_filter(host: str, generation: int) -> FilterExpression:
    """Documents of ``host`` written by a generation older than ``generation``."""
    return (Tag("host") == host) & (Num("crawl_generation") < generation)


class DocumentStore(ABC):
    """Versioned store for fragment and page documents."""

    @abstractmethod
    async def next_generation(self) -> int:
        """Allocate a generation strictly greater than any handed out before."""

    @abstractmethod
    async def upsert_many(self, collection: Collection, docs: List[Dict[str, Any]]) -> None:
        """Write a batch; raises if the batch could not be written."""

    @abstractmethod
    async def upsert(self, collection: Collection, doc: Dict[str, Any]) -> None:
        """Write a single document; raises on failure."""

    @abstractmethod
    async def delete_stale(self, collection: Collection, host: str, generation: int) -> int:
        """Delete documents of ``host`` older than ``generation``; return the count."""

    async def record_run(self, summary: Dict[str, Any]) -> None:
        """Persist the run summary where the store supports it."""

    async def last_run(self) -> Optional[Dict[str, Any]]:
        return None

    async def close(self) -> None:
        pass


class RedisDocumentStore(DocumentStore):
    """Hash documents under the ``content_fragments``/``content_pages`` indices."""

    PRUNE_PAGE_SIZE = 500

    def __init__(
        self,
        fragments_index: Optional[AsyncSearchIndex] = None,
        pages_index: Optional[AsyncSearchIndex] = None,
        redis_client=None,
        write_timeout: float = 30.0,
    ):
        self._indices: Dict[Collection, Optional[AsyncSearchIndex]] = {
            Collection.FRAGMENTS: fragments_index,
            Collection.PAGES: pages_index,
        }
        self._redis_client = redis_client
        self.write_timeout = write_timeout

    async def _index(self, collection: Collection) -> AsyncSearchIndex:
        index = self._indices[collection]
        if index is None:
            from gov_fragment_indexer.core.redis import get_fragments_index, get_pages_index

            getter = get_fragments_index if collection == Collection.FRAGMENTS else get_pages_index
            index = await getter()
            self._indices[collection] = index
        return index

    def _client(self):
        if self._redis_client is None:
            from gov_fragment_indexer.core.redis import get_redis_client

            self._redis_client = get_redis_client()
        return self._redis_client

    @staticmethod
    def _key(collection: Collection, doc: Dict[str, Any]) -> str:
        doc_id = doc[ID_FIELDS[collection]]
        if collection == Collection.FRAGMENTS:
            return IndexKeys.fragment(doc_id)
        return IndexKeys.page(doc_id)

    async def next_generation(self) -> int:
        return int(await self._client().incr(IndexKeys.crawl_generation()))

    async def upsert_many(self, collection: Collection, docs: List[Dict[str, Any]]) -> None:
        """Replace each document's hash in one transaction.

        Every key is deleted before it is written, so fields that are absent
        from the new document (``None`` values) do not survive from an older
        generation.

        Raises:
            StoreWriteError: if the transaction fails or times out.
        """
        if not docs:
            return
        index = await self._index(collection)
        pipe = index.client.pipeline(transaction=True)
        for doc in docs:
            key = self._key(collection, doc)
            pipe.delete(key)
            pipe.hset(key, mapping=doc)
        try:
            await asyncio.wait_for(pipe.execute(), timeout=self.write_timeout)
        except asyncio.TimeoutError as e:
            raise StoreWriteError(
                f"Timed out writing {len(docs)} {collection.value} after {self.write_timeout}s"
            ) from e
        except Exception as e:
            raise StoreWriteError(f"Failed to write {len(docs)} {collection.value}: {e}") from e

    async def upsert(self, collection: Collection, doc: Dict[str, Any]) -> None:
        await self.upsert_many(collection, [doc])

    async def delete_stale(self, collection: Collection, host: str, generation: int) -> int:
        if not host:
            raise ValueError("Refusing to prune without a host scope")

        index = await self._index(collection)
        query = FilterQuery(
            filter_expression=stale_filter(host, generation),
            return_fields=["host", "crawl_generation"],
            num_results=self.PRUNE_PAGE_SIZE,
        )

        deleted = 0
        while True:
            results = await index.query(query)
            keys = [r["id"] for r in results]
            if not keys:
                break
            removed = await index.client.delete(*keys)
            deleted += removed
            if removed == 0:
                # Index entries without backing hashes; stop rather than spin
                logger.warning(f"Prune of {collection.value} for {host} made no progress")
                break
        return deleted

    async def record_run(self, summary: Dict[str, Any]) -> None:
        await self._client().set(IndexKeys.last_run_summary(), json.dumps(summary, default=str))

    async def last_run(self) -> Optional[Dict[str, Any]]:
        raw = await self._client().get(IndexKeys.last_run_summary())
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def close(self) -> None:
        if self._redis_client is not None:
            await self._redis_client.aclose()
