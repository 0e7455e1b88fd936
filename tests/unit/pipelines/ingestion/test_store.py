"""Unit tests for the Redis document store (index and client mocked)."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from gov_fragment_indexer.core.errors import StoreWriteError
from gov_fragment_indexer.models.documents import PageDocument
from gov_fragment_indexer.pipelines.ingestion.store import (
    Collection,
    RedisDocumentStore,
    stale_filter,
)


class FakeHashPipeline:
    """Queues DEL/HSET like a redis transaction and applies them on execute."""

    def __init__(self, hashes):
        self.hashes = hashes
        self.ops = []
        self._queued = []
        self.error = None
        self.delay = 0.0

    def delete(self, key):
        self._queued.append(("delete", key, None))
        return self

    def hset(self, key, mapping):
        self._queued.append(("hset", key, dict(mapping)))
        return self

    async def execute(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        for op, key, mapping in self._queued:
            self.ops.append((op, key))
            if op == "delete":
                self.hashes.pop(key, None)
            else:
                self.hashes.setdefault(key, {}).update(mapping)
        self._queued = []


@pytest.fixture
def mock_index():
    index = MagicMock()
    index.query = AsyncMock(return_value=[])
    index.client.delete = AsyncMock(return_value=0)
    return index


@pytest.fixture
def hash_pipeline(mock_index):
    pipeline = FakeHashPipeline({})
    mock_index.client.pipeline = MagicMock(return_value=pipeline)
    return pipeline


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.incr = AsyncMock(return_value=7)
    client.set = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def store(mock_index, mock_client):
    return RedisDocumentStore(
        fragments_index=mock_index, pages_index=mock_index, redis_client=mock_client
    )


class TestStaleFilter:
    def test_filter_is_host_scoped(self):
        expression = str(stale_filter("www.example.gov.au", 5))

        assert "@host:{" in expression
        assert "@crawl_generation:" in expression
        assert "*" not in expression


class TestRedisDocumentStore:
    """Test key layout, generation counter and pruning."""

    @pytest.mark.asyncio
    async def test_next_generation_uses_counter(self, store, mock_client):
        assert await store.next_generation() == 7
        mock_client.incr.assert_awaited_once_with("gfi:crawl_generation")

    @pytest.mark.asyncio
    async def test_upsert_many_replaces_prefixed_keys(self, store, hash_pipeline):
        docs = [{"fragment_id": "abc", "host": "h"}, {"fragment_id": "def", "host": "h"}]

        await store.upsert_many(Collection.FRAGMENTS, docs)

        assert hash_pipeline.ops == [
            ("delete", "content_fragments:abc"),
            ("hset", "content_fragments:abc"),
            ("delete", "content_fragments:def"),
            ("hset", "content_fragments:def"),
        ]
        assert hash_pipeline.hashes["content_fragments:def"] == {"fragment_id": "def", "host": "h"}

    @pytest.mark.asyncio
    async def test_page_keys(self, store, hash_pipeline):
        await store.upsert(Collection.PAGES, {"page_id": "p1", "host": "h"})

        assert set(hash_pipeline.hashes) == {"content_pages:p1"}

    @pytest.mark.asyncio
    async def test_rewrite_drops_fields_that_became_unset(self, store, hash_pipeline):
        url = "https://www.example.gov.au/having-a-baby"
        labelled = PageDocument(
            id="p1",
            url=url,
            host="www.example.gov.au",
            title="Having a baby",
            primary_life_event="Having a baby",
            stage="Before your baby arrives",
            srrs_score=40,
            typical_age_range=(18, 45),
        )
        relabelled = PageDocument(id="p1", url=url, host="www.example.gov.au", title="Moved")

        await store.upsert(Collection.PAGES, labelled.to_index_document())
        await store.upsert(Collection.PAGES, relabelled.to_index_document())

        stored = hash_pipeline.hashes["content_pages:p1"]
        assert stored["title"] == "Moved"
        for name in ("primary_life_event", "stage", "srrs_score", "typical_age_min"):
            assert name not in stored

    @pytest.mark.asyncio
    async def test_upsert_many_skips_empty(self, store, mock_index):
        await store.upsert_many(Collection.FRAGMENTS, [])

        mock_index.client.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_failure_raises_store_error(self, store, hash_pipeline):
        hash_pipeline.error = ConnectionError("connection reset")

        with pytest.raises(StoreWriteError, match="connection reset"):
            await store.upsert(Collection.FRAGMENTS, {"fragment_id": "abc", "host": "h"})

    @pytest.mark.asyncio
    async def test_write_timeout_raises_store_error(self, mock_index, mock_client, hash_pipeline):
        slow_store = RedisDocumentStore(
            fragments_index=mock_index,
            pages_index=mock_index,
            redis_client=mock_client,
            write_timeout=0.01,
        )
        hash_pipeline.delay = 1.0

        with pytest.raises(StoreWriteError, match="Timed out"):
            await slow_store.upsert(Collection.FRAGMENTS, {"fragment_id": "abc", "host": "h"})

    @pytest.mark.asyncio
    async def test_delete_stale_pages_through_results(self, store, mock_index):
        mock_index.query.side_effect = [
            [{"id": "content_fragments:a"}, {"id": "content_fragments:b"}],
            [{"id": "content_fragments:c"}],
            [],
        ]
        mock_index.client.delete.side_effect = [2, 1]

        deleted = await store.delete_stale(Collection.FRAGMENTS, "www.example.gov.au", 3)

        assert deleted == 3
        first_delete = mock_index.client.delete.await_args_list[0]
        assert first_delete.args == ("content_fragments:a", "content_fragments:b")

    @pytest.mark.asyncio
    async def test_delete_stale_stops_without_progress(self, store, mock_index):
        mock_index.query.return_value = [{"id": "content_fragments:ghost"}]
        mock_index.client.delete.return_value = 0

        assert await store.delete_stale(Collection.FRAGMENTS, "www.example.gov.au", 3) == 0
        assert mock_index.query.await_count == 1

    @pytest.mark.asyncio
    async def test_delete_stale_requires_host(self, store):
        with pytest.raises(ValueError):
            await store.delete_stale(Collection.PAGES, "", 3)

    @pytest.mark.asyncio
    async def test_run_summary_round_trip(self, store, mock_client):
        summary = {"generation": 7, "success": True}

        await store.record_run(summary)
        stored = mock_client.set.await_args.args
        mock_client.get.return_value = stored[1].encode()

        assert stored[0] == "gfi:last_run_summary"
        assert await store.last_run() == summary
        assert json.loads(stored[1]) == summary

    @pytest.mark.asyncio
    async def test_last_run_empty(self, store):
        assert await store.last_run() is None

    @pytest.mark.asyncio
    async def test_close(self, store, mock_client):
        await store.close()
        mock_client.aclose.assert_awaited_once()
