"""Redis connection management - no caching to avoid event loop issues."""

import logging
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis
from redisvl.index.index import AsyncSearchIndex
from redisvl.schema import IndexSchema

from gov_fragment_indexer.core.config import settings
from gov_fragment_indexer.core.keys import IndexKeys

logger = logging.getLogger(__name__)

# Index names
FRAGMENTS_INDEX = IndexKeys.PREFIX_FRAGMENTS
PAGES_INDEX = IndexKeys.PREFIX_PAGES

# Multi-valued tag fields are joined with "|" so labels may contain commas
LIST_SEPARATOR = "|"


def _tag(name: str) -> Dict[str, Any]:
    return {"name": name, "type": "tag", "attrs": {"separator": LIST_SEPARATOR}}


# Schema definitions
FRAGMENTS_SCHEMA = {
    "index": {
        "name": FRAGMENTS_INDEX,
        "prefix": f"{FRAGMENTS_INDEX}:",
        "storage_type": "hash",
    },
    "fields": [
        {"name": "fragment_id", "type": "tag"},
        _tag("url"),
        _tag("page_url"),
        _tag("host"),
        _tag("anchor"),
        {"name": "title", "type": "text"},
        {"name": "content_text", "type": "text"},
        _tag("lvl0"),
        _tag("lvl1"),
        _tag("lvl2"),
        _tag("lvl3"),
        _tag("site_hierarchy"),
        _tag("page_hierarchy"),
        _tag("life_events"),
        _tag("categories"),
        _tag("states"),
        _tag("provider"),
        _tag("governance"),
        _tag("stage"),
        _tag("stage_variant"),
        _tag("component_type"),
        _tag("has_form"),
        _tag("has_checklist"),
        _tag("content_hash"),
        _tag("search_keywords"),
        _tag("classes"),
        {"name": "heading_level", "type": "numeric"},
        {"name": "position", "type": "numeric"},
        {"name": "reading_level", "type": "numeric"},
        {"name": "popularity_score", "type": "numeric"},
        {"name": "popularity_sort", "type": "numeric"},
        {"name": "srrs_score", "type": "numeric"},
        {"name": "min_age", "type": "numeric"},
        {"name": "max_age", "type": "numeric"},
        {"name": "crawl_generation", "type": "numeric"},
        {"name": "last_seen_at", "type": "numeric"},
    ],
}

PAGES_SCHEMA = {
    "index": {
        "name": PAGES_INDEX,
        "prefix": f"{PAGES_INDEX}:",
        "storage_type": "hash",
    },
    "fields": [
        {"name": "page_id", "type": "tag"},
        _tag("url"),
        _tag("host"),
        {"name": "title", "type": "text"},
        {"name": "content_text", "type": "text"},
        _tag("keywords"),
        _tag("life_events"),
        _tag("categories"),
        _tag("states"),
        _tag("providers"),
        _tag("governance"),
        _tag("primary_life_event"),
        _tag("stage"),
        _tag("stage_variant"),
        _tag("eligibility_statuses"),
        _tag("out_links"),
        _tag("out_link_tokens"),
        {"name": "fragment_count", "type": "numeric"},
        {"name": "srrs_score", "type": "numeric"},
        {"name": "typical_age_min", "type": "numeric"},
        {"name": "typical_age_max", "type": "numeric"},
        {"name": "typical_duration_days", "type": "numeric"},
        {"name": "crawl_generation", "type": "numeric"},
        {"name": "last_seen_at", "type": "numeric"},
        {
            "name": "embedding",
            "type": "vector",
            "attrs": {
                "dims": settings.embedding_dim,
                "distance_metric": "cosine",
                "algorithm": "flat",
                "datatype": "float32",
            },
        },
    ],
}

def _redis_url() -> str:
    """Build the Redis URL, inserting the password when it is configured separately."""
    redis_url = settings.redis_url.get_secret_value()
    redis_password = settings.redis_password.get_secret_value() if settings.redis_password else None
    if redis_password and "@" not in redis_url:
        # Insert password into URL: redis://localhost -> redis://:password@localhost
        redis_url = redis_url.replace("redis://", f"redis://:{redis_password}@")
    return redis_url


def get_redis_client(url: Optional[str] = None) -> Redis:
    """Get Redis client (creates fresh client to avoid event loop issues)."""
    return Redis.from_url(
        url=url or _redis_url(),
        decode_responses=False,  # Keep as bytes for RedisVL compatibility
    )


async def _get_index(schema_dict: Dict[str, Any]) -> AsyncSearchIndex:
    redis_client = Redis.from_url(_redis_url(), decode_responses=False)
    schema = IndexSchema.from_dict(schema_dict)
    return AsyncSearchIndex(schema=schema, redis_client=redis_client)


async def get_fragments_index() -> AsyncSearchIndex:
    """Get content fragments index (creates fresh to avoid event loop issues)."""
    return await _get_index(FRAGMENTS_SCHEMA)


async def get_pages_index() -> AsyncSearchIndex:
    """Get page documents index (async)."""
    return await _get_index(PAGES_SCHEMA)


INDEX_GETTERS = {
    "fragments": (FRAGMENTS_INDEX, get_fragments_index),
    "pages": (PAGES_INDEX, get_pages_index),
}


async def test_redis_connection(url: Optional[str] = None) -> bool:
    """Test Redis connection health.

    Args:
        url: Optional Redis URL to test. If not provided, uses default from settings.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        client = get_redis_client(url=url)
        await client.ping()
        await client.aclose()
        return True
    except Exception as e:
        logger.error(f"Redis connection test failed: {e}")
        return False


async def create_indices() -> bool:
    """Create the fragment and page indices if they don't exist."""
    try:
        for name, (index_name, get_fn) in INDEX_GETTERS.items():
            idx = await get_fn()
            if not await idx.exists():
                await idx.create()
                logger.info(f"Created {name} index: {index_name}")
            else:
                logger.debug(f"{name.capitalize()} index already exists: {index_name}")
        return True
    except Exception as e:
        logger.error(f"Failed to create indices: {e}")
        return False


async def recreate_indices(index_name: Optional[str] = None) -> Dict[str, Any]:
    """Drop and recreate indices without deleting the underlying hashes.

    Args:
        index_name: "fragments", "pages", or None for both.

    Returns:
        Dict with per-index status and an overall ``success`` flag.
    """
    targets: List[str] = [index_name] if index_name else list(INDEX_GETTERS.keys())
    result: Dict[str, Any] = {"success": True, "indices": {}}

    for name in targets:
        if name not in INDEX_GETTERS:
            result["indices"][name] = f"unknown index: {name}"
            result["success"] = False
            continue
        redis_index_name, get_fn = INDEX_GETTERS[name]
        try:
            idx = await get_fn()
            if await idx.exists():
                # FT.DROPINDEX keeps the documents; only the search index is rebuilt
                await idx._redis_client.execute_command("FT.DROPINDEX", redis_index_name)
                logger.info(f"Dropped index: {redis_index_name}")
            await idx.create()
            result["indices"][name] = "recreated"
        except Exception as e:
            logger.error(f"Failed to recreate {redis_index_name}: {e}")
            result["indices"][name] = f"error: {e}"
            result["success"] = False

    return result
