"""Loading of the taxonomy reference data."""

import json
import logging
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from gov_fragment_indexer.core.errors import TaxonomyError
from gov_fragment_indexer.taxonomy.models import TaxonomyReference

logger = logging.getLogger(__name__)

TAXONOMY_FILE = "taxonomy.json"
GRAPH_FILE = "life_event_graph.json"


def _read_json(path: Optional[str], default_name: str) -> Dict[str, Any]:
    try:
        if path:
            raw = Path(path).read_text(encoding="utf-8")
        else:
            raw = (
                resources.files("gov_fragment_indexer.taxonomy")
                .joinpath("data", default_name)
                .read_text(encoding="utf-8")
            )
        return json.loads(raw)
    except (OSError, json.JSONDecodeError) as e:
        raise TaxonomyError(f"Could not read taxonomy data {path or default_name}: {e}") from e


def load_taxonomy(
    taxonomy_path: Optional[str] = None, graph_path: Optional[str] = None
) -> TaxonomyReference:
    """Load and validate the taxonomy decks and the life-event graph.

    Args:
        taxonomy_path: JSON file with life events, categories, providers and states.
            Defaults to the bundled data.
        graph_path: JSON file with the life-event graph nodes. Defaults to the
            bundled data.

    Raises:
        TaxonomyError: if a file is unreadable or does not validate.
    """
    data = _read_json(taxonomy_path, TAXONOMY_FILE)
    graph = _read_json(graph_path, GRAPH_FILE)
    data["graph"] = graph.get("nodes", [])

    try:
        reference = TaxonomyReference.model_validate(data)
    except ValidationError as e:
        raise TaxonomyError(f"Invalid taxonomy data: {e}") from e

    logger.debug(f"Loaded taxonomy: {reference.summary()}")
    return reference


@lru_cache(maxsize=1)
def default_taxonomy() -> TaxonomyReference:
    """Process-wide taxonomy, honouring path overrides from settings."""
    from gov_fragment_indexer.core.config import settings

    return load_taxonomy(settings.taxonomy_path, settings.life_event_graph_path)
