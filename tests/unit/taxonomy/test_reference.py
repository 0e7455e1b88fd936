"""Unit tests for taxonomy loading."""

import json

import pytest

from gov_fragment_indexer.core.errors import TaxonomyError
from gov_fragment_indexer.taxonomy import load_taxonomy
from gov_fragment_indexer.taxonomy.scoring import best_match, keyword_hits


class TestLoadTaxonomy:
    """Test bundled and override taxonomy data."""

    def test_bundled_data(self, taxonomy):
        summary = taxonomy.summary()

        assert summary["life_events"] >= 10
        assert summary["graph_nodes"] == summary["life_events"]
        assert taxonomy.life_event("Having a baby").stages[0].name == "Before your baby arrives"
        assert taxonomy.default_state == "National"

    def test_graph_nodes_reference_known_events(self, taxonomy):
        names = {event.name for event in taxonomy.life_events}
        for node in taxonomy.graph:
            assert node.event_name in names
            assert set(node.next_states) <= names

    def test_override_paths(self, tmp_path):
        taxonomy_file = tmp_path / "taxonomy.json"
        graph_file = tmp_path / "graph.json"
        taxonomy_file.write_text(
            json.dumps({"life_events": [{"name": "Moving", "keywords": ["move"]}]})
        )
        graph_file.write_text(json.dumps({"nodes": [{"event_name": "Moving"}]}))

        reference = load_taxonomy(str(taxonomy_file), str(graph_file))

        assert [e.name for e in reference.life_events] == ["Moving"]
        assert reference.graph_node("Moving") is not None
        assert reference.default_provider == "Australian Government"

    def test_missing_file(self, tmp_path):
        with pytest.raises(TaxonomyError):
            load_taxonomy(str(tmp_path / "missing.json"))

    def test_invalid_data(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"life_events": [{"keywords": ["no name"]}]}))

        with pytest.raises(TaxonomyError):
            load_taxonomy(str(bad))

    def test_decks_are_immutable(self, taxonomy):
        with pytest.raises(Exception):
            taxonomy.life_events[0].name = "Changed"


class TestScoring:
    def test_keyword_hits_counts_distinct_keywords(self):
        assert keyword_hits("Carer payment for a carer", ["carer", "payment", "respite"]) == 2

    def test_multi_word_keywords(self):
        assert keyword_hits("Plan your Maternity Leave", ["maternity leave"]) == 1

    def test_best_match_none_when_no_hits(self, taxonomy):
        assert best_match("zzz", taxonomy.categories) is None
