"""Immutable taxonomy and life-event graph models."""

from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class KeywordDeck(BaseModel):
    """A named bucket matched by case-insensitive keyword containment."""

    model_config = ConfigDict(frozen=True)

    name: str
    keywords: Tuple[str, ...] = ()


class VariantDeck(KeywordDeck):
    srrs_score: Optional[int] = None


class StageDeck(KeywordDeck):
    srrs_score: Optional[int] = None
    variants: Tuple[VariantDeck, ...] = ()


class LifeEventDeck(KeywordDeck):
    srrs_score: Optional[int] = Field(
        default=None, description="Social Readjustment Rating Scale weight (ranking only)"
    )
    stages: Tuple[StageDeck, ...] = ()


class CategoryDeck(KeywordDeck):
    pass


class ProviderDeck(KeywordDeck):
    governance: str
    domains: Tuple[str, ...] = ()

    def domain_match(self, host: str) -> int:
        """Length of the longest domain matching ``host`` (0 when none match)."""
        host = host.lower()
        best = 0
        for domain in self.domains:
            if host == domain or host.endswith(f".{domain}"):
                best = max(best, len(domain))
        return best


class StateDeck(KeywordDeck):
    """A jurisdiction; ``name`` is the short code (e.g. ``NSW``)."""

    label: str
    host_suffixes: Tuple[str, ...] = ()
    path_segments: Tuple[str, ...] = ()


class LifeEventNode(BaseModel):
    """A node of the life-event relationship graph."""

    model_config = ConfigDict(frozen=True)

    event_name: str
    event_type: str = "transition"
    prerequisites: Tuple[str, ...] = ()
    next_states: Tuple[str, ...] = ()
    concurrent_allowed: Tuple[str, ...] = ()
    concurrent_disallowed: Tuple[str, ...] = ()
    typical_age_range: Optional[Tuple[int, int]] = None
    typical_duration_days: Optional[int] = None
    position_x: float = 0.0
    position_y: float = 0.0
    position_z: float = 0.0
    cluster: Optional[str] = None
    eligibility_status: Tuple[str, ...] = ()


class TaxonomyReference(BaseModel):
    """Read-only classification decks plus the life-event graph.

    Loaded once per process and handed to the components that need it.
    Declaration order of every deck tuple is significant: it breaks ties.
    """

    model_config = ConfigDict(frozen=True)

    life_events: Tuple[LifeEventDeck, ...] = ()
    categories: Tuple[CategoryDeck, ...] = ()
    providers: Tuple[ProviderDeck, ...] = ()
    states: Tuple[StateDeck, ...] = ()
    default_provider: str = "Australian Government"
    default_governance: str = "Federal"
    default_state: str = "National"
    graph: Tuple[LifeEventNode, ...] = ()

    def life_event(self, name: str) -> Optional[LifeEventDeck]:
        for deck in self.life_events:
            if deck.name == name:
                return deck
        return None

    def graph_node(self, event_name: str) -> Optional[LifeEventNode]:
        for node in self.graph:
            if node.event_name == event_name:
                return node
        return None

    def summary(self) -> Dict[str, int]:
        return {
            "life_events": len(self.life_events),
            "stages": sum(len(e.stages) for e in self.life_events),
            "variants": sum(len(s.variants) for e in self.life_events for s in e.stages),
            "categories": len(self.categories),
            "providers": len(self.providers),
            "states": len(self.states),
            "graph_nodes": len(self.graph),
        }
