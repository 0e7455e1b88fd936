"""Read-only classification taxonomy and life-event graph."""

from .models import (
    CategoryDeck,
    LifeEventDeck,
    LifeEventNode,
    ProviderDeck,
    StageDeck,
    StateDeck,
    TaxonomyReference,
    VariantDeck,
)
from .reference import default_taxonomy, load_taxonomy

__all__ = [
    "CategoryDeck",
    "LifeEventDeck",
    "LifeEventNode",
    "ProviderDeck",
    "StageDeck",
    "StateDeck",
    "TaxonomyReference",
    "VariantDeck",
    "default_taxonomy",
    "load_taxonomy",
]
