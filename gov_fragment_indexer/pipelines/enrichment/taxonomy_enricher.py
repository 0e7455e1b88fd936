"""Taxonomy classification for extracted fragments.

Classification is a lexical heuristic: every bucket (life event, stage,
variant, category, provider, state) is a keyword deck and the deck with the
most distinct keyword hits wins. See ``taxonomy/scoring.py``.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from gov_fragment_indexer.models.documents import EligibilityHints, Fragment
from gov_fragment_indexer.taxonomy.models import LifeEventDeck, StageDeck, TaxonomyReference
from gov_fragment_indexer.taxonomy.scoring import best_match, keyword_hits

logger = logging.getLogger(__name__)

MIN_AGE_PATTERNS = (
    re.compile(r"\baged? (\d{1,3}) (?:years )?(?:or|and) (?:over|older|above)\b"),
    re.compile(r"\bat least (\d{1,3}) years? old\b"),
    re.compile(r"\bover (?:the age of )?(\d{1,3})\b"),
)
MAX_AGE_PATTERNS = (
    re.compile(r"\bunder (?:the age of )?(\d{1,3})\b"),
    re.compile(r"\baged? (\d{1,3}) (?:years )?or (?:under|younger)\b"),
    re.compile(r"\byounger than (\d{1,3})\b"),
)
# Bare "over N" / "under N" only count as ages in a sentence that mentions age
AGE_CUE = re.compile(r"\bage[ds]?\b|\byears? (?:old|of age)\b")
SENTENCE_SPLIT = re.compile(r"[.!?;\n]+")
CITIZENSHIP_CUES = {
    "australian citizen": "Australian citizen",
    "new zealand citizen": "New Zealand citizen",
}
RESIDENCY_CUES = {
    "permanent resident": "Permanent resident",
    "australian resident": "Australian resident",
    "residence rules": "Residence rules apply",
}
EMPLOYMENT_CUES = {
    "unemployed": "Unemployed",
    "looking for work": "Looking for work",
    "self-employed": "Self-employed",
}
CARING_CUES = ("carer", "caring for")
CHILDREN_CUES = ("your child", "your children", "dependent child", "dependent children")


@dataclass
class LifeEventMatch:
    """Winning life event with its optional stage and variant."""

    life_event: Optional[str] = None
    stage: Optional[str] = None
    stage_variant: Optional[str] = None
    srrs_score: Optional[int] = None


def classify_life_event(taxonomy: TaxonomyReference, text: str) -> LifeEventMatch:
    """Pick the best life event, then the best stage and variant inside it."""
    winner = best_match(text, taxonomy.life_events)
    if winner is None:
        return LifeEventMatch()
    event: LifeEventDeck = winner[0]
    match = LifeEventMatch(life_event=event.name, srrs_score=event.srrs_score)

    stage_winner = best_match(text, event.stages)
    if stage_winner is not None:
        stage: StageDeck = stage_winner[0]
        match.stage = stage.name
        if stage.srrs_score is not None:
            match.srrs_score = stage.srrs_score
        variant_winner = best_match(text, stage.variants)
        if variant_winner is not None:
            match.stage_variant = variant_winner[0].name
            if variant_winner[0].srrs_score is not None:
                match.srrs_score = variant_winner[0].srrs_score
    return match


class TaxonomyEnricher:
    """Attach taxonomy labels, provider, jurisdiction and eligibility hints."""

    def __init__(self, taxonomy: TaxonomyReference):
        self.taxonomy = taxonomy
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def enrich(self, fragment: Fragment) -> Fragment:
        """Classify ``fragment`` in place and return it."""
        text = self._classification_text(fragment)

        match = classify_life_event(self.taxonomy, text)
        fragment.life_events = [match.life_event] if match.life_event else []
        fragment.stage = match.stage
        fragment.stage_variant = match.stage_variant
        fragment.srrs_score = match.srrs_score

        fragment.categories = self.classify_categories(text)
        fragment.provider, fragment.governance = self.detect_provider(fragment.url, text)
        fragment.states = self.detect_states(fragment.url, text)
        fragment.eligibility = self.eligibility_hints(text)
        return fragment

    def enrich_all(self, fragments: List[Fragment]) -> List[Fragment]:
        enriched = []
        for fragment in fragments:
            try:
                enriched.append(self.enrich(fragment))
            except Exception as e:
                # Unclassified fragments are still indexed
                self.logger.error(f"Error enriching fragment {fragment.id}: {e}")
                enriched.append(fragment)
        return enriched

    @staticmethod
    def _classification_text(fragment: Fragment) -> str:
        return " ".join(
            part for part in (fragment.lvl0, fragment.title, fragment.content_text) if part
        )

    def classify_categories(self, text: str) -> List[str]:
        winner = best_match(text, self.taxonomy.categories)
        return [winner[0].name] if winner else []

    def detect_provider(self, url: str, text: str) -> Tuple[str, str]:
        """Hostname evidence beats in-text evidence; fall back to the default."""
        host = (urlparse(url).hostname or "").lower()
        best_domain = None
        best_length = 0
        for provider in self.taxonomy.providers:
            length = provider.domain_match(host)
            if length > best_length:
                best_domain, best_length = provider, length
        if best_domain is not None:
            return best_domain.name, best_domain.governance

        winner = best_match(text, self.taxonomy.providers)
        if winner is not None:
            return winner[0].name, winner[0].governance
        return self.taxonomy.default_provider, self.taxonomy.default_governance

    def detect_states(self, url: str, text: str) -> List[str]:
        """Jurisdictions cued by the URL or the text; the default when none are."""
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        segments = {p.lower() for p in parsed.path.split("/") if p}

        states = []
        for state in self.taxonomy.states:
            url_cue = any(
                host == suffix or host.endswith(f".{suffix}") for suffix in state.host_suffixes
            ) or bool(segments.intersection(state.path_segments))
            if url_cue or keyword_hits(text, state.keywords) > 0:
                states.append(state.name)
        return states or [self.taxonomy.default_state]

    def eligibility_hints(self, text: str) -> EligibilityHints:
        lowered = text.lower()
        hints = EligibilityHints()

        age_text = " . ".join(s for s in SENTENCE_SPLIT.split(lowered) if AGE_CUE.search(s))
        min_ages = [int(m) for p in MIN_AGE_PATTERNS for m in p.findall(age_text)]
        max_ages = [int(m) for p in MAX_AGE_PATTERNS for m in p.findall(age_text)]
        if min_ages:
            hints.min_age = min(min_ages)
        if max_ages:
            hints.max_age = max(max_ages)

        hints.required_citizenship = [v for k, v in CITIZENSHIP_CUES.items() if k in lowered]
        hints.required_residency = [v for k, v in RESIDENCY_CUES.items() if k in lowered]
        hints.required_employment_status = [
            v for k, v in EMPLOYMENT_CUES.items() if k in lowered
        ]
        if keyword_hits(lowered, CARING_CUES):
            hints.required_caring_status = True
        if keyword_hits(lowered, CHILDREN_CUES):
            hints.required_children = True
        return hints
