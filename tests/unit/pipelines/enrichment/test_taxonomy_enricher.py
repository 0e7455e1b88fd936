"""Unit tests for taxonomy enrichment."""

import pytest

from gov_fragment_indexer.models.documents import Fragment
from gov_fragment_indexer.pipelines.enrichment.taxonomy_enricher import (
    TaxonomyEnricher,
    classify_life_event,
)


def make_fragment(text, url="https://www.example.gov.au/page", title="Overview", lvl0="Content"):
    return Fragment(
        id=Fragment.make_id(url, title, text),
        url=f"{url}#overview",
        page_url=url,
        host="www.example.gov.au",
        anchor="overview",
        title=title,
        content_text=text,
        lvl0=lvl0,
    )


class TestTaxonomyEnricher:
    """Test fragment classification against the bundled taxonomy."""

    @pytest.fixture
    def enricher(self, taxonomy):
        return TaxonomyEnricher(taxonomy)

    def test_life_event_and_stage(self, enricher):
        """Pregnancy and maternity leave cues pick the pre-birth stage."""
        fragment = enricher.enrich(
            make_fragment("If you are pregnant, plan your maternity leave with your employer.")
        )

        assert fragment.life_events == ["Having a baby"]
        assert fragment.stage == "Before your baby arrives"
        assert fragment.stage_variant == "Leave from work"
        assert fragment.srrs_score == 40

    def test_no_life_event(self, enricher):
        fragment = enricher.enrich(make_fragment("Opening hours for our offices."))

        assert fragment.life_events == []
        assert fragment.stage is None
        assert fragment.srrs_score is None

    def test_state_from_text(self, enricher):
        """A single state cue replaces the National default."""
        fragment = enricher.enrich(make_fragment("This rebate is available to NSW residents."))

        assert fragment.states == ["NSW"]

    def test_state_defaults_to_national(self, enricher):
        fragment = enricher.enrich(make_fragment("Check your payment dates online."))

        assert fragment.states == ["National"]

    def test_state_from_host_and_path(self, enricher):
        states = enricher.detect_states("https://www.qld.gov.au/about", "")
        assert states == ["QLD"]

        states = enricher.detect_states("https://www.example.gov.au/vic/grants", "")
        assert states == ["VIC"]

    def test_provider_hostname_beats_text(self, enricher):
        """A provider domain match wins over a provider named in the text."""
        provider, governance = enricher.detect_provider(
            "https://www.ato.gov.au/individuals", "Contact Centrelink about your payment."
        )

        assert provider == "Australian Taxation Office"
        assert governance == "Federal"

    def test_provider_subdomain_match(self, enricher):
        provider, governance = enricher.detect_provider("https://www.service.nsw.gov.au/x", "")

        assert provider == "Service NSW"
        assert governance == "State"

    def test_provider_from_text(self, enricher):
        provider, _ = enricher.detect_provider(
            "https://www.example.gov.au/page", "Claim through Centrelink."
        )

        assert provider == "Services Australia"

    def test_provider_default(self, enricher, taxonomy):
        provider, governance = enricher.detect_provider("https://www.example.com/", "Nothing.")

        assert provider == taxonomy.default_provider
        assert governance == taxonomy.default_governance

    def test_single_category(self, enricher):
        categories = enricher.classify_categories("Tax return and superannuation help")

        assert categories == ["Tax and superannuation"]

    def test_eligibility_hints(self, enricher):
        hints = enricher.eligibility_hints(
            "You must be aged 16 or over and under 67. You must be an Australian citizen "
            "or permanent resident, and be caring for your child."
        )

        assert hints.min_age == 16
        assert hints.max_age == 67
        assert hints.required_citizenship == ["Australian citizen"]
        assert hints.required_residency == ["Permanent resident"]
        assert hints.required_caring_status is True
        assert hints.required_children is True

    def test_eligibility_hints_default_empty(self, enricher):
        hints = enricher.eligibility_hints("General information.")

        assert hints.min_age is None
        assert hints.required_citizenship == []
        assert hints.required_caring_status is None

    def test_durations_are_not_ages(self, enricher):
        hints = enricher.eligibility_hints(
            "Report changes over 14 days. Processing takes under 30 minutes."
        )

        assert hints.min_age is None
        assert hints.max_age is None

    def test_age_cue_in_same_sentence(self, enricher):
        hints = enricher.eligibility_hints(
            "Payments stop over 14 days. You must be over the age of 65."
        )

        assert hints.min_age == 65

    def test_enrich_all_isolates_failures(self, enricher, monkeypatch):
        good = make_fragment("Carer Allowance for carers.")
        bad = make_fragment("Something else.", url="https://www.example.gov.au/bad")

        original = enricher.enrich

        def flaky(fragment):
            if fragment is bad:
                raise RuntimeError("boom")
            return original(fragment)

        monkeypatch.setattr(enricher, "enrich", flaky)
        result = enricher.enrich_all([good, bad])

        assert result == [good, bad]
        assert good.life_events == ["Caring for someone"]
        assert bad.life_events == []


class TestClassifyLifeEvent:
    """Test life-event scoring rules."""

    def test_ties_go_to_first_declared(self, taxonomy):
        first, second = taxonomy.life_events[0], taxonomy.life_events[1]
        text = f"{first.keywords[0]} {second.keywords[0]}"

        assert classify_life_event(taxonomy, text).life_event == first.name

    def test_keywords_match_whole_words(self, taxonomy):
        # "jobs" inside "jobsite" must not count
        assert classify_life_event(taxonomy, "jobsite").life_event is None
