"""Unit tests for heading-based fragment extraction."""

import pytest

from gov_fragment_indexer.models.documents import ComponentType
from gov_fragment_indexer.pipelines.scraper.extractor import (
    FragmentExtractor,
    component_type,
    content_hash,
    count_syllables,
    popularity_score,
    reading_level,
    search_keywords,
)
from gov_fragment_indexer.pipelines.scraper.selectors import parse_html

PAGE_URL = "https://www.servicesaustralia.gov.au/carer-payment"


class TestFragmentExtractor:
    """Test fragment extraction from rendered HTML."""

    @pytest.fixture
    def extractor(self):
        return FragmentExtractor()

    def test_heading_and_standalone_fragments(self, extractor, carer_payment_html):
        """Three headings plus one alert box yield four distinct fragments."""
        result = extractor.extract(carer_payment_html, PAGE_URL)

        assert result.errors == []
        assert len(result.fragments) == 4
        assert len({f.id for f in result.fragments}) == 4
        assert [f.title for f in result.fragments] == [
            "Carer Payment",
            "Eligibility",
            "How to apply",
            "Important Information",
        ]
        assert [f.position for f in result.fragments] == [0, 1, 2, 3]

        alert = result.fragments[3]
        assert alert.component_type == ComponentType.ALERT
        assert alert.heading_level == 0
        assert alert.lvl0 == "Carer Payment"
        assert alert.anchor.startswith("fragment-")

    def test_heading_inside_alert_titles_the_alert_only(self, extractor):
        """A heading embedded in an alert does not become its own fragment."""
        html = """
        <html><body><main>
          <h1 id="carer-payment">Carer Payment</h1>
          <h2 id="eligibility">Eligibility</h2><p>You give constant care.</p>
          <h2 id="how-to-apply">How to apply</h2><p>Apply online through myGov.</p>
          <div class="alert"><h3>Important</h3><p>Tell us about changes within 14 days.</p></div>
        </main></body></html>
        """

        result = extractor.extract(html, PAGE_URL)

        assert [(f.title, f.heading_level) for f in result.fragments] == [
            ("Carer Payment", 1),
            ("Eligibility", 2),
            ("How to apply", 2),
            ("Important", 0),
        ]
        assert result.fragments[3].component_type == ComponentType.ALERT

    def test_fragment_urls_and_anchors(self, extractor, carer_payment_html):
        """Heading ids become anchors on the canonical page URL."""
        result = extractor.extract(carer_payment_html, PAGE_URL + "?tab=1#top")

        eligibility = result.fragments[1]
        assert eligibility.page_url == PAGE_URL
        assert eligibility.anchor == "eligibility"
        assert eligibility.url == f"{PAGE_URL}#eligibility"
        assert eligibility.host == "www.servicesaustralia.gov.au"
        assert eligibility.site_hierarchy == ["www.servicesaustralia.gov.au", "carer-payment"]
        assert eligibility.page_hierarchy == ["Home", "Caring for someone", "Eligibility"]
        assert "constant care" in eligibility.content_text

    def test_section_content_skips_non_content_siblings(self, extractor, carer_payment_html):
        """The alert after 'How to apply' is not part of that section."""
        result = extractor.extract(carer_payment_html, PAGE_URL)

        how_to_apply = result.fragments[2]
        assert "myGov" in how_to_apply.content_text
        assert "14 days" not in how_to_apply.content_text

    def test_hierarchy_levels(self, extractor):
        """An h3 under h1 and h2 carries all three levels."""
        html = """
        <html><body><main>
          <h1>Carers</h1>
          <h2>Eligibility</h2><p>Who can get it.</p>
          <h3>How to apply</h3><p>Apply online.</p>
        </main></body></html>
        """
        result = extractor.extract(html, "https://example.gov.au/carers")

        h3 = result.fragments[-1]
        assert h3.heading_level == 3
        assert h3.lvl0 == "Carers"
        assert h3.lvl1 == "Eligibility"
        assert h3.lvl2 == "How to apply"
        assert h3.lvl3 is None

    def test_missing_levels_use_placeholders(self, extractor):
        """An h3 with no preceding h2 gets the section placeholder."""
        html = """
        <html><body><main>
          <h1>Carers</h1>
          <h3>Details</h3><p>Some details.</p>
        </main></body></html>
        """
        result = extractor.extract(html, "https://example.gov.au/carers")

        h3 = result.fragments[-1]
        assert h3.lvl1 == "Section"
        assert h3.lvl2 == "Details"

    def test_lvl0_falls_back_to_breadcrumb_then_title(self, extractor):
        """Without an h1, lvl0 comes from the breadcrumb, else the page title."""
        with_crumbs = """
        <html><head><title>Page title</title></head><body>
          <ul class="breadcrumbs"><li>Home</li><li>Payments</li></ul>
          <main><h2>Overview</h2><p>Text.</p></main>
        </body></html>
        """
        without_crumbs = """
        <html><head><title>Page title</title></head><body>
          <main><h2>Overview</h2><p>Text.</p></main>
        </body></html>
        """
        url = "https://example.gov.au/payments"

        assert extractor.extract(with_crumbs, url).fragments[0].lvl0 == "Payments"
        assert extractor.extract(without_crumbs, url).fragments[0].lvl0 == "Page title"

    def test_heading_without_content_is_skipped(self, extractor):
        """Only h1 headings produce fragments without section content."""
        html = """
        <html><body><main>
          <h1>Title</h1>
          <h2>Empty</h2>
          <h2>Filled</h2><p>Body text.</p>
        </main></body></html>
        """
        result = extractor.extract(html, "https://example.gov.au/page")

        assert [f.title for f in result.fragments] == ["Title", "Filled"]

    def test_ids_are_stable_across_runs(self, extractor, carer_payment_html):
        """Unchanged content yields the same fragment ids."""
        first = extractor.extract(carer_payment_html, PAGE_URL)
        second = extractor.extract(carer_payment_html, PAGE_URL)

        assert [f.id for f in first.fragments] == [f.id for f in second.fragments]

    def test_content_hash_shared_across_pages(self, extractor):
        """Identical text on two pages shares a content hash but not an id."""
        html = """
        <html><body><main>
          <h2>Contact us</h2><p>Call 132 468 between 8am and 5pm.</p>
        </main></body></html>
        """
        a = extractor.extract(html, "https://example.gov.au/a").fragments[0]
        b = extractor.extract(html, "https://example.gov.au/b").fragments[0]

        assert a.content_hash == b.content_hash
        assert a.id != b.id

    def test_standalone_title_from_aria_label(self, extractor):
        html = """
        <html><body><main>
          <div class="checklist" aria-label="What you need"><ol><li>ID</li></ol></div>
        </main></body></html>
        """
        result = extractor.extract(html, "https://example.gov.au/page")

        assert len(result.fragments) == 1
        assert result.fragments[0].title == "What you need"
        assert result.fragments[0].component_type == ComponentType.CHECKLIST
        assert result.fragments[0].has_checklist is True

    def test_computed_styles_attached(self, extractor, carer_payment_html):
        styles = {".alert": [{"color": "rgb(0, 0, 0)"}]}
        result = extractor.extract(carer_payment_html, PAGE_URL, computed_styles=styles)

        assert result.fragments[0].styles["computed"] == styles

    def test_failed_heading_is_isolated(self, carer_payment_html):
        """A failure on one heading keeps every other fragment."""

        class FlakyExtractor(FragmentExtractor):
            def _heading_fragment(self, heading, level, text, current, ctx, position):
                if text == "Eligibility":
                    raise ValueError("broken markup")
                return super()._heading_fragment(heading, level, text, current, ctx, position)

        result = FlakyExtractor().extract(carer_payment_html, PAGE_URL)

        assert len(result.fragments) == 3
        assert len(result.errors) == 1
        assert "Eligibility" in result.errors[0]


class TestComponentType:
    """Test component detection precedence."""

    def test_form_beats_table(self):
        soup = parse_html("<div><table><tr><td>x</td></tr></table><form></form></div>")
        assert component_type([soup.div]) == ComponentType.FORM

    def test_table_beats_checklist(self):
        soup = parse_html('<div><ol class="steps"><li>a</li></ol><table></table></div>')
        assert component_type([soup.div]) == ComponentType.TABLE

    def test_video_detected_from_youtube_iframe(self):
        soup = parse_html('<div><iframe src="https://www.youtube.com/embed/x"></iframe></div>')
        assert component_type([soup.div]) == ComponentType.VIDEO

    def test_plain_content(self):
        soup = parse_html("<div><p>Just text</p></div>")
        assert component_type([soup.div]) == ComponentType.CONTENT


class TestTextSignals:
    """Test reading level, hashing, keywords and popularity."""

    def test_count_syllables(self):
        assert count_syllables("cat") == 1
        assert count_syllables("payment") == 2
        assert count_syllables("information") == 4
        assert count_syllables("-") == 1

    def test_reading_level_empty_text(self):
        assert reading_level("") == 12

    def test_reading_level_simple_text_clamped(self):
        assert reading_level("The cat sat. The dog ran.") == 1

    def test_reading_level_complex_text_clamped(self):
        text = (
            "Notwithstanding administrative considerations, eligibility determinations "
            "necessitate comprehensive documentation substantiating extraordinary "
            "circumstances affecting intergovernmental responsibilities."
        )
        assert reading_level(text) == 12

    def test_content_hash_normalises_case_and_punctuation(self):
        assert content_hash("Apply now!") == content_hash("apply   NOW")
        assert content_hash("") is None

    def test_search_keywords_skip_stop_words(self):
        keywords = search_keywords("Carer payment information about carer payment rates")
        assert keywords[:2] == ["carer", "payment"]
        assert "information" not in keywords
        assert "about" not in keywords

    def test_popularity_score(self):
        assert popularity_score(1, 10, False, False, False, False) == 100
        assert popularity_score(4, 10, False, False, False, False) == 70
        assert popularity_score(3, 100, True, False, True, False) == 100
        assert popularity_score(0, 10, False, True, False, False) == 100
