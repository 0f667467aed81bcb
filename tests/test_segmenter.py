from pipelines.segmenter import (
    ContentSegmenter,
    clean_text,
    parse_and_chunk,
    render_text,
    slugify_heading,
)

SPACECRAFT_HTML = """
<html>
<head><title>Spacecraft</title><style>body { color: red; }</style></head>
<body>
  <div class="nav">Home | Next | Previous</div>
  <div id="content">
    <h1>Spacecraft</h1>
    <p>A spacecraft   models an
       object in orbit.</p>
    <h2>Fields</h2>
    <p>Epoch and state.</p>
    <h3>Epoch</h3>
    <p>Initial epoch of the spacecraft.</p>
    <h2>Examples</h2>
    <pre>Create Spacecraft Sat;</pre>
  </div>
  <div class="footer">Copyright notice</div>
  <script>var tracking = 1;</script>
</body>
</html>
"""


class TestContentSegmenter:
    """Heading-bounded segmentation of documentation pages."""

    def segment(self, html, href="Spacecraft.html", names=None):
        return ContentSegmenter(names).segment(html, href)

    def test_one_chunk_per_heading(self):
        chunks = self.segment(SPACECRAFT_HTML)
        assert [c.id for c in chunks] == [
            "Spacecraft#spacecraft",
            "Spacecraft#fields",
            "Spacecraft#epoch",
            "Spacecraft#examples",
        ]

    def test_section_stops_at_same_level_heading(self):
        chunks = {c.id: c for c in self.segment(SPACECRAFT_HTML)}

        fields = chunks["Spacecraft#fields"].full_content
        assert fields.startswith("## Fields")
        assert "Epoch and state." in fields
        # Deeper headings stay inside the section
        assert "### Epoch" in fields
        assert "Initial epoch of the spacecraft." in fields
        assert "Create Spacecraft Sat;" not in fields

        assert chunks["Spacecraft#epoch"].full_content == "### Epoch\n\nInitial epoch of the spacecraft."

    def test_nested_heading_content_appears_in_parent_and_own_chunk(self):
        html = '<div id="content"><h2>A</h2><p>alpha</p><h3>B</h3><p>beta</p></div>'
        chunks = {c.id: c.full_content for c in self.segment(html, href="P.html")}

        assert chunks == {
            "P#a": "## A\n\nalpha\n\n### B\n\nbeta",
            "P#b": "### B\n\nbeta",
        }

    def test_top_level_section_covers_page(self):
        first = self.segment(SPACECRAFT_HTML)[0]
        assert first.full_content.startswith("# Spacecraft\n\nA spacecraft models an object in orbit.")
        assert "Create Spacecraft Sat;" in first.full_content

    def test_non_content_regions_are_removed(self):
        text = " ".join(c.full_content for c in self.segment(SPACECRAFT_HTML))
        assert "Home | Next" not in text
        assert "Copyright notice" not in text
        assert "tracking" not in text
        assert "color: red" not in text

    def test_page_name_from_mapping(self):
        chunks = self.segment(SPACECRAFT_HTML, names={"Spacecraft.html": "Spacecraft Resource"})
        assert {c.page_name for c in chunks} == {"Spacecraft Resource"}
        assert {c.href for c in chunks} == {"Spacecraft.html"}

    def test_page_name_defaults_to_href_stem(self):
        chunks = self.segment(SPACECRAFT_HTML)
        assert chunks[0].page_name == "Spacecraft"

    def test_page_without_headings_becomes_single_chunk(self):
        html = "<html><body><p>Only text here.</p><p>Second paragraph.</p></body></html>"
        chunks = self.segment(html, href="Welcome.html")

        assert len(chunks) == 1
        assert chunks[0].id == "Welcome#chunk_0"
        assert chunks[0].full_content == "Only text here.\n\nSecond paragraph."

    def test_empty_page_produces_no_chunks(self):
        assert self.segment("<html><body>   </body></html>") == []

    def test_duplicate_headings_get_unique_ids(self):
        html = """<div id="content">
            <h2>Example</h2><p>First.</p>
            <h2>Example</h2><p>Second.</p>
            <h2>Example</h2><p>Third.</p>
        </div>"""
        ids = [c.id for c in self.segment(html, href="Propagator.html")]
        assert ids == ["Propagator#example", "Propagator#example_2", "Propagator#example_3"]

    def test_heading_without_slug_uses_index(self):
        html = '<div class="content"><h2>Intro</h2><p>a</p><h2>!!!</h2><p>b</p></div>'
        ids = [c.id for c in self.segment(html, href="Page.html")]
        assert ids == ["Page#intro", "Page#chunk_1"]

    def test_body_used_when_no_content_container(self):
        html = "<html><body><h2>Overview</h2><p>Body text.</p></body></html>"
        chunks = self.segment(html, href="Overview.html")
        assert chunks[0].full_content == "## Overview\n\nBody text."

    def test_list_items_are_rendered(self):
        html = "<main><h2>Steps</h2><ul><li>One</li><li>Two</li></ul></main>"
        chunks = self.segment(html, href="Steps.html")
        assert chunks[0].full_content == "## Steps\n\n- One\n\n- Two"


def test_parse_and_chunk_uses_page_name():
    chunks = parse_and_chunk(SPACECRAFT_HTML, "Spacecraft.html", page_name="Spacecraft")
    assert len(chunks) == 4
    assert chunks[0].page_name == "Spacecraft"


def test_clean_text_collapses_whitespace_and_keeps_paragraphs():
    assert clean_text("a   b\n\n\n  c\td\n") == "a b\n\nc d"
    assert clean_text("line one\nline two") == "line one line two"
    assert clean_text("   ") == ""


def test_slugify_heading():
    assert slugify_heading("Force Model (Advanced)") == "force_model_advanced"
    assert slugify_heading("Finite-Burn Setup") == "finite-burn_setup"
    assert slugify_heading("???") == ""


def test_render_text_of_line_breaks():
    from bs4 import BeautifulSoup

    soup = BeautifulSoup("<p>first<br>second</p>", "html.parser")
    assert render_text(soup.children) == "first second"
