"""
Unit tests for markdown draft scanning.
"""

import pytest

from paperbuild.contexts.sources.markdown_draft import (
    extract_draft_citations,
    extract_draft_figures,
    scan_markdown_draft,
)


def keys(text):
    return [c.key for c in extract_draft_citations(text)]


@pytest.mark.unit
class TestExtractDraftCitations:
    def test_bracketed_groups(self):
        assert keys("As shown [@smith2020; @doe21, p. 3].") == ["smith2020", "doe21"]

    def test_in_text_and_suppressed_author(self):
        assert keys("@smith2020 says so, as does [-@doe21].") == ["smith2020", "doe21"]

    def test_trailing_punctuation_stripped(self):
        assert keys("Introduced by @gdsfactory.") == ["gdsfactory"]

    def test_braced_key(self):
        assert keys("See [@{weird.key:2020}].") == ["weird.key:2020"]

    def test_email_is_not_a_citation(self):
        assert keys("Contact author@example.org for data.") == []

    def test_crossrefs_are_not_citations(self):
        assert keys("See @fig:flow and @tbl:results.") == []

    def test_code_ignored(self):
        text = "Use `@decorator` here.\n\n```python\n@pytest.fixture\n```\nBut cite [@real]."
        assert keys(text) == ["real"]

    def test_front_matter_and_comments_ignored(self):
        text = "---\nauthor: '@nobody'\n---\n<!-- [@hidden] -->\nText [@real]."
        citations = extract_draft_citations(text)

        assert [c.key for c in citations] == ["real"]
        assert citations[0].line == 5


@pytest.mark.unit
class TestExtractDraftFigures:
    def test_local_images(self):
        text = '![Flow](figures/flow.png "Design flow")\n![Logo](<my figs/logo.svg>)'
        assert [f.path for f in extract_draft_figures(text)] == [
            "figures/flow.png",
            "my figs/logo.svg",
        ]

    def test_remote_images_skipped(self):
        text = "![Badge](https://img.shields.io/badge.svg)"
        assert extract_draft_figures(text) == []

    def test_line_numbers(self):
        figures = extract_draft_figures("text\n\n![a](a.png)")
        assert figures[0].line == 3


@pytest.mark.unit
def test_scan_markdown_draft(manuscript):
    draft = manuscript.parent / "draft.md"
    refs = scan_markdown_draft(draft)

    assert refs.cited_keys == {"gdsfactory", "klayout", "gdstk"}
    assert [f.path for f in refs.figures] == ["figures/flow.png"]
    assert refs.citations[0].source_file == draft.resolve()


@pytest.mark.unit
def test_scan_markdown_draft_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        scan_markdown_draft(tmp_path / "nope.md")
