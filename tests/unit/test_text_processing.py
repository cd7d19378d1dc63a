"""
Unit tests for paperbuild.utils.text_processing.
"""

import pytest

from paperbuild.utils.text_processing import (
    extract_balanced_delimiters,
    line_number_at,
    split_keys,
    strip_latex_comments,
)


@pytest.mark.unit
class TestExtractBalancedDelimiters:
    def test_nested_braces(self):
        text = "foo {bar {nested} baz} qux"
        assert extract_balanced_delimiters(text, 5) == ("bar {nested} baz", 22)

    def test_escaped_closing_brace_is_content(self):
        text = r"a{b\}c}d"
        content, end_pos = extract_balanced_delimiters(text, 2)
        assert content == r"b\}c"
        assert text[end_pos:] == "d"

    def test_parentheses(self):
        content, _ = extract_balanced_delimiters("(key, f=(1))", 1, "(", ")")
        assert content == "key, f=(1)"

    def test_unmatched_raises(self):
        with pytest.raises(ValueError, match="Unmatched"):
            extract_balanced_delimiters("{never closed", 1)


@pytest.mark.unit
class TestStripLatexComments:
    def test_comment_removed_escaped_percent_kept(self):
        assert strip_latex_comments("50\\% done % note\nnext") == "50\\% done \nnext"

    def test_line_break_before_percent_starts_comment(self):
        # \\ is a line break, so the % after it is a real comment
        assert strip_latex_comments(r"a\\% comment") == r"a\\"

    def test_line_count_preserved(self):
        text = "% full line\n\\cite{a}\n% another"
        stripped = strip_latex_comments(text)
        assert stripped.count("\n") == text.count("\n")
        assert stripped.split("\n")[1] == r"\cite{a}"


@pytest.mark.unit
def test_line_number_at():
    text = "a\nb\nc"
    assert line_number_at(text, 0) == 1
    assert line_number_at(text, 4) == 3


@pytest.mark.unit
def test_split_keys_drops_blanks():
    assert split_keys(" a, b ,,c ") == ["a", "b", "c"]
    assert split_keys("@a; @b", separator=";") == ["@a", "@b"]

