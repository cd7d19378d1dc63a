"""
Text processing utilities for LaTeX and markdown sources.

Line structure is preserved by every transformation here so that
positions can be mapped back to 1-based line numbers for diagnostics.
"""

import re
from typing import List, Tuple


def extract_balanced_delimiters(
    text: str,
    start_pos: int,
    open_char: str = "{",
    close_char: str = "}",
    escape_char: str = "\\",
) -> Tuple[str, int]:
    """
    Extract content between balanced delimiters, handling escaped characters.

    Assumes start_pos is just AFTER an opening delimiter. Counts nested delimiters
    to find the matching closing delimiter, skipping escaped characters.

    Args:
        text: Text containing delimited content
        start_pos: Position just after the opening delimiter
        open_char: Opening delimiter character (default: '{')
        close_char: Closing delimiter character (default: '}')
        escape_char: Character used for escaping (default: '\\')

    Returns:
        (content, end_pos) where:
        - content: Text between the delimiters (excluding delimiters themselves)
        - end_pos: Position after the closing delimiter

    Raises:
        ValueError: If delimiters are unmatched

    Example:
        >>> text = "foo {bar {nested} baz} qux"
        >>> extract_balanced_delimiters(text, 5)
        ('bar {nested} baz', 22)
    """
    depth = 1
    pos = start_pos

    while pos < len(text) and depth > 0:
        if text[pos] == escape_char:
            pos += 2
            continue
        elif text[pos] == open_char:
            depth += 1
        elif text[pos] == close_char:
            depth -= 1
        pos += 1

    if depth != 0:
        raise ValueError(
            f"Unmatched {open_char}{close_char} delimiters starting at position {start_pos}"
        )

    return text[start_pos : pos - 1], pos


def _comment_start(line: str) -> int:
    """Index of the first unescaped '%' in line, or -1."""
    for match in re.finditer("%", line):
        pos = match.start()
        backslashes = 0
        while pos - backslashes - 1 >= 0 and line[pos - backslashes - 1] == "\\":
            backslashes += 1
        # \% is a literal percent, \\% is a line break followed by a comment
        if backslashes % 2 == 0:
            return pos
    return -1


def strip_latex_comments(text: str) -> str:
    """
    Remove LaTeX comments while keeping escaped percentages and line breaks.

    A line "50\\% done % note" becomes "50\\% done ", so the line count and
    the column of everything before the comment stay unchanged.
    """
    stripped_lines = []
    for line in text.split("\n"):
        cut = _comment_start(line)
        stripped_lines.append(line if cut < 0 else line[:cut])
    return "\n".join(stripped_lines)


def line_number_at(text: str, pos: int) -> int:
    """1-based line number of character position pos in text."""
    return text.count("\n", 0, pos) + 1


def split_keys(raw: str, separator: str = ",") -> List[str]:
    """Split a separator-delimited key list, dropping whitespace and empty entries."""
    return [key.strip() for key in raw.split(separator) if key.strip()]

