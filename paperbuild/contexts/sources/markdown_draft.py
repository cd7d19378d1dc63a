"""
Markdown draft scanning.

The draft carries the same prose as the LaTeX manuscript in pandoc markdown.
Citations use pandoc syntax ([@key], [@a; @b, p. 4], @key, -@key, @{key})
and figures use image links. Fenced and inline code are ignored, and
pandoc-crossref labels (@fig:..., @tbl:..., @eq:..., @sec:...) are
cross-references rather than citations.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Set

from paperbuild.contexts.sources.latex_scanner import CitationRef, FigureRef

FENCE = re.compile(r"^\s*(```|~~~)")
INLINE_CODE = re.compile(r"`[^`\n]*`")
HTML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)

# An @ preceded by a word character or '.' belongs to an e-mail address
CITATION = re.compile(
    r"(?<![\w.])-?@(?:\{(?P<braced>[^}\s]+)\}|(?P<key>[A-Za-z0-9_][\w:.#$%&+?<>~/-]*))"
)
IMAGE = re.compile(r"!\[(?P<alt>[^\]]*)\]\((?P<path><[^>]+>|[^)\s]+)(?:\s+\"[^\"]*\")?\)")

CROSSREF_PREFIXES = ("fig:", "tbl:", "eq:", "sec:", "lst:")
TRAILING_PUNCTUATION = ".,:;?!-/"
REMOTE_PREFIXES = ("http://", "https://", "data:", "ftp://")


@dataclass
class DraftReferences:
    """Citations and images found in the markdown draft."""

    draft_file: Path
    citations: List[CitationRef] = field(default_factory=list)
    figures: List[FigureRef] = field(default_factory=list)

    @property
    def cited_keys(self) -> Set[str]:
        return {c.key for c in self.citations}


def _mask_code(lines: List[str]) -> List[str]:
    """Blank out YAML front matter, fenced code blocks and inline code spans, keeping line positions."""
    masked = []
    in_fence = False
    in_front_matter = bool(lines) and lines[0].strip() == "---"
    for index, line in enumerate(lines):
        if in_front_matter:
            masked.append("")
            if index > 0 and line.strip() in ("---", "..."):
                in_front_matter = False
            continue
        if FENCE.match(line):
            in_fence = not in_fence
            masked.append("")
            continue
        masked.append("" if in_fence else INLINE_CODE.sub("", line))
    return masked


def _blank_comments(text: str) -> str:
    """Replace HTML comments with their newlines only, so line numbers survive."""
    return HTML_COMMENT.sub(lambda m: "\n" * m.group(0).count("\n"), text)


def _clean_key(key: str) -> str:
    return key.rstrip(TRAILING_PUNCTUATION)


def extract_draft_citations(text: str, source_file: Path = None) -> List[CitationRef]:
    """
    Extract pandoc citation keys from markdown.

    Example:
        >>> [c.key for c in extract_draft_citations("As shown [@smith2020; @doe21, p. 3].")]
        ['smith2020', 'doe21']
    """
    lines = _mask_code(_blank_comments(text).split("\n"))
    citations = []
    for line_number, line in enumerate(lines, start=1):
        for match in CITATION.finditer(line):
            key = match.group("braced") or _clean_key(match.group("key"))
            if not key or key.startswith(CROSSREF_PREFIXES):
                continue
            citations.append(
                CitationRef(key=key, source_file=source_file, line=line_number, command="pandoc")
            )
    return citations


def extract_draft_figures(text: str, source_file: Path = None) -> List[FigureRef]:
    """Extract local image paths from markdown image links."""
    lines = _mask_code(_blank_comments(text).split("\n"))
    figures = []
    for line_number, line in enumerate(lines, start=1):
        for match in IMAGE.finditer(line):
            path = match.group("path").strip("<>")
            if path.startswith(REMOTE_PREFIXES):
                continue
            figures.append(FigureRef(path=path, source_file=source_file, line=line_number))
    return figures


def scan_markdown_draft(draft_file: Path) -> DraftReferences:
    """
    Scan the markdown draft for citations and images.

    Raises:
        FileNotFoundError: If the draft does not exist
    """
    draft_file = Path(draft_file).resolve()
    if not draft_file.exists():
        raise FileNotFoundError(f"Markdown draft not found: {draft_file}")

    text = draft_file.read_text(encoding="utf-8", errors="replace")
    return DraftReferences(
        draft_file=draft_file,
        citations=extract_draft_citations(text, source_file=draft_file),
        figures=extract_draft_figures(text, source_file=draft_file),
    )
