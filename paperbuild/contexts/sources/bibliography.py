"""
Bibliography parsing.

Reads entry keys from BibTeX/BibLaTeX .bib files and from inline
thebibliography environments (\\bibitem). Only keys and entry types are
extracted; field values are skipped with balanced-delimiter matching.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from paperbuild.contexts.sources.exceptions import BibliographyParseError
from paperbuild.utils.text_processing import extract_balanced_delimiters, line_number_at

# Block types that look like entries but define no citable key
NON_ENTRY_TYPES = {"string", "preamble", "comment"}

ENTRY_START = re.compile(r"@\s*(?P<type>[A-Za-z]+)\s*(?P<delim>[{(])")
BIBITEM = re.compile(r"\\bibitem\s*(?:\[[^\]]*\])?\s*\{(?P<key>[^}]+)\}")

CLOSING_DELIMITER = {"{": "}", "(": ")"}


@dataclass(frozen=True)
class BibliographyEntry:
    """A citable bibliography entry."""

    key: str
    entry_type: str
    source_file: Optional[Path] = None
    line: Optional[int] = None


def parse_bib_text(text: str, source_file: Optional[Path] = None) -> List[BibliographyEntry]:
    """
    Parse entry keys from .bib content.

    Args:
        text: Content of a .bib file
        source_file: File the content came from (for diagnostics)

    Returns:
        Entries in file order, duplicates included

    Raises:
        BibliographyParseError: If an entry's delimiters are unbalanced

    Example:
        >>> parse_bib_text("@article{smith2020, title={A {B} C}}")[0].key
        'smith2020'
    """
    entries = []
    pos = 0

    while True:
        match = ENTRY_START.search(text, pos)
        if match is None:
            break

        entry_type = match.group("type").lower()
        open_char = match.group("delim")
        body_start = match.end()
        line = line_number_at(text, match.start())

        try:
            body, pos = extract_balanced_delimiters(
                text, body_start, open_char, CLOSING_DELIMITER[open_char]
            )
        except ValueError as e:
            raise BibliographyParseError(
                f"Unterminated @{entry_type} entry",
                source_file=source_file,
                line=line,
                snippet=text[match.start() : match.start() + 120],
            ) from e

        if entry_type in NON_ENTRY_TYPES:
            continue

        key = body.split(",", 1)[0].strip()
        if not key:
            raise BibliographyParseError(
                f"@{entry_type} entry has no citation key",
                source_file=source_file,
                line=line,
                snippet=body[:120],
            )

        entries.append(
            BibliographyEntry(key=key, entry_type=entry_type, source_file=source_file, line=line)
        )

    return entries


def parse_bib_file(path: Path) -> List[BibliographyEntry]:
    """Parse entry keys from a .bib file on disk."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_bib_text(text, source_file=Path(path))


def parse_bibitems(text: str, source_file: Optional[Path] = None) -> List[BibliographyEntry]:
    """Collect \\bibitem keys from an inline thebibliography environment."""
    return [
        BibliographyEntry(
            key=match.group("key").strip(),
            entry_type="bibitem",
            source_file=source_file,
            line=line_number_at(text, match.start()),
        )
        for match in BIBITEM.finditer(text)
    ]
