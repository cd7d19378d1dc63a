"""Custom exceptions for the sources context with file and line references."""

from pathlib import Path
from typing import Optional


class ManuscriptSourceError(Exception):
    """
    Exception raised when a manuscript source cannot be read or resolved.

    Attributes:
        message: Error description
        source_file: File in which the problem was found
        line: 1-based line number within source_file
        snippet: The LaTeX that caused the problem
    """

    def __init__(
        self,
        message: str,
        source_file: Optional[Path] = None,
        line: Optional[int] = None,
        snippet: Optional[str] = None,
    ):
        self.message = message
        self.source_file = source_file
        self.line = line
        self.snippet = snippet

        parts = [message]

        if source_file is not None:
            location = f"{source_file}:{line}" if line else str(source_file)
            parts.append(f"\nLocation: {location}")

        if snippet:
            snippet = snippet[:200] + "..." if len(snippet) > 200 else snippet
            parts.append(f"\nActual LaTeX:\n{snippet}")

        super().__init__("\n".join(parts))


class BibliographyParseError(ManuscriptSourceError):
    """Raised when a .bib file has an entry with unbalanced delimiters."""

    pass
