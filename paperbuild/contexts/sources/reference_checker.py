"""
Reference checks for the manuscript and its markdown draft.

Verifies the two source-level properties of a buildable manuscript:
- every citation key resolves to a bibliography entry
- every figure reference resolves to an existing image file

Also reports softer problems as warnings: bibliography entries nobody
cites, and citations that appear in only one of the LaTeX manuscript and
the markdown draft.
"""

import os
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from dotenv import load_dotenv

from paperbuild.contexts.rendering.build_config import BuildConfig
from paperbuild.contexts.sources.bibliography import BibliographyEntry, parse_bib_file
from paperbuild.contexts.sources.latex_scanner import CitationRef, FigureRef, scan_manuscript
from paperbuild.contexts.sources.logger import (
    _log_debug,
    log_check_result,
    log_check_start,
    setup_sources_logger,
)
from paperbuild.contexts.sources.markdown_draft import scan_markdown_draft
from paperbuild.utils.event_logging import log_build_event
from paperbuild.utils.timestamp import now

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))

# Extensions graphicx tries, in order, when a figure path has none
FIGURE_EXTENSIONS = (".pdf", ".png", ".jpg", ".jpeg", ".eps", ".svg")


class IssueTemplates:
    """Centralized issue message templates (f-string style)."""

    # Errors
    DANGLING_CITATION = "Citation '{key}' at {location} has no bibliography entry"
    MISSING_FIGURE = "Figure '{path}' at {location} not found"
    MISSING_BIBLIOGRAPHY = "Bibliography file not found: {path}"
    DUPLICATE_KEY = "Bibliography key '{key}' is defined {count} times"

    # Warnings
    UNUSED_ENTRY = "Bibliography entry '{key}' is never cited"
    DRAFT_ONLY = "Citation '{key}' appears in the markdown draft but not in the manuscript"
    MANUSCRIPT_ONLY = "Citation '{key}' appears in the manuscript but not in the markdown draft"


@dataclass
class ReferenceReport:
    """
    Result of the reference checks.

    Attributes:
        main_file: Main .tex file that was checked
        dangling_citations: Citations without a bibliography entry
        missing_figures: Figure references without an existing file
        missing_bibliography_files: Named .bib files that do not exist
        duplicate_keys: Keys defined more than once across all bibliographies
        unused_entries: Entries never cited (empty when \\nocite{*} is used)
        draft_only_citations: Keys cited only in the markdown draft
        manuscript_only_citations: Keys cited only in the LaTeX manuscript
        citation_count: Number of citation uses checked
        figure_count: Number of figure references checked
        entry_count: Number of bibliography entries found
        duplicate_counts: Number of definitions of each duplicate key
        log_dir: Directory containing the check log (orchestrated runs only)
    """

    main_file: Path
    dangling_citations: List[CitationRef] = field(default_factory=list)
    missing_figures: List[FigureRef] = field(default_factory=list)
    missing_bibliography_files: List[Path] = field(default_factory=list)
    duplicate_keys: List[str] = field(default_factory=list)
    unused_entries: List[str] = field(default_factory=list)
    draft_only_citations: List[str] = field(default_factory=list)
    manuscript_only_citations: List[str] = field(default_factory=list)
    citation_count: int = 0
    figure_count: int = 0
    entry_count: int = 0
    duplicate_counts: dict = field(default_factory=dict)
    log_dir: Optional[Path] = None

    @property
    def is_valid(self) -> bool:
        """True when every reference resolves; warnings do not count."""
        return not (
            self.dangling_citations
            or self.missing_figures
            or self.missing_bibliography_files
            or self.duplicate_keys
        )

    @property
    def errors(self) -> List[str]:
        issues = [
            IssueTemplates.DANGLING_CITATION.format(key=c.key, location=c.location)
            for c in self.dangling_citations
        ]
        issues += [
            IssueTemplates.MISSING_FIGURE.format(path=f.path, location=f.location)
            for f in self.missing_figures
        ]
        issues += [
            IssueTemplates.MISSING_BIBLIOGRAPHY.format(path=p)
            for p in self.missing_bibliography_files
        ]
        issues += [
            IssueTemplates.DUPLICATE_KEY.format(key=k, count=self.duplicate_counts.get(k, 2))
            for k in self.duplicate_keys
        ]
        return issues

    @property
    def warnings(self) -> List[str]:
        issues = [IssueTemplates.UNUSED_ENTRY.format(key=k) for k in self.unused_entries]
        issues += [IssueTemplates.DRAFT_ONLY.format(key=k) for k in self.draft_only_citations]
        issues += [
            IssueTemplates.MANUSCRIPT_ONLY.format(key=k) for k in self.manuscript_only_citations
        ]
        return issues


def resolve_figure(raw_path: str, search_dirs: Sequence[Path]) -> Optional[Path]:
    """
    Resolve a figure path the way graphicx does.

    Each search directory is tried in order with the path as written and, when
    the path has no known image extension, with each of FIGURE_EXTENSIONS.

    Returns:
        The first existing file, or None
    """
    raw = Path(raw_path)
    has_known_suffix = raw.suffix.lower() in FIGURE_EXTENSIONS
    candidates = [raw] if has_known_suffix else [raw] + [
        raw.with_name(raw.name + ext) for ext in FIGURE_EXTENSIONS
    ]

    if raw.is_absolute():
        bases: Iterable[Optional[Path]] = [None]
    else:
        bases = search_dirs

    for base in bases:
        for candidate in candidates:
            path = candidate if base is None else base / candidate
            if path.is_file():
                return path
    return None


def _find_duplicates(entries: List[BibliographyEntry]) -> Counter:
    counts = Counter(entry.key for entry in entries)
    return Counter({key: count for key, count in counts.items() if count > 1})


def check_manuscript(
    main_tex: Path,
    figure_dirs: Sequence[Path] = (),
    draft: Optional[Path] = None,
) -> ReferenceReport:
    """
    Check that every citation and figure in the manuscript resolves.

    Pure check function, no logging setup or events.

    Args:
        main_tex: Main .tex file of the manuscript
        figure_dirs: Extra directories to search for figures
        draft: Markdown draft to check alongside the manuscript (optional)

    Returns:
        ReferenceReport

    Raises:
        ManuscriptSourceError: If an included file is missing or a .bib file is malformed
        FileNotFoundError: If the draft is given but does not exist
    """
    sources = scan_manuscript(main_tex)
    report = ReferenceReport(main_file=sources.main_file)

    # Bibliography entries from .bib files and inline \bibitem
    entries: List[BibliographyEntry] = list(sources.bibitems)
    for bib_file in sources.bibliography_files:
        if not bib_file.exists():
            report.missing_bibliography_files.append(bib_file)
            continue
        entries.extend(parse_bib_file(bib_file))
    known_keys = {entry.key for entry in entries}
    report.entry_count = len(entries)

    duplicates = _find_duplicates(entries)
    report.duplicate_keys = sorted(duplicates)
    report.duplicate_counts = dict(duplicates)

    # Citations
    citations = [c for c in sources.citations if c.key != "*"]
    report.citation_count = len(citations)
    report.dangling_citations = [c for c in citations if c.key not in known_keys]

    # Figures: main directory first, then \graphicspath, then configured directories
    search_dirs = [sources.root_dir, *sources.graphics_paths, *figure_dirs]
    report.figure_count = len(sources.figures)
    report.missing_figures = [
        f for f in sources.figures if resolve_figure(f.path, search_dirs) is None
    ]

    cited_keys = set(sources.cited_keys)

    if draft is not None:
        draft_refs = scan_markdown_draft(draft)
        draft_dirs = [draft_refs.draft_file.parent, *figure_dirs]

        report.citation_count += len(draft_refs.citations)
        report.dangling_citations += [
            c for c in draft_refs.citations if c.key not in known_keys
        ]
        report.figure_count += len(draft_refs.figures)
        report.missing_figures += [
            f for f in draft_refs.figures if resolve_figure(f.path, draft_dirs) is None
        ]

        report.draft_only_citations = sorted(draft_refs.cited_keys - sources.cited_keys)
        report.manuscript_only_citations = sorted(sources.cited_keys - draft_refs.cited_keys)
        cited_keys |= draft_refs.cited_keys

    if not sources.cites_all:
        report.unused_entries = sorted(known_keys - cited_keys)

    return report


def check_references(config: BuildConfig, console: bool = True) -> ReferenceReport:
    """
    Run the reference checks for a configured manuscript with logging.

    Orchestration function that wraps check_manuscript() with a timestamped
    log directory (Tier 1) and a build event (Tier 2).

    Args:
        config: Loaded build configuration
        console: Echo log messages to stdout

    Returns:
        ReferenceReport with log_dir set
    """
    log_dir = LOGS_PATH / f"check_{now()}"
    log_file = setup_sources_logger(log_dir, console=console)

    log_check_start(config.document, config.main_path, log_file)
    if config.draft_path:
        _log_debug(f"Markdown draft: {config.draft_path}")

    start_time = time.time()
    report = check_manuscript(
        config.main_path,
        figure_dirs=config.figure_paths,
        draft=config.draft_path,
    )
    elapsed = time.time() - start_time
    report.log_dir = log_dir

    log_check_result(config.document, report, elapsed)

    log_build_event(
        event_type="check_completed" if report.is_valid else "check_failed",
        document=config.document,
        source="sources",
        citation_count=report.citation_count,
        figure_count=report.figure_count,
        error_count=len(report.errors),
        warning_count=len(report.warnings),
        errors=report.errors[:5],
    )

    return report
