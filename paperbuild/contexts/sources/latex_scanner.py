"""
LaTeX manuscript scanning.

Walks a manuscript from its main file through \\input, \\include and \\subfile
and collects everything the reference checks need: citation keys, figure
paths, \\graphicspath directories, bibliography resources and \\bibitem keys.

Comments are stripped before matching, so commented-out citations and
figures are ignored, while line numbers still point at the original source.
"""

import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from paperbuild.contexts.sources.bibliography import BibliographyEntry, parse_bibitems
from paperbuild.contexts.sources.exceptions import ManuscriptSourceError
from paperbuild.contexts.sources.logger import _log_debug
from paperbuild.utils.text_processing import (
    extract_balanced_delimiters,
    line_number_at,
    split_keys,
    strip_latex_comments,
)

# natbib, biblatex and plain LaTeX citation commands
CITE_COMMANDS = (
    "cite",
    "citep",
    "citet",
    "citealp",
    "citealt",
    "citeauthor",
    "citeyear",
    "citeyearpar",
    "citenum",
    "nocite",
    "parencite",
    "textcite",
    "autocite",
    "footcite",
    "smartcite",
    "supercite",
    "fullcite",
    "Cite",
    "Citep",
    "Citet",
    "Parencite",
    "Textcite",
    "Autocite",
)


@dataclass(frozen=True)
class LaTeXPatterns:
    """Compiled patterns for the LaTeX constructs the scanner understands."""

    CITATION: re.Pattern = re.compile(
        r"\\(?P<command>"
        + "|".join(sorted(CITE_COMMANDS, key=len, reverse=True))
        + r")\*?\s*(?:\[[^\]]*\]\s*){0,2}\{(?P<keys>[^}]*)\}"
    )
    FIGURE: re.Pattern = re.compile(
        r"\\include(?:graphics|svg)\*?\s*(?:\[[^\]]*\]\s*)?\{(?P<path>[^}]+)\}"
    )
    GRAPHICSPATH: re.Pattern = re.compile(r"\\graphicspath\s*\{")
    GRAPHICSPATH_ENTRY: re.Pattern = re.compile(r"\{([^{}]*)\}")
    INCLUDE: re.Pattern = re.compile(r"\\(?P<command>input|include|subfile)\s*\{(?P<path>[^}]+)\}")
    BIBLIOGRAPHY: re.Pattern = re.compile(r"\\bibliography\s*\{(?P<files>[^}]+)\}")
    ADDBIBRESOURCE: re.Pattern = re.compile(
        r"\\addbibresource\s*(?:\[[^\]]*\]\s*)?\{(?P<file>[^}]+)\}"
    )


PATTERNS = LaTeXPatterns()


@dataclass(frozen=True)
class CitationRef:
    """One citation key at its place of use."""

    key: str
    source_file: Optional[Path] = None
    line: Optional[int] = None
    command: str = "cite"

    @property
    def location(self) -> str:
        return f"{self.source_file}:{self.line}" if self.source_file else f"line {self.line}"


@dataclass(frozen=True)
class FigureRef:
    """One figure path as written in \\includegraphics."""

    path: str
    source_file: Optional[Path] = None
    line: Optional[int] = None

    @property
    def location(self) -> str:
        return f"{self.source_file}:{self.line}" if self.source_file else f"line {self.line}"


@dataclass
class ManuscriptSources:
    """
    Everything collected from a manuscript tree.

    Attributes:
        main_file: The root .tex file
        files: Every scanned .tex file, in the order LaTeX reads them
        texts: Comment-stripped content of each scanned file
        graphics_paths: Absolute \\graphicspath directories
        bibliography_files: .bib files named by \\bibliography or \\addbibresource
        citations: Every citation key at its place of use
        figures: Every \\includegraphics path at its place of use
        bibitems: Inline \\bibitem entries
    """

    main_file: Path
    files: List[Path] = field(default_factory=list)
    texts: Dict[Path, str] = field(default_factory=dict)
    graphics_paths: List[Path] = field(default_factory=list)
    bibliography_files: List[Path] = field(default_factory=list)
    citations: List[CitationRef] = field(default_factory=list)
    figures: List[FigureRef] = field(default_factory=list)
    bibitems: List[BibliographyEntry] = field(default_factory=list)

    @property
    def root_dir(self) -> Path:
        return self.main_file.parent

    @property
    def cites_all(self) -> bool:
        """True when \\nocite{*} pulls in the whole bibliography."""
        return any(c.key == "*" for c in self.citations)

    @property
    def cited_keys(self) -> Set[str]:
        return {c.key for c in self.citations if c.key != "*"}


def extract_citations(text: str, source_file: Optional[Path] = None) -> List[CitationRef]:
    """
    Extract citation keys from comment-free LaTeX.

    Example:
        >>> [c.key for c in extract_citations(r"see \\citep[p.~3]{a, b} and \\citet{c}")]
        ['a', 'b', 'c']
    """
    citations = []
    for match in PATTERNS.CITATION.finditer(text):
        line = line_number_at(text, match.start())
        for key in split_keys(match.group("keys")):
            # Macro parameters (\newcommand{\mycite}[1]{\cite{#1}}) are not keys
            if "#" in key:
                continue
            citations.append(
                CitationRef(
                    key=key, source_file=source_file, line=line, command=match.group("command")
                )
            )
    return citations


def extract_figures(text: str, source_file: Optional[Path] = None) -> List[FigureRef]:
    """Extract \\includegraphics and \\includesvg paths from comment-free LaTeX."""
    return [
        FigureRef(
            path=match.group("path").strip(),
            source_file=source_file,
            line=line_number_at(text, match.start()),
        )
        for match in PATTERNS.FIGURE.finditer(text)
        if "#" not in match.group("path")
    ]


def extract_graphicspath(text: str) -> List[str]:
    """
    Extract directories from \\graphicspath{{dir1/}{dir2/}}.

    Example:
        >>> extract_graphicspath(r"\\graphicspath{{figures/}{img/}}")
        ['figures/', 'img/']
    """
    directories = []
    for match in PATTERNS.GRAPHICSPATH.finditer(text):
        try:
            content, _ = extract_balanced_delimiters(text, match.end())
        except ValueError:
            continue
        directories.extend(d.strip() for d in PATTERNS.GRAPHICSPATH_ENTRY.findall(content))
    return [d for d in directories if d]


def extract_bibliography_resources(text: str) -> List[str]:
    """Bibliography files named by \\bibliography{a,b} or \\addbibresource{c.bib}."""
    resources = []
    for match in PATTERNS.BIBLIOGRAPHY.finditer(text):
        for name in split_keys(match.group("files")):
            resources.append(name if name.endswith(".bib") else f"{name}.bib")
    for match in PATTERNS.ADDBIBRESOURCE.finditer(text):
        resources.append(match.group("file").strip())
    return resources


def _resolve_included(root_dir: Path, raw_path: str) -> Path:
    """Resolve an \\input path the way LaTeX does: relative to the main file, .tex by default."""
    path = Path(raw_path.strip())
    if path.suffix == "":
        path = path.with_suffix(".tex")
    return path if path.is_absolute() else root_dir / path


def _find_in_tex_tree(raw_path: str) -> Optional[Path]:
    """
    Look up an input file in the TeX installation with kpsewhich.

    Returns None when kpsewhich is unavailable or does not know the file.
    """
    kpsewhich = shutil.which("kpsewhich")
    if kpsewhich is None:
        return None

    name = raw_path.strip()
    if Path(name).suffix == "":
        name = f"{name}.tex"
    try:
        result = subprocess.run([kpsewhich, name], capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired):
        return None

    found = result.stdout.strip()
    return Path(found) if result.returncode == 0 and found else None


def scan_manuscript(main_tex: Path) -> ManuscriptSources:
    """
    Scan a manuscript tree starting at its main file.

    Args:
        main_tex: Path to the main .tex file

    Returns:
        ManuscriptSources with every collected reference

    Raises:
        ManuscriptSourceError: If the main file or an included file is missing
    """
    main_tex = Path(main_tex).resolve()
    if not main_tex.exists():
        raise ManuscriptSourceError(f"Main TeX file not found: {main_tex}")

    sources = ManuscriptSources(main_file=main_tex)
    visited: Set[Path] = set()
    _scan_file(main_tex, sources, visited)

    # Graphics and bibliography paths are relative to the main file's directory
    root = sources.root_dir
    seen_dirs: Set[Path] = set()
    for text in sources.texts.values():
        for directory in extract_graphicspath(text):
            resolved = (root / directory).resolve()
            if resolved not in seen_dirs:
                seen_dirs.add(resolved)
                sources.graphics_paths.append(resolved)
        for resource in extract_bibliography_resources(text):
            resolved = (root / resource).resolve()
            if resolved not in sources.bibliography_files:
                sources.bibliography_files.append(resolved)

    return sources


def _scan_file(tex_file: Path, sources: ManuscriptSources, visited: Set[Path]) -> None:
    """Scan one file and recurse into its includes in reading order."""
    if tex_file in visited:
        return
    visited.add(tex_file)

    raw = tex_file.read_text(encoding="utf-8", errors="replace")
    text = strip_latex_comments(raw)

    sources.files.append(tex_file)
    sources.texts[tex_file] = text
    sources.citations.extend(extract_citations(text, source_file=tex_file))
    sources.figures.extend(extract_figures(text, source_file=tex_file))
    sources.bibitems.extend(parse_bibitems(text, source_file=tex_file))

    for match in PATTERNS.INCLUDE.finditer(text):
        # Macro parameters (\newcommand{\chapterfile}[1]{\input{#1}}) are not files
        if "#" in match.group("path"):
            continue
        included = _resolve_included(sources.root_dir, match.group("path")).resolve()
        if not included.exists():
            # Installed files such as \input{glyphtounicode} are not manuscript sources
            installed = _find_in_tex_tree(match.group("path"))
            if installed is not None:
                _log_debug(f"Skipping {match.group(0)}: resolved by TeX to {installed}")
                continue
            raise ManuscriptSourceError(
                f"Included file not found: {included}",
                source_file=tex_file,
                line=line_number_at(text, match.start()),
                snippet=match.group(0),
            )
        _scan_file(included, sources, visited)
