"""
LaTeX Compilation Module

Compiles the manuscript to PDF with latexmk or with an explicit pass
sequence (engine, bibliography tool, engine...), parses the compiler log,
and moves the finished PDF into the configured output directory.
"""

import os
import re
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from paperbuild.contexts.rendering.build_config import BuildConfig
from paperbuild.contexts.rendering.logger import (
    _log_debug,
    _log_info,
    log_compilation_result,
    log_compilation_start,
    setup_rendering_logger,
)
from paperbuild.utils.event_logging import log_build_event
from paperbuild.utils.pdf_processing import file_sha256, page_count
from paperbuild.utils.timestamp import now

load_dotenv()

LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))
KEEP_LATEX_ARTIFACTS = os.getenv("KEEP_LATEX_ARTIFACTS", "false").lower() == "true"

# LaTeX intermediate files created during compilation
LATEX_ARTIFACTS = [
    ".aux",
    ".log",
    ".out",
    ".toc",
    ".lof",
    ".lot",
    ".bbl",
    ".blg",
    ".bcf",
    ".run.xml",
    ".fls",
    ".fdb_latexmk",
    ".synctex.gz",
    ".xdv",
    ".nav",
    ".snm",
]

INTERACTION_FLAGS = ["-interaction=nonstopmode", "-halt-on-error", "-file-line-error"]

LATEXMK_ENGINE_FLAGS = {"pdflatex": "-pdf", "xelatex": "-pdfxe", "lualatex": "-pdflua"}

# bibtex exits 1 for warnings only, biber exits non-zero on errors only
BIBLIOGRAPHY_FAILURE_CODES = {"bibtex": 2, "biber": 1}


@dataclass
class CompilationResult:
    """
    Result of LaTeX compilation.

    Attributes:
        success: Whether compilation succeeded
        pdf_path: Path to generated PDF (None if failed)
        stdout: Standard output from every step
        stderr: Standard error from every step
        errors: List of parsed LaTeX errors
        warnings: List of parsed LaTeX warnings
        undefined_citations: Citation keys LaTeX could not resolve
        undefined_references: Labels LaTeX could not resolve
        page_count: Number of pages in generated PDF (None if not available)
        steps: Commands that were run, in order
        compile_dir: Directory the compiler wrote into
        log_dir: Session log directory (orchestrated builds only)
    """

    success: bool
    pdf_path: Optional[Path] = None
    stdout: str = ""
    stderr: str = ""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    undefined_citations: List[str] = field(default_factory=list)
    undefined_references: List[str] = field(default_factory=list)
    page_count: Optional[int] = None
    steps: List[str] = field(default_factory=list)
    compile_dir: Optional[Path] = None
    log_dir: Optional[Path] = None


@dataclass
class LogDiagnostics:
    """Errors and warnings parsed from a LaTeX .log file."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    undefined_citations: List[str] = field(default_factory=list)
    undefined_references: List[str] = field(default_factory=list)


def _unique(items: List[str]) -> List[str]:
    """Drop duplicates, keeping first occurrence order."""
    return list(dict.fromkeys(items))


def _parse_latex_log(log_content: str) -> LogDiagnostics:
    """
    Parse LaTeX log file for errors, warnings and unresolved references.

    Args:
        log_content: Content of the .log file

    Returns:
        LogDiagnostics
    """
    errors = []
    warnings = []

    # Classic error pattern: "! Error message"
    for match in re.finditer(r"^! (.+)$", log_content, re.MULTILINE):
        errors.append(match.group(1).strip())

    # -file-line-error pattern: "./main.tex:12: Undefined control sequence."
    file_line_error = re.compile(
        r"^(?P<file>[^\s:][^:\n]*\.(?:tex|sty|cls|bbl|aux|ltx|def)):(?P<line>\d+): (?P<message>.+)$",
        re.MULTILINE,
    )
    for match in file_line_error.finditer(log_content):
        location = f"{match.group('file')}:{match.group('line')}"
        errors.append(f"{location}: {match.group('message').strip()}")

    # Fatal conditions that can appear without either prefix
    fatal_patterns = [r"Emergency stop", r"File ended while scanning use of", r"==> Fatal error occurred"]
    for pattern in fatal_patterns:
        match = re.search(rf"({pattern}.*?)$", log_content, re.MULTILINE)
        if match and not any(match.group(1).strip() in err for err in errors):
            errors.append(match.group(1).strip())

    warning_patterns = [
        r"LaTeX Warning: (.+)",
        r"Package \w+ Warning: (.+)",
        r"Class \w+ Warning: (.+)",
        r"(Overfull \\[hv]box \(.+\))",
        r"(Underfull \\[hv]box \(.+\))",
    ]
    for pattern in warning_patterns:
        for match in re.finditer(pattern, log_content, re.MULTILINE):
            warnings.append(match.group(1).strip())

    undefined_citations = re.findall(
        r"Citation [`'](?P<key>[^']+)'(?: on page \d+)? undefined", log_content
    )
    undefined_references = re.findall(
        r"Reference [`'](?P<key>[^']+)'(?: on page \d+)? undefined", log_content
    )

    return LogDiagnostics(
        errors=_unique(errors),
        warnings=_unique(warnings),
        undefined_citations=_unique(undefined_citations),
        undefined_references=_unique(undefined_references),
    )


def _remove_artifacts(compile_dir: Path, stem: str) -> None:
    """
    Remove intermediate LaTeX files for one document.

    Args:
        compile_dir: Directory the compiler wrote into
        stem: Main file name without suffix
    """
    for ext in LATEX_ARTIFACTS:
        artifact_path = compile_dir / f"{stem}{ext}"
        if artifact_path.exists():
            artifact_path.unlink()

    # \include writes one .aux per included file, mirrored into subdirectories
    for aux_file in compile_dir.rglob("*.aux"):
        aux_file.unlink()


def _mirror_source_dirs(source_dir: Path, compile_dir: Path) -> None:
    """Create compile_dir subdirectories for every source subdirectory holding .tex files."""
    for tex_file in source_dir.rglob("*.tex"):
        relative_parent = tex_file.parent.relative_to(source_dir)
        if relative_parent == Path("."):
            continue
        # Never mirror the compile directory into itself
        if compile_dir in tex_file.parents:
            continue
        (compile_dir / relative_parent).mkdir(parents=True, exist_ok=True)


def _prepend_search_path(env: Dict[str, str], name: str, directory: Path) -> None:
    """Put directory first on a kpathsea search path; the trailing separator keeps the defaults."""
    env[name] = f"{directory}{os.pathsep}{env.get(name, '')}"


def build_environment(source_dir: Path, source_date_epoch: Optional[int] = None) -> Dict[str, str]:
    """
    Child process environment for every compilation step.

    Sources, styles and bibliographies are found relative to the main file's
    directory even when the compiler runs elsewhere. A fixed SOURCE_DATE_EPOCH
    pins the PDF creation date, document ID and \\today.
    """
    env = os.environ.copy()
    for name in ("TEXINPUTS", "BIBINPUTS", "BSTINPUTS"):
        _prepend_search_path(env, name, source_dir)

    if source_date_epoch is not None:
        env["SOURCE_DATE_EPOCH"] = str(source_date_epoch)
        env["FORCE_SOURCE_DATE"] = "1"

    return env


def _latexmk_command(
    tex_file: Path,
    compile_dir: Path,
    engine: str,
    bibliography_tool: str,
    latexmkrc: Optional[Path],
) -> List[str]:
    """latexmk invocation; a checked-in latexmkrc chooses the engine itself."""
    cmd = ["latexmk"]
    if latexmkrc is not None:
        if latexmkrc.parent != tex_file.parent:
            cmd += ["-r", str(latexmkrc)]
    else:
        cmd.append(LATEXMK_ENGINE_FLAGS[engine])
    if bibliography_tool == "none":
        cmd.append("-bibtex-")
    cmd += INTERACTION_FLAGS
    cmd += [f"-outdir={compile_dir}", tex_file.name]
    return cmd


def _engine_command(tex_file: Path, compile_dir: Path, engine: str) -> List[str]:
    return [engine, *INTERACTION_FLAGS, f"-output-directory={compile_dir}", tex_file.name]


def _bibliography_command(tool: str, stem: str, source_dir: Path) -> List[str]:
    if tool == "biber":
        return ["biber", f"--input-directory={source_dir}", stem]
    return ["bibtex", stem]


def _needs_bibliography(compile_dir: Path, stem: str, tool: str) -> bool:
    """Decide from the first pass output whether the bibliography tool has work to do."""
    if tool == "biber":
        return (compile_dir / f"{stem}.bcf").exists()

    aux_path = compile_dir / f"{stem}.aux"
    if not aux_path.exists():
        return False
    aux_text = aux_path.read_text(encoding="latin-1")
    return any(token in aux_text for token in ("\\bibdata", "\\bibstyle", "\\citation"))


class _StepRunner:
    """Runs compilation steps in order, collecting output until the first failure."""

    def __init__(self, env: Dict[str, str], timeout_s: Optional[int]):
        self.env = env
        self.timeout_s = timeout_s
        self.stdout: List[str] = []
        self.stderr: List[str] = []
        self.steps: List[str] = []
        self.errors: List[str] = []

    def run(self, cmd: List[str], cwd: Path, failure_code: int = 1) -> bool:
        """Run one step; return False when it failed and the sequence must stop."""
        self.steps.append(" ".join(cmd))

        if shutil.which(cmd[0]) is None:
            self.errors.append(f"Executable not found: {cmd[0]}")
            return False

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=self.env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",  # Replace invalid UTF-8 bytes instead of crashing
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired:
            self.errors.append(f"{cmd[0]} timed out after {self.timeout_s}s")
            return False

        self.stdout.append(result.stdout)
        self.stderr.append(result.stderr)

        if result.returncode >= failure_code:
            _log_debug(f"{cmd[0]} exited with code {result.returncode}")
            return False
        return True


def compile_latex(
    tex_file: Path,
    compile_dir: Path,
    engine: str = "pdflatex",
    driver: str = "latexmk",
    num_passes: int = 2,
    bibliography_tool: str = "bibtex",
    keep_artifacts: bool = KEEP_LATEX_ARTIFACTS,
    source_date_epoch: Optional[int] = None,
    timeout_s: Optional[int] = None,
    latexmkrc: Optional[Path] = None,
) -> CompilationResult:
    """
    Compile a LaTeX file to PDF.

    Pure compilation function. The source tree is never written to: the
    compiler runs in the main file's directory and writes into compile_dir.

    Args:
        tex_file: Path to the main .tex file
        compile_dir: Output directory (created if missing)
        engine: pdflatex, xelatex or lualatex
        driver: "latexmk" for a single latexmk run, "passes" for an explicit sequence
        num_passes: Engine runs for the "passes" driver (bibliography tool runs after the first)
        bibliography_tool: bibtex, biber or none
        keep_artifacts: Keep intermediate files (default: from KEEP_LATEX_ARTIFACTS env)
        source_date_epoch: Fixed timestamp for reproducible output
        timeout_s: Per-step timeout in seconds
        latexmkrc: Checked-in latexmk configuration to honor

    Returns:
        CompilationResult with success status and diagnostic information
    """
    tex_file = Path(tex_file).resolve()
    if not tex_file.exists():
        return CompilationResult(success=False, errors=[f"TeX file not found: {tex_file}"])

    compile_dir = Path(compile_dir).resolve()
    compile_dir.mkdir(parents=True, exist_ok=True)
    source_dir = tex_file.parent
    stem = tex_file.stem

    # Missing log file -> compilation failed; existing PDF -> compilation succeeded
    for ext in [".pdf"] + LATEX_ARTIFACTS:
        old_file = compile_dir / f"{stem}{ext}"
        if old_file.exists():
            old_file.unlink()

    _mirror_source_dirs(source_dir, compile_dir)
    runner = _StepRunner(build_environment(source_dir, source_date_epoch), timeout_s)

    if driver == "latexmk":
        cmd = _latexmk_command(tex_file, compile_dir, engine, bibliography_tool, latexmkrc)
        runner.run(cmd, cwd=source_dir)
    else:
        engine_cmd = _engine_command(tex_file, compile_dir, engine)
        # First pass writes .aux, bibliography tool fills .bbl, later passes resolve references
        if runner.run(engine_cmd, cwd=source_dir):
            proceed = True
            if bibliography_tool != "none" and _needs_bibliography(
                compile_dir, stem, bibliography_tool
            ):
                proceed = runner.run(
                    _bibliography_command(bibliography_tool, stem, source_dir),
                    cwd=compile_dir,
                    failure_code=BIBLIOGRAPHY_FAILURE_CODES[bibliography_tool],
                )
                if not proceed:
                    runner.errors.append(f"{bibliography_tool} failed for {stem}")
            for _ in range(num_passes - 1):
                if not proceed:
                    break
                proceed = runner.run(engine_cmd, cwd=source_dir)

    # pdflatex writes log files in latin-1 (font metadata contains non-UTF-8)
    log_file = compile_dir / f"{stem}.log"
    diagnostics = LogDiagnostics()
    if log_file.exists():
        diagnostics = _parse_latex_log(log_file.read_text(encoding="latin-1"))

    errors = runner.errors + diagnostics.errors
    pdf_path = compile_dir / f"{stem}.pdf"

    if not pdf_path.exists():
        success = False
        if not errors:
            errors.append("PDF file was not generated")
    elif pdf_path.stat().st_size == 0:
        success = False
        errors.append("PDF file is empty")
    else:
        # A non-zero exit with a PDF and no parsed errors still counts as success
        success = len(errors) == 0

    if not keep_artifacts:
        _remove_artifacts(compile_dir, stem)

    pdf_exists = pdf_path.exists()
    return CompilationResult(
        success=success,
        pdf_path=pdf_path if pdf_exists else None,
        stdout="\n".join(runner.stdout),
        stderr="\n".join(runner.stderr),
        errors=errors,
        warnings=diagnostics.warnings,
        undefined_citations=diagnostics.undefined_citations,
        undefined_references=diagnostics.undefined_references,
        page_count=page_count(pdf_path) if pdf_exists else None,
        steps=runner.steps,
        compile_dir=compile_dir,
    )


def resolve_source_date_epoch(config: BuildConfig) -> Optional[int]:
    """
    Timestamp that pins the PDF's dates.

    The configured value wins; otherwise the time of the last commit touching
    the repository is used, so rebuilding the same commit gives the same PDF.
    """
    if config.source_date_epoch is not None:
        return int(config.source_date_epoch)

    try:
        result = subprocess.run(
            ["git", "log", "-1", "--format=%ct"],
            cwd=config.root,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None

    value = result.stdout.strip()
    if result.returncode == 0 and value.isdigit():
        return int(value)
    return None


def compile_with_config(
    config: BuildConfig, compile_dir: Path, keep_artifacts: bool = True
) -> CompilationResult:
    """Run compile_latex() with every setting taken from the build configuration."""
    return compile_latex(
        tex_file=config.main_path,
        compile_dir=compile_dir,
        engine=config.engine,
        driver=config.driver,
        num_passes=config.passes,
        bibliography_tool=config.bibliography_tool,
        keep_artifacts=keep_artifacts,
        source_date_epoch=resolve_source_date_epoch(config),
        timeout_s=config.timeout_s,
        latexmkrc=config.latexmkrc_path,
    )


def build_manuscript(
    config: BuildConfig,
    verbose: bool = False,
    keep_artifacts_on_success: Optional[bool] = None,
    console: bool = True,
) -> CompilationResult:
    """
    Build the configured manuscript with logging and organized output.

    Orchestration function that wraps compile_latex() with a timestamped log
    directory (Tier 1) and build events (Tier 2).

    On success:
        - Moves PDF to config.output_path / config.pdf_filename
        - Creates symlink in log directory pointing to PDF
        - Deletes artifacts (unless keep_artifacts_on_success)

    On failure:
        - Keeps all artifacts in the log directory's staging area for debugging
        - Publishes nothing

    Args:
        config: Loaded build configuration
        verbose: Show detailed warnings/errors in logs
        keep_artifacts_on_success: Keep intermediate files on success
                                   (default: config.keep_artifacts)
        console: Echo log messages to stdout

    Returns:
        CompilationResult with pdf_path pointing at the final PDF on success
    """
    if keep_artifacts_on_success is None:
        keep_artifacts_on_success = config.keep_artifacts

    document = config.document
    log_dir = LOGS_PATH / f"build_{now()}"
    staging_dir = log_dir / "staging"
    staging_dir.mkdir(parents=True, exist_ok=True)

    setup_rendering_logger(log_dir, config.engine, console=console)
    log_compilation_start(document, config.main_path, config.driver, config.passes, staging_dir)
    log_build_event(
        event_type="build_started",
        document=document,
        source="rendering",
        engine=config.engine,
        driver=config.driver,
        num_passes=config.passes,
    )

    start_time = time.time()
    result = compile_with_config(config, staging_dir, keep_artifacts=True)
    compilation_time_s = time.time() - start_time
    result.log_dir = log_dir

    log_compilation_result(document, result, compilation_time_s, verbose=verbose)

    if result.success:
        output_dir = config.output_path
        output_dir.mkdir(parents=True, exist_ok=True)

        final_pdf = output_dir / config.pdf_filename
        shutil.move(str(result.pdf_path), final_pdf)
        _log_info(f"PDF saved to: {final_pdf}")

        pdf_symlink = log_dir / config.pdf_filename
        if not pdf_symlink.exists():
            pdf_symlink.symlink_to(final_pdf)

        if not keep_artifacts_on_success:
            _remove_artifacts(staging_dir, config.main_path.stem)
            _log_debug("Cleaned up LaTeX artifacts.")
        else:
            _log_debug("Keeping LaTeX artifacts (keep_artifacts_on_success=True).")

        result.pdf_path = final_pdf

        log_build_event(
            event_type="build_completed",
            document=document,
            source="rendering",
            compilation_time_s=round(compilation_time_s, 2),
            warning_count=len(result.warnings),
            pdf_path=str(final_pdf),
            page_count=result.page_count,
            sha256=file_sha256(final_pdf),
        )
    else:
        _log_debug("Keeping artifacts: compilation failed")
        log_build_event(
            event_type="build_failed",
            document=document,
            source="rendering",
            compilation_time_s=round(compilation_time_s, 2),
            error_count=len(result.errors),
            errors=result.errors[:5],
        )

    return result
