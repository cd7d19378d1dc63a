"""
Build determinism checks.

Rebuilding unchanged sources must give the same document. Two builds are
compared byte for byte first; when the bytes differ (embedded IDs, font
subset tags) they are compared functionally: same page count and the
same text on every page.
"""

import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from paperbuild.contexts.rendering.build_config import BuildConfig
from paperbuild.contexts.rendering.compiler import compile_with_config
from paperbuild.contexts.rendering.logger import (
    _log_info,
    log_compilation_result,
    log_determinism_result,
    setup_rendering_logger,
)
from paperbuild.utils.event_logging import log_build_event
from paperbuild.utils.pdf_processing import (
    extract_page_texts,
    file_sha256,
    normalize_for_matching,
    page_count,
)
from paperbuild.utils.timestamp import now

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))


@dataclass
class DeterminismResult:
    """
    Outcome of comparing two builds of the same sources.

    Attributes:
        identical: PDFs are byte-for-byte identical
        functionally_identical: Same page count and page text (True when identical)
        first_hash: SHA-256 of the first PDF
        second_hash: SHA-256 of the second PDF
        first_page_count: Pages in the first PDF
        second_page_count: Pages in the second PDF
        first_differing_page: 1-based page whose text differs (None if none)
        differences: Human-readable reasons the builds differ
        log_dir: Directory containing both builds and the log (orchestrated runs only)
    """

    identical: bool
    functionally_identical: bool
    first_hash: Optional[str] = None
    second_hash: Optional[str] = None
    first_page_count: Optional[int] = None
    second_page_count: Optional[int] = None
    first_differing_page: Optional[int] = None
    differences: List[str] = field(default_factory=list)
    log_dir: Optional[Path] = None

    @property
    def is_deterministic(self) -> bool:
        return self.identical or self.functionally_identical


def compare_pdfs(first_pdf: Path, second_pdf: Path) -> DeterminismResult:
    """
    Compare two PDFs of the same document.

    Args:
        first_pdf: PDF from the first build
        second_pdf: PDF from the second build

    Returns:
        DeterminismResult (log_dir unset)
    """
    first_hash = file_sha256(first_pdf)
    second_hash = file_sha256(second_pdf)
    first_pages = page_count(first_pdf)
    second_pages = page_count(second_pdf)

    if first_hash == second_hash:
        return DeterminismResult(
            identical=True,
            functionally_identical=True,
            first_hash=first_hash,
            second_hash=second_hash,
            first_page_count=first_pages,
            second_page_count=second_pages,
        )

    result = DeterminismResult(
        identical=False,
        functionally_identical=False,
        first_hash=first_hash,
        second_hash=second_hash,
        first_page_count=first_pages,
        second_page_count=second_pages,
    )

    if first_pages != second_pages:
        result.differences.append(f"Page count differs: {first_pages} vs {second_pages}")
        return result

    first_texts = extract_page_texts(first_pdf)
    second_texts = extract_page_texts(second_pdf)
    for page_number, (first, second) in enumerate(zip(first_texts, second_texts), start=1):
        if normalize_for_matching(first) != normalize_for_matching(second):
            result.first_differing_page = page_number
            result.differences.append(f"Text differs on page {page_number}")
            return result

    result.functionally_identical = True
    return result


def verify_determinism(config: BuildConfig, console: bool = True) -> DeterminismResult:
    """
    Build the manuscript twice from the same sources and compare the PDFs.

    Both builds use the configured pass sequence and SOURCE_DATE_EPOCH and run
    one after the other in the same directory, since pdfTeX derives the PDF /ID
    from the output path. Each PDF is then moved to first.pdf or second.pdf in
    the timestamped log directory. Nothing is moved into the output directory.

    Args:
        config: Loaded build configuration
        console: Echo log messages to stdout

    Returns:
        DeterminismResult; a failed build yields a non-deterministic result
        whose differences carry the compiler errors
    """
    document = config.document
    log_dir = LOGS_PATH / f"determinism_{now()}"
    setup_rendering_logger(log_dir, config.engine, console=console)
    _log_info(f"Checking build determinism: {document}")

    build_dir = log_dir / "build"
    pdfs: List[Path] = []
    for run_name in ("first", "second"):
        _log_info(f"Running {run_name} build")
        start_time = time.time()
        result = compile_with_config(config, build_dir, keep_artifacts=False)
        elapsed = time.time() - start_time
        log_compilation_result(f"{document} ({run_name})", result, elapsed)
        if not result.success:
            outcome = DeterminismResult(
                identical=False,
                functionally_identical=False,
                differences=[f"{run_name} build failed: {err}" for err in result.errors[:5]],
                log_dir=log_dir,
            )
            log_determinism_result(document, outcome)
            _log_determinism_event(document, outcome)
            return outcome
        pdfs.append(Path(shutil.move(str(result.pdf_path), str(log_dir / f"{run_name}.pdf"))))

    outcome = compare_pdfs(pdfs[0], pdfs[1])
    outcome.log_dir = log_dir

    log_determinism_result(document, outcome)
    _log_determinism_event(document, outcome)
    return outcome


def _log_determinism_event(document: str, outcome: DeterminismResult) -> None:
    log_build_event(
        event_type="determinism_checked",
        document=document,
        source="rendering",
        identical=outcome.identical,
        functionally_identical=outcome.functionally_identical,
        first_hash=outcome.first_hash,
        second_hash=outcome.second_hash,
        differences=outcome.differences,
    )
