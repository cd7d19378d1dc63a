"""
Rendering context logger.

Provides logging interface for rendering context with automatic [render] prefix.
All rendering modules should import from this module, not from utils.logger directly.
"""

from pathlib import Path

from loguru import logger

from paperbuild.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[render]"


def setup_rendering_logger(log_dir: Path, engine: str, console: bool = True) -> Path:
    """
    Setup logger for rendering context.

    Args:
        log_dir: Directory for this rendering session
        engine: LaTeX engine recorded in the provenance header
        console: Also echo INFO and above to stdout

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="render",
        log_dir=log_dir,
        extra_provenance={"LaTeX engine": engine},
        console=console,
    )


# Wrapper functions with automatic [render] prefix


def _log_info(message: str) -> None:
    """Log info message with [render] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [render] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [render] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [render] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [render] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level rendering-specific logging helpers


def log_compilation_start(
    document: str, tex_file: Path, driver: str, num_passes: int, working_dir: Path
) -> None:
    """Log start of compilation with context."""
    _log_info(f"Starting compilation: {document}")
    _log_info(f"Compiling in {working_dir}")
    _log_debug(f"  Source: {tex_file}")
    _log_debug(f"  Driver: {driver}")
    _log_debug(f"  Passes: {num_passes}")


def log_compilation_result(
    document: str,
    result,  # CompilationResult
    elapsed_time: float,
    verbose: bool = False,
) -> None:
    """
    Log compilation result with diagnostics.

    Args:
        document: Manuscript identifier
        result: CompilationResult from compile_latex()
        elapsed_time: Time taken to compile
        verbose: Show detailed warnings/errors (default: False)
    """
    if result.success:
        _log_success("Compilation succeeded.")
        _log_success(f"{document}: {len(result.warnings)} warnings ({elapsed_time:.2f}s)")
        if result.pdf_path:
            _log_debug(f"  PDF: {result.pdf_path}")
        if result.page_count is not None:
            _log_debug(f"  Pages: {result.page_count}")
    else:
        _log_error("Compilation failed.")
        _log_error(f"{document}: {len(result.errors)} errors ({elapsed_time:.2f}s)")
        error_limit = 10 if verbose else 5
        for i, err in enumerate(result.errors[:error_limit], 1):
            _log_error(f"  Error {i}: {err}")
        if len(result.errors) > error_limit:
            _log_error(f"  ... and {len(result.errors) - error_limit} more errors")

    if result.undefined_citations:
        _log_warning(f"Undefined citations: {', '.join(result.undefined_citations)}")
    if result.undefined_references:
        _log_warning(f"Undefined references: {', '.join(result.undefined_references)}")

    if result.warnings:
        _log_warning(f"{len(result.warnings)} warnings detected")
        warning_limit = 10 if verbose else 3
        for i, warn in enumerate(result.warnings[:warning_limit], 1):
            _log_debug(f"  Warning {i}: {warn}")
        if len(result.warnings) > warning_limit:
            _log_debug(f"  ... and {len(result.warnings) - warning_limit} more warnings")

    # Raw compiler output keeps its own formatting, one loguru record per stream
    if verbose or not result.success:
        if result.stdout:
            logger.opt(raw=True).debug(
                f"\n{'=' * 80}\nCOMPILER STDOUT:\n{'=' * 80}\n{result.stdout}\n"
            )
        if result.stderr:
            logger.opt(raw=True).debug(
                f"\n{'=' * 80}\nCOMPILER STDERR:\n{'=' * 80}\n{result.stderr}\n"
            )


def log_determinism_result(document: str, result) -> None:
    """Log the outcome of a determinism check (DeterminismResult)."""
    if result.identical:
        _log_success(f"{document}: rebuild is byte-for-byte identical")
    elif result.functionally_identical:
        _log_success(f"{document}: rebuild is functionally identical (bytes differ)")
        _log_debug(f"  First build:  {result.first_hash}")
        _log_debug(f"  Second build: {result.second_hash}")
    else:
        _log_error(f"{document}: rebuild differs")
        for reason in result.differences:
            _log_error(f"  {reason}")
