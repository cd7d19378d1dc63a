"""
Sources context logger.

Provides logging interface for the sources context with automatic [sources] prefix.
All sources modules should import from this module, not from utils.logger directly.
"""

from pathlib import Path

from loguru import logger

from paperbuild.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[sources]"


def setup_sources_logger(log_dir: Path, console: bool = True) -> Path:
    """
    Setup logger for the sources context.

    Args:
        log_dir: Directory for this check session
        console: Also echo INFO and above to stdout

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="sources",
        log_dir=log_dir,
        extra_provenance={"Phase": "reference check"},
        console=console,
    )


def _log_info(message: str) -> None:
    """Log info message with [sources] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [sources] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [sources] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [sources] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [sources] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_check_start(document: str, main_tex: Path, log_file: Path) -> None:
    """Log start of the reference check."""
    _log_info(f"Checking references: {document}")
    _log_info(f"Log file: {log_file}")
    _log_debug(f"Main file: {main_tex}")


def log_check_result(document: str, report, elapsed_time: float) -> None:
    """
    Log reference check result with every issue.

    Args:
        document: Manuscript identifier
        report: ReferenceReport from check_manuscript()
        elapsed_time: Time taken to check
    """
    _log_debug(
        f"  {report.citation_count} citations, {report.figure_count} figures, "
        f"{report.entry_count} bibliography entries"
    )

    if report.is_valid:
        _log_success(f"{document}: all references resolve ({elapsed_time:.2f}s)")
    else:
        _log_error(f"{document}: {len(report.errors)} unresolved references ({elapsed_time:.2f}s)")
        for i, issue in enumerate(report.errors, 1):
            _log_error(f"  Issue {i}: {issue}")

    for warning in report.warnings:
        _log_warning(f"  {warning}")
