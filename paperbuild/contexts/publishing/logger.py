"""
Publishing context logger.

Provides logging interface for publishing context with automatic [publish] prefix.
"""

from pathlib import Path

from loguru import logger

from paperbuild.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[publish]"


def setup_publishing_logger(log_dir: Path, branch: str, console: bool = True) -> Path:
    """Setup logger for publishing context; returns the log file path."""
    return _setup_logger(
        context_name="publish",
        log_dir=log_dir,
        extra_provenance={"Publish branch": branch},
        console=console,
    )


def _log_info(message: str) -> None:
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_publish_result(document: str, result) -> None:
    """Log the outcome of publish_pdf() (PublishResult)."""
    if result.changed:
        _log_success(f"{document}: committed {result.commit[:12]} to '{result.branch}'")
    else:
        _log_info(f"{document}: published content unchanged on '{result.branch}', nothing to commit")

    if result.pushed:
        _log_success(f"Pushed '{result.branch}' to {result.remote}")
    else:
        _log_warning(f"Not pushed: '{result.branch}' updated locally only")
