"""
PDF inspection utilities for build verification.

Helper functions:
    page_count: Quick page count without full extraction.
    extract_page_texts: Per-page text for functional comparison of two builds.
    file_sha256: Content hash for byte-level comparison.
    normalize_for_matching: Text normalization that ignores layout noise.
"""

import hashlib
from pathlib import Path
from typing import List, Optional, Union

import pdfplumber
from PyPDF2 import PdfReader


def page_count(pdf_path: Path) -> Optional[int]:
    """Get page count from PDF, or None if unreadable."""
    try:
        reader = PdfReader(str(pdf_path))
        return len(reader.pages)
    except Exception:
        return None


def normalize_for_matching(text: str) -> str:
    """Keep only lowercase alphanumeric characters for layout-insensitive matching."""
    return "".join(c for c in text.lower() if c.isalnum())


def extract_page_texts(pdf_path: Union[str, Path], max_pages: int = 500) -> List[str]:
    """
    Extract the text of each page, in page order.

    Args:
        pdf_path: Path to PDF file
        max_pages: Stop after this many pages

    Returns:
        List with one string per page ("" for pages without text)

    Raises:
        FileNotFoundError: If the PDF does not exist
    """
    pdf_path = Path(pdf_path)
    if not pdf_path.exists():
        raise FileNotFoundError(f"PDF not found: {pdf_path}")

    with pdfplumber.open(pdf_path) as pdf:
        return [page.extract_text() or "" for page in pdf.pages[:max_pages]]


def file_sha256(path: Path, chunk_size: int = 65536) -> str:
    """Hex SHA-256 digest of a file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
