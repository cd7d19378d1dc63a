"""
Shared utilities for paperbuild.

Common functionality used across contexts:
- Logger setup and build event logging
- LaTeX text helpers
- PDF inspection
- Timestamps
"""

from paperbuild.utils.timestamp import format_timestamp, now, now_exact

__all__ = ["format_timestamp", "now", "now_exact"]
