r"""
Sources Context

Responsibilities:
- Reads the manuscript, following \input, \include and \subfile
- Collects citation keys, figure references and bibliography entries
- Scans the markdown draft for pandoc citations and images
- Checks that every citation and figure reference resolves

Owns: Manuscript scanning, reference checks
Never: Modifies manuscript sources
"""

from paperbuild.contexts.sources.reference_checker import (
    ReferenceReport,
    check_manuscript,
    check_references,
)

__all__ = ["ReferenceReport", "check_manuscript", "check_references"]
