"""
paperbuild - manuscript build, check and publish pipeline

Drives the document pipeline of a LaTeX paper repository:
sources -> compiler -> PDF artifact -> publish branch.

Architecture:
- Sources Context: Manuscript scanning and reference checks
- Rendering Context: Build configuration, LaTeX compilation, determinism checks
- Publishing Context: PDF publication to a static hosting branch
"""

__version__ = "0.1.0"
