"""
Rendering Context

Responsibilities:
- Loads the checked-in build configuration
- Compiles LaTeX to PDF with latexmk or an explicit pass sequence
- Manages output files and log directories
- Parses compiler logs into errors and warnings
- Verifies that rebuilding unchanged sources gives the same PDF

Owns: LaTeX compilation, PDF generation, output management
Never: Modifies manuscript sources
"""

from paperbuild.contexts.rendering.build_config import BuildConfig, load_build_config
from paperbuild.contexts.rendering.compiler import (
    CompilationResult,
    build_manuscript,
    compile_latex,
)
from paperbuild.contexts.rendering.determinism import DeterminismResult, verify_determinism

__all__ = [
    "BuildConfig",
    "CompilationResult",
    "DeterminismResult",
    "build_manuscript",
    "compile_latex",
    "load_build_config",
    "verify_determinism",
]
