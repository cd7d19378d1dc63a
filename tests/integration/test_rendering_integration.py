"""
Integration tests for rendering context - tests real LaTeX compilation.
"""

import shutil

import pytest

from paperbuild.contexts.rendering.build_config import load_build_config
from paperbuild.contexts.rendering.compiler import build_manuscript, compile_latex
from paperbuild.contexts.rendering.determinism import verify_determinism

PDFLATEX_AVAILABLE = shutil.which("pdflatex") is not None and shutil.which("bibtex") is not None
LATEXMK_AVAILABLE = shutil.which("latexmk") is not None

skip_if_no_pdflatex = pytest.mark.skipif(
    not PDFLATEX_AVAILABLE,
    reason="pdflatex/bibtex not installed - install TeX Live, MiKTeX, or MacTeX",
)
skip_if_no_latexmk = pytest.mark.skipif(
    not (PDFLATEX_AVAILABLE and LATEXMK_AVAILABLE), reason="latexmk not installed"
)

HELLO_TEX = r"""
\documentclass{article}
\begin{document}
See section \ref{sec:test}.
\section{Test Section}
\label{sec:test}
Hello World
\end{document}
"""


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_pdflatex
def test_compile_multipass(tmp_path):
    """Second pass resolves the cross-reference."""
    tex = tmp_path / "hello.tex"
    tex.write_text(HELLO_TEX)

    result = compile_latex(tex, tmp_path / "out", driver="passes", num_passes=2)

    assert result.success, f"Compilation failed: {result.errors}"
    assert result.pdf_path.stat().st_size > 0
    assert result.page_count == 1
    assert result.undefined_references == []


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_pdflatex
def test_compile_with_intentional_error(tmp_path):
    broken = tmp_path / "broken.tex"
    broken.write_text(
        r"""
\documentclass{article}
\begin{document}
This has an \undefinedcommand{test} that should fail.
\end{document}
"""
    )

    result = compile_latex(broken, tmp_path / "out", driver="passes", num_passes=2)

    assert result.success is False
    assert any("Undefined control sequence" in err for err in result.errors)
    assert len(result.steps) == 1


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_pdflatex
def test_build_manuscript_with_bibliography(paper_config_path):
    """The sample manuscript builds with its .bib file and figure."""
    config = load_build_config(
        paper_config_path, overrides={"passes": 3, "source_date_epoch": 1700000000}
    )

    result = build_manuscript(config, console=False)

    assert result.success, f"Build failed: {result.errors}"
    assert result.pdf_path == config.output_path / "main.pdf"
    assert result.pdf_path.stat().st_size > 0
    assert result.undefined_citations == []
    assert any(step.startswith("bibtex") for step in result.steps)


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_pdflatex
def test_rebuild_is_reproducible(paper_config_path):
    config = load_build_config(
        paper_config_path, overrides={"passes": 3, "source_date_epoch": 1700000000}
    )

    result = verify_determinism(config, console=False)

    assert result.is_deterministic, result.differences


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_latexmk
def test_latexmk_driver(paper_config_path):
    config = load_build_config(
        paper_config_path, overrides={"driver": "latexmk", "source_date_epoch": 1700000000}
    )

    result = build_manuscript(config, console=False)

    assert result.success, f"Build failed: {result.errors}"
    assert result.steps[0].startswith("latexmk")
    assert result.undefined_citations == []
