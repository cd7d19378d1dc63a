"""
Shared fixtures: isolated log directories, a small manuscript tree and a fake TeX toolchain.
"""

import subprocess
from pathlib import Path

import pytest
from loguru import logger

from paperbuild.contexts.publishing import publisher
from paperbuild.contexts.rendering import compiler, determinism
from paperbuild.contexts.sources import reference_checker
from paperbuild.utils import event_logging

# Smallest valid PNG (1x1 pixel)
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d49484452000000010000000108060000001f"
    "15c4890000000d4944415478da6364f8cf500f00038601805a347d6b0000"
    "000049454e44ae426082"
)

MAIN_TEX = r"""\documentclass{article}
\usepackage{graphicx}
\graphicspath{{figures/}}
\begin{document}
\input{sections/intro}
\include{sections/results}
% \cite{commented_out}
\bibliographystyle{plain}
\bibliography{refs}
\end{document}
"""

INTRO_TEX = r"""\section{Introduction}
Layouts as code \cite{gdsfactory}.
Related tools \citep{klayout, gdstk}.
"""

RESULTS_TEX = r"""\section{Results}
\begin{figure}
\includegraphics[width=0.5\linewidth]{flow}
\end{figure}
\input{sections/intro}
"""

REFS_BIB = r"""@misc{gdsfactory,
  title = {{GDSFactory}},
  year = {2024}
}

@misc{klayout,
  title = {{KLayout}},
  year = {2024}
}

@misc{gdstk,
  title = {gdstk},
  year = {2024}
}
"""

DRAFT_MD = """---
title: Draft
---

Layouts as code [@gdsfactory].
Related tools [@klayout; @gdstk].

![Flow](figures/flow.png)
"""

PAPER_YAML = """main: main.tex
engine: pdflatex
driver: passes
passes: 2
draft: draft.md
"""

ENV_VARIABLES = (
    "PAPER_CONFIG",
    "LATEX_ENGINE",
    "KEEP_LATEX_ARTIFACTS",
    "SOURCE_DATE_EPOCH",
    "PUBLISH_BRANCH",
    "PUBLISH_REMOTE",
)


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path, monkeypatch):
    """Send session logs and build events into tmp_path and ignore any local .env overrides."""
    logs = tmp_path / "logs"
    for module in (reference_checker, compiler, determinism, publisher):
        monkeypatch.setattr(module, "LOGS_PATH", logs)
    monkeypatch.setattr(event_logging, "BUILD_EVENTS_FILE", logs / "build_events.log")

    for name in ENV_VARIABLES:
        monkeypatch.delenv(name, raising=False)

    yield logs

    # Close file sinks opened by setup_logger
    logger.remove()


@pytest.fixture
def events_file(isolated_logs) -> Path:
    return isolated_logs / "build_events.log"


def write_manuscript(paper_dir: Path) -> Path:
    """Write the sample manuscript into paper_dir and return the main .tex file."""
    (paper_dir / "sections").mkdir(parents=True, exist_ok=True)
    (paper_dir / "figures").mkdir(exist_ok=True)

    main_tex = paper_dir / "main.tex"
    main_tex.write_text(MAIN_TEX)
    (paper_dir / "sections" / "intro.tex").write_text(INTRO_TEX)
    (paper_dir / "sections" / "results.tex").write_text(RESULTS_TEX)
    (paper_dir / "refs.bib").write_text(REFS_BIB)
    (paper_dir / "figures" / "flow.png").write_bytes(PNG_BYTES)
    (paper_dir / "draft.md").write_text(DRAFT_MD)
    (paper_dir / "paper.yaml").write_text(PAPER_YAML)
    return main_tex


@pytest.fixture
def manuscript(tmp_path) -> Path:
    """Main .tex file of a valid manuscript with two sections, a figure and a .bib file."""
    return write_manuscript(tmp_path / "paper")


@pytest.fixture
def paper_config_path(manuscript) -> Path:
    return manuscript.parent / "paper.yaml"


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


TEX_TOOLS = ("pdflatex", "xelatex", "lualatex", "latexmk", "bibtex", "biber")
REAL_RUN = subprocess.run


class FakeToolchain:
    """Stand-in for subprocess.run that mimics a TeX engine and bibtex; other commands run for real."""

    def __init__(self, fail_engine=False, empty_pdf=False, log_text="This is pdfTeX\n"):
        self.fail_engine = fail_engine
        self.empty_pdf = empty_pdf
        self.log_text = log_text
        self.calls = []
        self.envs = []

    def __call__(self, cmd, **kwargs):
        if cmd[0] not in TEX_TOOLS:
            return REAL_RUN(cmd, **kwargs)

        self.calls.append(cmd[0])
        self.envs.append(kwargs.get("env", {}))

        if cmd[0] in ("pdflatex", "xelatex", "lualatex"):
            outdir = Path(next(a for a in cmd if a.startswith("-output-directory=")).split("=", 1)[1])
            stem = Path(cmd[-1]).stem
            (outdir / f"{stem}.aux").write_text("\\citation{a}\n\\bibdata{refs}\n")
            if self.fail_engine:
                (outdir / f"{stem}.log").write_text("! Undefined control sequence.\nl.3 \\foo\n")
                return subprocess.CompletedProcess(cmd, 1, stdout="error", stderr="")
            (outdir / f"{stem}.log").write_text(self.log_text)
            (outdir / f"{stem}.pdf").write_bytes(b"" if self.empty_pdf else b"%PDF-1.5 fake")

        return subprocess.CompletedProcess(cmd, 0, stdout=f"{cmd[0]} ok", stderr="")


@pytest.fixture
def fake_toolchain(monkeypatch):
    """Install a FakeToolchain for the compiler; call with FakeToolchain options."""

    def install(**kwargs):
        fake = FakeToolchain(**kwargs)
        monkeypatch.setattr(compiler.subprocess, "run", fake)
        monkeypatch.setattr(compiler.shutil, "which", lambda name: f"/usr/bin/{name}")
        return fake

    return install
