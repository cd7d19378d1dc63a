"""
Integration tests for the scripts/paper.py command line.
"""

import importlib.util
import shutil
import subprocess
from pathlib import Path

import pytest
from typer.testing import CliRunner

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "paper.py"

skip_if_no_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

PUBLISH_YAML = """publish:
  branch: gh-pages
  author_name: Publisher Bot
  author_email: bot@example.org
"""


def git(*args, cwd):
    result = subprocess.run(
        ["git", "-c", "user.name=Test Author", "-c", "user.email=author@example.org", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture(scope="module")
def app():
    module_spec = importlib.util.spec_from_file_location("paper_cli", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module.app


@pytest.fixture
def runner():
    return CliRunner()


@pytest.mark.integration
def test_check_passes(app, runner, paper_config_path):
    result = runner.invoke(app, ["check", "--config", str(paper_config_path)])

    assert result.exit_code == 0, result.output
    assert "References resolve" in result.output


@pytest.mark.integration
def test_check_fails_on_dangling_citation(app, runner, paper_config_path):
    intro = paper_config_path.parent / "sections" / "intro.tex"
    intro.write_text(intro.read_text() + "\\cite{ghost}\n")

    result = runner.invoke(app, ["check", "--config", str(paper_config_path)])

    assert result.exit_code == 1
    assert "ghost" in result.output


@pytest.mark.integration
def test_strict_check_fails_on_warnings(app, runner, paper_config_path):
    bib = paper_config_path.parent / "refs.bib"
    bib.write_text(bib.read_text() + "@misc{unused, title={x}}\n")

    lenient = runner.invoke(app, ["check", "--config", str(paper_config_path)])
    strict = runner.invoke(app, ["check", "--strict", "--config", str(paper_config_path)])

    assert lenient.exit_code == 0
    assert strict.exit_code == 1


@pytest.mark.integration
def test_invalid_config_exits_with_error(app, runner, paper_config_path):
    result = runner.invoke(
        app, ["build", "--config", str(paper_config_path), "--engine", "tectonic"]
    )

    assert result.exit_code == 1
    assert "Unknown LaTeX engine" in result.output


@pytest.mark.integration
def test_events_after_check(app, runner, paper_config_path):
    empty = runner.invoke(app, ["events"])
    assert empty.exit_code == 1

    runner.invoke(app, ["check", "--config", str(paper_config_path)])
    result = runner.invoke(app, ["events", "--compact", "-e", "check_completed"])

    assert result.exit_code == 0
    assert '"event_type": "check_completed"' in result.output


@pytest.fixture
def paper_repo(paper_config_path, tmp_path):
    """The manuscript committed to a git repository with a bare 'origin' remote."""
    paper_dir = paper_config_path.parent
    remote = tmp_path / "remote.git"
    remote.mkdir()
    paper_config_path.write_text(paper_config_path.read_text() + PUBLISH_YAML)

    git("init", "--quiet", "--bare", cwd=remote)
    git("init", "--quiet", cwd=paper_dir)
    git("checkout", "--quiet", "-b", "main", cwd=paper_dir)
    git("add", "-A", cwd=paper_dir)
    git("-c", "commit.gpgsign=false", "commit", "--quiet", "-m", "Add manuscript", cwd=paper_dir)
    git("remote", "add", "origin", str(remote), cwd=paper_dir)
    return paper_dir


def remote_branches(paper_repo):
    return git("branch", "--list", cwd=paper_repo.parent / "remote.git")


@pytest.mark.integration
def test_build_succeeds(app, runner, paper_config_path, fake_toolchain):
    fake = fake_toolchain()

    result = runner.invoke(app, ["build", "--config", str(paper_config_path)])

    assert result.exit_code == 0, result.output
    assert "Build succeeded" in result.output
    assert fake.calls == ["pdflatex", "bibtex", "pdflatex"]
    assert (paper_config_path.parent / "build" / "main.pdf").exists()


@pytest.mark.integration
def test_build_fails_on_compiler_error(app, runner, paper_config_path, fake_toolchain):
    fake_toolchain(fail_engine=True)

    result = runner.invoke(app, ["build", "--config", str(paper_config_path)])

    assert result.exit_code == 1
    assert "Build failed" in result.output
    assert not (paper_config_path.parent / "build" / "main.pdf").exists()


@pytest.mark.integration
def test_build_stops_on_dangling_citation(app, runner, paper_config_path, fake_toolchain):
    fake = fake_toolchain()
    intro = paper_config_path.parent / "sections" / "intro.tex"
    intro.write_text(intro.read_text() + "\\cite{ghost}\n")

    result = runner.invoke(app, ["build", "--config", str(paper_config_path)])

    assert result.exit_code == 1
    assert fake.calls == []


@pytest.mark.integration
def test_verify_identical_rebuild(app, runner, paper_config_path, fake_toolchain):
    fake_toolchain()

    result = runner.invoke(app, ["verify", "--config", str(paper_config_path)])

    assert result.exit_code == 0, result.output
    assert "byte-for-byte identical" in result.output


@pytest.mark.integration
@skip_if_no_git
def test_ci_publish_pushes_to_remote(app, runner, paper_repo, fake_toolchain):
    fake_toolchain()
    config = str(paper_repo / "paper.yaml")

    result = runner.invoke(app, ["ci", "--publish", "--config", config])

    assert result.exit_code == 0, result.output
    assert "gh-pages" in remote_branches(paper_repo)
    files = git("ls-tree", "--name-only", "gh-pages", cwd=paper_repo.parent / "remote.git")
    assert "main.pdf" in files.splitlines()


@pytest.mark.integration
@skip_if_no_git
def test_ci_publishes_nothing_when_check_fails(app, runner, paper_repo, fake_toolchain):
    fake = fake_toolchain()
    intro = paper_repo / "sections" / "intro.tex"
    intro.write_text(intro.read_text() + "\\cite{ghost}\n")

    result = runner.invoke(app, ["ci", "--publish", "--config", str(paper_repo / "paper.yaml")])

    assert result.exit_code == 1
    assert fake.calls == []
    assert "gh-pages" not in git("branch", "--list", cwd=paper_repo)
    assert "gh-pages" not in remote_branches(paper_repo)


@pytest.mark.integration
@skip_if_no_git
def test_ci_publishes_nothing_when_build_fails(app, runner, paper_repo, fake_toolchain):
    fake_toolchain(fail_engine=True)

    result = runner.invoke(app, ["ci", "--publish", "--config", str(paper_repo / "paper.yaml")])

    assert result.exit_code == 1
    assert "gh-pages" not in git("branch", "--list", cwd=paper_repo)
    assert "gh-pages" not in remote_branches(paper_repo)


@pytest.mark.integration
@skip_if_no_git
def test_publish_after_dry_run_pushes(app, runner, paper_repo, fake_toolchain):
    fake_toolchain()
    config = str(paper_repo / "paper.yaml")
    assert runner.invoke(app, ["build", "--config", config]).exit_code == 0

    dry = runner.invoke(app, ["publish", "--no-push", "--config", config])
    assert dry.exit_code == 0, dry.output
    assert "gh-pages" not in remote_branches(paper_repo)

    result = runner.invoke(app, ["publish", "--config", config])

    assert result.exit_code == 0, result.output
    assert "Pushed to origin/gh-pages" in result.output
    assert "gh-pages" in remote_branches(paper_repo)


@pytest.mark.integration
def test_events_rejects_unknown_type(app, runner):
    result = runner.invoke(app, ["events", "-e", "build_complete"])

    assert result.exit_code == 1
    assert "Unknown event type" in result.output
