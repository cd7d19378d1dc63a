"""
PDF publication to a static hosting branch.

The publish branch holds only the latest PDF, an index.html landing page
and a .nojekyll marker. It is updated through a temporary git worktree so
the working branch and its checkout are never touched.
"""

import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from jinja2 import Environment, FileSystemLoader, select_autoescape

from paperbuild.contexts.publishing.exceptions import PublishError
from paperbuild.contexts.publishing.logger import (
    _log_debug,
    _log_info,
    log_publish_result,
    setup_publishing_logger,
)
from paperbuild.contexts.rendering.build_config import BuildConfig
from paperbuild.utils.event_logging import log_build_event
from paperbuild.utils.pdf_processing import file_sha256, page_count
from paperbuild.utils.timestamp import now

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))

TEMPLATES_PATH = Path(__file__).parent / "templates"
INDEX_TEMPLATE = "index.html.jinja"


@dataclass
class PublishResult:
    """
    Result of publishing a PDF.

    Attributes:
        branch: Publish branch
        remote: Remote the branch was (or would be) pushed to
        commit: Commit SHA at the branch head after publishing
        changed: Whether a new commit was created
        pushed: Whether the branch was pushed
        revision: Short SHA of the source revision that was published
    """

    branch: str
    remote: str
    commit: str
    changed: bool
    pushed: bool
    revision: str


def _run_git(args: List[str], cwd: Path, check: bool = True) -> subprocess.CompletedProcess:
    """
    Run a git command.

    Raises:
        PublishError: If git is missing, or the command fails and check is True
    """
    cmd = ["git", *args]
    try:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise PublishError("git executable not found", command=cmd) from e

    if check and result.returncode != 0:
        raise PublishError("git command failed", command=cmd, stderr=result.stderr)
    return result


def _repository_root(path: Path) -> Path:
    result = _run_git(["rev-parse", "--show-toplevel"], cwd=path)
    return Path(result.stdout.strip())


def _source_revision(repo_root: Path) -> str:
    """Short SHA of HEAD, or "unknown" in a repository without commits."""
    result = _run_git(["rev-parse", "--short", "HEAD"], cwd=repo_root, check=False)
    return result.stdout.strip() if result.returncode == 0 else "unknown"


def _local_branch_exists(repo_root: Path, branch: str) -> bool:
    result = _run_git(
        ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=repo_root, check=False
    )
    return result.returncode == 0


def _fetch_remote_branch(repo_root: Path, remote: str, branch: str) -> Optional[str]:
    """Fetch the remote publish branch; return its tracking ref, or None when there is none."""
    if _run_git(["remote", "get-url", remote], cwd=repo_root, check=False).returncode != 0:
        return None
    tracking = f"refs/remotes/{remote}/{branch}"
    result = _run_git(
        ["fetch", "--quiet", remote, f"+refs/heads/{branch}:{tracking}"], cwd=repo_root, check=False
    )
    return tracking if result.returncode == 0 else None


def _sync_local_branch(repo_root: Path, branch: str, tracking: str) -> None:
    """Base the local publish branch on the remote one unless it already contains it."""
    if not _local_branch_exists(repo_root, branch):
        _run_git(["branch", branch, tracking], cwd=repo_root)
        return

    contains_remote = _run_git(
        ["merge-base", "--is-ancestor", tracking, f"refs/heads/{branch}"],
        cwd=repo_root,
        check=False,
    )
    if contains_remote.returncode != 0:
        # Diverged or behind: the next commit goes on top of the remote head
        _log_info(f"Resetting local '{branch}' to {tracking}")
        _run_git(["branch", "--force", branch, tracking], cwd=repo_root)


def _add_worktree(repo_root: Path, worktree: Path, branch: str, remote: str) -> None:
    """Check out the publish branch into worktree, creating it as an orphan when new."""
    tracking = _fetch_remote_branch(repo_root, remote, branch)
    if tracking is not None:
        _sync_local_branch(repo_root, branch, tracking)

    if _local_branch_exists(repo_root, branch):
        _run_git(["worktree", "add", str(worktree), branch], cwd=repo_root)
        return

    _log_info(f"Creating orphan branch '{branch}'")
    _run_git(["worktree", "add", "--detach", str(worktree)], cwd=repo_root)
    _run_git(["checkout", "--orphan", branch], cwd=worktree)
    _run_git(["rm", "-r", "-f", "--quiet", "--ignore-unmatch", "."], cwd=worktree)
    # rm leaves untracked files of the detached checkout behind
    for entry in worktree.iterdir():
        if entry.name == ".git":
            continue
        if entry.is_dir():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def render_index(
    title: str, pdf_name: str, revision: str, sha256: str, pages: Optional[int]
) -> str:
    """Render the landing page that links to the published PDF."""
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_PATH)),
        autoescape=select_autoescape(["html", "jinja"]),
        keep_trailing_newline=True,
    )
    template = env.get_template(INDEX_TEMPLATE)
    return template.render(
        title=title, pdf_name=pdf_name, revision=revision, sha256=sha256, page_count=pages
    )


def publish_pdf(
    pdf_path: Path,
    config: BuildConfig,
    message: Optional[str] = None,
    push: bool = True,
    console: bool = True,
) -> PublishResult:
    """
    Publish a built PDF to the configured branch.

    Args:
        pdf_path: The PDF to publish (must exist and be non-empty)
        config: Loaded build configuration (publish section and pdf name)
        message: Commit message (default: config.publish.commit_message)
        push: Push the branch to config.publish.remote
        console: Echo log messages to stdout

    Returns:
        PublishResult

    Raises:
        PublishError: If the PDF is missing or empty, or any git step fails
    """
    pdf_path = Path(pdf_path)
    if not pdf_path.exists():
        raise PublishError(f"PDF not found: {pdf_path}")
    if pdf_path.stat().st_size == 0:
        raise PublishError(f"Refusing to publish empty PDF: {pdf_path}")

    publish = config.publish
    document = config.document
    pdf_name = config.pdf_filename

    log_dir = LOGS_PATH / f"publish_{now()}"
    setup_publishing_logger(log_dir, publish.branch, console=console)

    repo_root = _repository_root(config.root)
    revision = _source_revision(repo_root)
    _log_info(f"Publishing {pdf_name} ({revision}) to '{publish.branch}'")

    worktree = Path(tempfile.mkdtemp(prefix="paperbuild-publish-"))
    # git worktree add wants a path that does not exist yet
    worktree.rmdir()

    try:
        _add_worktree(repo_root, worktree, publish.branch, publish.remote)

        shutil.copy2(pdf_path, worktree / pdf_name)
        sha256 = file_sha256(pdf_path)
        index_html = render_index(
            title=publish.title or document,
            pdf_name=pdf_name,
            revision=revision,
            sha256=sha256,
            pages=page_count(pdf_path),
        )
        (worktree / "index.html").write_text(index_html, encoding="utf-8")
        (worktree / ".nojekyll").touch()

        _run_git(["add", "-A"], cwd=worktree)
        status = _run_git(["status", "--porcelain"], cwd=worktree)
        changed = bool(status.stdout.strip())

        if changed:
            commit_message = message or publish.commit_message.format(
                pdf_name=pdf_name, revision=revision, document=document
            )
            identity = []
            if publish.author_name:
                identity += ["-c", f"user.name={publish.author_name}"]
            if publish.author_email:
                identity += ["-c", f"user.email={publish.author_email}"]
            _run_git([*identity, "commit", "--quiet", "-m", commit_message], cwd=worktree)

        commit = _run_git(["rev-parse", "HEAD"], cwd=worktree, check=False).stdout.strip()

        pushed = False
        if push:
            _log_debug(f"Pushing '{publish.branch}' to {publish.remote}")
            _run_git(["push", publish.remote, publish.branch], cwd=worktree)
            pushed = True
    finally:
        _run_git(["worktree", "remove", "--force", str(worktree)], cwd=repo_root, check=False)
        _run_git(["worktree", "prune"], cwd=repo_root, check=False)

    result = PublishResult(
        branch=publish.branch,
        remote=publish.remote,
        commit=commit,
        changed=changed,
        pushed=pushed,
        revision=revision,
    )
    log_publish_result(document, result)

    log_build_event(
        event_type="publish_completed" if changed else "publish_skipped",
        document=document,
        source="publishing",
        branch=publish.branch,
        commit=commit,
        revision=revision,
        pushed=pushed,
        sha256=sha256,
    )

    return result
