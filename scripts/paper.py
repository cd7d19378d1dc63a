#!/usr/bin/env python3
"""
Manuscript Build CLI

Checks, compiles, verifies and publishes the LaTeX manuscript described by
the checked-in build configuration (paper.yaml).

Commands:
    check   - Check that every citation and figure reference resolves
    build   - Check, then compile the manuscript to PDF
    verify  - Build twice and compare the PDFs
    publish - Publish the built PDF to the publish branch
    ci      - Check, build and (optionally) publish in one run
    events  - Show recent build events

Examples:\n

    paper.py check                             # Reference checks only

    paper.py build --verbose                   # Build with compiler output in the log

    paper.py build --config paper/paper.yaml   # Use a specific configuration

    paper.py publish --no-push                 # Commit to the publish branch without pushing

    paper.py ci --publish                      # What CI runs on the default branch
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from paperbuild.contexts.publishing import publish_pdf
from paperbuild.contexts.publishing.exceptions import PublishError
from paperbuild.contexts.rendering import (
    BuildConfig,
    build_manuscript,
    load_build_config,
    verify_determinism,
)
from paperbuild.contexts.rendering.exceptions import BuildConfigError
from paperbuild.contexts.sources import ReferenceReport, check_references
from paperbuild.contexts.sources.exceptions import ManuscriptSourceError
from paperbuild.utils.event_logging import get_recent_events
from paperbuild.utils.timestamp import format_timestamp

load_dotenv()
PROJECT_ROOT = Path(os.getenv("PROJECT_ROOT", Path.cwd()))

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Build configuration file (default: $PAPER_CONFIG or ./paper.yaml)",
    ),
]
MainOption = Annotated[
    Optional[str],
    typer.Option(
        "--main",
        "-m",
        help="Override the main .tex file (relative to the config file)",
    ),
]
EngineOption = Annotated[
    Optional[str],
    typer.Option(
        "--engine",
        "-e",
        help="Override the LaTeX engine (pdflatex, xelatex, lualatex)",
    ),
]


def display_path(path: Path) -> str:
    """Return path relative to PROJECT_ROOT for cleaner display."""
    try:
        return str(Path(path).resolve().relative_to(PROJECT_ROOT.resolve()))
    except ValueError:
        return str(path)


def _load_config(
    config_path: Optional[Path], main: Optional[str] = None, engine: Optional[str] = None
) -> BuildConfig:
    overrides = {}
    if main:
        overrides["main"] = main
    if engine:
        overrides["engine"] = engine

    try:
        return load_build_config(config_path, overrides=overrides or None)
    except BuildConfigError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _run_checks(config: BuildConfig, verbose: bool = False) -> ReferenceReport:
    """Run reference checks and print a summary; exits 1 if the sources cannot be read."""
    typer.secho(f"\nChecking references: {config.document}", fg=typer.colors.BLUE, bold=True)
    typer.echo("")

    try:
        report = check_references(config)
    except (ManuscriptSourceError, FileNotFoundError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    if report.is_valid:
        typer.secho("✓ References resolve", fg=typer.colors.GREEN, bold=True)
    else:
        typer.secho(
            f"✗ Reference check failed with {len(report.errors)} errors",
            fg=typer.colors.RED,
            bold=True,
        )
        for error in report.errors[:10]:
            typer.secho(f"  - {error}", fg=typer.colors.RED)
        if len(report.errors) > 10:
            typer.echo(f"  ... and {len(report.errors) - 10} more")

    typer.echo(f"  Citations: {report.citation_count}")
    typer.echo(f"  Figures: {report.figure_count}")
    typer.echo(f"  Bibliography entries: {report.entry_count}")

    if report.warnings:
        typer.secho(f"  Warnings: {len(report.warnings)}", fg=typer.colors.YELLOW)
        limit = len(report.warnings) if verbose else 5
        for warning in report.warnings[:limit]:
            typer.secho(f"  - {warning}", fg=typer.colors.YELLOW)
        if len(report.warnings) > limit:
            typer.echo(f"  ... and {len(report.warnings) - limit} more (use --verbose)")

    if report.log_dir:
        typer.echo(f"  Log: {display_path(report.log_dir / 'sources.log')}")
    typer.echo("")
    return report


def _run_build(config: BuildConfig, verbose: bool, keep_artifacts: bool):
    """Compile and print a summary; returns the CompilationResult."""
    typer.secho(f"\nBuilding: {config.document}", fg=typer.colors.BLUE, bold=True)
    typer.echo(f"Engine: {config.engine} ({config.driver})")
    if config.driver == "passes":
        typer.echo(f"Passes: {config.passes}")
    typer.echo("")

    result = build_manuscript(
        config,
        verbose=verbose,
        keep_artifacts_on_success=keep_artifacts or None,
    )

    typer.echo("")
    if result.success:
        typer.secho("✓ Build succeeded", fg=typer.colors.GREEN, bold=True)
        typer.echo(f"  Warnings: {len(result.warnings)}")
        if result.page_count is not None:
            typer.echo(f"  Pages: {result.page_count}")
        typer.echo(f"  PDF: {display_path(result.pdf_path)}")
    else:
        typer.secho(
            f"✗ Build failed with {len(result.errors)} errors", fg=typer.colors.RED, bold=True
        )
        for error in result.errors[:10]:
            typer.secho(f"  - {error}", fg=typer.colors.RED)
        if len(result.errors) > 10:
            typer.echo(f"  ... and {len(result.errors) - 10} more")

    if result.log_dir:
        typer.echo(f"  Log: {display_path(result.log_dir / 'render.log')}")
    typer.echo("")
    return result


def _run_publish(config: BuildConfig, pdf: Path, message: Optional[str], push: bool) -> None:
    typer.secho(
        f"\nPublishing: {display_path(pdf)} -> {config.publish.branch}",
        fg=typer.colors.BLUE,
        bold=True,
    )
    typer.echo("")

    try:
        result = publish_pdf(pdf, config, message=message, push=push)
    except PublishError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    if result.changed:
        typer.secho(f"✓ Published {result.commit[:12]}", fg=typer.colors.GREEN, bold=True)
    else:
        typer.secho("✓ Publish branch already up to date", fg=typer.colors.GREEN, bold=True)
    if result.pushed:
        typer.echo(f"  Pushed to {result.remote}/{result.branch}")
    elif not push:
        typer.secho("  Not pushed (--no-push)", fg=typer.colors.YELLOW)
    typer.echo("")


app = typer.Typer(
    help="Check, build, verify and publish the LaTeX manuscript",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("check")
def check_command(
    config_path: ConfigOption = None,
    main_tex: MainOption = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="List every warning"),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Treat warnings (unused entries, draft drift) as errors"),
    ] = False,
):
    """
    Check that every citation and figure reference resolves.

    Examples:\n

        $ paper.py check                         # Check the configured manuscript

        $ paper.py check --main paper/other.tex  # Check another main file

        $ paper.py check --strict                # Fail on warnings too
    """
    config = _load_config(config_path, main_tex)
    report = _run_checks(config, verbose=verbose)
    failed = not report.is_valid or (strict and bool(report.warnings))
    raise typer.Exit(code=1 if failed else 0)


@app.command("build")
def build_command(
    config_path: ConfigOption = None,
    main_tex: MainOption = None,
    engine: EngineOption = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show detailed compilation output (compiler stdout/stderr)",
        ),
    ] = False,
    keep_artifacts: Annotated[
        bool,
        typer.Option(
            "--keep-artifacts",
            "-k",
            help="Keep LaTeX artifacts (.aux, .log, etc.) on successful compilation",
        ),
    ] = False,
    skip_check: Annotated[
        bool,
        typer.Option("--skip-check", help="Compile without running the reference checks first"),
    ] = False,
):
    """
    Check references, then compile the manuscript to PDF.

    A failed reference check stops the build before the compiler runs.

    Examples:\n

        $ paper.py build                        # Check and build

        $ paper.py build --engine lualatex      # Build with another engine

        $ paper.py build --skip-check -k        # Build only, keep artifacts
    """
    config = _load_config(config_path, main_tex, engine)

    if not skip_check:
        report = _run_checks(config)
        if not report.is_valid:
            raise typer.Exit(code=1)

    result = _run_build(config, verbose, keep_artifacts)
    raise typer.Exit(code=0 if result.success else 1)


@app.command("verify")
def verify_command(
    config_path: ConfigOption = None,
    main_tex: MainOption = None,
    engine: EngineOption = None,
):
    """
    Build twice from the same sources and compare the PDFs.

    Passes when the PDFs are byte-for-byte identical or functionally identical
    (same page count and same text on every page).

    Examples:\n

        $ paper.py verify
    """
    config = _load_config(config_path, main_tex, engine)

    typer.secho(f"\nVerifying build determinism: {config.document}", fg=typer.colors.BLUE, bold=True)
    typer.echo("")

    result = verify_determinism(config)

    typer.echo("")
    if result.identical:
        typer.secho("✓ Rebuild is byte-for-byte identical", fg=typer.colors.GREEN, bold=True)
    elif result.functionally_identical:
        typer.secho("✓ Rebuild is functionally identical", fg=typer.colors.GREEN, bold=True)
        typer.echo("  (PDF bytes differ, page count and text match)")
    else:
        typer.secho("✗ Rebuild differs", fg=typer.colors.RED, bold=True)
        for reason in result.differences:
            typer.secho(f"  - {reason}", fg=typer.colors.RED)

    if result.log_dir:
        typer.echo(f"  Log: {display_path(result.log_dir / 'render.log')}")
    typer.echo("")

    raise typer.Exit(code=0 if result.is_deterministic else 1)


@app.command("publish")
def publish_command(
    config_path: ConfigOption = None,
    pdf: Annotated[
        Optional[Path],
        typer.Option("--pdf", help="PDF to publish (default: the configured build output)"),
    ] = None,
    message: Annotated[
        Optional[str],
        typer.Option("--message", help="Commit message on the publish branch"),
    ] = None,
    no_push: Annotated[
        bool,
        typer.Option("--no-push", help="Commit to the publish branch without pushing"),
    ] = False,
):
    """
    Publish the built PDF to the publish branch.

    Examples:\n

        $ paper.py publish                         # Publish build/<document>.pdf

        $ paper.py publish --no-push               # Local dry run

        $ paper.py publish --pdf out/paper.pdf     # Publish a specific file
    """
    config = _load_config(config_path)
    pdf = pdf or config.output_path / config.pdf_filename
    _run_publish(config, pdf, message, push=not no_push)


@app.command("ci")
def ci_command(
    config_path: ConfigOption = None,
    publish: Annotated[
        bool,
        typer.Option("--publish", help="Publish the PDF after a successful build"),
    ] = False,
    verify: Annotated[
        bool,
        typer.Option("--verify", help="Also check that a rebuild gives the same PDF"),
    ] = False,
):
    """
    Run the CI pipeline: check, build, then publish.

    Nothing is published when the check or the build fails.

    Examples:\n

        $ paper.py ci                     # Check and build (pull requests)

        $ paper.py ci --publish           # Check, build and publish (default branch)
    """
    config = _load_config(config_path)

    report = _run_checks(config)
    if not report.is_valid:
        raise typer.Exit(code=1)

    result = _run_build(config, verbose=False, keep_artifacts=False)
    if not result.success:
        raise typer.Exit(code=1)

    if verify:
        determinism = verify_determinism(config)
        if not determinism.is_deterministic:
            typer.secho("✗ Rebuild differs", fg=typer.colors.RED, bold=True, err=True)
            for reason in determinism.differences:
                typer.secho(f"  - {reason}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        typer.secho("✓ Rebuild matches\n", fg=typer.colors.GREEN, bold=True)

    if publish:
        _run_publish(config, result.pdf_path, message=None, push=True)


@app.command("events")
def events_command(
    n: Annotated[
        int, typer.Option("--num", "-n", min=1, help="Number of recent events to show")
    ] = 10,
    document: Annotated[
        Optional[str],
        typer.Option("--document", "-d", help="Filter to events for this document"),
    ] = None,
    event_type: Annotated[
        Optional[str],
        typer.Option("--event-type", "-e", help="Filter to events of this type"),
    ] = None,
    compact: Annotated[
        bool,
        typer.Option("--compact", help="Print one event per line (no pretty formatting)"),
    ] = False,
    relative: Annotated[
        bool,
        typer.Option("--relative", "-r", help="Show relative timestamps (e.g., '2 hours ago')"),
    ] = False,
):
    """
    Show the last n build events.

    Examples:\n

        $ paper.py events                        # Last 10 events

        $ paper.py events -n 20 -e build_failed  # Last 20 failed builds

        $ paper.py events --compact              # One line per event
    """
    try:
        events = get_recent_events(n=n, document=document, event_type=event_type)
    except ValueError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if not events:
        typer.secho("No events found", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    if not compact:
        filters = []
        if document:
            filters.append(f"document={document}")
        if event_type:
            filters.append(f"type={event_type}")

        suffix = f" [{', '.join(filters)}]" if filters else ""
        typer.secho(f"\nShowing last {len(events)} event(s){suffix}:", fg=typer.colors.BLUE)
        typer.echo("")

    for event in events:
        if relative and "timestamp" in event:
            event = {**event, "timestamp": format_timestamp(event["timestamp"], relative=True)}
        if compact:
            typer.echo(json.dumps(event))
        else:
            typer.echo(json.dumps(event, indent=2))
            typer.echo("")


if __name__ == "__main__":
    app()
