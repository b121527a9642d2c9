#!/usr/bin/env python3
"""
mb: CLI for the membank project memory bank

Usage:
    mb resolve                     # Which project am I in?
    mb detect --json               # Full detection report with signals
    mb use my-project              # Pin the project for this directory
    mb save notes.md --content ... # Route and merge content into the bank
    mb init                        # Create the six core files
    mb projects                    # List projects
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as MEMBANK_VERSION


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def format_table(rows: list[dict], columns: list[str]) -> str:
    """Format rows as a simple left-aligned table."""
    if not rows:
        return ""

    widths = {col: len(col) for col in columns}
    for row in rows:
        for col in columns:
            widths[col] = max(widths[col], len(str(row.get(col, ""))))

    header = "  ".join(col.upper().ljust(widths[col]) for col in columns)
    separator = "  ".join("-" * widths[col] for col in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(str(row.get(col, "")).ljust(widths[col]) for col in columns))
    return "\n".join(lines)


class _Runtime:
    """Collaborators for one CLI invocation (one session)."""

    def __init__(self, working_directory: Path, persist: bool):
        from .bank import MemoryBank
        from .config import ConfigurationError, get_bank_root, get_state_path, load_settings
        from .context_cache import ContextCache
        from .store import InMemoryContextStore, JsonFileContextStore

        try:
            self.settings = load_settings(working_directory)
        except ConfigurationError as e:
            raise ClickException(f"Invalid configuration: {e}") from e

        self.working_directory = working_directory
        self.bank = MemoryBank(get_bank_root())
        self.state_path = get_state_path() if persist else None
        self.store = (
            JsonFileContextStore(self.state_path) if persist else InMemoryContextStore()
        )
        self.cache = ContextCache.from_settings(self.store, self.settings, registry=self.bank)


def _runtime(ctx: click.Context, directory: str | None) -> _Runtime:
    from .config import get_default_working_directory

    working_directory = Path(directory).resolve() if directory else get_default_working_directory()
    return _Runtime(working_directory, persist=ctx.obj.get("persist", True))


def _dump(model) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _directory_option(func):
    return click.option(
        "--dir",
        "directory",
        type=click.Path(file_okay=False),
        help="Working directory to resolve from (default: current directory)",
    )(func)


def _json_option(func):
    return click.option("--json", "as_json", is_flag=True, help="Output as JSON")(func)


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=MEMBANK_VERSION, prog_name="mb")
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="MEMBANK_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.option(
    "--no-persist",
    is_flag=True,
    help="Keep project context in memory only; do not read or write the state file",
)
@click.pass_context
def cli(ctx: click.Context, quiet: bool, no_persist: bool):
    """mb: project-aware memory bank.

    Content is stored per project in six core files. The project is detected
    from the working directory (git root, package manifest, directory shape)
    unless pinned with `mb use`.

    \b
    Identity:
      mb resolve                  # Project name for this directory
      mb detect --json            # Signals, confidence, isolation report
      mb use NAME                 # Pin the project explicitly
      mb isolation NAME           # Check for confusingly similar projects

    \b
    Content:
      mb classify --content="..." # Where would this text go?
      mb save notes.md --content="..."
      mb init                     # Create the six core files
      mb projects                 # List projects
    """
    from ._logging import set_quiet_mode

    ctx.ensure_object(dict)
    ctx.obj["persist"] = not no_persist

    if quiet:
        set_quiet_mode(True)


# ─────────────────────────────────────────────────────────────────────────────
# Identity commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@_directory_option
@_json_option
@click.pass_context
def resolve(ctx: click.Context, directory: str | None, as_json: bool):
    """Print the canonical project name for the working directory."""
    from .core import resolve_project_name

    rt = _runtime(ctx, directory)
    name = run_async(resolve_project_name(rt.cache, rt.working_directory))

    if as_json:
        context = rt.cache.peek()
        output(_dump(context) if context else {"project_name": name}, as_json=True)
    else:
        output(name)


@cli.command()
@_directory_option
@click.option("--name", "preferred_name", help="Adopt this name instead of detecting")
@click.option("--no-isolation", is_flag=True, help="Skip the isolation check")
@_json_option
@click.pass_context
def detect(
    ctx: click.Context,
    directory: str | None,
    preferred_name: str | None,
    no_isolation: bool,
    as_json: bool,
):
    """Run project detection and show the evidence."""
    from .core import detect_project_context
    from .normalizer import NormalizationError

    rt = _runtime(ctx, directory)
    try:
        report = run_async(
            detect_project_context(
                rt.cache,
                rt.bank,
                rt.working_directory,
                preferred_name=preferred_name,
                validate_isolation=not no_isolation,
            )
        )
    except NormalizationError as e:
        raise UsageError(str(e)) from e

    if as_json:
        output(_dump(report), as_json=True)
        return

    detection = report.detection
    click.echo(f"Project:    {detection.project_name}")
    click.echo(f"Method:     {detection.detection_method}")
    click.echo(f"Confidence: {detection.confidence}%")
    click.echo(f"In bank:    {'yes' if report.exists_in_bank else 'no'}")

    if detection.signals:
        click.echo("\nSignals:")
        rows = [
            {"kind": s.kind, "candidate": s.candidate_name, "confidence": s.confidence}
            for s in detection.signals
        ]
        click.echo(format_table(rows, ["kind", "candidate", "confidence"]))

    if report.isolation:
        click.echo(f"\nIsolation score: {report.isolation.isolation_score}")
        for warning in report.isolation.warnings:
            click.echo(f"Warning: {warning}", err=True)


@cli.command()
@click.argument("project_name")
@_directory_option
@_json_option
@click.pass_context
def use(ctx: click.Context, project_name: str, directory: str | None, as_json: bool):
    """Pin PROJECT_NAME as the project for the working directory."""
    from .core import assert_project_context
    from .normalizer import NormalizationError

    rt = _runtime(ctx, directory)
    try:
        context = run_async(
            assert_project_context(rt.cache, project_name, rt.working_directory)
        )
    except NormalizationError as e:
        raise UsageError(str(e)) from e

    if as_json:
        output(_dump(context), as_json=True)
    else:
        click.echo(f"Using project: {context.project_name}")


@cli.command()
@click.argument("project_name")
@_directory_option
@_json_option
@click.pass_context
def isolation(ctx: click.Context, project_name: str, directory: str | None, as_json: bool):
    """Check PROJECT_NAME against existing projects."""
    from .core import check_isolation
    from .normalizer import NormalizationError

    rt = _runtime(ctx, directory)
    try:
        report = run_async(check_isolation(project_name, directory, rt.bank))
    except NormalizationError as e:
        raise UsageError(str(e)) from e

    if as_json:
        output(_dump(report), as_json=True)
        return

    status = "ok" if report.is_valid else "conflicts"
    click.echo(f"{report.project_name}: score {report.isolation_score} ({status})")
    for warning in report.warnings:
        click.echo(f"  {warning}")


# ─────────────────────────────────────────────────────────────────────────────
# Content commands
# ─────────────────────────────────────────────────────────────────────────────


def _read_content(content: str | None, file: str | None) -> str:
    if content is not None and file is not None:
        raise UsageError("--content and --file are mutually exclusive")
    if content is not None:
        return content
    if file is not None:
        try:
            return Path(file).read_text(encoding="utf-8")
        except OSError as e:
            raise ClickException(f"Could not read {file}: {e}") from e
    if not sys.stdin.isatty():
        return sys.stdin.read()
    raise UsageError("Provide --content, --file, or pipe content on stdin")


@cli.command()
@click.option("--content", help="Text to classify")
@click.option("--file", "file", type=click.Path(dir_okay=False), help="Read text from a file")
@click.option("--name", "file_name", default="", help="Candidate filename")
@_json_option
def classify(content: str | None, file: str | None, file_name: str, as_json: bool):
    """Show the category and target file for a piece of text."""
    from .classifier import classify_content
    from .router import route_content

    text = _read_content(content, file)
    if not file_name and file:
        file_name = Path(file).name

    result = classify_content(file_name, text)
    decision = route_content(file_name, text)
    if as_json:
        payload = _dump(result)
        payload["keywords"] = sorted(result.keywords)
        payload["decision"] = _dump(decision)
        output(payload, as_json=True)
        return

    click.echo(f"Category:   {result.category}")
    click.echo(f"Target:     {decision.target_file}")
    click.echo(f"Strategy:   {decision.merge_strategy}")
    click.echo(f"Confidence: {decision.confidence}%")
    if result.matched_terms:
        click.echo(f"Matched:    {', '.join(result.matched_terms)}")


@cli.command()
@click.argument("file_name")
@click.option("--content", help="Text to save")
@click.option("--file", "file", type=click.Path(dir_okay=False), help="Read text from a file")
@click.option("--project", "project_name", help="Project name (skips detection)")
@_directory_option
@_json_option
@click.pass_context
def save(
    ctx: click.Context,
    file_name: str,
    content: str | None,
    file: str | None,
    project_name: str | None,
    directory: str | None,
    as_json: bool,
):
    """Route content for FILE_NAME into the project's memory bank."""
    from .bank import BankError
    from .core import save_content
    from .normalizer import NormalizationError

    text = _read_content(content, file)
    rt = _runtime(ctx, directory)
    try:
        result = run_async(
            save_content(
                rt.cache,
                rt.bank,
                file_name,
                text,
                working_directory=rt.working_directory,
                project_name=project_name,
            )
        )
    except NormalizationError as e:
        raise UsageError(str(e)) from e
    except (BankError, OSError) as e:
        raise ClickException(str(e)) from e

    if as_json:
        output(_dump(result), as_json=True)
        return

    click.echo(f"{result.action.capitalize()}: {result.project_name}/{result.target_file}")
    click.echo(f"Strategy: {result.decision.merge_strategy} ({result.decision.confidence}%)")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)


@cli.command()
@click.option("--project", "project_name", help="Project name (skips detection)")
@click.option("--force", is_flag=True, help="Overwrite existing core files with templates")
@_directory_option
@_json_option
@click.pass_context
def init(
    ctx: click.Context,
    project_name: str | None,
    force: bool,
    directory: str | None,
    as_json: bool,
):
    """Create the six core files for the project."""
    from .bank import BankError
    from .core import init_project
    from .normalizer import NormalizationError

    rt = _runtime(ctx, directory)
    try:
        result = run_async(
            init_project(
                rt.cache,
                rt.bank,
                working_directory=rt.working_directory,
                project_name=project_name,
                force=force,
            )
        )
    except NormalizationError as e:
        raise UsageError(str(e)) from e
    except (BankError, OSError) as e:
        raise ClickException(str(e)) from e

    if as_json:
        output(_dump(result), as_json=True)
        return

    click.echo(f"Project: {result.project_name}")
    for name in result.created_files:
        click.echo(f"  created  {name}")
    for name in result.existing_files:
        click.echo(f"  kept     {name}")


@cli.command()
@_json_option
@click.pass_context
def projects(ctx: click.Context, as_json: bool):
    """List projects, most recently modified first."""
    from .core import list_projects

    rt = _runtime(ctx, None)
    names = run_async(list_projects(rt.bank))

    if as_json:
        output(names, as_json=True)
    elif not names:
        click.echo(f"No projects in {rt.bank.root}")
    else:
        for name in names:
            click.echo(name)


@cli.command()
@_directory_option
@_json_option
@click.pass_context
def status(ctx: click.Context, directory: str | None, as_json: bool):
    """Show storage locations, settings and the last resolved project."""
    from .store import PersistenceFailure

    rt = _runtime(ctx, directory)
    try:
        current = run_async(rt.store.get_current_project())
    except PersistenceFailure as e:
        raise ClickException(str(e)) from e

    data = {
        "bank_root": str(rt.bank.root),
        "state_path": str(rt.state_path) if rt.state_path else None,
        "settings_file": str(rt.settings.source_file) if rt.settings.source_file else None,
        "auto_select_on_low_confidence": rt.settings.auto_select_on_low_confidence,
        "session_ttl_hours": rt.settings.session_ttl.total_seconds() / 3600,
        "persisted_ttl_days": rt.settings.persisted_ttl.total_seconds() / 86400,
        "current_project": current.project_name if current else None,
    }

    if as_json:
        output(data, as_json=True)
        return

    for key, value in data.items():
        click.echo(f"{key.replace('_', ' ').capitalize():32} {value if value is not None else '-'}")


def main():
    """Entry point for mb CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()
