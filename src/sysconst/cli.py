"""CLI interface for sysconst using Typer framework."""

import json as jsonlib
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError as ModelValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from sysconst import __description__, __version__
from sysconst.config import LogLevel, OutputFormat, SysconstConfig, load_config
from sysconst.generation import command_generator, generate_with_validation
from sysconst.loader import DocumentParseError, dump_document, load_document
from sysconst.validation import ValidationPipeline, ValidationResult
from sysconst.validation.framework import normalize_phases
from sysconst.versioning import BumpType, bump_version, current_version, get_history, parse_change_entry

app = typer.Typer(
    name="sysconst",
    help=__description__,
    add_completion=False,
    rich_markup_mode="rich"
)

console = Console()

PHASE_NAMES = {
    1: "Structural",
    2: "Referential",
    3: "Semantic",
    4: "Evolution",
    5: "Generation safety",
    6: "Verifiability",
}

_LOG_LEVELS = {
    LogLevel.ERROR.value: logging.ERROR,
    LogLevel.WARN.value: logging.WARNING,
    LogLevel.INFO.value: logging.INFO,
    LogLevel.DEBUG.value: logging.DEBUG,
}


def version_callback(value: bool) -> None:
    """Show version information and exit."""
    if value:
        console.print(f"sysconst version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, help="Show version and exit")
    ] = False,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Log level: error, warn, info, debug (default: from config)")
    ] = None,
) -> None:
    """sysconst - Validator for System Constitution documents."""
    ctx.obj = {"log_level": log_level}


def parse_phases(value: str) -> tuple[int, ...]:
    """Parse a phase selection: a range (``1-3``) or a list (``1,2,3``).

    Raises:
        ValueError: If the selection is malformed or names an unknown phase
    """
    value = value.strip()
    try:
        if "-" in value:
            start, end = (int(part) for part in value.split("-", 1))
            selected = list(range(start, end + 1))
        else:
            selected = [int(part) for part in value.split(",")]
    except ValueError as e:
        raise ValueError(f"Invalid phase selection '{value}'. Use a range (1-3) or a list (1,2,3)") from e
    return normalize_phases(selected)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        format="%(message)s",
        level=_LOG_LEVELS.get(level, logging.WARNING),
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_settings(ctx: typer.Context, config: Optional[Path]) -> SysconstConfig:
    """Load configuration and configure logging; exits on invalid configuration."""
    try:
        settings = load_config(config)
    except (ValueError, OSError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    override = (ctx.obj or {}).get("log_level")
    if override is not None and override not in _LOG_LEVELS:
        console.print(f"[red]Error:[/red] Invalid log level '{override}'. Must be one of: {', '.join(_LOG_LEVELS)}")
        raise typer.Exit(1)
    _configure_logging(override or settings.logging.level)
    return settings


def _resolve_format(format: Optional[str], settings: SysconstConfig) -> str:
    valid_formats = [f.value for f in OutputFormat]
    format = format or settings.output.format
    if format not in valid_formats:
        console.print(f"[red]Error:[/red] Invalid format '{format}'. Must be one of: {', '.join(valid_formats)}")
        raise typer.Exit(1)
    return format


def _run_validation(path: Path, phases, strict: bool) -> ValidationResult:
    try:
        return ValidationPipeline(phases, strict).validate_file(path)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _output_result(result: ValidationResult, phases: tuple[int, ...], format: str, quiet: bool) -> None:
    """Render a validation result in the requested format."""
    if format == "json":
        print(jsonlib.dumps(result.to_dict(), indent=2))
        return

    if format == "markdown":
        console.print("# Validation Report")
        console.print(f"**Status:** {'ok' if result.ok else 'failed'}")
        console.print(f"**Phase:** {result.phase}")
        console.print(f"**Exit Code:** {result.exit_code}")
        console.print()
        for title, issues in (("Errors", result.errors), ("Warnings", result.warnings)):
            if issues:
                console.print(f"## {title}")
                for issue in issues:
                    location = f" (`{issue.location}`)" if issue.location else ""
                    console.print(f"- **{issue.code.value}** {escape(issue.message)}{escape(location)}")
                console.print()
        return

    if not quiet:
        for phase in (p for p in phases if p <= result.phase):
            name = PHASE_NAMES[phase]
            if any(issue.phase == phase for issue in result.errors):
                console.print(f"[red]✗ Phase {phase}: {name} validation failed[/red]")
            elif any(issue.phase == phase for issue in result.warnings):
                console.print(f"[yellow]⚠ Phase {phase}: {name} validation passed with warnings[/yellow]")
            else:
                console.print(f"[green]✓ Phase {phase}: {name} validation passed[/green]")

    issues = result.errors if quiet else result.findings
    if issues:
        issues_table = Table()
        issues_table.add_column("Code", style="cyan", no_wrap=True)
        issues_table.add_column("Level", style="white")
        issues_table.add_column("Message", style="white")
        issues_table.add_column("Location", style="dim")

        for issue in issues:
            level_color = "red" if issue.is_hard else "yellow"
            message = escape(issue.message)
            if issue.suggestion:
                message += f"\n[dim]Fix: {escape(issue.suggestion)}[/dim]"
            issues_table.add_row(
                issue.code.value,
                f"[{level_color}]{issue.level.value.upper()}[/{level_color}]",
                message,
                escape(issue.location),
            )
        console.print(issues_table)

    if result.ok:
        suffix = f" with {len(result.warnings)} warning(s)" if result.warnings else ""
        console.print(f"[green]Validation passed{suffix}[/green]")
    else:
        console.print(f"[red]Validation failed with {len(result.errors)} error(s)[/red]")


@app.command()
def validate(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Path to a System Constitution file (YAML or JSON)")
    ],
    phase: Annotated[
        Optional[str],
        typer.Option("--phase", "-p", help="Phases to run, e.g. 1-3 or 1,2,3 (default: from config, all)")
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict", "-s", help="Treat soft errors as hard errors")
    ] = False,
    format: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help="Output format: table, json, markdown (default: table)")
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only output errors")
    ] = False,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .sysconst.json)")
    ] = None,
) -> None:
    """Validate a System Constitution file."""
    settings = _load_settings(ctx, config)
    format = _resolve_format(format, settings)

    try:
        phases = parse_phases(phase) if phase else normalize_phases(settings.validation.phases)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    result = _run_validation(path, phases, strict or settings.validation.strict)
    _output_result(result, phases, format, quiet or settings.output.quiet)
    raise typer.Exit(result.exit_code)


@app.command()
def check(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Path to a System Constitution file (YAML or JSON)")
    ],
    format: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help="Output format: table, json, markdown (default: table)")
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .sysconst.json)")
    ] = None,
) -> None:
    """Quick validation (phases 1-3 only)."""
    settings = _load_settings(ctx, config)
    format = _resolve_format(format, settings)

    phases = (1, 2, 3)
    result = _run_validation(path, phases, strict=False)
    _output_result(result, phases, format, quiet=False)
    raise typer.Exit(result.exit_code)


def _load_raw(path: Path):
    try:
        return load_document(path)
    except (FileNotFoundError, DocumentParseError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def history(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Path to a System Constitution file (YAML or JSON)")
    ],
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .sysconst.json)")
    ] = None,
) -> None:
    """Show the version history chain."""
    _load_settings(ctx, config)
    raw = _load_raw(path)

    try:
        entries = get_history(raw)
    except ModelValidationError as e:
        console.print(f"[red]Error:[/red] Invalid history: {e}")
        raise typer.Exit(1)

    console.print(f"Current version: [bold]{current_version(raw) or 'unknown'}[/bold]")
    if not entries:
        console.print("[dim]No history entries[/dim]")
        return

    table = Table(title=f"History ({len(entries)} entries)")
    table.add_column("Version", style="cyan", no_wrap=True)
    table.add_column("Based On", style="dim", no_wrap=True)
    table.add_column("Changes", justify="right")
    table.add_column("Migrations", justify="right")
    table.add_column("Notes", style="white")

    for entry in entries:
        table.add_row(
            str(entry.version),
            str(entry.based_on or "-"),
            str(len(entry.changes or [])),
            str(len(entry.migrations or [])),
            str(entry.notes or ""),
        )
    console.print(table)


@app.command()
def bump(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Path to a System Constitution file (YAML or JSON)")
    ],
    type: Annotated[
        str,
        typer.Option("--type", "-t", help="Version bump: major, minor, patch")
    ],
    message: Annotated[
        str,
        typer.Option("--message", "-m", help="Notes for the new history entry")
    ],
    change: Annotated[
        Optional[list[str]],
        typer.Option("--change", help="Change entry op:target[:field[:type]] (repeatable)")
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Validate the bumped document without writing it")
    ] = False,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .sysconst.json)")
    ] = None,
) -> None:
    """Append a history entry with a bumped version."""
    _load_settings(ctx, config)

    valid_types = [t.value for t in BumpType]
    if type not in valid_types:
        console.print(f"[red]Error:[/red] Invalid bump type '{type}'. Must be one of: {', '.join(valid_types)}")
        raise typer.Exit(1)

    raw = _load_raw(path)
    changes = [parse_change_entry(entry) for entry in change or []]
    result = bump_version(raw, type, message, changes)

    if not result.success:
        console.print(f"[red]Bump to {result.new_version} failed:[/red]")
        for error in result.errors:
            console.print(f"  {escape(error)}")
        raise typer.Exit(1)

    if dry_run:
        console.print(f"[yellow]Dry run:[/yellow] {result.previous_version} -> {result.new_version} (not written)")
        return

    if path.suffix.lower() == ".json":
        path.write_text(jsonlib.dumps(result.document, indent=2) + "\n", encoding="utf-8")
    else:
        path.write_text(dump_document(result.document), encoding="utf-8")
    console.print(f"[green]Bumped version:[/green] {result.previous_version} -> {result.new_version}")


@app.command()
def generate(
    ctx: typer.Context,
    prompt: Annotated[
        str,
        typer.Argument(help="Description of the system to generate")
    ],
    command: Annotated[
        str,
        typer.Option("--command", "-x", help="Generator command; receives the prompt on stdin and prints a document")
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the document here instead of stdout")
    ] = None,
    max_attempts: Annotated[
        Optional[int],
        typer.Option("--max-attempts", "-n", help="Generator calls before giving up (default: from config, 3)")
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .sysconst.json)")
    ] = None,
) -> None:
    """Generate a document with an external command, retrying with validation feedback."""
    settings = _load_settings(ctx, config)
    attempts = max_attempts if max_attempts is not None else settings.generation.max_attempts

    try:
        generator = command_generator(command)
        result = generate_with_validation(generator, prompt, attempts)
    except (ValueError, RuntimeError, OSError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if not result.success:
        console.print(f"[red]Generation failed after {result.attempts} attempt(s):[/red]")
        for issue in result.errors:
            console.print(f"  {escape(str(issue))}")
        raise typer.Exit(1)

    if output is None:
        print(result.text)
        return

    output.write_text(result.text + "\n", encoding="utf-8")
    console.print(f"[green]Generated valid document:[/green] {output} (attempt {result.attempts}/{attempts})")
