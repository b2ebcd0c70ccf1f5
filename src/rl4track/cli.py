"""
CLI entry point for rl4track.

This module provides the Typer-based command-line interface.

Commands:
    hook        Capture the editing action described on stdin (always exits 0)
    capture     Capture a file's current content by hand
    log         Show recent activity records
    history     Show the digest history of a path
    show-blob   Print the content stored under a digest
    verify      Cross-check activity log, path index and blobs

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    the capture and store modules. `hook` is the only command an editing
    agent runs; the others are for people inspecting a workspace.
"""

import json
import re
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from rl4track import __version__
from rl4track.capture import CaptureOrchestrator, CaptureResult, StepStatus, file_backend
from rl4track.errors import BlobReadError, IndexCorruptError
from rl4track.schema import CaptureConfig, WriteTrigger, config_from_env, load_config
from rl4track.store import ActivityLog, ContentStore, PathIndex
from rl4track.verify import verify_workspace
from rl4track.workspace import Workspace, absolute_path, find_workspace_root

# Initialize Typer app with metadata
app = typer.Typer(
    name="rl4track",
    help="Capture agent file edits into an append-only evidence store.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

# Diagnostics go to stderr so hook stdout stays empty
err_console = Console(stderr=True)

logger = logging.getLogger("rl4track")

DIGEST_PATTERN = re.compile(r"[0-9a-f]{64}")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]rl4track[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    rl4track - Evidence capture for agent file edits.

    Records every file write into .rl4/evidence/activity.jsonl and keeps a
    deduplicated, content-addressed copy of each version.
    """
    pass


def configure_logging(level: str) -> None:
    """Send rl4track diagnostics to stderr through Rich."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_path=False, show_time=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def _load_config(config_path: Path | None) -> CaptureConfig:
    base = load_config(config_path) if config_path else CaptureConfig()
    return config_from_env(base)


def _open_workspace(root: Path | None, config: CaptureConfig) -> Workspace:
    """Locate an existing workspace for read-only commands; never creates one."""
    if config.workspace_root:
        found = absolute_path(config.workspace_root)
        if not (found / config.metadata_dir).is_dir():
            found = None
    else:
        found = find_workspace_root(root or Path.cwd(), config.metadata_dir)

    if found is None:
        console.print(f"[red]No {config.metadata_dir} workspace found from {root or Path.cwd()}[/red]")
        raise typer.Exit(code=1)
    return Workspace(root=found, metadata_dir=found / config.metadata_dir)


ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to a capture config YAML file.",
        resolve_path=True,
    ),
]

RootOption = Annotated[
    Optional[Path],
    typer.Option(
        "--root",
        "-r",
        help="Directory to search upward from for the workspace. Defaults to cwd.",
        resolve_path=True,
    ),
]

JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]


# =============================================================================
# Capture Commands
# =============================================================================


@app.command()
def hook(
    config_path: ConfigOption = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Log every capture step to stderr.",
        ),
    ] = False,
) -> None:
    """
    Capture the editing action described by a hook payload on stdin.

    Expects a PostToolUse JSON payload (tool_name, tool_input, session_id,
    cwd). Write, Edit and MultiEdit are captured; everything else is
    ignored. Always exits 0 and prints nothing on stdout.

    Example:
        $ rl4track hook < payload.json
    """
    try:
        configure_logging("DEBUG" if verbose else "WARNING")
        try:
            config = _load_config(config_path)
        except Exception as e:
            logger.warning("Using default capture config: %s", e)
            config = config_from_env()
        if not verbose:
            logger.setLevel(config.log_level)

        payload = sys.stdin.read()
        result = CaptureOrchestrator(config).handle(payload)
        for outcome in result.errors:
            logger.debug("Step %s: %s", outcome.step, outcome.error)
    except Exception:
        logger.exception("rl4track hook failed")
    raise typer.Exit(code=0)


@app.command()
def capture(
    path: Annotated[
        Path,
        typer.Argument(
            help="File to capture.",
        ),
    ],
    session: Annotated[
        str,
        typer.Option(
            "--session",
            "-s",
            help="Session identifier used for the burst id.",
        ),
    ] = "manual",
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Capture a file's current content as a full-file save.

    The workspace is found by walking up from the current directory, and
    created there if none exists.

    Example:
        $ rl4track capture src/app.py
    """
    config = _load_config(config_path)
    configure_logging(config.log_level)

    trigger = WriteTrigger(file_path=str(path), session_id=session, cwd=str(Path.cwd()))
    result = CaptureOrchestrator(config).capture(trigger)

    if json_output:
        _output_json_capture(result)
    else:
        _display_capture_result(result)

    if not result.captured:
        raise typer.Exit(code=1)


def _display_capture_result(result: CaptureResult) -> None:
    """Display a capture result in a formatted way."""
    if result.skipped_reason:
        console.print(f"[yellow]⊘ Not captured: {result.skipped_reason}[/yellow]")
        return

    if result.captured:
        console.print(f"[green]✓[/green] Captured [bold]{result.event.path}[/bold]")
    else:
        console.print("[red]✗ Capture incomplete[/red]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Step", style="cyan")
    table.add_column("Status", width=10)
    table.add_column("Details")

    for outcome in result.steps:
        if outcome.status == StepStatus.SUCCESS:
            status = "[green]success[/green]"
        elif outcome.status == StepStatus.SKIPPED:
            status = "[yellow]skipped[/yellow]"
        else:
            status = "[red]error[/red]"
        table.add_row(outcome.step, status, outcome.error or outcome.detail or "")

    console.print(table)
    if result.event is not None:
        console.print(
            f"[dim]sha256: {result.event.sha256 or '-'} | "
            f"+{result.event.lines_added} -{result.event.lines_removed}[/dim]"
        )


def _output_json_capture(result: CaptureResult) -> None:
    """Output a capture result in JSON format."""
    output = {
        "captured": result.captured,
        "state": result.state.value,
        "skipped_reason": result.skipped_reason,
        "workspace": str(result.workspace.root) if result.workspace else None,
        "event": result.event.model_dump(by_alias=True) if result.event else None,
        "steps": [
            {
                "step": s.step,
                "status": s.status.value,
                "detail": s.detail,
                "error": s.error,
                "code": s.code,
                "duration_ms": s.duration_ms,
            }
            for s in result.steps
        ],
        "duration_ms": result.duration_ms,
    }
    print(json.dumps(output, indent=2, default=str))


# =============================================================================
# Inspection Commands
# =============================================================================


@app.command("log")
def show_log(
    root: RootOption = None,
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of records to show.",
        ),
    ] = 20,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show the most recent activity records, oldest first.

    Example:
        $ rl4track log -n 50
    """
    config = _load_config(config_path)
    workspace = _open_workspace(root, config)
    events = ActivityLog(file_backend(workspace, config)).tail(limit)

    if json_output:
        print(json.dumps([e.model_dump(by_alias=True) for e in events], indent=2))
        return

    if not events:
        console.print("[dim]No activity recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Time")
    table.add_column("Path", style="cyan")
    table.add_column("+", justify="right", style="green")
    table.add_column("-", justify="right", style="red")
    table.add_column("SHA256", style="dim")
    table.add_column("Source", style="dim")

    for event in events:
        table.add_row(
            event.t[:19].replace("T", " "),
            event.path,
            str(event.lines_added),
            str(event.lines_removed),
            event.sha256[:12] or "-",
            event.source,
        )

    console.print(table)


@app.command()
def history(
    path: Annotated[
        str,
        typer.Argument(help="Path to look up, workspace-relative or absolute."),
    ],
    root: RootOption = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show every digest captured for a path, oldest first.

    Example:
        $ rl4track history src/app.py
    """
    config = _load_config(config_path)
    workspace = _open_workspace(root, config)
    index = PathIndex(file_backend(workspace, config), workspace.root)

    try:
        digests = index.history(path)
    except IndexCorruptError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        print(json.dumps({"path": index.key_for(path), "history": digests}, indent=2))
        return

    if not digests:
        console.print(f"[dim]No versions recorded for {index.key_for(path)}.[/dim]")
        return

    console.print(f"[bold]{index.key_for(path)}[/bold]: {len(digests)} version(s)")
    for number, digest in enumerate(digests, start=1):
        console.print(f"  {number:>3}. {digest}")


@app.command("show-blob")
def show_blob(
    digest: Annotated[
        str,
        typer.Argument(help="SHA-256 digest of the content."),
    ],
    root: RootOption = None,
    config_path: ConfigOption = None,
) -> None:
    """
    Print the decompressed content stored under a digest.

    Example:
        $ rl4track show-blob 3b1f... > old_version.py
    """
    digest = digest.strip().lower()
    if not DIGEST_PATTERN.fullmatch(digest):
        console.print(f"[red]Not a SHA-256 digest: {escape(digest)}[/red]")
        raise typer.Exit(code=1)

    config = _load_config(config_path)
    workspace = _open_workspace(root, config)
    store = ContentStore(file_backend(workspace, config))

    try:
        content = store.get(digest)
    except BlobReadError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if content is None:
        console.print(f"[red]No blob for {digest}[/red]")
        raise typer.Exit(code=1)
    typer.echo(content, nl=False)


@app.command()
def verify(
    root: RootOption = None,
    skip_blobs: Annotated[
        bool,
        typer.Option(
            "--skip-blobs",
            help="Do not decompress blobs to re-check their digests.",
        ),
    ] = False,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Cross-check the activity log, path index and blobs.

    Exits 1 if a logged digest is missing from the index or a blob is corrupt.
    Orphan blobs (captures interrupted before logging) are only counted.

    Example:
        $ rl4track verify
    """
    config = _load_config(config_path)
    workspace = _open_workspace(root, config)
    report = verify_workspace(file_backend(workspace, config), check_blobs=not skip_blobs)

    if json_output:
        print(json.dumps(report, indent=2))
    else:
        if report["valid"]:
            console.print("[green]✓ Evidence is consistent[/green]")
        else:
            console.print("[red]Verification failed:[/red]")
            for error in report["errors"]:
                console.print(f"  [red]• {error}[/red]")
        for warning in report["warnings"]:
            console.print(f"  [yellow]• {warning}[/yellow]")
        stats = report["stats"]
        console.print(
            f"[dim]Events: {stats['events']} | Paths: {stats['paths']} | "
            f"Blobs: {stats['blobs']} | Orphan blobs: {stats['orphan_blobs']}[/dim]"
        )

    if not report["valid"]:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
