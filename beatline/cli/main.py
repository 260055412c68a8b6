"""Main CLI entry point using Typer."""

from pathlib import Path

import anyio
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from beatline import __version__
from beatline.backends.factory import BackendEntry, create_backend
from beatline.core.config import get_settings
from beatline.core.errors import BackendResult
from beatline.core.logging import configure_logging
from beatline.core.models import Beat, BeatListFilters, BeatStatus, BeatType
from beatline.workflows.descriptors import WorkflowDescriptor

app = typer.Typer(
    name="beatline",
    help="Beatline - workflow-aware beat tracking over interchangeable backends",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

_STATE = {"backend": None, "repo": None}

STATUS_COLORS = {
    "open": "cyan",
    "in_progress": "yellow",
    "blocked": "red",
    "deferred": "dim",
    "closed": "green",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]Beatline[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Backend kind: auto, jsonl, cli or stub.",
    ),
    repo: Path | None = typer.Option(
        None,
        "--repo",
        "-r",
        help="Repository holding the tracker data.",
    ),
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Beatline - track beats across JSONL files, the bd CLI or a stub store.
    """
    configure_logging(get_settings())
    _STATE["backend"] = backend
    _STATE["repo"] = repo


def _backend() -> BackendEntry:
    try:
        return create_backend(_STATE["backend"], _STATE["repo"])
    except ValueError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=2) from exc


def _unwrap(result: BackendResult):
    if not result.ok:
        error = result.error
        console.print(f"[bold red]{error.code.value}[/bold red]: {error.message}")
        raise typer.Exit(code=1)
    return result.data


def _beats_table(beats: list[Beat], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="bold")
    table.add_column("P", justify="right")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("State", style="cyan")
    table.add_column("Next")
    table.add_column("Title")

    for beat in beats:
        color = STATUS_COLORS.get(beat.status.value, "white")
        table.add_row(
            beat.id,
            str(beat.priority),
            beat.type.value,
            f"[{color}]{beat.status.value}[/{color}]",
            beat.state,
            beat.next_action_owner_kind.value,
            beat.title[:60] + "..." if len(beat.title) > 60 else beat.title,
        )
    return table


@app.command("list")
def list_beats(
    status: BeatStatus | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    beat_type: BeatType | None = typer.Option(None, "--type", "-t", help="Filter by type"),
    state: str | None = typer.Option(
        None, "--state", help="Workflow state, or 'queued' / 'in_action'"
    ),
    ready: bool = typer.Option(False, "--ready", help="Only beats ready to be picked up"),
) -> None:
    """
    List beats, optionally filtered.
    """
    entry = _backend()
    filters = BeatListFilters(status=status, type=beat_type, state=state)

    async def do_list() -> list[Beat]:
        if ready:
            return _unwrap(await entry.port.list_ready(filters))
        return _unwrap(await entry.port.list(filters))

    beats = anyio.run(do_list)
    console.print(_beats_table(beats, f"Beats ({entry.kind})"))


@app.command()
def show(beat_id: str = typer.Argument(..., help="Beat ID")) -> None:
    """
    Show one beat with its workflow runtime state.
    """
    entry = _backend()

    async def do_show() -> Beat:
        return _unwrap(await entry.port.get(beat_id))

    beat = anyio.run(do_show)
    lines = [
        f"[bold]{beat.title}[/bold]",
        f"Type: {beat.type.value}   Priority: {beat.priority}",
        f"Status: {beat.status.value}   State: {beat.state}",
        f"Profile: {beat.profile_id}   Next owner: {beat.next_action_owner_kind.value}",
        f"Labels: {', '.join(beat.labels) or '-'}",
    ]
    if beat.parent:
        lines.append(f"Parent: {beat.parent}")
    if beat.description:
        lines.extend(["", beat.description])
    console.print(Panel("\n".join(lines), title=f"[bold blue]{beat.id}[/bold blue]", border_style="blue"))


@app.command()
def query(expression: str = typer.Argument(..., help="field:value terms, AND-combined")) -> None:
    """
    Run a query expression, e.g. ``type:bug priority:1``.
    """
    entry = _backend()

    async def do_query() -> list[Beat]:
        return _unwrap(await entry.port.query(expression))

    beats = anyio.run(do_query)
    console.print(_beats_table(beats, f"Query: {expression}"))


@app.command()
def close(
    beat_id: str = typer.Argument(..., help="Beat ID"),
    reason: str | None = typer.Option(None, "--reason", help="Close reason"),
) -> None:
    """
    Close a beat.
    """
    entry = _backend()

    async def do_close() -> Beat:
        return _unwrap(await entry.port.close(beat_id, reason))

    beat = anyio.run(do_close)
    console.print(f"[green]Closed {beat.id}[/green] ({beat.state})")


@app.command()
def workflows() -> None:
    """
    List the available workflow profiles.
    """
    entry = _backend()

    async def do_workflows() -> list[WorkflowDescriptor]:
        return _unwrap(await entry.port.list_workflows())

    table = Table(title="Workflow Profiles")
    table.add_column("ID", style="bold")
    table.add_column("Mode")
    table.add_column("Initial", style="cyan")
    table.add_column("Final cut")
    table.add_column("Description")

    for workflow in anyio.run(do_workflows):
        table.add_row(
            workflow.id,
            workflow.mode.value,
            workflow.initial_state,
            workflow.final_cut_state or "-",
            workflow.description,
        )
    console.print(table)


if __name__ == "__main__":
    app()
