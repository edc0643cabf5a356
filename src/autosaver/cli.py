# src/autosaver/cli.py
"""
autosaver Command Line Interface (CLI).

Developer tooling built with `typer` and `rich` for exploring scheduler
behaviour without wiring it into an application.

Features
--------
- **Simulate**: Replay a scripted change timeline (JSON scenario) on virtual
  time and show every persist call, when it ran and how it settled.
- **Trace Recording**: Optionally write the scheduler's event trace to JSON.
- **Replay**: Render a recorded trace file as a timeline table.
- **Config**: Show the default scheduler config resolved from env / `.env`.

Usage
-----
    # Simulate a scenario and keep its trace
    $ autosaver simulate scenarios/in_flight.json --trace-out artifacts/trace/in_flight.json

    # Replay a recorded trace
    $ autosaver replay artifacts/trace/in_flight.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from autosaver.core.contracts.config import SchedulerConfig
from autosaver.core.contracts.scenario import Scenario
from autosaver.core.trace.events import SchedulerEvent
from autosaver.core.trace.storage import TraceWriter, load_trace
from autosaver.pipelines.simulation import SimulationResult, run_scenario

# Pick up AUTOSAVER_* overrides from a local .env before any command runs
load_dotenv()

app = typer.Typer(
    help="autosaver: explore write-coalescing autosave schedules.",
    rich_markup_mode="markdown",
)
console = Console()


# --------------------------------------------------------------------------- #
# Helpers: Rendering
# --------------------------------------------------------------------------- #


def _preview(value: object, width: int = 48) -> str:
    text = json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= width else text[: width - 1] + "…"


def _render_calls(result: SimulationResult) -> None:
    """Render one row per persist call."""
    table = Table(title="Persist calls", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("start ms", justify="right")
    table.add_column("end ms", justify="right")
    table.add_column("payload")
    table.add_column("outcome")

    for i, call in enumerate(result["calls"], start=1):
        end = "-" if call.finished_at is None else f"{call.finished_at * 1000:.0f}"
        if call.outcome is None:
            outcome = "[yellow]pending[/yellow]"
        elif call.outcome.is_ok():
            outcome = "[green]ok[/green]"
        else:
            outcome = f"[red]{escape(call.outcome.unwrap_err())}[/red]"
        table.add_row(
            str(i), f"{call.started_at * 1000:.0f}", end, escape(_preview(call.value)), outcome
        )

    console.print(table)


def _render_status(result: SimulationResult) -> None:
    status = result["status"]
    pending = "[red]unsaved changes[/red]" if status.pending else "[green]all changes saved[/green]"
    console.print(
        Panel(
            f"calls: {len(result['calls'])}   state: {pending}\n"
            f"last error: {status.last_error or '-'}\n"
            f"finished at: {result['ended_at_ms']:.0f} ms (virtual)",
            title="Status",
            border_style="green" if not status.pending else "red",
        )
    )


def _render_events(events: tuple[SchedulerEvent, ...]) -> None:
    table = Table(title="Scheduler events")
    table.add_column("seq", justify="right")
    table.add_column("t", justify="right")
    table.add_column("event", no_wrap=True)
    table.add_column("detail")
    for event in events:
        detail = ", ".join(f"{k}={v}" for k, v in event.detail.items())
        table.add_row(str(event.seq), f"{event.at:.3f}", event.kind.value, escape(detail))
    console.print(table)


def _load_scenario(path: Path) -> Scenario:
    with path.open("r", encoding="utf-8") as f:
        return Scenario.model_validate(json.load(f))


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


@app.command()  # type: ignore[misc]
def simulate(
    scenario_file: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="Path to a JSON scenario (config, initial value, timed changes).",
        ),
    ],
    trace_out: Annotated[
        Path | None,
        typer.Option(
            "--trace-out",
            "-t",
            help="Write the scheduler event trace to this JSON file.",
        ),
    ] = None,
    events: Annotated[
        bool,
        typer.Option("--events/--no-events", "-e", help="Also print every scheduler event."),
    ] = False,
) -> None:
    """
    Replay a scenario on virtual time and show the resulting persist calls.
    """
    try:
        scenario = _load_scenario(scenario_file)
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[bold red]❌ Invalid scenario:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2) from e

    console.print(
        Panel.fit(
            f"[bold cyan]autosaver simulate[/bold cyan]\n{scenario.name}: "
            f"idle {scenario.config.idle_ms} ms, "
            f"immediate-first {'on' if scenario.config.immediate_first else 'off'}, "
            f"latency {scenario.latency_ms:.0f} ms",
            border_style="cyan",
        )
    )

    result = run_scenario(scenario)
    _render_calls(result)
    if events:
        _render_events(result["trace"].events())
    _render_status(result)

    if trace_out is not None:
        writer = TraceWriter(trace_out.parent)
        path = writer.write_to(result["trace"], trace_out, label=scenario.name)
        console.print(f"[dim]Trace saved to: {path}[/dim]")


@app.command()  # type: ignore[misc]
def replay(
    trace_file: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="Path to a JSON trace written by `simulate --trace-out`.",
        ),
    ],
) -> None:
    """
    Render a recorded scheduler trace as a timeline.
    """
    try:
        label, recorded = load_trace(trace_file)
    except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
        console.print(f"\n[bold red]❌ Replay Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    console.print(
        Panel.fit(
            f"[bold magenta]autosaver replay[/bold magenta]\n{label}: {len(recorded)} events",
            border_style="magenta",
        )
    )
    _render_events(recorded)


@app.command()  # type: ignore[misc]
def config() -> None:
    """Show the default scheduler config resolved from the environment."""
    cfg = SchedulerConfig.from_settings()
    console.print_json(cfg.model_dump_json())


if __name__ == "__main__":
    app()
