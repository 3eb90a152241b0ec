"""Console output for kube-ephemeral runs, rendered with :mod:`rich`.

Everything here prints to **stderr**: stdout belongs to the workload whose
logs are being streamed.  Structured diagnostics still go through
``logging``; these helpers only produce the short human-facing trail.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console(stderr=True, force_terminal=None)

_DONE = "[bold green]✓[/]"
_NEXT = "[bold cyan]›[/]"

#: Colour per lifecycle state name in the history trail.
_STATE_STYLES = {
    "DONE": "bold green",
    "FAILED": "bold red",
    "DELETED": "magenta",
    "STREAMING": "cyan",
}


# ── Headers ────────────────────────────────────────────────────────────────


def mode_banner(mode: str) -> None:
    """Header naming the execution mode, e.g. ``── FULL CYCLE ──``."""
    console.print()
    console.print(f"[bold blue]── {escape(mode.replace('_', ' '))} ──[/]")


# ── Lines ──────────────────────────────────────────────────────────────────


def step(msg: str) -> None:
    console.print(f"  {_NEXT} {escape(msg)}")


def detail(key: str, value: str) -> None:
    console.print(f"    [bold]{escape(key)}[/]: {escape(value)}")


def error_msg(msg: str) -> None:
    console.print(f"[bold red]ERROR:[/] {escape(msg)}")


def state_trail(states: Iterable[str]) -> Text:
    """Render ``IDLE → CREATED → ...`` with the terminal states highlighted."""
    trail = Text()
    for i, name in enumerate(states):
        if i:
            trail.append(" → ", style="dim")
        trail.append(name, style=_STATE_STYLES.get(name, ""))
    return trail


def wait_outcome(
    final_status: str, polls: int, elapsed: float, attached: Optional[bool] = None
) -> None:
    """Status the wait ended on; *attached* is ``None`` when no tailer ran."""
    detail("status", f"{final_status or '{}'} after {polls} poll(s), {elapsed:.1f}s")
    if attached is False:
        console.print("    [yellow]log tailer never attached[/]")


def run_finished(run_id: str, states: Sequence[str]) -> None:
    line = Text.assemble("  ", Text.from_markup(_DONE), f" Run {run_id}: ")
    line.append_text(state_trail(states))
    console.print(line)


# ── Blocks ─────────────────────────────────────────────────────────────────


def resource_table(title: str, rows: Iterable[Sequence[str]]) -> None:
    """Table of ``(namespace, kind, name)`` rows."""
    table = Table(title=title, title_justify="left", show_edge=False, pad_edge=False)
    table.add_column("namespace", style="dim")
    table.add_column("kind", style="cyan")
    table.add_column("name", style="bold")
    for row in rows:
        table.add_row(*row)
    console.print(table)


def failure_panel(title: str, body: str) -> None:
    console.print()
    console.print(
        Panel(Text(body), title=f"[bold red]{escape(title)}[/]", border_style="red", padding=(0, 1))
    )
