"""
Rich-based CLI rendering for tournament snapshots.

The same snapshot objects a viewer's browser receives are drawn here as
tables and panels: a bracket as one table per round, a performance as the
running order with the cursor and selected winners highlighted.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from eventflow.tournaments.base import Tournament
from eventflow.tournaments.events import (
    BracketMatch,
    BracketUpdatedEvent,
    BracketView,
    PerformanceSnapshot,
    PerformanceUpdatedEvent,
    TournamentDeletedEvent,
    TournamentEvent,
)

console = Console(legacy_windows=False)


def display_event(event: TournamentEvent) -> None:
    """Dispatch a TournamentEvent to the appropriate display function."""
    match event:
        case BracketUpdatedEvent():
            display_bracket(event.bracket, event.tournament_id)
        case PerformanceUpdatedEvent():
            display_performance(event.snapshot)
        case TournamentDeletedEvent():
            console.print(f"[red]Tournament {event.tournament_id} was deleted.[/]")


def display_tournaments(tournaments: list[Tournament]) -> None:
    table = Table(title="Tournaments", show_header=True, header_style="bold", border_style="dim")
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Name", min_width=24)
    table.add_column("Mode", width=12)
    table.add_column("Contents", justify="right")

    for i, t in enumerate(tournaments, 1):
        if t.mode == "sequential":
            contents = f"{t.performer_count} performers"
        else:
            contents = f"{t.match_count} matches"
        table.add_row(str(i), escape(t.name), t.mode, contents)

    console.print(table)


# --------------------------------------------------------------------------- #
# Bracket                                                                      #
# --------------------------------------------------------------------------- #

def display_bracket(view: BracketView | None, tournament_id: int | None = None) -> None:
    if view is None:
        label = f"Tournament {tournament_id}" if tournament_id is not None else "Tournament"
        console.print(f"[dim]{label} has no bracket yet.[/]")
        return

    console.print()
    console.print(
        Panel(
            f"[bold]{escape(view.tournament_name or 'Tournament')}[/]\n"
            f"[dim]Rounds: {view.total_rounds}  •  Bracket size: {view.bracket_size}[/]",
            title="[bold green] EventFlow Bracket [/]",
            border_style="green",
            expand=False,
        )
    )

    for rnd in view.rounds:
        table = Table(title=rnd.name, show_header=True, header_style="bold", border_style="dim")
        table.add_column("Match", style="dim", width=6, justify="right")
        table.add_column("Top", min_width=18)
        table.add_column("Score", justify="center", width=7)
        table.add_column("Bottom", min_width=18)
        table.add_column("Feeds", style="dim")
        for match in rnd.matches:
            table.add_row(
                str(match.match_id),
                _slot(match.player1, match),
                _score(match),
                _slot(match.player2, match),
                _feeds(match),
            )
        console.print(table)

    if view.champion:
        console.print(f"\n  [bold yellow]Champion:[/] [bold]{escape(view.champion)}[/]")


def _slot(name: str | None, match: BracketMatch) -> str:
    if name is None:
        return "[dim]—[/]"
    if match.winner is not None and name == match.winner:
        return f"[bold green]{escape(name)}[/]"
    return escape(name)


def _score(match: BracketMatch) -> str:
    if match.score1 is None and match.score2 is None:
        return ""
    return f"{match.score1 if match.score1 is not None else '-'}–{match.score2 if match.score2 is not None else '-'}"


def _feeds(match: BracketMatch) -> str:
    if match.next is None:
        return ""
    return f"R{match.next.round + 1} #{match.next.index + 1} ({match.next.side})"


# --------------------------------------------------------------------------- #
# Performance                                                                  #
# --------------------------------------------------------------------------- #

def display_performance(snap: PerformanceSnapshot) -> None:
    status = "finalized" if snap.finalized else "running"
    console.print()
    console.print(
        Panel(
            f"[bold]{escape(snap.tournament_name or 'Performance')}[/]\n"
            f"[dim]View: {snap.show_view}  •  {status}  •  "
            f"max winners shown: {snap.max_winners}[/]",
            title="[bold magenta] EventFlow Performance [/]",
            border_style="magenta",
            expand=False,
        )
    )

    table = Table(show_header=True, header_style="bold", border_style="dim")
    table.add_column("", width=2)
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Performer", min_width=20)
    if snap.scoring_enabled:
        table.add_column("Score", justify="right", width=8)
    table.add_column("Winner", justify="center", width=7)

    for p in snap.performers:
        cursor = "▶" if p.order_index == snap.current_index else ""
        row = [cursor, str(p.order_index + 1), escape(p.display_name)]
        if snap.scoring_enabled:
            row.append(f"{p.total_score:g}")
        row.append("[yellow]★[/]" if p.is_selected_winner else "")
        table.add_row(*row)

    console.print(table)

    if snap.show_view == "winners" and snap.winners:
        by_id = {p.id: p.display_name for p in snap.performers}
        names = ", ".join(escape(by_id[w]) for w in snap.winners[: snap.max_winners] if w in by_id)
        console.print(f"\n  [bold yellow]Winners:[/] {names}")
