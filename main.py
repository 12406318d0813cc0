"""
EventFlow — terminal viewer entry point.

Wires together:  config → store → service → tournament picker → Rich display

Lists the stored tournaments, lets the operator pick one, and prints the same
snapshot a browser viewer would receive.
"""

from __future__ import annotations

import asyncio
import os
import sys

from rich.markup import escape
from rich.prompt import IntPrompt

from eventflow.cli.display import console, display_event, display_tournaments
from eventflow.config import Config, load_config
from eventflow.errors import EventFlowError
from eventflow.service import TournamentService
from eventflow.store.database import Database


async def _main(config: Config) -> None:
    db = Database(config.database_path)
    try:
        service = TournamentService(db, performance_defaults=config.performance)
        tournaments = await service.list_tournaments()
        if not tournaments:
            console.print("[yellow]No tournaments stored yet.[/] Create one through the web API.")
            return

        display_tournaments(tournaments)
        choice = IntPrompt.ask(
            "\n  Show tournament",
            choices=[str(i) for i in range(1, len(tournaments) + 1)],
            show_choices=False,
        )
        selected = tournaments[choice - 1]
        display_event(await service.snapshot(selected.id))
    finally:
        db.close()


def main() -> None:
    try:
        config = load_config(os.environ.get("EVENTFLOW_CONFIG", "config.yaml"))
    except FileNotFoundError:
        config = Config()
    except ValueError as exc:
        console.print(f"[red]Config error:[/] {escape(str(exc))}")
        sys.exit(1)

    try:
        asyncio.run(_main(config))
    except EventFlowError as exc:
        console.print(f"[red]Error:[/] {escape(str(exc))}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Bye.[/]")


if __name__ == "__main__":
    main()
