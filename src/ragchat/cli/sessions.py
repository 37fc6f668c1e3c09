"""ragchat sessions — saved conversations.

Usage:
  ragchat sessions list
  ragchat sessions show [<session-id>]
  ragchat sessions open <session-id>
  ragchat sessions delete <session-id> --yes
  ragchat sessions new
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ragchat.cli.context import console, open_assistant
from ragchat.cli.errors import err_session_not_found
from ragchat.db.models import Session
from ragchat.errors import Invalid

sessions_app = typer.Typer(help="Manage saved conversations.", no_args_is_help=True)

_DbOption = Annotated[Path | None, typer.Option("--db", help="Path to the ragchat database.")]


@sessions_app.command("list")
def list_cmd(db: _DbOption = None) -> None:
    """List conversations, most recently updated first."""
    with open_assistant(db) as assistant:
        state = assistant.restore_state()
        if not state.sessions:
            console.print('[dim]No saved conversations. Run:  ragchat ask "..."[/]')
            return

        table = Table(title=f"Conversations ({len(state.sessions)})")
        table.add_column("", width=1)
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        table.add_column("Updated")
        for s in state.sessions:
            marker = "*" if s.id == state.current_session_id else ""
            table.add_row(marker, s.id, s.title, str(len(s.messages)), _fmt_ms(s.updated_at))
        console.print(table)


@sessions_app.command("show")
def show_cmd(
    session_id: Annotated[
        str | None,
        typer.Argument(help="Session ID (defaults to the active conversation)."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """Print a conversation transcript."""
    with open_assistant(db) as assistant:
        # Also clears the active pointer if it names an unreadable session.
        state = assistant.restore_state()
        if session_id is None:
            if state.current_session_id is None:
                console.print("[dim]No active conversation.[/]")
                return
            session_id = state.current_session_id

        result = assistant.sessions.load_session(session_id)
        if isinstance(result, Invalid):
            console.print(err_session_not_found(session_id, result.reason))
            raise typer.Exit(1)
        _print_transcript(result.value)


@sessions_app.command("open")
def open_cmd(
    session_id: Annotated[str, typer.Argument(help="Session ID (see sessions list).")],
    db: _DbOption = None,
) -> None:
    """Make a conversation the active one."""
    with open_assistant(db) as assistant:
        state = assistant.restore_state()
        result = assistant.sessions.open_session(state, session_id)
        if isinstance(result, Invalid):
            console.print(err_session_not_found(session_id, result.reason))
            raise typer.Exit(1)
        console.print(f"[green]✓[/] Active conversation: {result.value.title}")


@sessions_app.command("delete")
def delete_cmd(
    session_id: Annotated[str, typer.Argument(help="Session ID (see sessions list).")],
    db: _DbOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Delete a conversation."""
    if not yes and not typer.confirm(f"Delete conversation {session_id}?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)
    with open_assistant(db) as assistant:
        state = assistant.restore_state()
        if not assistant.sessions.delete_session(state, session_id):
            console.print(err_session_not_found(session_id))
            raise typer.Exit(0)
    console.print(f"[green]✓[/] Deleted conversation {session_id}")


@sessions_app.command("new")
def new_cmd(db: _DbOption = None) -> None:
    """Start a new conversation on the next question."""
    with open_assistant(db) as assistant:
        state = assistant.restore_state()
        assistant.sessions.start_new_draft(state)
    console.print("[green]✓[/] The next question starts a new conversation.")


def _print_transcript(session: Session) -> None:
    console.print(f"[bold]{session.title}[/]  [dim]{session.id}[/]\n")
    for msg in session.messages:
        who = "[bold cyan]you[/]" if msg.role == "user" else "[bold magenta]assistant[/]"
        console.print(f"{who} [dim]{_fmt_ms(msg.timestamp)}[/]")
        console.print(msg.content, markup=False)
        if msg.sources:
            console.print("[dim]Sources:[/] " + ", ".join(msg.sources))
        console.print()


def _fmt_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")
