"""ragchat ask / chat — answer questions from the library.

``ask`` runs a single turn and exits; ``chat`` is an interactive loop over
the active session. Both stream the answer with rich.live and persist the
turn when it completes (or fails).

Usage:
  ragchat ask "How do we roll back a deploy?"
  ragchat ask "Latest Python release?" --web --new
  ragchat chat
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.live import Live
from rich.markdown import Markdown
from rich.text import Text

from ragchat.chat.service import FAILURE_PREFIX, ChatService
from ragchat.chat.session_store import ChatState
from ragchat.cli.context import console, open_assistant
from ragchat.cli.errors import err_turn_in_progress
from ragchat.db.models import Message
from ragchat.errors import TurnInProgressError

_EXIT_WORDS = {"exit", "quit", ":q"}


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to ask.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the ragchat database."),
    ] = None,
    new: Annotated[
        bool,
        typer.Option("--new", help="Start a new conversation instead of continuing the active one."),
    ] = False,
    web: Annotated[
        bool,
        typer.Option("--web", help="Let the model consult live web search."),
    ] = False,
) -> None:
    """Ask one question, continuing the active conversation."""
    with open_assistant(db) as assistant:
        state = assistant.restore_state()
        if new:
            assistant.sessions.start_new_draft(state)
        try:
            live_search = web or assistant.cfg.web_search.enabled
            final = asyncio.run(_run_turn(assistant.chat, state, question, live_search))
        except TurnInProgressError:
            console.print(err_turn_in_progress())
            raise typer.Exit(1)
        except ValueError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)

    if final is not None and final.content.startswith(FAILURE_PREFIX):
        raise typer.Exit(1)


def chat_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the ragchat database."),
    ] = None,
    web: Annotated[
        bool,
        typer.Option("--web", help="Let the model consult live web search."),
    ] = False,
) -> None:
    """Interactive chat over the library. Type 'exit' to leave, '/new' to start over."""
    with open_assistant(db) as assistant:
        state = assistant.restore_state()
        if state.current_session_id:
            title = next(
                (s.title for s in state.sessions if s.id == state.current_session_id), ""
            )
            console.print(f"[dim]Continuing: {title} ({len(state.messages)} messages)[/]")
        else:
            console.print("[dim]New conversation.[/]")

        while True:
            try:
                text = console.input("[bold cyan]you>[/] ")
            except (EOFError, KeyboardInterrupt):
                console.print()
                break
            stripped = text.strip()
            if not stripped:
                continue
            if stripped.lower() in _EXIT_WORDS:
                break
            if stripped == "/new":
                assistant.sessions.start_new_draft(state)
                console.print("[dim]New conversation.[/]")
                continue
            asyncio.run(
                _run_turn(assistant.chat, state, stripped, web or assistant.cfg.web_search.enabled)
            )


async def _run_turn(
    chat: ChatService, state: ChatState, text: str, web: bool
) -> Message | None:
    """Stream one turn to the console; return the final assistant message."""
    final: Message | None = None
    with Live(Text("…", style="dim"), console=console, refresh_per_second=12) as live:
        async for snapshot in chat.send(state, text, live_search=web):
            final = snapshot
            live.update(_render(snapshot))
    if final is not None:
        _print_sources(final)
    return final


def _render(message: Message) -> Text | Markdown:
    if message.streaming and not message.content:
        return Text("thinking…", style="dim")
    if message.content.startswith(FAILURE_PREFIX):
        return Text(message.content, style="red")
    return Markdown(message.content)


def _print_sources(message: Message) -> None:
    if message.sources:
        console.print("[dim]Sources:[/] " + ", ".join(message.sources))
    for g in message.grounding_sources or []:
        console.print(f"[dim]Web:[/] {g.title}  [link={g.url}]{g.url}[/link]")
