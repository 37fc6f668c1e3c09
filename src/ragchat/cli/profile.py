"""ragchat profile — who the assistant is talking to.

The profile is injected into every answer's system prompt.

Usage:
  ragchat profile show
  ragchat profile set --name Ada --role "Staff Engineer" --stack python --stack rust
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ragchat.cli.context import console, open_assistant
from ragchat.db.models import now_ms

profile_app = typer.Typer(help="Show or edit the user profile.", no_args_is_help=True)

_DbOption = Annotated[Path | None, typer.Option("--db", help="Path to the ragchat database.")]


@profile_app.command("show")
def show_cmd(db: _DbOption = None) -> None:
    """Print the stored profile."""
    with open_assistant(db) as assistant:
        profile = assistant.repo.load_profile()
    console.print(f"[bold]Name:[/]      {profile.name or '-'}")
    console.print(f"[bold]Role:[/]      {profile.role or '-'}")
    console.print(f"[bold]Company:[/]   {profile.company or '-'}")
    console.print(f"[bold]Bio:[/]       {profile.bio or '-'}")
    console.print(f"[bold]Stack:[/]     {', '.join(profile.technical_stack) or '-'}")
    console.print(f"[bold]Interests:[/] {', '.join(profile.interests) or '-'}")


@profile_app.command("set")
def set_cmd(
    db: _DbOption = None,
    name: Annotated[str | None, typer.Option("--name", help="Your name.")] = None,
    role: Annotated[str | None, typer.Option("--role", help="Your role.")] = None,
    company: Annotated[str | None, typer.Option("--company", help="Your company.")] = None,
    bio: Annotated[str | None, typer.Option("--bio", help="Short bio.")] = None,
    stack: Annotated[
        list[str] | None,
        typer.Option("--stack", help="Technology you use (repeatable; replaces the list)."),
    ] = None,
    interest: Annotated[
        list[str] | None,
        typer.Option("--interest", help="Interest (repeatable; replaces the list)."),
    ] = None,
) -> None:
    """Update profile fields. Omitted options keep their stored value."""
    with open_assistant(db) as assistant:
        profile = assistant.repo.load_profile()
        if name is not None:
            profile.name = name
        if role is not None:
            profile.role = role
        if company is not None:
            profile.company = company
        if bio is not None:
            profile.bio = bio
        if stack is not None:
            profile.technical_stack = list(stack)
        if interest is not None:
            profile.interests = list(interest)
        profile.last_updated = now_ms()
        assistant.repo.save_profile(profile)
    console.print("[green]✓[/] Profile saved.")
