"""ragchat CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from ragchat.cli.chat import ask_cmd, chat_cmd
from ragchat.cli.context import setup_logging
from ragchat.cli.docs import docs_app
from ragchat.cli.ingest import ingest_cmd
from ragchat.cli.profile import profile_app
from ragchat.cli.sessions import sessions_app


def _installed_version() -> str:
    try:
        return importlib.metadata.version("ragchat")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ragchat {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="ragchat",
    help=(
        "ragchat — chat with your own documents.\n\n"
        "  ragchat ingest   Add files to the library.\n"
        "  ragchat ask      One question, answered from the library.\n"
        "  ragchat chat     Interactive conversation."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """ragchat — chat with your own documents."""
    setup_logging(verbose)


app.command("ingest")(ingest_cmd)
app.command("ask")(ask_cmd)
app.command("chat")(chat_cmd)
app.add_typer(docs_app, name="docs")
app.add_typer(sessions_app, name="sessions")
app.add_typer(profile_app, name="profile")


@app.command("version")
def version_cmd() -> None:
    """Show the installed ragchat version."""
    typer.echo(f"ragchat {_installed_version()}")


if __name__ == "__main__":
    app()
