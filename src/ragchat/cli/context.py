"""Shared CLI plumbing: console, logging setup, config + assistant loading."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from ragchat.app import Assistant
from ragchat.cli.errors import err_config
from ragchat.config import ConfigError, RagChatConfig, load_config

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route ragchat logs through rich (WARNING by default, DEBUG with --verbose)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=False)],
        force=True,
    )
    # litellm is chatty at INFO/DEBUG
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def load_cfg() -> RagChatConfig:
    """Load config or exit 1 with an actionable message."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def open_assistant(db: Path | None) -> Assistant:
    """Build the assistant, preferring an explicit --db over the configured path."""
    cfg = load_cfg()
    return Assistant(cfg, db_path=db)
