"""ragchat docs — library listing and document lifecycle.

Removing a document deletes its chunks from the store and from the
in-memory index.

Usage:
  ragchat docs list
  ragchat docs remove <document-id> --yes
  ragchat docs wipe --yes
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ragchat.cli.context import console, open_assistant
from ragchat.cli.errors import err_document_not_found

docs_app = typer.Typer(help="Manage the document library.", no_args_is_help=True)

_DbOption = Annotated[Path | None, typer.Option("--db", help="Path to the ragchat database.")]


@docs_app.command("list")
def list_cmd(db: _DbOption = None) -> None:
    """List ingested documents, newest first."""
    with open_assistant(db) as assistant:
        docs = assistant.repo.list_documents()
        if not docs:
            console.print("[dim]The library is empty. Run:  ragchat ingest <file>[/]")
            return

        table = Table(title=f"Library ({len(docs)} documents)")
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Type")
        table.add_column("Category")
        table.add_column("Tags")
        table.add_column("Chunks", justify="right")
        table.add_column("Added")
        for doc in docs:
            table.add_row(
                doc.id,
                doc.title,
                doc.source_type,
                doc.category,
                ", ".join(doc.tags),
                str(assistant.repo.count_chunks_by_document(doc.id)),
                _fmt_ms(doc.created_at),
            )
        console.print(table)


@docs_app.command("remove")
def remove_cmd(
    document_id: Annotated[str, typer.Argument(help="Document ID (see docs list).")],
    db: _DbOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Remove a document and all its chunks."""
    with open_assistant(db) as assistant:
        doc = assistant.repo.get_document(document_id)
        if doc is None:
            console.print(err_document_not_found(document_id))
            raise typer.Exit(0)

        chunk_count = assistant.repo.count_chunks_by_document(doc.id)
        console.print(f"\nRemove document: [bold]{doc.title}[/]  ({chunk_count} chunks)")

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        deleted = assistant.ingestor.delete_document(doc.id)
        console.print(f"[green]✓[/] Removed: {doc.title} ({deleted} chunks deleted)")


@docs_app.command("wipe")
def wipe_cmd(
    db: _DbOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Delete every document from the library."""
    if not yes and not typer.confirm("Wipe all documents?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)
    with open_assistant(db) as assistant:
        count = assistant.ingestor.wipe()
    console.print(f"[green]✓[/] Library wiped ({count} documents removed)")


def _fmt_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")
