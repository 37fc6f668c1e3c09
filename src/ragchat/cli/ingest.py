"""ragchat ingest — add documents to the library.

File dispatch by extension:
  .md / .markdown                 → structure-aware chunker
  .pdf                            → pypdf text extraction, fixed-window chunker
  .txt .rst .csv .log + code      → fixed-window chunker
  directory                       → expanded to supported files (--recursive for subdirs)
"""

from __future__ import annotations

import asyncio
import fnmatch
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from ragchat.cli.context import console, open_assistant
from ragchat.cli.errors import err_capability_unavailable, err_no_files, warn_partial_ingest
from ragchat.errors import CapabilityUnavailableError
from ragchat.ingest.extract import SUPPORTED_EXTENSIONS
from ragchat.ingest.pipeline import IngestResult


def ingest_cmd(
    files: Annotated[
        list[Path] | None,
        typer.Argument(help="Files or directories to ingest."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the ragchat database (created if missing)."),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", help="Recurse into subdirectories (max 10 levels)."),
    ] = False,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Glob pattern to exclude (repeatable)."),
    ] = None,
    category: Annotated[
        str,
        typer.Option("--category", help="Library category for the ingested documents."),
    ] = "General",
    tag: Annotated[
        list[str] | None,
        typer.Option("--tag", help="Tag for the ingested documents (repeatable)."),
    ] = None,
) -> None:
    """Extract, chunk, embed and store documents."""
    if not files:
        console.print(err_no_files())
        raise typer.Exit(1)

    paths = _expand_paths(files, recursive=recursive, exclude=exclude or [])
    if not paths:
        console.print("[yellow]No supported files found to ingest.[/]")
        raise typer.Exit(0)

    with open_assistant(db) as assistant:
        results: list[IngestResult] = []
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Indexing…", total=len(paths))
            for path in paths:
                prog.update(task, description=f"Indexing {path.name}…")
                results.extend(
                    asyncio.run(
                        assistant.ingestor.ingest_files(
                            [path], category=category, tags=tag or []
                        )
                    )
                )
                prog.advance(task)

        failed = 0
        missing_key: CapabilityUnavailableError | None = None
        for result in results:
            if not result.ok:
                failed += 1
                console.print(f"  [red]✗[/] {escape(result.error or '')}")
                if result.partial:
                    console.print(
                        warn_partial_ingest(result.name, result.chunk_count, result.document.id)
                    )
                if isinstance(result.cause, CapabilityUnavailableError):
                    missing_key = result.cause
            elif result.skipped:
                console.print(f"  [dim]↷ {result.name}: empty, nothing indexed[/]")
            else:
                console.print(f"  [green]✓[/] {result.name}: {result.chunk_count} chunks")

    if missing_key is not None:
        console.print(err_capability_unavailable(missing_key))
    if failed:
        raise typer.Exit(1)


# ------------------------------------------------------------------
# Directory expansion
# ------------------------------------------------------------------


def _expand_paths(paths: list[Path], recursive: bool, exclude: list[str]) -> list[Path]:
    """Expand directories to individual files; leave files as-is."""
    result: list[Path] = []
    for p in paths:
        if p.is_dir():
            found = _scan_dir(p, recursive=recursive, exclude=exclude, depth=0)
            if not found:
                console.print(f"[yellow]No supported files found in directory:[/] {p}")
            result.extend(found)
        else:
            result.append(p)
    return result


def _scan_dir(
    directory: Path,
    recursive: bool,
    exclude: list[str],
    depth: int,
    max_depth: int = 10,
) -> list[Path]:
    """Return supported files in *directory* (optionally recursive)."""
    if depth > max_depth:
        return []
    files: list[Path] = []
    try:
        entries = sorted(directory.iterdir())
    except PermissionError:
        return []
    for entry in entries:
        if any(fnmatch.fnmatch(entry.name, pat) for pat in exclude):
            continue
        if entry.is_file() and entry.suffix.lower() in SUPPORTED_EXTENSIONS:
            files.append(entry)
        elif entry.is_dir() and recursive and depth < max_depth:
            files.extend(
                _scan_dir(entry, recursive=recursive, exclude=exclude, depth=depth + 1)
            )
    return files
