"""ragchat rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from ragchat.cli.errors import err_capability_unavailable
    console.print(err_capability_unavailable(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from ragchat.errors import CapabilityUnavailableError


def err_capability_unavailable(exc: CapabilityUnavailableError) -> str:
    """A provider capability has no API key.

    Example:
        embedding is unavailable: no API key for 'gemini'.
          Set:  export GEMINI_API_KEY=...
    """
    return (
        f"[red]Error:[/] {exc.capability} is unavailable: no API key for '{exc.provider}'.\n"
        f"  Set:  export {exc.env_var}=..."
    )


def err_config(message: str) -> str:
    """Config file is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix ragchat.yaml (or ~/.ragchat/config.yaml) and retry."
    )


def err_no_files() -> str:
    return (
        "[red]Error:[/] No files given.\n"
        "  Run:  ragchat ingest notes.md report.pdf"
    )


def err_document_not_found(document_id: str) -> str:
    return (
        f"[yellow]Document not found:[/] '{document_id}' is not in the library.\n"
        "  Run:  ragchat docs list  to see all documents."
    )


def err_session_not_found(session_id: str, reason: str | None = None) -> str:
    detail = f" ({reason})" if reason else ""
    return (
        f"[yellow]Conversation unavailable:[/] '{session_id}'{detail}.\n"
        "  Run:  ragchat sessions list  to see saved conversations."
    )


def err_turn_in_progress() -> str:
    return (
        "[red]Error:[/] An answer is still streaming.\n"
        "  Wait for it to finish before sending the next message."
    )


def warn_partial_ingest(name: str, stored: int, document_id: str) -> str:
    """Some chunks of a failed document were stored."""
    return (
        f"[yellow]⚠[/] {stored} chunk(s) of '{name}' were indexed before the failure.\n"
        f"  Run:  ragchat docs remove {document_id}  and ingest it again."
    )
