"""ragchat database layer."""

from ragchat.db.connection import Database
from ragchat.db.migrations import MIGRATIONS, run_migrations
from ragchat.db.repository import Repository
from ragchat.db.schema import initialize

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
]
