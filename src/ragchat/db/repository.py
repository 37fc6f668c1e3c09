"""Repository pattern for all ragchat database operations.

Single interface for: documents, chunks (+ embeddings), chat session records,
and small key/value settings (active session pointer, user profile).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from ragchat.db.models import Chunk, Document, UserProfile
from ragchat.db.vectors import decode_embedding, serialize_embedding

logger = logging.getLogger(__name__)

ACTIVE_SESSION_KEY = "active_session"
PROFILE_KEY = "profile"


class Repository:
    """Data access layer for all ragchat entities.

    Wraps an open sqlite3.Connection and provides typed methods per category.
    The connection is owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see ragchat.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, doc: Document) -> None:
        """Insert a new document record.

        Args:
            doc: Document dataclass instance to persist.
        """
        self._conn.execute(
            """
            INSERT INTO documents (id, title, raw_text, source_type, category, tags, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                doc.id,
                doc.title,
                doc.raw_text,
                doc.source_type,
                doc.category,
                json.dumps(doc.tags),
                doc.created_at,
            ),
        )
        self._conn.commit()

    def get_document(self, document_id: str) -> Document | None:
        """Return a document by ID, or None if not found."""
        row = self._conn.execute(
            "SELECT * FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        """Return all documents, newest first."""
        rows = self._conn.execute(
            "SELECT * FROM documents ORDER BY created_at DESC, rowid DESC"
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def delete_document(self, document_id: str) -> int:
        """Delete a document and every chunk derived from it.

        Chunks are removed explicitly through the document_id index so the
        cascade does not depend on the foreign_keys pragma.

        Returns:
            Number of chunks deleted.
        """
        cur = self._conn.execute(
            "DELETE FROM chunks WHERE document_id = ?", (document_id,)
        )
        deleted = cur.rowcount
        self._conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        self._conn.commit()
        return deleted

    def delete_all_documents(self) -> int:
        """Delete every document and chunk. Returns the number of documents removed."""
        count = self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
        self._conn.execute("DELETE FROM chunks")
        self._conn.execute("DELETE FROM documents")
        self._conn.commit()
        return count

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> None:
        """Insert one embedded chunk.

        Raises:
            ValueError: If the owning document does not exist, or the chunk
                has no usable embedding.
        """
        if self.get_document(chunk.document_id) is None:
            raise ValueError(
                f"Cannot store chunk {chunk.id!r}: document {chunk.document_id!r} does not exist"
            )
        self._conn.execute(
            """
            INSERT INTO chunks (id, document_id, document_title, chunk_index, text, embedding)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                chunk.document_id,
                chunk.document_title,
                chunk.chunk_index,
                chunk.text,
                serialize_embedding(chunk.embedding),
            ),
        )
        self._conn.commit()

    def list_chunks(self) -> list[Chunk]:
        """Return every valid chunk in ingestion order.

        Orphaned chunks (no owning document) and rows whose embedding cannot
        be decoded are skipped and logged rather than raised.
        """
        rows = self._conn.execute(
            """
            SELECT c.id, c.document_id, c.document_title, c.chunk_index, c.text,
                   c.embedding, d.id AS owner
            FROM chunks c LEFT JOIN documents d ON d.id = c.document_id
            ORDER BY c.rowid
            """
        ).fetchall()
        chunks: list[Chunk] = []
        for row in rows:
            if row["owner"] is None:
                logger.warning(
                    "Skipping orphaned chunk %s (document %s missing)",
                    row["id"],
                    row["document_id"],
                )
                continue
            chunk = self._row_to_chunk(row)
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def list_chunks_by_document(self, document_id: str) -> list[Chunk]:
        """Return the chunks of one document ordered by chunk_index."""
        rows = self._conn.execute(
            """
            SELECT id, document_id, document_title, chunk_index, text, embedding
            FROM chunks WHERE document_id = ? ORDER BY chunk_index
            """,
            (document_id,),
        ).fetchall()
        return [c for c in (self._row_to_chunk(r) for r in rows) if c is not None]

    def count_chunks_by_document(self, document_id: str) -> int:
        """Return the number of chunks belonging to *document_id*."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        ).fetchone()[0]

    def _row_to_chunk(self, row: sqlite3.Row) -> Chunk | None:
        embedding = decode_embedding(self._conn, row["embedding"])
        if embedding is None:
            logger.warning("Skipping chunk %s: malformed embedding", row["id"])
            return None
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            document_title=row["document_title"],
            chunk_index=row["chunk_index"],
            text=row["text"],
            embedding=embedding,
        )

    # ------------------------------------------------------------------
    # Session records
    # ------------------------------------------------------------------

    def put_session_record(self, record: dict[str, Any]) -> None:
        """Insert or replace a session record keyed by ``record['id']``."""
        self._conn.execute(
            """
            INSERT INTO sessions (id, updated_at, data) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                updated_at = excluded.updated_at,
                data = excluded.data
            """,
            (record["id"], int(record.get("updatedAt", 0)), json.dumps(record)),
        )
        self._conn.commit()

    def get_session_record(self, session_id: str) -> Any | None:
        """Return the decoded record for *session_id*.

        None means not found. A record that is not valid JSON is returned as
        its raw text so validation can reject it with a reason.
        """
        row = self._conn.execute(
            "SELECT data FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return _decode_record(row["data"]) if row else None

    def list_session_records(self) -> list[Any]:
        """Return every stored session record (unvalidated)."""
        rows = self._conn.execute("SELECT data FROM sessions").fetchall()
        return [_decode_record(r["data"]) for r in rows]

    def delete_session_record(self, session_id: str) -> bool:
        """Delete a session record. Returns True if a row was removed."""
        cur = self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        self._conn.commit()
        return cur.rowcount > 0

    def session_exists(self, session_id: str) -> bool:
        return (
            self._conn.execute(
                "SELECT 1 FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            is not None
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        self._conn.commit()

    def delete_setting(self, key: str) -> None:
        self._conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        self._conn.commit()

    def load_profile(self) -> UserProfile:
        """Return the stored user profile, or an empty default profile."""
        raw = self.get_setting(PROFILE_KEY)
        if raw is None:
            return UserProfile()
        return UserProfile.from_record(_decode_record(raw))

    def save_profile(self, profile: UserProfile) -> None:
        self.set_setting(PROFILE_KEY, json.dumps(profile.to_record()))


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _decode_record(data: str) -> Any:
    try:
        return json.loads(data)
    except (TypeError, json.JSONDecodeError):
        return data


def _row_to_document(row: sqlite3.Row) -> Document:
    tags = _decode_record(row["tags"])
    return Document(
        id=row["id"],
        title=row["title"],
        raw_text=row["raw_text"],
        source_type=row["source_type"],
        category=row["category"],
        tags=tags if isinstance(tags, list) else [],
        created_at=row["created_at"],
    )
