"""Embedding blob encoding for the chunks table (sqlite-vec float32 format)."""

from __future__ import annotations

import json
import math
import sqlite3
from collections.abc import Sequence

import sqlite_vec


def serialize_embedding(embedding: Sequence[float]) -> bytes:
    """Encode *embedding* as a little-endian float32 blob.

    Raises:
        ValueError: If the vector is empty or contains NaN / infinity.
    """
    if len(embedding) == 0:
        raise ValueError("embedding must contain at least one dimension")
    values = [float(v) for v in embedding]
    if not all(math.isfinite(v) for v in values):
        raise ValueError("embedding contains non-finite values")
    return sqlite_vec.serialize_float32(values)


def decode_embedding(conn: sqlite3.Connection, blob: bytes | None) -> list[float] | None:
    """Decode a stored blob via sqlite-vec's ``vec_to_json()``.

    Returns None for a missing or malformed blob instead of raising, so one
    corrupted row cannot fail a full index load.
    """
    if not blob:
        return None
    try:
        row = conn.execute("SELECT vec_to_json(?)", (blob,)).fetchone()
    except sqlite3.Error:
        return None
    return parse_embedding_json(row[0] if row else None)


def parse_embedding_json(raw: str | None) -> list[float] | None:
    """Decode a JSON float array; None if malformed."""
    if raw is None:
        return None
    try:
        values = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None
    if not isinstance(values, list) or not values:
        return None
    if not all(isinstance(v, (int, float)) for v in values):
        return None
    return [float(v) for v in values]
