"""Tests for Repository: documents, chunks, session records, settings."""

from __future__ import annotations

import json

import pytest

from ragchat.db.models import Chunk, Document, UserProfile
from ragchat.db.repository import ACTIVE_SESSION_KEY
from ragchat.db.vectors import serialize_embedding


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _doc(doc_id: str = "doc-1", title: str = "Runbook", created_at: int = 1_000) -> Document:
    return Document(
        id=doc_id,
        title=title,
        raw_text="some text",
        source_type="markdown",
        tags=["ops"],
        created_at=created_at,
    )


def _chunk(doc: Document, index: int, embedding=None) -> Chunk:
    return Chunk(
        id=f"{doc.id}-chunk-{index}",
        document_id=doc.id,
        document_title=doc.title,
        text=f"chunk {index} of {doc.title}",
        embedding=embedding or [1.0, 0.0, 0.5],
        chunk_index=index,
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def test_add_and_get_document(repo):
    repo.add_document(_doc())
    fetched = repo.get_document("doc-1")
    assert fetched is not None
    assert fetched.title == "Runbook"
    assert fetched.source_type == "markdown"
    assert fetched.category == "General"
    assert fetched.tags == ["ops"]


def test_get_missing_document_returns_none(repo):
    assert repo.get_document("nope") is None


def test_list_documents_newest_first(repo):
    repo.add_document(_doc("old", "Old", created_at=1_000))
    repo.add_document(_doc("new", "New", created_at=2_000))
    assert [d.id for d in repo.list_documents()] == ["new", "old"]


def test_delete_document_cascades_to_its_chunks_only(repo):
    a, b = _doc("a", "A"), _doc("b", "B")
    repo.add_document(a)
    repo.add_document(b)
    for i in range(3):
        repo.add_chunk(_chunk(a, i))
    for i in range(2):
        repo.add_chunk(_chunk(b, i))

    assert repo.delete_document("a") == 3

    assert repo.get_document("a") is None
    remaining = repo.list_chunks()
    assert len(remaining) == 2
    assert all(c.document_id == "b" for c in remaining)


def test_delete_all_documents(repo):
    a = _doc("a", "A")
    repo.add_document(a)
    repo.add_document(_doc("b", "B"))
    repo.add_chunk(_chunk(a, 0))

    assert repo.delete_all_documents() == 2
    assert repo.list_documents() == []
    assert repo.list_chunks() == []


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------


def test_add_chunk_roundtrips_embedding(repo):
    doc = _doc()
    repo.add_document(doc)
    repo.add_chunk(_chunk(doc, 0, embedding=[0.25, -0.5, 1.0]))

    [chunk] = repo.list_chunks()
    assert chunk.embedding == pytest.approx([0.25, -0.5, 1.0])
    assert chunk.document_title == "Runbook"


def test_add_chunk_requires_existing_document(repo):
    orphan = _chunk(_doc("ghost"), 0)
    with pytest.raises(ValueError, match="ghost"):
        repo.add_chunk(orphan)


def test_add_chunk_rejects_empty_embedding(repo):
    doc = _doc()
    repo.add_document(doc)
    bad = _chunk(doc, 0)
    bad.embedding = []
    with pytest.raises(ValueError):
        repo.add_chunk(bad)


def test_list_chunks_skips_orphans(repo, tmp_db):
    doc = _doc()
    repo.add_document(doc)
    repo.add_chunk(_chunk(doc, 0))
    tmp_db.execute("PRAGMA foreign_keys = OFF")
    tmp_db.execute(
        "INSERT INTO chunks (id, document_id, document_title, chunk_index, text, embedding)"
        " VALUES (?, ?, ?, ?, ?, ?)",
        ("orphan", "missing-doc", "Gone", 0, "x", serialize_embedding([1.0])),
    )
    tmp_db.commit()

    ids = [c.id for c in repo.list_chunks()]
    assert ids == ["doc-1-chunk-0"]


def test_list_chunks_skips_malformed_embedding(repo, tmp_db):
    doc = _doc()
    repo.add_document(doc)
    repo.add_chunk(_chunk(doc, 0))
    tmp_db.execute(
        "INSERT INTO chunks (id, document_id, document_title, chunk_index, text, embedding)"
        " VALUES (?, ?, ?, ?, ?, ?)",
        ("broken", "doc-1", "Runbook", 1, "x", b"\x01\x02\x03"),
    )
    tmp_db.commit()

    ids = [c.id for c in repo.list_chunks()]
    assert ids == ["doc-1-chunk-0"]


def test_list_chunks_by_document_ordered(repo):
    doc = _doc()
    repo.add_document(doc)
    for i in (2, 0, 1):
        repo.add_chunk(_chunk(doc, i))
    assert [c.chunk_index for c in repo.list_chunks_by_document("doc-1")] == [0, 1, 2]
    assert repo.count_chunks_by_document("doc-1") == 3


# ---------------------------------------------------------------------------
# Session records
# ---------------------------------------------------------------------------


def test_put_session_record_upserts(repo):
    repo.put_session_record({"id": "s1", "title": "a", "messages": [], "updatedAt": 1})
    repo.put_session_record({"id": "s1", "title": "b", "messages": [], "updatedAt": 2})

    assert repo.get_session_record("s1")["title"] == "b"
    assert len(repo.list_session_records()) == 1
    assert repo.session_exists("s1")


def test_get_session_record_invalid_json_returned_raw(repo, tmp_db):
    tmp_db.execute(
        "INSERT INTO sessions (id, updated_at, data) VALUES (?, ?, ?)", ("bad", 0, "{not json")
    )
    tmp_db.commit()
    assert repo.get_session_record("bad") == "{not json"


def test_get_missing_session_record(repo):
    assert repo.get_session_record("nope") is None


def test_delete_session_record(repo):
    repo.put_session_record({"id": "s1", "messages": [], "updatedAt": 1})
    assert repo.delete_session_record("s1") is True
    assert repo.delete_session_record("s1") is False
    assert not repo.session_exists("s1")


# ---------------------------------------------------------------------------
# Settings + profile
# ---------------------------------------------------------------------------


def test_settings_set_get_delete(repo):
    assert repo.get_setting(ACTIVE_SESSION_KEY) is None
    repo.set_setting(ACTIVE_SESSION_KEY, "s1")
    repo.set_setting(ACTIVE_SESSION_KEY, "s2")
    assert repo.get_setting(ACTIVE_SESSION_KEY) == "s2"
    repo.delete_setting(ACTIVE_SESSION_KEY)
    assert repo.get_setting(ACTIVE_SESSION_KEY) is None


def test_profile_default_when_missing(repo):
    profile = repo.load_profile()
    assert profile.name == ""
    assert profile.technical_stack == []


def test_profile_roundtrip(repo):
    repo.save_profile(
        UserProfile(name="Ada", role="Engineer", technical_stack=["python"], interests=["rag"])
    )
    loaded = repo.load_profile()
    assert loaded.name == "Ada"
    assert loaded.role == "Engineer"
    assert loaded.technical_stack == ["python"]
    assert loaded.interests == ["rag"]


def test_profile_malformed_fields_fall_back(repo):
    repo.set_setting("profile", json.dumps({"name": 42, "interests": "not-a-list"}))
    loaded = repo.load_profile()
    assert loaded.name == ""
    assert loaded.interests == []
