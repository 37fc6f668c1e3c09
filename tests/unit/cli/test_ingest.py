"""Tests for ragchat ingest and ragchat docs commands."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

from typer.testing import CliRunner

from ragchat.cli.main import app
from ragchat.db.connection import Database
from ragchat.db.repository import Repository
from ragchat.db.schema import initialize
from ragchat.errors import ProviderError

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def _documents(db_path: Path):
    with Database(db_path) as conn:
        initialize(conn)
        return Repository(conn).list_documents()


def _chunk_count(db_path: Path, document_id: str) -> int:
    with Database(db_path) as conn:
        return Repository(conn).count_chunks_by_document(document_id)


# ---------------------------------------------------------------------------
# ragchat ingest
# ---------------------------------------------------------------------------


def test_ingest_no_files_exits_1(db_path):
    result = runner.invoke(app, ["ingest", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "No files given" in result.output


def test_ingest_markdown_file(tmp_path, db_path, fake_embed):
    f = _write(tmp_path / "runbook.md", "# Deploy\n\nSteps.\n\n# Rollback\n\nRevert.")

    result = runner.invoke(app, ["ingest", str(f), "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "runbook.md: 2 chunks" in result.output
    [doc] = _documents(db_path)
    assert doc.title == "runbook.md"
    assert doc.source_type == "markdown"
    assert _chunk_count(db_path, doc.id) == 2
    assert fake_embed.await_count == 2


def test_ingest_directory_expands_supported_files(tmp_path, db_path, fake_embed):
    docs = tmp_path / "notes"
    docs.mkdir()
    _write(docs / "a.txt", "alpha")
    _write(docs / "b.md", "beta")
    (docs / "image.png").write_bytes(b"\x89PNG")

    result = runner.invoke(app, ["ingest", str(docs), "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert {d.title for d in _documents(db_path)} == {"a.txt", "b.md"}


def test_ingest_empty_file_is_skipped(tmp_path, db_path, fake_embed):
    f = _write(tmp_path / "empty.txt", "   ")
    result = runner.invoke(app, ["ingest", str(f), "--db", str(db_path)])
    assert result.exit_code == 0
    assert "nothing indexed" in result.output
    assert _documents(db_path) == []


def test_ingest_failure_reports_file_and_exits_1(tmp_path, db_path, monkeypatch):
    monkeypatch.setattr(
        "ragchat.rag.llm_client.embed",
        AsyncMock(side_effect=ProviderError("embedding", "quota exceeded")),
    )
    bad = _write(tmp_path / "bad.txt", "some text")

    result = runner.invoke(app, ["ingest", str(bad), "--db", str(db_path)])

    assert result.exit_code == 1
    assert "failed to process bad.txt" in result.output


def test_ingest_one_failure_does_not_stop_others(tmp_path, db_path, fake_embed):
    good = _write(tmp_path / "good.txt", "fine")
    missing = tmp_path / "missing.txt"

    result = runner.invoke(app, ["ingest", str(missing), str(good), "--db", str(db_path)])

    assert result.exit_code == 1
    assert "failed to process missing.txt" in result.output
    assert [d.title for d in _documents(db_path)] == ["good.txt"]


def test_ingest_missing_embedding_key(tmp_path, db_path, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    f = _write(tmp_path / "a.txt", "alpha")

    result = runner.invoke(app, ["ingest", str(f), "--db", str(db_path)])

    assert result.exit_code == 1
    assert "export GEMINI_API_KEY=" in result.output
    assert _documents(db_path) == []


def test_ingest_failure_not_blamed_on_older_same_named_file(tmp_path, db_path, fake_embed, monkeypatch):
    (tmp_path / "good").mkdir()
    (tmp_path / "bad").mkdir()
    good = _write(tmp_path / "good" / "notes.txt", "first copy")
    bad = _write(tmp_path / "bad" / "notes.txt", "second copy")
    runner.invoke(app, ["ingest", str(good), "--db", str(db_path)])

    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    result = runner.invoke(app, ["ingest", str(bad), "--db", str(db_path)])

    assert result.exit_code == 1
    assert "failed to process notes.txt" in result.output
    assert "were indexed before the failure" not in result.output
    assert len(_documents(db_path)) == 1


def test_ingest_partial_failure_names_document_to_remove(tmp_path, db_path, monkeypatch):
    monkeypatch.setattr(
        "ragchat.rag.llm_client.embed",
        AsyncMock(side_effect=[[1.0, 0.0, 0.0], ProviderError("embedding", "rate limited")]),
    )
    f = _write(tmp_path / "long.txt", "x" * 1500)

    result = runner.invoke(app, ["ingest", str(f), "--db", str(db_path)])

    assert result.exit_code == 1
    [doc] = _documents(db_path)
    assert _chunk_count(db_path, doc.id) == 1
    assert "1 chunk(s) of 'long.txt' were indexed before the failure" in result.output
    assert doc.id in result.output


def test_ingest_category_and_tags(tmp_path, db_path, fake_embed):
    f = _write(tmp_path / "runbook.md", "# Deploy\n\nSteps.")

    result = runner.invoke(
        app,
        [
            "ingest", str(f), "--db", str(db_path),
            "--category", "Ops", "--tag", "deploy", "--tag", "oncall",
        ],
    )

    assert result.exit_code == 0, result.output
    [doc] = _documents(db_path)
    assert doc.category == "Ops"
    assert doc.tags == ["deploy", "oncall"]

    listed = runner.invoke(app, ["docs", "list", "--db", str(db_path)], env={"COLUMNS": "200"})
    assert listed.exit_code == 0
    assert "Ops" in listed.output
    assert "deploy, oncall" in listed.output


def test_ingest_default_category(tmp_path, db_path, fake_embed):
    runner.invoke(app, ["ingest", str(_write(tmp_path / "a.txt", "alpha")), "--db", str(db_path)])
    [doc] = _documents(db_path)
    assert doc.category == "General"
    assert doc.tags == []


# ---------------------------------------------------------------------------
# ragchat docs
# ---------------------------------------------------------------------------


def test_docs_list_empty(db_path):
    result = runner.invoke(app, ["docs", "list", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "library is empty" in result.output


def test_docs_list_shows_titles(tmp_path, db_path, fake_embed):
    runner.invoke(app, ["ingest", str(_write(tmp_path / "a.txt", "alpha")), "--db", str(db_path)])
    result = runner.invoke(app, ["docs", "list", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "a.txt" in result.output


def test_docs_remove_not_found_exits_0(db_path):
    result = runner.invoke(app, ["docs", "remove", "nope", "--db", str(db_path), "--yes"])
    assert result.exit_code == 0
    assert "not found" in result.output.lower()


def test_docs_remove_deletes_document(tmp_path, db_path, fake_embed):
    runner.invoke(app, ["ingest", str(_write(tmp_path / "a.txt", "alpha")), "--db", str(db_path)])
    [doc] = _documents(db_path)

    result = runner.invoke(app, ["docs", "remove", doc.id, "--db", str(db_path), "--yes"])

    assert result.exit_code == 0, result.output
    assert "Removed: a.txt" in result.output
    assert _documents(db_path) == []


def test_docs_remove_cancelled(tmp_path, db_path, fake_embed):
    runner.invoke(app, ["ingest", str(_write(tmp_path / "a.txt", "alpha")), "--db", str(db_path)])
    [doc] = _documents(db_path)

    result = runner.invoke(app, ["docs", "remove", doc.id, "--db", str(db_path)], input="n\n")

    assert "Cancelled" in result.output
    assert len(_documents(db_path)) == 1


def test_docs_wipe(tmp_path, db_path, fake_embed):
    for name in ("a.txt", "b.txt"):
        runner.invoke(app, ["ingest", str(_write(tmp_path / name, name)), "--db", str(db_path)])

    result = runner.invoke(app, ["docs", "wipe", "--yes", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "2 documents removed" in result.output
    assert _documents(db_path) == []
