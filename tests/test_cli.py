import os
import re

os.environ.setdefault("KB_DB_BACKEND", "sqlite")

import pytest
from typer.testing import CliRunner

from conftest import StubClassifier, StubEmbedder, suggestion

import kb.cli as cli
from kb.cli import app, truncate


runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli" / "kb.db"


@pytest.fixture
def providers(monkeypatch):
    classifier = StubClassifier([suggestion("golang", parent="programming", confidence=0.9)])
    embedder = StubEmbedder()
    monkeypatch.setattr(cli, "get_classifier", lambda: classifier)
    monkeypatch.setattr(cli, "get_embedder", lambda: embedder)
    return classifier, embedder


def _invoke(db_path, *args):
    return runner.invoke(app, ["--db", str(db_path), *args])


def _added_id(result) -> str:
    match = re.search(r"Added entry: ([0-9a-f]{8})", result.output)
    assert match, result.output
    return match.group(1)


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("line one\nline two", 100) == "line one line two"
    assert truncate("a" * 20, 10) == "aaaaaaa..."


def test_empty_database_messages(db_path, providers):
    assert "No entries yet. Use 'kb add' to create one." in _invoke(db_path, "list").output
    assert "No tags yet. Tags emerge from entry classification." in _invoke(db_path, "tags").output
    assert "No matching entries found." in _invoke(db_path, "search", "nothing").output
    assert db_path.exists()


def test_add_list_show(db_path, providers):
    added = _invoke(db_path, "add", "Go", "channels", "and", "goroutines")
    assert added.exit_code == 0, added.output
    short_id = _added_id(added)
    assert "+ golang (under programming)" in added.output

    listed = _invoke(db_path, "list")
    assert f"{short_id}  Go channels and goroutines" in listed.output

    shown = _invoke(db_path, "show", short_id)
    assert shown.exit_code == 0, shown.output
    assert "Go channels and goroutines" in shown.output
    assert "golang (0.90)" in shown.output


def test_add_no_classify(db_path, providers):
    classifier, _ = providers
    result = _invoke(db_path, "add", "--no-classify", "plain note")
    assert result.exit_code == 0, result.output
    assert classifier.calls == []
    assert "classification: skipped" in result.output


def test_add_blank_content_fails(db_path, providers):
    result = _invoke(db_path, "add", "   ")
    assert result.exit_code == 1
    assert "content must be a non-empty string" in result.output


def test_tags_tree_output(db_path, providers):
    _invoke(db_path, "add", "Go channels")
    result = _invoke(db_path, "tags")
    assert "programming\n  golang\n" in result.output


def test_show_unknown_id(db_path, providers):
    result = _invoke(db_path, "show", "deadbeef")
    assert result.exit_code == 1
    assert "Entry not found" in result.output


def test_search_and_delete(db_path, providers):
    short_id = _added_id(_invoke(db_path, "add", "Goroutines are cheap"))

    found = _invoke(db_path, "search", "GOROUTINE")
    assert short_id in found.output

    deleted = _invoke(db_path, "delete", short_id)
    assert deleted.exit_code == 0, deleted.output
    assert "No entries yet." in _invoke(db_path, "list").output


def test_suggest_and_open(db_path, providers):
    first = _added_id(_invoke(db_path, "add", "--no-classify", "first note"))
    second = _added_id(_invoke(db_path, "add", "--no-classify", "second note"))

    listed = _invoke(db_path, "suggest")
    assert listed.output.index(second) < listed.output.index(first)
    assert "(viewed never)" in listed.output

    opened = _invoke(db_path, "suggest", "--open")
    assert "second note" in opened.output

    after = _invoke(db_path, "suggest")
    assert after.output.index(first) < after.output.index(second)


def test_similar(db_path, providers):
    first = _added_id(_invoke(db_path, "add", "Go channels"))
    second = _added_id(_invoke(db_path, "add", "Go channel buffering"))

    result = _invoke(db_path, "similar", first)
    assert result.exit_code == 0, result.output
    assert second in result.output

    by_tags = _invoke(db_path, "similar", "--by-tags", first)
    assert second in by_tags.output


def test_backfill(db_path, monkeypatch):
    monkeypatch.setattr(cli, "get_classifier", lambda: StubClassifier())
    monkeypatch.setattr(cli, "get_embedder", lambda: StubEmbedder(error="down"))
    _invoke(db_path, "add", "needs a vector")

    monkeypatch.setattr(cli, "get_embedder", lambda: StubEmbedder())
    result = _invoke(db_path, "backfill")
    assert result.exit_code == 0, result.output
    assert "ok: processed 1, embedded 1, skipped 0" in result.output
