import os

os.environ.setdefault("KB_DB_BACKEND", "sqlite")


def test_core_imports():
    import kb.capture  # noqa: F401
    import kb.cli  # noqa: F401
    import kb.models  # noqa: F401
    import kb.services  # noqa: F401
    import kb_api.main  # noqa: F401


def test_core_smoke_lifecycle(store):
    from kb.services import associations, entries, suggestions, tags

    entry = entries.create_entry(store, "Core import smoke entry")
    tag = tags.get_or_create_tag(store, "smoke")
    associations.link_entry_tag(store, entry.id, tag.id, 0.9)

    assert [found.id for found in entries.search_entries(store, "import smoke")] == [entry.id]
    assert suggestions.suggest(store, limit=5)[0].id == entry.id
    assert [item.name for item in associations.tags_of(store, entry.id)] == ["smoke"]

    entries.delete_entry(store, entry.id)
    assert entries.list_entries(store) == []
    assert [item.name for item in tags.list_tags(store)] == ["smoke"]


def test_migrated_schema_matches_models(migrated_store):
    from sqlalchemy import inspect

    from kb.db import get_schema_revisions

    current, head = get_schema_revisions(migrated_store)
    assert current == head == "0001_initial_schema"

    inspector = inspect(migrated_store.engine)
    assert {"entries", "tags", "entry_tags", "embeddings"} <= set(inspector.get_table_names())
    assert {column["name"] for column in inspector.get_columns("embeddings")} == {
        "entry_id",
        "vector",
        "model",
        "created_at",
    }
