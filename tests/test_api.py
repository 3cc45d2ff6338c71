import json
import os

os.environ.setdefault("KB_DB_BACKEND", "sqlite")

import pytest
from fastapi.testclient import TestClient

from conftest import StubClassifier, StubEmbedder, suggestion

from kb.models import Tag, new_id
from kb.services import associations, embeddings, entries, tags
from kb_api.deps import get_classifier_dep, get_embedder_dep
from kb_api.main import create_app
from kb_api.schemas import tree_json, tree_payload


def _make_client(store, classifier=None, embedder=None):
    app = create_app(store=store)
    app.dependency_overrides[get_classifier_dep] = lambda: classifier
    app.dependency_overrides[get_embedder_dep] = lambda: embedder
    return TestClient(app)


@pytest.fixture
def client(store, stub_classifier, stub_embedder):
    with _make_client(store, stub_classifier, stub_embedder) as test_client:
        yield test_client


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "kb"


def test_health(migrated_store):
    with _make_client(migrated_store, StubClassifier(), StubEmbedder()) as test_client:
        response = test_client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"]["schema_up_to_date"] is True
    assert body["embedder"]["model"] == "stub-embedding"


def test_create_entry_classifies_and_embeds(client, store):
    response = client.post("/entries", json={"content": "Go channels and goroutines"})

    assert response.status_code == 201
    body = response.json()
    assert body["entry"]["content"] == "Go channels and goroutines"
    assert {tag["name"] for tag in body["tags"]} == {"golang", "concurrency"}
    assert body["degraded"] == []
    assert tags.get_tag_by_name(store, "programming").parent_id is None


def test_create_entry_no_classify(client):
    response = client.post("/entries", json={"content": "quiet note", "no_classify": True})
    assert response.status_code == 201
    assert response.json()["tags"] == []
    assert response.json()["degraded"] == ["classification: skipped"]


def test_create_entry_blank_content_is_400(client):
    response = client.post("/entries", json={"content": "   "})
    assert response.status_code == 400
    assert response.json()["field"] == "content"


def test_create_entry_degrades_without_providers(store):
    with _make_client(store) as test_client:
        response = test_client.post("/entries", json={"content": "no providers"})
    assert response.status_code == 201
    assert len(response.json()["degraded"]) == 2


def test_list_entries(client, store):
    for i in range(3):
        entries.create_entry(store, f"entry {i}")

    response = client.get("/entries", params={"limit": 2})
    assert response.status_code == 200
    assert [entry["content"] for entry in response.json()["entries"]] == ["entry 2", "entry 1"]

    assert client.get("/entries", params={"limit": -1}).status_code == 400


def test_get_entry_by_prefix(client, store):
    entry = entries.create_entry(store, "find me")
    tag = tags.get_or_create_tag(store, "findable")
    associations.link_entry_tag(store, entry.id, tag.id, 0.6)

    response = client.get(f"/entries/{entry.id[:8]}")
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == entry.id
    assert body["tags"] == [
        {
            "id": tag.id,
            "name": "findable",
            "parent_id": None,
            "created_at": body["tags"][0]["created_at"],
            "confidence": 0.6,
        }
    ]

    missing = client.get("/entries/zzzzzzzz")
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


def test_delete_entry(client, store):
    entry = entries.create_entry(store, "delete me")
    assert client.delete(f"/entries/{entry.id}").status_code == 204
    assert client.delete(f"/entries/{entry.id}").status_code == 404


def test_view_entry_updates_last_viewed(client, store):
    entry = entries.create_entry(store, "view me")
    response = client.post(f"/entries/{entry.id}/view")
    assert response.status_code == 200
    assert response.json()["last_viewed_at"] is not None


def test_similar_and_related(client, store):
    a = entries.create_entry(store, "a")
    b = entries.create_entry(store, "b")
    embeddings.save_embedding(store, a.id, [1.0, 0.0], "m")
    embeddings.save_embedding(store, b.id, [0.8, 0.2], "m")
    shared = tags.get_or_create_tag(store, "shared")
    associations.link_entry_tag(store, a.id, shared.id, 0.5)
    associations.link_entry_tag(store, b.id, shared.id, 0.5)

    similar = client.get(f"/entries/{a.id}/similar").json()
    assert [match["entry"]["id"] for match in similar["similar"]] == [b.id]

    related = client.get(f"/entries/{a.id}/related").json()
    assert [entry["id"] for entry in related["entries"]] == [b.id]


def test_tags_tree_and_flat(client, store):
    parent = tags.get_or_create_tag(store, "programming")
    child = tags.get_or_create_tag(store, "golang", parent.id)
    entry = entries.create_entry(store, "Go")
    associations.link_entry_tag(store, entry.id, child.id, 0.9)

    body = client.get("/tags").json()
    assert [node["name"] for node in body["tags"]] == ["programming"]
    assert [node["name"] for node in body["tags"][0]["children"]] == ["golang"]
    assert {tag["name"] for tag in body["flat"]} == {"programming", "golang"}

    tagged = client.get(f"/tags/{parent.id}/entries").json()
    assert [item["id"] for item in tagged["entries"]] == [entry.id]
    direct = client.get(f"/tags/{parent.id}/entries", params={"include_descendants": "false"}).json()
    assert direct["entries"] == []


def test_tags_empty(client):
    assert client.get("/tags").json() == {"tags": [], "flat": []}


def test_search(client, store):
    entries.create_entry(store, "Goroutines are cheap")
    entries.create_entry(store, "Python generators")

    body = client.get("/search", params={"q": "GOROUTINE"}).json()
    assert [entry["content"] for entry in body["entries"]] == ["Goroutines are cheap"]

    assert client.get("/search").status_code == 400
    assert client.get("/search", params={"q": " "}).status_code == 400


def test_suggestions(client, store):
    viewed = entries.create_entry(store, "viewed")
    fresh = entries.create_entry(store, "never viewed")
    entries.touch_viewed(store, viewed.id)

    body = client.get("/suggestions").json()
    assert [entry["id"] for entry in body["entries"]] == [fresh.id, viewed.id]


def test_cors_preflight(client):
    response = client.options(
        "/entries",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] in {"*", "http://localhost:3000"}


def test_created_at_matches_between_create_and_get(client):
    created = client.post("/entries", json={"content": "timestamped"}).json()["entry"]
    fetched = client.get(f"/entries/{created['id']}").json()
    assert fetched["created_at"] == created["created_at"]
    assert fetched["created_at"].endswith("+00:00")


def _tag_chain(store, depth):
    """Insert depth tags, each parented to the one before it."""
    db = store.SessionLocal()
    try:
        parent_id = None
        for level in range(depth):
            tag = Tag(id=new_id(), name=f"level-{level:04d}", parent_id=parent_id)
            db.add(tag)
            parent_id = tag.id
        db.commit()
    finally:
        db.close()


def test_tree_payload_handles_deep_parent_chain(store):
    _tag_chain(store, 1200)

    payload = tree_payload(tags.tag_tree(store))

    assert len(payload) == 1
    depth, node = 1, payload[0]
    while node["children"]:
        assert len(node["children"]) == 1
        node = node["children"][0]
        depth += 1
    assert depth == 1200
    assert node["name"] == "level-1199"


def test_tree_json_round_trips_shallow_trees():
    payload = [
        {"id": "p", "name": "programming", "children": [
            {"id": "g", "name": "golang", "children": []},
            {"id": "r", "name": "rust \"quoted\"", "children": []},
        ]},
        {"id": "c", "name": "cooking", "children": []},
    ]
    assert json.loads(tree_json(payload)) == payload
    assert tree_json([]) == "[]"


def test_tags_endpoint_serves_deep_parent_chain(client, store):
    _tag_chain(store, 1200)

    response = client.get("/tags")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.text.startswith('{"tags": [{"id": ')
    assert response.text.count('"children": [') == 1200
    assert '"name": "level-1199", "children": []' in response.text
