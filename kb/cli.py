"""
CLI interface for the knowledge base.

Usage:
    kb add "Go channels and goroutines"
    kb list -n 10
    kb show 3f2a9c1b
    kb tags
    kb search goroutine
    kb suggest
    kb serve --port 8080
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, Optional

import typer

import kb.config as config
from kb.capture import backfill_embeddings, capture_entry
from kb.db import Store, open_store
from kb.errors import KBError
from kb.providers.classifier import close_classifier, get_classifier
from kb.providers.embedder import close_embedder, get_embedder
from kb.providers.fetcher import fetch_text, is_url
from kb.records import EntryRecord, TagNode
from kb.services import associations, embeddings, entries, suggestions, tags

app = typer.Typer(
    name="kb",
    help="Knowledge base with automatic tagging.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


def truncate(text: str, max_len: int) -> str:
    text = text.replace("\n", " ")
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _entry_line(entry: EntryRecord, width: int = 60) -> str:
    return f"{entry.short_id}  {truncate(entry.content, width)}"


@app.callback()
def main(
    ctx: typer.Context,
    db: Annotated[Optional[Path], typer.Option(
        "--db",
        help="Database path (default ~/.kb/kb.db, or KB_SQLITE_PATH)",
        envvar="KB_SQLITE_PATH",
    )] = None,
):
    """Knowledge base with automatic tagging."""
    ctx.obj = {"db": db}


@contextmanager
def _store(ctx: typer.Context) -> Iterator[Store]:
    db_path = (ctx.obj or {}).get("db")
    url = config.sqlite_url(str(db_path)) if db_path else None
    try:
        store = open_store(url)
    except (RuntimeError, KBError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1)
    try:
        yield store
    except KBError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1)
    finally:
        store.dispose()


@app.command()
def add(
    ctx: typer.Context,
    content: Annotated[list[str], typer.Argument(help="Text to capture (or a URL with --url)")],
    no_classify: Annotated[bool, typer.Option("--no-classify", help="Skip automatic classification")] = False,
    url: Annotated[bool, typer.Option("--url", help="Fetch the page and capture its text")] = False,
):
    """Add a new entry."""
    text = " ".join(content)
    with _store(ctx) as store:
        if url or (len(content) == 1 and is_url(text)):
            typer.echo(f"Fetching {text}... ", nl=False)
            text = fetch_text(text)
            typer.echo("done")

        try:
            result = capture_entry(
                store,
                text,
                classifier=get_classifier(),
                embedder=get_embedder(),
                classify=not no_classify,
            )
        finally:
            close_classifier()
            close_embedder()

        typer.echo(f"Added entry: {result.entry.short_id}")
        typer.echo(f"Content: {truncate(result.entry.content, 80)}")
        for applied in result.tags:
            if applied.parent:
                typer.echo(f"  + {applied.name} (under {applied.parent})")
            else:
                typer.echo(f"  + {applied.name}")
        for note in result.degraded:
            typer.echo(f"({note})")
        if result.similar:
            typer.echo("\nSimilar:")
            for match in result.similar:
                typer.echo(f"  {match.similarity:.2f}  {_entry_line(match.entry)}")


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of entries to show")] = 20,
    offset: Annotated[int, typer.Option("--offset", help="Entries to skip")] = 0,
):
    """List recent entries."""
    with _store(ctx) as store:
        rows = entries.list_entries(store, limit=limit, offset=offset)
        if not rows:
            typer.echo("No entries yet. Use 'kb add' to create one.")
            return
        for entry in rows:
            typer.echo(_entry_line(entry))


@app.command()
def show(
    ctx: typer.Context,
    entry_id: Annotated[str, typer.Argument(help="Entry id or id prefix")],
):
    """Show entry details."""
    with _store(ctx) as store:
        full_id = entries.resolve_entry_prefix(store, entry_id)
        entry = entries.get_entry(store, full_id)
        linked = associations.linked_tags_of(store, full_id)

        typer.echo(f"ID:      {entry.id}")
        typer.echo(f"Created: {entry.created_at:%Y-%m-%d %H:%M:%S}")
        if entry.last_viewed_at:
            typer.echo(f"Viewed:  {entry.last_viewed_at:%Y-%m-%d %H:%M:%S}")
        typer.echo(f"Content:\n{entry.content}")
        if linked:
            typer.echo("\nTags:")
            for item in linked:
                typer.echo(f"  - {item.tag.name} ({item.confidence:.2f})")


@app.command()
def delete(
    ctx: typer.Context,
    entry_id: Annotated[str, typer.Argument(help="Entry id or id prefix")],
):
    """Delete an entry with its tags links and embedding."""
    with _store(ctx) as store:
        full_id = entries.resolve_entry_prefix(store, entry_id)
        entries.delete_entry(store, full_id)
        typer.echo(f"Deleted entry: {full_id[:8]}")


def _print_tree(nodes: list[TagNode]) -> None:
    stack = [(node, 0) for node in reversed(nodes)]
    while stack:
        node, depth = stack.pop()
        typer.echo(f"{'  ' * depth}{node.name}")
        stack.extend((child, depth + 1) for child in reversed(node.children))


@app.command("tags")
def tags_cmd(ctx: typer.Context):
    """List all tags as a tree."""
    with _store(ctx) as store:
        tree = tags.tag_tree(store)
        if not tree:
            typer.echo("No tags yet. Tags emerge from entry classification.")
            return
        _print_tree(tree)


@app.command()
def search(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Text to look for (case-insensitive)")],
):
    """Search entries."""
    with _store(ctx) as store:
        rows = entries.search_entries(store, query)
        if not rows:
            typer.echo("No matching entries found.")
            return
        for entry in rows:
            typer.echo(_entry_line(entry))


@app.command()
def suggest(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of suggestions")] = 5,
    open_first: Annotated[bool, typer.Option("--open", help="Open the first suggestion and mark it viewed")] = False,
):
    """Resurface entries you have not looked at for a while."""
    with _store(ctx) as store:
        rows = suggestions.suggest(store, limit=limit)
        if not rows:
            typer.echo("Nothing to suggest yet.")
            return
        if open_first:
            entry = suggestions.open_suggestion(store, rows[0].id)
            typer.echo(f"{entry.id}\n{entry.content}")
            return
        for entry in rows:
            seen = f"{entry.last_viewed_at:%Y-%m-%d}" if entry.last_viewed_at else "never"
            typer.echo(f"{_entry_line(entry)}  (viewed {seen})")


@app.command()
def similar(
    ctx: typer.Context,
    entry_id: Annotated[str, typer.Argument(help="Entry id or id prefix")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of results")] = 5,
    by_tags: Annotated[bool, typer.Option("--by-tags", help="Use shared tags instead of embeddings")] = False,
):
    """Show entries related to an entry."""
    with _store(ctx) as store:
        full_id = entries.resolve_entry_prefix(store, entry_id)
        if by_tags:
            rows = suggestions.similar_by_tags(store, full_id, limit=limit)
            for entry in rows:
                typer.echo(_entry_line(entry))
        else:
            matches = embeddings.find_similar_to_entry(store, full_id, limit=limit)
            for match in matches:
                typer.echo(f"{match.similarity:.2f}  {_entry_line(match.entry)}")


@app.command()
def backfill(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max entries to embed")] = 50,
):
    """Compute embeddings for entries that have none."""
    with _store(ctx) as store:
        try:
            stats = backfill_embeddings(store, get_embedder(), limit=limit)
        finally:
            close_embedder()
        typer.echo(
            f"{stats['status']}: processed {stats.get('processed', 0)}, "
            f"embedded {stats.get('backfilled', 0)}, skipped {stats.get('skipped_count', 0)}"
        )


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8080,
):
    """Start the REST API server."""
    import uvicorn

    from kb_api.main import create_app

    db_path = (ctx.obj or {}).get("db")
    url = config.sqlite_url(str(db_path)) if db_path else None
    uvicorn.run(create_app(database_url=url), host=host, port=port)


if __name__ == "__main__":
    app()
