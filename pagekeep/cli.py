"""
CLI interface for pagekeep.

Usage:
    pagekeep save https://example.com/article
    pagekeep find "css grid layout"
    pagekeep rate 12 4.5
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import PageKeeper
from .capture import PageCapture, fetch_page
from .errors import StorageFailure
from .logging_config import configure_quiet_mode, enable_debug_mode
from .providers.base import get_registry
from .types import ORDER_OPTIONS, SEARCH_FIELDS, SavedItem, parse_tag_list


# Configure quiet mode by default (suppress verbose library output)
# Set PAGEKEEP_VERBOSE=1 to enable debug mode via environment
if os.environ.get("PAGEKEEP_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"pagekeep {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="pagekeep",
    help="Saved web pages with search, summaries and ratings.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


# -----------------------------------------------------------------------------
# Output Formatting
# -----------------------------------------------------------------------------

def _local_date(ms: int) -> str:
    if not ms:
        return "----------"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d")


def _format_rating(rating: float) -> str:
    value = float(rating or 0)
    return f"{value:g}/5"


def _format_line(item: SavedItem) -> str:
    """One-line summary: id, date, rating, title, then url on its own line."""
    title = item.title or item.url
    return f"{item.id:>5}  {_local_date(item.saved_at)}  {_format_rating(item.rating):>5}  {title}\n       {item.url}"


def _format_full(item: SavedItem) -> str:
    lines = [
        f"id: {item.id}",
        f"url: {item.url}",
        f"title: {item.title}",
        f"saved: {_local_date(item.saved_at)}",
        f"rating: {_format_rating(item.rating)}",
        f"tags: {', '.join(item.tags) if item.tags else ''}",
    ]
    if item.intent:
        lines.append(f"intent: {item.intent}")
    if item.entities:
        lines.append(f"entities: {', '.join(item.entities)}")
    if item.note:
        lines.append(f"note: {item.note}")
    if not item.enhanced_at:
        lines.append("enriched: no")
    if item.summary.tldr:
        lines.extend(["", item.summary.tldr])
    if item.summary.key_points:
        lines.extend(["", item.summary.key_points])
    return "\n".join(lines)


def _echo_items(items: list[SavedItem]) -> None:
    if _get_json_output():
        typer.echo(json.dumps([item.to_dict() for item in items], indent=2))
        return
    if not items:
        typer.echo("No results.")
        return
    for item in items:
        typer.echo(_format_line(item))


def _echo_item(item: SavedItem) -> None:
    if _get_json_output():
        typer.echo(json.dumps(item.to_dict(), indent=2))
    else:
        typer.echo(_format_full(item))


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="PAGEKEEP_STORE_PATH",
        help="Path to the store directory (default: ~/.pagekeep/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Saved web pages with search, summaries and ratings."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

IdArgument = Annotated[int, typer.Argument(help="Item id")]

OrderOption = Annotated[
    Optional[str],
    typer.Option(
        "--order", "-o",
        help=f"Result order: {', '.join(ORDER_OPTIONS)}",
    )
]

FieldOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--field", "-f",
        help=f"Field to search (repeatable): {', '.join(SEARCH_FIELDS)}",
    )
]


def _get_keeper() -> PageKeeper:
    """Open the store, handling errors gracefully."""
    import atexit

    try:
        kp = PageKeeper(_get_store_override())
    except (StorageFailure, ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(kp.close)
    return kp


def _check_order(order: Optional[str]) -> None:
    if order is not None and order not in ORDER_OPTIONS:
        typer.echo(f"Error: unknown order '{order}'. Use one of: {', '.join(ORDER_OPTIONS)}", err=True)
        raise typer.Exit(1)


def _check_fields(fields: Optional[list[str]]) -> None:
    for f in fields or []:
        if f.lower() not in SEARCH_FIELDS:
            typer.echo(f"Error: unknown field '{f}'. Use any of: {', '.join(SEARCH_FIELDS)}", err=True)
            raise typer.Exit(1)


def _require_item(kp: PageKeeper, id: int) -> SavedItem:
    item = kp.get(id)
    if item is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    return item


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def save(
    url: Annotated[str, typer.Argument(help="URL of the page to save")],
    note: Annotated[Optional[str], typer.Option(
        "--note", "-N",
        help="Note or selected text to keep with the page",
    )] = None,
    no_enrich: Annotated[bool, typer.Option(
        "--no-enrich",
        help="Save without summarizing or tagging",
    )] = False,
):
    """
    Save a web page, then summarize and tag it.

    \b
    Examples:
        pagekeep save https://example.com/post
        pagekeep save https://example.com/post --note "read later"
        pagekeep save https://example.com/post --no-enrich
    """
    kp = _get_keeper()
    selection = note or ""
    try:
        page = fetch_page(url, selection=selection)
    except IOError as e:
        # Keep the URL even when its content can't be read
        typer.echo(f"Warning: {e}", err=True)
        page = PageCapture(url=url, selection=selection)
        no_enrich = True

    item = kp.save(page)
    if not no_enrich:
        if not _get_json_output():
            typer.echo(f"Saved {item.id}, enriching...", err=True)
        item = kp.enrich(item, page)
        if not item.enhanced_at:
            typer.echo("Enrichment unavailable; saved without summary.", err=True)
    _echo_item(item)


@app.command()
def find(
    query: Annotated[Optional[str], typer.Argument(help="Search query text")] = None,
    limit: Annotated[int, typer.Option(
        "--limit", "-n",
        help="Maximum results to return",
    )] = 10,
    order: OrderOption = None,
    field: FieldOption = None,
):
    """
    Search saved pages. Every query word must match; longer queries are reranked.

    \b
    Examples:
        pagekeep find "grid layout"
        pagekeep find python -f tags
        pagekeep find "recipe" --order rating_desc
    """
    _check_order(order)
    _check_fields(field)
    kp = _get_keeper()
    _echo_items(kp.find(query, fields=field, order=order, limit=limit))


@app.command("list")
def list_items(
    limit: Annotated[Optional[int], typer.Option(
        "--limit", "-n",
        help="Maximum items to show",
    )] = None,
    order: OrderOption = None,
):
    """List all saved pages."""
    _check_order(order)
    kp = _get_keeper()
    items = kp.list_items(order)
    _echo_items(items[:limit] if limit else items)


@app.command()
def get(id: IdArgument):
    """Show one saved page with its summary."""
    kp = _get_keeper()
    _echo_item(_require_item(kp, id))


@app.command()
def rate(
    id: IdArgument,
    value: Annotated[float, typer.Argument(help="Rating 0-5 in half steps")],
):
    """Rate a saved page (clamped to 0-5, rounded to half stars)."""
    kp = _get_keeper()
    item = kp.rate(id, value)
    if item is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    if _get_json_output():
        _echo_item(item)
    else:
        typer.echo(f"{item.id} rated {_format_rating(item.rating)}")


@app.command()
def edit(
    id: IdArgument,
    tags: Annotated[Optional[str], typer.Option(
        "--tags", "-t",
        help="Comma-separated tags (replaces existing tags)",
    )] = None,
    summary: Annotated[Optional[str], typer.Option(
        "--summary",
        help="New TL;DR text",
    )] = None,
    key_points: Annotated[Optional[str], typer.Option(
        "--key-points",
        help="New key points text",
    )] = None,
):
    """
    Edit the tags or summary of a saved page.

    \b
    Examples:
        pagekeep edit 12 --tags "python, async"
        pagekeep edit 12 --summary "A short intro to asyncio."
    """
    if tags is None and summary is None and key_points is None:
        typer.echo("Error: Specify at least one of --tags, --summary, --key-points", err=True)
        raise typer.Exit(1)
    kp = _get_keeper()
    item = kp.edit(
        id,
        tags=parse_tag_list(tags) if tags is not None else None,
        tldr=summary,
        key_points=key_points,
    )
    if item is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    _echo_item(item)


@app.command("rm")
def rm(
    id: Annotated[list[int], typer.Argument(help="Id(s) of items to delete")],
):
    """Delete saved pages."""
    kp = _get_keeper()
    had_errors = False
    for one_id in id:
        if kp.delete(one_id):
            typer.echo(f"Deleted {one_id}")
        else:
            typer.echo(f"Not found: {one_id}", err=True)
            had_errors = True
    if had_errors:
        raise typer.Exit(1)


@app.command()
def enrich(id: IdArgument):
    """Fetch a saved page again and regenerate its summary and tags."""
    kp = _get_keeper()
    item = _require_item(kp, id)
    try:
        item = kp.enrich(item)
    except IOError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if not item.enhanced_at:
        typer.echo("Enrichment unavailable.", err=True)
        raise typer.Exit(1)
    _echo_item(item)


@app.command()
def prefs(
    field: FieldOption = None,
    order: OrderOption = None,
):
    """
    Show or change the default search fields and order.

    \b
    Examples:
        pagekeep prefs
        pagekeep prefs -f title -f tags
        pagekeep prefs --order rating_desc
    """
    _check_order(order)
    _check_fields(field)
    kp = _get_keeper()
    if field or order:
        current = kp.set_preferences(fields=field or None, order=order)
    else:
        current = kp.get_preferences()
    if _get_json_output():
        typer.echo(json.dumps(current.to_dict()))
    else:
        typer.echo(f"fields: {', '.join(current.fields)}")
        typer.echo(f"order: {current.order}")


@app.command()
def export(
    query: Annotated[Optional[str], typer.Argument(help="Export only results of this search")] = None,
    output: Annotated[Optional[Path], typer.Option(
        "--output", "-O",
        help="Directory to write the Markdown file into (default: current directory)",
    )] = None,
    order: OrderOption = None,
):
    """Export saved pages (or search results) as Markdown."""
    _check_order(order)
    kp = _get_keeper()
    if query:
        items = kp.find(query, order=order)
    else:
        items = kp.list_items(order)
    path = kp.export(items, output)
    if _get_json_output():
        typer.echo(json.dumps({"path": str(path), "count": len(items)}))
    else:
        typer.echo(f"Exported {len(items)} items to {path}")


@app.command()
def status():
    """Show store location, size and model availability."""
    kp = _get_keeper()
    availability = kp.ai.check_availability()
    prefs = kp.get_preferences()
    info = {
        "store": str(kp.config.path),
        "items": kp.store.count(),
        "model": kp.config.model.name,
        "availability": availability,
        "providers": get_registry().list_model_providers(),
        "candidate_cap": kp.pipeline.candidate_cap,
        "preferences": prefs.to_dict(),
    }
    if _get_json_output():
        typer.echo(json.dumps(info, indent=2))
        return
    typer.echo(f"store: {info['store']}")
    typer.echo(f"items: {info['items']}")
    typer.echo(f"model: {info['model']} ({availability})")
    typer.echo(f"providers: {', '.join(info['providers'])}")
    typer.echo(f"candidate cap: {info['candidate_cap']}")
    typer.echo(f"search fields: {', '.join(prefs.fields)}")
    typer.echo(f"order: {prefs.order}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="pagekeep CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
