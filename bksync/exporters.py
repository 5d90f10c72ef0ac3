"""
Exporters for bksync snapshots.

Provides the JSON interchange envelope and the Netscape bookmark HTML
format understood by every major browser. HTML is export-only.
"""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from bksync.constants import MANAGED_BOOKMARKS_TITLE
from bksync.snapshot import Snapshot, is_folder, is_leaf, peel_root

NETSCAPE_HEADER = [
    '<!DOCTYPE NETSCAPE-Bookmark-file-1>',
    '<!-- This is an automatically generated file.',
    '     It will be read and overwritten.',
    '     DO NOT EDIT! -->',
    '<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">',
]


def escape_title(title: Any) -> str:
    """Entity-escape &, < and > in a title. Non-string titles are stringified."""
    text = str(title) if title is not None else ""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def escape_href(url: Any) -> str:
    """Escape a URL for use inside a double-quoted HREF attribute."""
    return escape_title(url).replace('"', "&quot;")


def _add_date(node: Dict[str, Any], now: int) -> int:
    """ADD_DATE in epoch seconds from a node's dateAdded (epoch ms)."""
    added = node.get("dateAdded")
    try:
        return int(added) // 1000 if added is not None else now
    except (TypeError, ValueError):
        return now


def _document(title: str, body: List[str]) -> str:
    lines = NETSCAPE_HEADER + [
        f'<TITLE>{title}</TITLE>',
        f'<H1>{title}</H1>',
        '<DL><p>',
    ]
    lines.extend(body)
    lines.append('</DL><p>')
    return "\n".join(lines) + "\n"


def bookmarks_to_html(bookmarks: List[Any], now: Optional[int] = None) -> str:
    """
    Render a bookmark forest as a Netscape bookmark document.

    The synthetic root is peeled off, and an empty 'Managed bookmarks'
    folder is left out.

    Args:
        bookmarks: Snapshot bookmark forest
        now: Epoch seconds used when a node has no dateAdded

    Returns:
        HTML document
    """
    if now is None:
        now = int(datetime.now(timezone.utc).timestamp())

    nodes = [
        node for node in peel_root(bookmarks)
        if not (isinstance(node, dict) and node.get("title") == MANAGED_BOOKMARKS_TITLE
                and not node.get("children"))
    ]

    body: List[str] = []

    def write_nodes(items, indent=1):
        indent_str = '    ' * indent
        for node in items:
            if is_leaf(node):
                title = escape_title(node.get("title")) or "Bookmark"
                body.append(
                    f'{indent_str}<DT><A HREF="{escape_href(node["url"])}" '
                    f'ADD_DATE="{_add_date(node, now)}">{title}</A>'
                )
            elif is_folder(node):
                body.append(
                    f'{indent_str}<DT><H3 ADD_DATE="{_add_date(node, now)}">'
                    f'{escape_title(node.get("title"))}</H3>'
                )
                body.append(f'{indent_str}<DL><p>')
                write_nodes(node["children"], indent + 1)
                body.append(f'{indent_str}</DL><p>')

    write_nodes(nodes)
    return _document("Bookmarks", body)


def extensions_to_html(extensions: List[Dict[str, Any]], now: Optional[int] = None) -> str:
    """Render every extension with a homepage URL as a bookmark."""
    if now is None:
        now = int(datetime.now(timezone.utc).timestamp())

    body = []
    for ext in extensions:
        url = ext.get("homepageUrl")
        if not isinstance(url, str) or not url.strip():
            continue
        title = escape_title(ext.get("name")) or "Extension"
        body.append(f'    <DT><A HREF="{escape_href(url)}" ADD_DATE="{now}">{title}</A>')

    return _document("Extensions as Bookmarks", body)


def snapshot_to_json(snapshot: Snapshot, pretty: bool = True) -> str:
    """Serialize a snapshot to the JSON interchange envelope."""
    return json.dumps(snapshot.to_dict(), indent=2 if pretty else None, ensure_ascii=False)


def export_json(snapshot: Snapshot, path: Path, pretty: bool = True) -> None:
    """Export a snapshot as JSON."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(snapshot_to_json(snapshot, pretty))


def export_html(snapshot: Snapshot, path: Path) -> None:
    """Export a snapshot's bookmarks as Netscape HTML."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(bookmarks_to_html(snapshot.bookmarks))


def export_extensions_html(snapshot: Snapshot, path: Path) -> None:
    """Export a snapshot's extensions as Netscape HTML bookmarks."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(extensions_to_html(snapshot.extensions))


EXPORTERS = {
    "json": export_json,
    "html": export_html,
    "extensions-html": export_extensions_html,
}


def export_file(snapshot: Snapshot, path: Path, format: str, pretty: bool = True) -> None:
    """
    Export a snapshot to a file.

    Args:
        snapshot: Snapshot to export
        path: Output file path
        format: Export format (json, html, extensions-html)
        pretty: Indent JSON output
    """
    exporter = EXPORTERS.get(format)
    if not exporter:
        raise ValueError(f"Unknown format: {format}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if format == "json":
        exporter(snapshot, path, pretty=pretty)
    else:
        exporter(snapshot, path)


def export_to_string(snapshot: Snapshot, format: str, pretty: bool = True) -> str:
    """Export a snapshot to a string in the specified format."""
    if format == "json":
        return snapshot_to_json(snapshot, pretty)
    elif format == "html":
        return bookmarks_to_html(snapshot.bookmarks)
    elif format == "extensions-html":
        return extensions_to_html(snapshot.extensions)
    raise ValueError(f"Unknown format: {format}")
