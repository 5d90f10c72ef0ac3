"""
Catalog view over a reconciled snapshot.

Holds the full extension list and bookmark forest an interface is showing so
it can re-filter without going back to the sources.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bksync.snapshot import Snapshot, is_folder, is_leaf


def _lowered(value: Any) -> str:
    # Imported files may carry numbers or other non-string titles
    return str(value).lower() if value is not None else ""


def filter_bookmark_nodes(nodes: List[Any], term: str) -> List[Dict[str, Any]]:
    """
    Keep leaves whose title or URL contains term, and folders whose title
    matches or that still hold a match. term must already be lower-case.
    """
    kept = []
    for node in nodes:
        if is_leaf(node):
            if term in _lowered(node.get("title")) or term in _lowered(node["url"]):
                kept.append(node)
        elif is_folder(node):
            children = filter_bookmark_nodes(node["children"], term)
            if term in _lowered(node.get("title")) or children:
                kept.append({**node, "children": children})
    return kept


@dataclass
class CatalogView:
    """The full lists behind a display, plus filtering over them."""
    extensions: List[Dict[str, Any]] = field(default_factory=list)
    bookmarks: List[Any] = field(default_factory=list)
    browser_name: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "CatalogView":
        return cls(
            extensions=list(snapshot.extensions),
            bookmarks=list(snapshot.bookmarks),
            browser_name=snapshot.exported_from_browser,
        )

    def filter_extensions(self, term: str = "") -> List[Dict[str, Any]]:
        term = term.lower().strip()
        if not term:
            return list(self.extensions)
        return [e for e in self.extensions if term in _lowered(e.get("name"))]

    def filter_bookmarks(self, term: str = "") -> List[Any]:
        term = term.lower().strip()
        if not term:
            return list(self.bookmarks)
        return filter_bookmark_nodes(self.bookmarks, term)
