"""
Snapshot model for bksync.

A snapshot is the versioned envelope that every import, export, backup and
restore moves around:

    {schemaVersion, exportedTimestamp, exportedFromBrowser,
     extensions: [ExtensionRecord], bookmarks: [BookmarkNode]}

Bookmark nodes and extension records stay plain dictionaries so that fields
this module does not know about survive a round trip untouched.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bksync.constants import SCHEMA_VERSION, UNKNOWN_BROWSER
from bksync.errors import SnapshotFormatError

logger = logging.getLogger(__name__)

BookmarkNode = Dict[str, Any]
ExtensionRecord = Dict[str, Any]

RECORD_FIELDS = ("id", "name", "homepageUrl", "updateUrl")


def utc_now_iso() -> str:
    """Current UTC time in the envelope's ISO-8601 format."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def is_folder(node: Any) -> bool:
    """A folder is a node carrying a children list."""
    return isinstance(node, dict) and isinstance(node.get("children"), list)


def is_leaf(node: Any) -> bool:
    """A leaf is a node carrying a URL and no children list."""
    return isinstance(node, dict) and not is_folder(node) and node.get("url") is not None


def as_list(value: Any) -> list:
    """Treat anything that is not a list as an empty one."""
    return value if isinstance(value, list) else []


def flatten_bookmarks(nodes: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Collect every leaf of a forest, depth first.

    Returns:
        List of {id, title, url} dictionaries
    """
    leaves = []
    for node in as_list(nodes):
        if is_leaf(node):
            leaves.append({"id": node.get("id"), "title": node.get("title"), "url": node["url"]})
        if is_folder(node):
            leaves.extend(flatten_bookmarks(node["children"]))
    return leaves


def peel_root(bookmarks: List[BookmarkNode]) -> List[BookmarkNode]:
    """Return the top-level folders under the browser's synthetic root node."""
    bookmarks = as_list(bookmarks)
    if bookmarks and is_folder(bookmarks[0]):
        return bookmarks[0]["children"]
    return bookmarks


def tag_browser(nodes: List[Any], browser: str) -> List[Any]:
    """Copy a forest, stamping every leaf with the browser it came from."""
    tagged = []
    for node in as_list(nodes):
        if not isinstance(node, dict):
            tagged.append(node)
            continue
        node = dict(node)
        if node.get("url"):
            node["browser"] = browser
        if is_folder(node):
            node["children"] = tag_browser(node["children"], browser)
        tagged.append(node)
    return tagged


def normalize_extension(raw: Dict[str, Any]) -> ExtensionRecord:
    """
    Reduce a raw registry entry to the fields a snapshot keeps.

    Missing or empty fields are left out rather than stored as null.
    """
    return {key: raw[key] for key in RECORD_FIELDS if raw.get(key)}


def installed_extensions(raw_list: Any) -> List[ExtensionRecord]:
    """Normalize registry entries, skipping themes and apps."""
    records = []
    for raw in as_list(raw_list):
        if not isinstance(raw, dict):
            continue
        if raw.get("type", "extension") != "extension":
            continue
        records.append(normalize_extension(raw))
    return records


@dataclass
class Snapshot:
    """A versioned bundle of extension records and a bookmark forest."""
    schema_version: int = SCHEMA_VERSION
    exported_timestamp: str = field(default_factory=utc_now_iso)
    exported_from_browser: str = UNKNOWN_BROWSER
    extensions: List[ExtensionRecord] = field(default_factory=list)
    bookmarks: List[BookmarkNode] = field(default_factory=list)

    @classmethod
    def create(cls, extensions: List[ExtensionRecord], bookmarks: List[BookmarkNode],
               browser: Optional[str] = None,
               schema_version: Optional[int] = None) -> "Snapshot":
        """Build a freshly stamped snapshot."""
        return cls(
            schema_version=schema_version or SCHEMA_VERSION,
            exported_timestamp=utc_now_iso(),
            exported_from_browser=browser or UNKNOWN_BROWSER,
            extensions=list(extensions),
            bookmarks=list(bookmarks),
        )

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """
        Parse the interchange envelope.

        Unknown schema versions are accepted with a warning. Missing lists
        become empty ones.

        Raises:
            SnapshotFormatError: If data is not a JSON object
        """
        if not isinstance(data, dict):
            raise SnapshotFormatError(
                f"Invalid snapshot: expected an object, got {type(data).__name__}"
            )

        version = data.get("schemaVersion")
        if version != SCHEMA_VERSION:
            logger.warning(
                "Snapshot has schema version %s, expected %s",
                version if version is not None else "unknown", SCHEMA_VERSION
            )

        return cls(
            schema_version=version or SCHEMA_VERSION,
            exported_timestamp=data.get("exportedTimestamp") or utc_now_iso(),
            exported_from_browser=data.get("exportedFromBrowser") or UNKNOWN_BROWSER,
            extensions=[e for e in as_list(data.get("extensions")) if isinstance(e, dict)],
            bookmarks=list(as_list(data.get("bookmarks"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase interchange envelope."""
        return {
            "schemaVersion": self.schema_version,
            "exportedTimestamp": self.exported_timestamp,
            "exportedFromBrowser": self.exported_from_browser,
            "extensions": self.extensions,
            "bookmarks": self.bookmarks,
        }

    @property
    def bookmark_count(self) -> int:
        return len(flatten_bookmarks(self.bookmarks))
