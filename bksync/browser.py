"""
Live browser collaborators for bksync.

The orchestrator talks to the browser through two small async interfaces:

- BookmarkStore: the live bookmark tree (get_tree/get/create/remove/remove_tree)
- ExtensionRegistry: installed extensions (get_all/set_enabled/uninstall)

In-memory implementations back tests and dry runs. The Chrome
implementations read a Chromium-family profile directly from disk; the
browser must be closed before its bookmarks are written.
"""
import asyncio
import copy
import json
import logging
import os
import platform
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from bksync.config import SyncConfig, get_config
from bksync.constants import (
    BOOKMARKS_BAR_TITLE,
    CHROME_EPOCH_OFFSET_US,
    MOBILE_BOOKMARKS_TITLE,
    OTHER_BOOKMARKS_TITLE,
    UNKNOWN_BROWSER,
)
from bksync.errors import CollaboratorError
from bksync.snapshot import is_folder

logger = logging.getLogger(__name__)

ROOT_ID = "0"


# ============================================================================
# Interfaces
# ============================================================================

class BookmarkStore(ABC):
    """Live bookmark tree of a browser."""

    @abstractmethod
    async def get_tree(self) -> List[Dict[str, Any]]:
        """Return the whole tree as a one-element list holding the root."""
        pass

    @abstractmethod
    async def get(self, node_id: str) -> Dict[str, Any]:
        """Return a node (with its subtree) by id."""
        pass

    @abstractmethod
    async def create(self, parent_id: str, title: str, url: Optional[str] = None) -> Dict[str, Any]:
        """Create a leaf (url given) or an empty folder under parent_id."""
        pass

    @abstractmethod
    async def remove(self, node_id: str) -> None:
        """Remove a leaf or an empty folder."""
        pass

    @abstractmethod
    async def remove_tree(self, node_id: str) -> None:
        """Remove a folder and everything under it."""
        pass


class ExtensionRegistry(ABC):
    """Installed extensions of a browser."""

    @abstractmethod
    async def get_all(self) -> List[Dict[str, Any]]:
        """Return raw entries including 'type' and 'enabled'."""
        pass

    @abstractmethod
    async def set_enabled(self, extension_id: str, enabled: bool) -> None:
        pass

    @abstractmethod
    async def uninstall(self, extension_id: str) -> None:
        pass


# ============================================================================
# Tree-backed bookmark stores
# ============================================================================

class TreeBookmarkStore(BookmarkStore):
    """
    Bookmark store operating on an in-memory root node.

    Subclasses decide where the tree comes from by overriding _load and
    _save.
    """

    def __init__(self, root: Optional[Dict[str, Any]] = None):
        self.root = root or {"id": ROOT_ID, "title": "", "children": []}

    async def _load(self) -> Dict[str, Any]:
        return self.root

    async def _save(self, root: Dict[str, Any]) -> None:
        self.root = root

    async def get_tree(self) -> List[Dict[str, Any]]:
        root = await self._load()
        return [copy.deepcopy(root)]

    async def get(self, node_id: str) -> Dict[str, Any]:
        root = await self._load()
        node, _ = self._locate(root, node_id)
        return copy.deepcopy(node)

    async def create(self, parent_id: str, title: str, url: Optional[str] = None) -> Dict[str, Any]:
        root = await self._load()
        parent, _ = self._locate(root, parent_id)
        if not is_folder(parent):
            raise CollaboratorError(f"Cannot create bookmark under non-folder {parent_id}")

        node = {
            "id": self._next_id(root),
            "title": title,
            "dateAdded": int(datetime.now(timezone.utc).timestamp() * 1000),
        }
        if url is not None:
            node["url"] = url
        else:
            node["children"] = []
        parent["children"].append(node)
        await self._save(root)
        return copy.deepcopy(node)

    async def remove(self, node_id: str) -> None:
        root = await self._load()
        node, parent = self._locate(root, node_id)
        if parent is None:
            raise CollaboratorError("Cannot remove the root node")
        if is_folder(node) and node["children"]:
            raise CollaboratorError(f"Folder {node_id} is not empty; use remove_tree")
        parent["children"].remove(node)
        await self._save(root)

    async def remove_tree(self, node_id: str) -> None:
        root = await self._load()
        node, parent = self._locate(root, node_id)
        if parent is None:
            raise CollaboratorError("Cannot remove the root node")
        parent["children"].remove(node)
        await self._save(root)

    @staticmethod
    def _locate(root: Dict[str, Any], node_id: str):
        """Find a node and its parent; raise if the id is unknown."""
        stack = [(root, None)]
        while stack:
            node, parent = stack.pop()
            if str(node.get("id")) == str(node_id):
                return node, parent
            if is_folder(node):
                stack.extend((child, node) for child in node["children"] if isinstance(child, dict))
        raise CollaboratorError("This bookmark or folder no longer exists.")

    @staticmethod
    def _next_id(root: Dict[str, Any]) -> str:
        highest = 0
        stack = [root]
        while stack:
            node = stack.pop()
            try:
                highest = max(highest, int(node.get("id", 0)))
            except (TypeError, ValueError):
                pass
            if is_folder(node):
                stack.extend(c for c in node["children"] if isinstance(c, dict))
        return str(highest + 1)


class MemoryBookmarkStore(TreeBookmarkStore):
    """Bookmark store living entirely in memory."""

    @classmethod
    def with_defaults(cls, bar_title: str = BOOKMARKS_BAR_TITLE) -> "MemoryBookmarkStore":
        """Create a store holding the usual empty top-level folders."""
        return cls({
            "id": ROOT_ID,
            "title": "",
            "children": [
                {"id": "1", "title": bar_title, "children": []},
                {"id": "2", "title": OTHER_BOOKMARKS_TITLE, "children": []},
            ],
        })


def chrome_time_to_ms(value: Any) -> Optional[int]:
    """Convert a Chrome timestamp (microseconds since 1601) to epoch milliseconds."""
    try:
        value = int(value)
    except (TypeError, ValueError):
        return None
    if value <= 0:
        return None
    return (value - CHROME_EPOCH_OFFSET_US) // 1000


def ms_to_chrome_time(value: Optional[int]) -> str:
    if value is None:
        value = int(datetime.now(timezone.utc).timestamp() * 1000)
    return str(int(value) * 1000 + CHROME_EPOCH_OFFSET_US)


class ChromeBookmarkStore(TreeBookmarkStore):
    """
    Bookmark store backed by a Chromium profile's 'Bookmarks' file.

    The roots are exposed under a synthetic root node as 'Bookmarks Bar',
    'Other bookmarks' and 'Mobile bookmarks'. Writes drop the file checksum,
    which the browser recomputes on its next start.
    """

    ROOT_KEYS = ("bookmark_bar", "other", "synced")

    def __init__(self, profile_path: Path, bar_title: str = BOOKMARKS_BAR_TITLE):
        super().__init__()
        self.path = Path(profile_path) / "Bookmarks"
        self.root_titles = {
            "bookmark_bar": bar_title,
            "other": OTHER_BOOKMARKS_TITLE,
            "synced": MOBILE_BOOKMARKS_TITLE,
        }
        self._raw: Dict[str, Any] = {}

    async def _load(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read)

    async def _save(self, root: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, root)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.warning(f"No bookmarks file found at {self.path}")
            self._raw = {"roots": {}, "version": 1}
            return {"id": ROOT_ID, "title": "", "children": []}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                self._raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CollaboratorError(f"Failed to read Chrome bookmarks: {e}")

        roots = self._raw.get("roots", {})
        children = []
        for key in self.ROOT_KEYS:
            item = roots.get(key)
            if isinstance(item, dict):
                node = self._from_chrome(item)
                node["title"] = self.root_titles[key]
                node["rootKey"] = key
                children.append(node)
        return {"id": ROOT_ID, "title": "", "children": children}

    def _write(self, root: Dict[str, Any]) -> None:
        raw = dict(self._raw)
        raw.pop("checksum", None)
        roots = dict(raw.get("roots", {}))
        for node in root["children"]:
            key = node.get("rootKey")
            if key in self.ROOT_KEYS:
                item = self._to_chrome(node)
                item["name"] = roots.get(key, {}).get("name", node.get("title", ""))
                roots[key] = item
        raw["roots"] = roots

        tmp_path = self.path.with_suffix(".bksync-tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(raw, f, indent=3, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise CollaboratorError(f"Failed to write Chrome bookmarks: {e}")
        self._raw = raw

    def _from_chrome(self, item: Dict[str, Any]) -> Dict[str, Any]:
        node = {"id": str(item.get("id", "")), "title": item.get("name", "")}
        added = chrome_time_to_ms(item.get("date_added"))
        if added is not None:
            node["dateAdded"] = added
        if item.get("guid"):
            node["guid"] = item["guid"]
        if item.get("type") == "url":
            node["url"] = item.get("url", "")
        else:
            node["children"] = [
                self._from_chrome(child) for child in item.get("children", [])
                if isinstance(child, dict)
            ]
        return node

    def _to_chrome(self, node: Dict[str, Any]) -> Dict[str, Any]:
        item = {
            "id": str(node.get("id", "")),
            "guid": node.get("guid") or str(uuid.uuid4()),
            "name": node.get("title", ""),
            "date_added": ms_to_chrome_time(node.get("dateAdded")),
        }
        if is_folder(node):
            item["type"] = "folder"
            item["date_modified"] = "0"
            item["children"] = [self._to_chrome(c) for c in node["children"]]
        else:
            item["type"] = "url"
            item["url"] = node.get("url", "")
        return item


# ============================================================================
# Extension registries
# ============================================================================

class MemoryExtensionRegistry(ExtensionRegistry):
    """Extension registry living entirely in memory."""

    def __init__(self, extensions: Optional[List[Dict[str, Any]]] = None):
        self.extensions = {e["id"]: dict(e) for e in (extensions or [])}

    async def get_all(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(e) for e in self.extensions.values()]

    async def set_enabled(self, extension_id: str, enabled: bool) -> None:
        self._require(extension_id)["enabled"] = enabled

    async def uninstall(self, extension_id: str) -> None:
        self._require(extension_id)
        del self.extensions[extension_id]

    def _require(self, extension_id: str) -> Dict[str, Any]:
        if extension_id not in self.extensions:
            raise CollaboratorError(f"Extension {extension_id} is not installed")
        return self.extensions[extension_id]


class ChromeExtensionRegistry(ExtensionRegistry):
    """
    Read-only registry backed by a Chromium profile's preference files.

    Extension settings live in 'Secure Preferences' on most platforms and
    in 'Preferences' on older ones; both are read.
    """

    # Component extensions ship with the browser and are never listed
    HIDDEN_LOCATIONS = {5, 10}

    def __init__(self, profile_path: Path):
        self.profile_path = Path(profile_path)

    async def get_all(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._read)

    async def set_enabled(self, extension_id: str, enabled: bool) -> None:
        raise CollaboratorError("Chrome profile extensions are read-only; use the browser instead")

    async def uninstall(self, extension_id: str) -> None:
        raise CollaboratorError("Chrome profile extensions are read-only; use the browser instead")

    def _read(self) -> List[Dict[str, Any]]:
        settings: Dict[str, Any] = {}
        for name in ("Secure Preferences", "Preferences"):
            path = self.profile_path / name
            if not path.exists():
                continue
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to read {path}: {e}")
                continue
            found = data.get("extensions", {}).get("settings", {})
            if isinstance(found, dict):
                settings.update(found)

        extensions = []
        for extension_id, entry in settings.items():
            if not isinstance(entry, dict):
                continue
            manifest = entry.get("manifest")
            if not isinstance(manifest, dict) or entry.get("location") in self.HIDDEN_LOCATIONS:
                continue
            extensions.append({
                "id": extension_id,
                "name": manifest.get("name", extension_id),
                "homepageUrl": manifest.get("homepage_url"),
                "updateUrl": manifest.get("update_url"),
                "type": self._extension_type(manifest),
                "enabled": entry.get("state", 1) != 0 and not entry.get("disable_reasons"),
            })
        return extensions

    @staticmethod
    def _extension_type(manifest: Dict[str, Any]) -> str:
        if "theme" in manifest:
            return "theme"
        app = manifest.get("app")
        if isinstance(app, dict):
            return "packaged_app" if "background" in app else "hosted_app"
        return "extension"


# ============================================================================
# Profiles and host
# ============================================================================

@dataclass
class BrowserProfile:
    """Information about a browser profile."""
    name: str
    path: Path
    browser: str
    is_default: bool = False


def _chrome_dirs(system: str) -> List[Path]:
    if system == "Darwin":
        support = Path.home() / "Library/Application Support"
        return [
            support / "Google/Chrome",
            support / "Chromium",
            support / "Microsoft Edge",
            support / "BraveSoftware/Brave-Browser",
        ]
    if system == "Linux":
        return [
            Path.home() / ".config/google-chrome",
            Path.home() / ".config/chromium",
            Path.home() / ".config/microsoft-edge",
            Path.home() / ".config/BraveSoftware/Brave-Browser",
        ]
    if system == "Windows":
        appdata = Path(os.environ.get("LOCALAPPDATA", ""))
        return [
            appdata / "Google/Chrome/User Data",
            appdata / "Chromium/User Data",
            appdata / "Microsoft/Edge/User Data",
            appdata / "BraveSoftware/Brave-Browser/User Data",
        ]
    return []


def browser_name_for(path: Path) -> str:
    """Determine browser name from a profile or user-data directory path."""
    path_str = str(path).lower()
    if "edge" in path_str:
        return "Edge"
    elif "brave" in path_str:
        return "Brave"
    elif "chromium" in path_str:
        return "Chromium"
    elif "chrome" in path_str:
        return "Chrome"
    return UNKNOWN_BROWSER


def find_chrome_profiles(system: Optional[str] = None) -> List[BrowserProfile]:
    """Find all Chromium-family profiles on this machine."""
    profiles = []
    for chrome_dir in _chrome_dirs(system or platform.system()):
        if not chrome_dir.exists():
            continue
        browser = browser_name_for(chrome_dir)

        default_profile = chrome_dir / "Default"
        if default_profile.exists():
            profiles.append(BrowserProfile("Default", default_profile, browser, is_default=True))

        for profile_dir in sorted(chrome_dir.glob("Profile *")):
            if profile_dir.is_dir():
                profiles.append(BrowserProfile(profile_dir.name, profile_dir, browser))

    return profiles


@dataclass
class BrowserHost:
    """
    Capabilities of the browser being synchronized.

    Replaces user-agent sniffing: whoever builds the host states which
    browser it is and hands over its stores.
    """
    browser_name: str
    bookmarks: BookmarkStore
    extensions: ExtensionRegistry
    profile: Optional[BrowserProfile] = field(default=None)

    @classmethod
    def from_profile(cls, profile: BrowserProfile,
                     bar_title: str = BOOKMARKS_BAR_TITLE) -> "BrowserHost":
        return cls(
            browser_name=profile.browser,
            bookmarks=ChromeBookmarkStore(profile.path, bar_title=bar_title),
            extensions=ChromeExtensionRegistry(profile.path),
            profile=profile,
        )

    @classmethod
    def in_memory(cls, browser_name: str = UNKNOWN_BROWSER,
                  bar_title: str = BOOKMARKS_BAR_TITLE) -> "BrowserHost":
        return cls(
            browser_name=browser_name,
            bookmarks=MemoryBookmarkStore.with_defaults(bar_title),
            extensions=MemoryExtensionRegistry(),
        )


def detect_host(config: Optional[SyncConfig] = None) -> BrowserHost:
    """
    Build the host for the configured (or default) browser profile.

    Falls back to an empty in-memory host when no profile is found, so
    actions that only touch stored or remote data still work.
    """
    config = config or get_config()

    if config.chrome_profile:
        path = Path(config.chrome_profile)
        profile = BrowserProfile(path.name, path, config.browser_name or browser_name_for(path))
    else:
        profiles = find_chrome_profiles()
        defaults = [p for p in profiles if p.is_default] or profiles
        profile = defaults[0] if defaults else None

    if profile is None:
        logger.warning("No browser profile found; live browser data will be empty")
        return BrowserHost.in_memory(config.browser_name or UNKNOWN_BROWSER,
                                     config.bookmarks_bar_title)

    host = BrowserHost.from_profile(profile, config.bookmarks_bar_title)
    if config.browser_name:
        host.browser_name = config.browser_name
    return host
