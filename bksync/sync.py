"""
Reconciliation orchestrator for bksync.

Each user action decides which sources feed the two merges and whether the
result is persisted:

    load     stored + live       persisted only on request
    import   stored + file       persisted (file bookmarks replace stored ones)
    export   stored + live       never persisted
    backup   stored + live       persisted locally and remotely
    restore  remote only         persisted locally

Actions never raise for collaborator failures; they return an ActionResult
with success=False and a readable message. Actions are not transactional, so
after a failure the caller should run load() again to resynchronize.
"""
import asyncio
import copy
import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import aiohttp
from sqlalchemy.exc import SQLAlchemyError

from bksync.browser import BrowserHost
from bksync.config import SyncConfig, get_config
from bksync.constants import PROTECTED_PREFIX
from bksync.errors import CollaboratorError, SnapshotFormatError, SyncError
from bksync.exporters import export_file
from bksync.importers import load_snapshot
from bksync.merge import merge_records, merge_trees
from bksync.remote import RemoteBackupStore
from bksync.snapshot import (
    Snapshot,
    flatten_bookmarks,
    installed_extensions,
    is_folder,
    peel_root,
    tag_browser,
)
from bksync.storage import LocalStore

logger = logging.getLogger(__name__)

# TypeError and AttributeError come from malformed values inside imported data
ACTION_ERRORS = (SyncError, aiohttp.ClientError, SQLAlchemyError, OSError, ValueError,
                 TypeError, AttributeError)


# ============================================================================
# Results
# ============================================================================

def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


@dataclass
class ChangeSummary:
    """Added/removed counts between two snapshots."""
    extensions_added: int = 0
    extensions_removed: int = 0
    bookmarks_added: int = 0
    bookmarks_removed: int = 0

    def __str__(self) -> str:
        return (
            f"{_plural(self.extensions_added, 'extension')} added, "
            f"{self.extensions_removed} removed. "
            f"{_plural(self.bookmarks_added, 'bookmark')} added, "
            f"{self.bookmarks_removed} removed."
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            'extensions_added': self.extensions_added,
            'extensions_removed': self.extensions_removed,
            'bookmarks_added': self.bookmarks_added,
            'bookmarks_removed': self.bookmarks_removed,
        }


@dataclass
class ActionResult:
    """Outcome of an orchestrated action."""
    success: bool
    message: str
    snapshot: Optional[Snapshot] = None
    summary: Optional[ChangeSummary] = None
    details: Dict[str, Any] = field(default_factory=dict)


def diff_ids(current: Iterable[Any], previous: Iterable[Any]) -> Tuple[int, int]:
    """Return (added, removed) between two identifier collections."""
    current_ids = {i for i in current if i is not None}
    previous_ids = {i for i in previous if i is not None}
    return len(current_ids - previous_ids), len(previous_ids - current_ids)


def extension_key(record: Dict[str, Any]) -> Optional[str]:
    return record.get("id") or record.get("homepageUrl") or None


def bookmark_key(leaf: Dict[str, Any]) -> Optional[str]:
    return leaf.get("id") or leaf.get("url") or None


def summarize_changes(current: Snapshot, previous: Optional[Snapshot]) -> ChangeSummary:
    """
    Count what a new snapshot added and removed relative to the previous one.

    Extensions are identified by id (homepage URL when missing) and bookmarks
    by id (URL when missing); folders are not counted.
    """
    previous_extensions = previous.extensions if previous else []
    previous_bookmarks = previous.bookmarks if previous else []

    ext_added, ext_removed = diff_ids(
        (extension_key(e) for e in current.extensions),
        (extension_key(e) for e in previous_extensions),
    )
    bm_added, bm_removed = diff_ids(
        (bookmark_key(b) for b in flatten_bookmarks(current.bookmarks)),
        (bookmark_key(b) for b in flatten_bookmarks(previous_bookmarks)),
    )
    return ChangeSummary(ext_added, ext_removed, bm_added, bm_removed)


def find_bookmarks_bar(tree: List[Any], bar_title: str) -> Optional[Dict[str, Any]]:
    """Locate the bookmarks bar folder among the root's children."""
    for node in peel_root(tree):
        if not is_folder(node):
            continue
        if node.get("title") == bar_title or node.get("rootKey") == "bookmark_bar" \
                or str(node.get("id")) == "1":
            return node
    return None


def action(label: str) -> Callable:
    """Turn collaborator failures of an async action into a failed ActionResult."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except ACTION_ERRORS as e:
                logger.exception("%s failed", label)
                return ActionResult(False, f"{label} failed: {e}")
        return wrapper
    return decorator


# ============================================================================
# Orchestrator
# ============================================================================

class SyncEngine:
    """
    Runs reconciliation actions against a local store, a browser host and
    the remote backup store.

    Callers must not run two writing actions concurrently: the snapshot slot
    is last-writer-wins.
    """

    def __init__(
        self,
        store: LocalStore,
        host: BrowserHost,
        remote_factory: Optional[Callable[[str], RemoteBackupStore]] = None,
        config: Optional[SyncConfig] = None
    ):
        self.store = store
        self.host = host
        self.config = config or get_config()
        self.remote_factory = remote_factory or (
            lambda account_id: RemoteBackupStore.from_config(account_id, self.config)
        )

    @property
    def browser_name(self) -> str:
        return self.host.browser_name

    # ---- sources ---------------------------------------------------------

    async def _stored(self) -> Optional[Snapshot]:
        return await asyncio.to_thread(self.store.load_snapshot)

    async def _save(self, snapshot: Snapshot) -> None:
        await asyncio.to_thread(self.store.save_snapshot, snapshot)

    async def _live_extensions(self) -> List[Dict[str, Any]]:
        try:
            return installed_extensions(await self.host.extensions.get_all())
        except CollaboratorError as e:
            logger.warning(f"Could not fetch installed extensions: {e}")
            return []

    async def _live_bookmarks(self) -> List[Any]:
        try:
            return await self.host.bookmarks.get_tree()
        except CollaboratorError as e:
            logger.warning(f"Could not fetch bookmark tree: {e}")
            return []

    def _merge_trees(self, base: List[Any], incoming: List[Any]) -> List[Any]:
        return merge_trees(base, incoming, self.config.bookmarks_bar_title,
                           self.config.max_tree_depth)

    async def _reconcile_live(self, stored: Optional[Snapshot],
                              tag_live: bool = False) -> Tuple[List[Any], List[Any]]:
        """Merge the stored snapshot with live browser state (live preferred)."""
        live_extensions = await self._live_extensions()
        live_bookmarks = await self._live_bookmarks()
        if tag_live:
            live_bookmarks = tag_browser(live_bookmarks, self.browser_name)

        if stored is None:
            return live_extensions, self._merge_trees([], live_bookmarks)
        return (
            merge_records(stored.extensions, live_extensions),
            self._merge_trees(stored.bookmarks, live_bookmarks),
        )

    async def _account_id(self) -> str:
        account_id = await asyncio.to_thread(self.store.get_account_id)
        if not account_id:
            raise SyncError("Account ID not set. Save your account ID first.")
        return account_id

    # ---- actions ---------------------------------------------------------

    @action("Load")
    async def load(self, persist: bool = False) -> ActionResult:
        """Reconcile stored and live data; persist only when asked."""
        stored = await self._stored()
        extensions, bookmarks = await self._reconcile_live(stored)
        snapshot = Snapshot.create(
            extensions, bookmarks, self.browser_name,
            stored.schema_version if stored else None
        )
        if persist:
            await self._save(snapshot)
        return ActionResult(
            True,
            f"Loaded {_plural(len(extensions), 'extension')} and "
            f"{_plural(snapshot.bookmark_count, 'bookmark')}",
            snapshot=snapshot,
        )

    @action("Import")
    async def import_snapshot(self, data: Any, sync_browser: Optional[bool] = None) -> ActionResult:
        """
        Merge an imported snapshot into the stored one and persist it.

        Extensions always merge (imported records preferred). When the file
        carries bookmarks they replace the stored forest outright.

        Args:
            data: Parsed snapshot envelope
            sync_browser: Also rebuild the live bookmarks bar from the result
                (defaults to config.sync_bookmarks_on_import)
        """
        return await self._import(data, sync_browser)

    @action("Import")
    async def import_file(self, path: Path, sync_browser: Optional[bool] = None) -> ActionResult:
        """Read a snapshot file and import it."""
        data = await asyncio.to_thread(load_snapshot, Path(path))
        return await self._import(data, sync_browser)

    async def _import(self, data: Any, sync_browser: Optional[bool]) -> ActionResult:
        if not isinstance(data, dict):
            raise SnapshotFormatError("Invalid JSON file: Not an object.")

        incoming = Snapshot.from_dict(data)
        stored = await self._stored()

        extensions = merge_records(stored.extensions if stored else [], incoming.extensions)
        if data.get("bookmarks") is not None:
            bookmarks = copy.deepcopy(incoming.bookmarks)
        else:
            bookmarks = copy.deepcopy(stored.bookmarks) if stored else []

        snapshot = Snapshot(
            schema_version=incoming.schema_version,
            exported_timestamp=incoming.exported_timestamp,
            exported_from_browser=incoming.exported_from_browser,
            extensions=extensions,
            bookmarks=bookmarks,
        )

        if sync_browser is None:
            sync_browser = self.config.sync_bookmarks_on_import
        if sync_browser and bookmarks:
            try:
                await self._push_to_browser(self._bar_contents(bookmarks))
                logger.info("Bookmarks synced with browser")
            except CollaboratorError as e:
                logger.error(f"Error syncing bookmarks with browser: {e}")

        await self._save(snapshot)
        return ActionResult(
            True,
            f"Imported {_plural(len(extensions), 'extension')} and "
            f"{_plural(snapshot.bookmark_count, 'bookmark')}",
            snapshot=snapshot,
        )

    @action("Export")
    async def export(self, path: Optional[Path] = None, format: Optional[str] = None) -> ActionResult:
        """
        Build an export from stored and live data without persisting it.

        Args:
            path: Write the export here when given
            format: json, html or extensions-html (defaults to config.export_format)
        """
        stored = await self._stored()
        extensions, bookmarks = await self._reconcile_live(stored, tag_live=True)
        snapshot = Snapshot.create(
            extensions, bookmarks, self.browser_name,
            stored.schema_version if stored else None
        )

        message = "Export ready"
        if path is not None:
            format = format or self.config.export_format
            await asyncio.to_thread(export_file, snapshot, Path(path), format,
                                    self.config.export_pretty)
            message = f"Exported {len(extensions)} extensions and {snapshot.bookmark_count} bookmarks to {path}"
        return ActionResult(True, message, snapshot=snapshot)

    @action("Backup")
    async def backup(self) -> ActionResult:
        """Reconcile stored and live data, upload it, then persist it locally."""
        account_id = await self._account_id()
        stored = await self._stored()
        extensions, bookmarks = await self._reconcile_live(stored)
        snapshot = Snapshot.create(
            extensions, bookmarks, self.browser_name,
            stored.schema_version if stored else None
        )

        remote = self.remote_factory(account_id)
        confirmation = await remote.push(snapshot.to_dict())

        summary = summarize_changes(snapshot, stored)
        await self._save(snapshot)
        return ActionResult(
            True,
            f"Backup successful! {summary}",
            snapshot=snapshot,
            summary=summary,
            details={'response': confirmation},
        )

    @action("Restore")
    async def restore(self) -> ActionResult:
        """Replace the stored snapshot with the remote backup."""
        account_id = await self._account_id()
        remote = self.remote_factory(account_id)
        data = await remote.fetch()

        snapshot = Snapshot.from_dict(data)
        await self._save(snapshot)
        return ActionResult(
            True,
            f"Restored {_plural(len(snapshot.extensions), 'extension')} and "
            f"{_plural(snapshot.bookmark_count, 'bookmark')}",
            snapshot=snapshot,
        )

    # ---- supplementary actions -------------------------------------------

    @action("Save account ID")
    async def set_account_id(self, account_id: str) -> ActionResult:
        account_id = (account_id or "").strip()
        if not account_id:
            return ActionResult(False, "Please enter an account ID.")
        await asyncio.to_thread(self.store.set_account_id, account_id)
        return ActionResult(True, "Account ID saved")

    async def account_id(self) -> Optional[str]:
        return await asyncio.to_thread(self.store.get_account_id)

    @action("Remove bookmark")
    async def remove_bookmark(self, node_id: str) -> ActionResult:
        """Remove a live bookmark, or a whole folder."""
        node = await self.host.bookmarks.get(node_id)
        if is_folder(node):
            await self.host.bookmarks.remove_tree(node_id)
        else:
            await self.host.bookmarks.remove(node_id)
        return ActionResult(True, f"Removed '{node.get('title', node_id)}'")

    @action("Sync bookmarks")
    async def sync_bookmarks_into_browser(self, nodes: List[Any]) -> ActionResult:
        """Rebuild the live bookmarks bar from nodes."""
        created = await self._push_to_browser(nodes)
        return ActionResult(True, f"Created {created} bookmarks and folders in the browser")

    def _bar_contents(self, bookmarks: List[Any]) -> List[Any]:
        """Nodes that belong in the bookmarks bar for a snapshot forest."""
        bar = find_bookmarks_bar(bookmarks, self.config.bookmarks_bar_title)
        return bar["children"] if bar else peel_root(bookmarks)

    async def _push_to_browser(self, nodes: List[Any]) -> int:
        """
        Clear the bookmarks bar (keeping '_'-prefixed entries) and recreate
        nodes under it. Returns the number of nodes created.
        """
        tree = await self.host.bookmarks.get_tree()
        bar = find_bookmarks_bar(tree, self.config.bookmarks_bar_title)
        if bar is None:
            raise CollaboratorError("Bookmarks bar not found in browser")

        for child in bar["children"]:
            if (child.get("title") or "").startswith(PROTECTED_PREFIX):
                continue
            if is_folder(child):
                await self.host.bookmarks.remove_tree(child["id"])
            else:
                await self.host.bookmarks.remove(child["id"])

        return await self._create_nodes(bar["id"], nodes)

    async def _create_nodes(self, parent_id: str, nodes: List[Any]) -> int:
        created = 0
        for node in nodes:
            if not isinstance(node, dict):
                continue
            if is_folder(node):
                folder = await self.host.bookmarks.create(parent_id, node.get("title", ""))
                created += 1 + await self._create_nodes(folder["id"], node["children"])
            elif node.get("url"):
                await self.host.bookmarks.create(parent_id, node.get("title", ""), node["url"])
                created += 1
        return created

    @action("Forget extension")
    async def forget_extension(self, extension_id: str) -> ActionResult:
        """Drop an extension record from the stored snapshot."""
        stored = await self._stored()
        if stored is None:
            return ActionResult(False, "No stored extension list to remove from.")

        remaining = [e for e in stored.extensions if e.get("id") != extension_id]
        if len(remaining) == len(stored.extensions):
            return ActionResult(False, f"Extension {extension_id} not found in the stored list.")

        stored.extensions = remaining
        await self._save(stored)
        return ActionResult(True, f"Extension {extension_id} removed from the list.", snapshot=stored)

    @action("Toggle extension")
    async def set_extension_enabled(self, extension_id: str, enabled: bool) -> ActionResult:
        await self.host.extensions.set_enabled(extension_id, enabled)
        state = "enabled" if enabled else "disabled"
        return ActionResult(True, f"Extension {extension_id} {state}")

    @action("Uninstall extension")
    async def uninstall_extension(self, extension_id: str) -> ActionResult:
        await self.host.extensions.uninstall(extension_id)
        return ActionResult(True, f"Extension {extension_id} uninstalled")
