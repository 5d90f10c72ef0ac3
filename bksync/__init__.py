"""
bksync - Browser extension and bookmark reconciliation

Keeps one snapshot of a browser's extensions and bookmarks consistent across
the live browser, a local SQLite store, imported/exported files and a remote
backup basket.

Example Usage:
    >>> import asyncio
    >>> from bksync import SyncEngine, BrowserHost, get_store
    >>> engine = SyncEngine(get_store(), BrowserHost.in_memory())
    >>> result = asyncio.run(engine.load(persist=True))
    >>> result.message
    'Loaded 0 extensions and 0 bookmarks'
"""

__version__ = "1.0.0"
__author__ = "bksync Contributors"

# Reconciliation
from bksync.merge import merge_records, merge_trees
from bksync.snapshot import Snapshot

# Orchestration
from bksync.sync import ActionResult, ChangeSummary, SyncEngine

# Collaborators
from bksync.browser import BrowserHost, detect_host
from bksync.remote import RemoteBackupStore
from bksync.storage import LocalStore, get_store

# Configuration
from bksync.config import SyncConfig, get_config, init_config

# Import/Export
from bksync.importers import load_snapshot
from bksync.exporters import export_file

__all__ = [
    # Reconciliation
    "merge_records",
    "merge_trees",
    "Snapshot",
    # Orchestration
    "ActionResult",
    "ChangeSummary",
    "SyncEngine",
    # Collaborators
    "BrowserHost",
    "detect_host",
    "RemoteBackupStore",
    "LocalStore",
    "get_store",
    # Config
    "SyncConfig",
    "get_config",
    "init_config",
    # Import/Export
    "load_snapshot",
    "export_file",
]
