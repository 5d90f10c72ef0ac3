import os
import pytest

import bksync.config as config_module
import bksync.storage as storage_module
from bksync.browser import BrowserHost, MemoryExtensionRegistry
from bksync.config import SyncConfig
from bksync.errors import RemoteStoreError
from bksync.storage import LocalStore
from bksync.sync import SyncEngine


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the user's config files, env and cwd."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("BKSYNC_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(config_module, "_config", None)
    monkeypatch.setattr(storage_module, "_store", None)


@pytest.fixture
def sample_extensions():
    """Raw registry entries as a browser reports them."""
    return [
        {
            "id": "aaa",
            "name": "Ad Blocker",
            "homepageUrl": "https://adblock.example",
            "updateUrl": "https://clients2.google.com/service/update2/crx",
            "type": "extension",
            "enabled": True,
        },
        {
            "id": "bbb",
            "name": "Password Manager",
            "homepageUrl": "https://passwords.example",
            "type": "extension",
            "enabled": True,
        },
        {
            "id": "ccc",
            "name": "Dark Theme",
            "type": "theme",
            "enabled": True,
        },
    ]


@pytest.fixture
def sample_tree():
    """A browser bookmark tree: synthetic root with bar and other folders."""
    return [
        {
            "id": "0",
            "title": "",
            "children": [
                {
                    "id": "1",
                    "title": "Bookmarks Bar",
                    "children": [
                        {"id": "10", "title": "Python", "url": "https://python.org", "dateAdded": 1700000000000},
                        {
                            "id": "11",
                            "title": "Dev",
                            "children": [
                                {"id": "12", "title": "GitHub", "url": "https://github.com"},
                            ],
                        },
                    ],
                },
                {"id": "2", "title": "Other bookmarks", "children": []},
            ],
        }
    ]


@pytest.fixture
def config():
    return SyncConfig()


@pytest.fixture
def store(tmp_path):
    """A LocalStore on a throwaway SQLite file."""
    return LocalStore(path=str(tmp_path / "test.db"))


@pytest.fixture
def host(sample_extensions):
    """In-memory browser with a few extensions and an empty bar."""
    host = BrowserHost.in_memory("Chrome")
    host.extensions = MemoryExtensionRegistry(sample_extensions)
    return host


class FakeRemote:
    """Stand-in for RemoteBackupStore that keeps the basket in memory."""

    def __init__(self, data=None, fail=False):
        self.data = data
        self.fail = fail
        self.pushed = []
        self.account_ids = []

    def __call__(self, account_id):
        self.account_ids.append(account_id)
        return self

    async def fetch(self):
        if self.fail:
            raise RemoteStoreError("Remote store error (500): boom", status=500)
        if self.data is None:
            raise RemoteStoreError("Remote store error (400): basket not found", status=400)
        return self.data

    async def push(self, data):
        if self.fail:
            raise RemoteStoreError("Remote store error (500): boom", status=500)
        self.pushed.append(data)
        self.data = data
        return "Your Pantry was updated with basket: extensionBackup!"


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def engine(store, host, remote, config):
    return SyncEngine(store, host, remote_factory=remote, config=config)
