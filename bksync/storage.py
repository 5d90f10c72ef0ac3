"""
Local persistence for bksync.

Provides a minimal key-value API over SQLAlchemy. The store holds a single
"current snapshot" slot, overwritten wholesale, and the remote account id.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from bksync.config import get_config
from bksync.constants import ACCOUNT_KEY, SNAPSHOT_KEY
from bksync.errors import SnapshotFormatError
from bksync.models import Base, StoredValue
from bksync.snapshot import Snapshot

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Key-value store backed by a SQLite file.

    Examples:
        LocalStore()  # Uses config default
        LocalStore(path="bksync.db")
    """

    def __init__(self, path: Optional[str] = None):
        """
        Open (and create if needed) the local database.

        Args:
            path: Database file path. Uses config default if not provided.
        """
        config = get_config()

        if path:
            self.path = Path(path)
        else:
            self.path = config.get_database_path()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.url = f"sqlite:///{self.path}"

        # Actions run storage calls on worker threads
        self.engine = create_engine(
            self.url,
            connect_args={"check_same_thread": False},
            poolclass=NullPool,
            echo=config.database_echo
        )
        event.listen(self.engine, "connect", self._configure_sqlite)

        self.Session = sessionmaker(bind=self.engine, autoflush=False)
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _configure_sqlite(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.close()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Context manager for sessions with automatic commit/rollback."""
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default."""
        with self.session() as session:
            row = session.execute(
                select(StoredValue).where(StoredValue.key == key)
            ).scalar_one_or_none()
            if row is None or row.value is None:
                return default
            return row.value

    def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        with self.session() as session:
            row = session.get(StoredValue, key)
            if row is None:
                session.add(StoredValue(key=key, value=value))
            else:
                row.value = value

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""
        with self.session() as session:
            row = session.get(StoredValue, key)
            if row is None:
                return False
            session.delete(row)
            return True

    def load_snapshot(self) -> Optional[Snapshot]:
        """Return the current snapshot, or None if nothing is stored."""
        data = self.get(SNAPSHOT_KEY)
        if data is None:
            return None
        try:
            return Snapshot.from_dict(data)
        except SnapshotFormatError:
            logger.warning("Ignoring malformed stored snapshot")
            return None

    def save_snapshot(self, snapshot: Snapshot) -> None:
        """Overwrite the current snapshot slot."""
        self.set(SNAPSHOT_KEY, snapshot.to_dict())
        logger.info(
            "Saved snapshot with %d extensions and %d bookmarks",
            len(snapshot.extensions), snapshot.bookmark_count
        )

    def get_account_id(self) -> Optional[str]:
        return self.get(ACCOUNT_KEY)

    def set_account_id(self, account_id: str) -> None:
        self.set(ACCOUNT_KEY, account_id)


# Global store instance
_store: Optional[LocalStore] = None


def get_store(path: Optional[str] = None, reload: bool = False) -> LocalStore:
    """
    Get the global store instance.

    Args:
        path: Database file path
        reload: Force new connection

    Returns:
        LocalStore instance
    """
    global _store
    if _store is None or reload or path:
        _store = LocalStore(path)
    return _store
