"""
Exception hierarchy for bksync.

Every error that can cross a module boundary derives from SyncError so the
orchestrator can turn it into a failed ActionResult.
"""


class SyncError(Exception):
    """Base exception for bksync errors."""
    pass


class TreeDepthError(SyncError, ValueError):
    """Raised when a bookmark forest nests deeper than the merge allows."""
    pass


class SnapshotFormatError(SyncError, ValueError):
    """Raised when a snapshot envelope is not a JSON object."""
    pass


class CollaboratorError(SyncError):
    """Raised when a browser store or registry cannot perform a request."""
    pass


class RemoteStoreError(SyncError):
    """Raised when the remote backup store rejects or garbles a request."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status
