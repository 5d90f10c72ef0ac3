"""
Importers for bksync snapshot files.

Only the JSON interchange envelope can be imported; Netscape HTML is an
export-only format.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict

from bksync.errors import SnapshotFormatError

logger = logging.getLogger(__name__)


def parse_snapshot(text: str) -> Dict[str, Any]:
    """
    Parse snapshot JSON text into its envelope dictionary.

    The raw dictionary is returned (not a Snapshot) so callers can tell an
    absent 'bookmarks' key from an empty one.

    Raises:
        SnapshotFormatError: If the text is not JSON or not an object
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotFormatError(f"Invalid JSON file: {e}")

    if not isinstance(data, dict):
        raise SnapshotFormatError("Invalid JSON file: Not an object.")
    return data


def load_snapshot(path: Path) -> Dict[str, Any]:
    """Read and parse a snapshot file."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = parse_snapshot(f.read())
    logger.info(f"Read snapshot file {path}")
    return data
