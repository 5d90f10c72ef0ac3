"""
Reconciliation of bookmark forests and extension record lists.

Both merges are pure: inputs are never mutated and the result shares no
structure with them. The second argument is layered on top of the first and
wins on conflict.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from bksync.constants import BOOKMARKS_BAR_TITLE, MAX_TREE_DEPTH
from bksync.errors import TreeDepthError
from bksync.snapshot import as_list, is_folder, is_leaf

logger = logging.getLogger(__name__)

# Fields that only take the preferred value when it is non-empty
IDENTITY_FIELDS = ("id", "name", "homepageUrl", "updateUrl")


# Bookmark forests

def clone_node(node: Any, depth: int = 0, max_depth: int = MAX_TREE_DEPTH) -> Any:
    """
    Copy a bookmark node.

    Folders are rebuilt level by level so the depth guard applies; leaves and
    unrecognised nodes are copied whole.

    Raises:
        TreeDepthError: If the subtree nests deeper than max_depth
    """
    if depth > max_depth:
        raise TreeDepthError(f"Bookmark tree is nested deeper than {max_depth} levels")
    if is_folder(node):
        folder = {k: copy.deepcopy(v) for k, v in node.items() if k != "children"}
        folder["children"] = [clone_node(c, depth + 1, max_depth) for c in node["children"]]
        return folder
    return copy.deepcopy(node)


def merge_trees(base: List[Any], incoming: List[Any],
                bar_title: str = BOOKMARKS_BAR_TITLE,
                max_depth: int = MAX_TREE_DEPTH) -> List[Any]:
    """
    Merge two bookmark forests.

    Folders with the same title are merged recursively, except the bookmarks
    bar, whose children are replaced by the incoming ones. Leaves are only
    added when no sibling has the same URL and title.

    Args:
        base: Forest to start from
        incoming: Forest layered on top of base
        bar_title: Title of the folder that is replaced instead of merged
        max_depth: Deepest nesting level accepted

    Returns:
        New merged forest
    """
    merged = [clone_node(node, 0, max_depth) for node in as_list(base)]
    _merge_nodes(merged, as_list(incoming), bar_title, 0, max_depth)
    return merged


def _merge_nodes(target: List[Any], source: List[Any], bar_title: str,
                 depth: int, max_depth: int) -> None:
    """Layer source onto target in place; target is already a private copy."""
    if depth > max_depth:
        raise TreeDepthError(f"Bookmark tree is nested deeper than {max_depth} levels")

    for node in source:
        if is_folder(node):
            existing = _find_folder(target, node.get("title"))
            if existing is None:
                target.append(clone_node(node, depth, max_depth))
            elif node.get("title") == bar_title:
                existing["children"] = [
                    clone_node(child, depth + 1, max_depth) for child in node["children"]
                ]
            else:
                existing["title"] = node.get("title")
                _merge_nodes(existing["children"], node["children"], bar_title,
                             depth + 1, max_depth)
        elif is_leaf(node):
            if not _has_leaf(target, node):
                target.append(clone_node(node, depth, max_depth))
        else:
            # Neither leaf nor folder: keep it rather than guess
            target.append(clone_node(node, depth, max_depth))


def _find_folder(nodes: List[Any], title: Optional[str]) -> Optional[Dict[str, Any]]:
    for node in nodes:
        if is_folder(node) and node.get("title") == title:
            return node
    return None


def _has_leaf(nodes: List[Any], leaf: Dict[str, Any]) -> bool:
    return any(
        is_leaf(node) and node["url"] == leaf["url"] and node.get("title") == leaf.get("title")
        for node in nodes
    )


# Extension records

def unify_records(base: Dict[str, Any], preferred: Dict[str, Any]) -> Dict[str, Any]:
    """
    Combine two records describing the same extension.

    Identity fields take the preferred value only when it is non-empty; every
    other field present on the preferred side wins.
    """
    merged = dict(base)
    for key, value in preferred.items():
        if key in IDENTITY_FIELDS and value in (None, ""):
            continue
        merged[key] = value
    return merged


class _RecordSlots:
    """
    Result slots plus the id and homepage URL indexes pointing at them.

    A key, once seen in a slot, keeps resolving to that slot (or to the slot
    it was folded into), so a chain of records sharing either key always
    collapses to one entry.
    """

    def __init__(self):
        self.records: List[Optional[Dict[str, Any]]] = []
        self.by_id: Dict[str, int] = {}
        self.by_url: Dict[str, int] = {}

    def find(self, record: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
        id_slot = self.by_id.get(record["id"]) if record.get("id") else None
        url = record.get("homepageUrl")
        url_slot = self.by_url.get(url) if url else None
        return id_slot, url_slot

    def add(self, record: Dict[str, Any]) -> None:
        self.records.append(record)
        self._index(len(self.records) - 1)

    def replace(self, slot: int, record: Dict[str, Any]) -> None:
        self.records[slot] = record
        self._index(slot)

    def fold(self, source: int, target: int) -> None:
        """Merge slot source into slot target; target wins on conflict."""
        logger.debug("Folding extension slot %d into %d", source, target)
        self.records[target] = unify_records(self.records[source], self.records[target])
        self.records[source] = None
        for index in (self.by_id, self.by_url):
            for key, slot in index.items():
                if slot == source:
                    index[key] = target
        self._index(target)

    def _index(self, slot: int) -> None:
        record = self.records[slot]
        if record.get("id"):
            self.by_id[record["id"]] = slot
        if record.get("homepageUrl"):
            self.by_url[record["homepageUrl"]] = slot

    def result(self) -> List[Dict[str, Any]]:
        return [record for record in self.records if record is not None]


def merge_records(base: List[Any], incoming: List[Any]) -> List[Dict[str, Any]]:
    """
    Merge two extension lists into one deduplicated list.

    Records are matched by id first and homepage URL second. Records from
    incoming are preferred field by field; fields only base knows about are
    kept. Entries that are not dictionaries are dropped.

    Args:
        base: Older or stored records
        incoming: Fresher records, preferred on conflict

    Returns:
        New list in first-seen order
    """
    base_records = [r for r in as_list(base) if isinstance(r, dict)]
    incoming_records = [r for r in as_list(incoming) if isinstance(r, dict)]

    slots = _RecordSlots()
    for position, entry in enumerate(base_records + incoming_records):
        record = copy.deepcopy(entry)
        from_incoming = position >= len(base_records)

        id_slot, url_slot = slots.find(record)
        slot = id_slot if id_slot is not None else url_slot
        if slot is None:
            slots.add(record)
            continue

        if url_slot is not None and url_slot != slot:
            slots.fold(url_slot, slot)

        current = slots.records[slot]
        if from_incoming:
            merged = unify_records(current, record)
        else:
            merged = unify_records(record, current)
        slots.replace(slot, merged)

    return slots.result()
