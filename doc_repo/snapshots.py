"""Change envelopes emitted by the snapshot streams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence

ChangeType = Literal["added", "modified", "removed"]

# change-stream operation type -> envelope change type
OPERATION_CHANGE_TYPES: Dict[str, ChangeType] = {
    "insert": "added",
    "update": "modified",
    "replace": "modified",
    "delete": "removed",
}


@dataclass(frozen=True)
class DocumentSnapshot:
    """Raw state of one document at the time of a change."""

    id: str
    data: Optional[Dict[str, Any]] = None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        if self.data is None:
            return None
        return dict(self.data)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "DocumentSnapshot":
        data = dict(document)
        document_id = data.pop("_id")
        return cls(id=str(document_id), data=data)


@dataclass(frozen=True)
class DocumentAction:
    """Change to a single watched document."""

    type: ChangeType
    payload: DocumentSnapshot


@dataclass(frozen=True)
class DocumentChange:
    """
    Change to one document inside a watched result set.

    ``old_index`` is -1 for added documents, ``new_index`` is -1 for removed ones.
    """

    type: ChangeType
    document: DocumentSnapshot
    old_index: int
    new_index: int


def diff_snapshots(
    previous: Sequence[DocumentSnapshot],
    current: Sequence[DocumentSnapshot],
) -> List[DocumentChange]:
    """Changes turning ``previous`` into ``current``: removals, additions, then modifications."""

    old_positions = {snapshot.id: index for index, snapshot in enumerate(previous)}
    new_positions = {snapshot.id: index for index, snapshot in enumerate(current)}

    removed = [
        DocumentChange("removed", snapshot, old_index=index, new_index=-1)
        for index, snapshot in enumerate(previous)
        if snapshot.id not in new_positions
    ]
    added = []
    modified = []
    for index, snapshot in enumerate(current):
        old_index = old_positions.get(snapshot.id)
        if old_index is None:
            added.append(DocumentChange("added", snapshot, old_index=-1, new_index=index))
        elif previous[old_index].data != snapshot.data:
            modified.append(DocumentChange("modified", snapshot, old_index=old_index, new_index=index))
    return removed + added + modified


def filter_changes(
    changes: Iterable[DocumentChange],
    events: Optional[Iterable[ChangeType]] = None,
) -> List[DocumentChange]:
    if events is None:
        return list(changes)
    wanted = set(events)
    return [change for change in changes if change.type in wanted]


def combine_changes(
    state: Sequence[DocumentChange],
    changes: Iterable[DocumentChange],
    current: Sequence[DocumentSnapshot],
) -> List[DocumentChange]:
    """
    Apply ``changes`` to the running result set ``state``.

    Each document keeps the latest change that touched it. Entries are ordered
    by their position in ``current``; entries missing from it (removals that
    were filtered out) fall back to their last known index.
    """

    entries = {entry.document.id: entry for entry in state}
    for change in changes:
        if change.type == "removed":
            entries.pop(change.document.id, None)
        else:
            entries[change.document.id] = change

    positions = {snapshot.id: index for index, snapshot in enumerate(current)}
    return sorted(entries.values(), key=lambda entry: positions.get(entry.document.id, entry.new_index))
