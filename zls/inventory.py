"""Snapshot inventory: the tool-created snapshots of one pool, indexed per dataset."""
from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from zls import zfs
from zls.models import TIMESTAMP_FORMAT, Snapshot

if TYPE_CHECKING:
    from zls.executor import Executor

_TIMESTAMP_RE = r"\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}"


def snapshot_name(tag: str, when: datetime) -> str:
    """Return the snapshot name for a run started at `when`."""
    return f"{tag}_{when.strftime(TIMESTAMP_FORMAT)}"


def tag_pattern(tag: str) -> re.Pattern:
    return re.compile(re.escape(tag) + "_(" + _TIMESTAMP_RE + ")")


def snapshot_timestamp(name: str, tag: str) -> datetime | None:
    """Return the embedded run time if `name` was created with `tag`, else None."""
    match = tag_pattern(tag).fullmatch(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None


class Inventory:
    """Tool-created snapshots of `pool`, keyed by dataset name relative to the pool.

    Each dataset's snapshots are kept sorted oldest first by the timestamp in
    their name (creation time breaks ties), independent of listing order.
    """

    def __init__(self, pool: str, tag: str, snapshots: Iterable[Snapshot] = ()):
        self.pool = pool
        self.tag = tag
        self._by_dataset: dict[str, list[Snapshot]] = {}
        for snap in snapshots:
            self.add(snap)

    @classmethod
    def load(cls, pool: str, tag: str, executor: "Executor") -> "Inventory":
        return cls(pool, tag, zfs.list_snapshots(pool, executor))

    def _relative(self, dataset: str) -> str | None:
        prefix = self.pool + "/"
        if not dataset.startswith(prefix):
            return None
        return dataset[len(prefix):]

    def _sort_key(self, snap: Snapshot):
        return (snapshot_timestamp(snap.name, self.tag), snap.creation, snap.name)

    def add(self, snap: Snapshot) -> bool:
        """Add a snapshot if it belongs to this pool and carries our tag."""
        relative = self._relative(snap.dataset)
        if not relative or snapshot_timestamp(snap.name, self.tag) is None:
            return False
        snaps = self._by_dataset.setdefault(relative, [])
        if any(s.name == snap.name for s in snaps):
            return False
        snaps.append(snap)
        snaps.sort(key=self._sort_key)
        return True

    def remove(self, snap: Snapshot) -> None:
        relative = self._relative(snap.dataset)
        if relative not in self._by_dataset:
            return
        self._by_dataset[relative] = [
            s for s in self._by_dataset[relative] if s.name != snap.name
        ]

    def snapshots(self, dataset: str) -> list[Snapshot]:
        """Oldest-first snapshots for `dataset` (relative to the pool)."""
        return list(self._by_dataset.get(dataset, []))

    def count(self, dataset: str) -> int:
        return len(self._by_dataset.get(dataset, []))

    def latest(self, dataset: str) -> Snapshot | None:
        snaps = self._by_dataset.get(dataset)
        return snaps[-1] if snaps else None

    def names(self, dataset: str) -> set[str]:
        return {s.name for s in self._by_dataset.get(dataset, [])}


def is_first_run(destination: Inventory, dataset: str) -> bool:
    """True if the destination holds no tool snapshot for `dataset` yet."""
    return destination.count(dataset) == 0
