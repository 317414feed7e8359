"""Retention: destroy the oldest tool-created snapshots beyond the keep window."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zls import zfs
from zls.models import Snapshot

if TYPE_CHECKING:
    from zls.inventory import Inventory
    from zls.sink import CommandSink

log = logging.getLogger(__name__)


def snapshots_to_destroy(snapshots: list[Snapshot], keep: int) -> list[Snapshot]:
    """
    Return the snapshots that fall outside the newest `keep`.

    `snapshots` must be oldest first, as returned by Inventory.snapshots().
    """
    if keep < 1:
        raise ValueError(f"keep must be >= 1, got {keep}")
    if len(snapshots) <= keep:
        return []
    return snapshots[: len(snapshots) - keep]


def is_snapshot_identifier(snapshot: Snapshot) -> bool:
    """True if destroying `snapshot.full_name` can only remove a snapshot."""
    dataset, sep, name = snapshot.full_name.partition("@")
    return bool(dataset and sep and name and "@" not in name)


def prune_dataset(
    inventory: "Inventory",
    dataset: str,
    keep: int,
    sink: "CommandSink",
) -> int:
    """
    Destroy excess snapshots of one dataset, one at a time.

    Successfully destroyed snapshots are dropped from the inventory, so calling
    this again without new snapshots issues nothing. Returns the number of
    failed destroy commands.
    """
    to_destroy = snapshots_to_destroy(inventory.snapshots(dataset), keep)
    if not to_destroy:
        return 0

    log.info(
        "## %s/%s: %d snapshot(s), keeping %d, destroying %d",
        inventory.pool, dataset, inventory.count(dataset), keep, len(to_destroy),
    )
    failures = 0
    for snap in to_destroy:
        if not is_snapshot_identifier(snap):
            log.warning(
                "########### WARNING! #############\n"
                "Refusing to destroy something that is not a snapshot!\n"
                "Command received: \"zfs destroy %s\"\n"
                "##################################",
                snap.full_name,
            )
            continue
        result = zfs.destroy_snapshot(snap, sink)
        if result.ok:
            inventory.remove(snap)
        else:
            failures += 1
    return failures
