"""ZFS operations.

Queries run straight through an Executor (they are needed for planning, also in
dry-run mode). Everything that changes a pool goes through a CommandSink.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from zls.models import Dataset, Snapshot

if TYPE_CHECKING:
    from zls.executor import Executor
    from zls.sink import CommandResult, CommandSink


def list_datasets(pool: str, executor: "Executor") -> list[Dataset]:
    """Return all datasets in a pool (excluding the pool root itself)."""
    output = executor.run(["zfs", "list", "-H", "-o", "name", "-r", pool])
    results = []
    for line in output.splitlines():
        name = line.strip()
        if name and name != pool:
            results.append(Dataset(name=name))
    return results


def list_snapshots(pool: str, executor: "Executor") -> list[Snapshot]:
    """Return every snapshot in a pool with its creation time, in listing order."""
    output = executor.run([
        "zfs", "list", "-H", "-p", "-o", "name,creation", "-t", "snapshot", "-r", pool,
    ])
    results = []
    for line in output.splitlines():
        if not line.strip():
            continue
        name, _, creation = line.strip().partition("\t")
        if "@" not in name:
            continue
        try:
            created = int(creation)
        except ValueError:
            created = 0
        results.append(Snapshot.parse(name, creation=created))
    return results


def create_snapshot(snapshot: Snapshot, sink: "CommandSink") -> "CommandResult":
    return sink.run(["zfs", "snapshot", snapshot.full_name])


def send_full(snapshot: Snapshot, dst_dataset: str, sink: "CommandSink") -> "CommandResult":
    """Send a complete stream of `snapshot`; receiving creates dst_dataset."""
    return sink.pipe(
        ["zfs", "send", snapshot.full_name],
        ["zfs", "receive", dst_dataset],
    )


def send_incremental(
    base: Snapshot,
    latest: Snapshot,
    dst_dataset: str,
    sink: "CommandSink",
) -> "CommandResult":
    """
    Send all snapshots from base (exclusive) to latest (inclusive) to dst_dataset.

    Uses: zfs send -I pool/dataset@base pool/dataset@latest | zfs receive dst_dataset
    """
    return sink.pipe(
        ["zfs", "send", "-I", base.full_name, latest.full_name],
        ["zfs", "receive", dst_dataset],
    )


def destroy_snapshot(snapshot: Snapshot, sink: "CommandSink") -> "CommandResult":
    """Destroy a single snapshot."""
    return sink.run(["zfs", "destroy", snapshot.full_name])
