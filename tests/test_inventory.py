"""Tests for zls.inventory module."""
from __future__ import annotations

from datetime import datetime

from zls.inventory import (
    Inventory,
    is_first_run,
    snapshot_name,
    snapshot_timestamp,
)
from zls.models import Snapshot
from tests.conftest import TAG, MockExecutor, snapshot_listing, snapshots_cmd


def test_snapshot_name_format():
    assert snapshot_name(TAG, datetime(2026, 2, 3, 4, 5, 6)) == f"{TAG}_2026-02-03_04-05-06"


def test_snapshot_timestamp_requires_exact_tag():
    assert snapshot_timestamp(f"{TAG}_2026-02-03_04-05-06", TAG) == datetime(2026, 2, 3, 4, 5, 6)
    assert snapshot_timestamp("zfs-auto-snap_daily-2026-02-03-1539", TAG) is None
    assert snapshot_timestamp(f"{TAG}-other_2026-02-03_04-05-06", TAG) is None
    assert snapshot_timestamp(f"{TAG}_2026-13-03_04-05-06", TAG) is None


def test_load_filters_foreign_snapshots():
    exec_ = MockExecutor({
        snapshots_cmd("tank"): snapshot_listing([
            f"tank/vm-100-disk-0@{TAG}_2026-02-01_00-00-00",
            "tank/vm-100-disk-0@manual-before-upgrade",
            "tank/vm-100-disk-0@zfs-auto-snap_daily-2026-02-03-1539",
            f"tank/vm-100-disk-0@{TAG}_2026-02-02_00-00-00",
            f"tank@{TAG}_2026-02-02_00-00-00",
        ]),
    })
    inv = Inventory.load("tank", TAG, exec_)
    assert [s.name for s in inv.snapshots("vm-100-disk-0")] == [
        f"{TAG}_2026-02-01_00-00-00",
        f"{TAG}_2026-02-02_00-00-00",
    ]


def test_no_substring_collision_between_datasets():
    """vm-1-disk-0 must not pick up snapshots of vm-1-disk-01 or vm-11-disk-0."""
    inv = Inventory("tank", TAG, [
        Snapshot("tank/vm-1-disk-0", f"{TAG}_2026-02-01_00-00-00"),
        Snapshot("tank/vm-1-disk-01", f"{TAG}_2026-02-02_00-00-00"),
        Snapshot("tank/vm-11-disk-0", f"{TAG}_2026-02-03_00-00-00"),
    ])
    assert inv.count("vm-1-disk-0") == 1
    assert inv.latest("vm-1-disk-0").name == f"{TAG}_2026-02-01_00-00-00"


def test_snapshots_sorted_by_embedded_timestamp():
    """Listing order is not trusted: the timestamp in the name decides."""
    inv = Inventory("tank", TAG, [
        Snapshot("tank/a", f"{TAG}_2026-02-03_00-00-00", creation=3),
        Snapshot("tank/a", f"{TAG}_2026-02-01_00-00-00", creation=1),
        Snapshot("tank/a", f"{TAG}_2026-02-02_00-00-00", creation=2),
    ])
    assert [s.creation for s in inv.snapshots("a")] == [1, 2, 3]
    assert inv.latest("a").name == f"{TAG}_2026-02-03_00-00-00"


def test_latest_empty():
    assert Inventory("tank", TAG).latest("a") is None


def test_other_pool_is_ignored():
    inv = Inventory("tank", TAG)
    assert not inv.add(Snapshot("backup/a", f"{TAG}_2026-02-01_00-00-00"))
    assert inv.count("a") == 0


def test_add_and_remove():
    inv = Inventory("tank", TAG)
    snap = Snapshot("tank/a", f"{TAG}_2026-02-01_00-00-00")
    assert inv.add(snap)
    assert not inv.add(snap)  # already present
    assert inv.count("a") == 1
    inv.remove(snap)
    assert inv.count("a") == 0
    inv.remove(Snapshot("other/a", "x"))  # unknown dataset is a no-op


def test_nested_dataset_names():
    inv = Inventory("tank", TAG, [
        Snapshot("tank/group/a", f"{TAG}_2026-02-01_00-00-00"),
    ])
    assert inv.count("group/a") == 1


def test_is_first_run_depends_only_on_destination():
    source = Inventory("tank", TAG, [
        Snapshot("tank/a", f"{TAG}_2026-02-01_00-00-00"),
        Snapshot("tank/a", f"{TAG}_2026-02-02_00-00-00"),
    ])
    destination = Inventory("backup", TAG)
    assert source.count("a") == 2
    assert is_first_run(destination, "a")

    destination.add(Snapshot("backup/a", f"{TAG}_2026-02-02_00-00-00"))
    assert not is_first_run(destination, "a")
