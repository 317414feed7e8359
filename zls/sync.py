"""Sync run orchestration: snapshot, transfer, and prune every dataset."""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from zls import zfs
from zls.inventory import Inventory, is_first_run, snapshot_name
from zls.models import Snapshot
from zls.prune import prune_dataset
from zls.resolver import resolve_datasets
from zls.sink import CommandSink

if TYPE_CHECKING:
    from zls.executor import Executor
    from zls.models import SyncConfig

log = logging.getLogger(__name__)


class DatasetState(enum.Enum):
    SKIPPED = "skipped"
    FIRST_RUN = "first_run"
    INCREMENTAL = "incremental"


@dataclass
class DatasetPlan:
    """What one run does with a single dataset."""
    dataset: str  # relative to the pool
    state: DatasetState
    snapshot: Snapshot | None = None  # new snapshot on the source
    base: Snapshot | None = None      # incremental lower bound
    failed: bool = False
    message: str = ""

    def fail(self, message: str) -> None:
        self.failed = True
        self.message = message
        log.error("%s: %s", self.dataset, message)


def humanize_seconds(seconds: int) -> str:
    """Format a duration like '1d 2h 3m 4s', dropping leading zero units."""
    minutes, sec = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h {minutes}m {sec}s"
    if hours:
        return f"{hours}h {minutes}m {sec}s"
    if minutes:
        return f"{minutes}m {sec}s"
    return f"{sec}s"


def run_started() -> datetime:
    """Return the run start time used in snapshot names (UTC, naive).

    UTC keeps the embedded timestamps monotonic across DST changes.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def find_common_snapshot(
    src_snaps: list[Snapshot],
    dst_names: set[str],
) -> Snapshot | None:
    """Return the most recent source snapshot also present on the destination."""
    for snap in reversed(src_snaps):
        if snap.name in dst_names:
            return snap
    return None


def plan_datasets(
    config: "SyncConfig",
    datasets: list[str],
    src_inventory: Inventory,
    dst_inventory: Inventory,
    started: datetime,
) -> list[DatasetPlan]:
    """Classify every dataset before anything is created."""
    name = snapshot_name(config.snapshot_tag, started)
    plans = []
    for dataset in datasets:
        if config.is_excluded(dataset):
            log.info("Ignoring dataset: %s", dataset)
            plans.append(DatasetPlan(dataset=dataset, state=DatasetState.SKIPPED))
            continue

        snapshot = Snapshot(dataset=config.source_dataset(dataset), name=name)

        if is_first_run(dst_inventory, dataset):
            plans.append(DatasetPlan(
                dataset=dataset, state=DatasetState.FIRST_RUN, snapshot=snapshot,
            ))
            continue

        plan = DatasetPlan(
            dataset=dataset, state=DatasetState.INCREMENTAL, snapshot=snapshot,
        )
        prior = src_inventory.snapshots(dataset)
        plan.base = find_common_snapshot(prior, dst_inventory.names(dataset))
        if plan.base is None and prior:
            plan.base = prior[-1]
            log.warning(
                "%s: no snapshot in common with %s, using latest source snapshot %s",
                dataset, config.destination, plan.base.full_name,
            )
        plans.append(plan)
    return plans


def _create_snapshots(plans: list[DatasetPlan], sink: CommandSink, src_inventory: Inventory) -> None:
    for plan in plans:
        if plan.state is DatasetState.SKIPPED:
            continue
        result = zfs.create_snapshot(plan.snapshot, sink)
        if result.ok:
            src_inventory.add(plan.snapshot)
        else:
            plan.fail(f"Snapshot creation failed: {result.reason}")


def _transfer(
    plan: DatasetPlan,
    config: "SyncConfig",
    sink: CommandSink,
    dst_inventory: Inventory,
) -> None:
    dst_dataset = config.destination_dataset(plan.dataset)
    if plan.state is DatasetState.FIRST_RUN:
        log.info(
            "## No previous snapshots were found for the dataset %s. Executing first run.",
            plan.dataset,
        )
        result = zfs.send_full(plan.snapshot, dst_dataset, sink)
    else:
        if plan.base is None:
            plan.fail("No source snapshot available as incremental base")
            return
        result = zfs.send_incremental(plan.base, plan.snapshot, dst_dataset, sink)

    if not result.ok:
        plan.fail(f"Transfer failed: {result.reason}")
        return
    dst_inventory.add(plan.snapshot.with_dataset(dst_dataset))


def run_sync(
    config: "SyncConfig",
    executor: "Executor",
    started: datetime | None = None,
) -> int:
    """
    Run one sync for config.source -> config.destination.
    Returns exit code (0=success, 1=at least one dataset failed).

    Three passes, so every new snapshot of a run shares one timestamp:
    1. Create a snapshot on every dataset that is not excluded
    2. Send each new snapshot (full on first run, incremental otherwise)
    3. Prune source and destination history of every incremental dataset
    """
    clock_start = time.monotonic()
    started = started or run_started()
    sink = CommandSink(executor, dry_run=config.dry_run)

    log.info("######### Beginning pool sync: %s -> %s", config.source, config.destination)
    if config.dry_run:
        log.info("## This is a dry run! No pool will be modified.")

    datasets = resolve_datasets(config, executor)
    src_inventory = Inventory.load(config.source, config.snapshot_tag, executor)
    dst_inventory = Inventory.load(config.destination, config.snapshot_tag, executor)

    plans = plan_datasets(config, datasets, src_inventory, dst_inventory, started)

    # --- Pass 1: Snapshot ---
    _create_snapshots(plans, sink, src_inventory)

    # --- Pass 2: Transfer ---
    for plan in plans:
        if plan.state is DatasetState.SKIPPED or plan.failed:
            continue
        _transfer(plan, config, sink, dst_inventory)

    # --- Pass 3: Prune ---
    prune_failures = 0
    for plan in plans:
        if plan.state is not DatasetState.INCREMENTAL or plan.failed:
            continue
        prune_failures += prune_dataset(src_inventory, plan.dataset, config.keep_snapshots, sink)
        prune_failures += prune_dataset(dst_inventory, plan.dataset, config.keep_snapshots, sink)

    # --- Summary ---
    failed = [p for p in plans if p.failed]
    skipped = [p for p in plans if p.state is DatasetState.SKIPPED]
    synced = len(plans) - len(failed) - len(skipped)
    parts = [f"{synced} dataset(s) synced"]
    if skipped:
        parts.append(f"{len(skipped)} skipped")
    if failed:
        parts.append(f"{len(failed)} failed")
    if prune_failures:
        parts.append(f"{prune_failures} destroy error(s)")
    log.info("## %s", ", ".join(parts))
    for plan in failed:
        log.warning("## %s: %s", plan.dataset, plan.message)

    log.info("##### Done in: %s", humanize_seconds(time.monotonic() - clock_start))
    return 1 if failed or prune_failures else 0
