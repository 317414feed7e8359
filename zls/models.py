"""Data models for zfs-local-sync."""
from __future__ import annotations

import enum
import hashlib
import os
import re
from dataclasses import dataclass, field

DEFAULT_KEEP_SNAPSHOTS = 10
DEFAULT_EXCLUDE = ("swap",)
DEFAULT_LOG_DIR = "/var/log/zfs-local-sync"
DEFAULT_LOCK_DIR = "/var/run"

TAG_PREFIX = "_zfs-local-sync"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


@dataclass(frozen=True, order=True)
class Snapshot:
    """A ZFS snapshot: pool/dataset@name."""
    dataset: str
    name: str  # just the snapshot name after '@'
    creation: int = field(default=0, compare=False)  # epoch seconds, 0 if unknown

    @property
    def full_name(self) -> str:
        return f"{self.dataset}@{self.name}"

    @classmethod
    def parse(cls, full_name: str, creation: int = 0) -> "Snapshot":
        dataset, _, name = full_name.partition("@")
        if not name:
            raise ValueError(f"Not a snapshot: {full_name!r}")
        return cls(dataset=dataset, name=name, creation=creation)

    def with_dataset(self, dataset: str) -> "Snapshot":
        """Return the same snapshot name on another dataset (e.g. its received copy)."""
        return Snapshot(dataset=dataset, name=self.name, creation=self.creation)


@dataclass(frozen=True)
class Dataset:
    name: str  # e.g. tank/vm-100-disk-0

    @property
    def pool(self) -> str:
        return self.name.split("/")[0]

    @property
    def relative(self) -> str:
        """Name below the pool, e.g. vm-100-disk-0."""
        return self.name.partition("/")[2]


class RunMode(str, enum.Enum):
    NORMAL = "normal"
    VERBOSE = "verbose"
    SILENT = "silent"


def derive_tag(source: str, destination: str) -> str:
    """Return the snapshot tag for a source/destination pool pair.

    Pool names may contain '_', '-' and '.', so joining them into the tag would
    let two different pairs produce the same string. A short digest of the pair
    keeps the tag unique and still valid in a snapshot name.
    """
    digest = hashlib.sha256(f"{source}\0{destination}".encode()).hexdigest()[:8]
    return f"{TAG_PREFIX}-{digest}"


@dataclass(frozen=True)
class SyncConfig:
    source: str
    destination: str
    keep_snapshots: int = DEFAULT_KEEP_SNAPSHOTS
    datasets: tuple[str, ...] | None = None   # None: discover from source pool
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE  # regexes, matched with re.search
    dry_run: bool = False
    mode: RunMode = RunMode.NORMAL
    log_dir: str = DEFAULT_LOG_DIR
    lock_dir: str = DEFAULT_LOCK_DIR
    tag: str | None = None

    @property
    def snapshot_tag(self) -> str:
        return self.tag or derive_tag(self.source, self.destination)

    @property
    def log_file(self) -> str:
        return os.path.join(self.log_dir, f"{self.source}.log")

    @property
    def pid_file(self) -> str:
        return os.path.join(self.lock_dir, f"zfs-local-sync_{self.source}.pid")

    def is_excluded(self, dataset: str) -> bool:
        return any(re.search(pattern, dataset) for pattern in self.exclude)

    def source_dataset(self, dataset: str) -> str:
        return f"{self.source}/{dataset}"

    def destination_dataset(self, dataset: str) -> str:
        """Return the destination dataset for a dataset name relative to the pool.

        Example: vm-100-disk-0 -> backup/vm-100-disk-0
        """
        return f"{self.destination}/{dataset}"
