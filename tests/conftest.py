"""MockExecutor and shared fixtures for testing."""
from __future__ import annotations

import io
import logging
import subprocess
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from zls.models import SyncConfig

SRC_POOL = "tank"
DST_POOL = "backup"
TAG = "_zfs-local-sync"
RUN_TIME = datetime(2026, 2, 17, 22, 15, 0)


class MockExecutor:
    """
    Executor that returns pre-scripted responses for commands.

    responses: dict mapping tuple(cmd) -> stdout string or an Exception to raise.
    If the command isn't found, raises KeyError (to catch unexpected calls in tests).

    popen_returncodes: dict mapping tuple(cmd) -> exit status for piped commands
    (default 0).
    """

    def __init__(self, responses: dict | None = None, popen_returncodes: dict | None = None):
        self.responses: dict = responses or {}
        self.popen_returncodes: dict = popen_returncodes or {}
        self.calls: list[list[str]] = []  # record of all commands run
        self.popen_calls: list[list[str]] = []

    def run(self, cmd: list[str]) -> str:
        self.calls.append(cmd)
        key = tuple(cmd)
        if key not in self.responses:
            raise KeyError(f"MockExecutor: unexpected command: {cmd}")
        result = self.responses[key]
        if isinstance(result, Exception):
            raise result
        return result

    def popen(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        """
        For send/recv pipe tests: record the call and return a mock Popen object
        that exits with the scripted status immediately.
        """
        self.calls.append(cmd)
        self.popen_calls.append(cmd)
        rc = self.popen_returncodes.get(tuple(cmd), 0)
        err = b"" if rc == 0 else f"{cmd[1]} failed".encode()

        mock_proc = MagicMock(spec=subprocess.Popen)
        mock_proc.stdout = io.BytesIO(b"")
        mock_proc.stderr = io.BytesIO(err)
        mock_proc.returncode = rc
        mock_proc.wait.return_value = rc
        mock_proc.communicate.return_value = (b"", err)
        stderr = kwargs.get("stderr")
        if stderr is not None and hasattr(stderr, "write"):
            stderr.write(err)
        return mock_proc

    def commands(self, *prefix: str) -> list[list[str]]:
        """Recorded commands starting with `prefix`, e.g. commands("zfs", "destroy")."""
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]


# ---------------------------------------------------------------------------
# zfs list output builders
# ---------------------------------------------------------------------------

def datasets_cmd(pool: str) -> tuple:
    return ("zfs", "list", "-H", "-o", "name", "-r", pool)


def snapshots_cmd(pool: str) -> tuple:
    return ("zfs", "list", "-H", "-p", "-o", "name,creation", "-t", "snapshot", "-r", pool)


def snap_names(count: int, tag: str = TAG, start: datetime | None = None) -> list[str]:
    """Return `count` tool snapshot names one hour apart, oldest first."""
    start = start or RUN_TIME - timedelta(hours=count)
    return [
        f"{tag}_{(start + timedelta(hours=i)).strftime('%Y-%m-%d_%H-%M-%S')}"
        for i in range(count)
    ]


def snapshot_listing(full_names: list[str]) -> str:
    """`zfs list -H -p -o name,creation` output with increasing creation times."""
    base = 1_760_000_000
    return "".join(f"{name}\t{base + i * 3600}\n" for i, name in enumerate(full_names))


def pool_responses(
    datasets: list[str],
    src_snaps: dict[str, list[str]] | None = None,
    dst_snaps: dict[str, list[str]] | None = None,
    src_pool: str = SRC_POOL,
    dst_pool: str = DST_POOL,
) -> dict:
    """
    Return responses for the read-only queries of one run.

    src_snaps/dst_snaps map a relative dataset name to snapshot names (after '@').
    """
    src_snaps = src_snaps or {}
    dst_snaps = dst_snaps or {}
    src_full = [f"{src_pool}/{ds}@{n}" for ds, names in src_snaps.items() for n in names]
    dst_full = [f"{dst_pool}/{ds}@{n}" for ds, names in dst_snaps.items() for n in names]
    return {
        datasets_cmd(src_pool): "".join(
            f"{name}\n" for name in [src_pool] + [f"{src_pool}/{ds}" for ds in datasets]
        ),
        snapshots_cmd(src_pool): snapshot_listing(src_full),
        snapshots_cmd(dst_pool): snapshot_listing(dst_full),
    }


def make_config(**overrides) -> SyncConfig:
    values = dict(source=SRC_POOL, destination=DST_POOL, tag=TAG)
    values.update(overrides)
    return SyncConfig(**values)


@pytest.fixture(autouse=True)
def _reset_zls_logger():
    """Keep handlers attached by one test from leaking into the next."""
    yield
    logger = logging.getLogger("zls")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
