"""Work out which datasets a run processes."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zls import zfs

if TYPE_CHECKING:
    from zls.executor import Executor
    from zls.models import SyncConfig

log = logging.getLogger(__name__)


def split_datasets(value: str | list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Normalize a user-supplied dataset list ("a b" or ["a", "b"]), keeping order."""
    if isinstance(value, str):
        tokens = value.split()
    else:
        tokens = [token for item in value for token in str(item).split()]
    return tuple(dict.fromkeys(tokens))


def resolve_datasets(config: "SyncConfig", executor: "Executor") -> list[str]:
    """Return dataset names relative to the source pool, in processing order.

    An explicit list from the config is trusted verbatim. Otherwise every
    dataset below the source pool is used.
    """
    if config.datasets is not None:
        return list(config.datasets)

    prefix = config.source + "/"
    datasets = [
        ds.name[len(prefix):]
        for ds in zfs.list_datasets(config.source, executor)
        if ds.name.startswith(prefix)
    ]
    if not datasets:
        log.info("No datasets found on source pool %s.", config.source)
    return datasets
