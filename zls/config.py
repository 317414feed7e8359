"""Load and validate configuration (YAML file + command-line overrides)."""
from __future__ import annotations

import re

import yaml

from zls.models import (
    DEFAULT_EXCLUDE,
    DEFAULT_KEEP_SNAPSHOTS,
    DEFAULT_LOCK_DIR,
    DEFAULT_LOG_DIR,
    RunMode,
    SyncConfig,
)
from zls.resolver import split_datasets

KNOWN_KEYS = {
    "source",
    "destination",
    "keep_snapshots",
    "datasets",
    "exclude",
    "log_dir",
    "lock_dir",
    "tag",
}


class ConfigError(Exception):
    pass


def load_settings(path: str) -> dict:
    """Read a YAML config file and return its settings mapping."""
    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping: {path}")

    unknown = sorted(set(raw) - KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config key(s): {', '.join(map(str, unknown))}")
    return raw


def _pool_name(settings: dict, key: str) -> str:
    value = settings.get(key)
    name = str(value).strip() if value is not None else ""
    if not name:
        raise ConfigError(f"{key} pool is required")
    if "/" in name or "@" in name:
        raise ConfigError(f"{key} must be a pool name, got {name!r}")
    return name


def build_config(
    settings: dict,
    dry_run: bool = False,
    mode: RunMode = RunMode.NORMAL,
) -> SyncConfig:
    """Validate merged settings and build the run's SyncConfig."""
    source = _pool_name(settings, "source")
    destination = _pool_name(settings, "destination")
    if source == destination:
        raise ConfigError("source and destination must be different pools")

    # --- keep_snapshots ---
    keep_raw = settings.get("keep_snapshots")
    if keep_raw is None:
        keep = DEFAULT_KEEP_SNAPSHOTS
    else:
        # int("1.5") fails; int(1.5) would silently truncate
        if isinstance(keep_raw, bool) or not isinstance(keep_raw, (int, str)):
            raise ConfigError(f"keep_snapshots must be an integer, got {keep_raw!r}")
        try:
            keep = int(keep_raw)
        except ValueError:
            raise ConfigError(f"keep_snapshots must be an integer, got {keep_raw!r}")
        if keep < 1:
            raise ConfigError(f"keep_snapshots must be >= 1, got {keep_raw!r}")

    # --- datasets ---
    datasets_raw = settings.get("datasets")
    datasets = None
    if datasets_raw is not None:
        if not isinstance(datasets_raw, (str, list, tuple)):
            raise ConfigError(f"Invalid datasets value: {datasets_raw!r}")
        datasets = split_datasets(datasets_raw)
        for name in datasets:
            if "@" in name or name.startswith("/"):
                raise ConfigError(f"Invalid dataset entry: {name!r}")

    # --- exclude ---
    exclude_raw = settings.get("exclude")
    if exclude_raw is None:
        exclude = DEFAULT_EXCLUDE
    else:
        if isinstance(exclude_raw, str):
            exclude_raw = [exclude_raw]
        exclude = tuple(str(p) for p in exclude_raw if p is not None and str(p) != "")
        for pattern in exclude:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"Invalid regex in exclude pattern {pattern!r}: {e}")

    tag = settings.get("tag")
    if tag is not None:
        tag = str(tag).strip()
        if not tag or not re.fullmatch(r"[A-Za-z0-9_.:-]+", tag):
            raise ConfigError(f"Invalid snapshot tag: {tag!r}")

    return SyncConfig(
        source=source,
        destination=destination,
        keep_snapshots=keep,
        datasets=datasets,
        exclude=exclude,
        dry_run=dry_run,
        mode=mode,
        log_dir=str(settings.get("log_dir") or DEFAULT_LOG_DIR),
        lock_dir=str(settings.get("lock_dir") or DEFAULT_LOCK_DIR),
        tag=tag,
    )
