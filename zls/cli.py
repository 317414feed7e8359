"""CLI entry point for zfs-local-sync."""
from __future__ import annotations

import argparse
import logging
import sys

import yaml

from zls.config import ConfigError, build_config, load_settings
from zls.executor import ExecutorError, LocalExecutor
from zls.lock import PidLock, exit_on_signals
from zls.log import setup_logging, teardown_logging
from zls.models import DEFAULT_KEEP_SNAPSHOTS, RunMode
from zls.sync import run_sync

log = logging.getLogger(__name__)

EPILOG = """\
Example: zfs-local-sync -s source-pool -d dest-pool
         zfs-local-sync -s tank -d backup -k 24 --datasets "vm-100-disk-0 vm-101-disk-0"
"""


def _keep_snapshots(value: str) -> int:
    try:
        keep = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if keep < 1:
        raise argparse.ArgumentTypeError(
            f"must be at least 1 (default: {DEFAULT_KEEP_SNAPSHOTS}), got {keep}"
        )
    return keep


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zfs-local-sync",
        description="Snapshot a ZFS pool and replicate it incrementally to another local pool",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    required = parser.add_argument_group("required parameters")
    required.add_argument("-s", "--source", help="Name of source ZFS pool")
    required.add_argument("-d", "--destination", help="Name of ZFS pool to use as backup")

    parser.add_argument("-D", "--dry-run", action="store_true",
                        help="Print the commands that would run without changing any pool")
    parser.add_argument("-S", "--silent", dest="mode", action="store_const",
                        const=RunMode.SILENT,
                        help="Only write warnings and errors to the log file")
    parser.add_argument("-v", "--verbose", dest="mode", action="store_const",
                        const=RunMode.VERBOSE,
                        help="Output to console and log file")
    parser.add_argument("-k", "--keep-snapshots", type=_keep_snapshots, metavar="N",
                        help=f"Number of snapshots to keep per dataset "
                             f"(default: {DEFAULT_KEEP_SNAPSHOTS}, minimum: 1)")
    parser.add_argument("-vols", "--datasets", metavar='"DS [DS ...]"',
                        help='Limit the sync to these datasets, space separated in quotes, '
                             'e.g. --datasets "vm-1-disk-0 vm-1-disk-1"')
    parser.add_argument("-c", "--config", help="Path to YAML config file")
    parser.add_argument("--exclude", action="append", metavar="REGEX",
                        help="Skip datasets matching REGEX (repeatable, default: swap)")
    parser.add_argument("--tag", help="Snapshot name tag (default: derived from the pool pair)")
    parser.add_argument("--log-dir", help="Directory for the per-pool log file")
    parser.add_argument("--lock-dir", help="Directory for the per-pool PID file")
    return parser


def run(argv=None, executor=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings: dict = {}
    if args.config:
        try:
            settings = dict(load_settings(args.config))
        except (ConfigError, OSError, yaml.YAMLError) as e:
            parser.error(f"config error: {e}")

    overrides = {
        "source": args.source,
        "destination": args.destination,
        "keep_snapshots": args.keep_snapshots,
        "datasets": args.datasets,
        "exclude": args.exclude,
        "tag": args.tag,
        "log_dir": args.log_dir,
        "lock_dir": args.lock_dir,
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = build_config(
            settings,
            dry_run=args.dry_run,
            mode=args.mode or RunMode.NORMAL,
        )
    except ConfigError as e:
        parser.error(str(e))

    try:
        setup_logging(config)
    except OSError as e:
        print(f"Cannot open log file {config.log_file}: {e}", file=sys.stderr)
        return 1

    lock = PidLock(config.pid_file)
    try:
        try:
            acquired = lock.acquire()
        except OSError as e:
            log.error("Cannot create lock file %s: %s", config.pid_file, e)
            print(f"Cannot create lock file {config.pid_file}: {e}", file=sys.stderr)
            return 1
        if not acquired:
            log.info("### Sync already running for pool %s. Exiting...", config.source)
            return 0

        return run_sync(config, executor or LocalExecutor())
    except ExecutorError as e:
        log.error("ZFS query failed: %s", e)
        return 1
    finally:
        lock.release()
        teardown_logging()


def main(argv=None) -> None:
    exit_on_signals()
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
