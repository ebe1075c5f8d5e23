from __future__ import annotations

import argparse
import getpass
import logging
import os
import socket
import sys
from pathlib import Path
from typing import Sequence

from vdi_disk_toolkit.collectors.disk_space_collector import CimDiskQuery, DiskSpaceCollector
from vdi_disk_toolkit.collectors.partition_collector import WindowsDiskManager
from vdi_disk_toolkit.errors import ConfigError
from vdi_disk_toolkit.services.cleanup_service import CleanupService
from vdi_disk_toolkit.services.config_service import ConfigPaths, ConfigService, ToolkitConfig
from vdi_disk_toolkit.services.fleet_service import FleetCleanup
from vdi_disk_toolkit.services.logging_service import open_run_log
from vdi_disk_toolkit.services.partition_service import PartitionExpander
from vdi_disk_toolkit.services.powershell import Credential
from vdi_disk_toolkit.services.report_service import ReportService

logger = logging.getLogger(__name__)

PASSWORD_ENV = "VDI_DISK_TOOLKIT_PASSWORD"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, help="JSON config file (default: per-user config)")
    parser.add_argument("--log-dir", type=Path, help="directory for the run log")
    parser.add_argument("--username", help="account for remote hosts; password from $%s or prompt" % PASSWORD_ENV)
    parser.add_argument("-v", "--verbose", action="store_true", help="debug output on the console")


def build_cleanup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vdi-disk-cleanup",
        description="Scan hosts for low free space and delete temporary files on the ones below threshold.",
    )
    parser.add_argument("hosts", nargs="*", help="host names (default: --hosts-file, config, local machine)")
    parser.add_argument("--hosts-file", type=Path, help="file with one host name per line")
    parser.add_argument("--threshold", type=float, help="flag hosts with less than this percent free")
    parser.add_argument("--drive", help="drive letter to scan (default: C)")
    parser.add_argument("--dry-run", action="store_true", help="measure candidate paths without deleting")
    parser.add_argument("--scan-only", action="store_true", help="report low hosts without cleaning")
    _common_args(parser)
    return parser


def build_expand_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vdi-expand-volume",
        description="Remove the recovery partition behind a volume and extend the volume to fill the disk.",
    )
    parser.add_argument("--drive", help="volume to extend (default: C)")
    parser.add_argument("--computer", help="run against a remote computer instead of locally")
    parser.add_argument("--min-extend-mb", type=int, help="smallest growth worth a resize")
    _common_args(parser)
    return parser


def load_config(args: argparse.Namespace, **overrides: object) -> ToolkitConfig:
    svc = ConfigService(ConfigPaths(path=args.config)) if args.config else ConfigService()
    if args.config and not args.config.exists():
        raise ConfigError(f"config file not found: {args.config}")
    return svc.load_config(log_dir=str(args.log_dir) if args.log_dir else None, **overrides)


def read_hosts_file(path: Path) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read hosts file {path}: {e}") from e
    hosts: list[str] = []
    for line in text.splitlines():
        name = line.split("#", 1)[0].strip()
        if name:
            hosts.append(name)
    return hosts


def resolve_hosts(cli_hosts: Sequence[str], hosts_file: Path | None, cfg: ToolkitConfig) -> list[str]:
    if cli_hosts:
        hosts = list(cli_hosts)
    elif hosts_file is not None:
        hosts = read_hosts_file(hosts_file)
    elif cfg.hosts:
        hosts = list(cfg.hosts)
    else:
        hosts = [socket.gethostname()]

    seen: set[str] = set()
    unique: list[str] = []
    for h in hosts:
        if h.lower() not in seen:
            seen.add(h.lower())
            unique.append(h)
    return unique


def resolve_credential(username: str | None) -> Credential | None:
    if not username:
        return None
    password = os.environ.get(PASSWORD_ENV)
    if password is None:
        password = getpass.getpass(f"Password for {username}: ")
    return Credential(username=username, password=password)


def cleanup_main(argv: Sequence[str] | None = None) -> int:
    args = build_cleanup_parser().parse_args(argv)
    try:
        cfg = load_config(args, threshold_percent=args.threshold, drive=args.drive)
        hosts = resolve_hosts(args.hosts, args.hosts_file, cfg)
    except ConfigError as e:
        print(f"vdi-disk-cleanup: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        run_log = open_run_log(
            cfg.log_dir,
            "disk_cleanup.log",
            verbose=args.verbose,
            max_mb=cfg.log_max_mb,
            keep_archives=cfg.log_keep_archives,
        )
    except OSError as e:
        print(f"vdi-disk-cleanup: cannot open log in {cfg.log_dir}: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        logger.info("Scanning %d host(s), threshold %.1f%% free on %s:", len(hosts), cfg.threshold_percent, cfg.drive)
        credential = resolve_credential(args.username)
        collector = DiskSpaceCollector(
            threshold_percent=cfg.threshold_percent,
            drive=cfg.drive,
            remote_query=CimDiskQuery(credential=credential, timeout_s=cfg.command_timeout_s),
        )
        cleaner = None
        if not args.scan_only:
            cleaner = CleanupService(
                candidate_paths=cfg.candidate_paths,
                drive=cfg.drive,
                share_template=cfg.share_template,
                credential=credential,
                dry_run=args.dry_run,
            )
        run = FleetCleanup(collector, cleaner).run(hosts)
        logger.info("\n%s", ReportService().build_cleanup_report(run))
        return EXIT_OK
    except Exception as e:  # noqa: BLE001
        logger.exception("Disk cleanup aborted: %s", e)
        return EXIT_FAILED
    finally:
        logger.info("Log written to %s", run_log.path)
        run_log.close()


def expand_main(argv: Sequence[str] | None = None) -> int:
    args = build_expand_parser().parse_args(argv)
    try:
        cfg = load_config(args, drive=args.drive, min_extend_mb=args.min_extend_mb)
    except ConfigError as e:
        print(f"vdi-expand-volume: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        run_log = open_run_log(
            cfg.log_dir,
            "volume_expand.log",
            verbose=args.verbose,
            max_mb=cfg.log_max_mb,
            keep_archives=cfg.log_keep_archives,
        )
    except OSError as e:
        print(f"vdi-expand-volume: cannot open log in {cfg.log_dir}: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        logger.info("Expanding %s: on %s", cfg.drive, args.computer or "this computer")
        credential = resolve_credential(args.username) if args.computer else None
        manager = WindowsDiskManager(
            computer=args.computer,
            credential=credential,
            timeout_s=cfg.command_timeout_s,
        )
        result = PartitionExpander(manager, min_extend_mb=cfg.min_extend_mb).expand(cfg.drive)
        logger.info("\n%s", ReportService().build_expansion_report(result))
        return EXIT_OK
    except Exception as e:  # noqa: BLE001
        logger.exception("Volume expansion failed: %s", e)
        return EXIT_FAILED
    finally:
        logger.info("Log written to %s", run_log.path)
        run_log.close()


def run_cleanup() -> None:
    raise SystemExit(cleanup_main())


def run_expand() -> None:
    raise SystemExit(expand_main())
