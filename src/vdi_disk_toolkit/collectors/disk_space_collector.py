from __future__ import annotations

import logging
import socket
from datetime import datetime
from typing import Iterable, Protocol

import psutil

from vdi_disk_toolkit.errors import DiskQueryError, ToolkitError
from vdi_disk_toolkit.models.common import GB, CollectorResult
from vdi_disk_toolkit.models.disk import DiskScanData, HostDiskStatus
from vdi_disk_toolkit.services.powershell import CREDENTIAL_VAR, Credential, ps_json, quote

logger = logging.getLogger(__name__)

LOCAL_ALIASES = {"localhost", ".", "127.0.0.1", "::1"}


def is_local_host(host: str) -> bool:
    name = host.strip().lower()
    if name in LOCAL_ALIASES:
        return True
    local = socket.gethostname().lower()
    return name == local or name.split(".", 1)[0] == local.split(".", 1)[0]


def build_status(host: str, drive: str, free_bytes: float, total_bytes: float) -> HostDiskStatus:
    if total_bytes <= 0:
        raise DiskQueryError(f"{host}: drive {drive}: reports no capacity")
    return HostDiskStatus(
        host=host,
        drive=drive,
        percent_free=round(float(free_bytes) / float(total_bytes) * 100.0, 2),
        free_gb=round(float(free_bytes) / GB, 2),
        total_gb=round(float(total_bytes) / GB, 2),
    )


class DiskQuery(Protocol):
    def query(self, host: str, drive: str) -> HostDiskStatus: ...


class LocalDiskQuery:
    def __init__(self, root_template: str = "{drive}:\\") -> None:
        self.root_template = root_template

    def query(self, host: str, drive: str) -> HostDiskStatus:
        root = self.root_template.format(drive=drive)
        try:
            u = psutil.disk_usage(root)
        except OSError as e:
            raise DiskQueryError(f"{host}: disk_usage({root}) failed: {e}") from e
        return build_status(host, drive, u.free, u.total)


class CimDiskQuery:
    """Free space of one logical disk through ``Win32_LogicalDisk`` over a CIM session."""

    def __init__(self, credential: Credential | None = None, timeout_s: int = 120) -> None:
        self.credential = credential
        self.timeout_s = int(timeout_s)

    def command(self, host: str, drive: str) -> str:
        session = f"New-CimSession -ComputerName {quote(host)}"
        if self.credential is not None:
            session += f" -Credential {CREDENTIAL_VAR}"
        filt = quote(f"DeviceID='{drive}:'")
        return (
            "& { "
            f"$s = {session} -ErrorAction Stop; "
            "try { "
            f"Get-CimInstance -CimSession $s -ClassName Win32_LogicalDisk -Filter {filt} -ErrorAction Stop "
            "| Select-Object DeviceID, FreeSpace, Size "
            "} finally { Remove-CimSession $s } "
            "}"
        )

    def query(self, host: str, drive: str) -> HostDiskStatus:
        try:
            rows = ps_json(self.command(host, drive), timeout=self.timeout_s, credential=self.credential)
        except ToolkitError as e:
            raise DiskQueryError(f"{host}: CIM query failed: {e}") from e
        if not rows:
            raise DiskQueryError(f"{host}: drive {drive}: not found")
        row = rows[0]
        try:
            return build_status(host, drive, float(row["FreeSpace"]), float(row["Size"]))
        except (KeyError, TypeError, ValueError) as e:
            raise DiskQueryError(f"{host}: unexpected Win32_LogicalDisk row: {row}") from e


class DiskSpaceCollector:
    def __init__(
        self,
        threshold_percent: float = 10.0,
        drive: str = "C",
        local_query: DiskQuery | None = None,
        remote_query: DiskQuery | None = None,
    ) -> None:
        self.threshold_percent = float(threshold_percent)
        self.drive = drive
        self.local_query = local_query or LocalDiskQuery()
        self.remote_query = remote_query or CimDiskQuery()

    def query_host(self, host: str) -> HostDiskStatus:
        q = self.local_query if is_local_host(host) else self.remote_query
        return q.query(host, self.drive)

    def collect(self, hosts: Iterable[str]) -> CollectorResult[DiskScanData]:
        ts = datetime.now()
        warnings: list[str] = []
        rows: list[HostDiskStatus] = []
        skipped: list[str] = []

        for host in hosts:
            try:
                status = self.query_host(host)
            except ToolkitError as e:
                logger.warning("Skipping %s: %s", host, e)
                warnings.append(f"Query failed: {host}: {e}")
                skipped.append(host)
                continue

            rows.append(status)
            if status.flagged(self.threshold_percent):
                logger.warning(
                    "%s %s: %.1f%% free (%.2f/%.2f GB) is below %.1f%%",
                    host,
                    status.drive,
                    status.percent_free,
                    status.free_gb,
                    status.total_gb,
                    self.threshold_percent,
                )
                warnings.append(
                    f"Low disk space: {host} {status.percent_free:.1f}% (< {self.threshold_percent:.0f}%)"
                )
            else:
                logger.info("%s %s: %.1f%% free", host, status.drive, status.percent_free)

        flagged = [r for r in rows if r.flagged(self.threshold_percent)]
        status_str = "OK" if not warnings else "WARN"
        data = DiskScanData(
            hosts=rows,
            flagged=flagged,
            skipped=skipped,
            threshold_percent=self.threshold_percent,
        )
        return CollectorResult(
            ts=ts,
            status=status_str,
            warning_count=len(warnings),
            warnings=warnings,
            data=data,
        )
