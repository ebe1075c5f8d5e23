from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from vdi_disk_toolkit.errors import PartitionError, ToolkitError
from vdi_disk_toolkit.models.common import CollectorResult
from vdi_disk_toolkit.models.partition import PartitionInfo, PartitionLayout, SupportedSize
from vdi_disk_toolkit.services.powershell import CREDENTIAL_VAR, Credential, ps_json, quote, run_ps

logger = logging.getLogger(__name__)

PARTITION_FIELDS = "DiskNumber, PartitionNumber, DriveLetter, Offset, Size, Type, GptType, MbrType"


def _drive_letter(value: Any) -> str:
    if isinstance(value, int):
        return chr(value) if value else ""
    return str(value or "").replace("\x00", "").strip().upper()


def partition_from_row(row: dict[str, Any]) -> PartitionInfo:
    try:
        mbr = row.get("MbrType")
        return PartitionInfo(
            disk_number=int(row["DiskNumber"]),
            partition_number=int(row["PartitionNumber"]),
            offset=int(row["Offset"]),
            size=int(row["Size"]),
            type=str(row.get("Type") or ""),
            drive_letter=_drive_letter(row.get("DriveLetter")),
            gpt_type=str(row.get("GptType") or ""),
            mbr_type=int(mbr) if mbr not in (None, "") else None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PartitionError(f"unexpected Get-Partition row: {row}") from e


class DiskManager(Protocol):
    def get_partition(self, drive: str) -> PartitionInfo: ...

    def list_partitions(self, disk_number: int) -> list[PartitionInfo]: ...

    def supported_size(self, disk_number: int, partition_number: int) -> SupportedSize: ...

    def delete_partition(self, disk_number: int, partition_number: int) -> None: ...

    def refresh(self, disk_number: int) -> None: ...

    def resize_partition(self, disk_number: int, partition_number: int, size: int) -> None: ...


class WindowsDiskManager:
    """Storage cmdlets and diskpart, run locally or through ``Invoke-Command``."""

    def __init__(
        self,
        computer: str | None = None,
        credential: Credential | None = None,
        timeout_s: int = 120,
    ) -> None:
        self.computer = computer
        self.credential = credential
        self.timeout_s = int(timeout_s)

    def _wrap(self, script: str) -> str:
        if not self.computer:
            return script
        cmd = f"Invoke-Command -ComputerName {quote(self.computer)}"
        if self.credential is not None:
            cmd += f" -Credential {CREDENTIAL_VAR}"
        return f"{cmd} -ErrorAction Stop -ScriptBlock {{ {script} }}"

    def _json(self, script: str) -> list[dict[str, Any]]:
        try:
            return ps_json(self._wrap(script), timeout=self.timeout_s, credential=self.credential)
        except ToolkitError as e:
            raise PartitionError(str(e)) from e

    def _run(self, script: str) -> str:
        try:
            return run_ps(self._wrap(script), timeout=self.timeout_s, credential=self.credential)
        except ToolkitError as e:
            raise PartitionError(str(e)) from e

    def get_partition(self, drive: str) -> PartitionInfo:
        rows = self._json(
            f"Get-Partition -DriveLetter {quote(drive)} -ErrorAction Stop | Select-Object {PARTITION_FIELDS}"
        )
        if not rows:
            raise PartitionError(f"no partition carries drive letter {drive}:")
        return partition_from_row(rows[0])

    def list_partitions(self, disk_number: int) -> list[PartitionInfo]:
        rows = self._json(
            f"Get-Partition -DiskNumber {int(disk_number)} -ErrorAction Stop | Select-Object {PARTITION_FIELDS}"
        )
        return sorted((partition_from_row(r) for r in rows), key=lambda p: p.offset)

    def supported_size(self, disk_number: int, partition_number: int) -> SupportedSize:
        rows = self._json(
            f"Get-PartitionSupportedSize -DiskNumber {int(disk_number)} "
            f"-PartitionNumber {int(partition_number)} -ErrorAction Stop | Select-Object SizeMin, SizeMax"
        )
        if not rows:
            raise PartitionError(f"no supported size for disk {disk_number} partition {partition_number}")
        try:
            return SupportedSize(min_bytes=int(rows[0]["SizeMin"]), max_bytes=int(rows[0]["SizeMax"]))
        except (KeyError, TypeError, ValueError) as e:
            raise PartitionError(f"unexpected Get-PartitionSupportedSize row: {rows[0]}") from e

    def delete_partition(self, disk_number: int, partition_number: int) -> None:
        lines = [
            f"select disk {int(disk_number)}",
            f"select partition {int(partition_number)}",
            "delete partition override",
        ]
        script = (
            "$f = Join-Path $env:TEMP ('diskpart-' + [guid]::NewGuid().ToString() + '.txt'); "
            f"@({', '.join(quote(line) for line in lines)}) | Set-Content -Path $f -Encoding ASCII; "
            "try { $out = & diskpart.exe /s $f; $code = $LASTEXITCODE } finally { Remove-Item $f -Force }; "
            "$out | Out-String; "
            "if ($code -ne 0) { throw \"diskpart exited with $code\" }"
        )
        out = self._run(script)
        logger.debug("diskpart: %s", out)

    def refresh(self, disk_number: int) -> None:
        self._run(f"Update-Disk -Number {int(disk_number)} -ErrorAction Stop")

    def resize_partition(self, disk_number: int, partition_number: int, size: int) -> None:
        self._run(
            f"Resize-Partition -DiskNumber {int(disk_number)} -PartitionNumber {int(partition_number)} "
            f"-Size {int(size)} -ErrorAction Stop"
        )


def find_recovery_after(system: PartitionInfo, partitions: list[PartitionInfo]) -> PartitionInfo | None:
    following = [
        p for p in partitions if p.disk_number == system.disk_number and p.offset > system.offset
    ]
    if not following:
        return None
    nxt = min(following, key=lambda p: p.offset)
    return nxt if nxt.is_recovery else None


class PartitionCollector:
    def __init__(self, manager: DiskManager) -> None:
        self.manager = manager

    def collect(self, drive: str) -> CollectorResult[PartitionLayout]:
        ts = datetime.now()
        warnings: list[str] = []

        system = self.manager.get_partition(drive)
        partitions = self.manager.list_partitions(system.disk_number)
        for p in partitions:
            logger.info("  %s offset=%d size=%.2f GB", p.label(), p.offset, p.size_gb)

        adjacent = find_recovery_after(system, partitions)
        for p in partitions:
            if p.is_recovery and p != adjacent:
                warnings.append(f"Recovery partition not adjacent to {drive}: left in place: {p.label()}")

        return CollectorResult(
            ts=ts,
            status="OK" if not warnings else "WARN",
            warning_count=len(warnings),
            warnings=warnings,
            data=PartitionLayout(system=system, partitions=partitions),
        )
