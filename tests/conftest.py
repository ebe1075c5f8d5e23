"""Shared fakes for the test suite.

Nothing here touches PowerShell, diskpart or a real Windows host: disk queries
and partition tables are served from in-memory data.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import replace

import pytest

from vdi_disk_toolkit.errors import DiskQueryError, PartitionError
from vdi_disk_toolkit.models.common import GB, MB
from vdi_disk_toolkit.models.disk import HostDiskStatus
from vdi_disk_toolkit.models.partition import PartitionInfo, SupportedSize

LOCAL_NAME = "admin-ws"


@pytest.fixture(autouse=True)
def fixed_hostname(monkeypatch):
    monkeypatch.setattr(socket, "gethostname", lambda: LOCAL_NAME)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


class FakeDiskQuery:
    """Answers with a percent-free per host; a list is consumed one answer per call."""

    def __init__(self, values: dict, total_gb: float = 100.0) -> None:
        self.values = {k: (list(v) if isinstance(v, list) else v) for k, v in values.items()}
        self.total_gb = total_gb
        self.calls: list[str] = []

    def query(self, host: str, drive: str) -> HostDiskStatus:
        self.calls.append(host)
        if host not in self.values:
            raise DiskQueryError(f"{host}: unreachable")
        v = self.values[host]
        if isinstance(v, list):
            v = v.pop(0) if len(v) > 1 else v[0]
        if isinstance(v, Exception):
            raise v
        return HostDiskStatus(
            host=host,
            drive=drive,
            percent_free=float(v),
            free_gb=self.total_gb * float(v) / 100.0,
            total_gb=self.total_gb,
        )


class FakeDiskManager:
    """In-memory partition table of one disk."""

    def __init__(self, partitions: list[PartitionInfo], disk_size: int) -> None:
        self.partitions = {p.partition_number: p for p in partitions}
        self.disk_size = disk_size
        self.calls: list[tuple] = []
        self.fail_on: str | None = None

    def _maybe_fail(self, op: str) -> None:
        if self.fail_on == op:
            raise PartitionError(f"{op} failed")

    def get_partition(self, drive: str) -> PartitionInfo:
        self._maybe_fail("get_partition")
        for p in self.partitions.values():
            if p.drive_letter == drive:
                return p
        raise PartitionError(f"no partition carries drive letter {drive}:")

    def list_partitions(self, disk_number: int) -> list[PartitionInfo]:
        return sorted(self.partitions.values(), key=lambda p: p.offset)

    def supported_size(self, disk_number: int, partition_number: int) -> SupportedSize:
        self.calls.append(("supported_size", partition_number))
        p = self.partitions[partition_number]
        following = [q.offset for q in self.partitions.values() if q.offset > p.offset]
        limit = min(following) if following else self.disk_size
        return SupportedSize(min_bytes=p.size // 2, max_bytes=limit - p.offset)

    def delete_partition(self, disk_number: int, partition_number: int) -> None:
        self.calls.append(("delete", partition_number))
        self._maybe_fail("delete")
        del self.partitions[partition_number]

    def refresh(self, disk_number: int) -> None:
        self.calls.append(("refresh", disk_number))

    def resize_partition(self, disk_number: int, partition_number: int, size: int) -> None:
        self.calls.append(("resize", partition_number, size))
        self._maybe_fail("resize")
        self.partitions[partition_number] = replace(self.partitions[partition_number], size=size)


def gpt_layout(system_gb: int = 59, recovery: bool = True) -> list[PartitionInfo]:
    efi = PartitionInfo(disk_number=0, partition_number=1, offset=1 * MB, size=100 * MB, type="System")
    msr = PartitionInfo(disk_number=0, partition_number=2, offset=101 * MB, size=16 * MB, type="Reserved")
    c = PartitionInfo(
        disk_number=0,
        partition_number=3,
        offset=117 * MB,
        size=system_gb * GB,
        type="Basic",
        drive_letter="C",
    )
    parts = [efi, msr, c]
    if recovery:
        parts.append(
            PartitionInfo(
                disk_number=0,
                partition_number=4,
                offset=c.end,
                size=500 * MB,
                type="Recovery",
                gpt_type="{de94bba4-06d1-4d40-a16a-bfd50179d6ac}",
            )
        )
    return parts


@pytest.fixture
def make_manager():
    def _make(recovery: bool = True, disk_gb: int = 80, system_gb: int = 59) -> FakeDiskManager:
        return FakeDiskManager(gpt_layout(system_gb=system_gb, recovery=recovery), disk_size=disk_gb * GB)

    return _make
