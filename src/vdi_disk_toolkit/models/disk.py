from __future__ import annotations

from dataclasses import dataclass, field

from vdi_disk_toolkit.models.common import MB

STATUS_FREED = "freed"
STATUS_EMPTY = "empty"
STATUS_FAILED = "failed"
STATUS_DRY_RUN = "dry-run"


@dataclass(frozen=True)
class HostDiskStatus:
    host: str
    drive: str
    percent_free: float
    free_gb: float
    total_gb: float

    def flagged(self, threshold_percent: float) -> bool:
        return self.percent_free < threshold_percent


@dataclass(frozen=True)
class DiskScanData:
    hosts: list[HostDiskStatus]
    flagged: list[HostDiskStatus]
    skipped: list[str]
    threshold_percent: float


@dataclass(frozen=True)
class PathCleanup:
    pattern: str
    target: str
    size_bytes: int
    freed_bytes: int
    status: str
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != STATUS_FAILED


@dataclass
class CleanupResult:
    host: str
    outcomes: list[PathCleanup] = field(default_factory=list)
    before: HostDiskStatus | None = None
    after: HostDiskStatus | None = None
    dry_run: bool = False

    @property
    def freed_bytes(self) -> int:
        return sum(o.freed_bytes for o in self.outcomes)

    @property
    def freed_mb(self) -> float:
        return self.freed_bytes / MB

    @property
    def reclaimable_bytes(self) -> int:
        return sum(o.size_bytes for o in self.outcomes if o.status == STATUS_DRY_RUN)

    @property
    def failures(self) -> list[PathCleanup]:
        return [o for o in self.outcomes if not o.ok]
