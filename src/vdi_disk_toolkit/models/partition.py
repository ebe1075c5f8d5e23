from __future__ import annotations

from dataclasses import dataclass

from vdi_disk_toolkit.models.common import GB

RECOVERY_GPT_TYPE = "{de94bba4-06d1-4d40-a16a-bfd50179d6ac}"
RECOVERY_MBR_TYPE = 0x27

STATUS_EXTENDED = "extended"
STATUS_NOTHING_TO_DO = "nothing-to-do"


@dataclass(frozen=True)
class PartitionInfo:
    disk_number: int
    partition_number: int
    offset: int
    size: int
    type: str
    drive_letter: str = ""
    gpt_type: str = ""
    mbr_type: int | None = None

    @property
    def is_recovery(self) -> bool:
        if self.type.strip().lower() == "recovery":
            return True
        if self.gpt_type and self.gpt_type.strip().lower() == RECOVERY_GPT_TYPE:
            return True
        return self.mbr_type == RECOVERY_MBR_TYPE

    @property
    def size_gb(self) -> float:
        return self.size / GB

    @property
    def end(self) -> int:
        return self.offset + self.size

    def label(self) -> str:
        letter = f" ({self.drive_letter}:)" if self.drive_letter else ""
        return f"disk {self.disk_number} partition {self.partition_number}{letter} [{self.type}]"


@dataclass(frozen=True)
class SupportedSize:
    min_bytes: int
    max_bytes: int


@dataclass(frozen=True)
class PartitionLayout:
    system: PartitionInfo
    partitions: list[PartitionInfo]


@dataclass(frozen=True)
class ExpansionResult:
    drive: str
    size_before: int
    size_after: int
    status: str
    removed_recovery: PartitionInfo | None
    message: str

    @property
    def gained_bytes(self) -> int:
        return self.size_after - self.size_before
