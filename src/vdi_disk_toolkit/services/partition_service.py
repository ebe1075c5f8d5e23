from __future__ import annotations

import logging

from vdi_disk_toolkit.collectors.partition_collector import (
    DiskManager,
    PartitionCollector,
    find_recovery_after,
)
from vdi_disk_toolkit.models.common import GB, MB
from vdi_disk_toolkit.models.partition import (
    STATUS_EXTENDED,
    STATUS_NOTHING_TO_DO,
    ExpansionResult,
)

logger = logging.getLogger(__name__)


class PartitionExpander:
    """Removes the recovery partition behind a volume and grows the volume into the space.

    Every step raises on failure; nothing is rolled back. Callers treat any
    exception as fatal.
    """

    def __init__(self, manager: DiskManager, min_extend_mb: int = 1) -> None:
        self.manager = manager
        self.collector = PartitionCollector(manager)
        self.min_extend_bytes = int(min_extend_mb) * MB

    def expand(self, drive: str = "C") -> ExpansionResult:
        layout = self.collector.collect(drive)
        for w in layout.warnings:
            logger.warning(w)

        system = layout.data.system
        size_before = system.size
        logger.info("%s: %s is %.2f GB", drive, system.label(), system.size_gb)

        recovery = find_recovery_after(system, layout.data.partitions)
        if recovery is not None:
            logger.info("Deleting recovery partition %s (%.2f GB)", recovery.label(), recovery.size_gb)
            self.manager.delete_partition(recovery.disk_number, recovery.partition_number)
            self.manager.refresh(system.disk_number)
        else:
            logger.info("No recovery partition follows %s", system.label())

        supported = self.manager.supported_size(system.disk_number, system.partition_number)
        logger.info(
            "%s: supported size %.2f-%.2f GB", drive, supported.min_bytes / GB, supported.max_bytes / GB
        )

        if supported.max_bytes - size_before < self.min_extend_bytes:
            msg = f"{drive}: no unallocated space to extend into, nothing to do"
            logger.info(msg)
            return ExpansionResult(
                drive=drive,
                size_before=size_before,
                size_after=size_before,
                status=STATUS_NOTHING_TO_DO,
                removed_recovery=recovery,
                message=msg,
            )

        logger.info("Extending %s to %.2f GB", system.label(), supported.max_bytes / GB)
        self.manager.resize_partition(system.disk_number, system.partition_number, supported.max_bytes)

        after = self.manager.get_partition(drive)
        msg = f"{drive}: extended from {size_before / GB:.2f} GB to {after.size / GB:.2f} GB"
        logger.info(msg)
        return ExpansionResult(
            drive=drive,
            size_before=size_before,
            size_after=after.size,
            status=STATUS_EXTENDED,
            removed_recovery=recovery,
            message=msg,
        )
