from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from vdi_disk_toolkit.collectors.disk_space_collector import DiskSpaceCollector
from vdi_disk_toolkit.errors import ToolkitError
from vdi_disk_toolkit.models.common import CollectorResult
from vdi_disk_toolkit.models.disk import CleanupResult, DiskScanData
from vdi_disk_toolkit.services.cleanup_service import CleanupService

logger = logging.getLogger(__name__)


@dataclass
class FleetRun:
    scan: CollectorResult[DiskScanData]
    cleanups: list[CleanupResult] = field(default_factory=list)
    failed_hosts: list[str] = field(default_factory=list)


class FleetCleanup:
    """Scan hosts, clean the ones below threshold, then re-scan those."""

    def __init__(self, collector: DiskSpaceCollector, cleaner: CleanupService | None) -> None:
        self.collector = collector
        self.cleaner = cleaner

    def run(self, hosts: Iterable[str]) -> FleetRun:
        scan = self.collector.collect(hosts)
        run = FleetRun(scan=scan)
        if self.cleaner is None:
            return run

        for before in scan.data.flagged:
            try:
                result = self.cleaner.clean_host(before.host)
            except (ToolkitError, OSError) as e:
                logger.warning("Cleanup skipped for %s: %s", before.host, e)
                run.failed_hosts.append(before.host)
                continue

            result.before = before
            try:
                result.after = self.collector.query_host(before.host)
            except ToolkitError as e:
                logger.warning("Re-query failed for %s: %s", before.host, e)
            else:
                logger.info(
                    "%s: %.1f%% -> %.1f%% free (%.2f -> %.2f GB)",
                    before.host,
                    before.percent_free,
                    result.after.percent_free,
                    before.free_gb,
                    result.after.free_gb,
                )
            run.cleanups.append(result)
        return run
