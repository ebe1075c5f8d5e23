from __future__ import annotations

from datetime import datetime

from vdi_disk_toolkit.models.common import GB, MB
from vdi_disk_toolkit.models.disk import STATUS_FAILED, CleanupResult
from vdi_disk_toolkit.models.partition import ExpansionResult
from vdi_disk_toolkit.services.fleet_service import FleetRun


class ReportService:
    def build_cleanup_report(self, run: FleetRun) -> str:
        now = datetime.now().strftime("%F %T")
        lines: list[str] = [f"Disk cleanup report @ {now}", ""]
        lines.append(self._section_scan(run))
        for c in run.cleanups:
            lines.append(self._section_host(c))
        if run.failed_hosts:
            lines.append("[Cleanup skipped]\n" + "".join(f"- {h}\n" for h in run.failed_hosts))
        return "\n".join(lines).strip() + "\n"

    def build_expansion_report(self, r: ExpansionResult) -> str:
        removed = r.removed_recovery.label() if r.removed_recovery else "(none)"
        return (
            f"[Volume {r.drive}:]\n"
            f"- status: {r.status}\n"
            f"- size_before: {r.size_before / GB:.2f} GB\n"
            f"- size_after: {r.size_after / GB:.2f} GB\n"
            f"- gained: {r.gained_bytes / GB:.2f} GB\n"
            f"- removed_recovery: {removed}\n"
        )

    def _section_scan(self, run: FleetRun) -> str:
        d = run.scan.data
        flagged = ", ".join(h.host for h in d.flagged) if d.flagged else "(none)"
        skipped = ", ".join(d.skipped) if d.skipped else "(none)"
        return (
            "[Scan]\n"
            f"- ts: {run.scan.ts:%F %T}\n"
            f"- status: {run.scan.status} (warnings={run.scan.warning_count})\n"
            f"- threshold: {d.threshold_percent:.1f}% free\n"
            f"- hosts_scanned: {len(d.hosts)}\n"
            f"- flagged: {flagged}\n"
            f"- skipped: {skipped}\n"
        )

    def _section_host(self, c: CleanupResult) -> str:
        before = f"{c.before.percent_free:.1f}% ({c.before.free_gb:.2f} GB)" if c.before else "n/a"
        after = f"{c.after.percent_free:.1f}% ({c.after.free_gb:.2f} GB)" if c.after else "n/a"
        if c.dry_run:
            tally = f"- reclaimable: {c.reclaimable_bytes / MB:.2f} MB\n"
        else:
            tally = f"- freed: {c.freed_mb:.2f} MB\n"
        failures = "".join(
            f"  - {o.target}: {o.message}\n" for o in c.outcomes if o.status == STATUS_FAILED
        )
        return (
            f"[{c.host}]\n"
            f"- free_before: {before}\n"
            f"- free_after: {after}\n"
            f"{tally}"
            f"- failed_paths: {len(c.failures)}\n"
            f"{failures}"
        )
