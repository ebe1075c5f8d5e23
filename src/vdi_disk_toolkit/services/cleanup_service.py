from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from types import TracebackType

from vdi_disk_toolkit.collectors.disk_space_collector import is_local_host
from vdi_disk_toolkit.errors import PowerShellError, ToolkitError
from vdi_disk_toolkit.models.common import MB
from vdi_disk_toolkit.models.disk import (
    STATUS_DRY_RUN,
    STATUS_EMPTY,
    STATUS_FAILED,
    STATUS_FREED,
    CleanupResult,
    PathCleanup,
)
from vdi_disk_toolkit.services.powershell import PASSWORD_ENV, Credential, quote, run_ps

logger = logging.getLogger(__name__)


class ShareSession:
    """Maps an admin share with ``New-SmbMapping`` for the duration of a cleanup.

    The password reaches PowerShell through the child environment only.
    """

    def __init__(self, share: str, credential: Credential | None, timeout_s: int = 60) -> None:
        self.share = share
        self.credential = credential
        self.timeout_s = int(timeout_s)
        self._mapped = False

    def __enter__(self) -> "ShareSession":
        if self.credential is None:
            return self
        logger.debug("mapping %s as %s", self.share, self.credential.username)
        try:
            run_ps(
                f"New-SmbMapping -RemotePath {quote(self.share)} -UserName {quote(self.credential.username)} "
                f"-Password $env:{PASSWORD_ENV} -ErrorAction Stop | Out-Null",
                timeout=self.timeout_s,
                credential=self.credential,
            )
        except PowerShellError as e:
            raise ToolkitError(f"mapping {self.share} failed: {e}") from e
        self._mapped = True
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self._mapped:
            return
        self._mapped = False
        try:
            run_ps(
                f"Remove-SmbMapping -RemotePath {quote(self.share)} -Force -ErrorAction Stop",
                timeout=self.timeout_s,
            )
        except PowerShellError as e:
            logger.warning("unmapping %s failed: %s", self.share, e)


class CleanupService:
    def __init__(
        self,
        candidate_paths: list[str],
        drive: str = "C",
        share_template: str = "\\\\{host}\\{drive}$",
        local_root_template: str = "{drive}:\\",
        credential: Credential | None = None,
        dry_run: bool = False,
    ) -> None:
        self.candidate_paths = list(candidate_paths)
        self.drive = drive
        self.share_template = share_template
        self.local_root_template = local_root_template
        self.credential = credential
        self.dry_run = bool(dry_run)

    def root_for(self, host: str) -> Path:
        if is_local_host(host):
            return Path(self.local_root_template.format(drive=self.drive))
        return Path(self.share_template.format(host=host, drive=self.drive))

    def clean_host(self, host: str) -> CleanupResult:
        root = self.root_for(host)
        result = CleanupResult(host=host, dry_run=self.dry_run)
        credential = None if is_local_host(host) else self.credential

        with ShareSession(str(root), credential):
            try:
                reachable = root.exists()
            except OSError as e:
                raise ToolkitError(f"{host}: drive root not reachable: {root}: {e}") from e
            if not reachable:
                raise ToolkitError(f"{host}: drive root not reachable: {root}")
            for pattern in self.candidate_paths:
                outcome = self.clean_path(root, pattern)
                result.outcomes.append(outcome)
                self._log_outcome(host, outcome)

        logger.info(
            "%s: %s %.2f MB across %d paths (%d failed)",
            host,
            "reclaimable" if self.dry_run else "freed",
            (result.reclaimable_bytes if self.dry_run else result.freed_bytes) / MB,
            len(result.outcomes),
            len(result.failures),
        )
        return result

    def clean_path(self, root: Path, pattern: str) -> PathCleanup:
        target = str(root / pattern)
        size = 0
        matches: list[Path] = []
        try:
            matches = self._expand(root, pattern)
            size = sum(self._size_bytes(m) for m in matches)
            if size == 0:
                return PathCleanup(pattern=pattern, target=target, size_bytes=0, freed_bytes=0, status=STATUS_EMPTY)
            if self.dry_run:
                return PathCleanup(
                    pattern=pattern, target=target, size_bytes=size, freed_bytes=0, status=STATUS_DRY_RUN
                )
            for m in matches:
                self._remove(m)
        except Exception as e:  # noqa: BLE001
            remaining = sum(self._size_bytes(m) for m in matches if os.path.lexists(m))
            return PathCleanup(
                pattern=pattern,
                target=target,
                size_bytes=size,
                freed_bytes=max(0, size - remaining),
                status=STATUS_FAILED,
                message=str(e) or type(e).__name__,
            )
        return PathCleanup(pattern=pattern, target=target, size_bytes=size, freed_bytes=size, status=STATUS_FREED)

    def _expand(self, root: Path, pattern: str) -> list[Path]:
        return sorted(root.glob(pattern))

    def _size_bytes(self, p: Path) -> int:
        try:
            if p.is_symlink():
                return 0
            if p.is_file():
                return int(p.lstat().st_size)
        except OSError:
            return 0

        total = 0
        for dirpath, _dirnames, filenames in os.walk(p, followlinks=False):
            for fn in filenames:
                try:
                    total += int((Path(dirpath) / fn).lstat().st_size)
                except OSError:
                    continue
        return total

    def _remove(self, p: Path) -> None:
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p)
        else:
            p.unlink()

    def _log_outcome(self, host: str, o: PathCleanup) -> None:
        if o.status == STATUS_FAILED:
            logger.warning("%s: FAILED %s: %s (freed %.2f MB)", host, o.target, o.message, o.freed_bytes / MB)
        elif o.status == STATUS_FREED:
            logger.info("%s: freed %.2f MB from %s", host, o.freed_bytes / MB, o.target)
        elif o.status == STATUS_DRY_RUN:
            logger.info("%s: would free %.2f MB from %s", host, o.size_bytes / MB, o.target)
        else:
            logger.debug("%s: nothing at %s", host, o.target)
