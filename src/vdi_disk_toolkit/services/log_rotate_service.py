from __future__ import annotations

import gzip
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RotateResult:
    rotated: bool
    archived_path: str | None
    message: str


class LogRotateService:
    """Size-based rotation of a run log into gzipped archives."""

    def __init__(
        self,
        max_bytes: int = 10 * 1024 * 1024,
        keep_archives: int = 5,
        archive_dir_name: str = "archives",
    ) -> None:
        self.max_bytes = int(max_bytes)
        self.keep_archives = int(keep_archives)
        self.archive_dir_name = archive_dir_name

    def rotate_if_needed(self, log_path: str | Path) -> RotateResult:
        p = Path(log_path)
        if not p.is_file():
            return RotateResult(rotated=False, archived_path=None, message=f"no log yet: {p}")

        try:
            size = p.stat().st_size
        except OSError as e:
            return RotateResult(rotated=False, archived_path=None, message=f"stat failed: {e}")

        if size < self.max_bytes:
            return RotateResult(rotated=False, archived_path=None, message="below rotation size")

        ts = datetime.now().strftime("%Y%m%d-%H%M%S")
        archive_dir = p.parent / self.archive_dir_name
        archive_dir.mkdir(parents=True, exist_ok=True)
        seq = 0
        archived = archive_dir / f"{p.name}.{ts}-{seq:03d}.gz"
        while archived.exists():
            seq += 1
            archived = archive_dir / f"{p.name}.{ts}-{seq:03d}.gz"

        try:
            with open(p, "rb") as f_in, gzip.open(archived, "wb") as f_out:
                shutil.copyfileobj(f_in, f_out)
            p.unlink()
        except OSError as e:
            archived.unlink(missing_ok=True)
            return RotateResult(rotated=False, archived_path=None, message=f"archive failed: {e}")

        self._prune(archive_dir, p.name)
        return RotateResult(rotated=True, archived_path=str(archived), message="rotated")

    def _prune(self, archive_dir: Path, base_name: str) -> None:
        files = sorted(
            archive_dir.glob(f"{base_name}.*.gz"),
            key=lambda x: x.name,
            reverse=True,
        )
        for f in files[self.keep_archives :]:
            try:
                f.unlink()
            except OSError as e:
                logger.debug("could not prune %s: %s", f, e)
