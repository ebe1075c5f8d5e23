from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from vdi_disk_toolkit.services.log_rotate_service import LogRotateService, RotateResult

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)-7s %(message)s"


@dataclass
class RunLog:
    """Handlers attached to the root logger for one run."""

    path: Path
    rotation: RotateResult
    handlers: list[logging.Handler] = field(default_factory=list)

    def close(self) -> None:
        root = logging.getLogger()
        for h in self.handlers:
            root.removeHandler(h)
            h.close()
        self.handlers.clear()


def open_run_log(
    log_dir: Path,
    name: str,
    *,
    verbose: bool = False,
    max_mb: int = 10,
    keep_archives: int = 5,
) -> RunLog:
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / name
    rotation = LogRotateService(
        max_bytes=int(max_mb) * 1024 * 1024,
        keep_archives=keep_archives,
    ).rotate_if_needed(path)

    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.addHandler(console)

    run_log = RunLog(path=path, rotation=rotation, handlers=[file_handler, console])
    if rotation.rotated:
        logging.getLogger(__name__).info("Previous log archived to %s", rotation.archived_path)
    return run_log
