from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path, PureWindowsPath
from typing import Any

from vdi_disk_toolkit.errors import ConfigError

# Globs relative to the root of the scanned drive.
DEFAULT_CANDIDATE_PATHS: tuple[str, ...] = (
    "Windows/Temp/*",
    "Windows/SoftwareDistribution/Download/*",
    "Windows/Logs/CBS/*.log",
    "Windows/Minidump/*",
    "Windows/MEMORY.DMP",
    "ProgramData/Microsoft/Windows/WER/ReportArchive/*",
    "ProgramData/Microsoft/Windows/WER/ReportQueue/*",
    "Users/*/AppData/Local/Temp/*",
    "Users/*/AppData/Local/CrashDumps/*",
    "Users/*/AppData/Local/Microsoft/Windows/INetCache/*",
    "Users/*/AppData/Local/Microsoft/Windows/WER/*",
)


def _str_list(raw: dict[str, Any], key: str, default: list[str]) -> list[str]:
    value = raw.get(key, default)
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


def _candidate(pattern: str) -> str:
    if not pattern.strip():
        raise ConfigError("candidate_paths entries must not be empty")
    p = PureWindowsPath(pattern.strip())
    if p.drive or p.root:
        raise ConfigError(f"candidate_paths entries must be relative to the drive root: {pattern!r}")
    if ".." in p.parts:
        raise ConfigError(f"candidate_paths entries must not leave the drive root: {pattern!r}")
    return pattern.strip()


@dataclass(frozen=True)
class ConfigPaths:
    path: Path


@dataclass(frozen=True)
class ToolkitConfig:
    threshold_percent: float = 10.0
    drive: str = "C"
    hosts: list[str] = field(default_factory=list)
    candidate_paths: list[str] = field(default_factory=lambda: list(DEFAULT_CANDIDATE_PATHS))
    share_template: str = "\\\\{host}\\{drive}$"
    log_dir: Path = field(default_factory=lambda: Path.home() / "vdi_disk_toolkit_logs")
    log_max_mb: int = 10
    log_keep_archives: int = 5
    command_timeout_s: int = 120
    min_extend_mb: int = 1

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ToolkitConfig":
        base = cls()
        try:
            threshold = float(raw.get("threshold_percent", base.threshold_percent))
            drive = str(raw.get("drive", base.drive)).rstrip(":\\/").upper()
            hosts = [h.strip() for h in _str_list(raw, "hosts", base.hosts) if h.strip()]
            candidates = [_candidate(p) for p in _str_list(raw, "candidate_paths", base.candidate_paths)]
            log_dir = Path(raw["log_dir"]).expanduser() if raw.get("log_dir") else base.log_dir
            cfg = cls(
                threshold_percent=threshold,
                drive=drive,
                hosts=hosts,
                candidate_paths=candidates,
                share_template=str(raw.get("share_template", base.share_template)),
                log_dir=log_dir,
                log_max_mb=int(raw.get("log_max_mb", base.log_max_mb)),
                log_keep_archives=int(raw.get("log_keep_archives", base.log_keep_archives)),
                command_timeout_s=int(raw.get("command_timeout_s", base.command_timeout_s)),
                min_extend_mb=int(raw.get("min_extend_mb", base.min_extend_mb)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid configuration value: {e}") from e

        if not 0 < cfg.threshold_percent <= 100:
            raise ConfigError(f"threshold_percent out of range: {cfg.threshold_percent}")
        if len(cfg.drive) != 1 or not cfg.drive.isalpha():
            raise ConfigError(f"drive must be a single letter: {cfg.drive!r}")
        return cfg


class ConfigService:
    def __init__(self, paths: ConfigPaths | None = None) -> None:
        self.paths = paths or ConfigPaths(path=self.default_path())

    @staticmethod
    def default_path() -> Path:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        if xdg:
            base = Path(xdg)
        else:
            base = Path.home() / ".config"
        return base / "vdi_disk_toolkit" / "config.json"

    def load(self) -> dict[str, Any]:
        p = self.paths.path
        if not p.exists():
            return {}
        try:
            with open(p, "r", encoding="utf-8") as f:
                obj = json.load(f)
            return obj if isinstance(obj, dict) else {}
        except (OSError, ValueError):
            return {}

    def load_config(self, **overrides: Any) -> ToolkitConfig:
        raw = self.load()
        raw.update({k: v for k, v in overrides.items() if v is not None})
        return ToolkitConfig.from_dict(raw)

    def save(self, cfg: dict[str, Any]) -> None:
        p = self.paths.path
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(p.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(cfg, f, ensure_ascii=False, indent=2, sort_keys=True)
        tmp.replace(p)
