"""Tests for the JSON config file and ToolkitConfig defaults."""

import json
from pathlib import Path

import pytest

from vdi_disk_toolkit.errors import ConfigError
from vdi_disk_toolkit.services.config_service import (
    DEFAULT_CANDIDATE_PATHS,
    ConfigPaths,
    ConfigService,
    ToolkitConfig,
)


def test_default_path_honours_xdg(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert ConfigService.default_path() == tmp_path / "vdi_disk_toolkit" / "config.json"


def test_missing_file_gives_defaults(tmp_path):
    svc = ConfigService(ConfigPaths(path=tmp_path / "nope.json"))
    assert svc.load() == {}
    cfg = svc.load_config()
    assert cfg.threshold_percent == 10.0
    assert cfg.drive == "C"
    assert cfg.candidate_paths == list(DEFAULT_CANDIDATE_PATHS)


def test_malformed_file_gives_defaults(tmp_path):
    p = tmp_path / "config.json"
    p.write_text("{not json", encoding="utf-8")
    assert ConfigService(ConfigPaths(path=p)).load() == {}


def test_save_then_load(tmp_path):
    p = tmp_path / "sub" / "config.json"
    svc = ConfigService(ConfigPaths(path=p))
    svc.save({"threshold_percent": 15, "hosts": ["vdi-001", "vdi-002"]})

    assert json.loads(p.read_text(encoding="utf-8"))["threshold_percent"] == 15
    cfg = svc.load_config()
    assert cfg.threshold_percent == 15.0
    assert cfg.hosts == ["vdi-001", "vdi-002"]
    assert not p.with_suffix(".json.tmp").exists()


def test_overrides_win_and_none_is_ignored(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"threshold_percent": 20, "drive": "d:"}), encoding="utf-8")
    cfg = ConfigService(ConfigPaths(path=p)).load_config(threshold_percent=5, drive=None)
    assert cfg.threshold_percent == 5.0
    assert cfg.drive == "D"


def test_log_dir_expands_user():
    cfg = ToolkitConfig.from_dict({"log_dir": "~/vdi-logs"})
    assert cfg.log_dir == Path("~/vdi-logs").expanduser()


@pytest.mark.parametrize(
    "raw",
    [
        {"threshold_percent": "lots"},
        {"threshold_percent": 0},
        {"threshold_percent": 150},
        {"drive": "CD"},
        {"log_max_mb": "ten"},
        {"hosts": "vdi-001"},
        {"candidate_paths": "Windows/Temp/*"},
        {"candidate_paths": [""]},
        {"candidate_paths": ["   "]},
        {"candidate_paths": ["C:/Windows/Temp/*"]},
        {"candidate_paths": ["\\Windows\\Temp\\*"]},
        {"candidate_paths": ["/Windows/Temp/*"]},
        {"candidate_paths": ["Windows/../../*"]},
    ],
)
def test_invalid_values(raw):
    with pytest.raises(ConfigError):
        ToolkitConfig.from_dict(raw)


def test_string_hosts_are_rejected_not_split():
    with pytest.raises(ConfigError, match="hosts must be a list"):
        ToolkitConfig.from_dict({"hosts": "vdi-001"})


def test_relative_candidate_paths_are_kept():
    cfg = ToolkitConfig.from_dict({"candidate_paths": [" Windows/Temp/* ", "Users\\*\\AppData\\Local\\Temp\\*"]})
    assert cfg.candidate_paths == ["Windows/Temp/*", "Users\\*\\AppData\\Local\\Temp\\*"]
