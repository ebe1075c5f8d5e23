from __future__ import annotations


class ToolkitError(Exception):
    pass


class ConfigError(ToolkitError):
    pass


class PowerShellError(ToolkitError):
    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class DiskQueryError(ToolkitError):
    pass


class PartitionError(ToolkitError):
    pass
