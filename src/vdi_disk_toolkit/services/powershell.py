from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Any

from vdi_disk_toolkit.errors import PowerShellError

logger = logging.getLogger(__name__)

PASSWORD_ENV = "VDI_DISK_TOOLKIT_PS_PASSWORD"
CREDENTIAL_VAR = "$toolkitCred"


@dataclass(frozen=True)
class Credential:
    username: str
    password: str = field(repr=False)

    def prelude(self) -> str:
        """PowerShell lines defining ``$toolkitCred`` from the child environment."""
        return (
            f"$toolkitPw = ConvertTo-SecureString $env:{PASSWORD_ENV} -AsPlainText -Force; "
            f"{CREDENTIAL_VAR} = New-Object System.Management.Automation.PSCredential("
            f"{quote(self.username)}, $toolkitPw); "
        )

    def env(self) -> dict[str, str]:
        return {PASSWORD_ENV: self.password}


def quote(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def run_ps(
    command: str,
    *,
    timeout: int = 120,
    credential: Credential | None = None,
) -> str:
    """Run a PowerShell command and return stdout.

    Raises PowerShellError when powershell is missing, times out or exits
    non-zero.
    """
    env = None
    if credential is not None:
        command = credential.prelude() + command
        env = {**os.environ, **credential.env()}

    logger.debug("powershell: %s", command)
    try:
        r = subprocess.run(
            ["powershell", "-NoProfile", "-NonInteractive", "-Command", command],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
    except FileNotFoundError as e:
        raise PowerShellError("powershell executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise PowerShellError(f"powershell timed out after {timeout}s") from e

    if r.returncode != 0:
        stderr = (r.stderr or "").strip()
        raise PowerShellError(
            f"powershell exited with {r.returncode}: {stderr or '(no stderr)'}",
            returncode=r.returncode,
            stderr=stderr,
        )
    return (r.stdout or "").strip()


def ps_json(
    command: str,
    *,
    timeout: int = 120,
    credential: Credential | None = None,
) -> list[dict[str, Any]]:
    """Run a PowerShell command that outputs objects, return them as a list of dicts."""
    raw = run_ps(
        f"{command} | ConvertTo-Json -Compress -Depth 4",
        timeout=timeout,
        credential=credential,
    )
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PowerShellError(f"unparseable powershell output: {raw[:200]}") from e
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    return []
