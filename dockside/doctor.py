"""
Environment diagnostics behind `dockside doctor`.

Answers one question: can dockside start containers here with the current
DOCKSIDE_* settings? Only the runtime those settings select is checked:
the CLI for auto/docker/podman, the engine socket for http.
"""
from __future__ import annotations

import importlib.util
import os
import stat
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, computed_field

from dockside import telemetry
from dockside.clients import detect
from dockside.config import Settings
from dockside.exceptions import DocksideConfigError, RuntimeClientError

Level = Literal["ok", "warning", "error"]


class Finding(BaseModel):
    check: str
    level: Level
    summary: str
    details: Dict[str, Any] = Field(default_factory=dict)


class Diagnosis(BaseModel):
    findings: List[Finding] = Field(default_factory=list)

    def count(self, level: Level) -> int:
        return sum(1 for finding in self.findings if finding.level == level)

    @computed_field
    @property
    def healthy(self) -> bool:
        """No finding stops dockside from starting containers."""
        return self.count("error") == 0


def check_settings() -> Tuple[Optional[Settings], Finding]:
    try:
        settings = Settings()
    except DocksideConfigError as e:
        return None, Finding(
            check="settings", level="error", summary=e.message, details=e.details
        )

    details = {"cleanup": settings.cleanup.value, "runtime": settings.runtime}
    if settings.keep_containers:
        finding = Finding(
            check="settings",
            level="warning",
            summary="DOCKSIDE_CLEANUP=keep leaves every container running after use",
            details=details,
        )
    else:
        finding = Finding(
            check="settings",
            level="ok",
            summary=f"cleanup={settings.cleanup.value} runtime={settings.runtime}",
            details=details,
        )
    return settings, finding


def check_cli(runtime: Optional[detect.ContainerRuntime] = None) -> Finding:
    """The docker/podman CLI a CliClient would drive; None auto-detects."""
    if runtime is None:
        try:
            runtime = detect.detect_runtime()
        except RuntimeClientError as e:
            return Finding(check="runtime_cli", level="error", summary=e.message)
    elif not detect.runtime_available(runtime):
        return Finding(
            check="runtime_cli",
            level="error",
            summary=f"{runtime.value} is missing or cannot reach its engine",
            details={"runtime": runtime.value},
        )
    return Finding(
        check="runtime_cli",
        level="ok",
        summary=f"{runtime.value} reaches its engine",
        details={"runtime": runtime.value},
    )


def check_socket(path: str) -> Finding:
    """The Docker Engine socket an HttpClient would connect to."""
    try:
        mode = os.stat(path).st_mode
    except OSError as e:
        return Finding(
            check="engine_socket",
            level="error",
            summary=f"{path}: {e.strerror}",
            details={"path": path},
        )
    if not stat.S_ISSOCK(mode):
        return Finding(
            check="engine_socket",
            level="error",
            summary=f"{path} is not a unix socket",
            details={"path": path},
        )
    return Finding(
        check="engine_socket", level="ok", summary=f"{path}", details={"path": path}
    )


def check_telemetry() -> Finding:
    if importlib.util.find_spec("logfire") is None:
        summary = "logfire not installed, lifecycle spans off"
    elif telemetry.enabled():
        summary = "logfire spans on"
    else:
        summary = "logfire installed, spans off (DOCKSIDE_LOGFIRE)"
    return Finding(check="telemetry", level="ok", summary=summary)


def diagnose() -> Diagnosis:
    settings, finding = check_settings()
    findings = [finding]
    if settings is not None:
        if settings.runtime == "http":
            findings.append(check_socket(settings.docker_socket))
        elif settings.runtime == "auto":
            findings.append(check_cli())
        else:
            findings.append(check_cli(detect.ContainerRuntime(settings.runtime)))
    findings.append(check_telemetry())
    return Diagnosis(findings=findings)


_MARKS = {"ok": "ok", "warning": "!!", "error": "XX"}


def render(diagnosis: Diagnosis, verbose: bool = False) -> str:
    lines = []
    for finding in diagnosis.findings:
        lines.append(f"[{_MARKS[finding.level]}] {finding.check}: {finding.summary}")
        if verbose:
            for key, value in sorted(finding.details.items()):
                lines.append(f"     {key}: {value}")
    lines.append(
        f"{'healthy' if diagnosis.healthy else 'unhealthy'}: "
        f"{diagnosis.count('error')} errors, {diagnosis.count('warning')} warnings"
    )
    return "\n".join(lines)
