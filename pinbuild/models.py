from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .errors import ConfigError

DEFAULT_PROJECT = "camshaft/wasp"
DEFAULT_ARCHIVE_HOST = "https://github.com"
DEFAULT_REVISION = "9cc5cbd1134744de4c805f5f685dd03599e07c6f"
DEFAULT_BINARY_NAME = "wasp"
DEFAULT_TOOLCHAIN_COMMAND = ["cargo", "build", "--release"]
DEFAULT_ARTIFACT = "target/release/wasp-cli"
DEFAULT_STRIP_COMMAND = ["strip"]

_REVISION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_PROJECT_RE = re.compile(r"^[A-Za-z0-9_.-]+(?:/[A-Za-z0-9_.-]+)*$")


@dataclass(frozen=True)
class PinnedRevision:
    """Exact, immutable reference to an upstream source snapshot."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not _REVISION_RE.match(self.value):
            raise ConfigError(f"Invalid pinned revision: {self.value!r}")

    def __str__(self) -> str:
        return self.value


def _string_list(data: Dict[str, Any], key: str, default: List[str]) -> List[str]:
    value = data.get(key, default)
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, list) or not value or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"'{key}' must be a non-empty list of strings")
    return list(value)


def _string(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a non-empty string")
    return value.strip()


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


@dataclass
class ToolchainConfig:
    """How the upstream project is compiled and where its artifact lands."""

    command: List[str] = field(default_factory=lambda: list(DEFAULT_TOOLCHAIN_COMMAND))
    artifact: str = DEFAULT_ARTIFACT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolchainConfig":
        artifact = _string(data, "artifact", DEFAULT_ARTIFACT)
        if Path(artifact).is_absolute() or ".." in Path(artifact).parts:
            raise ConfigError(f"Artifact path must be relative to the workspace: {artifact}")
        return cls(
            command=_string_list(data, "command", DEFAULT_TOOLCHAIN_COMMAND),
            artifact=artifact,
        )


@dataclass
class ReleaseConfig:
    """Release settings sourced from the config file and environment."""

    project: str = DEFAULT_PROJECT
    archive_host: str = DEFAULT_ARCHIVE_HOST
    revision: PinnedRevision = field(default_factory=lambda: PinnedRevision(DEFAULT_REVISION))
    binary_name: str = DEFAULT_BINARY_NAME
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    strip_command: List[str] = field(default_factory=lambda: list(DEFAULT_STRIP_COMMAND))

    @property
    def project_name(self) -> str:
        return self.project.rsplit("/", 1)[-1]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReleaseConfig":
        project = _string(data, "project", DEFAULT_PROJECT).strip("/")
        if not _PROJECT_RE.match(project):
            raise ConfigError(f"Invalid project path: {project!r}")
        binary_name = _string(data, "binary_name", DEFAULT_BINARY_NAME)
        if "/" in binary_name or binary_name in {".", ".."}:
            raise ConfigError(f"Binary name must be a plain file name: {binary_name!r}")
        revision = data.get("revision", DEFAULT_REVISION)
        # Unquoted YAML scalars such as 0777 or 1_000 arrive as rewritten numbers.
        if not isinstance(revision, str):
            raise ConfigError(f"'revision' must be a string, quote it in the config file: {revision!r}")
        return cls(
            project=project,
            archive_host=_string(data, "archive_host", DEFAULT_ARCHIVE_HOST).rstrip("/"),
            revision=PinnedRevision(revision),
            binary_name=binary_name,
            toolchain=ToolchainConfig.from_dict(_section(data, "toolchain")),
            strip_command=_string_list(_section(data, "strip"), "command", DEFAULT_STRIP_COMMAND),
        )


@dataclass(frozen=True)
class Workspace:
    """Extracted source tree for one pinned revision."""

    revision: PinnedRevision
    root: Path
    source_dir: Path


@dataclass(frozen=True)
class BuildArtifact:
    """Binary produced by the toolchain inside a workspace."""

    workspace: Workspace
    path: Path


@dataclass(frozen=True)
class PackagedBinary:
    """Stripped binary published into the release directory."""

    path: Path
    sha256: str
    size_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {"path": str(self.path), "sha256": self.sha256, "size_bytes": self.size_bytes}


@dataclass
class StageResult:
    """Summary emitted by a pipeline stage."""

    name: str
    status: str
    details: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.name, "status": self.status, "details": self.details}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageResult":
        return cls(
            name=data.get("stage", ""),
            status=data.get("status", "unknown"),
            details=data.get("details", {}),
        )
