from __future__ import annotations

from typing import Optional

from .utils import CommandError


class ReleaseError(RuntimeError):
    """Base class for every failure that halts the release pipeline."""

    stage = "release"

    def __init__(self, message: str, *, command_error: Optional[CommandError] = None) -> None:
        super().__init__(message)
        self.command_error = command_error

    @property
    def diagnostics(self) -> str:
        """Message plus any captured subprocess output, verbatim."""

        parts = [str(self)]
        if self.command_error is not None:
            if self.command_error.stdout:
                parts.append(self.command_error.stdout.rstrip("\n"))
            if self.command_error.stderr:
                parts.append(self.command_error.stderr.rstrip("\n"))
        return "\n".join(parts)


class ConfigError(ReleaseError):
    """Raised when the pinned revision or release configuration is invalid."""

    stage = "resolve"


class FetchError(ReleaseError):
    """Raised when the source archive cannot be downloaded."""

    stage = "fetch"


class ExtractError(ReleaseError):
    """Raised when a downloaded archive cannot be unpacked into a workspace."""

    stage = "fetch"


class BuildError(ReleaseError):
    """Raised when the toolchain fails or leaves no artifact behind."""

    stage = "build"


class PackageError(ReleaseError):
    """Raised when the artifact cannot be published into the release directory."""

    stage = "package"


class StripError(PackageError):
    """Raised when symbol stripping rejects the packaged binary."""
