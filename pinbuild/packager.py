from __future__ import annotations

import logging
import shutil
import stat
from pathlib import Path
from typing import List

from .errors import PackageError, StripError
from .models import BuildArtifact, PackagedBinary
from .utils import CommandError, ensure_directory, remove_tree, run_command, sha256_file

logger = logging.getLogger(__name__)


class Packager:
    """Publishes a build artifact as the only file of the release directory.

    The binary is copied and stripped inside a sibling staging directory.
    The previous release is removed and the staging directory renamed into
    place only after stripping succeeds, so a failed package run leaves the
    old release as it was.
    """

    def __init__(self, binary_name: str, strip_command: List[str]) -> None:
        self.binary_name = binary_name
        self.strip_command = list(strip_command)

    def package(self, artifact: BuildArtifact, release_dir: str | Path) -> PackagedBinary:
        release_dir = Path(release_dir)
        if not artifact.path.is_file():
            raise PackageError(f"Build artifact {artifact.path} is missing")
        self._check_release_dir(release_dir, artifact)

        staging = release_dir.with_name(f".{release_dir.name}.staging")
        remove_tree(staging)
        try:
            ensure_directory(staging)
            staged_binary = staging / self.binary_name
            self._copy(artifact.path, staged_binary)
            self._strip(staged_binary)
            self._publish(staging, release_dir)
        finally:
            remove_tree(staging)

        binary = release_dir / self.binary_name
        packaged = PackagedBinary(
            path=binary,
            sha256=sha256_file(binary),
            size_bytes=binary.stat().st_size,
        )
        logger.info("Released %s (%d bytes, sha256 %s)", binary, packaged.size_bytes, packaged.sha256)
        return packaged

    def _check_release_dir(self, release_dir: Path, artifact: BuildArtifact) -> None:
        # The release directory is wiped on publish; it must not hold the caller or the build.
        resolved = release_dir.resolve()
        cwd = Path.cwd().resolve()
        if not resolved.name or resolved == cwd or resolved in cwd.parents:
            raise PackageError(f"Release directory {release_dir} must not contain the working directory")
        if resolved in artifact.path.resolve().parents:
            raise PackageError(f"Release directory {release_dir} must not contain the build artifact")

    def _copy(self, source: Path, destination: Path) -> None:
        try:
            shutil.copy2(source, destination)
            mode = destination.stat().st_mode
            destination.chmod(mode | stat.S_IWUSR | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as exc:
            raise PackageError(f"Cannot copy {source} into the release: {exc}") from exc

    def _strip(self, binary: Path) -> None:
        command = [*self.strip_command, str(binary)]
        logger.info("Stripping %s", binary.name)
        try:
            run_command(command)
        except CommandError as exc:
            raise StripError(f"Stripping {binary.name} failed", command_error=exc) from exc
        if not binary.is_file():
            raise StripError(f"Strip tool removed {binary.name} instead of stripping it")

    def _publish(self, staging: Path, release_dir: Path) -> None:
        try:
            if remove_tree(release_dir):
                logger.info("Cleared previous release at %s", release_dir)
            staging.rename(release_dir)
        except OSError as exc:
            raise PackageError(f"Cannot publish release into {release_dir}: {exc}") from exc
