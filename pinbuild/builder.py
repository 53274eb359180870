from __future__ import annotations

import logging
import time

from .errors import BuildError
from .models import BuildArtifact, ToolchainConfig, Workspace
from .utils import CommandError, run_command

logger = logging.getLogger(__name__)


class Builder:
    """Runs the external toolchain in release mode inside a workspace.

    Toolchain failures are surfaced verbatim and never retried.
    """

    def __init__(self, toolchain: ToolchainConfig) -> None:
        self.toolchain = toolchain
        self.last_duration_s: float = 0.0

    def build(self, workspace: Workspace) -> BuildArtifact:
        if not workspace.source_dir.is_dir():
            raise BuildError(f"Workspace {workspace.source_dir} does not exist; fetch it first")

        logger.info("Building %s with %s", workspace.revision, " ".join(self.toolchain.command))
        started = time.perf_counter()
        try:
            result = run_command(self.toolchain.command, cwd=workspace.source_dir)
        except CommandError as exc:
            raise BuildError(
                f"Toolchain exited with status {exc.returncode}", command_error=exc
            ) from exc
        finally:
            self.last_duration_s = round(time.perf_counter() - started, 3)

        if result.stderr:
            logger.debug("Toolchain output:\n%s", result.stderr.rstrip())

        artifact_path = workspace.source_dir / self.toolchain.artifact
        if not artifact_path.is_file():
            raise BuildError(
                f"Toolchain succeeded but no artifact was produced at {self.toolchain.artifact}"
            )
        logger.info("Built %s in %.1fs", artifact_path, self.last_duration_s)
        return BuildArtifact(workspace=workspace, path=artifact_path)
