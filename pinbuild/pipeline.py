from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

import requests

from .builder import Builder
from .errors import ReleaseError
from .fetcher import Fetcher
from .models import BuildArtifact, PackagedBinary, PinnedRevision, ReleaseConfig, StageResult, Workspace
from .packager import Packager
from .resolver import RevisionResolver
from .utils import dump_json

logger = logging.getLogger(__name__)


class Stage(Enum):
    RESOLVE = auto()
    FETCH = auto()
    BUILD = auto()
    PACKAGE = auto()

    @classmethod
    def ordered(cls) -> Iterable["Stage"]:
        return (
            cls.RESOLVE,
            cls.FETCH,
            cls.BUILD,
            cls.PACKAGE,
        )


@dataclass
class PipelineContext:
    config: ReleaseConfig
    work_dir: Path
    release_dir: Path
    session: Optional[requests.Session] = None
    revision: PinnedRevision = field(init=False)
    workspace: Optional[Workspace] = field(default=None, init=False)
    artifact: Optional[BuildArtifact] = field(default=None, init=False)
    packaged: Optional[PackagedBinary] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.work_dir = Path(self.work_dir)
        self.release_dir = Path(self.release_dir)
        self.resolver = RevisionResolver.from_config(self.config)
        self.revision = self.resolver.current_revision()
        self.fetcher = Fetcher(self.config, self.work_dir, session=self.session)
        self.builder = Builder(self.config.toolchain)
        self.packager = Packager(self.config.binary_name, self.config.strip_command)

    @property
    def state_dir(self) -> Path:
        return self.work_dir / "state" / str(self.revision)

    def stage_output(self, stage: Stage) -> Path:
        return self.state_dir / f"{stage.name.lower()}.json"


StageHandler = Callable[[PipelineContext], StageResult]


def _stage_resolve(context: PipelineContext) -> StageResult:
    details = {
        "project": context.config.project,
        "revision": str(context.revision),
        "archive_url": context.fetcher.archive_url(context.revision),
    }
    return StageResult("resolve", "completed", details)


def _stage_fetch(context: PipelineContext) -> StageResult:
    cached = context.fetcher.workspace_for(context.revision).source_dir.is_dir()
    workspace = context.fetcher.fetch(context.revision)
    context.workspace = workspace
    details = {
        "workspace": str(workspace.source_dir),
        "downloaded": not cached,
    }
    return StageResult("fetch", "completed", details)


def _stage_build(context: PipelineContext) -> StageResult:
    if context.workspace is None:
        raise RuntimeError("Fetch stage must be executed before build.")
    artifact = context.builder.build(context.workspace)
    context.artifact = artifact
    details = {
        "command": list(context.config.toolchain.command),
        "artifact": str(artifact.path),
        "duration_s": context.builder.last_duration_s,
    }
    return StageResult("build", "completed", details)


def _stage_package(context: PipelineContext) -> StageResult:
    if context.artifact is None:
        raise RuntimeError("Build stage must be executed before package.")
    packaged = context.packager.package(context.artifact, context.release_dir)
    context.packaged = packaged
    return StageResult("package", "completed", packaged.to_dict())


_STAGE_HANDLERS: Dict[Stage, StageHandler] = {
    Stage.RESOLVE: _stage_resolve,
    Stage.FETCH: _stage_fetch,
    Stage.BUILD: _stage_build,
    Stage.PACKAGE: _stage_package,
}


class ReleasePipeline:
    """Runs resolve, fetch, build and package strictly in order.

    Every stage records its result under the revision's state directory. Any
    ``ReleaseError`` is recorded as a failed stage and re-raised, which halts
    the run before later stages touch the filesystem.
    """

    def __init__(self, context: PipelineContext) -> None:
        self.context = context

    def run(self) -> StageResult:
        return self.run_until(Stage.PACKAGE)

    def run_until(self, target_stage: Stage) -> StageResult:
        last_result: Optional[StageResult] = None
        for stage in Stage.ordered():
            last_result = self.run_stage(stage)
            if stage is target_stage:
                break
        assert last_result is not None
        return last_result

    def run_stage(self, stage: Stage) -> StageResult:
        stage_output = self.context.stage_output(stage)
        handler = _STAGE_HANDLERS[stage]
        logger.debug("Running stage %s for %s", stage.name.lower(), self.context.revision)
        try:
            result = handler(self.context)
        except ReleaseError as exc:
            failed = StageResult(stage.name.lower(), "failed", {"error": type(exc).__name__, "message": str(exc)})
            dump_json(stage_output, failed.to_dict())
            logger.error("Stage %s failed: %s", stage.name.lower(), exc)
            raise
        dump_json(stage_output, result.to_dict())
        return result

    def status(self) -> Dict[str, str]:
        statuses: Dict[str, str] = {}
        for stage in Stage.ordered():
            stage_output = self.context.stage_output(stage)
            if stage_output.exists():
                recorded = StageResult.from_dict(json.loads(stage_output.read_text()))
                statuses[stage.name.lower()] = recorded.status
        return statuses

    def clean(self) -> bool:
        """Discard the current revision's workspace and recorded stage results."""

        removed = self.context.fetcher.discard(self.context.revision)
        for stage in Stage.ordered():
            self.context.stage_output(stage).unlink(missing_ok=True)
        return removed
