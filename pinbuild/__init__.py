"""Fetch, build and package a pinned upstream revision into a release binary."""

from .config import load_config
from .errors import BuildError, ConfigError, ExtractError, FetchError, PackageError, ReleaseError, StripError
from .models import PinnedRevision, ReleaseConfig
from .pipeline import PipelineContext, ReleasePipeline, Stage

__all__ = [
    "BuildError",
    "ConfigError",
    "ExtractError",
    "FetchError",
    "PackageError",
    "PinnedRevision",
    "PipelineContext",
    "ReleaseConfig",
    "ReleaseError",
    "ReleasePipeline",
    "Stage",
    "StripError",
    "load_config",
]
