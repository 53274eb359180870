from __future__ import annotations

from dataclasses import dataclass

from .models import PinnedRevision, ReleaseConfig


@dataclass(frozen=True)
class RevisionResolver:
    """Single source of truth for the revision every stage builds."""

    revision: PinnedRevision

    @classmethod
    def from_config(cls, config: ReleaseConfig) -> "RevisionResolver":
        return cls(revision=config.revision)

    def current_revision(self) -> PinnedRevision:
        return self.revision
