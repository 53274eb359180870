from __future__ import annotations

import gzip
import logging
import tarfile
import zlib
from pathlib import Path
from typing import Optional

import requests

from .errors import ExtractError, FetchError
from .models import PinnedRevision, ReleaseConfig, Workspace
from .utils import ensure_directory, remove_tree

logger = logging.getLogger(__name__)

ARCHIVE_FILENAME = "source.tar.gz"


class Fetcher:
    """Downloads the pinned source archive and stages it as a workspace.

    Workspaces live at ``<work_dir>/sources/<revision>/<project-name>``. The
    archive's own top-level directory (``<project-name>-<revision>`` on the
    usual archive hosts) is renamed to the stable project name, so callers
    only ever see ``Workspace.source_dir``.
    """

    def __init__(
        self,
        config: ReleaseConfig,
        work_dir: str | Path,
        *,
        session: Optional[requests.Session] = None,
        chunk_size: int = 65536,
    ) -> None:
        self.config = config
        self.work_dir = Path(work_dir)
        self.session = session
        self.chunk_size = chunk_size

    @property
    def sources_dir(self) -> Path:
        return self.work_dir / "sources"

    def archive_url(self, revision: PinnedRevision) -> str:
        return f"{self.config.archive_host}/{self.config.project}/archive/{revision}.tar.gz"

    def workspace_for(self, revision: PinnedRevision) -> Workspace:
        root = self.sources_dir / str(revision)
        return Workspace(revision=revision, root=root, source_dir=root / self.config.project_name)

    def _staging_dir(self, revision: PinnedRevision) -> Path:
        return self.sources_dir / f".{revision}.partial"

    def fetch(self, revision: PinnedRevision) -> Workspace:
        workspace = self.workspace_for(revision)
        if workspace.source_dir.is_dir():
            logger.info("Workspace for %s already staged at %s", revision, workspace.source_dir)
            return workspace

        staging = self._staging_dir(revision)
        remove_tree(staging)
        ensure_directory(staging)
        try:
            url = self.archive_url(revision)
            archive = staging / ARCHIVE_FILENAME
            logger.info("Downloading %s", url)
            size = self._download(url, archive)
            logger.info("Downloaded %d bytes for %s", size, revision)

            top_level = self._extract(archive, staging / "tree", revision)
            try:
                ensure_directory(workspace.root)
                top_level.rename(workspace.source_dir)
            except OSError as exc:
                raise ExtractError(f"Cannot move extracted tree into {workspace.source_dir}: {exc}") from exc
        finally:
            remove_tree(staging)

        logger.info("Staged %s at %s", revision, workspace.source_dir)
        return workspace

    def discard(self, revision: PinnedRevision) -> bool:
        workspace = self.workspace_for(revision)
        removed = remove_tree(workspace.root)
        if removed:
            logger.info("Discarded workspace %s", workspace.root)
        return removed

    def _download(self, url: str, destination: Path) -> int:
        if self.session is not None:
            return self._stream(self.session, url, destination)
        with requests.Session() as session:
            return self._stream(session, url, destination)

    def _stream(self, session: requests.Session, url: str, destination: Path) -> int:
        received = 0
        try:
            with session.get(url, stream=True) as response:
                response.raise_for_status()
                expected = response.headers.get("Content-Length")
                encoded = bool(response.headers.get("Content-Encoding"))
                with destination.open("wb") as file_handle:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        file_handle.write(chunk)
                        received += len(chunk)
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "unknown"
            raise FetchError(f"Archive request {url} returned HTTP {status}") from exc
        except requests.RequestException as exc:
            raise FetchError(f"Failed to download {url}: {exc}") from exc
        except OSError as exc:
            raise FetchError(f"Cannot write archive to {destination}: {exc}") from exc

        # Content-Length counts encoded bytes; only comparable for identity transfers.
        if expected is not None and not encoded and expected.isdigit() and received < int(expected):
            raise FetchError(
                f"Download of {url} ended early: received {received} of {expected} bytes"
            )
        return received

    def _extract(self, archive: Path, target: Path, revision: PinnedRevision) -> Path:
        ensure_directory(target)
        try:
            with tarfile.open(archive, mode="r:gz") as tar:
                tar.extractall(target, filter="data")
        except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as exc:
            raise ExtractError(f"{archive.name} is not a valid gzip-compressed tar archive: {exc}") from exc
        except OSError as exc:
            raise ExtractError(f"Extraction of {archive.name} was interrupted: {exc}") from exc

        expected = target / f"{self.config.project_name}-{revision}"
        if expected.is_dir():
            return expected

        entries = list(target.iterdir())
        if len(entries) == 1 and entries[0].is_dir():
            logger.warning(
                "Archive top-level directory %s does not match %s, using it anyway",
                entries[0].name,
                expected.name,
            )
            return entries[0]
        raise ExtractError(
            f"Archive for {revision} must contain a single top-level directory, found {len(entries)} entries"
        )
