from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from conftest import BINARY_NAME, DEBUG_MARKER, FAILING_STRIP, FAKE_STRIP
from pinbuild.errors import PackageError, StripError
from pinbuild.models import BuildArtifact, PinnedRevision, Workspace
from pinbuild.packager import Packager
from pinbuild.utils import sha256_file


def _artifact(tmp_path: Path) -> BuildArtifact:
    source_dir = tmp_path / "sources" / "abc123" / "project"
    binary = source_dir / "target" / "release" / "project-cli"
    binary.parent.mkdir(parents=True)
    binary.write_bytes(b"ELF:payload\n" + DEBUG_MARKER.encode() + b"\n")
    workspace = Workspace(revision=PinnedRevision("abc123"), root=source_dir.parent, source_dir=source_dir)
    return BuildArtifact(workspace=workspace, path=binary)


def test_package_publishes_single_stripped_binary(tmp_path: Path) -> None:
    artifact = _artifact(tmp_path)
    release_dir = tmp_path / "release"

    packaged = Packager(BINARY_NAME, FAKE_STRIP).package(artifact, release_dir)

    assert [p.name for p in release_dir.iterdir()] == [BINARY_NAME]
    assert packaged.path == release_dir / BINARY_NAME
    assert packaged.path.read_bytes() == b"ELF:payload\n"
    assert DEBUG_MARKER.encode() not in packaged.path.read_bytes()
    assert packaged.sha256 == sha256_file(packaged.path)
    assert packaged.size_bytes == len(b"ELF:payload\n")
    # Build output is read-only to the packager.
    assert DEBUG_MARKER.encode() in artifact.path.read_bytes()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_packaged_binary_is_executable(tmp_path: Path) -> None:
    packaged = Packager(BINARY_NAME, FAKE_STRIP).package(_artifact(tmp_path), tmp_path / "release")
    assert os.access(packaged.path, os.X_OK)


def test_package_clears_stale_release_contents(tmp_path: Path) -> None:
    release_dir = tmp_path / "release"
    (release_dir / "nested").mkdir(parents=True)
    (release_dir / "old-binary").write_text("previous revision")
    (release_dir / "nested" / "leftover").write_text("stale")

    Packager(BINARY_NAME, FAKE_STRIP).package(_artifact(tmp_path), release_dir)

    assert sorted(p.name for p in release_dir.iterdir()) == [BINARY_NAME]


def test_strip_failure_leaves_previous_release_untouched(tmp_path: Path) -> None:
    release_dir = tmp_path / "release"
    release_dir.mkdir()
    (release_dir / BINARY_NAME).write_bytes(b"previous release")

    with pytest.raises(StripError) as excinfo:
        Packager(BINARY_NAME, FAILING_STRIP).package(_artifact(tmp_path), release_dir)

    assert "file format not recognized" in excinfo.value.diagnostics
    assert (release_dir / BINARY_NAME).read_bytes() == b"previous release"
    assert not (tmp_path / ".release.staging").exists()


def test_strip_failure_publishes_nothing_on_first_release(tmp_path: Path) -> None:
    release_dir = tmp_path / "release"
    with pytest.raises(StripError):
        Packager(BINARY_NAME, FAILING_STRIP).package(_artifact(tmp_path), release_dir)
    assert not release_dir.exists()


def test_missing_artifact_is_package_error(tmp_path: Path) -> None:
    artifact = _artifact(tmp_path)
    artifact.path.unlink()
    with pytest.raises(PackageError, match="missing"):
        Packager(BINARY_NAME, FAKE_STRIP).package(artifact, tmp_path / "release")


@pytest.mark.parametrize("target", [".", ".."])
def test_release_dir_containing_working_directory_is_rejected(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, target: str
) -> None:
    artifact = _artifact(tmp_path)
    cwd = tmp_path / "checkout"
    cwd.mkdir()
    (cwd / "keep.txt").write_text("not release output")
    monkeypatch.chdir(cwd)

    with pytest.raises(PackageError, match="working directory"):
        Packager(BINARY_NAME, FAKE_STRIP).package(artifact, Path(target))

    assert (cwd / "keep.txt").exists()
    assert artifact.path.is_file()


def test_release_dir_containing_build_output_is_rejected(tmp_path: Path) -> None:
    artifact = _artifact(tmp_path)

    with pytest.raises(PackageError, match="build artifact"):
        Packager(BINARY_NAME, FAKE_STRIP).package(artifact, tmp_path / "sources")

    assert artifact.path.is_file()
