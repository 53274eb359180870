from __future__ import annotations

import io
import sys
import tarfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import requests

from pinbuild.models import PinnedRevision, ReleaseConfig, ToolchainConfig

ARCHIVE_HOST = "https://archive.test"
PROJECT = "acme/project"
BINARY_NAME = "binary-name"
ARTIFACT = "target/release/project-cli"
DEBUG_MARKER = "#DEBUG-SYMBOLS"

# Stand-in for `cargo build --release`: compiles main.src into an "executable"
# with a trailing debug section.
FAKE_TOOLCHAIN = [
    sys.executable,
    "-c",
    "import pathlib\n"
    f"out = pathlib.Path({ARTIFACT!r})\n"
    "out.parent.mkdir(parents=True, exist_ok=True)\n"
    "out.write_bytes(b'ELF:' + pathlib.Path('main.src').read_bytes() + b'\\n"
    f"{DEBUG_MARKER}\\n')\n",
]

FAKE_STRIP = [
    sys.executable,
    "-c",
    "import pathlib, sys\n"
    "p = pathlib.Path(sys.argv[1])\n"
    f"p.write_bytes(p.read_bytes().split(b'{DEBUG_MARKER}')[0])\n",
]

FAILING_STRIP = [
    sys.executable,
    "-c",
    "import sys\n"
    "sys.stderr.write('strip: file format not recognized')\n"
    "sys.exit(1)\n",
]

FAILING_TOOLCHAIN = [
    sys.executable,
    "-c",
    "import sys\n"
    "sys.stderr.write('error[E0425]: cannot find value `x` in this scope')\n"
    "sys.exit(101)\n",
]


def archive_url(revision: str) -> str:
    return f"{ARCHIVE_HOST}/{PROJECT}/archive/{revision}.tar.gz"


def make_archive(top_level: str, files: Optional[Dict[str, bytes]] = None) -> bytes:
    """Build an in-memory .tar.gz with everything under ``top_level``."""

    files = files if files is not None else {"main.src": b"fn main() {}"}
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        directory = tarfile.TarInfo(top_level)
        directory.type = tarfile.DIRTYPE
        directory.mode = 0o755
        tar.addfile(directory)
        for name, payload in files.items():
            info = tarfile.TarInfo(f"{top_level}/{name}")
            info.size = len(payload)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


class FakeSession:
    """Serves canned archives as real ``requests.Response`` objects."""

    def __init__(self) -> None:
        self.routes: Dict[str, Tuple[int, bytes, Dict[str, str]]] = {}
        self.requested: List[str] = []
        self.closed = False

    def serve(self, url: str, body: bytes, *, status: int = 200, headers: Optional[Dict[str, str]] = None) -> None:
        self.routes[url] = (status, body, headers or {"Content-Length": str(len(body))})

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, url: str, stream: bool = False, **kwargs: object) -> requests.Response:
        self.requested.append(url)
        status, body, headers = self.routes.get(url, (404, b"Not Found", {}))
        response = requests.Response()
        response.status_code = status
        response.reason = "OK" if status < 400 else "Not Found"
        response.url = url
        response.raw = io.BytesIO(body)
        response.headers.update(headers)
        return response


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


def make_config(revision: str = "abc123", **overrides: object) -> ReleaseConfig:
    toolchain = overrides.pop("toolchain", None) or ToolchainConfig(command=list(FAKE_TOOLCHAIN), artifact=ARTIFACT)
    return ReleaseConfig(
        project=PROJECT,
        archive_host=ARCHIVE_HOST,
        revision=PinnedRevision(revision),
        binary_name=BINARY_NAME,
        toolchain=toolchain,  # type: ignore[arg-type]
        strip_command=list(overrides.pop("strip_command", FAKE_STRIP)),  # type: ignore[arg-type]
    )


@pytest.fixture
def config() -> ReleaseConfig:
    return make_config()


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def release_dir(tmp_path: Path) -> Path:
    return tmp_path / "release"
