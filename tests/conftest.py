from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path


# Ensure the project root is importable when tests are executed without an
# editable install, and point the storage root at a throwaway directory
# before docraster_backend.config creates it at import time.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
os.environ.setdefault("DOCRASTER_STORAGE_ROOT", tempfile.mkdtemp(prefix="docraster-tests-"))

import pytest

from docraster_backend.models import RenderInvocation
from docraster_backend.pipeline import ConversionPipeline
from docraster_backend.sandbox import SandboxEnvironment


PLAIN_PDF = (
    b"%PDF-1.4\n"
    b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
    b"2 0 obj\n<< /Type /Pages /Kids [] /Count 0 >>\nendobj\n"
    b"trailer\n<< /Size 3 /Root 1 0 R >>\n%%EOF\n"
)

ENCRYPTED_PDF = (
    b"%PDF-1.6\n"
    b"12 0 obj\n<< /Filter /Standard /V 4 /R 4 /Length 128 /P -1028 >>\nendobj\n"
    b"trailer\n<< /Size 13 /Root 1 0 R /Encrypt 12 0 R >>\n%%EOF\n"
)


class FakeRenderer:
    """Stands in for the headless renderer and records every call."""

    def __init__(self, exit_status=0, output_lines=(), produce=(), error=None, timed_out=False):
        self.exit_status = exit_status
        self.timed_out = timed_out
        self.output_lines = tuple(output_lines)
        self.produce = tuple(produce)
        self.error = error
        self.calls: list[tuple[Path, Path, SandboxEnvironment]] = []

    def render(self, source, output_dir, sandbox):
        self.calls.append((source, output_dir, sandbox))
        if self.error is not None:
            raise self.error
        for name in self.produce:
            (Path(output_dir) / name).write_bytes(b"\x89PNG\r\n\x1a\n")
        return RenderInvocation(
            command=("fake-renderer", str(source)),
            output_lines=self.output_lines,
            exit_status=self.exit_status,
            timed_out=self.timed_out,
        )


@pytest.fixture()
def storage(tmp_path: Path) -> dict[str, Path]:
    dirs = {
        "uploads": tmp_path / "uploads",
        "converted": tmp_path / "converted",
        "profile": tmp_path / "lo_profile",
    }
    dirs["uploads"].mkdir()
    return dirs


@pytest.fixture()
def make_pipeline(storage):
    def _make(renderer, sandbox_mode: str = "shared") -> ConversionPipeline:
        return ConversionPipeline(
            output_dir=storage["converted"],
            profile_root=storage["profile"],
            renderer=renderer,
            target_format="png",
            sandbox_mode=sandbox_mode,
        )

    return _make


@pytest.fixture()
def write_upload(storage):
    def _write(name: str, data: bytes = b"PK\x03\x04 office document") -> Path:
        path = storage["uploads"] / name
        path.write_bytes(data)
        return path

    return _write
