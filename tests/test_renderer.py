from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

from docraster_backend import renderer as renderer_module
from docraster_backend.exceptions import RendererLaunchError, RendererNotFoundError
from docraster_backend.renderer import (
    SofficeRenderer,
    build_command,
    resolve_executable,
    run_command,
)
from docraster_backend.sandbox import build_sandbox_environment


posix_only = pytest.mark.skipif(os.name == "nt", reason="uses /bin/sh scripts as a stand-in renderer")


FAKE_SOFFICE = """#!/bin/sh
outdir=""
prev=""
for arg in "$@"; do
  if [ "$prev" = "--outdir" ]; then outdir="$arg"; fi
  prev="$arg"
done
base=$(basename "$prev")
base="${base%.*}"
echo "convert $prev -> $outdir/$base.png using filter : impress_png_Export"
echo "warn: font fallback" >&2
echo "HOME=$HOME"
: > "$outdir/$base.png"
"""


def _script(tmp_path: Path, body: str, name: str = "fake-soffice") -> Path:
    path = tmp_path / name
    path.write_text(body, encoding="utf-8")
    path.chmod(0o755)
    return path


def test_build_command_uses_sandbox_and_format(tmp_path: Path) -> None:
    sandbox = build_sandbox_environment(tmp_path / "profile")
    command = build_command("/opt/soffice", sandbox, Path("/in/slides.pptx"), Path("/out"), "png")

    assert command[0] == "/opt/soffice"
    assert "--headless" in command
    assert "--nolockcheck" in command
    assert f"-env:UserInstallation={sandbox.user_installation_uri}" in command
    assert command[command.index("--convert-to") + 1] == "png"
    assert command[command.index("--outdir") + 1] == "/out"
    assert command[-1] == "/in/slides.pptx"


def test_configured_executable_takes_precedence(tmp_path: Path, monkeypatch) -> None:
    configured = _script(tmp_path, "#!/bin/sh\n")
    monkeypatch.setattr(renderer_module.shutil, "which", lambda name: "/usr/local/bin/soffice")
    assert resolve_executable(str(configured)) == str(configured)


def test_falls_back_to_search_path(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(renderer_module.shutil, "which", lambda name: f"/usr/local/bin/{name}")
    assert resolve_executable(str(tmp_path / "missing")) == "/usr/local/bin/soffice"
    assert resolve_executable(None, "libreoffice") == "/usr/local/bin/libreoffice"


def test_missing_executable_raises(monkeypatch) -> None:
    monkeypatch.setattr(renderer_module.shutil, "which", lambda name: None)
    with pytest.raises(RendererNotFoundError):
        resolve_executable("/nonexistent/soffice")


@posix_only
def test_renders_with_sandbox_env_and_merged_output(tmp_path: Path) -> None:
    executable = _script(tmp_path, FAKE_SOFFICE)
    sandbox = build_sandbox_environment(tmp_path / "profile")
    source = tmp_path / "uploads" / "report.pdf"
    source.parent.mkdir()
    source.write_bytes(b"%PDF-1.4")
    output_dir = tmp_path / "converted"
    output_dir.mkdir()

    invocation = SofficeRenderer(executable=str(executable)).render(source, output_dir, sandbox)

    assert invocation.exit_status == 0
    assert invocation.timed_out is False
    assert invocation.output_lines[0].startswith(f"convert {source}")
    assert invocation.output_lines[1] == "warn: font fallback"
    assert f"HOME={sandbox.profile.root}" in invocation.output_lines
    assert (output_dir / "report.png").is_file()


@posix_only
def test_nonzero_exit_is_reported_not_raised(tmp_path: Path) -> None:
    executable = _script(tmp_path, "#!/bin/sh\necho 'Error: source file could not be loaded'\nexit 1\n")

    invocation = run_command([str(executable)], {})

    assert invocation.exit_status == 1
    assert invocation.output_text == "Error: source file could not be loaded"
    assert invocation.succeeded is False


@posix_only
def test_timeout_terminates_renderer(tmp_path: Path) -> None:
    executable = _script(tmp_path, "#!/bin/sh\necho started\nexec sleep 30\n")

    invocation = run_command([str(executable)], {}, timeout=0.5)

    assert invocation.timed_out is True
    assert invocation.exit_status != 0
    assert invocation.output_lines == ("started",)


@posix_only
def test_unlaunchable_executable_raises(tmp_path: Path) -> None:
    not_executable = tmp_path / "soffice"
    not_executable.write_text("#!/bin/sh\n", encoding="utf-8")
    not_executable.chmod(0o644)

    with pytest.raises(RendererLaunchError):
        run_command([str(not_executable)], {})


def test_non_positive_timeout_disables_deadline() -> None:
    assert SofficeRenderer(timeout=0).timeout is None
    assert SofficeRenderer(timeout=-1).timeout is None
    assert SofficeRenderer(timeout=30).timeout == 30


class _StuckPipeProcess:
    """Popen stand-in whose output pipe never closes, even after a kill."""

    pid = 999999

    def __init__(self, *args, **kwargs):
        self.returncode = None
        self.killed = False

    def communicate(self, timeout=None):
        raise subprocess.TimeoutExpired("soffice", timeout)

    def kill(self):
        self.killed = True

    def wait(self, timeout=None):
        if self.killed:
            self.returncode = -9
        return self.returncode


def test_killed_renderer_is_reaped(monkeypatch) -> None:
    monkeypatch.setattr(renderer_module.subprocess, "Popen", _StuckPipeProcess)
    monkeypatch.setattr(renderer_module, "_terminate_process_group", lambda process: None)

    invocation = run_command(["soffice"], {}, timeout=0.1)

    assert invocation.timed_out is True
    assert invocation.exit_status == -9
    assert invocation.output_lines == ()
