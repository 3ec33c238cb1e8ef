from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence

from .exceptions import RendererLaunchError, RendererNotFoundError
from .models import RenderInvocation
from .sandbox import SandboxEnvironment

LOGGER = logging.getLogger(__name__)

# Seconds to wait after SIGTERM before escalating to SIGKILL.
TERMINATE_GRACE_SECONDS = 5.0

# Headless, no UI, no recovery dialogs, no lock-file prompts.
HEADLESS_FLAGS = (
    "--headless",
    "--nologo",
    "--nodefault",
    "--nofirststartwizard",
    "--norestore",
    "--nolockcheck",
)


class DocumentRenderer(Protocol):
    """Anything that can turn a source document into files in ``output_dir``."""

    def render(self, source: Path, output_dir: Path, sandbox: SandboxEnvironment) -> RenderInvocation:
        ...


def resolve_executable(configured: Optional[str], fallback_name: str = "soffice") -> str:
    """Return the renderer binary: the configured path if it exists, else a PATH lookup."""
    if configured and Path(configured).is_file():
        return str(configured)
    found = shutil.which(fallback_name)
    if not found:
        raise RendererNotFoundError(
            f"Renderer executable not found (configured: {configured or '-'}, fallback: {fallback_name})"
        )
    return found


def build_command(
    executable: str,
    sandbox: SandboxEnvironment,
    source: Path,
    output_dir: Path,
    target_format: str,
) -> list[str]:
    return [
        executable,
        *HEADLESS_FLAGS,
        f"-env:UserInstallation={sandbox.user_installation_uri}",
        "--convert-to",
        target_format,
        "--outdir",
        str(output_dir),
        str(source),
    ]


def _terminate_process_group(process: subprocess.Popen) -> None:
    """Stop the renderer and everything it forked. TERM first, then KILL."""
    if os.name != "nt":
        try:
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                return
    else:
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()


def run_command(
    command: Sequence[str],
    env_overrides: dict[str, str],
    timeout: Optional[float] = None,
) -> RenderInvocation:
    """Run ``command`` with stdout and stderr merged, and never raise on a bad exit.

    Only spawn failures raise (RendererLaunchError). A run that outlives
    ``timeout`` is terminated and reported with ``timed_out=True``.
    """
    env = {**os.environ, **env_overrides}
    try:
        process = subprocess.Popen(
            list(command),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            env=env,
            text=True,
            encoding="utf-8",
            errors="replace",
            # Own process group so a timeout can take down forked helpers too.
            start_new_session=True,
        )
    except OSError as exc:
        raise RendererLaunchError(f"Cannot start renderer {command[0]}: {exc}") from exc

    timed_out = False
    try:
        output, _ = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        LOGGER.error("Renderer exceeded %ss, terminating pid %s", timeout, process.pid)
        _terminate_process_group(process)
        try:
            output, _ = process.communicate(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            # Something outside the process group still holds the pipe.
            process.kill()
            process.wait()
            output = ""

    exit_status = process.returncode if process.returncode is not None else -1
    return RenderInvocation(
        command=tuple(command),
        output_lines=tuple((output or "").splitlines()),
        exit_status=exit_status,
        timed_out=timed_out,
    )


class SofficeRenderer:
    """Headless office-suite renderer driven through its command line."""

    def __init__(
        self,
        executable: Optional[str] = None,
        target_format: str = "png",
        timeout: Optional[float] = None,
        fallback_name: str = "soffice",
    ) -> None:
        self.executable = executable
        self.target_format = target_format
        self.timeout = timeout if timeout and timeout > 0 else None
        self.fallback_name = fallback_name

    def render(self, source: Path, output_dir: Path, sandbox: SandboxEnvironment) -> RenderInvocation:
        executable = resolve_executable(self.executable, self.fallback_name)
        command = build_command(executable, sandbox, source, output_dir, self.target_format)
        LOGGER.debug("Running renderer: %s", " ".join(command))
        return run_command(command, sandbox.env, timeout=self.timeout)
