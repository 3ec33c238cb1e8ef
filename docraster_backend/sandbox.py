from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from .exceptions import SandboxError

LOGGER = logging.getLogger(__name__)

CACHE_SUBDIR = "xdg-cache"
CONFIG_SUBDIR = "xdg-config"
RUNTIME_SUBDIR = "xdg-runtime"
TMP_SUBDIR = "tmp"

PROFILE_DIR_MODE = 0o700


@dataclass(frozen=True)
class SandboxProfile:
    root: Path
    cache_dir: Path
    config_dir: Path
    runtime_dir: Path
    tmp_dir: Path

    def directories(self) -> tuple[Path, ...]:
        return (self.root, self.cache_dir, self.config_dir, self.runtime_dir, self.tmp_dir)


@dataclass(frozen=True)
class SandboxEnvironment:
    profile: SandboxProfile
    env: dict[str, str] = field(hash=False)
    # The renderer wants its user installation as a file:// URI.
    user_installation_uri: str = ""


def get_sandbox_profile(root: Path) -> SandboxProfile:
    root = Path(root).resolve()
    return SandboxProfile(
        root=root,
        cache_dir=root / CACHE_SUBDIR,
        config_dir=root / CONFIG_SUBDIR,
        runtime_dir=root / RUNTIME_SUBDIR,
        tmp_dir=root / TMP_SUBDIR,
    )


def ensure_sandbox_dirs(profile: SandboxProfile) -> None:
    """Create the profile tree if missing. Existing directories are left alone."""
    for directory in profile.directories():
        try:
            directory.mkdir(mode=PROFILE_DIR_MODE, parents=True, exist_ok=True)
        except OSError as exc:
            raise SandboxError(f"Cannot create renderer profile directory {directory}: {exc}") from exc
        if not directory.is_dir():
            raise SandboxError(f"Renderer profile path is not a directory: {directory}")


def sandbox_env_overrides(profile: SandboxProfile) -> dict[str, str]:
    # Keeps the renderer away from dconf/HOME of the server user.
    return {
        "HOME": str(profile.root),
        "XDG_CACHE_HOME": str(profile.cache_dir),
        "XDG_CONFIG_HOME": str(profile.config_dir),
        "XDG_RUNTIME_DIR": str(profile.runtime_dir),
        "TMPDIR": str(profile.tmp_dir),
    }


def build_sandbox_environment(root: Path) -> SandboxEnvironment:
    """Ensure the profile tree under ``root`` exists and describe it for the renderer.

    Idempotent: repeated calls with the same root return equal environments.
    Raises SandboxError if the directories cannot be created.
    """
    profile = get_sandbox_profile(root)
    ensure_sandbox_dirs(profile)
    env = sandbox_env_overrides(profile)
    LOGGER.debug("Sandbox ready at %s", profile.root)
    return SandboxEnvironment(
        profile=profile,
        env=env,
        user_installation_uri=profile.root.as_uri(),
    )


@contextmanager
def ephemeral_sandbox(parent: Path) -> Iterator[SandboxEnvironment]:
    """Yield a throwaway profile under ``parent`` and delete it afterwards."""
    parent = Path(parent)
    try:
        parent.mkdir(mode=PROFILE_DIR_MODE, parents=True, exist_ok=True)
        root = Path(tempfile.mkdtemp(prefix="profile-", dir=str(parent)))
    except OSError as exc:
        raise SandboxError(f"Cannot allocate renderer profile under {parent}: {exc}") from exc

    try:
        yield build_sandbox_environment(root)
    finally:
        shutil.rmtree(root, ignore_errors=True)
