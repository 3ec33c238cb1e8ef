from __future__ import annotations

from pathlib import Path


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames (no directories)."""
    if not isinstance(name, str) or not name:
        return False
    if name in {".", ".."}:
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name or "\x00" in name:
        return False
    return True


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join client-supplied names onto base_dir without escaping it.

    Used by POST /convert (name -> uploads dir) and by the converted-file
    route (name -> converted dir). Raises ValueError on traversal.
    """
    root = base_dir.resolve()
    resolved = root.joinpath(*parts).resolve()
    if resolved != root and root not in resolved.parents:
        raise ValueError("Path traversal attempt")
    return resolved
