from __future__ import annotations

import os
from pathlib import Path


# Single storage root owned by the application.
# Default: project-local ./storage for easier inspection and cleanup.
# Override with env var DOCRASTER_STORAGE_ROOT.
_root_raw = os.environ.get("DOCRASTER_STORAGE_ROOT")
if _root_raw and _root_raw.strip():
    STORAGE_ROOT = Path(_root_raw)
else:
    # docraster_backend/ -> project root
    STORAGE_ROOT = Path(__file__).resolve().parent.parent / "storage"
STORAGE_ROOT = STORAGE_ROOT.resolve()
STORAGE_ROOT.mkdir(parents=True, exist_ok=True)

# Uploaded sources (written by the upload endpoint, read-only here).
UPLOADS_DIR = STORAGE_ROOT / os.environ.get("DOCRASTER_UPLOADS_SUBDIR", "uploads")

# Rendered rasters land here and are served back under PUBLIC_CONVERTED_PREFIX.
CONVERTED_DIR = STORAGE_ROOT / os.environ.get("DOCRASTER_CONVERTED_SUBDIR", "converted")
PUBLIC_CONVERTED_PREFIX = "storage/converted"

# Private HOME/XDG tree handed to the renderer.
PROFILE_DIR = STORAGE_ROOT / os.environ.get("DOCRASTER_PROFILE_SUBDIR", "lo_profile")

# Configured renderer binary; when it does not exist we fall back to PATH lookup.
SOFFICE_PATH = os.environ.get("SOFFICE_PATH", "/usr/bin/soffice")
SOFFICE_FALLBACK_NAME = "soffice"

TARGET_FORMAT = os.environ.get("DOCRASTER_TARGET_FORMAT", "png").strip().lower().lstrip(".") or "png"

# Deadline for one renderer run. 0 disables it (the renderer may then block forever).
RENDER_TIMEOUT_SECONDS = float(os.environ.get("DOCRASTER_RENDER_TIMEOUT_SECONDS", "120"))

# "shared": one reusable profile, renders serialized behind a lock.
# "ephemeral": a throwaway profile per request, renders may overlap.
SANDBOX_MODE = os.environ.get("DOCRASTER_SANDBOX_MODE", "shared").strip().lower()
SANDBOX_MODES = {"shared", "ephemeral"}
if SANDBOX_MODE not in SANDBOX_MODES:
    SANDBOX_MODE = "shared"

LOG_LEVEL = os.environ.get("DOCRASTER_LOG_LEVEL", "INFO").upper()
