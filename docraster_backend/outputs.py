from __future__ import annotations

import glob
import logging
import re
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)

# Page/index suffixes the renderer appends: "deck_2", "deck-2".
_PAGE_SUFFIX_RE = re.compile(r"^[_-](\d+)$")


def _match_rank(path: Path, base_name: str) -> tuple:
    suffix = path.stem[len(base_name):]
    if suffix == "":
        return (0, 0, path.name)
    page = _PAGE_SUFFIX_RE.match(suffix)
    if page:
        return (1, int(page.group(1)), path.name)
    # Same prefix, different document (e.g. "report-final" for "report").
    return (2, 0, path.name)


def find_converted_files(output_dir: Path, base_name: str, extension: str) -> list[Path]:
    """Return files named ``<base_name>*.<extension>`` in ``output_dir``.

    The renderer may append page or index suffixes, so this is a prefix match.
    Ordering: the exact ``<base_name>.<extension>`` first, then page-style
    suffixes by page number, then any other prefix match by name.
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return []
    pattern = f"{glob.escape(base_name)}*.{extension.lstrip('.')}"
    matches = [p for p in output_dir.glob(pattern) if p.is_file()]
    return sorted(matches, key=lambda p: _match_rank(p, base_name))


def resolve_output(output_dir: Path, base_name: str, extension: str) -> Optional[Path]:
    """Best converted file for ``base_name`` or None when nothing was produced."""
    matches = find_converted_files(output_dir, base_name, extension)
    LOGGER.debug("Output candidates for %s: %s", base_name, [m.name for m in matches])
    return matches[0] if matches else None
