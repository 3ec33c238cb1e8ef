"""Best-effort detection of password-protected PDFs.

This is a byte-level scan, not a parse. Encryption declared inside a
compressed cross-reference stream is not visible here; the renderer's own
output is classified afterwards and catches those cases.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path

from .models import EncryptionAssessment

LOGGER = logging.getLogger(__name__)

PDF_EXTENSIONS = {".pdf"}

REASON_DICTIONARY = "contains encryption dictionary"
REASON_STANDARD = "uses standard encryption"
REASON_STANDARD_WITH_DICTIONARY = "standard encryption with dictionary"
REASON_NONE = "no encryption markers found"
REASON_UNREADABLE = "encryption check could not be completed"

# Trailer reference to the encryption dictionary, e.g. "/Encrypt 12 0 R".
_ENCRYPT_REF_RE = re.compile(rb"/Encrypt\s+\d+\s+\d+\s+R")
# Standard security handler plus an algorithm version 1..5.
_STANDARD_FILTER_RE = re.compile(rb"/Filter\s*/Standard\b")
_VERSION_RE = re.compile(rb"/V\s+[1-5]\b")


def applies_to(path: Path) -> bool:
    """Only portable-document inputs go through the byte scan."""
    return Path(path).suffix.lower() in PDF_EXTENSIONS


def assess_bytes(data: bytes) -> EncryptionAssessment:
    has_dictionary = _ENCRYPT_REF_RE.search(data) is not None
    has_standard = _STANDARD_FILTER_RE.search(data) is not None and _VERSION_RE.search(data) is not None

    if has_dictionary and has_standard:
        return EncryptionAssessment(True, REASON_STANDARD_WITH_DICTIONARY)
    if has_dictionary:
        return EncryptionAssessment(True, REASON_DICTIONARY)
    if has_standard:
        return EncryptionAssessment(True, REASON_STANDARD)
    return EncryptionAssessment(False, REASON_NONE)


def detect_encryption(path: Path) -> EncryptionAssessment:
    """Scan the raw bytes of ``path`` for encryption markers.

    Fails open: a file that cannot be read is reported as not encrypted and
    left for the renderer to reject.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        LOGGER.warning("Encryption check skipped for %s: %s", path, exc)
        return EncryptionAssessment(False, f"{REASON_UNREADABLE}: {exc.strerror or exc}")

    assessment = assess_bytes(data)
    LOGGER.debug("Encryption check for %s: %s", path, assessment.reason)
    return assessment
