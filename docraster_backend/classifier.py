from __future__ import annotations

import re

from .models import ConversionResult, ErrorCategory, RenderInvocation

_ENCRYPTION_SIGNAL_RE = re.compile(r"encrypted|password", re.IGNORECASE)


def mentions_encryption(text: str) -> bool:
    return bool(_ENCRYPTION_SIGNAL_RE.search(text or ""))


def classify_render_failure(invocation: RenderInvocation) -> ConversionResult:
    """Map a failed renderer run onto a result category.

    The renderer's own diagnosis wins over the byte-level pre-check, so an
    encryption hint in its output is reported as EncryptedInput even when the
    pre-check passed the file.
    """
    details = invocation.output_text
    if invocation.timed_out:
        return ConversionResult.failed(ErrorCategory.TIMEOUT, details)
    if mentions_encryption(details):
        return ConversionResult.failed(ErrorCategory.ENCRYPTED_INPUT, details)
    return ConversionResult.failed(ErrorCategory.CONVERSION_FAILED, details)
