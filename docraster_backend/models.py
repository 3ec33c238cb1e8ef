from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class ErrorCategory(str, Enum):
    INPUT_NOT_FOUND = "InputNotFound"
    ENCRYPTED_INPUT = "EncryptedInput"
    INFRASTRUCTURE_ERROR = "InfrastructureError"
    CONVERSION_FAILED = "ConversionFailed"
    NO_OUTPUT_PRODUCED = "NoOutputProduced"
    TIMEOUT = "Timeout"


# User-facing text per category; the HTTP layer sends these verbatim.
CATEGORY_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.INPUT_NOT_FOUND: "Input file not found",
    ErrorCategory.ENCRYPTED_INPUT: "PDF is encrypted and cannot be converted",
    ErrorCategory.INFRASTRUCTURE_ERROR: "Conversion environment unavailable",
    ErrorCategory.CONVERSION_FAILED: "File conversion failed",
    ErrorCategory.NO_OUTPUT_PRODUCED: "No converted files found",
    ErrorCategory.TIMEOUT: "File conversion timed out",
}


@dataclass(frozen=True)
class ConversionRequest:
    source_path: Path
    output_format: str = "png"


@dataclass(frozen=True)
class EncryptionAssessment:
    is_encrypted: bool
    reason: str


@dataclass(frozen=True)
class RenderInvocation:
    command: tuple[str, ...]
    output_lines: tuple[str, ...]
    exit_status: int
    timed_out: bool = False

    @property
    def output_text(self) -> str:
        return "\n".join(self.output_lines)

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0 and not self.timed_out


@dataclass(frozen=True)
class ConversionResult:
    """Outcome of one conversion request.

    Exactly one of ``output_file`` (on success) or ``category`` (on failure)
    is set.
    """

    success: bool
    output_file: Optional[str] = None
    category: Optional[ErrorCategory] = None
    message: Optional[str] = None
    details: Optional[str] = None

    @classmethod
    def succeeded(cls, output_file: str) -> "ConversionResult":
        return cls(success=True, output_file=output_file)

    @classmethod
    def failed(cls, category: ErrorCategory, details: Optional[str] = None) -> "ConversionResult":
        return cls(
            success=False,
            category=category,
            message=CATEGORY_MESSAGES[category],
            details=details,
        )

    @property
    def encrypted(self) -> bool:
        return self.category is ErrorCategory.ENCRYPTED_INPUT
