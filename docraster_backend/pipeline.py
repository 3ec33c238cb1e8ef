"""Request-level orchestration of one document conversion.

Stages run once each, in order::

    Received -> Validating -> EncryptionChecked -> SandboxReady -> Rendering
             -> Succeeded | Failed

There is no retry: a failed request has to be resubmitted by the caller.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from . import config
from .classifier import classify_render_failure
from .encryption import applies_to, detect_encryption
from .exceptions import InfrastructureError
from .models import ConversionRequest, ConversionResult, ErrorCategory
from .outputs import resolve_output
from .renderer import DocumentRenderer, SofficeRenderer
from .sandbox import SandboxEnvironment, build_sandbox_environment, ephemeral_sandbox

LOGGER = logging.getLogger(__name__)

SANDBOX_SHARED = "shared"
SANDBOX_EPHEMERAL = "ephemeral"

# One lock per shared profile root; the renderer keeps an instance lock inside
# its user installation, so two runs against the same root must not overlap.
_PROFILE_LOCKS: dict[Path, threading.Lock] = {}
_PROFILE_LOCKS_GUARD = threading.Lock()


def _profile_lock(root: Path) -> threading.Lock:
    key = Path(root).resolve()
    with _PROFILE_LOCKS_GUARD:
        lock = _PROFILE_LOCKS.get(key)
        if lock is None:
            lock = _PROFILE_LOCKS[key] = threading.Lock()
        return lock


class ConversionPipeline:
    def __init__(
        self,
        output_dir: Path,
        profile_root: Path,
        renderer: DocumentRenderer,
        target_format: str = "png",
        sandbox_mode: str = SANDBOX_SHARED,
    ) -> None:
        if sandbox_mode not in (SANDBOX_SHARED, SANDBOX_EPHEMERAL):
            raise ValueError(f"Unknown sandbox mode: {sandbox_mode}")
        self.output_dir = Path(output_dir)
        self.profile_root = Path(profile_root)
        self.renderer = renderer
        self.target_format = target_format.lstrip(".").lower()
        self.sandbox_mode = sandbox_mode

    @contextmanager
    def _sandbox(self) -> Iterator[SandboxEnvironment]:
        if self.sandbox_mode == SANDBOX_EPHEMERAL:
            with ephemeral_sandbox(self.profile_root) as sandbox:
                yield sandbox
            return
        with _profile_lock(self.profile_root):
            yield build_sandbox_environment(self.profile_root)

    def convert(self, request: ConversionRequest) -> ConversionResult:
        """Run one request through the pipeline. Never raises."""
        try:
            return self._convert(request)
        except InfrastructureError as exc:
            LOGGER.error("Conversion environment failure for %s: %s", request.source_path, exc)
            return ConversionResult.failed(ErrorCategory.INFRASTRUCTURE_ERROR, str(exc))
        except Exception as exc:
            LOGGER.exception("Unexpected failure converting %s", request.source_path)
            return ConversionResult.failed(ErrorCategory.INFRASTRUCTURE_ERROR, f"{type(exc).__name__}: {exc}")

    def _convert(self, request: ConversionRequest) -> ConversionResult:
        source = Path(request.source_path)
        LOGGER.info("Conversion requested for %s", source.name)

        if not source.is_file():
            LOGGER.warning("Input file not found: %s", source)
            return ConversionResult.failed(ErrorCategory.INPUT_NOT_FOUND)

        requested_format = (request.output_format or self.target_format).lstrip(".").lower()
        if requested_format != self.target_format:
            return ConversionResult.failed(
                ErrorCategory.CONVERSION_FAILED,
                f"Unsupported output format: {requested_format} (this service renders {self.target_format})",
            )

        if applies_to(source):
            assessment = detect_encryption(source)
            if assessment.is_encrypted:
                LOGGER.warning("Rejecting encrypted input %s (%s)", source.name, assessment.reason)
                return ConversionResult.failed(ErrorCategory.ENCRYPTED_INPUT, assessment.reason)

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise InfrastructureError(f"Cannot create output directory {self.output_dir}: {exc}") from exc

        with self._sandbox() as sandbox:
            LOGGER.info("Rendering %s to %s", source.name, self.target_format)
            invocation = self.renderer.render(source, self.output_dir, sandbox)

        if not invocation.succeeded:
            LOGGER.error(
                "Renderer failed for %s (command: %s, exit %s, timed out: %s): %s",
                source.name,
                " ".join(invocation.command),
                invocation.exit_status,
                invocation.timed_out,
                invocation.output_text,
            )
            return classify_render_failure(invocation)

        produced = resolve_output(self.output_dir, source.stem, self.target_format)
        if produced is None:
            LOGGER.warning("Renderer exited cleanly but produced no %s for %s", self.target_format, source.name)
            return ConversionResult.failed(ErrorCategory.NO_OUTPUT_PRODUCED)

        LOGGER.info("Converted %s -> %s", source.name, produced.name)
        return ConversionResult.succeeded(produced.name)


def build_default_pipeline(renderer: Optional[DocumentRenderer] = None) -> ConversionPipeline:
    """Pipeline wired from environment configuration."""
    if renderer is None:
        renderer = SofficeRenderer(
            executable=config.SOFFICE_PATH,
            target_format=config.TARGET_FORMAT,
            timeout=config.RENDER_TIMEOUT_SECONDS,
            fallback_name=config.SOFFICE_FALLBACK_NAME,
        )
    return ConversionPipeline(
        output_dir=config.CONVERTED_DIR,
        profile_root=config.PROFILE_DIR,
        renderer=renderer,
        target_format=config.TARGET_FORMAT,
        sandbox_mode=config.SANDBOX_MODE,
    )
