"""Exceptions raised inside the conversion pipeline.

None of these reach HTTP callers directly: the pipeline turns them into a
failed :class:`~docraster_backend.models.ConversionResult`.
"""
from __future__ import annotations


class DocrasterError(RuntimeError):
    """Base class for all docraster exceptions."""


class InfrastructureError(DocrasterError):
    """Raised when the conversion environment itself is broken."""


class SandboxError(InfrastructureError):
    """Raised when the renderer profile directories cannot be created."""


class RendererNotFoundError(InfrastructureError):
    """Raised when no renderer executable can be located."""


class RendererLaunchError(InfrastructureError):
    """Raised when the renderer process cannot be spawned."""
