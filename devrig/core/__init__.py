"""Core devrig functionality."""

from __future__ import annotations

from devrig.core.interfaces import ComputeProvider, InstanceStatus, MeshClient

__all__ = [
    "ComputeProvider",
    "InstanceStatus",
    "MeshClient",
]
