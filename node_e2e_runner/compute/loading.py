"""Loading of compute backends from entry points."""

from importlib.metadata import entry_points
from typing import Any

from node_e2e_runner.compute.manifest import ComputeManifest

ENTRY_POINT_GROUP = "node_e2e_runner.compute"


class ComputeProviderNotFoundError(Exception):
    """Raised when a compute backend is not found."""


def load_compute_manifest(key: str) -> ComputeManifest[Any]:
    """Load a compute backend manifest by key.

    Args:
        key: The backend key as registered in pyproject.toml (e.g., "gce")

    Returns:
        The compute backend manifest instance

    Raises:
        ComputeProviderNotFoundError: If no backend with the given key is found

    """
    entries = entry_points(group=ENTRY_POINT_GROUP)

    for entry in entries:
        if entry.name == key:
            manifest: ComputeManifest[Any] = entry.load()
            return manifest

    available = [e.name for e in entries]
    raise ComputeProviderNotFoundError(
        f"Compute provider '{key}' not found. Available providers: {available}"
    )
