"""Google Compute Engine backend module."""

from node_e2e_runner.compute.gce.client import GCEComputeClient
from node_e2e_runner.compute.gce.config import GCEConfig
from node_e2e_runner.compute.gce.manifest import gce_manifest

__all__ = ["GCEComputeClient", "GCEConfig", "gce_manifest"]
