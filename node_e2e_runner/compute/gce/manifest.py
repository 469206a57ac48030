"""Google Compute Engine backend manifest."""

from node_e2e_runner.compute.gce.client import GCEComputeClient
from node_e2e_runner.compute.gce.config import GCEConfig
from node_e2e_runner.compute.manifest import ComputeManifest

gce_manifest = ComputeManifest(
    config_cls=GCEConfig,
    client_factory=GCEComputeClient.from_config,
)
