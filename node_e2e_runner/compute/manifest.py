"""Compute backend manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from pydantic import BaseModel

from node_e2e_runner.compute.base import ComputeClient


@dataclass(frozen=True, kw_only=True)
class ComputeManifest[ConfigT: BaseModel]:
    """Manifest describing a compute backend plugin.

    Holds the configuration class and the client factory so that backends can
    be loaded lazily by key.
    """

    config_cls: type[ConfigT]
    client_factory: Callable[[ConfigT], AbstractAsyncContextManager[ComputeClient]]
