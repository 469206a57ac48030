"""Pydantic models for Compute Engine API responses."""

from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

type InstanceStatus = Literal[
    "PROVISIONING",
    "STAGING",
    "RUNNING",
    "STOPPING",
    "STOPPED",
    "SUSPENDING",
    "SUSPENDED",
    "REPAIRING",
    "TERMINATED",
]


class AccessConfig(BaseModel):
    """External access configuration of a network interface."""

    model_config = ConfigDict(populate_by_name=True)

    nat_ip: str | None = Field(default=None, alias="natIP")


class NetworkInterface(BaseModel):
    """Network interface attached to an instance."""

    model_config = ConfigDict(populate_by_name=True)

    access_configs: Sequence[AccessConfig] = Field(
        default_factory=list, alias="accessConfigs"
    )


class Instance(BaseModel):
    """An instance from the Compute Engine API."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    status: InstanceStatus
    network_interfaces: Sequence[NetworkInterface] = Field(
        default_factory=list, alias="networkInterfaces"
    )

    def external_ip(self) -> str | None:
        """Return the first NAT address assigned to the instance."""
        for interface in self.network_interfaces:
            for access_config in interface.access_configs:
                if access_config.nat_ip:
                    return access_config.nat_ip
        return None


class OperationErrorItem(BaseModel):
    """Single error reported by an operation."""

    code: str = ""
    message: str = ""


class OperationError(BaseModel):
    """Errors reported by an operation."""

    errors: Sequence[OperationErrorItem] = Field(default_factory=list)


class Operation(BaseModel):
    """A zonal operation returned by mutating requests."""

    name: str
    status: Literal["PENDING", "RUNNING", "DONE"]
    error: OperationError | None = None
