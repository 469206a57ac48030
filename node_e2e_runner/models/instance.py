"""Models for provisioned compute instances."""

from typing import Literal

from pydantic import Field

from node_e2e_runner.models.base import Model
from node_e2e_runner.models.target import ImageTarget

type ProvisioningStatus = Literal["pending", "running", "verified", "failed"]


class ProvisionedInstance(Model):
    """A compute instance created for a single image target."""

    name: str = Field(..., description="Instance name, also used as ssh host")
    address: str | None = Field(
        default=None, description="External address, if one was assigned"
    )
    status: ProvisioningStatus = "pending"
    image: ImageTarget
