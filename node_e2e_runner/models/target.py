"""Models for the machines a test bundle is executed against."""

from collections.abc import Mapping
from typing import Literal

from pydantic import Field

from node_e2e_runner.models.base import Model


class HostTarget(Model):
    """A pre-existing machine reachable by host name or address."""

    kind: Literal["host"] = "host"
    host: str = Field(..., min_length=1, description="Host name or IP address")

    @property
    def id(self) -> str:
        """Identifier used in logs and reports."""
        return self.host


class ImageTarget(Model):
    """A disposable instance to provision from a compute image."""

    kind: Literal["image"] = "image"
    image: str = Field(..., min_length=1, description="Compute image name")
    project: str = Field(..., min_length=1, description="Project owning the image")

    @property
    def id(self) -> str:
        """Identifier used in logs and reports."""
        return self.image


type TestTarget = HostTarget | ImageTarget


class ImageEntry(Model):
    """Single image reference in an image config file."""

    image: str = Field(..., min_length=1)
    project: str = Field(default="", description="Project owning the image")


class ImageConfig(Model):
    """Images to run against, keyed by short name.

    Loaded from a YAML file of the form::

        images:
          short-name:
            image: gce-image-name
            project: gce-image-project
    """

    images: Mapping[str, ImageEntry] = Field(default_factory=dict)
