"""Abstract base class for cloud compute backends."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field

RUNNING = "RUNNING"


class ComputeError(Exception):
    """Raised when a compute API request fails."""


@dataclass(frozen=True, kw_only=True)
class InstanceSpec:
    """Backend-neutral description of an instance to create."""

    name: str
    image: str
    image_project: str
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class InstanceState:
    """Observed state of an instance."""

    name: str
    status: str
    address: str | None = None

    @property
    def running(self) -> bool:
        """Whether the backend reports the instance as running."""
        return self.status.upper() == RUNNING


class ComputeClient(ABC):
    """Create, inspect and delete compute instances."""

    @abstractmethod
    async def create_instance(self, spec: InstanceSpec) -> str:
        """Request a new instance and return its name.

        Raises:
            ComputeError: If the backend rejected the request

        """

    @abstractmethod
    async def get_instance(self, name: str) -> InstanceState:
        """Return the current state of an instance.

        Raises:
            ComputeError: If the instance could not be read

        """

    @abstractmethod
    async def delete_instance(self, name: str) -> None:
        """Request deletion of an instance.

        Raises:
            ComputeError: If the backend rejected the request

        """
