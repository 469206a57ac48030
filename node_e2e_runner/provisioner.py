"""Provisioning of disposable compute instances and lookup of existing ones."""

import asyncio
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from node_e2e_runner.addresses import AddressRegistry
from node_e2e_runner.compute.base import (
    ComputeClient,
    ComputeError,
    InstanceSpec,
    InstanceState,
)
from node_e2e_runner.models.instance import ProvisionedInstance
from node_e2e_runner.models.target import ImageTarget
from node_e2e_runner.remote.base import RemoteShell, TransportError

log = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 30
DEFAULT_DELAY = 20.0


class ProvisioningError(Exception):
    """Raised when an instance never became running and verified.

    ``instance`` is the last known state of the instance, with status
    ``failed``.
    """

    def __init__(self, instance: ProvisionedInstance, message: str) -> None:
        super().__init__(message)
        self.instance = instance

    @property
    def instance_name(self) -> str:
        return self.instance.name


def default_instance_name_prefix() -> str:
    """Return a unique prefix for the instances of one run."""
    return f"tmp-node-e2e-{uuid.uuid4().hex[:8]}"


def parse_instance_metadata(raw: str) -> Mapping[str, str]:
    """Parse instance metadata given as ``k1=v1,k2<path``.

    ``k=v`` sets a literal value, ``k<p`` reads the value from the local file
    ``p``. Malformed entries and unreadable files are logged and skipped.
    """
    metadata: dict[str, str] = {}
    for item in raw.split(","):
        if not item:
            continue
        key_value = item.split("=")
        if len(key_value) == 2:
            metadata[key_value[0]] = key_value[1]
            continue

        key_path = item.split("<")
        if len(key_path) != 2:
            log.error("Invalid instance metadata: %r", item)
            continue
        try:
            metadata[key_path[0]] = Path(key_path[1]).read_text()
        except OSError as e:
            log.error("Failed to read metadata file %r: %s", key_path[1], e)
    return metadata


@dataclass(frozen=True, kw_only=True)
class InstanceProvisioner:
    """Turns image references into running, verified instances.

    Polling for the running state and verifying the container runtime share a
    single budget of ``attempts`` tries spaced ``delay`` seconds apart.
    """

    compute: ComputeClient
    shell: RemoteShell
    addresses: AddressRegistry
    instance_name_prefix: str = field(default_factory=default_instance_name_prefix)
    metadata: Mapping[str, str] = field(default_factory=dict)
    attempts: int = DEFAULT_ATTEMPTS
    delay: float = DEFAULT_DELAY
    verify_command: Sequence[str] = ("sudo", "docker", "version")
    verify_expect: str = "Server"

    def instance_name(self, image: ImageTarget, index: int) -> str:
        """Name of the instance created for ``image`` in this run.

        ``index`` is the dispatch index of the target, so two targets using
        images of the same name never share an instance.
        """
        return f"{self.instance_name_prefix}-{image.image}-{index}"

    async def provision(self, image: ImageTarget, index: int) -> ProvisionedInstance:
        """Create an instance from ``image`` and wait until it is usable.

        Raises:
            ProvisioningError: If creation failed or the instance was not
                running and verified within the attempt budget

        """
        name = self.instance_name(image, index)
        instance = ProvisionedInstance(name=name, image=image)
        spec = InstanceSpec(
            name=name,
            image=image.image,
            image_project=image.project,
            metadata=self.metadata,
        )
        try:
            await self.compute.create_instance(spec)
        except ComputeError as e:
            raise ProvisioningError(
                instance.model_copy(update={"status": "failed"}),
                f"Could not create instance {name}: {e}",
            ) from e

        last_error = "no status observed"
        for attempt in range(self.attempts):
            if attempt > 0:
                await asyncio.sleep(self.delay)

            try:
                state = await self.compute.get_instance(name)
            except ComputeError as e:
                last_error = str(e)
                log.info("Instance %s not readable yet: %s", name, e)
                continue

            if not state.running:
                last_error = f"instance {name} not in state RUNNING, was {state.status}"
                log.info("Instance %s still in status=%s", name, state.status)
                continue

            instance = instance.model_copy(
                update={"status": "running", "address": state.address}
            )
            if state.address:
                self.addresses.register(name, state.address)

            if (problem := await self._verify(name)) is not None:
                last_error = problem
                log.info("Instance %s not verified yet: %s", name, problem)
                continue

            log.info("Instance %s is running and verified", name)
            return instance.model_copy(update={"status": "verified"})

        raise ProvisioningError(
            instance.model_copy(update={"status": "failed"}),
            f"Instance {name} not ready after {self.attempts} attempt(s): {last_error}",
        )

    async def locate(self, host: str) -> InstanceState:
        """Look up an existing instance used as a host target.

        Registers its external address so the host is reached through it.

        Raises:
            ComputeError: If the instance cannot be read or is not running

        """
        state = await self.compute.get_instance(host)
        if not state.running:
            raise ComputeError(
                f"instance {host} not in state RUNNING, was {state.status}"
            )
        if state.address:
            self.addresses.register(host, state.address)
        return state

    async def _verify(self, name: str) -> str | None:
        """Check the container runtime; return a problem description or None."""
        try:
            result = await self.shell.exec(
                self.addresses.resolve(name), *self.verify_command
            )
        except TransportError as e:
            return f"instance {name} unreachable: {e}"

        if not result.exit_ok:
            return (
                f"instance {name} not running docker daemon - "
                f"Command failed: {result.output}"
            )
        if self.verify_expect not in result.output:
            return (
                f"instance {name} not running docker daemon - "
                f"{self.verify_expect} not found: {result.output}"
            )
        return None

    async def delete(self, image: ImageTarget, index: int) -> None:
        """Delete the instance for ``image``; failures are only logged."""
        name = self.instance_name(image, index)
        try:
            await self.compute.delete_instance(name)
        except Exception:
            log.exception("Error deleting instance %s", name)
        else:
            log.info("Deleted instance %s", name)
        finally:
            self.addresses.forget(name)
