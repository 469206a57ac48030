"""Google Compute Engine backend implementation."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import google.auth
from google.auth.credentials import Credentials
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials as TokenCredentials
from pydantic import ValidationError

from node_e2e_runner.compute.base import (
    ComputeClient,
    ComputeError,
    InstanceSpec,
    InstanceState,
)
from node_e2e_runner.compute.gce.config import GCEConfig
from node_e2e_runner.compute.gce.models import Instance, Operation

log = logging.getLogger(__name__)

COMPUTE_SCOPE = "https://www.googleapis.com/auth/compute"


async def load_default_credentials(
    attempts: int = 10, delay: float = 6.0
) -> Credentials:
    """Load application default credentials for the compute scope.

    Raises:
        ComputeError: If no credentials could be loaded within ``attempts``

    """
    last_error: Exception | None = None
    for attempt in range(attempts):
        if attempt > 0:
            await asyncio.sleep(delay)
        try:
            credentials, _ = await asyncio.to_thread(
                google.auth.default, scopes=[COMPUTE_SCOPE]
            )
        except DefaultCredentialsError as e:
            last_error = e
            log.warning("Unable to load default credentials: %s", e)
            continue
        return credentials

    raise ComputeError(
        f"Unable to load default credentials after {attempts} attempt(s): "
        f"{last_error}"
    )


@dataclass(frozen=True, kw_only=True)
class GCEComputeClient(ComputeClient):
    """Compute Engine client talking to the v1 REST API.

    The access token is refreshed before any request once it has expired.
    """

    config: GCEConfig
    session: aiohttp.ClientSession = field(repr=False)
    credentials: Credentials = field(repr=False)
    _auth_lock: asyncio.Lock = field(
        default_factory=asyncio.Lock, init=False, repr=False
    )

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: GCEConfig
    ) -> AsyncGenerator["GCEComputeClient", None]:
        """Create client with managed session lifecycle."""
        if config.token is not None:
            credentials: Credentials = TokenCredentials(
                token=config.token.get_secret_value()
            )
        else:
            credentials = await load_default_credentials(
                config.credential_attempts, config.credential_delay
            )

        async with aiohttp.ClientSession(
            base_url=config.api_base_url,
            headers={"Accept": "application/json"},
        ) as session:
            yield cls(config=config, session=session, credentials=credentials)

    async def authorization(self) -> str:
        """Return the Authorization header value, refreshing the token if needed."""
        async with self._auth_lock:
            if not self.credentials.valid:
                log.info("Refreshing Compute Engine access token")
                try:
                    await asyncio.to_thread(self.credentials.refresh, Request())
                except GoogleAuthError as e:
                    raise ComputeError(f"Unable to refresh credentials: {e}") from e
        return f"Bearer {self.credentials.token}"

    @property
    def instances_url(self) -> str:
        """Collection URL of instances in the configured project and zone."""
        return (
            f"/compute/v1/projects/{self.config.project}"
            f"/zones/{self.config.zone}/instances"
        )

    def instance_body(self, spec: InstanceSpec) -> dict[str, Any]:
        """Build the insert request body for an instance."""
        body: dict[str, Any] = {
            "name": spec.name,
            "machineType": (
                f"zones/{self.config.zone}/machineTypes/{self.config.machine_type}"
            ),
            "networkInterfaces": [
                {
                    "accessConfigs": [
                        {"type": "ONE_TO_ONE_NAT", "name": "External NAT"}
                    ]
                }
            ],
            "disks": [
                {
                    "autoDelete": True,
                    "boot": True,
                    "type": "PERSISTENT",
                    "initializeParams": {
                        "sourceImage": (
                            f"projects/{spec.image_project}/global/images/{spec.image}"
                        ),
                    },
                }
            ],
        }
        if spec.metadata:
            body["metadata"] = {
                "items": [
                    {"key": key, "value": value}
                    for key, value in spec.metadata.items()
                ]
            }
        return body

    async def create_instance(self, spec: InstanceSpec) -> str:
        """Insert an instance and return its name."""
        log.info(
            "Creating instance: project=%s, zone=%s, name=%s, image=%s/%s",
            self.config.project,
            self.config.zone,
            spec.name,
            spec.image_project,
            spec.image,
        )
        data = await self._request(
            "POST", self.instances_url, json=self.instance_body(spec), expected=200
        )
        operation = _parse(Operation, data)
        if operation.error is not None and operation.error.errors:
            messages = "; ".join(
                f"{item.code}: {item.message}" for item in operation.error.errors
            )
            raise ComputeError(f"Could not create instance {spec.name}: {messages}")

        return spec.name

    async def get_instance(self, name: str) -> InstanceState:
        """Fetch an instance and return its status and external address."""
        data = await self._request("GET", f"{self.instances_url}/{name}", expected=200)
        instance = _parse(Instance, data)
        return InstanceState(
            name=instance.name,
            status=instance.status,
            address=instance.external_ip(),
        )

    async def delete_instance(self, name: str) -> None:
        """Request deletion of an instance."""
        log.info("Deleting instance %s", name)
        await self._request("DELETE", f"{self.instances_url}/{name}", expected=200)

    async def _request(
        self, method: str, url: str, *, expected: int, **kwargs: Any
    ) -> Any:
        headers = {"Authorization": await self.authorization()}
        try:
            async with self.session.request(
                method, url, headers=headers, **kwargs
            ) as response:
                if response.status != expected:
                    text = await response.text()
                    raise ComputeError(
                        f"{method} {url} failed: {response.status} {text}"
                    )
                return await response.json()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ComputeError(f"{method} {url} failed: {e}") from e


def _parse[M: (Instance, Operation)](model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ComputeError(f"Unexpected {model.__name__} payload: {e}") from e
