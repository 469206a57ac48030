"""Execution of the test bundle against a single target."""

import logging
import shlex
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from node_e2e_runner.addresses import AddressRegistry
from node_e2e_runner.compute.base import ComputeError
from node_e2e_runner.models.policy import RunPolicy
from node_e2e_runner.models.result import TestResult
from node_e2e_runner.models.target import HostTarget, ImageTarget, TestTarget
from node_e2e_runner.provisioner import InstanceProvisioner, ProvisioningError
from node_e2e_runner.remote.base import ExecResult, RemoteShell, TransportError

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class TargetExecutor:
    """Provisions (when needed), delivers the bundle and runs the tests."""

    shell: RemoteShell
    addresses: AddressRegistry
    policy: RunPolicy
    provisioner: InstanceProvisioner | None = None
    test_command: str = "./e2e_node.test"
    workspace_root: str = "/tmp"

    async def execute(
        self, target: TestTarget, bundle_path: Path, index: int = 0
    ) -> TestResult:
        """Run the bundle on ``target`` and return its result.

        Never raises for target-scoped failures; they are reported on the
        returned ``TestResult`` with ``exit_ok`` false and ``error`` set.
        """
        start = time.monotonic()

        match target:
            case ImageTarget():
                if self.provisioner is None:
                    return self._failure(
                        target, start, "No compute backend configured for images"
                    )
                try:
                    instance = await self.provisioner.provision(target, index)
                except ProvisioningError as e:
                    log.error("Provisioning failed for image %s: %s", target.image, e)
                    return self._failure(
                        target,
                        start,
                        f"Unable to create instance with running docker daemon "
                        f"for image {target.image}: {e}",
                    )
                host = instance.name
                clean_files = self.policy.clean_files_on(provisioned=True)
            case HostTarget():
                host = target.host
                if self.provisioner is not None:
                    try:
                        await self.provisioner.locate(host)
                    except ComputeError as e:
                        log.error("Host %s is not usable: %s", host, e)
                        return self._failure(target, start, str(e))
                clean_files = self.policy.clean_files_on(provisioned=False)

        address = self.addresses.resolve(host)
        log.info("Running tests for %s on %s", target.id, address)

        try:
            result = await self._run_remote(address, bundle_path, index, clean_files)
        except TransportError as e:
            log.error("Remote execution failed for %s: %s", target.id, e)
            return self._failure(target, start, str(e))

        log.info("Tests for %s finished: exit_ok=%s", target.id, result.exit_ok)
        return TestResult(
            target=target.id,
            exit_ok=result.exit_ok,
            output=result.output,
            duration=time.monotonic() - start,
        )

    async def _run_remote(
        self, address: str, bundle_path: Path, index: int, clean_files: bool
    ) -> ExecResult:
        workspace = f"{self.workspace_root}/node-e2e-{uuid.uuid4().hex[:8]}"
        try:
            await self._check(address, "mkdir", "-p", workspace)
            await self.shell.copy(bundle_path, address, workspace)
            await self._check(
                address, "tar", "-xzf", f"{workspace}/{bundle_path.name}", "-C", workspace
            )
            if self.policy.setup_node:
                await self._check(address, "sudo usermod -a -G docker $USER")

            command = (
                f"cd {shlex.quote(workspace)} && {self.test_command}"
                f" --report-dir={shlex.quote(workspace)}/results"
                f" --report-prefix={index}"
            )
            if self.policy.test_args:
                command = f"{command} {self.policy.test_args}"
            return await self.shell.exec(address, command)
        finally:
            if clean_files:
                await self._remove_workspace(address, workspace)

    async def _check(self, address: str, *command: str) -> ExecResult:
        result = await self.shell.exec(address, *command)
        if not result.exit_ok:
            raise TransportError(
                f"Command {' '.join(command)!r} failed on {address}: "
                f"{result.output.strip()}"
            )
        return result

    async def _remove_workspace(self, address: str, workspace: str) -> None:
        try:
            result = await self.shell.exec(address, "rm", "-rf", workspace)
        except TransportError as e:
            log.warning("Failed to clean up %s on %s: %s", workspace, address, e)
            return
        if not result.exit_ok:
            log.warning(
                "Failed to clean up %s on %s: %s", workspace, address, result.output
            )

    @staticmethod
    def _failure(target: TestTarget, start: float, error: str) -> TestResult:
        return TestResult(
            target=target.id,
            exit_ok=False,
            error=error,
            duration=time.monotonic() - start,
        )
