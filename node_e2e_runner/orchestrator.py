"""Test orchestrator for running the bundle across every target concurrently."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from node_e2e_runner.addresses import AddressRegistry
from node_e2e_runner.bundle import BundleBuilder
from node_e2e_runner.executor import TargetExecutor
from node_e2e_runner.models.policy import RunPolicy
from node_e2e_runner.models.result import RunSummary, TestResult
from node_e2e_runner.models.target import ImageTarget, TestTarget
from node_e2e_runner.provisioner import InstanceProvisioner
from node_e2e_runner.remote.base import RemoteShell

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator:
    """Fans test execution out to one task per target and collects results.

    Owns the instances it provisions: every image target gets a delete
    attempt once its execution is over, whatever the outcome.
    """

    __test__ = False

    bundle: BundleBuilder
    shell: RemoteShell
    addresses: AddressRegistry = field(default_factory=AddressRegistry)
    provisioner: InstanceProvisioner | None = None
    test_command: str = "./e2e_node.test"

    async def run(
        self, targets: Sequence[TestTarget], policy: RunPolicy
    ) -> RunSummary:
        """Run the bundle on all targets and return the aggregate summary.

        Args:
            targets: Hosts and images to test against
            policy: Cleanup and execution options for this run

        Returns:
            Summary holding exactly one result per target

        Raises:
            BuildError: If the test bundle could not be built

        """
        try:
            bundle_path = await self.bundle.get()
            if not targets:
                log.info("No targets provided")
                return RunSummary(results=[])

            executor = TargetExecutor(
                shell=self.shell,
                addresses=self.addresses,
                policy=policy,
                provisioner=self.provisioner,
                test_command=self.test_command,
            )
            results: asyncio.Queue[TestResult] = asyncio.Queue()

            log.info("Dispatching tests to %d target(s)...", len(targets))
            tasks = [
                asyncio.create_task(
                    self._run_target(
                        executor, target, bundle_path, index, policy, results
                    ),
                    name=f"target-{target.id}",
                )
                for index, target in enumerate(targets, start=1)
            ]

            collected: list[TestResult] = []
            for _ in range(len(tasks)):
                result = await results.get()
                log.info(
                    "Target completed: target=%s exit_ok=%s duration=%.1fs",
                    result.target,
                    result.exit_ok,
                    result.duration,
                )
                collected.append(result)

            await asyncio.gather(*tasks)
            log.info("Test execution completed")
            return RunSummary(results=collected)
        finally:
            await self.bundle.delete()

    async def _run_target(
        self,
        executor: TargetExecutor,
        target: TestTarget,
        bundle_path: Path,
        index: int,
        policy: RunPolicy,
        results: asyncio.Queue[TestResult],
    ) -> None:
        """Execute one target and put exactly one result on the queue."""
        log.info("Initializing tests using %s %s", target.kind, target.id)
        try:
            result = await executor.execute(target, bundle_path, index)
        except Exception as e:
            log.error("Target execution failed: %s", e, exc_info=e)
            result = TestResult(target=target.id, exit_ok=False, error=str(e))
        finally:
            if (
                isinstance(target, ImageTarget)
                and policy.delete_instances
                and self.provisioner is not None
            ):
                await self.provisioner.delete(target, index)

        await results.put(result)
