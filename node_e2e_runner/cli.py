"""CLI entry point for running node e2e tests against hosts and images."""

import argparse
import asyncio
import json
import logging
import sys
import tempfile
from collections.abc import Sequence
from contextlib import AsyncExitStack
from functools import partial
from pathlib import Path

from node_e2e_runner.addresses import AddressRegistry
from node_e2e_runner.bundle import BuildError, BundleBuilder, create_test_archive
from node_e2e_runner.compute.base import ComputeError
from node_e2e_runner.compute.loading import load_compute_manifest
from node_e2e_runner.image_config import load_image_config
from node_e2e_runner.models.policy import RunPolicy
from node_e2e_runner.models.target import (
    HostTarget,
    ImageConfig,
    ImageEntry,
    ImageTarget,
    TestTarget,
)
from node_e2e_runner.orchestrator import TestOrchestrator
from node_e2e_runner.provisioner import (
    InstanceProvisioner,
    default_instance_name_prefix,
    parse_instance_metadata,
)
from node_e2e_runner.remote.config import SshConfig
from node_e2e_runner.remote.ssh import SshRemoteShell
from node_e2e_runner.reporter import format_output, log_results_summary, summarize


def parse_csv(value: str) -> Sequence[str]:
    """Parse a comma-separated flag value."""
    return tuple(item.strip() for item in value.split(",") if item.strip())


def build_targets(
    hosts: Sequence[str],
    images: Sequence[str],
    image_project: str,
    image_config: ImageConfig | None = None,
) -> Sequence[TestTarget]:
    """Merge the image config file, ``--images`` and ``--hosts`` into targets.

    Raises:
        ValueError: If an image has no project to load it from

    """
    entries = dict(image_config.images) if image_config is not None else {}

    if images and not image_project:
        raise ValueError("Must specify --image-project if you specify --images")
    for image in images:
        entries[image] = ImageEntry(image=image, project=image_project)

    for short_name, entry in entries.items():
        if not entry.project:
            raise ValueError(
                f"Invalid config for {short_name}; must specify a project"
            )

    targets: list[TestTarget] = [
        ImageTarget(image=entry.image, project=entry.project)
        for entry in entries.values()
    ]
    targets.extend(HostTarget(host=host) for host in hosts)
    return targets


async def build_only(bundle_source: Path, bundle_output: Path) -> int:
    """Build the test bundle and exit."""
    log = logging.getLogger("node_e2e_runner")
    try:
        path = await create_test_archive(bundle_source, bundle_output)
    except BuildError as e:
        log.error("%s", e)
        return 1
    print(path)
    return 0


async def run(
    targets: Sequence[TestTarget],
    policy: RunPolicy,
    bundle_source: Path,
    bundle_output: Path,
    compute_provider: str = "gce",
    compute_config_json: str = "",
    ssh_config_json: str = "",
    instance_name_prefix: str = "",
    instance_metadata: str = "",
) -> int:
    """Run the tests on all targets and return the exit code."""
    log = logging.getLogger("node_e2e_runner")

    ssh_config = SshConfig(**json.loads(ssh_config_json or "{}"))
    shell = SshRemoteShell(config=ssh_config)
    addresses = AddressRegistry()
    bundle = BundleBuilder(build=partial(create_test_archive, bundle_source, bundle_output))

    async with AsyncExitStack() as stack:
        provisioner: InstanceProvisioner | None = None
        if compute_config_json or any(
            isinstance(target, ImageTarget) for target in targets
        ):
            log.info("Loading compute provider: %s", compute_provider)
            manifest = load_compute_manifest(compute_provider)
            config = manifest.config_cls(**json.loads(compute_config_json))
            try:
                compute = await stack.enter_async_context(
                    manifest.client_factory(config)
                )
            except ComputeError as e:
                log.error("Unable to set up compute provider: %s", e)
                return 1
            provisioner = InstanceProvisioner(
                compute=compute,
                shell=shell,
                addresses=addresses,
                instance_name_prefix=instance_name_prefix
                or default_instance_name_prefix(),
                metadata=parse_instance_metadata(instance_metadata),
            )

        orchestrator = TestOrchestrator(
            bundle=bundle,
            shell=shell,
            addresses=addresses,
            provisioner=provisioner,
        )
        try:
            summary = await orchestrator.run(targets, policy)
        except BuildError as e:
            log.error("Unable to create test archive: %s", e)
            return 1

    log_results_summary(log, summary)

    text, exit_code = summarize(summary, color=sys.stdout.isatty())
    print(text)
    print(json.dumps(format_output(summary), indent=2))
    return exit_code


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run node e2e tests on remote hosts or provisioned images"
    )
    parser.add_argument("--hosts", default="", help="Comma-separated hosts to test")
    parser.add_argument("--images", default="", help="Comma-separated images to test")
    parser.add_argument(
        "--image-project", default="", help="Project the --images live in"
    )
    parser.add_argument(
        "--image-config-file",
        type=Path,
        help="YAML file describing images to run",
    )
    parser.add_argument(
        "--instance-name-prefix", default="", help="Prefix for instance names"
    )
    parser.add_argument(
        "--instance-metadata",
        default="",
        help="Instance metadata as k=v or k<path entries, comma-separated",
    )
    parser.add_argument(
        "--compute-provider", default="gce", help="Compute backend key (gce)"
    )
    parser.add_argument(
        "--compute-config",
        default="",
        help="JSON configuration for the compute backend; hosts are looked up"
        " through it when given",
    )
    parser.add_argument(
        "--ssh-config", default="", help="JSON configuration for ssh access"
    )
    parser.add_argument(
        "--bundle-source",
        type=Path,
        default=Path.cwd(),
        help="Directory packed into the test bundle",
    )
    parser.add_argument(
        "--bundle-output",
        type=Path,
        help="Directory the test bundle is written to (default: temporary)",
    )
    parser.add_argument(
        "--test-args", default="", help="Arguments passed to the test command"
    )
    parser.add_argument(
        "--cleanup",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Remove files from remote hosts after the run",
    )
    parser.add_argument(
        "--delete-instances",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Delete any instances created",
    )
    parser.add_argument(
        "--setup-node",
        action="store_true",
        help="Add the remote user to the docker group before testing",
    )
    parser.add_argument(
        "--build-only",
        action="store_true",
        help="Build the test bundle and exit",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.build_only:
        bundle_output = args.bundle_output or Path(
            tempfile.mkdtemp(prefix="node-e2e-bundle-")
        )
        sys.exit(asyncio.run(build_only(args.bundle_source, bundle_output)))

    if not (args.hosts or args.images or args.image_config_file):
        parser.error("Must specify one of --image-config-file, --hosts, --images")

    image_config = None
    if args.image_config_file is not None:
        try:
            image_config = asyncio.run(load_image_config(args.image_config_file))
        except (FileNotFoundError, ValueError) as e:
            parser.error(f"Could not load image config file: {e}")

    try:
        targets = build_targets(
            parse_csv(args.hosts),
            parse_csv(args.images),
            args.image_project,
            image_config,
        )
    except ValueError as e:
        parser.error(str(e))

    if any(isinstance(target, ImageTarget) for target in targets):
        if not args.compute_config:
            parser.error("Must specify --compute-config to launch images")

    policy = RunPolicy(
        cleanup=args.cleanup,
        delete_instances=args.delete_instances,
        setup_node=args.setup_node,
        test_args=args.test_args,
    )

    with tempfile.TemporaryDirectory(prefix="node-e2e-bundle-") as scratch:
        exit_code = asyncio.run(
            run(
                targets=targets,
                policy=policy,
                bundle_source=args.bundle_source,
                bundle_output=args.bundle_output or Path(scratch),
                compute_provider=args.compute_provider,
                compute_config_json=args.compute_config,
                ssh_config_json=args.ssh_config,
                instance_name_prefix=args.instance_name_prefix,
                instance_metadata=args.instance_metadata,
            )
        )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
