"""Tests for CLI module."""

import json
import tarfile
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from node_e2e_runner.cli import build_only, build_targets, main, parse_csv, run
from node_e2e_runner.compute.base import ComputeClient, ComputeError
from node_e2e_runner.compute.gce import GCEConfig
from node_e2e_runner.compute.manifest import ComputeManifest
from node_e2e_runner.models.policy import RunPolicy
from node_e2e_runner.models.target import (
    HostTarget,
    ImageConfig,
    ImageEntry,
    ImageTarget,
)
from node_e2e_runner.remote.base import ExecResult
from node_e2e_runner.reporter import RULE
from node_e2e_runner.testing.fakes import FakeComputeClient, FakeRemoteShell


@pytest.fixture
def bundle_source(tmp_path: Path) -> Path:
    """Directory with a fake test binary to bundle."""
    source = tmp_path / "src"
    source.mkdir()
    (source / "e2e_node.test").write_text("#!/bin/sh\nexit 0\n")
    return source


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("", ()),
        ("node-a", ("node-a",)),
        ("node-a, node-b,,", ("node-a", "node-b")),
    ],
)
def test_parse_csv(value: str, expected: tuple[str, ...]) -> None:
    """Splits comma-separated values, dropping blanks."""
    assert parse_csv(value) == expected


class TestBuildTargets:
    """Tests for build_targets."""

    def test_hosts_only(self) -> None:
        """Turns hosts into host targets."""
        assert build_targets(["node-a", "node-b"], [], "") == [
            HostTarget(host="node-a"),
            HostTarget(host="node-b"),
        ]

    def test_images_with_project(self) -> None:
        """Turns --images into image targets in the given project."""
        assert build_targets([], ["cos-stable"], "cos-cloud") == [
            ImageTarget(image="cos-stable", project="cos-cloud")
        ]

    def test_images_require_project(self) -> None:
        """Refuses --images without --image-project."""
        with pytest.raises(ValueError, match="--image-project"):
            build_targets([], ["cos-stable"], "")

    def test_merges_config_file_images(self) -> None:
        """Images from the flag are merged into those from the config file."""
        config = ImageConfig(
            images={"cos": ImageEntry(image="cos-stable", project="cos-cloud")}
        )

        targets = build_targets(["node-a"], ["ubuntu-2204"], "ubuntu-os-cloud", config)

        assert targets == [
            ImageTarget(image="cos-stable", project="cos-cloud"),
            ImageTarget(image="ubuntu-2204", project="ubuntu-os-cloud"),
            HostTarget(host="node-a"),
        ]

    def test_config_image_requires_project(self) -> None:
        """Refuses config file entries without a project."""
        config = ImageConfig(images={"cos": ImageEntry(image="cos-stable")})

        with pytest.raises(ValueError, match="Invalid config for cos"):
            build_targets([], [], "", config)


async def test_run_two_hosts_one_failing(
    bundle_source: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Reports two blocks and exits 1 when one of two hosts fails."""

    def handler(address: str, command: tuple[str, ...]) -> ExecResult:
        if "e2e_node.test" in " ".join(command):
            exit_ok = address == "node-a"
            return ExecResult(output=f"tests on {address}", exit_ok=exit_ok)
        return ExecResult(output="", exit_ok=True)

    shell = FakeRemoteShell(handler=handler)
    with patch("node_e2e_runner.cli.SshRemoteShell", return_value=shell):
        exit_code = await run(
            targets=[HostTarget(host="node-a"), HostTarget(host="node-b")],
            policy=RunPolicy(),
            bundle_source=bundle_source,
            bundle_output=tmp_path / "out",
        )

    assert exit_code == 1
    out = capsys.readouterr().out
    assert "Success Finished Host node-a Test Suite" in out
    assert "Failure Finished Host node-b Test Suite" in out
    assert out.count(RULE) == 4
    assert not (tmp_path / "out" / "e2e_node_test.tar.gz").exists()


async def test_run_all_passing(
    bundle_source: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Exits 0 and prints a JSON summary when every host passes."""
    with patch("node_e2e_runner.cli.SshRemoteShell", return_value=FakeRemoteShell()):
        exit_code = await run(
            targets=[HostTarget(host="node-a")],
            policy=RunPolicy(),
            bundle_source=bundle_source,
            bundle_output=tmp_path / "out",
        )

    assert exit_code == 0
    out = capsys.readouterr().out
    summary = json.loads(out[out.index("{") :])
    assert summary["total"] == 1
    assert summary["success"] is True


async def test_run_build_failure(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Exits 1 without touching targets when the bundle cannot be built."""
    shell = FakeRemoteShell()
    with patch("node_e2e_runner.cli.SshRemoteShell", return_value=shell):
        exit_code = await run(
            targets=[HostTarget(host="node-a")],
            policy=RunPolicy(),
            bundle_source=tmp_path / "missing",
            bundle_output=tmp_path / "out",
        )

    assert exit_code == 1
    assert shell.commands == []
    assert capsys.readouterr().out == ""


def fake_manifest(
    compute: FakeComputeClient, error: Exception | None = None
) -> ComputeManifest[GCEConfig]:
    """Manifest whose client factory hands out ``compute``, or raises ``error``."""

    @asynccontextmanager
    async def client_factory(config: GCEConfig) -> AsyncGenerator[ComputeClient, None]:
        if error is not None:
            raise error
        yield compute

    return ComputeManifest(config_cls=GCEConfig, client_factory=client_factory)


async def test_run_looks_up_hosts_with_compute_config(
    bundle_source: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Hosts are checked against the compute backend when one is configured."""
    shell = FakeRemoteShell()
    compute = FakeComputeClient(states=["TERMINATED"])
    with (
        patch("node_e2e_runner.cli.SshRemoteShell", return_value=shell),
        patch(
            "node_e2e_runner.cli.load_compute_manifest",
            return_value=fake_manifest(compute),
        ),
    ):
        exit_code = await run(
            targets=[HostTarget(host="node-a")],
            policy=RunPolicy(),
            bundle_source=bundle_source,
            bundle_output=tmp_path / "out",
            compute_config_json='{"project": "p", "zone": "z"}',
        )

    assert exit_code == 1
    assert compute.polls == 1
    assert shell.commands == []
    assert "instance node-a not in state RUNNING, was TERMINATED" in (
        capsys.readouterr().out
    )


async def test_run_compute_setup_failure(
    bundle_source: Path, tmp_path: Path
) -> None:
    """Exits 1 when the compute backend cannot be set up."""
    shell = FakeRemoteShell()
    manifest = fake_manifest(
        FakeComputeClient(), error=ComputeError("Unable to load default credentials")
    )
    with (
        patch("node_e2e_runner.cli.SshRemoteShell", return_value=shell),
        patch("node_e2e_runner.cli.load_compute_manifest", return_value=manifest),
    ):
        exit_code = await run(
            targets=[ImageTarget(image="cos-stable", project="cos-cloud")],
            policy=RunPolicy(),
            bundle_source=bundle_source,
            bundle_output=tmp_path / "out",
            compute_config_json='{"project": "p", "zone": "z"}',
        )

    assert exit_code == 1
    assert shell.commands == []


async def test_build_only(
    bundle_source: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Builds the bundle, prints its path and keeps it."""
    exit_code = await build_only(bundle_source, tmp_path / "out")

    assert exit_code == 0
    path = Path(capsys.readouterr().out.strip())
    assert path == tmp_path / "out" / "e2e_node_test.tar.gz"
    with tarfile.open(path) as tar:
        assert tar.getnames() == ["e2e_node.test"]


async def test_build_only_failure(tmp_path: Path) -> None:
    """Exits 1 when the bundle source is missing."""
    assert await build_only(tmp_path / "missing", tmp_path / "out") == 1


class TestMain:
    """Tests for argument validation in main."""

    @pytest.mark.parametrize(
        ("argv", "message"),
        [
            ([], "Must specify one of --image-config-file, --hosts, --images"),
            (["--images", "cos-stable"], "Must specify --image-project"),
            (
                ["--images", "cos-stable", "--image-project", "cos-cloud"],
                "Must specify --compute-config",
            ),
        ],
    )
    def test_rejects_invalid_arguments(
        self,
        argv: list[str],
        message: str,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Exits with status 2 and a helpful message."""
        with (
            patch("sys.argv", ["node-e2e-runner", *argv]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 2
        assert message in capsys.readouterr().err

    def test_rejects_missing_image_config_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Reports an unreadable image config file."""
        argv = ["--image-config-file", str(tmp_path / "nope.yaml")]
        with (
            patch("sys.argv", ["node-e2e-runner", *argv]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 2
        assert "Could not load image config file" in capsys.readouterr().err

    def test_build_only_exits_with_build_status(
        self, bundle_source: Path, tmp_path: Path
    ) -> None:
        """--build-only builds and exits without requiring targets."""
        argv = [
            "--build-only",
            "--bundle-source",
            str(bundle_source),
            "--bundle-output",
            str(tmp_path / "out"),
        ]
        with (
            patch("sys.argv", ["node-e2e-runner", *argv]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 0
        assert (tmp_path / "out" / "e2e_node_test.tar.gz").exists()

    def test_runs_hosts(self, bundle_source: Path, tmp_path: Path) -> None:
        """Parses flags into a policy and runs against the hosts."""
        argv = [
            "--hosts",
            "node-a,node-b",
            "--bundle-source",
            str(bundle_source),
            "--bundle-output",
            str(tmp_path / "out"),
            "--no-cleanup",
            "--setup-node",
            "--test-args=--ginkgo.focus=Kubelet",
        ]
        with (
            patch("sys.argv", ["node-e2e-runner", *argv]),
            patch("node_e2e_runner.cli.run", new=Mock(return_value=0)) as run_mock,
            patch("node_e2e_runner.cli.asyncio.run", side_effect=lambda c: c),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 0
        kwargs = run_mock.call_args.kwargs
        assert kwargs["targets"] == [HostTarget(host="node-a"), HostTarget(host="node-b")]
        assert kwargs["policy"] == RunPolicy(
            cleanup=False,
            delete_instances=True,
            setup_node=True,
            test_args="--ginkgo.focus=Kubelet",
        )

    def test_removes_default_bundle_directory(self, bundle_source: Path) -> None:
        """The temporary bundle directory is gone once the run is over."""
        argv = ["--hosts", "node-a", "--bundle-source", str(bundle_source)]
        with (
            patch("sys.argv", ["node-e2e-runner", *argv]),
            patch("node_e2e_runner.cli.run", new=Mock(return_value=0)) as run_mock,
            patch("node_e2e_runner.cli.asyncio.run", side_effect=lambda c: c),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 0
        bundle_output = run_mock.call_args.kwargs["bundle_output"]
        assert bundle_output.name.startswith("node-e2e-bundle-")
        assert not bundle_output.exists()
