"""Remote shell implementation backed by the ssh and scp binaries."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from node_e2e_runner.remote.base import ExecResult, RemoteShell, TransportError
from node_e2e_runner.remote.config import SshConfig

log = logging.getLogger(__name__)

# ssh reserves this exit status for its own connection errors.
SSH_CONNECTION_ERROR = 255


@dataclass(frozen=True, kw_only=True)
class SshRemoteShell(RemoteShell):
    """Remote shell that shells out to ``ssh`` and ``scp``."""

    config: SshConfig = field(default_factory=SshConfig)

    async def copy(self, local_path: Path, address: str, remote_dir: str) -> None:
        """Copy a local file into a directory on the target with scp."""
        destination = f"{self._destination(address)}:{remote_dir}/"
        args = [
            self.config.scp_binary,
            *self._common_args(),
            str(local_path),
            destination,
        ]
        returncode, output = await self._run(args)
        if returncode != 0:
            raise TransportError(
                f"Failed to copy {local_path} to {destination}: "
                f"exit status {returncode}: {output.strip()}"
            )

    async def exec(self, address: str, *command: str) -> ExecResult:
        """Run a command over ssh and capture combined stdout and stderr."""
        args = [
            self.config.ssh_binary,
            *self._common_args(),
            self._destination(address),
            "--",
            *command,
        ]
        returncode, output = await self._run(args)
        if returncode == SSH_CONNECTION_ERROR:
            raise TransportError(
                f"Unable to run {' '.join(command)!r} on {address}: {output.strip()}"
            )
        return ExecResult(output=output, exit_ok=returncode == 0)

    def _destination(self, address: str) -> str:
        if self.config.user:
            return f"{self.config.user}@{address}"
        return address

    def _common_args(self) -> list[str]:
        args: list[str] = []
        for option in self.config.options:
            args.extend(["-o", option])
        if self.config.identity_file is not None:
            args.extend(["-i", str(self.config.identity_file)])
        return args

    async def _run(self, args: Sequence[str]) -> tuple[int, str]:
        log.debug("Running %s", " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise TransportError(f"Unable to start {args[0]}: {e}") from e

        stdout, _ = await process.communicate()
        returncode = await process.wait()
        return returncode, stdout.decode(errors="replace")
