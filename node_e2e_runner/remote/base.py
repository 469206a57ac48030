"""Abstract remote shell used to deliver bundles and run commands on targets."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


class TransportError(Exception):
    """Raised when a target could not be reached or a command could not run."""


@dataclass(frozen=True, kw_only=True)
class ExecResult:
    """Outcome of a command that ran on a target."""

    output: str
    exit_ok: bool


class RemoteShell(ABC):
    """Copy files to and run commands on a target address.

    Implementations never retry; callers decide whether a failure is worth
    another attempt. A command that ran and exited non-zero is reported through
    ``ExecResult.exit_ok``, never as an exception.
    """

    @abstractmethod
    async def copy(self, local_path: Path, address: str, remote_dir: str) -> None:
        """Copy ``local_path`` into ``remote_dir`` on ``address``.

        Raises:
            TransportError: If the file could not be delivered

        """

    @abstractmethod
    async def exec(self, address: str, *command: str) -> ExecResult:
        """Run ``command`` on ``address`` and capture its combined output.

        Raises:
            TransportError: If the target could not be reached

        """
