"""Configuration for the ssh remote shell."""

from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel


class SshConfig(BaseModel):
    """Configuration for the ssh remote shell."""

    user: str | None = None
    identity_file: Path | None = None
    options: Sequence[str] = (
        "StrictHostKeyChecking=no",
        "UserKnownHostsFile=/dev/null",
        "LogLevel=ERROR",
        "ConnectTimeout=30",
    )
    ssh_binary: str = "ssh"
    scp_binary: str = "scp"
