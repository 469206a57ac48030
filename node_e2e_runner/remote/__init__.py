"""Remote shell module."""

from node_e2e_runner.remote.base import ExecResult, RemoteShell, TransportError
from node_e2e_runner.remote.config import SshConfig
from node_e2e_runner.remote.ssh import SshRemoteShell

__all__ = ["ExecResult", "RemoteShell", "SshConfig", "SshRemoteShell", "TransportError"]
