"""Registry of host names to reachable network addresses."""

import logging
import threading
from dataclasses import dataclass, field

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class AddressRegistry:
    """Thread-safe mapping of instance names to the address used to reach them.

    Provisioned instances are addressed by name everywhere else; the remote
    shell resolves that name through this registry just before connecting.
    """

    _addresses: dict[str, str] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def register(self, name: str, address: str) -> None:
        """Map ``name`` to ``address``, replacing any previous mapping."""
        with self._lock:
            self._addresses[name] = address
        log.info("Registered address %s for %s", address, name)

    def resolve(self, name: str) -> str:
        """Return the registered address for ``name``, or ``name`` itself."""
        with self._lock:
            return self._addresses.get(name, name)

    def forget(self, name: str) -> None:
        """Drop any mapping for ``name``."""
        with self._lock:
            self._addresses.pop(name, None)
