"""Build-once test bundle shared by every target of a run."""

import asyncio
import logging
import tarfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)

BUNDLE_NAME = "e2e_node_test.tar.gz"


class BuildError(Exception):
    """Raised when the test bundle could not be built."""


@dataclass(kw_only=True)
class BundleBuilder:
    """Memoized, build-once future for the test bundle path.

    The first call to ``get`` runs ``build``; every other caller, concurrent or
    later, waits for that single construction and observes the same path or
    the same ``BuildError``.
    """

    build: Callable[[], Awaitable[Path]]
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _built: bool = field(default=False, init=False)
    _deleted: bool = field(default=False, init=False)
    _path: Path | None = field(default=None, init=False)
    _error: BuildError | None = field(default=None, init=False)

    async def get(self) -> Path:
        """Return the bundle path, building it on first use.

        Raises:
            BuildError: If the construction failed or the bundle was deleted

        """
        async with self._lock:
            if not self._built:
                await self._construct()

        if self._error is not None:
            raise self._error
        if self._deleted or self._path is None:
            raise BuildError("Test bundle has already been deleted")
        return self._path

    async def _construct(self) -> None:
        log.info("Building test bundle...")
        try:
            self._path = await self.build()
        except BuildError as e:
            self._error = e
        except Exception as e:
            self._error = BuildError(f"Unable to create test bundle: {e}")
            self._error.__cause__ = e
        finally:
            self._built = True

        if self._error is not None:
            log.error("Test bundle build failed: %s", self._error)
        else:
            log.info("Test bundle built at %s", self._path)

    async def delete(self) -> None:
        """Remove the built bundle, if any. Safe to call any number of times."""
        async with self._lock:
            if self._deleted or self._path is None:
                return
            self._deleted = True
            path = self._path

        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            log.warning("Failed to delete test bundle %s: %s", path, e)
        else:
            log.info("Deleted test bundle %s", path)


async def create_test_archive(source_dir: Path, output_dir: Path) -> Path:
    """Pack the contents of ``source_dir`` into a tarball inside ``output_dir``."""
    if not source_dir.is_dir():
        raise BuildError(f"Bundle source directory not found: {source_dir}")

    archive = output_dir / BUNDLE_NAME

    def _pack() -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "w:gz") as tar:
            for entry in sorted(source_dir.iterdir()):
                if entry == archive:
                    continue
                tar.add(entry, arcname=entry.name)

    await asyncio.to_thread(_pack)
    return archive
