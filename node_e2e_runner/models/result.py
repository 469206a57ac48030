"""Models for test execution results."""

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class TestResult:
    """Result of running the test bundle against a single target.

    ``exit_ok`` is only true when the remote test command ran and exited zero.
    ``error`` is set for infrastructure failures (build, provisioning, transport)
    and stays ``None`` when the command ran but reported failing tests.
    """

    __test__ = False

    target: str
    exit_ok: bool
    output: str = ""
    error: str | None = None
    duration: float = 0.0


@dataclass(frozen=True, kw_only=True)
class RunSummary:
    """Aggregate of every per-target result of one run."""

    results: Sequence[TestResult]

    @property
    def total(self) -> int:
        """Number of targets that reported a result."""
        return len(self.results)

    @property
    def error_count(self) -> int:
        """Number of targets that failed with an infrastructure error."""
        return sum(1 for result in self.results if result.error is not None)

    @property
    def success(self) -> bool:
        """Whether every target ran its tests and they passed."""
        return all(result.exit_ok for result in self.results)
