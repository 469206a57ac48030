"""Human and machine readable summaries of a run."""

import logging
from typing import Any

from node_e2e_runner.models.result import RunSummary, TestResult

RULE = "=" * 64
BLUE = "\033[0;34m"
NO_COLOUR = "\033[0m"

STATUS_SYMBOLS = {
    "passed": "✅",
    "failed": "❌",
    "error": "❗",
}


def result_status(result: TestResult) -> str:
    """Classify a result as passed, failed (tests) or error (infrastructure)."""
    if result.error is not None:
        return "error"
    return "passed" if result.exit_ok else "failed"


def summarize(summary: RunSummary, *, color: bool = False) -> tuple[str, int]:
    """Render one block per target and return it with the process exit code."""
    rule = f"{BLUE}{RULE}{NO_COLOUR}" if color else RULE
    lines: list[str] = []

    for result in summary.results:
        lines.append(rule)
        outcome = "Success" if result.exit_ok else "Failure"
        lines.append(f"{outcome} Finished Host {result.target} Test Suite")
        if result.output:
            lines.append(result.output.rstrip("\n"))
        if result.error is not None:
            lines.append(result.error)
        lines.append(rule)

    if summary.success:
        return "\n".join(lines), 0

    lines.append(f"Failure: {summary.error_count} errors encountered.")
    return "\n".join(lines), 1


def log_results_summary(log: logging.Logger, summary: RunSummary) -> None:
    """Log a one-line-per-target summary of the run."""
    log.info(RULE)
    log.info("Test Results Summary:")
    log.info(RULE)

    for result in summary.results:
        status = result_status(result)
        log.info(
            "%s %s: %s (%.2fs)",
            STATUS_SYMBOLS[status],
            result.target,
            status,
            result.duration,
        )
        if result.error:
            log.info("  Error: %s", result.error)


def format_output(summary: RunSummary) -> dict[str, Any]:
    """Format a run summary for JSON output."""
    results = [
        {
            "target": result.target,
            "status": result_status(result),
            "exit_ok": result.exit_ok,
            "duration": result.duration,
            "error": result.error,
        }
        for result in summary.results
    ]

    return {
        "total": summary.total,
        "passed": sum(1 for r in results if r["status"] == "passed"),
        "failed": sum(1 for r in results if r["status"] == "failed"),
        "errors": summary.error_count,
        "success": summary.success,
        "results": results,
    }
