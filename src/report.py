"""
Run report: human-readable summary and JSON exports.
"""

import json
import logging
import os
import re
from datetime import datetime
from typing import List

from models import Outcome, OutcomeStatus, Summary

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = seconds % 60
        return f"{mins}m {secs:.0f}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        secs = seconds % 60
        return f"{hours}h {mins}m {secs:.0f}s"


def _truncate(text: str, limit: int) -> str:
    if text and len(text) > limit:
        return text[:limit] + "..."
    return text or "Unknown"


def _by_status(summary: Summary, status: OutcomeStatus) -> List[Outcome]:
    return [o for o in summary.outcomes if o.status is status]


def print_report(summary: Summary) -> None:
    """Log timing, statistics and per-target tables."""
    logger.info("")
    logger.info("=" * 70)
    logger.info(f"RECONCILIATION REPORT: {summary.action_label}")
    logger.info("=" * 70)

    logger.info("")
    logger.info("TIMING SUMMARY")
    logger.info("-" * 40)
    logger.info(
        f"Start time:      {datetime.fromtimestamp(summary.start_time).strftime('%Y-%m-%d %H:%M:%S')}"
    )
    logger.info(
        f"End time:        {datetime.fromtimestamp(summary.end_time).strftime('%Y-%m-%d %H:%M:%S')}"
    )
    logger.info(f"Total duration:  {format_duration(summary.elapsed_seconds)}")

    logger.info("")
    logger.info("STATISTICS")
    logger.info("-" * 40)
    for k, v in summary.as_stats().items():
        logger.info(f"{k:20s}: {v}")
    if summary.cancelled:
        logger.warning("Run was cancelled; totals cover completed targets only")

    succeeded = _by_status(summary, OutcomeStatus.SUCCEEDED)
    failed = _by_status(summary, OutcomeStatus.FAILED)
    skipped = _by_status(summary, OutcomeStatus.SKIPPED)

    if succeeded:
        logger.info("")
        logger.info("SUCCEEDED")
        logger.info("-" * 40)
        logger.info(f"{'Target':<30} {'Resource Group':<25} {'Status'}")
        logger.info("-" * 70)
        for o in succeeded:
            code = o.status_code if o.status_code is not None else "-"
            logger.info(f"{o.target.name:<30} {o.target.resource_group:<25} {code}")

    if failed:
        logger.info("")
        logger.info("FAILED")
        logger.info("-" * 40)
        logger.info(f"{'Target':<30} {'Error Kind':<20} {'Reason'}")
        logger.info("-" * 70)
        for o in failed:
            kind = o.error_kind.value if o.error_kind else "-"
            logger.info(f"{o.target.name:<30} {kind:<20} {_truncate(o.reason, 60)}")

    if skipped:
        logger.info("")
        logger.info("SKIPPED")
        logger.info("-" * 40)
        for o in skipped:
            logger.info(f"  {o.target.name}: {_truncate(o.reason, 60)}")

    logger.info("")
    logger.info("=" * 70)


def _outcome_dict(o: Outcome) -> dict:
    detail = o.detail
    if isinstance(detail, dict) and "template" in detail:
        # Templates are written separately by write_export_artifacts
        detail = {k: v for k, v in detail.items() if k != "template"}
    return {
        "target": o.target.name,
        "resource_group": o.target.resource_group,
        "variant": o.target.variant,
        "status": o.status.value,
        "reason": o.reason,
        "error_kind": o.error_kind.value if o.error_kind else None,
        "status_code": o.status_code,
        "duration_seconds": o.duration_seconds,
        "detail": detail,
    }


def _slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", text).strip("-")


def export_results_json(summary: Summary, directory: str = ".") -> str:
    """Export the summary to a JSON file; returns the file path."""
    report = {
        "action": summary.action_label,
        "start_time": datetime.fromtimestamp(summary.start_time).isoformat(),
        "end_time": datetime.fromtimestamp(summary.end_time).isoformat(),
        "total_duration_seconds": summary.elapsed_seconds,
        "cancelled": summary.cancelled,
        "statistics": summary.as_stats(),
        "results": [_outcome_dict(o) for o in summary.outcomes],
    }

    os.makedirs(directory, exist_ok=True)
    filename = os.path.join(
        directory,
        f"{_slug(summary.action_label)}-report-{datetime.now().strftime('%Y%m%d-%H%M%S')}.json",
    )
    with open(filename, "w") as f:
        json.dump(report, f, indent=2)
    logger.info(f"Detailed report exported to: {filename}")
    return filename


def write_export_artifacts(summary: Summary, directory: str = ".") -> List[str]:
    """Write one ARM template file per successfully exported resource."""
    written: List[str] = []
    for o in _by_status(summary, OutcomeStatus.SUCCEEDED):
        if not isinstance(o.detail, dict) or "template" not in o.detail:
            continue
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(
            directory, f"{_slug(o.target.resource_group)}-{_slug(o.target.name)}.json"
        )
        with open(path, "w") as f:
            json.dump(o.detail["template"], f, indent=2)
        written.append(path)
    if written:
        logger.info(f"Wrote {len(written)} exported template(s) to {directory}")
    return written
