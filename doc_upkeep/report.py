"""Markdown and JSON reports for a batch of update results."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from doc_upkeep.updater import Outcome, UpdateResult

logger = logging.getLogger(__name__)


def build_recommendations(results: Sequence[UpdateResult], outdated_count: int = 0) -> List[Dict[str, Any]]:
    """Follow-up actions, highest priority first."""
    recommendations = []

    failed = [r for r in results if r.status is Outcome.FAILED]
    if failed:
        recommendations.append({
            "priority": "high",
            "type": "failed_updates",
            "message": f"{len(failed)} document updates failed and need manual intervention",
            "actions": ["Review error messages", "Check file permissions", "Validate target paths"],
        })

    conflicted = sum(len(r.conflicted_sections) for r in results)
    if conflicted:
        recommendations.append({
            "priority": "high",
            "type": "unresolved_conflicts",
            "message": f"{conflicted} sections contain conflict markers awaiting a decision",
            "actions": ["Search for CONFLICT_START markers", "Keep one version and delete the markers"],
        })

    preserved = sum(len(r.preserved_sections) for r in results)
    if preserved:
        recommendations.append({
            "priority": "medium",
            "type": "preserved_content",
            "message": f"{preserved} manually edited sections were preserved - review for consistency",
            "actions": ["Check preserved sections for outdated information"],
        })

    imbalanced = [r for r in results if r.marker_issues]
    if imbalanced:
        recommendations.append({
            "priority": "medium",
            "type": "marker_issues",
            "message": f"{len(imbalanced)} documents have unbalanced markers",
            "actions": ["Run `doc-upkeep validate` on each document"],
        })

    if outdated_count:
        recommendations.append({
            "priority": "low",
            "type": "maintenance",
            "message": f"{outdated_count} tracked documents are outdated",
            "actions": ["Review stale documents", "Consider archiving unused documentation"],
        })

    return recommendations


def report_data(results: Sequence[UpdateResult], outdated_count: int = 0) -> Dict[str, Any]:
    succeeded = [r for r in results if r.status is Outcome.SUCCESS]
    strategies: Dict[str, int] = {}
    for r in succeeded:
        name = r.strategy or r.action or "unknown"
        strategies[name] = strategies.get(name, 0) + 1

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "updatesAttempted": len(results),
            "updatesSuccessful": len(succeeded),
            "updatesSkipped": sum(1 for r in results if r.status is Outcome.SKIPPED),
            "updatesFailed": sum(1 for r in results if r.status is Outcome.FAILED),
            "created": sum(1 for r in succeeded if r.action == "created"),
            "strategies": strategies,
            "linesAdded": sum(r.changes.lines_added for r in results),
            "linesDeleted": sum(r.changes.lines_deleted for r in results),
            "linesChanged": sum(r.changes.lines_changed for r in results),
            "conflicts": sum(len(r.conflicts) for r in results),
            "preservedSections": sum(len(r.preserved_sections) for r in results),
        },
        "results": [r.to_dict() for r in results],
        "recommendations": build_recommendations(results, outdated_count),
    }


def build_update_report(
    results: Sequence[UpdateResult],
    title: str = "Document Update Report",
    outdated_count: int = 0,
) -> str:
    """
    Render a markdown report for a batch of updates.

    Args:
        results: Results returned by the updater
        title: Top-level heading
        outdated_count: Tracked documents still outdated after the run

    Returns:
        Markdown text
    """
    data = report_data(results, outdated_count)
    summary = data["summary"]
    lines = [
        f"# {title}",
        "",
        f"**Generated:** {data['timestamp']}  ",
        "",
        "## Executive Summary",
        "",
        f"- Documents processed: {summary['updatesAttempted']}",
        f"- Successfully updated: {summary['updatesSuccessful']} ({summary['created']} created)",
        f"- Skipped: {summary['updatesSkipped']}",
        f"- Failed: {summary['updatesFailed']}",
        "",
        "## Merge Statistics",
        "",
        "| Strategy | Documents |",
        "|----------|-----------|",
    ]
    for name, count in sorted(summary["strategies"].items()):
        lines.append(f"| {name} | {count} |")
    if not summary["strategies"]:
        lines.append("| (none) | 0 |")

    lines += [
        "",
        "## Change Analysis",
        "",
        f"- Lines added: {summary['linesAdded']}",
        f"- Lines deleted: {summary['linesDeleted']}",
        f"- Lines changed: {summary['linesChanged']}",
        f"- Conflicts detected: {summary['conflicts']}",
        f"- Manual sections preserved: {summary['preservedSections']}",
        "",
        "## Successfully Updated",
        "",
    ]
    succeeded = [r for r in results if r.status is Outcome.SUCCESS]
    for r in succeeded:
        detail = f"{r.action}"
        if r.strategy:
            detail += f" via {r.strategy}"
        if r.similarity_percentage is not None:
            detail += f", {r.similarity_percentage}% similar"
        lines.append(f"- `{r.file_path}` (v{r.version}): {detail}")
    if not succeeded:
        lines.append("_None_")

    lines += ["", "## Skipped", ""]
    skipped = [r for r in results if r.status is Outcome.SKIPPED]
    lines += [f"- `{r.file_path}`: {r.error}" for r in skipped] or ["_None_"]

    lines += ["", "## Failed Updates", ""]
    failed = [r for r in results if r.status is Outcome.FAILED]
    lines += [f"- `{r.file_path}`: {r.error}" for r in failed] or ["_None_"]

    lines += ["", "## Manual Review Required", ""]
    review = [r for r in results if r.conflicted_sections]
    lines += [
        f"- `{r.file_path}`: {', '.join(r.conflicted_sections)}" for r in review
    ] or ["_None_"]

    lines += ["", "## Recommendations", ""]
    for rec in data["recommendations"]:
        lines.append(f"- **{rec['priority'].upper()}**: {rec['message']}")
        lines += [f"  - {action}" for action in rec["actions"]]
    if not data["recommendations"]:
        lines.append("_No follow-up needed_")

    return "\n".join(lines) + "\n"


def save_report(
    results: Sequence[UpdateResult],
    report_dir: Path,
    outdated_count: int = 0,
    now: Optional[datetime] = None,
) -> Tuple[Path, Path]:
    """Write ``update-report-<timestamp>.md`` and ``.json`` into ``report_dir``."""
    report_dir = Path(report_dir)
    report_dir.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%S")

    md_path = report_dir / f"update-report-{stamp}.md"
    json_path = report_dir / f"update-report-{stamp}.json"
    md_path.write_text(build_update_report(results, outdated_count=outdated_count), encoding="utf-8")
    json_path.write_text(json.dumps(report_data(results, outdated_count), indent=2), encoding="utf-8")
    logger.info("Report written to %s", md_path)
    return md_path, json_path
