"""
doc-upkeep command line.

Usage:
    doc-upkeep update docs/api.md generated/api.md
    doc-upkeep batch manifest.json --report
    doc-upkeep status --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from doc_upkeep.api_client import DocumentAPIClient
from doc_upkeep.config import CONFLICT_HANDLING_CHOICES, STRATEGY_CHOICES, UpkeepConfig
from doc_upkeep.errors import PublishError, UpkeepError
from doc_upkeep.markers import validate_markers
from doc_upkeep.report import save_report
from doc_upkeep.security import PathValidator
from doc_upkeep.updater import DocumentUpdater, Outcome, UpdateResult

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _configure_logging(config: UpkeepConfig, verbose: bool):
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _print_result(result: UpdateResult):
    if result.status is Outcome.SUCCESS:
        strategy = f" via {result.strategy}" if result.strategy else ""
        print(f"[Success] {result.file_path}: {result.action}{strategy} (v{result.version})")
        if result.backup_path:
            print(f"   Snapshot: {result.backup_path}")
        if result.preserved_sections:
            print(f"   Preserved: {', '.join(result.preserved_sections)}")
        if result.conflicted_sections:
            print(f"   [Warning] Needs review: {', '.join(result.conflicted_sections)}")
        for issue in result.marker_issues:
            print(f"   [Warning] {issue}")
    elif result.status is Outcome.SKIPPED:
        print(f"[Skipped] {result.file_path}: {result.error}")
    else:
        print(f"[Error] {result.file_path}: {result.error}")


def _read_candidate(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _options(updater: DocumentUpdater, args):
    return updater.default_options(
        strategy=args.strategy,
        conflict_handling=args.conflict_handling,
        backup_original=False if args.no_backup else None,
        preserve_metadata=False if args.no_preserve_metadata else None,
        max_versions=args.max_versions,
        trigger=args.trigger,
        dependencies=args.dependency or None,
        dry_run=args.dry_run or None,
    )


# ---- commands ---------------------------------------------------------------

def cmd_update(updater: DocumentUpdater, args) -> int:
    try:
        candidate = _read_candidate(args.candidate)
    except OSError as e:
        print(f"[Error] Cannot read candidate {args.candidate}: {e}")
        return EXIT_FAILED

    try:
        result = updater.update_document(args.target, candidate, _options(updater, args))
    except UpkeepError as e:
        print(f"[Error] {e}")
        return EXIT_FAILED

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)
    if args.dry_run and args.show:
        print(result.content or "")

    if args.publish and result.ok and not args.dry_run:
        client = DocumentAPIClient(updater.config.api_url, updater.config.api_token)
        if not client.health_check():
            print(f"[Warning] Documentation API at {client.api_url} is not responding")
        fallback = updater.config.report_dir / "unpublished" / (Path(result.file_path).name + ".json")
        try:
            response = client.publish_result(result, fallback_path=fallback)
            print(f"[API] Published: {response.get('status', 'ok')}")
        except PublishError as e:
            print(f"[Error] {e}")
            return EXIT_FAILED

    if args.report:
        md_path, _ = save_report([result], updater.config.report_dir)
        print(f"[Report] {md_path}")

    return EXIT_OK if result.status is not Outcome.FAILED else EXIT_FAILED


def cmd_batch(updater: DocumentUpdater, args) -> int:
    manifest_path = Path(args.manifest)
    try:
        entries = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"[Error] Cannot read manifest {manifest_path}: {e}")
        return EXIT_USAGE
    if isinstance(entries, dict):
        entries = entries.get("documents", [])

    items = []
    for entry in entries:
        content = entry.get("content")
        if content is None and entry.get("candidate"):
            candidate_path = manifest_path.parent / entry["candidate"]
            try:
                content = candidate_path.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("Cannot read candidate %s: %s", candidate_path, e)
                content = ""
        items.append({"path": entry.get("path", ""), "content": content or ""})

    results = updater.update_documents(items, _options(updater, args))
    for result in results:
        _print_result(result)

    outdated = len(updater.registry.outdated_documents())
    if args.report:
        md_path, _ = save_report(results, updater.config.report_dir, outdated_count=outdated)
        print(f"[Report] {md_path}")

    failed = sum(1 for r in results if r.status is Outcome.FAILED)
    print(f"\n[Summary] {len(results) - failed}/{len(results)} documents processed without errors")
    return EXIT_FAILED if failed else EXIT_OK


def cmd_status(updater: DocumentUpdater, args) -> int:
    summary = updater.registry.tracking_summary()
    if args.json:
        print(json.dumps(summary, indent=2))
        return EXIT_OK

    totals = summary["summary"]
    print("=" * 70)
    print("[Registry] DOCUMENT STATUS")
    print("=" * 70)
    print(f"Tracked:  {totals['total_documents']}")
    print(f"Outdated: {totals['outdated_documents']}")
    print(f"Sources:  ai={totals['ai_generated']} manual={totals['manual_documents']} mixed={totals['mixed_documents']}")
    print(f"Updated:  " + " ".join(f"{k}={v}" for k, v in summary["update_frequency"].items()))
    for item in summary["outdated"]:
        print(f"  - {item['path']} (v{item['version']}): {item['reason']}")
    return EXIT_OK


def cmd_validate(updater: DocumentUpdater, args) -> int:
    is_valid, error, path = PathValidator.validate_document_path(args.path, updater.project_root)
    if not is_valid:
        print(f"[Security] {error}")
        return EXIT_FAILED
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"[Error] Cannot read {args.path}: {e}")
        return EXIT_FAILED

    validation = validate_markers(text)
    for family, (starts, ends) in validation.counts.items():
        print(f"  {family}: {starts} start / {ends} end")
    if validation.valid:
        print(f"[Success] {args.path}: markers balanced")
        return EXIT_OK
    for issue in validation.issues:
        print(f"[Warning] {issue}")
    return EXIT_FAILED


def cmd_history(updater: DocumentUpdater, args) -> int:
    record = updater.registry.get(updater.project_root / args.path)
    if record is None:
        print(f"[Registry] {args.path} is not tracked")
        return EXIT_FAILED

    print(f"[Registry] {record.path} - version {record.version} ({record.source}, {record.doc_type})")
    print(f"   Completeness: {record.completeness}%  Freshness: {record.freshness_at()}%")
    for entry in reversed(record.update_history):
        print(
            f"   v{entry.version} {entry.timestamp} {entry.trigger}/{entry.source} "
            f"+{entry.lines_added} -{entry.lines_deleted} ~{entry.lines_changed}"
        )
    snapshots = updater.versions.list_snapshots(updater.project_root / record.path)
    if snapshots:
        print("   Snapshots:")
        for snapshot in snapshots:
            print(f"     {snapshot}")
    return EXIT_OK


def cmd_list(updater: DocumentUpdater, args) -> int:
    records = updater.registry.all_records()
    if not records:
        print("No documents registered yet.")
        return EXIT_OK
    for record in sorted(records, key=lambda r: r.path):
        print(f"  {record.path}  v{record.version}  {record.source}  {record.updated_at}")
    print(f"\n[Summary] Total: {len(records)} documents")
    return EXIT_OK


def cmd_protect(updater: DocumentUpdater, args) -> int:
    is_valid, error, heading = PathValidator.validate_heading(args.heading)
    if not is_valid:
        print(f"[Security] {error}")
        return EXIT_USAGE
    try:
        result = updater.protect_section(args.path, heading, author=args.author)
    except KeyError as e:
        print(f"[Error] {e.args[0]}")
        return EXIT_FAILED
    except UpkeepError as e:
        print(f"[Error] {e}")
        return EXIT_FAILED
    _print_result(result)
    return EXIT_OK


COMMANDS = {
    "update": cmd_update,
    "batch": cmd_batch,
    "status": cmd_status,
    "validate": cmd_validate,
    "history": cmd_history,
    "list": cmd_list,
    "protect": cmd_protect,
}


def _add_update_options(parser: argparse.ArgumentParser):
    parser.add_argument("--strategy", choices=STRATEGY_CHOICES, default=None,
                        help="Update strategy (default: from config, 'auto')")
    parser.add_argument("--conflict-handling", choices=CONFLICT_HANDLING_CHOICES, default=None,
                        help="How merge resolves conflicting sections")
    parser.add_argument("--no-backup", action="store_true", help="Do not snapshot the previous version")
    parser.add_argument("--no-preserve-metadata", action="store_true",
                        help="Do not carry metadata over on replace")
    parser.add_argument("--max-versions", type=int, default=None, help="Snapshots to keep per document")
    parser.add_argument("--trigger", default=None, help="Reason recorded in the update history")
    parser.add_argument("--dependency", action="append", help="Path the document depends on (repeatable)")
    parser.add_argument("--dry-run", action="store_true", help="Compute the merge without writing anything")
    parser.add_argument("--report", action="store_true", help="Write a markdown/JSON update report")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doc-upkeep",
        description="Merge regenerated documentation into existing documents without losing manual edits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s update docs/api.md build/api.md
  %(prog)s update docs/api.md build/api.md --strategy smart --dry-run --show
  %(prog)s batch manifest.json --report
  %(prog)s protect docs/api.md "Custom Authentication" --author jane
  %(prog)s status --json
        """,
    )
    parser.add_argument("--root", default=None, help="Project root (default: DOC_UPKEEP_ROOT or cwd)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    update = sub.add_parser("update", help="Merge new content into one document")
    update.add_argument("target", help="Document to create or update")
    update.add_argument("candidate", help="File holding the new content ('-' for stdin)")
    _add_update_options(update)
    update.add_argument("--json", action="store_true", help="Print the result as JSON")
    update.add_argument("--show", action="store_true", help="With --dry-run, print the merged text")
    update.add_argument("--publish", action="store_true", help="Post the result to DOC_API_URL")

    batch = sub.add_parser("batch", help="Update every document listed in a JSON manifest")
    batch.add_argument("manifest", help='JSON list of {"path": ..., "candidate": ...} entries')
    _add_update_options(batch)

    status = sub.add_parser("status", help="Show tracking summary and outdated documents")
    status.add_argument("--json", action="store_true", help="Print the summary as JSON")

    validate = sub.add_parser("validate", help="Check marker balance in a document")
    validate.add_argument("path")

    history = sub.add_parser("history", help="Show update history and snapshots of a document")
    history.add_argument("path")

    sub.add_parser("list", help="List tracked documents")

    protect = sub.add_parser("protect", help="Mark a section as manually edited")
    protect.add_argument("path")
    protect.add_argument("heading", help="Heading text of the section to protect")
    protect.add_argument("--author", default="user", help="Recorded author (default: user)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = UpkeepConfig.from_env(project_root=Path(args.root) if args.root else None)
    except ValueError as e:
        print(f"[Config] {e}")
        return EXIT_USAGE
    _configure_logging(config, args.verbose)

    updater = DocumentUpdater(config)
    return COMMANDS[args.command](updater, args)


if __name__ == "__main__":
    sys.exit(main())
