"""
Document updater - the engine's single entry point.

Reads the current document, compares it with newly generated content,
picks a strategy, snapshots the prior bytes, writes the merged text
atomically and records the write in the registry.
"""

import logging
import os
import shutil
import tempfile
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from doc_upkeep.analysis import ChangeStats, analyze, line_change_stats
from doc_upkeep.config import CONFLICT_HANDLING_CHOICES, STRATEGY_CHOICES, UpkeepConfig
from doc_upkeep.errors import (
    FileAccessError,
    InvalidOptionsError,
    InvalidPathError,
    MarkerImbalanceWarning,
    UnresolvedHighSeverityConflict,
    UpkeepError,
)
from doc_upkeep.markers import has_manual_edit, validate_markers, wrap_manual_edit
from doc_upkeep.registry import DocumentRegistry, infer_doc_type
from doc_upkeep.sections import parse_sections
from doc_upkeep.security import PathValidator
from doc_upkeep.strategies import (
    ADDED,
    AUTO,
    CONFLICTED,
    PRESERVED,
    REMOVED,
    UPDATED,
    MergeContext,
    MergeOutcome,
    Strategy,
    apply_strategy,
    select_strategy,
    split_versioned,
)
from doc_upkeep.thresholds import resolve_thresholds
from doc_upkeep.versions import VersionManager

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UpdateOptions:
    """Per-call knobs; defaults come from UpkeepConfig when built via ``from_config``."""

    strategy: str = AUTO
    conflict_handling: str = "merge_sections"
    backup_original: bool = True
    preserve_metadata: bool = True
    max_versions: int = 5
    trigger: str = "update"
    source: str = "ai"
    dependencies: List[str] = field(default_factory=list)
    dry_run: bool = False

    @classmethod
    def from_config(cls, config: UpkeepConfig, **overrides) -> "UpdateOptions":
        options = cls(
            strategy=config.strategy,
            conflict_handling=config.conflict_handling,
            backup_original=config.backup_original,
            preserve_metadata=config.preserve_metadata,
            max_versions=config.max_versions,
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(options, name, value)
        return options


@dataclass
class UpdateResult:
    """What happened to one document."""

    status: Outcome
    file_path: str
    action: Optional[str] = None            # "created" | "updated"
    strategy: Optional[str] = None
    backup_path: Optional[str] = None
    changes: ChangeStats = field(default_factory=ChangeStats)
    conflicts: List[Dict[str, Any]] = field(default_factory=list)
    preserved_sections: List[str] = field(default_factory=list)
    updated_sections: List[str] = field(default_factory=list)
    added_sections: List[str] = field(default_factory=list)
    removed_sections: List[str] = field(default_factory=list)
    conflicted_sections: List[str] = field(default_factory=list)
    similarity_percentage: Optional[int] = None
    version: Optional[int] = None
    marker_issues: List[str] = field(default_factory=list)
    shadowed_sections: List[str] = field(default_factory=list)
    error: Optional[str] = None
    content: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is Outcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "action": self.action,
            "strategy": self.strategy,
            "filePath": self.file_path,
            "backupPath": self.backup_path,
            "changes": self.changes.to_dict(),
            "conflicts": list(self.conflicts),
            "preservedSections": list(self.preserved_sections),
            "updatedSections": list(self.updated_sections),
            "addedSections": list(self.added_sections),
            "removedSections": list(self.removed_sections),
            "conflictedSections": list(self.conflicted_sections),
            "similarityPercentage": self.similarity_percentage,
            "version": self.version,
            "markerIssues": list(self.marker_issues),
            "shadowedSections": list(self.shadowed_sections),
            "error": self.error,
        }


def write_atomic(path: Path, content: str):
    """Write via a temp file in the same directory and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        if path.exists():
            shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except OSError as e:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise FileAccessError(f"Cannot write {path}: {e}", path=path, operation="write") from e


def _unique(keys: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for key in keys:
        seen.setdefault(key, None)
    return list(seen)


class DocumentUpdater:
    """
    Merge new content into managed documents.

    Args:
        config: Settings (defaults to ``UpkeepConfig.from_env()``)
        registry: Registry instance (built from config when omitted)
        version_manager: Snapshot writer (default ``versions/`` sibling dir)
    """

    def __init__(
        self,
        config: Optional[UpkeepConfig] = None,
        registry: Optional[DocumentRegistry] = None,
        version_manager: Optional[VersionManager] = None,
    ):
        self.config = config or UpkeepConfig.from_env()
        self.project_root = self.config.project_root
        self.registry = registry or DocumentRegistry(
            self.config.registry_path,
            project_root=self.project_root,
            history_limit=self.config.history_limit,
            stale_after_days=self.config.stale_after_days,
        )
        self.versions = version_manager or VersionManager()

    def default_options(self, **overrides) -> UpdateOptions:
        return UpdateOptions.from_config(self.config, **overrides)

    # ---- helpers -----------------------------------------------------------

    def resolve_path(self, path: Union[str, Path]) -> Path:
        is_valid, error, resolved = PathValidator.validate_document_path(str(path), self.project_root)
        if not is_valid:
            raise InvalidPathError(f"Invalid document path {path}: {error}", path=str(path))
        return resolved

    @staticmethod
    def _read_existing(path: Path) -> Optional[str]:
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s (%s), treating as a new document", path, e)
            return None

    def _register(self, path: Path, content: str, options: UpdateOptions, changes: ChangeStats) -> int:
        metadata = {
            "source": options.source,
            "trigger": options.trigger,
            "dependencies": options.dependencies,
            "changes": {
                "lines_added": changes.lines_added,
                "lines_deleted": changes.lines_deleted,
                "lines_changed": changes.lines_changed,
            },
        }
        with self.registry.lock():
            record = self.registry.register(path, content, metadata)
            self.registry.save()
        return record.version

    def _next_version(self, path: Path) -> int:
        record = self.registry.get(path)
        return record.version + 1 if record else 1

    def _check_markers(self, path: Path, text: str) -> List[str]:
        validation = validate_markers(text)
        for issue in validation.issues:
            logger.warning("%s: %s", path, issue)
        if validation.issues:
            warnings.warn(
                f"{path}: marker imbalance ({'; '.join(validation.issues)})",
                MarkerImbalanceWarning,
                stacklevel=3,
            )
        return validation.issues

    @staticmethod
    def _check_options(options: UpdateOptions):
        if options.strategy not in STRATEGY_CHOICES:
            raise InvalidOptionsError(
                f"Unknown strategy {options.strategy!r} (expected one of {', '.join(STRATEGY_CHOICES)})"
            )
        if options.conflict_handling not in CONFLICT_HANDLING_CHOICES:
            raise InvalidOptionsError(
                f"Unknown conflict handling {options.conflict_handling!r} "
                f"(expected one of {', '.join(CONFLICT_HANDLING_CHOICES)})"
            )

    # ---- operations --------------------------------------------------------

    def update_document(
        self,
        path: Union[str, Path],
        content: str,
        options: Optional[UpdateOptions] = None,
    ) -> UpdateResult:
        """
        Create or update one document.

        Args:
            path: Target document, absolute or relative to the project root
            content: Newly generated candidate content
            options: Update options (config defaults when omitted)

        Returns:
            UpdateResult describing the write (or the would-be write for a
            dry run)

        Raises:
            InvalidOptionsError: Unknown strategy or conflict handling
            InvalidPathError: Target escapes the project root
            FileAccessError: Snapshot, document or registry write failed
        """
        options = options or self.default_options()
        self._check_options(options)
        target = self.resolve_path(path)
        key = self.registry.key_for(target)

        if not content or not content.strip():
            logger.warning("Skipping %s: candidate content is empty", key)
            return UpdateResult(status=Outcome.SKIPPED, file_path=key, error="empty candidate content")

        existing = self._read_existing(target)
        if existing is None:
            return self._create(target, key, content, options)
        return self._merge(target, key, existing, content, options)

    def _create(self, target: Path, key: str, content: str, options: UpdateOptions) -> UpdateResult:
        changes = line_change_stats("", content)
        marker_issues = self._check_markers(target, content)
        added = [s.key for s in parse_sections(content) if not s.is_blank()]

        if options.dry_run:
            version = self._next_version(target)
        else:
            write_atomic(target, content)
            version = self._register(target, content, options, changes)
            logger.info("Created new document: %s", key)

        return UpdateResult(
            status=Outcome.SUCCESS,
            file_path=key,
            action="created",
            changes=changes,
            added_sections=added,
            version=version,
            marker_issues=marker_issues,
            content=content,
        )

    def _merge(self, target: Path, key: str, existing: str, content: str, options: UpdateOptions) -> UpdateResult:
        thresholds = resolve_thresholds(infer_doc_type(key))
        layout = split_versioned(existing)
        base = layout.current if layout is not None else existing
        analysis = analyze(base, content, thresholds)
        if analysis.existing.duplicates:
            logger.warning(
                "%s repeats headings %s; earlier sections kept as %s",
                key, ", ".join(analysis.existing.duplicates), ", ".join(analysis.existing.shadowed),
            )

        if options.strategy == AUTO:
            strategy = select_strategy(analysis, thresholds)
        else:
            strategy = Strategy(options.strategy)
        logger.info(
            "Updating %s with %s strategy (similarity %d%%, %d conflicts)",
            key, strategy.value, analysis.similarity_percentage, analysis.conflict_count,
        )

        # a new version block goes above the whole document, archive included
        in_place = layout is not None and strategy is not Strategy.VERSION
        if in_place:
            logger.info("%s keeps archived versions; merging into the current version", key)

        ctx = MergeContext(
            analysis=analysis,
            existing_content=base if in_place else existing,
            candidate_content=content,
            thresholds=thresholds,
            conflict_handling=options.conflict_handling,
            preserve_metadata=options.preserve_metadata,
            version=self._next_version(target),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        outcome: MergeOutcome = apply_strategy(strategy, ctx)
        merged = layout.render(outcome.text) if in_place else outcome.text

        changes = line_change_stats(existing, merged)
        marker_issues = self._check_markers(target, merged)
        conflicted = _unique(outcome.keys_with(CONFLICTED))
        if conflicted:
            warnings.warn(
                f"{key}: unresolved conflicts in {', '.join(conflicted)}",
                UnresolvedHighSeverityConflict,
                stacklevel=3,
            )

        preserved = outcome.keys_with(PRESERVED) + [
            s.key for s in parse_sections(outcome.text) if has_manual_edit(s.text)
        ]

        backup_path = None
        if options.dry_run:
            version = ctx.version
        else:
            if options.backup_original and options.max_versions > 0:
                snapshot = self.versions.snapshot(target, existing)
                self.versions.prune_for(target, options.max_versions)
                backup_path = str(snapshot)
            write_atomic(target, merged)
            version = self._register(target, merged, options, changes)

        return UpdateResult(
            status=Outcome.SUCCESS,
            file_path=key,
            action="updated",
            strategy=strategy.value,
            backup_path=backup_path,
            changes=changes,
            conflicts=[c.to_dict() for c in analysis.conflicts],
            preserved_sections=_unique(preserved),
            updated_sections=_unique(outcome.keys_with(UPDATED)),
            added_sections=_unique(outcome.keys_with(ADDED)),
            removed_sections=_unique(outcome.keys_with(REMOVED)),
            conflicted_sections=conflicted,
            similarity_percentage=analysis.similarity_percentage,
            version=version,
            marker_issues=marker_issues,
            shadowed_sections=list(analysis.existing.shadowed),
            content=merged,
        )

    def update_documents(
        self,
        items: Iterable[Dict[str, Any]],
        options: Optional[UpdateOptions] = None,
    ) -> List[UpdateResult]:
        """
        Update many documents; one failure never stops the batch.

        Args:
            items: Dicts with ``path`` and ``content`` keys
            options: Options applied to every item

        Returns:
            One UpdateResult per item, in order
        """
        results = []
        for item in items:
            path = str(item.get("path", ""))
            try:
                results.append(self.update_document(path, item.get("content", ""), options))
            except UpkeepError as e:
                logger.error("Failed to update %s: %s", path, e)
                results.append(UpdateResult(status=Outcome.FAILED, file_path=path, error=str(e)))

        succeeded = sum(1 for r in results if r.status is Outcome.SUCCESS)
        logger.info("Batch complete: %d/%d documents updated", succeeded, len(results))
        return results

    def protect_section(self, path: Union[str, Path], heading: str, author: str = "user") -> UpdateResult:
        """
        Wrap one section's body in manual-edit markers so merges keep it.

        Raises:
            InvalidPathError: Target escapes the project root
            FileAccessError: The document is missing or cannot be written
            KeyError: No section with that heading
        """
        target = self.resolve_path(path)
        key = self.registry.key_for(target)
        existing = self._read_existing(target)
        if existing is None:
            raise FileAccessError(f"Cannot read {key}", path=target, operation="read")

        section = parse_sections(existing).get(heading)
        if section is None or section.is_preamble:
            raise KeyError(f"No section titled {heading!r} in {key}")
        if has_manual_edit(section.text):
            return UpdateResult(status=Outcome.SKIPPED, file_path=key, error="section already protected")

        trailing = section.text[len(section.text.rstrip("\n")):]
        protected = section.heading_line + "\n" + wrap_manual_edit(section.body, author=author) + (trailing or "\n")
        merged = existing.replace(section.text, protected, 1)

        write_atomic(target, merged)
        options = UpdateOptions(trigger="protect", source="manual")
        changes = line_change_stats(existing, merged)
        version = self._register(target, merged, options, changes)
        logger.info("Protected section %r in %s", heading, key)

        return UpdateResult(
            status=Outcome.SUCCESS,
            file_path=key,
            action="updated",
            changes=changes,
            preserved_sections=[heading],
            version=version,
            content=merged,
        )
