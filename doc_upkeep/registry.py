"""
Document Registry - path-keyed tracking of managed documents.

Every document the updater writes gets a record holding the hash of the
exact bytes written, a version counter and a short update history. The
registry is one JSON file loaded and saved wholesale; callers hold
``lock()`` around a load-register-save cycle when several processes may
write at once.
"""

import fcntl
import hashlib
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from doc_upkeep.errors import FileAccessError, RegistryCorruption
from doc_upkeep.sections import parse_sections

logger = logging.getLogger(__name__)

REGISTRY_FORMAT = "1.0"
DEFAULT_HISTORY_LIMIT = 10
DEFAULT_STALE_DAYS = 30
FRESHNESS_HORIZON_DAYS = 90

# Headings a complete document of each type is expected to carry
EXPECTED_HEADINGS: Dict[str, List[str]] = {
    "readme": ["installation", "usage", "contributing", "license"],
    "api-documentation": ["overview", "authentication", "endpoints", "errors"],
    "changelog": ["unreleased"],
    "migration-guide": ["overview", "breaking changes", "steps", "rollback"],
    "security-documentation": ["overview", "reporting", "supported versions"],
    "meeting-notes": ["attendees", "agenda", "decisions", "action items"],
    "summary": ["summary", "highlights", "next steps"],
    "markdown-documentation": ["overview"],
}


def content_hash(content: str) -> str:
    """sha256 hex digest of the UTF-8 bytes of ``content``."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def infer_doc_type(path: str) -> str:
    """Guess a document type from its file name."""
    p = Path(path)
    ext = p.suffix.lower()
    name = p.stem.lower()

    if ext not in (".md", ".markdown"):
        return "unknown"
    if "readme" in name:
        return "readme"
    if "changelog" in name:
        return "changelog"
    if "migration" in name:
        return "migration-guide"
    if "security" in name:
        return "security-documentation"
    if "api" in name:
        return "api-documentation"
    if "meeting" in name:
        return "meeting-notes"
    if "summary" in name or "brief" in name:
        return "summary"
    return "markdown-documentation"


def completeness_score(content: str, doc_type: str) -> int:
    """Percentage of the expected headings for ``doc_type`` present in ``content``."""
    expected = EXPECTED_HEADINGS.get(doc_type)
    if not expected:
        return 100 if content.strip() else 0
    headings = " | ".join(s.key.lower() for s in parse_sections(content).headings)
    found = sum(1 for heading in expected if heading in headings)
    return round(100 * found / len(expected))


def freshness_score(last_update: Optional[str], now: Optional[datetime] = None) -> int:
    """100 right after an update, decaying linearly to 0 over the horizon."""
    updated = _parse_time(last_update)
    if updated is None:
        return 0
    age_days = ((now or utcnow()) - updated).total_seconds() / 86400
    remaining = 1 - max(age_days, 0) / FRESHNESS_HORIZON_DAYS
    return max(0, min(100, round(100 * remaining)))


@dataclass
class HistoryEntry:
    version: int
    timestamp: str
    trigger: str
    source: str
    content_hash: str
    lines_added: int = 0
    lines_deleted: int = 0
    lines_changed: int = 0


@dataclass
class DocumentRecord:
    """Registry entry for one document, keyed by project-relative POSIX path."""

    path: str
    content_hash: str
    version: int = 1
    created_at: str = ""
    updated_at: str = ""
    last_ai_update: Optional[str] = None
    last_manual_update: Optional[str] = None
    source: str = "ai"
    doc_type: str = "unknown"
    dependencies: List[str] = field(default_factory=list)
    update_history: List[HistoryEntry] = field(default_factory=list)
    completeness: int = 0
    freshness: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        """
        Build a record from its JSON form, ignoring keys this version does not know.

        Raises:
            TypeError: Required keys are missing or an entry is not a mapping
        """
        data = _known_keys(cls, data)
        history = [
            HistoryEntry(**_known_keys(HistoryEntry, entry))
            for entry in data.pop("update_history", None) or []
        ]
        return cls(update_history=history, **data)

    def freshness_at(self, now: Optional[datetime] = None) -> int:
        """Freshness of the last write as of ``now``; the stored value is as of the write."""
        return freshness_score(self.updated_at, now)


def _known_keys(cls, data) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"expected a mapping, got {type(data).__name__}")
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass(frozen=True)
class Staleness:
    outdated: bool
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)


class DocumentRegistry:
    """
    JSON-backed registry of managed documents.

    Args:
        registry_path: Location of the registry JSON file
        project_root: Directory that record keys are relative to
        history_limit: Update-history entries kept per document
        stale_after_days: Age of the last AI update after which a
                          non-manual document counts as stale
    """

    def __init__(
        self,
        registry_path: Path,
        project_root: Optional[Path] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        stale_after_days: int = DEFAULT_STALE_DAYS,
    ):
        self.registry_path = Path(registry_path)
        self.project_root = Path(project_root or os.getcwd()).resolve()
        self.history_limit = history_limit
        self.stale_after_days = stale_after_days
        self.data = self.load()

    # ---- persistence -------------------------------------------------------

    @staticmethod
    def _empty() -> Dict[str, Any]:
        return {"documents": {}, "version": REGISTRY_FORMAT, "last_update": None}

    def _read(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.registry_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RegistryCorruption(f"Cannot parse registry: {e}", self.registry_path) from e
        except OSError as e:
            raise FileAccessError(f"Cannot read registry {self.registry_path}: {e}",
                                  path=self.registry_path, operation="read") from e
        if not isinstance(data, dict) or not isinstance(data.get("documents"), dict):
            raise RegistryCorruption("Registry has no documents table", self.registry_path)
        for key, entry in data["documents"].items():
            try:
                DocumentRecord.from_dict(entry)
            except (TypeError, ValueError) as e:
                raise RegistryCorruption(f"Malformed record {key!r}: {e}", self.registry_path) from e
        return data

    def load(self) -> Dict[str, Any]:
        """Load the registry from disk, starting empty when missing or corrupt."""
        if not self.registry_path.exists():
            self.data = self._empty()
            return self.data
        try:
            self.data = self._read()
        except RegistryCorruption as e:
            logger.warning("Registry at %s is corrupt (%s), reinitializing", self.registry_path, e)
            self.data = self._empty()
        return self.data

    def save(self):
        """Write the registry atomically (temp file + rename)."""
        self.data["last_update"] = utcnow().isoformat()
        tmp = None
        try:
            self.registry_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.registry_path.parent, prefix=".registry-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2)
            os.replace(tmp, self.registry_path)
        except OSError as e:
            if tmp and os.path.exists(tmp):
                os.unlink(tmp)
            raise FileAccessError(f"Cannot save registry {self.registry_path}: {e}",
                                  path=self.registry_path, operation="save") from e

    @contextmanager
    def lock(self) -> Iterator["DocumentRegistry"]:
        """Hold an exclusive lock on ``<registry>.lock`` and reload inside it."""
        lock_path = self.registry_path.with_name(self.registry_path.name + ".lock")
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(lock_path, "w")
        except OSError as e:
            raise FileAccessError(f"Cannot open registry lock {lock_path}: {e}", path=lock_path, operation="lock") from e
        with handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                self.load()
                yield self
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    # ---- keys --------------------------------------------------------------

    def key_for(self, path) -> str:
        """Project-relative POSIX key for a path."""
        p = Path(path)
        if not p.is_absolute():
            p = self.project_root / p
        p = Path(os.path.normpath(p))
        try:
            return p.relative_to(self.project_root).as_posix()
        except ValueError:
            return p.as_posix()

    def _abs(self, key: str) -> Path:
        return self.project_root / key

    # ---- records -----------------------------------------------------------

    def get(self, path) -> Optional[DocumentRecord]:
        entry = self.data["documents"].get(self.key_for(path))
        if entry is None:
            return None
        return DocumentRecord.from_dict(entry)

    def all_records(self) -> List[DocumentRecord]:
        return [DocumentRecord.from_dict(entry) for entry in self.data["documents"].values()]

    def register(self, path, content: str, metadata: Optional[Dict[str, Any]] = None) -> DocumentRecord:
        """
        Record a write of ``content`` to ``path``.

        Args:
            path: Document path (absolute or project-relative)
            content: Exact text that was written
            metadata: Optional keys: ``source``, ``trigger``, ``doc_type``,
                      ``dependencies`` and ``changes`` (a dict of line deltas)

        Returns:
            The updated DocumentRecord (not yet saved; call ``save()``)
        """
        metadata = metadata or {}
        key = self.key_for(path)
        now = utcnow().isoformat()
        source = metadata.get("source", "ai")
        changes = metadata.get("changes") or {}

        previous = self.get(key)
        digest = content_hash(content)
        record = previous or DocumentRecord(
            path=key,
            content_hash=digest,
            version=0,
            created_at=now,
            doc_type=metadata.get("doc_type") or infer_doc_type(key),
        )

        record.version += 1
        record.content_hash = digest
        record.updated_at = now
        if source == "manual":
            record.last_manual_update = now
        else:
            record.last_ai_update = now
        if previous is not None and previous.source != source:
            record.source = "mixed"
        else:
            record.source = source
        if metadata.get("dependencies"):
            record.dependencies = sorted(set(record.dependencies) | set(metadata["dependencies"]))

        record.update_history.append(HistoryEntry(
            version=record.version,
            timestamp=now,
            trigger=metadata.get("trigger", "update"),
            source=source,
            content_hash=digest,
            lines_added=changes.get("lines_added", 0),
            lines_deleted=changes.get("lines_deleted", 0),
            lines_changed=changes.get("lines_changed", 0),
        ))
        record.update_history = record.update_history[-self.history_limit:]

        record.completeness = completeness_score(content, record.doc_type)
        record.freshness = freshness_score(now)

        self.data["documents"][key] = record.to_dict()
        logger.debug("Registered %s at version %d", key, record.version)
        return record

    def add_dependency(self, path, dependency) -> DocumentRecord:
        record = self.get(path)
        if record is None:
            raise KeyError(f"Document not tracked: {self.key_for(path)}")
        dep = self.key_for(dependency)
        if dep not in record.dependencies:
            record.dependencies.append(dep)
        self.data["documents"][record.path] = record.to_dict()
        return record

    def remove(self, path) -> bool:
        return self.data["documents"].pop(self.key_for(path), None) is not None

    # ---- staleness ---------------------------------------------------------

    def is_outdated(self, path, now: Optional[datetime] = None) -> Staleness:
        """
        Decide whether a tracked document needs regenerating.

        Rules, first match wins:
        1. Not in the registry → not outdated (``not_tracked``)
        2. File gone → ``file_missing``; unreadable → ``file_unreadable``
        3. Bytes on disk differ from the last write → ``content_modified_externally``
        4. A dependency changed after the last AI update → ``dependency_changed``
        5. Last AI update older than ``stale_after_days`` and the document
           is not manual → ``stale_content``
        """
        record = self.get(path)
        if record is None:
            return Staleness(False, "not_tracked")

        file_path = self._abs(record.path)
        if not file_path.exists():
            return Staleness(True, "file_missing", {"path": record.path})

        try:
            current_hash = hashlib.sha256(file_path.read_bytes()).hexdigest()
        except OSError as e:
            return Staleness(True, "file_unreadable", {"path": record.path, "error": str(e)})
        if current_hash != record.content_hash:
            return Staleness(True, "content_modified_externally", {
                "expected_hash": record.content_hash,
                "actual_hash": current_hash,
            })

        last_ai = _parse_time(record.last_ai_update)
        if last_ai is not None:
            for dep in record.dependencies:
                dep_path = self._abs(dep)
                if not dep_path.exists():
                    continue
                dep_mtime = datetime.fromtimestamp(dep_path.stat().st_mtime, tz=timezone.utc)
                if dep_mtime > last_ai:
                    return Staleness(True, "dependency_changed", {
                        "dependency": dep,
                        "dependency_modified": dep_mtime.isoformat(),
                    })

            age_days = ((now or utcnow()) - last_ai).days
            if age_days > self.stale_after_days and record.source != "manual":
                return Staleness(True, "stale_content", {"days_since_ai_update": age_days})

        return Staleness(False, "up_to_date")

    def outdated_documents(self) -> List[tuple]:
        """(record, staleness) for every tracked document that is outdated."""
        outdated = []
        for record in self.all_records():
            staleness = self.is_outdated(record.path)
            if staleness.outdated:
                outdated.append((record, staleness))
        return outdated

    def tracking_summary(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts by source, type and how recently documents were updated."""
        now = now or utcnow()
        records = self.all_records()
        outdated = self.outdated_documents()

        by_type: Dict[str, int] = {}
        for record in records:
            by_type[record.doc_type] = by_type.get(record.doc_type, 0) + 1

        freshness = [r.freshness_at(now) for r in records]

        frequency = {"daily": 0, "weekly": 0, "monthly": 0, "older": 0}
        for record in records:
            updated = _parse_time(record.updated_at)
            days = (now - updated).total_seconds() / 86400 if updated else float("inf")
            if days <= 1:
                frequency["daily"] += 1
            elif days <= 7:
                frequency["weekly"] += 1
            elif days <= 30:
                frequency["monthly"] += 1
            else:
                frequency["older"] += 1

        return {
            "summary": {
                "total_documents": len(records),
                "outdated_documents": len(outdated),
                "ai_generated": sum(1 for r in records if r.source == "ai"),
                "manual_documents": sum(1 for r in records if r.source == "manual"),
                "mixed_documents": sum(1 for r in records if r.source == "mixed"),
                "last_update": self.data.get("last_update"),
                "average_freshness": round(sum(freshness) / len(freshness)) if freshness else 0,
            },
            "outdated": [
                {"path": r.path, "version": r.version, "freshness": r.freshness_at(now),
                 "reason": s.reason, "details": s.details}
                for r, s in outdated
            ],
            "document_types": by_type,
            "update_frequency": frequency,
        }
