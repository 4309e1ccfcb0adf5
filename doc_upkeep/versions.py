"""Snapshots of prior document contents in a sibling ``versions/`` directory."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from doc_upkeep.errors import FileAccessError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%f"

# <stem>.<TIMESTAMP_FORMAT>[-<counter>]<suffix>
SNAPSHOT_STAMP = r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{6}(?:-\d+)?"


def snapshot_pattern(stem: str, suffix: str) -> re.Pattern:
    return re.compile("^" + re.escape(stem) + r"\." + SNAPSHOT_STAMP + re.escape(suffix) + "$")


class VersionManager:
    """
    Writes and prunes snapshots.

    A snapshot of ``docs/guide.md`` lives at
    ``docs/versions/guide.<timestamp>.md``.
    """

    def __init__(self, versions_dir_name: str = "versions"):
        self.versions_dir_name = versions_dir_name

    def versions_dir(self, path: Path) -> Path:
        return Path(path).parent / self.versions_dir_name

    def snapshot(self, path: Path, content: str, now: Optional[datetime] = None) -> Path:
        """
        Write ``content`` (the bytes about to be replaced) as a new snapshot.

        Returns:
            Path of the snapshot file

        Raises:
            FileAccessError: The versions directory or snapshot cannot be written
        """
        path = Path(path)
        directory = self.versions_dir(path)
        stamp = (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)
        target = directory / f"{path.stem}.{stamp}{path.suffix}"

        try:
            directory.mkdir(parents=True, exist_ok=True)
            counter = 1
            while target.exists():
                target = directory / f"{path.stem}.{stamp}-{counter}{path.suffix}"
                counter += 1
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise FileAccessError(f"Cannot write snapshot of {path}: {e}", path=target, operation="snapshot") from e

        logger.info("Snapshot written: %s", target)
        return target

    def list_snapshots(self, path: Path) -> List[Path]:
        """Snapshots of one document, newest first (mtime, then name)."""
        path = Path(path)
        return self._snapshots(self.versions_dir(path), path.stem, path.suffix)

    @staticmethod
    def _snapshots(directory: Path, stem: str, suffix: str) -> List[Path]:
        if not directory.is_dir():
            return []
        pattern = snapshot_pattern(stem, suffix)
        candidates = [p for p in directory.iterdir() if pattern.match(p.name) and p.is_file()]
        return sorted(candidates, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    def prune(self, directory: Path, base_name: str, max_versions: int) -> List[Path]:
        """
        Delete a document's snapshots beyond the newest ``max_versions``.

        Args:
            directory: The ``versions/`` directory
            base_name: Document file name, e.g. ``guide.md``
            max_versions: Snapshots to keep

        Returns:
            Paths that were deleted

        Raises:
            FileAccessError: A snapshot could not be removed
        """
        base = Path(base_name)
        snapshots = self._snapshots(Path(directory), base.stem, base.suffix)
        doomed = snapshots[max(max_versions, 0):]
        for old in doomed:
            try:
                old.unlink()
            except OSError as e:
                raise FileAccessError(f"Cannot remove snapshot {old}: {e}", path=old, operation="prune") from e
            logger.info("Pruned old snapshot: %s", old.name)
        return doomed

    def prune_for(self, path: Path, max_versions: int) -> List[Path]:
        path = Path(path)
        return self.prune(self.versions_dir(path), path.name, max_versions)
