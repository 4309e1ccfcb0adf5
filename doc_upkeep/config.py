"""Configuration for the document updater.

Defaults < ``doc-upkeep.config.json`` (section ``documentUpdates``) <
environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "doc-upkeep.config.json"
CONFIG_SECTION = "documentUpdates"

STRATEGY_CHOICES = ("auto", "append", "merge", "replace", "version", "smart")
CONFLICT_HANDLING_CHOICES = ("merge_sections", "preserve_original", "prefer_new", "create_conflict_markers")

# config-file key -> dataclass field
FILE_KEYS = {
    "strategy": "strategy",
    "conflictHandling": "conflict_handling",
    "backupOriginal": "backup_original",
    "preserveMetadata": "preserve_metadata",
    "maxVersions": "max_versions",
    "historyLimit": "history_limit",
    "staleAfterDays": "stale_after_days",
    "registryPath": "registry_path",
    "reportDir": "report_dir",
}


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class UpkeepConfig:
    """Settings shared by the CLI and library callers."""

    # Paths
    project_root: Path = Path(".")
    registry_path: Optional[Path] = None   # defaults to <root>/.doc-upkeep/registry.json
    report_dir: Optional[Path] = None      # defaults to <root>/.doc-upkeep/reports

    # Update defaults
    strategy: str = "auto"
    conflict_handling: str = "merge_sections"
    backup_original: bool = True
    preserve_metadata: bool = True
    max_versions: int = 5

    # Registry
    history_limit: int = 10
    stale_after_days: int = 30

    # Publishing
    api_url: str = "http://localhost:3000"
    api_token: Optional[str] = None

    log_level: str = "INFO"

    def __post_init__(self):
        self.project_root = Path(self.project_root).resolve()
        if self.registry_path is None:
            self.registry_path = self.project_root / ".doc-upkeep" / "registry.json"
        else:
            self.registry_path = self._under_root(self.registry_path)
        if self.report_dir is None:
            self.report_dir = self.project_root / ".doc-upkeep" / "reports"
        else:
            self.report_dir = self._under_root(self.report_dir)
        if self.strategy not in STRATEGY_CHOICES:
            raise ValueError(f"Unknown strategy: {self.strategy}")
        if self.conflict_handling not in CONFLICT_HANDLING_CHOICES:
            raise ValueError(f"Unknown conflict handling: {self.conflict_handling}")

    def _under_root(self, path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.project_root / path

    @staticmethod
    def load_file(project_root: Path) -> Dict[str, Any]:
        """Read overrides from the project's JSON config file, if any."""
        config_path = Path(project_root) / CONFIG_FILE_NAME
        if not config_path.exists():
            return {}
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unreadable config file %s: %s", config_path, e)
            return {}
        section = raw.get(CONFIG_SECTION, {}) if isinstance(raw, dict) else {}
        return {FILE_KEYS[k]: v for k, v in section.items() if k in FILE_KEYS}

    @classmethod
    def from_env(cls, project_root: Optional[Path] = None) -> "UpkeepConfig":
        """Create configuration from the config file and environment variables."""
        root = Path(project_root or os.getenv("DOC_UPKEEP_ROOT", "."))
        values: Dict[str, Any] = {f.name: f.default for f in fields(cls)}
        values.update(cls.load_file(root))
        values["project_root"] = root

        env = os.environ
        if env.get("DOC_UPKEEP_REGISTRY"):
            values["registry_path"] = Path(env["DOC_UPKEEP_REGISTRY"])
        if env.get("DOC_UPKEEP_REPORT_DIR"):
            values["report_dir"] = Path(env["DOC_UPKEEP_REPORT_DIR"])
        if env.get("DOC_UPKEEP_STRATEGY"):
            values["strategy"] = env["DOC_UPKEEP_STRATEGY"]
        if env.get("DOC_UPKEEP_CONFLICT_HANDLING"):
            values["conflict_handling"] = env["DOC_UPKEEP_CONFLICT_HANDLING"]
        if env.get("DOC_UPKEEP_BACKUP"):
            values["backup_original"] = _env_bool(env["DOC_UPKEEP_BACKUP"])

        values["max_versions"] = int(env.get("DOC_UPKEEP_MAX_VERSIONS", values["max_versions"]))
        values["history_limit"] = int(env.get("DOC_UPKEEP_HISTORY_LIMIT", values["history_limit"]))
        values["stale_after_days"] = int(env.get("DOC_UPKEEP_STALE_DAYS", values["stale_after_days"]))
        values["api_url"] = env.get("DOC_API_URL", values["api_url"])
        values["api_token"] = env.get("DOC_API_TOKEN", values["api_token"])
        values["log_level"] = env.get("LOG_LEVEL", values["log_level"]).upper()

        if values.get("registry_path") is not None:
            values["registry_path"] = Path(values["registry_path"])
        if values.get("report_dir") is not None:
            values["report_dir"] = Path(values["report_dir"])
        return cls(**values)
