"""Shared fixtures for the doc-upkeep test suite.

Every test works inside a temporary project root; nothing touches the
network or the real working directory.
"""

import sys
from pathlib import Path

import pytest

# Ensure the repo root is importable without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from doc_upkeep.config import UpkeepConfig
from doc_upkeep.registry import DocumentRegistry
from doc_upkeep.updater import DocumentUpdater


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of the tests."""
    for name in (
        "DOC_UPKEEP_ROOT", "DOC_UPKEEP_REGISTRY", "DOC_UPKEEP_MAX_VERSIONS",
        "DOC_UPKEEP_HISTORY_LIMIT", "DOC_UPKEEP_STALE_DAYS", "DOC_UPKEEP_STRATEGY",
        "DOC_UPKEEP_CONFLICT_HANDLING", "DOC_UPKEEP_REPORT_DIR", "DOC_UPKEEP_BACKUP",
        "DOC_API_URL", "DOC_API_TOKEN", "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project_root(tmp_path):
    """Temp directory acting as the documentation project."""
    root = tmp_path / "project"
    (root / "docs").mkdir(parents=True)
    return root.resolve()


@pytest.fixture
def config(project_root):
    return UpkeepConfig(project_root=project_root)


@pytest.fixture
def registry(config):
    return DocumentRegistry(config.registry_path, project_root=config.project_root)


@pytest.fixture
def updater(config, registry):
    return DocumentUpdater(config, registry=registry)


@pytest.fixture
def write_doc(project_root):
    """Write a document under the project root and return its path."""
    def _write(relative: str, content: str) -> Path:
        path = project_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path
    return _write
