"""Tests for the document registry: records, persistence and staleness."""

import json
import os
import time
from datetime import timedelta

import pytest

from doc_upkeep.registry import (
    DocumentRegistry,
    completeness_score,
    content_hash,
    freshness_score,
    infer_doc_type,
    utcnow,
)


# ---------------------------------------------------------------------------
# register / get
# ---------------------------------------------------------------------------

class TestRegister:

    def test_first_registration(self, registry):
        record = registry.register("docs/api.md", "# API\nHello")

        assert record.path == "docs/api.md"
        assert record.version == 1
        assert record.content_hash == content_hash("# API\nHello")
        assert record.doc_type == "api-documentation"
        assert record.source == "ai"
        assert record.last_ai_update is not None
        assert len(record.update_history) == 1
        assert record.freshness == 100

    def test_versions_increase(self, registry):
        registry.register("docs/api.md", "one")
        record = registry.register("docs/api.md", "two")

        assert record.version == 2
        assert [h.version for h in record.update_history] == [1, 2]
        assert record.update_history[-1].content_hash == content_hash("two")

    def test_history_trimmed(self, config):
        registry = DocumentRegistry(config.registry_path, config.project_root, history_limit=3)
        for i in range(5):
            record = registry.register("docs/a.md", f"content {i}")

        assert record.version == 5
        assert [h.version for h in record.update_history] == [3, 4, 5]

    def test_change_counts_recorded(self, registry):
        record = registry.register("docs/a.md", "x", {
            "trigger": "ci",
            "changes": {"lines_added": 4, "lines_deleted": 1, "lines_changed": 2},
        })
        entry = record.update_history[0]
        assert entry.trigger == "ci"
        assert (entry.lines_added, entry.lines_deleted, entry.lines_changed) == (4, 1, 2)

    def test_mixed_source(self, registry):
        registry.register("docs/a.md", "x", {"source": "ai"})
        record = registry.register("docs/a.md", "y", {"source": "manual"})
        assert record.source == "mixed"
        assert record.last_manual_update is not None

    def test_keys_are_project_relative(self, registry, project_root):
        registry.register(project_root / "docs" / "a.md", "x")
        assert registry.get("docs/a.md") is not None
        assert registry.get(project_root / "docs" / "a.md").path == "docs/a.md"

    def test_unknown_path(self, registry):
        assert registry.get("docs/none.md") is None

    def test_add_dependency_and_remove(self, registry):
        registry.register("docs/a.md", "x")
        record = registry.add_dependency("docs/a.md", "src/app.py")
        assert record.dependencies == ["src/app.py"]
        assert registry.remove("docs/a.md")
        assert not registry.remove("docs/a.md")

    def test_add_dependency_untracked(self, registry):
        with pytest.raises(KeyError):
            registry.add_dependency("docs/nope.md", "src/app.py")


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestPersistence:

    def test_save_and_reload(self, registry, config):
        registry.register("docs/a.md", "x")
        registry.save()

        reloaded = DocumentRegistry(config.registry_path, config.project_root)
        assert reloaded.get("docs/a.md").version == 1
        assert reloaded.data["version"] == "1.0"

    def test_missing_file_starts_empty(self, registry):
        assert registry.all_records() == []

    @pytest.mark.parametrize("raw", ["{not json", json.dumps({"foo": 1}), json.dumps([1, 2])])
    def test_corrupt_store_reinitialized(self, config, raw, caplog):
        config.registry_path.parent.mkdir(parents=True, exist_ok=True)
        config.registry_path.write_text(raw)

        registry = DocumentRegistry(config.registry_path, config.project_root)

        assert registry.all_records() == []
        assert "corrupt" in caplog.text

    @pytest.mark.parametrize("record", [
        {"path": "docs/a.md", "version": 2},
        "docs/a.md",
    ])
    def test_malformed_record_reinitialized(self, config, record, caplog):
        config.registry_path.parent.mkdir(parents=True, exist_ok=True)
        config.registry_path.write_text(json.dumps({"documents": {"docs/a.md": record}, "version": "1.0"}))

        registry = DocumentRegistry(config.registry_path, config.project_root)

        assert registry.all_records() == []
        assert "Malformed record 'docs/a.md'" in caplog.text

    def test_unknown_record_keys_ignored(self, config):
        config.registry_path.parent.mkdir(parents=True, exist_ok=True)
        config.registry_path.write_text(json.dumps({"documents": {"docs/a.md": {
            "path": "docs/a.md",
            "content_hash": content_hash("x"),
            "owner": "sam",
            "update_history": [{"version": 1, "timestamp": "2026-01-01T00:00:00+00:00",
                                "trigger": "update", "source": "ai", "content_hash": "h", "extra": 1}],
        }}, "version": "1.0"}))

        record = DocumentRegistry(config.registry_path, config.project_root).get("docs/a.md")

        assert record.content_hash == content_hash("x")
        assert record.update_history[0].version == 1

    def test_lock_reloads_and_creates_lock_file(self, registry, config):
        other = DocumentRegistry(config.registry_path, config.project_root)
        other.register("docs/a.md", "x")
        other.save()

        with registry.lock() as locked:
            assert locked.get("docs/a.md") is not None
            locked.register("docs/a.md", "y")
            locked.save()

        assert config.registry_path.with_name("registry.json.lock").exists()
        assert DocumentRegistry(config.registry_path, config.project_root).get("docs/a.md").version == 2


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------

class TestIsOutdated:

    def test_not_tracked(self, registry):
        staleness = registry.is_outdated("docs/a.md")
        assert not staleness.outdated
        assert staleness.reason == "not_tracked"

    def test_file_missing(self, registry):
        registry.register("docs/gone.md", "x")
        assert registry.is_outdated("docs/gone.md").reason == "file_missing"

    def test_up_to_date(self, registry, write_doc):
        write_doc("docs/a.md", "content")
        registry.register("docs/a.md", "content")
        staleness = registry.is_outdated("docs/a.md")
        assert not staleness.outdated
        assert staleness.reason == "up_to_date"

    def test_modified_externally(self, registry, write_doc):
        path = write_doc("docs/a.md", "content")
        registry.register("docs/a.md", "content")
        path.write_text("someone edited this")

        staleness = registry.is_outdated("docs/a.md")
        assert staleness.outdated
        assert staleness.reason == "content_modified_externally"

    def test_undecodable_file_counts_as_modified(self, registry, write_doc):
        path = write_doc("docs/a.md", "content")
        registry.register("docs/a.md", "content")
        path.write_bytes(b"\xff\xfe broken")

        staleness = registry.is_outdated("docs/a.md")
        assert staleness.outdated
        assert staleness.reason == "content_modified_externally"

    def test_dependency_changed(self, registry, write_doc):
        write_doc("docs/a.md", "content")
        dep = write_doc("src/app.py", "print('hi')")
        registry.register("docs/a.md", "content", {"dependencies": ["src/app.py"]})
        future = time.time() + 3600
        os.utime(dep, (future, future))

        staleness = registry.is_outdated("docs/a.md")
        assert staleness.reason == "dependency_changed"
        assert staleness.details["dependency"] == "src/app.py"

    def test_older_dependency_is_fine(self, registry, write_doc):
        write_doc("docs/a.md", "content")
        dep = write_doc("src/app.py", "print('hi')")
        past = time.time() - 3600
        os.utime(dep, (past, past))
        registry.register("docs/a.md", "content", {"dependencies": ["src/app.py"]})

        assert not registry.is_outdated("docs/a.md").outdated

    def test_stale_ai_content(self, registry, write_doc):
        write_doc("docs/a.md", "content")
        registry.register("docs/a.md", "content")

        staleness = registry.is_outdated("docs/a.md", now=utcnow() + timedelta(days=31, hours=1))
        assert staleness.reason == "stale_content"
        assert staleness.details["days_since_ai_update"] == 31

    def test_manual_documents_never_stale(self, registry, write_doc):
        write_doc("docs/a.md", "content")
        registry.register("docs/a.md", "content", {"source": "manual"})

        staleness = registry.is_outdated("docs/a.md", now=utcnow() + timedelta(days=365))
        assert not staleness.outdated

    def test_outdated_documents(self, registry, write_doc):
        write_doc("docs/a.md", "content")
        registry.register("docs/a.md", "content")
        registry.register("docs/gone.md", "x")

        outdated = registry.outdated_documents()
        assert [(r.path, s.reason) for r, s in outdated] == [("docs/gone.md", "file_missing")]


# ---------------------------------------------------------------------------
# Summary and scores
# ---------------------------------------------------------------------------

class TestTrackingSummary:

    def test_counts(self, registry, write_doc):
        write_doc("docs/README.md", "# Readme")
        write_doc("docs/api.md", "# API")
        registry.register("docs/README.md", "# Readme")
        registry.register("docs/api.md", "# API", {"source": "manual"})

        summary = registry.tracking_summary()

        assert summary["summary"]["total_documents"] == 2
        assert summary["summary"]["ai_generated"] == 1
        assert summary["summary"]["manual_documents"] == 1
        assert summary["document_types"] == {"readme": 1, "api-documentation": 1}
        assert summary["update_frequency"]["daily"] == 2
        assert summary["outdated"] == []

    def test_older_bucket(self, registry, write_doc):
        write_doc("docs/a.md", "x")
        registry.register("docs/a.md", "x")
        summary = registry.tracking_summary(now=utcnow() + timedelta(days=40))
        assert summary["update_frequency"]["older"] == 1

    def test_freshness_recomputed_at_report_time(self, registry, write_doc):
        write_doc("docs/a.md", "x")
        record = registry.register("docs/a.md", "x")
        later = utcnow() + timedelta(days=45)

        summary = registry.tracking_summary(now=later)

        assert record.freshness == 100
        assert record.freshness_at(later) == 50
        assert summary["summary"]["average_freshness"] == 50


class TestScores:

    @pytest.mark.parametrize("path,expected", [
        ("README.md", "readme"),
        ("docs/CHANGELOG.md", "changelog"),
        ("docs/api-reference.md", "api-documentation"),
        ("docs/migration-v2.md", "migration-guide"),
        ("notes/meeting-2026-01-05.md", "meeting-notes"),
        ("briefs/weekly-summary.md", "summary"),
        ("docs/guide.md", "markdown-documentation"),
        ("src/app.py", "unknown"),
    ])
    def test_infer_doc_type(self, path, expected):
        assert infer_doc_type(path) == expected

    def test_completeness(self):
        content = "# Project\n\n## Installation\n\nx\n\n## Usage\n\ny\n"
        assert completeness_score(content, "readme") == 50

    def test_completeness_without_expectations(self):
        assert completeness_score("text", "unknown") == 100
        assert completeness_score("", "unknown") == 0

    def test_freshness_decay(self):
        now = utcnow()
        assert freshness_score(now.isoformat(), now) == 100
        assert freshness_score((now - timedelta(days=45)).isoformat(), now) == 50
        assert freshness_score((now - timedelta(days=120)).isoformat(), now) == 0
        assert freshness_score(None, now) == 0
