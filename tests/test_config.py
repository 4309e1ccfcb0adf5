"""Tests for configuration loading."""

import json

import pytest

from doc_upkeep.config import UpkeepConfig


class TestDefaults:

    def test_paths_under_project_root(self, project_root):
        config = UpkeepConfig(project_root=project_root)
        assert config.registry_path == project_root / ".doc-upkeep" / "registry.json"
        assert config.report_dir == project_root / ".doc-upkeep" / "reports"
        assert config.max_versions == 5

    def test_relative_registry_path(self, project_root):
        config = UpkeepConfig(project_root=project_root, registry_path="state/reg.json")
        assert config.registry_path == project_root / "state" / "reg.json"

    @pytest.mark.parametrize("field,value", [("strategy", "rewrite"), ("conflict_handling", "coin_flip")])
    def test_rejects_unknown_choices(self, project_root, field, value):
        with pytest.raises(ValueError):
            UpkeepConfig(project_root=project_root, **{field: value})


class TestFromEnv:

    def test_config_file_section(self, project_root):
        (project_root / "doc-upkeep.config.json").write_text(json.dumps({
            "documentUpdates": {"strategy": "smart", "maxVersions": 2, "unknownKey": True},
        }))

        config = UpkeepConfig.from_env(project_root)

        assert config.strategy == "smart"
        assert config.max_versions == 2

    def test_env_overrides_file(self, project_root, monkeypatch):
        (project_root / "doc-upkeep.config.json").write_text(json.dumps({
            "documentUpdates": {"strategy": "smart"},
        }))
        monkeypatch.setenv("DOC_UPKEEP_STRATEGY", "append")
        monkeypatch.setenv("DOC_UPKEEP_BACKUP", "false")
        monkeypatch.setenv("DOC_UPKEEP_MAX_VERSIONS", "7")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = UpkeepConfig.from_env(project_root)

        assert config.strategy == "append"
        assert config.backup_original is False
        assert config.max_versions == 7
        assert config.log_level == "DEBUG"

    def test_unreadable_file_ignored(self, project_root, caplog):
        (project_root / "doc-upkeep.config.json").write_text("{broken")
        config = UpkeepConfig.from_env(project_root)
        assert config.strategy == "auto"
        assert "unreadable" in caplog.text
