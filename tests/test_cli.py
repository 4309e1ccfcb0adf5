"""Tests for the doc-upkeep command line."""

import json

import pytest
import responses

from doc_upkeep.cli import EXIT_FAILED, EXIT_OK, EXIT_USAGE, build_parser, main
from tests.fixtures import GUIDE_CANDIDATE, GUIDE_EXISTING


@pytest.fixture
def run(project_root):
    """Invoke the CLI against the temp project."""
    def _run(*args):
        return main(["--root", str(project_root), *args])
    return _run


@pytest.fixture
def candidate(tmp_path):
    def _candidate(content, name="candidate.md"):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _candidate


class TestUpdateCommand:

    def test_creates_document(self, run, candidate, project_root, capsys):
        code = run("update", "docs/api.md", candidate("# API\nHello"))

        assert code == EXIT_OK
        assert (project_root / "docs" / "api.md").read_text() == "# API\nHello"
        assert "[Success] docs/api.md: created (v1)" in capsys.readouterr().out

    def test_json_output(self, run, candidate, write_doc, capsys):
        write_doc("docs/guide.md", GUIDE_EXISTING)

        code = run("update", "docs/guide.md", candidate(GUIDE_CANDIDATE), "--json")

        data = json.loads(capsys.readouterr().out)
        assert code == EXIT_OK
        assert data["status"] == "success"
        assert data["preservedSections"] == ["Usage"]

    def test_dry_run_show(self, run, candidate, write_doc, capsys):
        path = write_doc("docs/guide.md", GUIDE_EXISTING)

        run("update", "docs/guide.md", candidate(GUIDE_CANDIDATE), "--dry-run", "--show")

        assert "MANUAL_EDIT_START" in capsys.readouterr().out
        assert path.read_text() == GUIDE_EXISTING

    def test_traversal_rejected(self, run, candidate, capsys):
        code = run("update", "../evil.md", candidate("# X\n"))
        assert code == EXIT_FAILED
        assert "traversal" in capsys.readouterr().out

    def test_missing_candidate_file(self, run, tmp_path):
        assert run("update", "docs/api.md", str(tmp_path / "nope.md")) == EXIT_FAILED

    def test_report_written(self, run, candidate, project_root):
        run("update", "docs/api.md", candidate("# API\n"), "--report")
        reports = list((project_root / ".doc-upkeep" / "reports").glob("update-report-*.md"))
        assert len(reports) == 1


class TestPublish:

    @pytest.fixture(autouse=True)
    def api(self, monkeypatch):
        monkeypatch.setenv("DOC_API_URL", "http://docs.test")
        with responses.RequestsMock() as rsps:
            rsps.add(responses.POST, "http://docs.test/api/docs", json={"status": "stored"}, status=201)
            yield rsps

    def test_publishes_after_health_check(self, api, run, candidate, capsys):
        api.add(responses.GET, "http://docs.test/health", status=200)

        code = run("update", "docs/api.md", candidate("# API\n"), "--publish")

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "[API] Published: stored" in out
        assert "[Warning]" not in out
        assert [c.request.method for c in api.calls] == ["GET", "POST"]

    def test_unhealthy_api_warns_then_publishes(self, api, run, candidate, capsys):
        api.add(responses.GET, "http://docs.test/health", status=503)

        code = run("update", "docs/api.md", candidate("# API\n"), "--publish")

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "[Warning] Documentation API at http://docs.test is not responding" in out
        assert "[API] Published: stored" in out


class TestBatchCommand:

    def test_manifest_with_candidates(self, run, tmp_path, capsys):
        (tmp_path / "a.md").write_text("# A\n")
        manifest = tmp_path / "manifest.json"
        manifest.write_text(json.dumps([
            {"path": "docs/a.md", "candidate": "a.md"},
            {"path": "docs/b.md", "content": "# B\n"},
        ]))

        code = run("batch", str(manifest))

        assert code == EXIT_OK
        assert "2/2 documents processed" in capsys.readouterr().out

    def test_failure_sets_exit_code(self, run, tmp_path):
        manifest = tmp_path / "manifest.json"
        manifest.write_text(json.dumps({"documents": [{"path": "../x.md", "content": "# X\n"}]}))
        assert run("batch", str(manifest)) == EXIT_FAILED

    def test_unreadable_manifest(self, run, tmp_path):
        (tmp_path / "bad.json").write_text("[")
        assert run("batch", str(tmp_path / "bad.json")) == EXIT_USAGE


class TestInspectionCommands:

    def test_status_json(self, run, candidate, capsys):
        run("update", "docs/api.md", candidate("# API\n"))
        capsys.readouterr()

        assert run("status", "--json") == EXIT_OK
        summary = json.loads(capsys.readouterr().out)
        assert summary["summary"]["total_documents"] == 1

    def test_list_empty(self, run, capsys):
        assert run("list") == EXIT_OK
        assert "No documents registered yet." in capsys.readouterr().out

    def test_history(self, run, candidate, capsys):
        run("update", "docs/api.md", candidate("# API\n\nOne.\n"))
        run("update", "docs/api.md", candidate("# API\n\nTwo.\n"))
        capsys.readouterr()

        assert run("history", "docs/api.md") == EXIT_OK
        out = capsys.readouterr().out
        assert "version 2" in out
        assert "Snapshots:" in out

    def test_history_untracked(self, run):
        assert run("history", "docs/none.md") == EXIT_FAILED

    def test_validate(self, run, write_doc, capsys):
        write_doc("docs/ok.md", GUIDE_EXISTING)
        write_doc("docs/bad.md", "<!-- PRESERVE_START -->\nno end\n")

        assert run("validate", "docs/ok.md") == EXIT_OK
        assert run("validate", "docs/bad.md") == EXIT_FAILED
        assert "Unmatched preserve" in capsys.readouterr().out


class TestProtectCommand:

    def test_protect(self, run, write_doc, capsys):
        path = write_doc("docs/guide.md", GUIDE_CANDIDATE)

        assert run("protect", "docs/guide.md", "## Usage", "--author", "jane") == EXIT_OK
        assert "<!-- MANUAL_AUTHOR: jane -->" in path.read_text()

    def test_unknown_heading(self, run, write_doc, capsys):
        write_doc("docs/guide.md", GUIDE_CANDIDATE)
        assert run("protect", "docs/guide.md", "Nope") == EXIT_FAILED
        assert "No section titled" in capsys.readouterr().out


class TestParser:

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_invalid_strategy(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["update", "a.md", "b.md", "--strategy", "wild"])
