"""Tests for the command-line interface."""

import json
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from content_sync.cli.display import formatters
from content_sync.cli.main import cli
from content_sync.core.sync import ConflictDetector

from tests.helpers import make_definition, text_field

TITLE = text_field("title")


@pytest.fixture
def runner():
    """Click test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep tables from wrapping cell values."""
    monkeypatch.setattr(formatters, "console", Console(width=200))


def _invoke(runner, *args):
    return runner.invoke(cli, ["--log-level", "ERROR", *args])


def _definitions_file(tmp_path, definitions):
    path = tmp_path / "types.json"
    path.write_text(json.dumps(definitions), encoding="utf-8")
    return path


class TestTypesCommands:
    """Test the types command group."""

    def test_import_and_list(self, runner, config, tmp_path):
        """Imported definitions are stored and listed."""
        path = _definitions_file(
            tmp_path,
            [
                {"key": "article", "name": "Article", "fields": [TITLE]},
                {"key": "author", "name": "Author", "fields": [TITLE]},
            ],
        )

        result = _invoke(runner, "types", "import", str(path))

        assert result.exit_code == 0, result.output
        assert "Imported 2 content type(s), 2 new version(s)" in result.output

        listed = _invoke(runner, "types", "list")
        assert listed.exit_code == 0
        assert "article" in listed.output
        assert "author" in listed.output

    def test_import_wrapped_object(self, runner, config, tmp_path):
        """A ``content_types`` object is accepted too."""
        path = _definitions_file(
            tmp_path,
            {"content_types": [{"key": "page", "name": "Page", "fields": [TITLE]}]},
        )

        result = _invoke(runner, "types", "import", str(path))

        assert result.exit_code == 0, result.output
        assert "Imported 1 content type(s)" in result.output

    def test_import_invalid_definition(self, runner, config, tmp_path):
        """Validation errors abort the import."""
        path = _definitions_file(
            tmp_path,
            [
                {
                    "key": "article",
                    "name": "Article",
                    "fields": [{"key": "x", "name": "X", "type": "nope"}],
                }
            ],
        )

        result = _invoke(runner, "types", "import", str(path))

        assert result.exit_code != 0
        assert "Invalid definition" in result.output

    def test_export(self, runner, config, temp_db, tmp_path):
        """Export writes the stored definitions as JSON."""
        temp_db.upsert_content_type({"key": "article", "name": "Article"})
        target = tmp_path / "out" / "types.json"

        result = _invoke(runner, "types", "export", str(target))

        assert result.exit_code == 0, result.output
        exported = json.loads(target.read_text(encoding="utf-8"))
        assert [d["key"] for d in exported["content_types"]] == ["article"]

    def test_list_empty(self, runner, config):
        """An empty store says so."""
        result = _invoke(runner, "types", "list")
        assert result.exit_code == 0
        assert "No content types stored locally" in result.output


class TestSyncCommands:
    """Test detect, deploy, retry and recover."""

    def test_detect(self, runner, orchestrator, platform):
        """Detection prints the change report."""
        platform.put(make_definition("author"))
        with patch(
            "content_sync.cli.commands.sync.init_orchestrator",
            Mock(return_value=orchestrator),
        ):
            result = _invoke(runner, "detect", "--no-persist")

        assert result.exit_code == 0, result.output
        assert "author: only on remote" in result.output
        assert orchestrator.state_store.get("author") is None

    def test_deploy(self, runner, orchestrator, platform):
        """Deploy pushes local types and prints the result."""
        orchestrator.repository.save(make_definition("article"))
        with patch(
            "content_sync.cli.commands.sync.init_orchestrator",
            Mock(return_value=orchestrator),
        ) as init:
            result = _invoke(
                runner, "deploy", "--no-progress", "--deployment-id", "release-1"
            )

        assert result.exit_code == 0, result.output
        assert "Deployment release-1" in result.output
        assert "completed" in result.output
        assert "article" in platform.types
        assert init.call_args[1]["progress_callback"] is None

    def test_deploy_reports_conflicts(self, runner, orchestrator, platform):
        """Halted deployments point at the conflict queue."""
        orchestrator.repository.save(make_definition("article"))
        platform.put(make_definition("article", [TITLE, text_field("tags")]))
        with patch(
            "content_sync.cli.commands.sync.init_orchestrator",
            Mock(return_value=orchestrator),
        ):
            result = _invoke(runner, "deploy", "--no-progress")

        assert result.exit_code == 0, result.output
        assert "Conflicts need review" in result.output

    def test_deploy_failure_aborts(self, runner):
        """Setup errors abort with a message."""
        with patch(
            "content_sync.cli.commands.sync.init_orchestrator",
            Mock(side_effect=RuntimeError("no database")),
        ):
            result = _invoke(runner, "deploy", "--no-progress")

        assert result.exit_code != 0
        assert "Deployment failed: no database" in result.output

    def test_retry_unknown_deployment(self, runner, orchestrator):
        """Retrying an unknown deployment aborts."""
        with patch(
            "content_sync.cli.commands.sync.init_orchestrator",
            Mock(return_value=orchestrator),
        ):
            result = _invoke(runner, "retry", "missing")

        assert result.exit_code != 0
        assert "Deployment not found" in result.output

    def test_recover_nothing(self, runner, orchestrator):
        """Recovery with nothing to do says so."""
        with patch(
            "content_sync.cli.commands.sync.init_orchestrator",
            Mock(return_value=orchestrator),
        ):
            result = _invoke(runner, "recover")

        assert result.exit_code == 0
        assert "No interrupted syncs" in result.output


class TestStatusAndConflictCommands:
    """Test status, conflicts and history."""

    def test_status_for_deployment(self, runner, orchestrator, config):
        """A deployment record is shown with its log."""
        orchestrator.repository.save(make_definition("article"))
        deployed = orchestrator.deploy(deployment_id="release-2")

        result = _invoke(runner, "status", "--deployment", deployed.deployment_id)

        assert result.exit_code == 0, result.output
        assert "Deployment release-2" in result.output
        assert "Pushed article" in result.output

    def test_status_unknown_deployment(self, runner, config):
        """Unknown deployments abort."""
        result = _invoke(runner, "status", "--deployment", "missing")
        assert result.exit_code != 0
        assert "Deployment not found" in result.output

    def test_status_stats_shows_health(self, runner, orchestrator, config):
        """Sync health for the configured platform is summarized."""
        orchestrator.repository.save(make_definition("article"))
        orchestrator.deploy()

        result = _invoke(runner, "status", "--stats")

        assert result.exit_code == 0, result.output
        assert "Sync Health: test-platform" in result.output
        assert "100.0%" in result.output
        assert "Syncs are healthy." in result.output

    def test_conflicts_list_and_stats(self, runner, orchestrator, config):
        """Queued conflicts are listed and counted."""
        orchestrator.conflict_manager.flag_for_review(
            ConflictDetector.classify(
                "article",
                make_definition("article", [dict(TITLE, required=True)]),
                make_definition("article", [dict(TITLE, unique=True)]),
                make_definition("article", [TITLE]),
            )
        )

        listed = _invoke(runner, "conflicts", "list")
        assert listed.exit_code == 0, listed.output
        assert "article" in listed.output

        stats = _invoke(runner, "conflicts", "stats")
        assert stats.exit_code == 0, stats.output
        assert "Conflict Statistics" in stats.output

        cleared = _invoke(runner, "conflicts", "clear")
        assert cleared.exit_code == 0
        assert "Cleared 0 resolved conflict(s)" in cleared.output

    def test_conflicts_resolve_unknown(self, runner, orchestrator):
        """Resolving an unknown conflict aborts."""
        with patch(
            "content_sync.cli.commands.conflicts.init_orchestrator",
            Mock(return_value=orchestrator),
        ):
            result = _invoke(runner, "conflicts", "resolve", "missing")

        assert result.exit_code != 0
        assert "Conflict not found" in result.output

    def test_history_log_and_tree(self, runner, orchestrator, config):
        """Version history is printed for a key."""
        orchestrator.repository.save(make_definition("article"))
        orchestrator.repository.save(
            make_definition("article", [TITLE, text_field("body")])
        )

        log = _invoke(runner, "history", "log", "article")
        assert log.exit_code == 0, log.output
        assert "History" in log.output

        tree = _invoke(runner, "history", "tree", "article")
        assert tree.exit_code == 0, tree.output

    def test_history_lineage_unknown(self, runner, config):
        """Unknown versions abort."""
        result = _invoke(runner, "history", "lineage", "f" * 64)
        assert result.exit_code != 0
        assert "Version not found" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
