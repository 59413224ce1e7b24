"""Tests for the wfqueue CLI."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from workflowy_queue import __version__
from workflowy_queue.cli.app import app
from workflowy_queue.logging import reset_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging_state():
    """Drop handlers bound to CliRunner streams after each invocation."""
    yield
    reset_logging()


@pytest.fixture
def ops_file(tmp_path: Path) -> Path:
    """A small operations file in JSON array form."""
    path = tmp_path / "ops.json"
    path.write_text(
        json.dumps(
            [
                {"kind": "create", "params": {"name": "Inbox"}},
                {"kind": "complete", "params": {"node_id": "n1"}},
                {"kind": "delete", "params": {"node_id": "n2"}},
            ]
        )
    )
    return path


def mock_client_class(mock_client: MagicMock, request: AsyncMock) -> MagicMock:
    """Wire a patched WorkflowyClient class to return an instance with request()."""
    mock_client_instance = MagicMock()
    mock_client_instance.request = request
    mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_client_instance)
    mock_client.return_value.__aexit__ = AsyncMock(return_value=None)
    return mock_client_instance


class TestGlobalFlags:
    """Tests for global CLI flags."""

    def test_help_shows_flags(self):
        """Main help lists the global flags and ops group."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "--verbose" in result.stdout
        assert "--quiet" in result.stdout
        assert "ops" in result.stdout

    def test_version(self):
        """--version prints the package version."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestConfigCommand:
    """Tests for the config command."""

    def test_shows_effective_settings(self, monkeypatch):
        """config lists queue and rate limit settings."""
        monkeypatch.setenv("QUEUE__MAX_CONCURRENCY", "4")

        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "queue.max_concurrency" in result.stdout
        assert "rate_limit.burst_size" in result.stdout
        assert "4" in result.stdout


class TestRoutesCommand:
    """Tests for ops routes."""

    def test_lists_every_kind(self):
        """Every operation kind appears with its endpoint."""
        result = runner.invoke(app, ["ops", "routes"])

        assert result.exit_code == 0
        for kind in ("create", "update", "delete", "move", "complete", "uncomplete"):
            assert kind in result.stdout
        assert "/nodes/{node_id}/uncomplete" in result.stdout


class TestApplyDryRun:
    """Tests for ops apply --dry-run."""

    def test_dry_run_json(self, ops_file: Path):
        """--dry-run --format json prints the resolved requests."""
        result = runner.invoke(
            app, ["-q", "ops", "apply", str(ops_file), "--dry-run", "--format", "json"]
        )

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert rows[0] == {
            "index": 0,
            "kind": "create",
            "method": "POST",
            "endpoint": "/nodes",
            "body": {"name": "Inbox"},
        }
        assert rows[1]["endpoint"] == "/nodes/n1/complete"
        assert rows[2]["method"] == "DELETE"
        assert rows[2]["body"] is None

    def test_dry_run_text(self, ops_file: Path):
        """--dry-run renders a table without calling the API."""
        with patch("workflowy_queue.cli.ops.WorkflowyClient") as mock_client:
            result = runner.invoke(app, ["ops", "apply", str(ops_file), "--dry-run"])

        assert result.exit_code == 0
        assert "dry-run" in result.stdout
        assert "/nodes/n1/complete" in result.stdout
        mock_client.assert_not_called()

    def test_dry_run_reports_bad_entries(self, tmp_path: Path):
        """Unknown kinds are reported per entry."""
        path = tmp_path / "ops.jsonl"
        path.write_text('{"kind": "archive", "params": {"node_id": "x"}}\n')

        result = runner.invoke(
            app, ["-q", "ops", "apply", str(path), "--dry-run", "--format", "json"]
        )

        assert result.exit_code == 0
        assert "Unknown operation type" in json.loads(result.stdout)[0]["error"]


class TestApply:
    """Tests for ops apply."""

    def test_missing_file(self, tmp_path: Path):
        """A nonexistent path is rejected by argument validation."""
        result = runner.invoke(app, ["ops", "apply", str(tmp_path / "missing.json")])

        assert result.exit_code != 0

    def test_malformed_file(self, tmp_path: Path):
        """Invalid JSON exits with code 1."""
        path = tmp_path / "bad.json"
        path.write_text("[{]")

        result = runner.invoke(app, ["ops", "apply", str(path)])

        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_empty_file(self, tmp_path: Path):
        """An empty file is a no-op."""
        path = tmp_path / "empty.json"
        path.write_text("[]")

        result = runner.invoke(app, ["ops", "apply", str(path)])

        assert result.exit_code == 0
        assert "No operations found" in result.stdout

    @patch("workflowy_queue.cli.ops.WorkflowyClient")
    def test_apply_success_json(self, mock_client, ops_file: Path):
        """All operations succeed and are reported as JSON."""
        request = AsyncMock(return_value={"ok": True})
        mock_client_class(mock_client, request)

        result = runner.invoke(
            app, ["-q", "ops", "apply", str(ops_file), "--format", "json", "-c", "1", "-b", "2"]
        )

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["total"] == 3
        assert output["succeeded"] == 3
        assert output["stats"]["total_processed"] == 3
        assert [call.args[0] for call in request.await_args_list] == [
            "/nodes",
            "/nodes/n1/complete",
            "/nodes/n2",
        ]

    @patch("workflowy_queue.cli.ops.WorkflowyClient")
    def test_apply_text_summary(self, mock_client, ops_file: Path):
        """Text output ends with a summary line."""
        mock_client_class(mock_client, AsyncMock(return_value=None))

        result = runner.invoke(app, ["-q", "ops", "apply", str(ops_file)])

        assert result.exit_code == 0
        assert "Succeeded:" in result.stdout
        assert "Applied Operations" in result.stdout

    @patch("workflowy_queue.cli.ops.WorkflowyClient")
    def test_apply_failure_exits_nonzero(self, mock_client, ops_file: Path):
        """Any failed operation sets exit code 1."""

        async def request(endpoint, method="GET", body=None):
            if endpoint == "/nodes/n2":
                raise RuntimeError("node is locked")
            return {"ok": True}

        mock_client_class(mock_client, AsyncMock(side_effect=request))

        result = runner.invoke(app, ["-q", "ops", "apply", str(ops_file), "--format", "json"])

        assert result.exit_code == 1
        output = json.loads(result.stdout)
        assert output["failed"] == 1
        assert output["operations"][2]["error"] == "node is locked"

    @patch("workflowy_queue.cli.ops.WorkflowyClient")
    def test_error_text_printed_literally(self, mock_client, ops_file: Path):
        """Bracketed API error text is not interpreted as console markup."""

        async def request(endpoint, method="GET", body=None):
            if endpoint == "/nodes/n2":
                raise RuntimeError("[bold]locked[/bold]")
            return {"ok": True}

        mock_client_class(mock_client, AsyncMock(side_effect=request))

        result = runner.invoke(app, ["-q", "ops", "apply", str(ops_file)])

        assert result.exit_code == 1
        assert "[bold]locked[/bold]" in result.stdout

    @patch("workflowy_queue.cli.ops.WorkflowyClient")
    def test_client_error_reported(self, mock_client, ops_file: Path):
        """Errors opening the client are reported with exit code 1."""
        mock_client.side_effect = RuntimeError("Workflowy API key required")

        result = runner.invoke(app, ["ops", "apply", str(ops_file)])

        assert result.exit_code == 1
        assert "Apply failed" in result.stdout
