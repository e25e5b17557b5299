"""Tests for the CLI interface."""

import gzip
import json
from datetime import date
from pathlib import Path

import pytest
from typer.testing import CliRunner

from hontodana.portability.cli import app, get_services, reset_services

CSV_DATA = (
    "Title,Authors,Status,CurrentPage,Rating\n"
    "Dune,Frank Herbert,reading,10,5\n"
    "Emma,Jane Austen,completed,300,4\n"
)


@pytest.fixture(autouse=True)
def cli_env(no_env_leaks, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the CLI at a throwaway database."""
    monkeypatch.setenv("HONTODANA_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("HONTODANA_LOG_LEVEL", "WARNING")
    reset_services()
    yield
    reset_services()


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "books.csv"
    path.write_text(CSV_DATA, encoding="utf-8")
    return path


@pytest.fixture
def user(runner: CliRunner) -> str:
    result = runner.invoke(app, ["add-user", "reader"])
    assert result.exit_code == 0
    return "reader"


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Import and export" in result.stdout

    def test_version(self, runner: CliRunner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout


class TestAddUser:
    def test_add_user(self, runner: CliRunner):
        result = runner.invoke(app, ["add-user", "reader"])

        assert result.exit_code == 0
        assert "Added user reader" in result.stdout
        assert get_services().store.user_exists("reader")

    def test_add_existing_user(self, runner: CliRunner, user):
        result = runner.invoke(app, ["add-user", user])

        assert result.exit_code == 0
        assert "already exists" in result.stdout


class TestPreviewCommand:
    def test_preview(self, runner: CliRunner, user, csv_file):
        result = runner.invoke(app, ["preview", str(csv_file), "--user", user])

        assert result.exit_code == 0
        assert "Import Preview" in result.stdout
        assert "Preview only" in result.stdout
        assert get_services().store.list_user_books(user) == []

    def test_preview_missing_file(self, runner: CliRunner, user, tmp_path):
        result = runner.invoke(app, ["preview", str(tmp_path / "nope.csv"), "--user", user])

        assert result.exit_code == 1
        assert "File not found" in result.stdout

    def test_preview_unknown_user(self, runner: CliRunner, csv_file):
        result = runner.invoke(app, ["preview", str(csv_file), "--user", "ghost"])

        assert result.exit_code == 1
        assert "User not found" in result.stdout


class TestImportCommand:
    """Tests for the import command."""

    def test_import_with_yes(self, runner: CliRunner, user, csv_file):
        result = runner.invoke(app, ["import", str(csv_file), "--user", user, "--yes"])

        assert result.exit_code == 0
        assert "Import complete" in result.stdout
        assert len(get_services().store.list_user_books(user)) == 2

    def test_import_declined(self, runner: CliRunner, user, csv_file):
        result = runner.invoke(app, ["import", str(csv_file), "--user", user], input="n\n")

        assert result.exit_code == 0
        assert "Import cancelled" in result.stdout
        assert get_services().store.list_user_books(user) == []

    def test_import_confirmed(self, runner: CliRunner, user, csv_file):
        result = runner.invoke(app, ["import", str(csv_file), "--user", user], input="y\n")

        assert result.exit_code == 0
        assert len(get_services().store.list_user_books(user)) == 2

    def test_invalid_strategy(self, runner: CliRunner, user, csv_file):
        result = runner.invoke(
            app, ["import", str(csv_file), "--user", user, "--strategy", "overwrite"]
        )

        assert result.exit_code == 1
        assert "Invalid strategy" in result.stdout

    def test_strict_import_fails(self, runner: CliRunner, user, tmp_path):
        path = tmp_path / "broken.csv"
        path.write_text("Title,Authors\nGood,A\n,B\n", encoding="utf-8")

        result = runner.invoke(app, ["import", str(path), "--user", user, "--strict", "--yes"])

        assert result.exit_code == 1
        assert "Import failed" in result.stdout
        assert get_services().store.list_user_books(user) == []

    def test_reimport_with_skip(self, runner: CliRunner, user, csv_file):
        runner.invoke(app, ["import", str(csv_file), "--user", user, "--yes"])
        result = runner.invoke(
            app, ["import", str(csv_file), "--user", user, "--strategy", "skip", "--yes"]
        )

        assert result.exit_code == 0
        assert len(get_services().store.list_user_books(user)) == 2


class TestStatusCommand:
    def test_status_of_finished_job(self, runner: CliRunner, user, csv_file):
        runner.invoke(app, ["import", str(csv_file), "--user", user, "--yes"])
        [job] = get_services().jobs.job_store.list_for_user(user)

        result = runner.invoke(app, ["status", job.job_id])

        assert result.exit_code == 0
        assert "completed" in result.stdout
        assert "100%" in result.stdout

    def test_unknown_job(self, runner: CliRunner):
        result = runner.invoke(app, ["status", "missing"])

        assert result.exit_code == 1
        assert "Job not found" in result.stdout


class TestExportCommand:
    """Tests for the export command."""

    def test_export_json_to_file(self, runner: CliRunner, user, csv_file, tmp_path):
        runner.invoke(app, ["import", str(csv_file), "--user", user, "--yes"])
        output = tmp_path / "out.json"

        result = runner.invoke(app, ["export", "--user", user, "--output", str(output)])

        assert result.exit_code == 0
        assert "Exported 2 records" in result.stdout
        document = json.loads(output.read_text(encoding="utf-8"))
        assert {b["title"] for b in document["books"]} == {"Dune", "Emma"}

    def test_export_csv_to_directory(self, runner: CliRunner, user, csv_file, tmp_path):
        runner.invoke(app, ["import", str(csv_file), "--user", user, "--yes"])
        out_dir = tmp_path / "exports"
        out_dir.mkdir()

        result = runner.invoke(
            app, ["export", "--user", user, "--format", "csv", "--output", str(out_dir)]
        )

        assert result.exit_code == 0
        [path] = list(out_dir.iterdir())
        assert path.name.startswith("export_") and path.suffix == ".csv"
        assert "Dune,Frank Herbert,reading,10,5" in path.read_text(encoding="utf-8")

    def test_export_compressed(self, runner: CliRunner, user, tmp_path):
        result = runner.invoke(
            app, ["export", "--user", user, "--compress", "--output", str(tmp_path)]
        )

        assert result.exit_code == 0
        [path] = list(tmp_path.glob("*.json.gz"))
        assert json.loads(gzip.decompress(path.read_bytes()))["metadata"]["userId"] == user

    def test_export_with_date_range(self, runner: CliRunner, user, tmp_path):
        output = tmp_path / "sessions.json"
        result = runner.invoke(
            app,
            [
                "export", "--user", user,
                "--types", "sessions",
                "--from", "2024-01-01", "--to", date.today().isoformat(),
                "--output", str(output),
            ],
        )

        assert result.exit_code == 0
        assert json.loads(output.read_text(encoding="utf-8"))["readingSessions"] == []

    def test_invalid_date(self, runner: CliRunner, user):
        result = runner.invoke(app, ["export", "--user", user, "--from", "yesterday"])

        assert result.exit_code == 1
        assert "Invalid --from date" in result.stdout

    def test_invalid_format(self, runner: CliRunner, user):
        result = runner.invoke(app, ["export", "--user", user, "--format", "xml"])

        assert result.exit_code == 1
        assert "Invalid export format" in result.stdout

    def test_unknown_user(self, runner: CliRunner):
        result = runner.invoke(app, ["export", "--user", "ghost"])

        assert result.exit_code == 1
        assert "User not found" in result.stdout
