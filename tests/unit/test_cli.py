"""Tests for CLI functionality."""

import io
import json
import zipfile
from dataclasses import replace
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from apps.cli.main import app
from liberation.config import LiberationConfig
from liberation.pipeline import Liberator


@pytest.fixture
def liberator(tmp_path):
    config = replace(LiberationConfig.default(), data_dir=tmp_path / "data")
    return Liberator.from_config(config)


@pytest.fixture
def lovable_zip_path(tmp_path, lovable_project, zip_builder):
    path = tmp_path / "lovable-export.zip"
    path.write_bytes(zip_builder(lovable_project.as_dict()))
    return path


class TestCLI:
    """Test CLI command interface."""

    def setup_method(self):
        """Setup test fixtures."""
        self.runner = CliRunner()

    def test_cli_help_command(self):
        """Should display help when called with --help."""
        result = self.runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "liberate" in result.output.lower()
        assert "analyze" in result.output.lower()

    def test_analyze_table(self, liberator, lovable_zip_path):
        """Should print the score and the issue table."""
        with patch("apps.cli.main.build_liberator", return_value=liberator):
            result = self.runner.invoke(app, ["analyze", str(lovable_zip_path)])

        assert result.exit_code == 0
        assert "32/100" in result.output
        assert "Lovable" in result.output
        assert ".lovable/config.json" in result.output

    def test_analyze_json(self, liberator, lovable_zip_path):
        """Should emit the analysis as JSON."""
        with patch("apps.cli.main.build_liberator", return_value=liberator):
            result = self.runner.invoke(app, ["analyze", str(lovable_zip_path), "--format", "json"])

        assert result.exit_code == 0
        text = result.stdout
        data = json.loads(text[text.index("{") : text.rindex("}") + 1])
        assert data["score"] == 32
        assert data["detected_platform"] == "Lovable"
        assert len(data["issues"]) == 8

    def test_analyze_missing_file(self, liberator, tmp_path):
        with patch("apps.cli.main.build_liberator", return_value=liberator):
            result = self.runner.invoke(app, ["analyze", str(tmp_path / "nope.zip")])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_liberate_writes_archive(self, liberator, lovable_zip_path, tmp_path):
        """Should clean the project and write the archive to --out."""
        output = tmp_path / "clean.zip"
        with patch("apps.cli.main.build_liberator", return_value=liberator):
            result = self.runner.invoke(
                app,
                ["liberate", str(lovable_zip_path), "--yes", "--no-ai", "--name", "shop", "-o", str(output)],
            )

        assert result.exit_code == 0, result.output
        assert "Score: 32 -> 100" in result.output
        with zipfile.ZipFile(io.BytesIO(output.read_bytes())) as archive:
            names = archive.namelist()
        assert "shop/package.json" in names
        assert "shop/Dockerfile" in names
        assert len(liberator.ledger.list("local")) == 1

    def test_liberate_declined(self, liberator, lovable_zip_path):
        """Answering no at the prompt abandons the run."""
        with patch("apps.cli.main.build_liberator", return_value=liberator):
            result = self.runner.invoke(app, ["liberate", str(lovable_zip_path), "--no-ai"], input="n\n")

        assert result.exit_code == 2
        assert "Cancelled" in result.output
        assert liberator.ledger.list("local") == []

    def test_history_and_forget(self, liberator, lovable_zip_path):
        with patch("apps.cli.main.build_liberator", return_value=liberator):
            self.runner.invoke(app, ["liberate", str(lovable_zip_path), "-y", "--no-ai", "--owner", "dana"])
            run_id = liberator.ledger.list("dana")[0].run_id

            listed = self.runner.invoke(app, ["history", "--owner", "dana"])
            assert listed.exit_code == 0
            assert "No runs recorded" not in listed.output

            forgotten = self.runner.invoke(app, ["forget", run_id, "--owner", "dana"])
            assert forgotten.exit_code == 0
            assert liberator.ledger.list("dana") == []

            again = self.runner.invoke(app, ["forget", run_id, "--owner", "dana"])
            assert again.exit_code == 1

    def test_history_empty(self, liberator):
        with patch("apps.cli.main.build_liberator", return_value=liberator):
            result = self.runner.invoke(app, ["history"])
        assert result.exit_code == 0
        assert "No runs recorded" in result.output

    def test_unknown_ai_provider_is_reported(self, tmp_path):
        """A misconfigured provider ends the command with an error, not a traceback."""
        env = {"LIBERATOR_AI_PROVIDER": "mystery", "LIBERATOR_DATA_DIR": str(tmp_path)}
        for args in (["analyze", "acme/site"], ["history"], ["forget", "abc"]):
            result = self.runner.invoke(app, args, env=env)

            assert result.exit_code == 1, args
            assert "Error" in result.output
            assert "mystery" in result.output
            assert not isinstance(result.exception, ValueError)
