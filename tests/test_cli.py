"""End-to-end tests for the bury command line."""
import json
from pathlib import Path

import click
import pytest
from typer.testing import CliRunner

from bury.main import app

runner = CliRunner()


def output(result) -> str:
    """stdout without ANSI styling, with line wrapping undone."""
    return " ".join(click.unstyle(result.stdout).split())


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("BURY_CONFIG", "BURY_WORKERS", "BURY_MAX_REEXPORT_DEPTH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A two-function project where one function is never called."""
    (tmp_path / "app.py").write_text(
        "def main():\n"
        "    helper()\n"
        "\n"
        "\n"
        "def helper():\n"
        "    pass\n"
        "\n"
        "\n"
        "def unused():\n"
        "    pass\n"
    )
    return tmp_path


@pytest.fixture
def clean_project(tmp_path: Path) -> Path:
    (tmp_path / "app.py").write_text("def main():\n    pass\n")
    return tmp_path


class TestVersion:
    def test_prints_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert result.stdout.strip() == "bury 0.1.0"


class TestInit:
    """`bury init`"""

    def test_writes_default_config(self, tmp_path: Path):
        result = runner.invoke(app, ["init", str(tmp_path)])

        assert result.exit_code == 0, result.stdout
        assert "Wrote" in output(result)
        document = json.loads((tmp_path / ".bury.json").read_text())
        assert document["entry_points"]["conventions"] == ["main", "scripts", "tests"]

    def test_refuses_to_overwrite_without_force(self, tmp_path: Path):
        runner.invoke(app, ["init", str(tmp_path)])

        second = runner.invoke(app, ["init", str(tmp_path)])
        assert second.exit_code == 1
        assert "already exists" in output(second)

        forced = runner.invoke(app, ["init", str(tmp_path), "--force"])
        assert forced.exit_code == 0

    def test_missing_directory(self, tmp_path: Path):
        result = runner.invoke(app, ["init", str(tmp_path / "nope")])

        assert result.exit_code == 1
        assert "does not exist" in output(result)


class TestAnalyze:
    """`bury analyze`"""

    def test_json_report(self, project: Path):
        result = runner.invoke(app, ["analyze", str(project), "--format", "json", "--jobs", "1"])

        assert result.exit_code == 0, result.stdout
        report = json.loads(result.stdout)
        assert report["version"] == 1
        assert report["tool_version"] == "0.1.0"
        assert [f["identifier"] for f in report["findings"]] == ["app.py::unused"]
        assert report["findings"][0]["confidence"] == "high"
        assert report["summary"]["by_confidence"] == {"high": 1, "medium": 0, "low": 0}
        assert report["stats"]["files"] == 1

    def test_terminal_exit_code_reflects_findings(self, project: Path):
        dirty = runner.invoke(app, ["analyze", str(project)])
        assert dirty.exit_code == 1
        assert "unused" in output(dirty)
        assert "Summary:" in output(dirty)

    def test_terminal_clean_run(self, clean_project: Path):
        result = runner.invoke(app, ["analyze", str(clean_project)])

        assert result.exit_code == 0, result.stdout
        assert "No dead code found" in output(result)

    def test_min_confidence_filters_exit_code(self, tmp_path: Path):
        (tmp_path / "app.py").write_text(
            "def main(obj):\n"
            "    obj.process()\n"
            "\n"
            "\n"
            "def process():\n"
            "    pass\n"
        )

        result = runner.invoke(app, ["analyze", str(tmp_path), "--no-speculation", "--min-confidence", "high"])

        assert result.exit_code == 0, "Only a low-confidence finding exists"

    def test_extra_entry_name(self, project: Path):
        result = runner.invoke(app, ["analyze", str(project), "-f", "json", "--entry", "unused"])

        assert json.loads(result.stdout)["findings"] == []

    def test_markdown_to_file(self, project: Path, tmp_path: Path):
        target = tmp_path / "report.md"

        result = runner.invoke(app, ["analyze", str(project), "-f", "markdown", "-o", str(target)])

        assert result.exit_code == 0, result.stdout
        assert "Report written to" in output(result)
        text = target.read_text()
        assert text.startswith("# Dead code report")
        assert "`unused`" in text

    def test_missing_project_path(self, tmp_path: Path):
        result = runner.invoke(app, ["analyze", str(tmp_path / "missing")])

        assert result.exit_code == 1
        assert "does not exist" in output(result)

    def test_missing_config_file(self, project: Path):
        result = runner.invoke(app, ["analyze", str(project), "-c", str(project / "nope.json")])

        assert result.exit_code == 1
        assert "Config file not found" in output(result)

    def test_invalid_config(self, project: Path):
        (project / ".bury.json").write_text('{"entry_points": {"conventions": ["django"]}}')

        result = runner.invoke(app, ["analyze", str(project), "-f", "json"])

        assert result.exit_code == 1
        assert "unknown convention" in output(result)

    def test_config_entry_functions(self, project: Path):
        (project / ".bury.json").write_text(json.dumps({
            "entry_points": {"functions": ["unused"], "conventions": ["main"]},
        }))

        result = runner.invoke(app, ["analyze", str(project), "-f", "json"])

        assert result.exit_code == 0, result.stdout
        assert json.loads(result.stdout)["findings"] == []
