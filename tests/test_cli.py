import json

import yaml
from typer.testing import CliRunner

from harness.cli import app
from harness.config import load_config

runner = CliRunner()


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_run_succeeds(tmp_path):
    script = _write(tmp_path / "adds.py", "1+1")
    result = runner.invoke(app, ["run", script])
    assert result.exit_code == 0
    assert "Succeeded: 2" in result.stdout


def test_run_json_report(tmp_path):
    script = _write(tmp_path / "logs.py", "console.log('hello')\nresult = [1, 2]")
    result = runner.invoke(app, ["run", script, "--json"])
    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["success"] is True
    assert report["value"] == [1, 2]
    assert report["console"] == ["hello"]


def test_run_timeout_override_fails(tmp_path):
    script = _write(tmp_path / "spin.py", "while True:\n    pass\n")
    result = runner.invoke(app, ["run", script, "--timeout-ms", "50"])
    assert result.exit_code == 1


def test_run_with_config(tmp_path):
    config_file = tmp_path / "config.yaml"
    with open(config_file, "w") as f:
        yaml.dump({"budget": {"max_string_bytes": 10}}, f)
    script = _write(tmp_path / "long.py", "1 + 1 + 1 + 1 + 1")

    result = runner.invoke(app, ["run", script, "--config", str(config_file)])

    assert result.exit_code == 1
    assert "Failed (memory)" in result.output


def test_run_missing_config(tmp_path):
    script = _write(tmp_path / "adds.py", "1+1")
    result = runner.invoke(app, ["run", script, "--config", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_run_missing_script(tmp_path):
    result = runner.invoke(app, ["run", str(tmp_path / "missing.py")])
    assert result.exit_code == 1


def test_check_lists_findings(tmp_path):
    script = _write(tmp_path / "net.py", "fetch('x')\nlocalStorage")
    result = runner.invoke(app, ["check", script])
    assert result.exit_code == 0
    assert "fetch" in result.stdout
    assert "localStorage" in result.stdout
    assert "storage" in result.stdout


def test_check_clean_script(tmp_path):
    script = _write(tmp_path / "clean.py", "1+1")
    result = runner.invoke(app, ["check", script])
    assert result.exit_code == 0
    assert "No denied capabilities" in result.stdout


def test_suite_command(tmp_path):
    suite_file = tmp_path / "suite.yaml"
    with open(suite_file, "w") as f:
        yaml.dump(
            {
                "cases": [
                    {"name": "adds", "source": "1+1", "expected_value": 2},
                    {"name": "imports", "source": "import os", "expect": "capability"},
                ]
            },
            f,
        )

    result = runner.invoke(app, ["suite", str(suite_file), "--no-progress"])

    assert result.exit_code == 0
    assert "Passed: 2" in result.stdout


def test_suite_command_reports_failure(tmp_path):
    suite_file = tmp_path / "suite.yaml"
    with open(suite_file, "w") as f:
        yaml.dump({"cases": [{"name": "divides", "source": "1/0"}]}, f)

    result = runner.invoke(app, ["suite", str(suite_file), "--no-progress"])

    assert result.exit_code == 1
    assert "Failed: 1" in result.stdout


def test_suite_command_rejects_invalid_case_budget(tmp_path):
    suite_file = tmp_path / "suite.yaml"
    with open(suite_file, "w") as f:
        yaml.dump({"cases": [{"name": "a", "source": "1", "budget": {"ui_blocking_threshold_ms": 99999}}]}, f)

    result = runner.invoke(app, ["suite", str(suite_file), "--no-progress"])

    assert result.exit_code == 1
    assert "Invalid suite" in result.output


def test_defaults_written_to_file(tmp_path):
    output = tmp_path / "defaults.yaml"
    result = runner.invoke(app, ["defaults", "--output", str(output)])
    assert result.exit_code == 0

    config = load_config(output)
    assert config.budget.max_execution_time_ms == 5000
    assert config.budget.max_stack_depth == 100


def test_defaults_printed():
    result = runner.invoke(app, ["defaults"])
    assert result.exit_code == 0
    assert "max_execution_time_ms" in result.stdout
    assert "near_limit_ratio" in result.stdout
