from pathlib import Path

import pytest
import yaml

from harness.suite import Suite, SuiteCase, SuiteRunner, load_suite
from simulator.executor import RuntimeSimulator
from simulator.schemas import ResourceBudget


def _suite() -> Suite:
    return Suite.from_dict(
        {
            "cases": [
                {"name": "adds", "source": "1+1", "expected_value": 2},
                {
                    "name": "spins",
                    "source": "while True:\n    pass",
                    "expect": "timeout",
                    "budget": {"max_execution_time_ms": 50},
                },
                {"name": "fetches", "source": "fetch('x')", "expect": "capability"},
                {"name": "divides", "source": "1/0"},
            ]
        }
    )


def test_suite_reports_pass_and_fail():
    runner = SuiteRunner(RuntimeSimulator())
    report = runner.run(_suite())

    by_name = {r.name: r for r in report.results}
    assert by_name["adds"].passed is True
    assert by_name["spins"].passed is True
    assert by_name["spins"].observed == "timeout"
    assert by_name["fetches"].passed is True
    assert by_name["divides"].passed is False
    assert "expected success, observed execution" in by_name["divides"].message

    assert report.passed == 3
    assert report.failed == 1
    assert report.all_passed is False
    assert report.failures_by_category == {"timeout": 1, "capability": 1, "execution": 1}


def test_case_budget_override_is_restored():
    simulator = RuntimeSimulator()
    runner = SuiteRunner(simulator)
    _ = runner.run(_suite())
    assert simulator.budget.max_execution_time_ms == 5000


def test_suite_budget_applies_to_simulator():
    simulator = RuntimeSimulator()
    suite = Suite(
        budget=ResourceBudget(max_stack_depth=3),
        cases=[
            SuiteCase(
                name="recurses",
                source="def f(n):\n    return 0 if n == 0 else f(n - 1)\nresult = f(10)",
                expect="constraint",
            )
        ],
    )
    report = SuiteRunner(simulator).run(suite)
    assert report.all_passed is True
    assert simulator.budget.max_stack_depth == 3


def test_expected_value_mismatch_fails():
    suite = Suite(cases=[SuiteCase(name="adds", source="1+1", expected_value=3)])
    report = SuiteRunner().run(suite)
    assert report.failed == 1
    assert "expected value 3" in report.results[0].message


def test_unknown_expectation_rejected():
    with pytest.raises(ValueError):
        _ = SuiteCase(name="bad", source="1", expect="crash")


def test_load_suite_from_yaml(tmp_path: Path):
    suite_path = tmp_path / "suite.yaml"
    with open(suite_path, "w") as f:
        yaml.dump(
            {
                "budget": {"max_execution_time_ms": 100},
                "cases": [{"name": "adds", "source": "x + 1", "context": {"x": 1}, "expected_value": 2}],
            },
            f,
        )

    suite = load_suite(suite_path)

    assert suite.budget.max_execution_time_ms == 100
    assert suite.cases[0].context == {"x": 1}
    assert suite.cases[0].checks_value is True
    assert SuiteRunner().run(suite).all_passed is True


def test_load_suite_missing_file():
    with pytest.raises(FileNotFoundError):
        load_suite("missing-suite.yaml")


def test_performance_report_tracks_history():
    runner = SuiteRunner()
    suite = Suite(cases=[SuiteCase(name="adds", source="1+1")])
    for _ in range(2):
        _ = runner.run(suite)

    report = runner.performance_report()
    assert report.total_cases == 1
    assert len(runner.history["adds"]) == 2
    assert report.fastest.name == "adds"
    assert report.slowest.name == "adds"
    assert report.trends == {}


def test_performance_trends():
    runner = SuiteRunner()
    runner.history["faster"] = [10.0, 10.0, 10.0, 5.0, 5.0]
    runner.history["slower"] = [5.0, 5.0, 5.0, 10.0, 10.0]
    runner.history["steady"] = [1.0, 8.0, 8.0, 8.0, 8.2, 8.1]

    report = runner.performance_report()

    assert report.trends == {"faster": "improving", "slower": "degrading", "steady": "stable"}
    assert report.fastest.name == "faster"
    assert report.slowest.name == "slower"


def test_reset_history():
    runner = SuiteRunner()
    runner.history["adds"] = [1.0]
    runner.reset_history()
    report = runner.performance_report()
    assert report.total_cases == 0
    assert report.fastest is None


def test_invalid_case_budget_rejected_at_construction():
    with pytest.raises(ValueError, match="invalid budget override"):
        _ = Suite(cases=[SuiteCase(name="a", source="1", budget={"ui_blocking_threshold_ms": 99999})])


def test_invalid_case_budget_checked_against_suite_budget():
    with pytest.raises(ValueError):
        _ = Suite.from_dict(
            {
                "budget": {"max_execution_time_ms": 100},
                "cases": [{"name": "a", "source": "1", "budget": {"ui_blocking_threshold_ms": 200}}],
            }
        )


def test_load_suite_rejects_invalid_case_budget(tmp_path: Path):
    suite_path = tmp_path / "suite.yaml"
    with open(suite_path, "w") as f:
        yaml.dump({"cases": [{"name": "a", "source": "1", "budget": {"max_heap": 10}}]}, f)

    with pytest.raises(ValueError, match="Invalid suite"):
        _ = load_suite(suite_path)


def test_case_budget_that_conflicts_with_simulator_is_recorded_as_failed():
    simulator = RuntimeSimulator(ResourceBudget(max_execution_time_ms=100))
    suite = Suite(
        cases=[
            SuiteCase(name="conflicting", source="1", budget={"ui_blocking_threshold_ms": 200}),
            SuiteCase(name="adds", source="1+1", expected_value=2),
        ]
    )

    report = SuiteRunner(simulator).run(suite)

    by_name = {r.name: r for r in report.results}
    assert by_name["conflicting"].passed is False
    assert by_name["conflicting"].observed == "rejected"
    assert "invalid budget override" in by_name["conflicting"].message
    assert by_name["adds"].passed is True
    assert simulator.budget.max_execution_time_ms == 100


def test_expected_value_never_compares_guarded_objects():
    source = """
class Agreeable:
    def __eq__(self, other):
        return True
    def __ne__(self, other):
        return False
result = Agreeable()
"""
    suite = Suite(cases=[SuiteCase(name="agrees", source=source, expected_value=2)])
    report = SuiteRunner().run(suite)
    assert report.failed == 1
    assert "expected value 2" in report.results[0].message
