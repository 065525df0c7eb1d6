"""Constraint-aware suite runner for guarded snippets."""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, field_validator, model_validator
from tqdm import tqdm

from simulator.classifier import FailureTally
from simulator.executor import RuntimeSimulator
from simulator.schemas import BaseSchema, ErrorCategory, ExecutionOutcome, ResourceBudget, is_plain_data

logger = logging.getLogger(__name__)

SUCCESS = "success"
TREND_WINDOW = 5
TREND_TOLERANCE = 0.1


class SuiteCase(BaseSchema):
    name: str
    source: str
    context: dict[str, Any] = Field(default_factory=dict)
    expect: str = SUCCESS
    expected_value: Any = None
    budget: dict[str, Any] = Field(default_factory=dict)

    @field_validator("expect")
    @classmethod
    def known_expectation(cls, value: str) -> str:
        allowed = {SUCCESS, *(category.value for category in ErrorCategory)}
        if value not in allowed:
            raise ValueError(f"expect must be one of {sorted(allowed)}, got {value!r}")
        return value

    @property
    def checks_value(self) -> bool:
        return "expected_value" in self.model_fields_set


class Suite(BaseSchema):
    budget: ResourceBudget | None = None
    cases: list[SuiteCase] = Field(default_factory=list)

    @model_validator(mode="after")
    def case_budgets_fit(self) -> Suite:
        base = (self.budget or ResourceBudget()).model_dump()
        for case in self.cases:
            if not case.budget:
                continue
            try:
                _ = ResourceBudget.model_validate({**base, **case.budget})
            except ValueError as e:
                raise ValueError(f"Case {case.name} has an invalid budget override: {e}") from e
        return self


class CaseResult(BaseSchema):
    name: str
    passed: bool
    expected: str
    observed: str
    execution_time_ms: float
    violations: int
    message: str | None = None


class SuiteReport(BaseSchema):
    results: list[CaseResult]
    passed: int
    failed: int
    failures_by_category: dict[str, int]

    @property
    def all_passed(self) -> bool:
        return self.failed == 0


class CasePerformance(BaseSchema):
    name: str
    execution_time_ms: float


class PerformanceReport(BaseSchema):
    total_cases: int
    average_execution_time_ms: float
    fastest: CasePerformance | None = None
    slowest: CasePerformance | None = None
    trends: dict[str, Literal["improving", "stable", "degrading"]] = Field(default_factory=dict)


def load_suite(yaml_path: str | Path) -> Suite:
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Suite file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data or not isinstance(data, dict):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    try:
        return Suite.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid suite in {yaml_path}: {e}") from e


class SuiteRunner:
    """
    Runs suite cases one after another on a single simulator.

    Per-case budget overrides are applied between runs and the suite budget
    is restored afterwards. Execution times are kept per case name across
    calls to `run` so repeated runs can report performance trends.
    """

    def __init__(self, simulator: RuntimeSimulator | None = None, show_progress: bool = False) -> None:
        self.simulator = simulator or RuntimeSimulator()
        self.show_progress = show_progress
        self.history: dict[str, list[float]] = defaultdict(list)

    def run(self, suite: Suite) -> SuiteReport:
        if suite.budget is not None:
            self.simulator.update_constraints(**suite.budget.model_dump())
        base_budget = self.simulator.get_constraints()

        tally = FailureTally()
        results: list[CaseResult] = []
        pbar = tqdm(suite.cases, desc="Cases", unit="case", disable=not self.show_progress)
        for case in pbar:
            try:
                outcome = self._run_case(case, base_budget)
            except ValueError as e:
                result = self._rejected(case, e)
            else:
                if outcome.error is not None:
                    tally.record(outcome.error)
                result = self._judge(case, outcome)
            if not result.passed:
                if self.show_progress:
                    tqdm.write(f"  ❌ {case.name}: {result.message}")
                logger.warning(f"Case {case.name} failed: {result.message}")
            results.append(result)

        passed = sum(1 for r in results if r.passed)
        return SuiteReport(
            results=results,
            passed=passed,
            failed=len(results) - passed,
            failures_by_category=dict(tally.get_top_failures(len(ErrorCategory))),
        )

    def _run_case(self, case: SuiteCase, base_budget: ResourceBudget) -> ExecutionOutcome:
        if case.budget:
            self.simulator.update_constraints(**case.budget)
        try:
            outcome = self.simulator.run(case.source, case.context)
        finally:
            if case.budget:
                self.simulator.update_constraints(**base_budget.model_dump())
        self.history[case.name].append(outcome.metrics.execution_time_ms)
        return outcome

    def _judge(self, case: SuiteCase, outcome: ExecutionOutcome) -> CaseResult:
        observed = SUCCESS if outcome.success else outcome.error.category.value
        message = None
        passed = observed == case.expect
        if not passed:
            detail = f": {outcome.error.message}" if outcome.error is not None else ""
            message = f"expected {case.expect}, observed {observed}{detail}"
        elif case.checks_value and not (is_plain_data(outcome.value) and outcome.value == case.expected_value):
            passed = False
            message = f"expected value {case.expected_value!r}, got {outcome.value_repr}"

        return CaseResult(
            name=case.name,
            passed=passed,
            expected=case.expect,
            observed=observed,
            execution_time_ms=outcome.metrics.execution_time_ms,
            violations=len(outcome.violations),
            message=message,
        )

    def _rejected(self, case: SuiteCase, error: ValueError) -> CaseResult:
        """A case whose budget override does not fit the simulator's current budget."""
        return CaseResult(
            name=case.name,
            passed=False,
            expected=case.expect,
            observed="rejected",
            execution_time_ms=0.0,
            violations=0,
            message=f"invalid budget override: {error}",
        )

    def performance_report(self) -> PerformanceReport:
        if not self.history:
            return PerformanceReport(total_cases=0, average_execution_time_ms=0.0)

        samples = [t for times in self.history.values() for t in times]
        latest = {name: times[-1] for name, times in self.history.items()}
        fastest = min(latest.items(), key=lambda item: item[1])
        slowest = max(latest.items(), key=lambda item: item[1])

        trends: dict[str, Literal["improving", "stable", "degrading"]] = {}
        for name, times in self.history.items():
            if len(times) < TREND_WINDOW:
                continue
            recent = times[-TREND_WINDOW:]
            old_average = sum(recent[:2]) / 2
            new_average = sum(recent[-2:]) / 2
            if old_average <= 0:
                trends[name] = "stable"
                continue
            improvement = (old_average - new_average) / old_average
            if improvement > TREND_TOLERANCE:
                trends[name] = "improving"
            elif improvement < -TREND_TOLERANCE:
                trends[name] = "degrading"
            else:
                trends[name] = "stable"

        return PerformanceReport(
            total_cases=len(self.history),
            average_execution_time_ms=sum(samples) / len(samples),
            fastest=CasePerformance(name=fastest[0], execution_time_ms=fastest[1]),
            slowest=CasePerformance(name=slowest[0], execution_time_ms=slowest[1]),
            trends=trends,
        )

    def reset_history(self) -> None:
        self.history.clear()
