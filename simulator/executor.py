"""
Run orchestrator for guarded code.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from concurrent.futures import Future, wait
from typing import Any

from simulator import protocol
from simulator.classifier import OutcomeClassifier
from simulator.environment import DegradedClock, GuestConsole, build_environment
from simulator.errors import (
    ExecutionTimeoutError,
    GuardAbort,
    MemoryBudgetExceededError,
    SourceTooLargeError,
)
from simulator.ledger import MemoryLedger, measure_bytes
from simulator.policy import scan_source
from simulator.schemas import (
    ClassifiedError,
    ErrorCategory,
    ExecutionMetrics,
    ExecutionOutcome,
    ExecutionRequest,
    ResourceBudget,
    SimulatorPolicy,
    Violation,
    ViolationCategory,
)

logger = logging.getLogger(__name__)

# Failure categories that are also reported as fatal violations.
_VIOLATION_CATEGORIES = {
    ErrorCategory.MEMORY: ViolationCategory.MEMORY,
    ErrorCategory.TIMEOUT: ViolationCategory.TIMEOUT,
    ErrorCategory.CAPABILITY: ViolationCategory.CAPABILITY,
    ErrorCategory.CONSTRAINT: ViolationCategory.CONSTRAINT,
}


class RuntimeSimulator:
    """
    Evaluate guarded code under an emulated resource budget.

    Each run goes through a pre-check (source size, advisory capability scan,
    ledger charge), executes on a worker thread raced against a deadline, and
    finishes with post-checks (UI blocking, near-limit memory). Every run
    returns exactly one ExecutionOutcome; callers never see a raw exception.

    The deadline is enforced cooperatively: the worker's tracer aborts guarded
    code at its next line or call once the deadline has passed. Guarded code
    stuck inside one long native call has no such yield point and keeps
    running on an abandoned daemon thread. True preemption needs a killable
    execution context supplied from outside this library.

    A simulator owns one ledger and one budget and serves one run at a time.
    Use one instance per concurrent run.
    """

    def __init__(
        self,
        budget: ResourceBudget | None = None,
        policy: SimulatorPolicy | None = None,
        classifier: OutcomeClassifier | None = None,
    ) -> None:
        self._budget = budget or ResourceBudget()
        self.policy = policy or SimulatorPolicy()
        self.classifier = classifier or OutcomeClassifier()
        self.ledger = MemoryLedger(self._budget.max_memory_bytes)
        self._in_flight = threading.Lock()

    @property
    def budget(self) -> ResourceBudget:
        return self._budget

    def get_constraints(self) -> ResourceBudget:
        return self._budget

    def update_constraints(self, **changes: Any) -> ResourceBudget:
        """Replace the budget wholesale and recreate the ledger. Not allowed mid-run."""
        if not self._in_flight.acquire(blocking=False):
            raise RuntimeError("Cannot update constraints while a run is in flight")
        try:
            self._budget = ResourceBudget.model_validate({**self._budget.model_dump(), **changes})
            self.ledger = MemoryLedger(self._budget.max_memory_bytes)
        finally:
            self._in_flight.release()
        logger.debug(f"Constraints updated: {self._budget.to_dict()}")
        return self._budget

    def run(self, source: str, context: Mapping[str, object] | None = None) -> ExecutionOutcome:
        return self.execute(ExecutionRequest(source=source, context=dict(context or {})))

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        if not self._in_flight.acquire(blocking=False):
            raise RuntimeError("Simulator already has a run in flight; use one simulator per concurrent run")
        try:
            return self._execute(request, self._budget)
        finally:
            self._in_flight.release()

    def _execute(self, request: ExecutionRequest, budget: ResourceBudget) -> ExecutionOutcome:
        violations: list[Violation] = []
        self.ledger.reset()

        try:
            self._pre_check(request.source, budget, violations)
        except (SourceTooLargeError, MemoryBudgetExceededError) as exc:
            logger.warning(f"Run rejected before execution: {exc}")
            return self._failed(exc.to_classified(), 0.0, budget, violations, ())

        console = GuestConsole(echo=self.policy.echo_console)
        start = time.perf_counter()
        try:
            result = self._execute_with_deadline(request, budget, console)
            self._charge_result(result.size)
        except (Exception, GuardAbort) as exc:
            runtime_ms = (time.perf_counter() - start) * 1000
            error = self.classifier.classify(exc, budget)
            violation_category = _VIOLATION_CATEGORIES.get(error.category)
            if violation_category is not None:
                violations.append(Violation(category=violation_category, message=error.message, fatal=True))
            return self._failed(error, runtime_ms, budget, violations, tuple(console.lines))

        runtime_ms = (time.perf_counter() - start) * 1000
        self._post_check(runtime_ms, budget, violations)
        logger.debug(f"Run completed in {runtime_ms:.2f}ms with {len(violations)} violation(s)")
        return ExecutionOutcome(
            success=True,
            value=result.value,
            value_repr=result.text,
            metrics=self._metrics(runtime_ms, budget, violations),
            console=tuple(console.lines),
        )

    def _pre_check(self, source: str, budget: ResourceBudget, violations: list[Violation]) -> None:
        source_size = measure_bytes(source)
        if source_size > budget.max_string_bytes:
            message = f"Source size {source_size} exceeds max string size {budget.max_string_bytes}"
            violations.append(Violation(category=ViolationCategory.MEMORY, message=message, fatal=True))
            raise SourceTooLargeError(message, size=source_size, limit_bytes=budget.max_string_bytes)

        for finding in scan_source(source):
            violations.append(Violation(category=ViolationCategory.CAPABILITY, message=finding.message))

        if not self.ledger.allocate(source_size):
            message = f"Source size {source_size} exhausts memory budget {budget.max_memory_bytes}"
            violations.append(Violation(category=ViolationCategory.MEMORY, message=message, fatal=True))
            raise MemoryBudgetExceededError(message, size=source_size, limit_bytes=budget.max_memory_bytes)

    def _execute_with_deadline(
        self,
        request: ExecutionRequest,
        budget: ResourceBudget,
        console: GuestConsole,
    ) -> protocol.GuardedResult:
        cancelled = threading.Event()
        tracer = protocol.GuardedTracer(cancelled, budget.max_stack_depth)
        environment = build_environment(
            request.context,
            console,
            DegradedClock(self.policy.clock_resolution_ms),
        )
        future: Future[protocol.GuardedResult] = Future()

        def _guarded() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(protocol.evaluate(request.source, environment, tracer))
            except BaseException as exc:  # noqa: BLE001 - delivered to the orchestrator via the future
                future.set_exception(exc)

        worker = threading.Thread(target=_guarded, name="guarded-run", daemon=True)
        worker.start()

        done, _ = wait([future], timeout=budget.max_execution_time_ms / 1000)
        if not done:
            cancelled.set()
            logger.warning(f"Run exceeded {budget.max_execution_time_ms}ms deadline; cancelling guarded code")
            worker.join(self.policy.interrupt_grace_ms / 1000)
            if worker.is_alive():
                logger.warning(
                    "Guarded code did not reach a yield point after the deadline; "
                    "abandoning its worker thread"
                )
            raise ExecutionTimeoutError(
                f"Execution timeout: exceeded {budget.max_execution_time_ms}ms",
                limit_ms=budget.max_execution_time_ms,
            )
        return future.result()

    def _charge_result(self, size: int) -> None:
        if not self.ledger.allocate(size):
            usage = self.ledger.usage()
            raise MemoryBudgetExceededError(
                f"Result size {size} exceeds remaining memory budget {usage.limit - usage.current}",
                size=size,
                limit_bytes=usage.limit,
            )

    def _post_check(self, runtime_ms: float, budget: ResourceBudget, violations: list[Violation]) -> None:
        if runtime_ms > budget.ui_blocking_threshold_ms:
            violations.append(
                Violation(
                    category=ViolationCategory.PERFORMANCE,
                    message=(
                        f"Execution time {runtime_ms:.2f}ms exceeds UI blocking threshold "
                        f"{budget.ui_blocking_threshold_ms}ms"
                    ),
                )
            )

        peak = self.ledger.usage().peak
        if peak > budget.max_memory_bytes * self.policy.near_limit_ratio:
            violations.append(
                Violation(
                    category=ViolationCategory.MEMORY,
                    message=f"Memory usage {peak} approaching limit {budget.max_memory_bytes}",
                )
            )

    def _metrics(self, runtime_ms: float, budget: ResourceBudget, violations: list[Violation]) -> ExecutionMetrics:
        return ExecutionMetrics(
            execution_time_ms=runtime_ms,
            peak_memory_bytes=self.ledger.usage().peak,
            ui_blocking=runtime_ms > budget.ui_blocking_threshold_ms,
            violations=tuple(violations),
        )

    def _failed(
        self,
        error: ClassifiedError,
        runtime_ms: float,
        budget: ResourceBudget,
        violations: list[Violation],
        console: tuple[str, ...],
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=False,
            error=error,
            metrics=self._metrics(runtime_ms, budget, violations),
            console=console,
        )


def run_in_simulator(
    source: str,
    context: Mapping[str, object] | None = None,
    budget: ResourceBudget | None = None,
) -> ExecutionOutcome:
    """Evaluate `source` on a fresh simulator."""
    return RuntimeSimulator(budget=budget).run(source, context)
