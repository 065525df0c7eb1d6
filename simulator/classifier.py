"""Failure classification for guarded runs."""

from __future__ import annotations

from collections.abc import Iterable

from simulator.errors import TaggedFailure
from simulator.policy import DENIED_IDENTIFIERS, mentions_identifier
from simulator.protocol import format_error
from simulator.schemas import ClassifiedError, ErrorCategory, ResourceBudget

TIMEOUT_PATTERNS = ("timeout", "timed out")
MEMORY_PATTERNS = ("memory",)
CAPABILITY_PATTERNS = ("blocked", "denied")
STACK_PATTERNS = ("stack", "recursion")

# Denied names that also occur as ordinary words in error text. They are left out
# of message matching; runtime denials are tagged at the raise site.
COMMON_WORDS = frozenset(
    {"open", "http", "compile", "vars", "globals", "locals", "requests", "secrets", "concurrent"}
)
MESSAGE_IDENTIFIERS: tuple[str, ...] = tuple(name for name in DENIED_IDENTIFIERS if name not in COMMON_WORDS)


class OutcomeClassifier:
    """
    Maps a failure to exactly one ErrorCategory.

    Failures raised by the simulator carry their category already. Anything
    raised by the guarded code or the interpreter is matched on its message
    with fixed precedence: timeout, memory, capability, constraint, execution.
    """

    def __init__(self, denied_identifiers: Iterable[str] = MESSAGE_IDENTIFIERS) -> None:
        self.denied_identifiers = tuple(denied_identifiers)

    def classify(self, error: BaseException | str, budget: ResourceBudget | None = None) -> ClassifiedError:
        if isinstance(error, TaggedFailure):
            return error.to_classified()

        message = error if isinstance(error, str) else format_error(error)
        category = self.classify_message(message)
        return ClassifiedError(category=category, message=message, details=self._details(category, budget))

    def classify_message(self, message: str) -> ErrorCategory:
        error_lower = message.lower()

        if any(pattern in error_lower for pattern in TIMEOUT_PATTERNS):
            return ErrorCategory.TIMEOUT
        elif any(pattern in error_lower for pattern in MEMORY_PATTERNS):
            return ErrorCategory.MEMORY
        elif any(pattern in error_lower for pattern in CAPABILITY_PATTERNS) or any(
            mentions_identifier(message, name) for name in self.denied_identifiers
        ):
            return ErrorCategory.CAPABILITY
        elif any(pattern in error_lower for pattern in STACK_PATTERNS):
            return ErrorCategory.CONSTRAINT
        else:
            return ErrorCategory.EXECUTION

    def _details(self, category: ErrorCategory, budget: ResourceBudget | None) -> dict[str, object]:
        if budget is None:
            return {}
        if category is ErrorCategory.TIMEOUT:
            return {"limit_ms": budget.max_execution_time_ms}
        if category is ErrorCategory.MEMORY:
            return {"limit_bytes": budget.max_memory_bytes}
        if category is ErrorCategory.CONSTRAINT:
            return {"kind": "stack_overflow", "max_stack_depth": budget.max_stack_depth}
        return {}


class FailureTally:
    def __init__(self) -> None:
        self.failures: dict[ErrorCategory, int] = {category: 0 for category in ErrorCategory}

    def record(self, error: ClassifiedError) -> None:
        self.failures[error.category] += 1

    def get_failure_stats(self) -> dict[ErrorCategory, int]:
        return dict(self.failures)

    def get_top_failures(self, n: int = 5) -> list[tuple[str, int]]:
        sorted_failures = sorted(
            self.failures.items(),
            key=lambda x: x[1],
            reverse=True
        )
        return [(category.value, count) for category, count in sorted_failures[:n] if count > 0]
