"""
Failures raised by the simulator itself.

Each carries its category at the raise site so the classifier never has to
recover it from message text.
"""

from __future__ import annotations

from simulator.schemas import ClassifiedError, ErrorCategory


class TaggedFailure:
    """Mixin carrying an ErrorCategory and structured details alongside the message."""

    category: ErrorCategory = ErrorCategory.EXECUTION

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_classified(self) -> ClassifiedError:
        return ClassifiedError(category=self.category, message=self.message, details=dict(self.details))


class SimulatorError(TaggedFailure, Exception):
    """Base class for catchable failures raised by the simulator."""


class SourceTooLargeError(SimulatorError):
    category = ErrorCategory.MEMORY


class MemoryBudgetExceededError(SimulatorError):
    category = ErrorCategory.MEMORY


class ExecutionTimeoutError(SimulatorError):
    category = ErrorCategory.TIMEOUT


class CapabilityDeniedError(SimulatorError):
    category = ErrorCategory.CAPABILITY

    def __init__(self, name: str, capability: str) -> None:
        super().__init__(
            f"Capability '{name}' ({capability}) is denied in this runtime",
            identifier=name,
            capability=capability,
        )
        self.name = name


class GuardAbort(TaggedFailure, BaseException):
    """
    Raised into guarded frames by the tracer.

    Derives from BaseException so guarded `except Exception` blocks and
    SyncDeferred executors cannot absorb it.
    """


class ExecutionInterrupted(GuardAbort):
    category = ErrorCategory.TIMEOUT


class StackDepthExceededError(GuardAbort):
    category = ErrorCategory.CONSTRAINT


class GuardedCodeError(Exception):
    """
    A failure raised by guarded code, with its message already rendered.

    The message is produced on the worker thread while the tracer is still
    installed, so a guarded `__str__` stays under the deadline. The original
    exception is kept as `__cause__`.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
