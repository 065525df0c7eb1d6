"""
Guarded evaluation protocol.

Runs on the worker thread of a single run: compiles the guarded source,
installs a tracer that provides cancellation yield points and stack depth
accounting, and evaluates against the per-run environment.
"""

from __future__ import annotations

import builtins
import sys
import threading
from dataclasses import dataclass
from types import CodeType, FrameType
from typing import Any, Callable

from simulator.errors import (
    ExecutionInterrupted,
    GuardAbort,
    GuardedCodeError,
    SimulatorError,
    StackDepthExceededError,
)
from simulator.ledger import measure_bytes

GUARDED_FILENAME = "<guarded>"
RESULT_NAME = "result"

_TOP_LEVEL_NAMES = {"<module>", "<expression>"}

# Bound before any guarded environment exists; guarded code only sees placeholders.
_compile = builtins.compile
_eval = builtins.eval
_exec = builtins.exec

TraceFn = Callable[[FrameType, str, Any], Any]


def format_error(exc: BaseException) -> str:
    if isinstance(exc, GuardedCodeError):
        return exc.message
    try:
        return f"{exc.__class__.__name__}: {exc}"
    except Exception:
        return f"{exc.__class__.__name__}: <unprintable message>"


def render_value(value: object) -> str:
    try:
        return repr(value)
    except Exception:
        if isinstance(value, int):
            return f"<int of {value.bit_length()} bits>"
        return f"<{type(value).__name__} object>"


def compile_guarded(source: str) -> tuple[CodeType, bool]:
    """
    Compile guarded source.

    Returns the code object and whether it is a single expression. Statement
    blocks report their value through the `result` binding.
    """
    try:
        return _compile(source, GUARDED_FILENAME, "eval"), True
    except SyntaxError:
        pass
    return _compile(source, GUARDED_FILENAME, "exec"), False


class GuardedTracer:
    """
    Trace function for guarded frames only.

    Every guarded line and call is a yield point at which a pending
    cancellation aborts the run. Nested guarded function frames are counted
    against `max_stack_depth`. Frames from other files are not traced.
    """

    def __init__(self, cancelled: threading.Event, max_stack_depth: int) -> None:
        self.cancelled = cancelled
        self.max_stack_depth = max_stack_depth
        self.depth = 0

    def install(self) -> None:
        sys.settrace(self._on_call)

    def uninstall(self) -> None:
        sys.settrace(None)

    def _check_cancelled(self) -> None:
        if self.cancelled.is_set():
            raise ExecutionInterrupted("Guarded execution interrupted after deadline")

    def _on_call(self, frame: FrameType, event: str, arg: Any) -> TraceFn | None:
        code = frame.f_code
        if code.co_filename != GUARDED_FILENAME:
            return None
        self._check_cancelled()
        if code.co_name in _TOP_LEVEL_NAMES:
            return self._on_top_level_event
        self.depth += 1
        if self.depth > self.max_stack_depth:
            raise StackDepthExceededError(
                f"Maximum stack depth {self.max_stack_depth} exceeded",
                kind="stack_overflow",
                max_stack_depth=self.max_stack_depth,
            )
        return self._on_frame_event

    def _on_top_level_event(self, frame: FrameType, event: str, arg: Any) -> TraceFn:
        if event == "line":
            self._check_cancelled()
        return self._on_top_level_event

    def _on_frame_event(self, frame: FrameType, event: str, arg: Any) -> TraceFn:
        if event == "line":
            self._check_cancelled()
        elif event == "return":
            self.depth -= 1
        return self._on_frame_event


@dataclass(frozen=True)
class GuardedResult:
    value: object
    size: int
    text: str


def evaluate(source: str, environment: dict[str, object], tracer: GuardedTracer) -> GuardedResult:
    """
    Compile and evaluate guarded source on the calling thread.

    The result is sized and rendered before the tracer is removed, and so is
    the message of any failure the guarded code raises. Guarded `__repr__`
    and `__str__` methods therefore run under the same deadline and stack
    limit as the rest of the guarded code.
    """
    code, is_expression = compile_guarded(source)
    tracer.install()
    try:
        if is_expression:
            value = _eval(code, environment)
        else:
            _exec(code, environment)
            value = environment.get(RESULT_NAME)
        return GuardedResult(value=value, size=measure_bytes(value), text=render_value(value))
    except (GuardAbort, SimulatorError):
        raise
    except BaseException as exc:  # noqa: BLE001 - guarded code may raise anything
        raise GuardedCodeError(format_error(exc)) from exc
    finally:
        tracer.uninstall()
