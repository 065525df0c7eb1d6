"""
Per-run bindings environment handed to guarded code.

A fresh mapping is built for every run; nothing process-wide is mutated.
"""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Mapping
from datetime import datetime
from types import SimpleNamespace

from simulator import policy
from simulator.deferred import SyncDeferred

guest_logger = logging.getLogger("simulator.guest")

_MATH_NAMES = (
    "ceil",
    "floor",
    "sqrt",
    "exp",
    "log",
    "log2",
    "log10",
    "sin",
    "cos",
    "tan",
    "atan2",
    "hypot",
    "isfinite",
    "isnan",
    "pi",
    "e",
    "inf",
)


class GuestConsole:
    """Restricted console: lines are captured for the outcome and optionally echoed to logging."""

    _LEVELS = {
        "log": logging.INFO,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, echo: bool = True) -> None:
        self.echo = echo
        self.lines: list[str] = []

    def _emit(self, level: str, args: tuple[object, ...]) -> None:
        line = " ".join(str(arg) for arg in args)
        self.lines.append(f"[{level}] {line}" if level != "log" else line)
        if self.echo:
            guest_logger.log(self._LEVELS[level], "[guest] %s", line)

    def log(self, *args: object) -> None:
        self._emit("log", args)

    def info(self, *args: object) -> None:
        self._emit("info", args)

    def warn(self, *args: object) -> None:
        self._emit("warn", args)

    def error(self, *args: object) -> None:
        self._emit("error", args)


class DegradedClock:
    """Monotonic milliseconds since the run started, quantized to `resolution_ms`."""

    def __init__(self, resolution_ms: float = 1.0) -> None:
        self.resolution_ms = resolution_ms
        self._origin = time.perf_counter()

    def now(self) -> float:
        elapsed_ms = (time.perf_counter() - self._origin) * 1000
        if self.resolution_ms <= 0:
            return elapsed_ms
        return math.floor(elapsed_ms / self.resolution_ms) * self.resolution_ms


def build_environment(
    context: Mapping[str, object],
    console: GuestConsole,
    clock: DegradedClock,
) -> dict[str, object]:
    environment: dict[str, object] = {
        "__name__": "__guarded__",
        "console": console,
        "performance": SimpleNamespace(now=clock.now),
        "Promise": SyncDeferred,
        "Math": SimpleNamespace(**{name: getattr(math, name) for name in _MATH_NAMES}),
        "JSON": SimpleNamespace(dumps=json.dumps, loads=json.loads),
        "Date": datetime,
    }
    environment.update(context)
    # Denied names and the restricted builtins win over anything the caller supplied.
    environment.update(policy.neutralized_bindings())
    environment["__builtins__"] = policy.build_builtins()
    return environment
