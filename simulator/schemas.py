from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator


TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


class BaseSchema(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


class ErrorCategory(str, Enum):
    MEMORY = "memory"
    TIMEOUT = "timeout"
    CAPABILITY = "capability"
    CONSTRAINT = "constraint"
    EXECUTION = "execution"


class ViolationCategory(str, Enum):
    MEMORY = "memory"
    TIMEOUT = "timeout"
    CAPABILITY = "capability"
    CONSTRAINT = "constraint"
    PERFORMANCE = "performance"


class ResourceBudget(BaseSchema):
    """Limits governing one simulated run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_execution_time_ms: float = Field(default=5000, gt=0)
    ui_blocking_threshold_ms: float = Field(default=16, gt=0)
    max_memory_bytes: int = Field(default=8 * 1024 * 1024, gt=0)
    max_string_bytes: int = Field(default=500 * 1024, gt=0)
    max_stack_depth: int = Field(default=100, gt=0)

    @model_validator(mode="after")
    def soft_limit_within_hard_limit(self) -> ResourceBudget:
        if self.ui_blocking_threshold_ms > self.max_execution_time_ms:
            raise ValueError(
                f"ui_blocking_threshold_ms ({self.ui_blocking_threshold_ms}) must not exceed "
                f"max_execution_time_ms ({self.max_execution_time_ms})"
            )
        return self


class SimulatorPolicy(BaseSchema):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Fraction of max_memory_bytes above which a near-limit warning is recorded
    near_limit_ratio: float = Field(default=0.8, gt=0, le=1)
    clock_resolution_ms: float = Field(default=1.0, ge=0)
    interrupt_grace_ms: float = Field(default=100, ge=0)
    echo_console: bool = True


class ExecutionRequest(BaseSchema):
    source: str
    context: dict[str, Any] = Field(default_factory=dict)


class Violation(BaseSchema):
    model_config = ConfigDict(frozen=True)

    category: ViolationCategory
    message: str
    fatal: bool = False


class ClassifiedError(BaseSchema):
    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    message: str
    details: dict[str, object] = Field(default_factory=dict)


class ExecutionMetrics(BaseSchema):
    model_config = ConfigDict(frozen=True)

    execution_time_ms: float = Field(ge=0)
    peak_memory_bytes: int = Field(ge=0)
    ui_blocking: bool
    violations: tuple[Violation, ...] = ()


class ExecutionOutcome(BaseSchema):
    model_config = ConfigDict(frozen=True)

    success: bool
    value: Any = None
    value_repr: str | None = None
    error: ClassifiedError | None = None
    metrics: ExecutionMetrics
    console: tuple[str, ...] = ()

    @property
    def category(self) -> ErrorCategory | None:
        return self.error.category if self.error is not None else None

    @property
    def violations(self) -> tuple[Violation, ...]:
        return self.metrics.violations

    def to_report(self) -> dict[str, object]:
        """
        JSON-safe view of the outcome.

        Plain data values are reported as-is. Anything else is reported by its
        `value_repr`, which was rendered under the run's deadline, so no guarded
        method is called here.
        """
        report = self.model_dump(mode="json", exclude={"value", "value_repr"})
        if is_plain_data(self.value):
            try:
                _ = json.dumps(self.value)
            except ValueError:
                report["value"] = self.value_repr
            else:
                report["value"] = self.value
        else:
            report["value"] = self.value_repr or f"<{type(self.value).__name__} object>"
        return report


_SCALAR_TYPES = (str, int, float, bool, type(None))


def is_plain_data(value: object) -> bool:
    """
    True for JSON-shaped values built only from exact builtin types.

    Walks containers without calling any method a subclass could override.
    Cycles and shared containers are not plain data.
    """
    pending = [value]
    seen: set[int] = set()
    while pending:
        item = pending.pop()
        kind = type(item)
        if kind in _SCALAR_TYPES:
            continue
        if id(item) in seen:
            return False
        seen.add(id(item))
        if kind is list or kind is tuple:
            pending.extend(item)
        elif kind is dict:
            if any(type(key) is not str for key in item):
                return False
            pending.extend(item.values())
        else:
            return False
    return True
