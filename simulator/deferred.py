"""
Synchronous stand-in for an asynchronous continuation value.

The simulated host has no background task queue, so continuations run
immediately against whatever terminal state the receiver already holds.
There is no deferred dispatch and no unhandled-failure reporting: a failed
instance that is never inspected stays inert.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any


class DeferredState(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"


Settle = Callable[[Any], None]
Fail = Callable[[Any], None]


class SyncDeferred:
    def __init__(self, executor: Callable[[Settle, Fail], object]) -> None:
        self._state = DeferredState.PENDING
        self._value: Any = None
        self._reason: Any = None
        try:
            executor(self._settle, self._fail)
        except Exception as exc:
            self._fail(exc)

    def _settle(self, value: Any) -> None:
        if self._state is DeferredState.PENDING:
            self._state = DeferredState.SETTLED
            self._value = value

    def _fail(self, reason: Any) -> None:
        if self._state is DeferredState.PENDING:
            self._state = DeferredState.FAILED
            self._reason = reason

    @property
    def state(self) -> DeferredState:
        return self._state

    @property
    def value(self) -> Any:
        return self._value

    @property
    def reason(self) -> Any:
        return self._reason

    def then(
        self,
        on_settled: Callable[[Any], Any] | None = None,
        on_failed: Callable[[Any], Any] | None = None,
    ) -> SyncDeferred:
        """
        Derive a new instance from this one's terminal state.

        A handler's return value settles the new instance and a raised
        exception fails it. A missing handler carries the state over unchanged.
        """

        def executor(settle: Settle, fail: Fail) -> None:
            if self._state is DeferredState.FAILED:
                if on_failed is None:
                    fail(self._reason)
                else:
                    settle(on_failed(self._reason))
            elif self._state is DeferredState.SETTLED:
                if on_settled is None:
                    settle(self._value)
                else:
                    settle(on_settled(self._value))

        return SyncDeferred(executor)

    def catch(self, on_failed: Callable[[Any], Any]) -> SyncDeferred:
        return self.then(None, on_failed)

    @staticmethod
    def settled(value: Any) -> SyncDeferred:
        return SyncDeferred(lambda settle, _fail: settle(value))

    @staticmethod
    def failed(reason: Any) -> SyncDeferred:
        return SyncDeferred(lambda _settle, fail: fail(reason))

    def __repr__(self) -> str:
        if self._state is DeferredState.SETTLED:
            return f"SyncDeferred(settled={self._value!r})"
        if self._state is DeferredState.FAILED:
            return f"SyncDeferred(failed={self._reason!r})"
        return "SyncDeferred(pending)"
