import pytest

from simulator.deferred import DeferredState, SyncDeferred


def test_settled_continue_identity_carries_value():
    result = SyncDeferred.settled(7).then(lambda x: x)
    assert result.state is DeferredState.SETTLED
    assert result.value == 7


def test_failed_with_failure_handler_settles_with_reason():
    reason = ValueError("boom")
    result = SyncDeferred.failed(reason).then(None, lambda x: x)
    assert result.state is DeferredState.SETTLED
    assert result.value is reason


@pytest.mark.parametrize("length", [1, 2, 10])
def test_omitted_handlers_preserve_state_over_any_chain_length(length):
    settled = SyncDeferred.settled("v")
    failed = SyncDeferred.failed("e")
    for _ in range(length):
        settled = settled.then(None, lambda x: "handled")
        failed = failed.then(lambda x: "handled")
    assert settled.state is DeferredState.SETTLED
    assert settled.value == "v"
    assert failed.state is DeferredState.FAILED
    assert failed.reason == "e"


def test_handler_return_settles_and_raise_fails():
    doubled = SyncDeferred.settled(2).then(lambda x: x * 2)
    assert doubled.value == 4

    def explode(_value):
        raise RuntimeError("handler failed")

    failed = SyncDeferred.settled(2).then(explode)
    assert failed.state is DeferredState.FAILED
    assert isinstance(failed.reason, RuntimeError)


def test_executor_exception_fails_instance():
    def executor(_settle, _fail):
        raise KeyError("missing")

    deferred = SyncDeferred(executor)
    assert deferred.state is DeferredState.FAILED
    assert isinstance(deferred.reason, KeyError)


def test_first_terminal_call_wins():
    def executor(settle, fail):
        settle(1)
        fail("late")
        settle(2)

    deferred = SyncDeferred(executor)
    assert deferred.state is DeferredState.SETTLED
    assert deferred.value == 1


def test_catch_recovers_failure():
    recovered = SyncDeferred.failed("e").catch(lambda reason: f"recovered {reason}")
    assert recovered.state is DeferredState.SETTLED
    assert recovered.value == "recovered e"


def test_pending_stays_pending():
    pending = SyncDeferred(lambda _settle, _fail: None)
    chained = pending.then(lambda x: x, lambda x: x)
    assert pending.state is DeferredState.PENDING
    assert chained.state is DeferredState.PENDING


def test_unhandled_failure_is_inert():
    deferred = SyncDeferred.failed(RuntimeError("ignored"))
    assert deferred.state is DeferredState.FAILED
    assert "failed" in repr(deferred)
