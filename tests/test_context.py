import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from netnavigator import CancelToken, ProbeCancelled, ProbeContext, ProbeTimeout


@pytest.fixture
def pool():
    executor = ThreadPoolExecutor(max_workers=4)
    yield executor
    executor.shutdown(wait=False)


def test_wait_returns_after_the_requested_time():
    ctx = ProbeContext(CancelToken(), time.monotonic() + 1)
    start = time.monotonic()
    ctx.wait(0.12)
    assert 0.12 <= time.monotonic() - start < 0.3


def test_wait_stops_at_the_deadline():
    ctx = ProbeContext(CancelToken(), time.monotonic() + 0.15)
    start = time.monotonic()
    with pytest.raises(ProbeTimeout):
        ctx.wait(5)
    assert 0.15 <= time.monotonic() - start < 0.3
    assert ctx.expired()
    assert ctx.remaining() == 0.0


def test_wait_notices_cancellation():
    token = CancelToken()
    ctx = ProbeContext(token, time.monotonic() + 5)
    threading.Timer(0.05, token.cancel).start()

    start = time.monotonic()
    with pytest.raises(ProbeCancelled):
        ctx.wait(5)
    assert time.monotonic() - start < 0.2
    assert ctx.cancelled


def test_check_prefers_cancellation_over_timeout():
    token = CancelToken()
    token.cancel()
    ctx = ProbeContext(token, time.monotonic() - 1)
    with pytest.raises(ProbeCancelled):
        ctx.check()


def test_next_wait_is_bounded_by_poll_interval():
    ctx = ProbeContext(CancelToken(), time.monotonic() + 10, poll_interval=0.05)
    assert 0 < ctx.next_wait() <= 0.05


def test_run_blocking_inline_and_pooled(pool):
    assert ProbeContext(CancelToken(), time.monotonic() + 1).run_blocking(sum, [1, 2, 3]) == 6
    assert ProbeContext(CancelToken(), time.monotonic() + 1, pool).run_blocking(sum, [1, 2, 3]) == 6


def test_run_blocking_gives_up_at_the_deadline(pool):
    ctx = ProbeContext(CancelToken(), time.monotonic() + 0.15, pool)
    start = time.monotonic()
    with pytest.raises(ProbeTimeout):
        ctx.run_blocking(time.sleep, 1)
    assert time.monotonic() - start < 0.3


def test_run_blocking_many_keeps_order_and_exceptions(pool):
    def fail():
        raise LookupError("nope")

    def slow():
        time.sleep(0.05)
        return "slow"

    ctx = ProbeContext(CancelToken(), time.monotonic() + 1, pool)
    first, second, third = ctx.run_blocking_many([slow, fail, lambda: "fast"])

    assert first == "slow"
    assert isinstance(second, LookupError)
    assert third == "fast"


def test_run_blocking_many_is_cancellable(pool):
    token = CancelToken()
    ctx = ProbeContext(token, time.monotonic() + 5, pool)
    threading.Timer(0.05, token.cancel).start()
    with pytest.raises(ProbeCancelled):
        ctx.run_blocking_many([lambda: time.sleep(1)])
