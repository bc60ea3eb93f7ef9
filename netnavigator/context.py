"""
Cancellation token and the per-probe context handed to executors.
"""
from __future__ import annotations
import threading
import time
from concurrent.futures import ALL_COMPLETED, Executor, TimeoutError as FutureTimeoutError, wait as wait_futures
from typing import Any, Callable, List, Optional, Sequence

from .errors import ProbeCancelled, ProbeTimeout

DEFAULT_POLL_INTERVAL = 0.05


class CancelToken:
    """A thread-safe, one-way cancellation flag owned by a batch."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until cancelled or the timeout elapses. Returns True if cancelled."""
        return self._event.wait(timeout)


class ProbeContext:
    """
    Deadline and cancellation state for one dispatched probe.

    Executors never block for longer than poll_interval without checking
    back here, so a cancelled batch is noticed within one poll slice.
    """

    def __init__(
        self,
        token: CancelToken,
        deadline: float,
        blocking_pool: Optional[Executor] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.token = token
        self.deadline = deadline
        self.started = time.monotonic()
        self.poll_interval = poll_interval
        self._blocking_pool = blocking_pool

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.deadline

    def next_wait(self) -> float:
        """How long the next blocking wait may last."""
        return min(self.poll_interval, self.remaining())

    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self.started) * 1000, 1)

    def check(self) -> None:
        """Raises ProbeCancelled or ProbeTimeout if the probe must stop now."""
        if self.token.cancelled:
            raise ProbeCancelled()
        if self.expired():
            raise ProbeTimeout()

    def wait(self, seconds: float) -> None:
        """Sleeps for up to `seconds`, raising as soon as the probe must stop."""
        until = time.monotonic() + seconds
        while True:
            self.check()
            left = until - time.monotonic()
            if left <= 0:
                return
            if self.token.wait(min(left, self.next_wait())):
                raise ProbeCancelled()

    def run_blocking(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Runs a blocking call on the batch's auxiliary pool and waits for it
        in poll slices. The call itself must bound its own duration (for
        example a resolver lifetime); an abandoned call finishes in the
        background and its result is discarded.
        """
        self.check()
        if self._blocking_pool is None:
            return fn(*args, **kwargs)
        future = self._blocking_pool.submit(fn, *args, **kwargs)
        while True:
            try:
                return future.result(timeout=max(self.next_wait(), 0.001))
            except FutureTimeoutError:
                try:
                    self.check()
                except (ProbeCancelled, ProbeTimeout):
                    future.cancel()
                    raise

    def run_blocking_many(self, calls: Sequence[Callable[[], Any]]) -> List[Any]:
        """
        Runs several blocking calls in parallel and waits for all of them.

        Returns one entry per call, in order: its return value, or the
        exception it raised. Cancellation and the deadline still raise.
        """
        self.check()
        if self._blocking_pool is None:
            outcomes: List[Any] = []
            for call in calls:
                try:
                    outcomes.append(call())
                except Exception as e:
                    outcomes.append(e)
            return outcomes

        futures = [self._blocking_pool.submit(call) for call in calls]
        pending = set(futures)
        while pending:
            try:
                self.check()
            except (ProbeCancelled, ProbeTimeout):
                for future in pending:
                    future.cancel()
                raise
            _, pending = wait_futures(pending, timeout=max(self.next_wait(), 0.001), return_when=ALL_COMPLETED)
        return [f.exception() or f.result() for f in futures]
