"""
Bounded-concurrency execution of probe batches.

A batch is run by a fixed pool of worker threads that pull requests from a
FIFO queue in submission order. Every result is written into the slot of
its request's index, so the collected sequence always matches submission
order no matter which probe finishes first.
"""
from __future__ import annotations
import logging
import queue
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .configuration import EngineSettings
from .context import CancelToken, ProbeContext
from .errors import InvalidConfig, ProbeCancelled, ProbeRefused, ProbeTimeout, ResolverFailure
from .models import (
    BatchState,
    Outcome,
    ProbeKind,
    ProbeObservation,
    ProbeRequest,
    ProbeResult,
    ProbeState,
    positive_number,
)
from .network import probe_dns, probe_host, probe_tcp_port, select_method

logger = logging.getLogger("netnavigator.engine")

ProbeExecutor = Callable[[ProbeRequest, ProbeContext], ProbeObservation]
ResultCallback = Callable[[ProbeResult], None]


def default_executors(settings: EngineSettings) -> Dict[ProbeKind, ProbeExecutor]:
    """The network executors, configured from settings."""
    return {
        ProbeKind.TCP_PORT: probe_tcp_port,
        ProbeKind.HOST_REACHABILITY: partial(
            probe_host,
            method=select_method(settings.reachability_method),
            ports=settings.reachability_ports,
        ),
        ProbeKind.DNS_RESOLVE: partial(
            probe_dns,
            nameservers=settings.dns_nameservers,
            all_types=settings.dns_record_types,
        ),
    }


class Batch:
    """
    An ordered set of probe requests run together under one concurrency
    budget. A batch owns its cancellation token and result buffer, runs
    exactly once and is immutable once complete.
    """

    def __init__(self, requests: Iterable[ProbeRequest] = (), batch_timeout: Optional[float] = None):
        if batch_timeout is not None and not positive_number(batch_timeout):
            raise InvalidConfig(f"batch_timeout must be a positive number of seconds, got {batch_timeout!r}.")
        self.batch_timeout = batch_timeout
        self.token = CancelToken()
        self.state = BatchState.ACCEPTING
        self.results: Optional[Tuple[ProbeResult, ...]] = None
        self._requests: List[ProbeRequest] = list(requests)
        self._lock = threading.Lock()
        self._handle: Optional[BatchHandle] = None

    def __len__(self) -> int:
        return len(self._requests)

    @property
    def requests(self) -> Tuple[ProbeRequest, ...]:
        return tuple(self._requests)

    def add(self, request: ProbeRequest) -> int:
        """Appends a request and returns its index. Only allowed before submission."""
        with self._lock:
            if self.state is not BatchState.ACCEPTING:
                raise InvalidConfig("Requests can only be added before the batch is submitted.")
            self._requests.append(request)
            return len(self._requests) - 1

    def cancel(self) -> None:
        """Stops every queued and in-flight probe. Safe to call at any time."""
        with self._lock:
            self.token.cancel()
            if self.state is BatchState.RUNNING:
                self.state = BatchState.DRAINING
            handle = self._handle
        if handle is not None:
            handle._on_cancel()

    def _start(self) -> Tuple[ProbeRequest, ...]:
        with self._lock:
            if self.state is not BatchState.ACCEPTING:
                raise InvalidConfig("A batch runs exactly once; create a new Batch to probe again.")
            self.state = BatchState.DRAINING if self.token.cancelled else BatchState.RUNNING
            return tuple(self._requests)

    def _attach(self, handle: BatchHandle) -> None:
        # Cancels that arrive before this only set the token; the handle checks it on start.
        with self._lock:
            self._handle = handle

    def _complete(self, results: List[ProbeResult]) -> None:
        with self._lock:
            self.results = tuple(results)
            self.state = BatchState.COMPLETE


class BatchHandle:
    """A running batch: cancel it, stream its results or wait for all of them."""

    def __init__(
        self,
        batch: Batch,
        width: int,
        executors: Dict[ProbeKind, ProbeExecutor],
        settings: EngineSettings,
        on_result: Optional[ResultCallback] = None,
    ):
        self.batch = batch
        self.width = width
        self._executors = executors
        self._settings = settings
        self._on_result = on_result

        self._requests = batch._start()
        count = len(self._requests)
        self._slots: List[Optional[ProbeResult]] = [None] * count
        self.probe_states: List[ProbeState] = [ProbeState.QUEUED] * count
        self._filled = 0
        self._cond = threading.Condition()
        self._done = threading.Event()
        self._queue: queue.Queue[Tuple[int, ProbeRequest]] = queue.Queue()
        for item in enumerate(self._requests):
            self._queue.put(item)

        self.started = time.monotonic()
        batch_timeout = batch.batch_timeout if batch.batch_timeout is not None else settings.batch_timeout
        self.deadline: Optional[float] = self.started + batch_timeout if batch_timeout else None

        self._blocking_pool = ThreadPoolExecutor(
            max_workers=width * max(1, len(settings.dns_record_types)),
            thread_name_prefix="netnavigator-blocking",
        )
        self._timers: List[threading.Timer] = []
        self._workers = [
            threading.Thread(target=self._worker, name=f"netnavigator-probe-{i}", daemon=True)
            for i in range(width)
        ]

    @property
    def state(self) -> BatchState:
        return self.batch.state

    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> None:
        """Cancels the batch; see Batch.cancel()."""
        self.batch.cancel()

    def results(self, timeout: Optional[float] = None) -> List[ProbeResult]:
        """Blocks until every probe has a result and returns them in submission order."""
        if not self._done.wait(timeout):
            raise TimeoutError(f"Batch did not complete within {timeout} seconds.")
        return list(self.batch.results or ())

    def stream(self) -> Iterator[ProbeResult]:
        """Yields results in submission order, each as soon as it is available."""
        for index in range(len(self._slots)):
            with self._cond:
                while self._slots[index] is None:
                    self._cond.wait()
                result = self._slots[index]
            yield result

    def _start(self) -> None:
        self.batch._attach(self)
        logger.info(
            f"Starting batch of {len(self._requests)} probes with {self.width} workers"
            + (f", deadline {self.deadline - self.started:.2f}s" if self.deadline else "")
        )
        if self.batch.token.cancelled:
            self._on_cancel()
            return
        if self.deadline is not None:
            self._schedule(self.deadline - self.started + self._settings.cancel_grace, Outcome.TIMEOUT)
        for worker in self._workers:
            worker.start()

    def _schedule(self, delay: float, outcome: Outcome) -> None:
        timer = threading.Timer(delay, self._force_fill, args=(outcome,))
        timer.daemon = True
        with self._cond:
            if self._done.is_set():
                return
            self._timers.append(timer)
        timer.start()

    def _on_cancel(self) -> None:
        if self._done.is_set():
            return
        logger.info("Batch cancelled; draining queued probes.")
        while True:
            try:
                index, request = self._queue.get_nowait()
            except queue.Empty:
                break
            self._record(ProbeResult(index, request, Outcome.CANCELLED))
        self._schedule(self._settings.cancel_grace, Outcome.CANCELLED)

    def _worker(self) -> None:
        while True:
            try:
                index, request = self._queue.get_nowait()
            except queue.Empty:
                return
            if self.batch.token.cancelled:
                self._record(ProbeResult(index, request, Outcome.CANCELLED))
                continue
            if self.deadline is not None and time.monotonic() >= self.deadline:
                self._record(ProbeResult(index, request, Outcome.TIMEOUT))
                continue
            with self._cond:
                self.probe_states[index] = ProbeState.DISPATCHED
            self._record(self._execute(index, request))

    def _execute(self, index: int, request: ProbeRequest) -> ProbeResult:
        timeout = request.timeout if request.timeout is not None else self._settings.probe_timeout
        deadline = time.monotonic() + timeout
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        ctx = ProbeContext(self.batch.token, deadline, self._blocking_pool, self._settings.poll_interval)

        try:
            observation = self._executors[request.kind](request, ctx)
        except ProbeCancelled:
            observation = ProbeObservation(Outcome.CANCELLED)
        except ProbeTimeout:
            observation = ProbeObservation(Outcome.TIMEOUT)
        except ProbeRefused:
            observation = ProbeObservation(Outcome.CLOSED, latency_ms=ctx.elapsed_ms())
        except ResolverFailure as e:
            observation = ProbeObservation(Outcome.ERROR, latency_ms=ctx.elapsed_ms(), error=str(e))
        except Exception as e:
            if not self._done.is_set():
                logger.exception(f"Executor for {request.describe()} failed")
            observation = ProbeObservation(Outcome.ERROR, error=f"{type(e).__name__}: {e}")
        return ProbeResult.from_observation(index, request, observation)

    def _record(self, result: ProbeResult) -> bool:
        """Fills a result slot. The first writer wins; later results are dropped."""
        with self._cond:
            if self._slots[result.index] is not None:
                return False
            self._slots[result.index] = result
            self.probe_states[result.index] = ProbeState.DONE
            self._filled += 1
            complete = self._filled == len(self._slots)
            self._cond.notify_all()

        logger.debug(f"[{result.index}] {result.request.describe()} -> {result.outcome.value}")
        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception as e:
                logger.warning(f"Result callback failed for probe {result.index}: {e}")
        if complete:
            self._finish()
        return True

    def _force_fill(self, outcome: Outcome) -> None:
        with self._cond:
            missing = [i for i, slot in enumerate(self._slots) if slot is None]
        if not missing:
            return
        logger.warning(f"{len(missing)} probes did not finish in time; recording them as {outcome.value}.")
        for index in missing:
            self._record(ProbeResult(index, self._requests[index], outcome))

    def _finish(self) -> None:
        with self._cond:
            results = [slot for slot in self._slots if slot is not None]
            self.batch._complete(results)
            self._done.set()
            timers, self._timers = self._timers, []
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()
        self._blocking_pool.shutdown(wait=False, cancel_futures=True)

        counts = Counter(r.outcome.value for r in results)
        summary = ", ".join(f"{name}={count}" for name, count in sorted(counts.items()))
        logger.info(f"Batch of {len(results)} probes complete in {time.monotonic() - self.started:.2f}s ({summary})")


class ProbeEngine:
    """
    Runs batches of probes with at most max_concurrency in flight.

    The engine keeps no state between batches: each batch owns its token,
    worker pool and result buffer.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        executors: Optional[Dict[ProbeKind, ProbeExecutor]] = None,
    ):
        self.settings = settings or EngineSettings()
        self._custom_executors = dict(executors or {})
        self._executors: Optional[Dict[ProbeKind, ProbeExecutor]] = None

    @property
    def executors(self) -> Dict[ProbeKind, ProbeExecutor]:
        if self._executors is None:
            executors = dict(self._custom_executors)
            if len(executors) < len(ProbeKind):
                for kind, executor in default_executors(self.settings).items():
                    executors.setdefault(kind, executor)
            self._executors = executors
        return self._executors

    def submit(
        self,
        batch: Batch,
        max_concurrency: Optional[int] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> BatchHandle:
        """
        Starts running a batch and returns its handle without waiting.

        Raises InvalidConfig, before anything is dispatched, for a
        concurrency below 1, an empty batch, an invalid request, or a batch
        that was already submitted.
        """
        width = self.settings.max_concurrency if max_concurrency is None else max_concurrency
        if isinstance(width, bool) or not isinstance(width, int) or width < 1:
            raise InvalidConfig(f"max_concurrency must be an integer >= 1, got {width!r}.")
        if batch.state is not BatchState.ACCEPTING:
            raise InvalidConfig("A batch runs exactly once; create a new Batch to probe again.")
        requests = batch.requests
        if not requests:
            raise InvalidConfig("A batch needs at least one probe request.")
        for request in requests:
            request.validate()

        handle = BatchHandle(batch, min(width, len(requests)), self.executors, self.settings, on_result)
        handle._start()
        return handle

    def run(self, batch: Batch, max_concurrency: Optional[int] = None) -> List[ProbeResult]:
        """Runs a batch to completion and returns its results in submission order."""
        return self.submit(batch, max_concurrency).results()

    def cancel(self, handle: BatchHandle) -> None:
        handle.cancel()


def run_batch_async(
    requests: Iterable[ProbeRequest],
    concurrency: int,
    batch_timeout: Optional[float] = None,
    settings: Optional[EngineSettings] = None,
    on_result: Optional[ResultCallback] = None,
) -> BatchHandle:
    """Submits requests as a new batch and returns its handle."""
    engine = ProbeEngine(settings)
    return engine.submit(Batch(requests, batch_timeout=batch_timeout), concurrency, on_result=on_result)


def run_batch(
    requests: Iterable[ProbeRequest],
    concurrency: int,
    batch_timeout: Optional[float] = None,
    settings: Optional[EngineSettings] = None,
) -> List[ProbeResult]:
    """Runs requests as a new batch and returns results in submission order."""
    return run_batch_async(requests, concurrency, batch_timeout, settings).results()
