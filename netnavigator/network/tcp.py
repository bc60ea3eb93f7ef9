"""
TCP connect probing with non-blocking sockets.
"""
from __future__ import annotations
import errno
import logging
import os
import selectors
import socket
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..context import ProbeContext
from ..errors import ResolverFailure
from ..models import Outcome, ProbeObservation, ProbeRequest
from .utils import Address, resolve_host, sockaddr_for

logger = logging.getLogger("netnavigator.network.tcp")

_IN_PROGRESS = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY, 10035}  # 10035: WSAEWOULDBLOCK
_UNREACHABLE = {
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
    getattr(errno, "EHOSTDOWN", errno.EHOSTUNREACH),
    10065,  # WSAEHOSTUNREACH
    10051,  # WSAENETUNREACH
}
_REFUSED = {errno.ECONNREFUSED, 10061}  # 10061: WSAECONNREFUSED
_TIMED_OUT = {errno.ETIMEDOUT, 10060}  # 10060: WSAETIMEDOUT


class ConnectStatus(Enum):
    """How a single connection attempt ended."""
    CONNECTED = auto()
    REFUSED = auto()
    UNREACHABLE = auto()
    TIMED_OUT = auto()
    FAILED = auto()


def classify_errno(err: int) -> ConnectStatus:
    if err == 0:
        return ConnectStatus.CONNECTED
    if err in _REFUSED:
        return ConnectStatus.REFUSED
    if err in _UNREACHABLE:
        return ConnectStatus.UNREACHABLE
    if err in _TIMED_OUT:
        return ConnectStatus.TIMED_OUT
    return ConnectStatus.FAILED


@dataclass
class ConnectAttempt:
    """Book-keeping for one (address, port) connection attempt."""
    address: Address
    port: int
    status: Optional[ConnectStatus] = None
    errno: int = 0
    latency_ms: Optional[float] = None

    def finish(self, err: int, ctx: ProbeContext) -> None:
        self.status = classify_errno(err)
        self.errno = err
        self.latency_ms = ctx.elapsed_ms()

    @property
    def error_text(self) -> str:
        return os.strerror(self.errno) if self.errno else "connection failed"


def _start_connect(sock: socket.socket, sockaddr: tuple) -> int:
    return sock.connect_ex(sockaddr)


def _wait_writable(selector: selectors.BaseSelector, timeout: float) -> List[socket.socket]:
    """Returns the registered sockets whose connect attempt has completed."""
    return [key.fileobj for key, _events in selector.select(timeout)]  # type: ignore[misc]


def connect_all(
    endpoints: Sequence[Tuple[Address, int]],
    ctx: ProbeContext,
    stop_when: Callable[[ConnectStatus], bool] = lambda status: False,
) -> List[ConnectAttempt]:
    """
    Starts a non-blocking connect to every endpoint and waits for them in
    poll slices until all have finished or stop_when accepts one status.

    Raises ProbeCancelled / ProbeTimeout through ctx.check(). Every socket
    is closed before this function returns or raises.
    """
    attempts = [ConnectAttempt(address, port) for address, port in endpoints]
    with ExitStack() as stack:
        selector = stack.enter_context(selectors.DefaultSelector())
        pending: Dict[socket.socket, ConnectAttempt] = {}
        for attempt in attempts:
            try:
                sock = stack.enter_context(socket.socket(attempt.address[0], socket.SOCK_STREAM))
                sock.setblocking(False)
                err = _start_connect(sock, sockaddr_for(attempt.address, attempt.port))
            except OSError as e:
                attempt.finish(e.errno or errno.EIO, ctx)
                if stop_when(attempt.status):
                    return attempts
                continue
            if err in _IN_PROGRESS:
                pending[sock] = attempt
                selector.register(sock, selectors.EVENT_WRITE)
                continue
            attempt.finish(err, ctx)
            if stop_when(attempt.status):
                return attempts

        while pending:
            ctx.check()
            for sock in _wait_writable(selector, ctx.next_wait()):
                attempt = pending.pop(sock)
                selector.unregister(sock)
                attempt.finish(sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR), ctx)
                if stop_when(attempt.status):
                    return attempts
    return attempts


def resolve_target(host: str, ctx: ProbeContext) -> List[Address]:
    """Resolves host through the context so that cancellation is honoured."""
    try:
        addresses = ctx.run_blocking(resolve_host, host)
    except socket.gaierror as e:
        raise ResolverFailure(f"Could not resolve '{host}': {e}") from e
    if not addresses:
        raise ResolverFailure(f"No addresses found for '{host}'.")
    return addresses


def probe_tcp_port(request: ProbeRequest, ctx: ProbeContext) -> ProbeObservation:
    """
    Attempts a TCP connect to (host, port).

    open on connect, closed on refusal, timeout at the deadline. Addresses
    are tried in order until one gives a definitive answer.
    """
    port = int(request.port or 0)
    last: Optional[ConnectAttempt] = None
    for address in resolve_target(request.target, ctx):
        attempt = connect_all([(address, port)], ctx)[0]
        logger.debug(f"{request.describe()} via {address[1]}: {attempt.status}")
        if attempt.status is ConnectStatus.CONNECTED:
            return ProbeObservation(Outcome.OPEN, latency_ms=attempt.latency_ms)
        if attempt.status is ConnectStatus.REFUSED:
            return ProbeObservation(Outcome.CLOSED, latency_ms=attempt.latency_ms)
        if attempt.status is ConnectStatus.TIMED_OUT:
            return ProbeObservation(Outcome.TIMEOUT)
        last = attempt

    if last is not None and last.status is ConnectStatus.UNREACHABLE:
        return ProbeObservation(Outcome.UNREACHABLE, latency_ms=last.latency_ms)
    return ProbeObservation(Outcome.ERROR, error=last.error_text if last else "no usable address")
