import errno
import os
import socket
import threading
import time

import pytest

from netnavigator import (
    Batch,
    CancelToken,
    EngineSettings,
    Outcome,
    ProbeCancelled,
    ProbeContext,
    ProbeEngine,
    ProbeRequest,
    ProbeTimeout,
    ResolverFailure,
)
from netnavigator.network import tcp
from netnavigator.network.tcp import ConnectStatus, classify_errno, probe_tcp_port


def _ctx(timeout=1.0, token=None):
    return ProbeContext(token or CancelToken(), time.monotonic() + timeout)


class TrackingSocket(socket.socket):
    """Remembers every socket created so tests can check they were closed."""
    created = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        TrackingSocket.created.append(self)


@pytest.fixture
def tracked_sockets(monkeypatch):
    TrackingSocket.created = []
    monkeypatch.setattr(tcp.socket, "socket", TrackingSocket)
    return TrackingSocket.created


@pytest.fixture
def silent_network(monkeypatch):
    """Every connect stays pending forever, as if packets were dropped."""
    def wait_writable(selector, timeout):
        time.sleep(timeout)
        return []

    monkeypatch.setattr(tcp, "_start_connect", lambda sock, sockaddr: errno.EINPROGRESS)
    monkeypatch.setattr(tcp, "_wait_writable", wait_writable)


def test_open_port(listening_port, tracked_sockets):
    observation = probe_tcp_port(ProbeRequest.tcp("127.0.0.1", listening_port), _ctx())

    assert observation.outcome is Outcome.OPEN
    assert observation.latency_ms is not None and observation.latency_ms >= 0
    assert tracked_sockets and all(s.fileno() == -1 for s in tracked_sockets)


def test_closed_port(closed_port, tracked_sockets):
    observation = probe_tcp_port(ProbeRequest.tcp("127.0.0.1", closed_port), _ctx())

    assert observation.outcome is Outcome.CLOSED
    assert observation.latency_ms is not None
    assert all(s.fileno() == -1 for s in tracked_sockets)


def test_silent_port_times_out_at_deadline(silent_network, tracked_sockets):
    start = time.monotonic()
    with pytest.raises(ProbeTimeout):
        probe_tcp_port(ProbeRequest.tcp("192.0.2.1", 80), _ctx(timeout=0.3))
    elapsed = time.monotonic() - start

    assert 0.3 <= elapsed < 0.45
    assert tracked_sockets and all(s.fileno() == -1 for s in tracked_sockets)


def test_cancel_interrupts_pending_connect(silent_network, tracked_sockets):
    token = CancelToken()
    timer = threading.Timer(0.1, token.cancel)
    timer.start()

    start = time.monotonic()
    with pytest.raises(ProbeCancelled):
        probe_tcp_port(ProbeRequest.tcp("192.0.2.1", 80), _ctx(timeout=5, token=token))

    assert time.monotonic() - start < 0.1 + 0.15
    assert all(s.fileno() == -1 for s in tracked_sockets)


def test_unreachable_host(monkeypatch):
    monkeypatch.setattr(tcp, "_start_connect", lambda sock, sockaddr: errno.EHOSTUNREACH)
    observation = probe_tcp_port(ProbeRequest.tcp("192.0.2.1", 80), _ctx())
    assert observation.outcome is Outcome.UNREACHABLE


def test_unexpected_errno_is_an_error(monkeypatch):
    monkeypatch.setattr(tcp, "_start_connect", lambda sock, sockaddr: errno.EACCES)
    observation = probe_tcp_port(ProbeRequest.tcp("192.0.2.1", 80), _ctx())
    assert observation.outcome is Outcome.ERROR
    assert observation.error == os.strerror(errno.EACCES)


def test_next_address_is_tried_after_unreachable(monkeypatch, listening_port):
    real_connect = tcp._start_connect

    def connect(sock, sockaddr):
        if sockaddr[0] == "127.0.0.2":
            return errno.EHOSTUNREACH
        return real_connect(sock, sockaddr)

    monkeypatch.setattr(tcp, "_start_connect", connect)
    monkeypatch.setattr(
        tcp, "resolve_host",
        lambda host: [(socket.AF_INET, "127.0.0.2", 0, 0), (socket.AF_INET, "127.0.0.1", 0, 0)],
    )
    observation = probe_tcp_port(ProbeRequest.tcp("multi.example.test", listening_port), _ctx())
    assert observation.outcome is Outcome.OPEN


def test_resolver_failure(monkeypatch):
    def fail(host):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(tcp, "resolve_host", fail)
    with pytest.raises(ResolverFailure, match="nowhere.invalid"):
        probe_tcp_port(ProbeRequest.tcp("nowhere.invalid", 80), _ctx())


@pytest.mark.parametrize("err, status", [
    (0, ConnectStatus.CONNECTED),
    (errno.ECONNREFUSED, ConnectStatus.REFUSED),
    (10061, ConnectStatus.REFUSED),
    (errno.EHOSTUNREACH, ConnectStatus.UNREACHABLE),
    (errno.ENETUNREACH, ConnectStatus.UNREACHABLE),
    (errno.ETIMEDOUT, ConnectStatus.TIMED_OUT),
    (errno.EACCES, ConnectStatus.FAILED),
])
def test_classify_errno(err, status):
    assert classify_errno(err) is status


@pytest.fixture
def high_fds():
    """Holds enough open sockets that new ones get descriptors above FD_SETSIZE."""
    resource = pytest.importorskip("resource")
    wanted = 1400
    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if soft < wanted:
        if hard != resource.RLIM_INFINITY and hard < wanted:
            pytest.skip(f"open file limit {hard} is too low")
        resource.setrlimit(resource.RLIMIT_NOFILE, (wanted, hard))
    fillers = [socket.socket(socket.AF_INET, socket.SOCK_STREAM) for _ in range(1100)]
    yield fillers
    for s in fillers:
        s.close()
    resource.setrlimit(resource.RLIMIT_NOFILE, (soft, hard))


def test_descriptors_above_fd_setsize(high_fds, listening_port, closed_port):
    assert max(s.fileno() for s in high_fds) >= 1024
    engine = ProbeEngine(EngineSettings(reachability_method="tcp", reachability_ports=(listening_port,)))
    requests = [
        ProbeRequest.tcp("127.0.0.1", listening_port),
        ProbeRequest.tcp("127.0.0.1", closed_port),
        ProbeRequest.host("127.0.0.1"),
    ]

    results = engine.run(Batch(requests))

    assert [r.outcome for r in results] == [Outcome.OPEN, Outcome.CLOSED, Outcome.RESOLVED]
    assert all(r.error is None for r in results)
