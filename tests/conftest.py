import socket
import threading

import dns.resolver
import pytest

from netnavigator import EngineSettings, Outcome, ProbeEngine, ProbeKind, ProbeObservation


@pytest.fixture
def listening_port():
    """A localhost TCP port with a listener behind it."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", 0))
    server.listen(128)
    yield server.getsockname()[1]
    server.close()


@pytest.fixture
def closed_port():
    """A localhost TCP port that nothing listens on."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


class FakeExecutor:
    """
    Waits through the probe context for `delay` seconds (a number, or a
    callable taking the request) and reports `outcome`. Tracks how many
    probes run at once.
    """

    def __init__(self, delay=0.0, outcome=Outcome.OPEN):
        self.delay = delay
        self.outcome = outcome
        self.lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0
        self.calls = []

    def __call__(self, request, ctx):
        with self.lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            self.calls.append(request)
        try:
            delay = self.delay(request) if callable(self.delay) else self.delay
            if delay:
                ctx.wait(delay)
            return ProbeObservation(self.outcome, latency_ms=ctx.elapsed_ms())
        finally:
            with self.lock:
                self.in_flight -= 1


@pytest.fixture
def make_engine():
    """Builds a ProbeEngine whose every probe kind runs the given executor."""
    def _make(executor, **settings):
        return ProbeEngine(EngineSettings(**settings), executors={kind: executor for kind in ProbeKind})
    return _make


class FakeRdata:
    def __init__(self, text):
        self.text = text

    def to_text(self):
        return self.text


class FakeResolver:
    """
    Stands in for dns.resolver.Resolver. `answers` maps a record type to a
    list of record texts or to an exception to raise.
    """
    answers = {}
    unconfigured = False
    queries = []

    def __init__(self, configure=True):
        if configure and FakeResolver.unconfigured:
            raise dns.resolver.NoResolverConfiguration()
        self.nameservers = []

    def resolve(self, qname, rdtype, lifetime=None):
        FakeResolver.queries.append((str(qname), rdtype, lifetime, list(self.nameservers)))
        answer = self.answers.get(rdtype, dns.resolver.NoAnswer())
        if isinstance(answer, BaseException):
            raise answer
        return [FakeRdata(text) for text in answer]


@pytest.fixture
def resolver(monkeypatch):
    """Replaces dnspython's resolver with a scripted FakeResolver."""
    monkeypatch.setattr(FakeResolver, "answers", {})
    monkeypatch.setattr(FakeResolver, "unconfigured", False)
    monkeypatch.setattr(FakeResolver, "queries", [])
    monkeypatch.setattr(dns.resolver, "Resolver", FakeResolver)
    return FakeResolver
