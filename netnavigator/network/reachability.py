"""
Host reachability probing.

Two strategies are available. With raw-socket privileges an ICMP echo is
sent; without them the host is considered up if any of a few well-known TCP
ports answers, either by accepting the connection or by refusing it. A
filtered port or a dropped echo is never an error: the probe ends as
unreachable or timeout.
"""
from __future__ import annotations
import logging
from typing import Sequence

from ..context import ProbeContext
from ..models import Outcome, ProbeObservation, ProbeRequest
from ..privileges import is_admin, raw_icmp_available
from .icmp import EchoStatus, ICMPPinger
from .tcp import ConnectStatus, connect_all, resolve_target

logger = logging.getLogger("netnavigator.network.reachability")

DEFAULT_REACHABILITY_PORTS = (80, 443, 22, 445)
REACHABILITY_METHODS = ("auto", "icmp", "tcp")

_ANSWERED = (ConnectStatus.CONNECTED, ConnectStatus.REFUSED)


def select_method(method: str) -> str:
    """Resolves "auto" to the strategy this process can actually use."""
    if method != "auto":
        return method
    if raw_icmp_available():
        return "icmp"
    logger.debug(f"Raw ICMP unavailable (admin={is_admin()}); using TCP connect heuristic.")
    return "tcp"


def probe_host(
    request: ProbeRequest,
    ctx: ProbeContext,
    method: str = "tcp",
    ports: Sequence[int] = DEFAULT_REACHABILITY_PORTS,
) -> ProbeObservation:
    """Checks whether request.target answers, using the given strategy."""
    address = resolve_target(request.target, ctx)[0]

    if method == "icmp":
        try:
            status = ICMPPinger().ping(address, ctx)
        except PermissionError:
            return ProbeObservation(Outcome.ERROR, error="Raw ICMP sockets need elevated privileges.")
        if status is EchoStatus.REPLY:
            return ProbeObservation(Outcome.RESOLVED, latency_ms=ctx.elapsed_ms())
        return ProbeObservation(Outcome.UNREACHABLE, latency_ms=ctx.elapsed_ms())

    attempts = connect_all(
        [(address, port) for port in ports],
        ctx,
        stop_when=lambda status: status in _ANSWERED,
    )
    for attempt in attempts:
        if attempt.status in _ANSWERED:
            logger.debug(f"{request.target} answered on port {attempt.port} ({attempt.status})")
            return ProbeObservation(Outcome.RESOLVED, latency_ms=attempt.latency_ms)
    if any(a.status is ConnectStatus.TIMED_OUT for a in attempts):
        return ProbeObservation(Outcome.TIMEOUT)
    # Every port failed outright and none is pending.
    return ProbeObservation(Outcome.UNREACHABLE, latency_ms=ctx.elapsed_ms())
