"""
DNS resolution probes backed by dnspython.
"""
from __future__ import annotations
import logging
from functools import partial
from typing import Dict, List, Sequence

import dns.exception
import dns.resolver
import dns.reversename

from ..context import ProbeContext
from ..errors import ResolverFailure
from ..models import ALL_RECORD_TYPES, ALL_RECORDS, Outcome, ProbeObservation, ProbeRequest

logger = logging.getLogger("netnavigator.network.dns")

# Minimum resolver lifetime handed to dnspython, in seconds.
_MIN_LIFETIME = 0.01


def make_resolver(nameservers: Sequence[str] = ()) -> dns.resolver.Resolver:
    """Builds a fresh resolver, from the system configuration unless nameservers are given."""
    try:
        if nameservers:
            resolver = dns.resolver.Resolver(configure=False)
            resolver.nameservers = list(nameservers)
            return resolver
        return dns.resolver.Resolver()
    except dns.resolver.NoResolverConfiguration as e:
        raise ResolverFailure(f"No DNS resolver is configured: {e}") from e


def query_records(resolver: dns.resolver.Resolver, qname, rtype: str, lifetime: float) -> List[str]:
    """Resolves one record type. "Not found" answers give an empty list."""
    try:
        answer = resolver.resolve(qname, rtype, lifetime=max(lifetime, _MIN_LIFETIME))
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        return []
    return [rdata.to_text() for rdata in answer]


def _query_name(request: ProbeRequest, rtypes: List[str]):
    if rtypes == ["PTR"]:
        try:
            return dns.reversename.from_address(request.target)
        except (dns.exception.SyntaxError, ValueError) as e:
            raise ResolverFailure(f"PTR lookups need an IP address, got '{request.target}'.") from e
    return request.target


def probe_dns(
    request: ProbeRequest,
    ctx: ProbeContext,
    nameservers: Sequence[str] = (),
    all_types: Sequence[str] = ALL_RECORD_TYPES,
) -> ProbeObservation:
    """
    Resolves the requested record type, or every type in all_types for "ALL".

    Each type is a sub-probe run in parallel. A type that does not exist
    contributes an empty list. The probe is an error only when no type got
    an answer and at least one failed at the resolver level, and a timeout
    when every type timed out.
    """
    if (request.record_type or "").upper() == ALL_RECORDS:
        rtypes = list(all_types)
    else:
        rtypes = request.record_types
    resolver = make_resolver(nameservers)
    qname = _query_name(request, rtypes)
    lifetime = ctx.remaining()

    outcomes = ctx.run_blocking_many([partial(query_records, resolver, qname, rtype, lifetime) for rtype in rtypes])

    payload: Dict[str, List[str]] = {}
    timeouts = 0
    failures: List[str] = []
    for rtype, outcome in zip(rtypes, outcomes):
        if isinstance(outcome, BaseException):
            payload[rtype] = []
            if isinstance(outcome, dns.exception.Timeout):
                timeouts += 1
            else:
                failures.append(f"{rtype}: {outcome}")
        else:
            payload[rtype] = outcome

    answered = len(rtypes) - timeouts - len(failures)
    if answered == 0:
        if failures:
            return ProbeObservation(Outcome.ERROR, error="; ".join(failures))
        return ProbeObservation(Outcome.TIMEOUT)
    if failures or timeouts:
        logger.debug(f"{request.describe()}: {timeouts} timed out, ignored failures {failures}")
    return ProbeObservation(Outcome.RESOLVED, latency_ms=ctx.elapsed_ms(), payload=payload)
