"""
Core address helpers shared by the executors.
"""
import socket
from typing import List, Optional, Tuple, cast

# (family, ip, flowinfo, scopeid)
Address = Tuple[int, str, int, int]


def ip_literal_family(host: str) -> Optional[int]:
    """Returns the address family if host is an IP literal, else None."""
    try:
        socket.inet_pton(socket.AF_INET, host)
        return socket.AF_INET
    except OSError:
        pass
    try:
        socket.inet_pton(socket.AF_INET6, host.split('%')[0])
        return socket.AF_INET6
    except OSError:
        return None


def literal_address(host: str) -> Optional[Address]:
    """Builds an Address for an IP literal without touching the resolver."""
    family = ip_literal_family(host)
    if family == socket.AF_INET:
        return (socket.AF_INET, host, 0, 0)
    if family == socket.AF_INET6:
        ip_only, _, scope = host.partition('%')
        scopeid = 0
        try:
            if scope:
                scopeid = socket.if_nametoindex(scope)
        except OSError:
            scopeid = 0
        return (socket.AF_INET6, ip_only, 0, scopeid)
    return None


def resolve_host(host: str) -> List[Address]:
    """
    Resolves a hostname to a de-duplicated list of addresses.

    Results are not cached so that repeated batches observe the current
    state of the resolver. socket.gaierror propagates to the caller.
    """
    literal = literal_address(host)
    if literal is not None:
        return [literal]

    results: List[Address] = []
    for family, _socktype, _proto, _canonname, sockaddr in socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP):
        if family == socket.AF_INET and isinstance(sockaddr, tuple) and len(sockaddr) >= 2:
            results.append((family, cast(str, sockaddr[0]), 0, 0))
        elif family == socket.AF_INET6 and isinstance(sockaddr, tuple) and len(sockaddr) == 4:
            results.append((family, cast(str, sockaddr[0]), cast(int, sockaddr[2]), cast(int, sockaddr[3])))

    seen = set()
    deduped: List[Address] = []
    for rec in results:
        key = (rec[0], rec[1], rec[3])
        if key not in seen:
            seen.add(key)
            deduped.append(rec)
    return deduped


def sockaddr_for(address: Address, port: int) -> tuple:
    family, ip, flowinfo, scopeid = address
    if family == socket.AF_INET6:
        return (ip, port, flowinfo, scopeid)
    return (ip, port)
