"""
Builders that turn common scanning tasks into probe requests.
"""
from __future__ import annotations
import ipaddress
from typing import Iterable, List, Optional, Union

from .errors import InvalidConfig
from .models import ProbeKind, ProbeRequest
from .network.discovery import local_ipv4_network
from .parsing import TargetParser, parse_ports

# Largest network subnet_requests() will expand.
MAX_SWEEP_HOSTS = 4096

NetworkSpec = Union[str, ipaddress.IPv4Network, ipaddress.IPv6Network, None]


def parse_network(network: NetworkSpec) -> Union[ipaddress.IPv4Network, ipaddress.IPv6Network]:
    """
    Accepts a CIDR ('192.168.1.0/24'), a three-octet base ('192.168.1',
    meaning its /24), or None for the local network.
    """
    if network is None:
        local = local_ipv4_network()
        if local is None:
            raise InvalidConfig("No local IPv4 network found; pass a network to sweep.")
        return local
    if isinstance(network, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return network
    text = network.strip()
    if text.count('.') == 2 and '/' not in text:
        text = f"{text}.0/24"
    try:
        return ipaddress.ip_network(text, strict=False)
    except ValueError as e:
        raise InvalidConfig(f"'{network}' is not a network. Use a CIDR like 192.168.1.0/24 or a base like 192.168.1.") from e


def subnet_requests(network: NetworkSpec = None, timeout: Optional[float] = None) -> List[ProbeRequest]:
    """One host-reachability probe per host address of the network."""
    net = parse_network(network)
    if net.num_addresses > MAX_SWEEP_HOSTS + 2:
        raise InvalidConfig(f"Network {net} is too large to sweep (more than {MAX_SWEEP_HOSTS} hosts).")
    hosts = list(net.hosts()) or [net.network_address]
    return [ProbeRequest.host(str(address), timeout=timeout) for address in hosts]


def port_requests(host: str, ports: Union[str, Iterable[int]], timeout: Optional[float] = None) -> List[ProbeRequest]:
    """One tcp-port probe per port; ports may be a list or a '22,80,8000-8010' string."""
    host, _ = TargetParser().parse_target(host)
    port_list = parse_ports(ports) if isinstance(ports, str) else sorted(set(ports))
    return [ProbeRequest.tcp(host, port, timeout=timeout) for port in port_list]


def dns_requests(
    host: str,
    record_types: Optional[Iterable[str]] = None,
    timeout: Optional[float] = None,
) -> List[ProbeRequest]:
    """One dns-resolve probe per record type (default "A"; "ALL" resolves every type at once)."""
    return [ProbeRequest.dns(host, rtype.upper(), timeout=timeout) for rtype in (record_types or ["A"])]


def target_requests(
    text: str,
    kind: Optional[ProbeKind] = None,
    timeout: Optional[float] = None,
    default_ports: Optional[List[int]] = None,
) -> List[ProbeRequest]:
    """
    Builds probes from target text, one target per line.

    With kind None, targets that carry ports become tcp-port probes and bare
    hosts become host-reachability probes.
    """
    requests: List[ProbeRequest] = []
    for host, ports in TargetParser(default_ports).parse_targets(text):
        if kind is ProbeKind.DNS_RESOLVE:
            requests.append(ProbeRequest.dns(host, timeout=timeout))
        elif ports and kind in (None, ProbeKind.TCP_PORT):
            requests.extend(ProbeRequest.tcp(host, port, timeout=timeout) for port in ports)
        elif kind is ProbeKind.TCP_PORT:
            raise InvalidConfig(f"Target '{host}' has no ports to check.")
        else:
            requests.append(ProbeRequest.host(host, timeout=timeout))
    return requests
