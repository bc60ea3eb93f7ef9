"""
Network executors for the probe engine.
"""

from .discovery import local_ipv4_network
from .dns import probe_dns
from .reachability import DEFAULT_REACHABILITY_PORTS, REACHABILITY_METHODS, probe_host, select_method
from .tcp import probe_tcp_port

__all__ = [
    "local_ipv4_network",
    "probe_dns",
    "probe_host",
    "probe_tcp_port",
    "select_method",
    "DEFAULT_REACHABILITY_PORTS",
    "REACHABILITY_METHODS",
]
