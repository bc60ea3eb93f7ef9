"""
Handles parsing and validation of probe targets.
"""
from __future__ import annotations
import ipaddress
from typing import List, Optional, Tuple

from .errors import InvalidConfig

# Upper bound on ports expanded from a single range expression.
MAX_PORTS = 65535


class TargetParser:
    """Parses and validates target strings of the form host[:ports]."""

    def __init__(self, default_ports: Optional[List[int]] = None):
        self.default_ports = list(default_ports or [])

    def parse_targets(self, text: str) -> List[Tuple[str, List[int]]]:
        """
        Parses one target per line (or whitespace-separated) into
        (host, ports) pairs, removing duplicate hosts.
        """
        targets: List[Tuple[str, List[int]]] = []
        seen = set()
        for token in text.split():
            host, ports = self.parse_target(token)
            normalized = '127.0.0.1' if host == 'localhost' else host
            key = (normalized, tuple(ports))
            if key in seen:
                continue
            seen.add(key)
            targets.append((host, ports))
        return targets

    def parse_target(self, value: str) -> Tuple[str, List[int]]:
        """Parses a single target into a validated host and a sorted port list."""
        host, ports = self._parse_target_line(value)
        self._validate_host(host)
        return host, sorted(set(ports + self.default_ports))

    def _parse_target_line(self, line: str) -> Tuple[str, List[int]]:
        s = line.strip()
        if s.startswith('['):
            end = s.find(']')
            if end == -1:
                raise InvalidConfig(f"Missing closing ']' in '{s}'. For IPv6 with ports use: [fe80::1]:80,443")
            host = s[1:end]
            rest = s[end + 1:].strip()
            if rest.startswith(':'):
                port_str = rest[1:].strip()
                if port_str:
                    return host, parse_ports(port_str, s)
            elif rest:
                raise InvalidConfig(f"Unexpected text after ']': '{rest}'.")
            return host, []
        try:
            ipaddress.ip_address(s)
            return s, []
        except ValueError:
            pass
        if ':' in s:
            # Bare IPv6 addresses are caught above, so a colon here separates the ports.
            host, port_str = (part.strip() for part in s.rsplit(':', 1))
            if host and port_str:
                return host, parse_ports(port_str, s)
            raise InvalidConfig(f"Invalid target '{s}'. Use host:port or [ipv6]:port.")
        return s, []

    def _validate_host(self, host: str) -> None:
        """Validates a hostname or IP address."""
        try:
            ipaddress.ip_address(host.split('%')[0])
            return
        except ValueError:
            pass
        if not host or len(host) > 253:
            raise InvalidConfig(f"The hostname '{host}' is not valid.")
        labels = host.rstrip('.').split('.')
        if not all(labels):
            raise InvalidConfig(f"The hostname '{host}' contains empty labels.")
        for lbl in labels:
            if not (1 <= len(lbl) <= 63):
                raise InvalidConfig(f"The hostname '{host}' has an invalid label length.")
            if lbl.startswith('-') or lbl.endswith('-'):
                raise InvalidConfig(f"The hostname '{host}' has a label starting/ending with '-'.")
            if not all(c.isalnum() or c in '-_' for c in lbl):
                raise InvalidConfig(f"The hostname '{host}' contains invalid characters.")


def parse_ports(port_str: str, original: Optional[str] = None) -> List[int]:
    """Parses '22,80,8000-8010' into a sorted list of unique ports."""
    original = original or port_str
    ports = set()
    try:
        for part in (p.strip() for p in port_str.split(',')):
            if not part:
                continue
            if '-' in part:
                low_str, high_str = part.split('-', 1)
                low, high = int(low_str), int(high_str)
                if low > high:
                    raise ValueError
                ports.update(range(low, high + 1))
            else:
                ports.add(int(part))
    except ValueError:
        raise InvalidConfig(f"Invalid port list in '{original}'. Use comma-separated numbers or ranges (1-65535).")
    if not ports or not all(0 < port <= MAX_PORTS for port in ports):
        raise InvalidConfig(f"Invalid port list in '{original}'. Use comma-separated numbers or ranges (1-65535).")
    return sorted(ports)
