"""
Discovery of the local IPv4 network, used as the default subnet to sweep.
"""
import ipaddress
import logging
import socket
from typing import List, Optional, Tuple

import psutil

logger = logging.getLogger("netnavigator.network.discovery")


def _score_interface(iface_name: str, isup: bool) -> int:
    """Scores an interface based on its likelihood of being the 'real' physical one."""
    name = iface_name.lower()
    score = 100
    # Heavily penalize known virtual/VPN interfaces
    for keyword in ('virtual', 'vmware', 'vbox', 'tailscale', 'vpn', 'loopback', 'teredo', 'docker', 'veth'):
        if keyword in name:
            score -= 50
    # Boost common physical interface names
    for keyword in ('ethernet', 'wi-fi', 'wlan', 'eth0', 'en0'):
        if keyword in name:
            score += 20
    return score + 10 if isup else score - 100


def local_ipv4_networks() -> List[Tuple[int, str, ipaddress.IPv4Network]]:
    """Returns (score, interface, network) for every usable IPv4 interface, best first."""
    addrs = psutil.net_if_addrs()
    stats = psutil.net_if_stats()
    candidates: List[Tuple[int, str, ipaddress.IPv4Network]] = []
    for iface, iface_addrs in addrs.items():
        if iface.startswith('lo'):
            continue
        isup = iface in stats and stats[iface].isup
        for addr in iface_addrs:
            if addr.family != socket.AF_INET or not addr.netmask:
                continue
            try:
                network = ipaddress.ip_network(f"{addr.address}/{addr.netmask}", strict=False)
            except ValueError:
                continue
            if network.is_loopback or network.is_link_local:
                continue
            candidates.append((_score_interface(iface, isup), iface, network))
    candidates.sort(key=lambda c: c[0], reverse=True)
    return candidates


def local_ipv4_network() -> Optional[ipaddress.IPv4Network]:
    """The network of the best-scored local interface, or None."""
    candidates = local_ipv4_networks()
    if not candidates:
        logger.error("Could not find a local IPv4 network to sweep.")
        return None
    score, iface, network = candidates[0]
    logger.info(f"Using network {network} of interface '{iface}' (score {score}).")
    return network
