"""
Privilege checks that decide which host-reachability strategy is usable.
"""
import os
import platform
import socket
import ctypes


def is_admin() -> bool:
    """
    Checks if the process is running with administrator or root privileges.

    Returns:
        bool: True if running with elevated privileges, False otherwise.
    """
    try:
        if platform.system() == "Windows":
            return ctypes.windll.shell32.IsUserAnAdmin() != 0  # type: ignore[attr-defined]
        elif hasattr(os, 'geteuid'):
            # On POSIX systems, UID 0 is root.
            return os.geteuid() == 0  # type: ignore[attr-defined]  # pylint: disable=no-member
        return False
    except AttributeError:
        return False


def raw_icmp_available(family: int = socket.AF_INET) -> bool:
    """
    Returns True if a raw ICMP socket can be opened for the given family.

    Root is not the only way to get one (CAP_NET_RAW on Linux, Administrator
    on Windows), so the socket is actually attempted rather than inferred
    from is_admin().
    """
    proto = socket.IPPROTO_ICMPV6 if family == socket.AF_INET6 else socket.IPPROTO_ICMP
    try:
        with socket.socket(family, socket.SOCK_RAW, proto):
            return True
    except OSError:
        return False
